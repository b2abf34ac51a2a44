import json

import pulumi
import pulumi_aws as aws

from magicmail_infra.bootstrap import BootstrapScript
from magicmail_infra.errors import ConfigurationError
from magicmail_infra.topology import ResourceKind
from magicmail_infra.topology import ResourceNode
from magicmail_infra.topology import Topology

INSTANCE_TYPE = "t3.large"

# canonical's account, jammy 22.04 server images
UBUNTU_OWNER = "099720109477"
UBUNTU_IMAGE = "ubuntu/images/hvm-ssd/ubuntu-jammy-22.04-amd64-server-*"

SSM_MANAGED_POLICY = "arn:aws:iam::aws:policy/AmazonSSMManagedInstanceCore"
ANYWHERE = "0.0.0.0/0"
WEB_PORTS = ((80, "Allow HTTP access"), (443, "Allow HTTPS access"))

ROLE = "role"
ACCESS = "web-access"
ROOT_VOLUME = "root-volume"
DATA_VOLUME = "data-volume"
INSTANCE = "instance"
ADDRESS = "address"


def plan_compute(script: BootstrapScript, instance_type: str = INSTANCE_TYPE) -> Topology:
    topology = Topology()
    topology.add(ResourceNode(ResourceKind.ROLE, ROLE, {
        "service": "ec2.amazonaws.com",
        # session manager only, no key based login
        "managed_policies": (SSM_MANAGED_POLICY,),
    }))
    topology.add(ResourceNode(ResourceKind.RULE, ACCESS, {
        "ingress": tuple({"protocol": "tcp", "port": port, "cidr": ANYWHERE, "description": description}
                         for port, description in WEB_PORTS),
        "allow_all_outbound": True,
    }))
    topology.add(ResourceNode(ResourceKind.DISK, ROOT_VOLUME, {
        "device_name": "/dev/sda1",
        "size": 50,
        "volume_type": "gp3",
        "encrypted": True,
        "delete_on_termination": True,
    }))
    topology.add(ResourceNode(ResourceKind.DISK, DATA_VOLUME, {
        "device_name": "/dev/sdf",
        "size": 100,
        "volume_type": "gp3",
        "encrypted": True,
        # gitlab data outlives the instance
        "delete_on_termination": False,
    }))
    topology.add(ResourceNode(ResourceKind.INSTANCE, INSTANCE, {
        "instance_type": instance_type,
        "user_data": script.render(),
    }, depends_on=(ROLE, ACCESS, ROOT_VOLUME, DATA_VOLUME)))
    topology.add(ResourceNode(ResourceKind.ADDRESS, ADDRESS, {
        "domain": "vpc",
    }, depends_on=(INSTANCE,)))
    return topology


class ComputeUnit(pulumi.ComponentResource):
    """Self-hosted GitLab CE server.

    One instance in a public subnet of the default VPC, reachable on 80/443
    and through SSM Session Manager, with a separate data volume mounted at
    the bootstrap script's mount point and an Elastic IP that survives
    instance replacement.
    """

    def __init__(self, name, script: BootstrapScript = None, instance_type=INSTANCE_TYPE, opts=None):
        self.script = script or BootstrapScript()
        self.topology = plan_compute(self.script, instance_type)
        super().__init__("magicmail:compute:ComputeUnit", name, None, opts)
        self._prefix = name
        self._materialized = {}
        self._disks = {}

        build = {
            ResourceKind.ROLE: self._role,
            ResourceKind.RULE: self._access_policy,
            ResourceKind.DISK: self._disk,
            ResourceKind.INSTANCE: self._instance,
            ResourceKind.ADDRESS: self._address,
        }
        for node in self.topology.dependency_order():
            build[node.kind](node)

        self.instance_id = self.instance.id
        self.public_ip = self.eip.public_ip
        self.ssm_command = pulumi.Output.concat("aws ssm start-session --target ", self.instance.id)
        self.exports = {
            "GitLabInstancePublicIp": self.public_ip,
            "SsmCommand": self.ssm_command,
            "GitLabInstanceId": self.instance_id,
        }
        self.register_outputs({
            "instance_id": self.instance_id,
            "public_ip": self.public_ip,
            "ssm_command": self.ssm_command,
        })

    def _opts(self, node):
        # disks are declared inline on the instance, so they have no resource of their own
        depends_on = [self._materialized[d] for d in node.depends_on if d in self._materialized]
        return pulumi.ResourceOptions(parent=self, depends_on=depends_on)

    def _invoke_opts(self):
        return pulumi.InvokeOptions(parent=self)

    def _role(self, node):
        attrs = node.attributes
        self.role = aws.iam.Role(
            f"{self._prefix}-role",
            description="IAM Role for GitLab EC2 instance to allow SSM access",
            assume_role_policy=json.dumps({
                "Version": "2012-10-17",
                "Statement": [{
                    "Effect": "Allow",
                    "Principal": {"Service": attrs["service"]},
                    "Action": "sts:AssumeRole",
                }],
            }),
            opts=self._opts(node),
        )
        self.policy_attachments = [
            aws.iam.RolePolicyAttachment(
                f"{self._prefix}-role-policy-{n}",
                role=self.role.name,
                policy_arn=arn,
                opts=pulumi.ResourceOptions(parent=self),
            )
            for n, arn in enumerate(attrs["managed_policies"])
        ]
        self.instance_profile = aws.iam.InstanceProfile(
            f"{self._prefix}-profile",
            role=self.role.name,
            opts=pulumi.ResourceOptions(parent=self, depends_on=self.policy_attachments),
        )
        self._materialized[node.name] = self.instance_profile

    def _access_policy(self, node):
        attrs = node.attributes
        pulumi.log.info("looking up default VPC", resource=self)
        self.vpc = aws.ec2.get_vpc(default=True, opts=self._invoke_opts())
        egress = []
        if attrs["allow_all_outbound"]:
            egress.append(aws.ec2.SecurityGroupEgressArgs(
                protocol="-1", from_port=0, to_port=0, cidr_blocks=[ANYWHERE]))
        self.security_group = aws.ec2.SecurityGroup(
            f"{self._prefix}-sg",
            vpc_id=self.vpc.id,
            description="Allow HTTP, HTTPS access to GitLab server",
            ingress=[aws.ec2.SecurityGroupIngressArgs(
                protocol=rule["protocol"],
                from_port=rule["port"],
                to_port=rule["port"],
                cidr_blocks=[rule["cidr"]],
                description=rule["description"],
            ) for rule in attrs["ingress"]],
            egress=egress,
            opts=self._opts(node),
        )
        self._materialized[node.name] = self.security_group

    def _disk(self, node):
        self._disks[node.name] = node.attributes

    def _instance(self, node):
        attrs = node.attributes
        subnets = aws.ec2.get_subnets(
            filters=[
                aws.ec2.GetSubnetsFilterArgs(name="vpc-id", values=[self.vpc.id]),
                aws.ec2.GetSubnetsFilterArgs(name="map-public-ip-on-launch", values=["true"]),
            ],
            opts=self._invoke_opts(),
        )
        if not subnets.ids:
            raise ConfigurationError(f"default VPC {self.vpc.id} has no public subnet")
        ami = aws.ec2.get_ami(
            most_recent=True,
            owners=[UBUNTU_OWNER],
            filters=[aws.ec2.GetAmiFilterArgs(name="name", values=[UBUNTU_IMAGE])],
            opts=self._invoke_opts(),
        )
        pulumi.log.info(f"using image {ami.id} in subnet {subnets.ids[0]}", resource=self)

        root = self._disks[ROOT_VOLUME]
        data = self._disks[DATA_VOLUME]
        self.instance = aws.ec2.Instance(
            f"{self._prefix}-instance",
            ami=ami.id,
            instance_type=attrs["instance_type"],
            subnet_id=subnets.ids[0],
            vpc_security_group_ids=[self.security_group.id],
            iam_instance_profile=self.instance_profile.name,
            user_data=attrs["user_data"],
            root_block_device=aws.ec2.InstanceRootBlockDeviceArgs(
                volume_size=root["size"],
                volume_type=root["volume_type"],
                encrypted=root["encrypted"],
                delete_on_termination=root["delete_on_termination"],
            ),
            ebs_block_devices=[aws.ec2.InstanceEbsBlockDeviceArgs(
                device_name=data["device_name"],
                volume_size=data["size"],
                volume_type=data["volume_type"],
                encrypted=data["encrypted"],
                delete_on_termination=data["delete_on_termination"],
            )],
            tags={"Name": f"{self._prefix}-instance"},
            opts=self._opts(node),
        )
        self._materialized[node.name] = self.instance

    def _address(self, node):
        # allocated on its own so the address is kept when the instance is replaced
        self.eip = aws.ec2.Eip(
            f"{self._prefix}-eip",
            domain=node.attributes["domain"],
            opts=pulumi.ResourceOptions(parent=self),
        )
        self.eip_association = aws.ec2.EipAssociation(
            f"{self._prefix}-eip-association",
            allocation_id=self.eip.allocation_id,
            instance_id=self.instance.id,
            opts=self._opts(node),
        )
