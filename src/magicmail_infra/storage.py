import pulumi
import pulumi_aws as aws

from magicmail_infra.settings import StackSettings
from magicmail_infra.topology import ResourceKind
from magicmail_infra.topology import ResourceNode
from magicmail_infra.topology import Topology

ASSETS = "assets"


def plan_storage(settings: StackSettings) -> Topology:
    retain = settings.is_production
    return Topology([
        ResourceNode(ResourceKind.BUCKET, ASSETS, {
            "versioned": True,
            "sse_algorithm": "AES256",
            "block_public_access": True,
            "removal_policy": "retain" if retain else "destroy",
            # only safe to empty the bucket on teardown outside prod
            "auto_delete_objects": not retain,
            "tags": {"Project": settings.project, "Environment": settings.environment},
        }),
    ])


class StorageUnit(pulumi.ComponentResource):
    """Versioned, encrypted and private bucket for MagicMail assets
    (design files, mockups).

    Outputs are exported as ``{project}-{environment}-AssetsBucketName``
    and ``{project}-{environment}-AssetsBucketArn``.
    """

    def __init__(self, name, environment, project, opts=None):
        # raises ConfigurationError before anything is registered with the engine
        self.settings = StackSettings(environment=environment, project=project)
        self.topology = plan_storage(self.settings)
        super().__init__("magicmail:storage:StorageUnit", name, None, opts)

        attrs = self.topology[ASSETS].attributes
        retain = attrs["removal_policy"] == "retain"
        child = pulumi.ResourceOptions(parent=self, retain_on_delete=retain)
        if retain:
            pulumi.log.info(f"{self.settings.environment}: assets bucket is retained on teardown",
                            resource=self)
        else:
            pulumi.log.warn(f"{self.settings.environment}: assets bucket and its objects "
                            "are deleted on teardown", resource=self)

        self.bucket = aws.s3.BucketV2(
            f"{name}-bucket",
            force_destroy=attrs["auto_delete_objects"],
            tags=attrs["tags"],
            opts=child,
        )
        self.versioning = aws.s3.BucketVersioningV2(
            f"{name}-versioning",
            bucket=self.bucket.id,
            versioning_configuration=aws.s3.BucketVersioningV2VersioningConfigurationArgs(
                status="Enabled" if attrs["versioned"] else "Suspended",
            ),
            opts=child,
        )
        self.encryption = aws.s3.BucketServerSideEncryptionConfigurationV2(
            f"{name}-encryption",
            bucket=self.bucket.id,
            rules=[aws.s3.BucketServerSideEncryptionConfigurationV2RuleArgs(
                apply_server_side_encryption_by_default=aws.s3.BucketServerSideEncryptionConfigurationV2RuleApplyServerSideEncryptionByDefaultArgs(
                    sse_algorithm=attrs["sse_algorithm"],
                ),
            )],
            opts=child,
        )
        block = attrs["block_public_access"]
        self.public_access_block = aws.s3.BucketPublicAccessBlock(
            f"{name}-public-access-block",
            bucket=self.bucket.id,
            block_public_acls=block,
            block_public_policy=block,
            ignore_public_acls=block,
            restrict_public_buckets=block,
            opts=child,
        )

        self.bucket_name = self.bucket.bucket
        self.bucket_arn = self.bucket.arn
        self.exports = {
            self.settings.export_name("AssetsBucketName"): self.bucket_name,
            self.settings.export_name("AssetsBucketArn"): self.bucket_arn,
        }
        self.register_outputs({
            "bucket_name": self.bucket_name,
            "bucket_arn": self.bucket_arn,
        })
