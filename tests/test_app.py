"""Tests for composing both units."""

import pulumi

from magicmail_infra.app import compose
from magicmail_infra.settings import DeploymentTarget
from magicmail_infra.settings import StackSettings


class TestCompose:
    """Tests for compose."""

    @pulumi.runtime.test
    def test_exports_every_output(self):
        storage, compute = compose(DeploymentTarget(region="us-east-1"),
                                   StackSettings(environment="staging", project="MagicMailBook"))
        assert sorted({**storage.exports, **compute.exports}) == [
            "GitLabInstanceId",
            "GitLabInstancePublicIp",
            "MagicMailBook-staging-AssetsBucketArn",
            "MagicMailBook-staging-AssetsBucketName",
            "SsmCommand",
        ]

        def check(args):
            bucket_name, ssm_command = args
            assert bucket_name
            assert ssm_command.startswith("aws ssm start-session --target ")

        return pulumi.Output.all(storage.bucket_name, compute.ssm_command).apply(check)
