import pulumi
import pulumi_aws as aws

from magicmail_infra.compute import ComputeUnit
from magicmail_infra.settings import APP_TAGS
from magicmail_infra.settings import DeploymentTarget
from magicmail_infra.settings import StackSettings
from magicmail_infra.storage import StorageUnit


def deployment_provider(target: DeploymentTarget, tags=APP_TAGS) -> aws.Provider:
    return aws.Provider(
        "deployment",
        region=target.region,
        allowed_account_ids=[target.account] if target.account else None,
        # resource level tags (e.g. the bucket's Project) take precedence over these
        default_tags=aws.ProviderDefaultTagsArgs(tags=dict(tags)),
    )


def compose(target: DeploymentTarget, settings: StackSettings):
    """Declare both units against one deployment target and export their outputs."""
    provider = deployment_provider(target)
    opts = pulumi.ResourceOptions(providers=[provider])

    storage = StorageUnit("magicmail-assets", settings.environment, settings.project, opts=opts)
    compute = ComputeUnit("gitlab-server", opts=opts)

    for name, value in {**storage.exports, **compute.exports}.items():
        pulumi.export(name, value)
    return storage, compute
