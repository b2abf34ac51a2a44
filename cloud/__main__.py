import pulumi

from magicmail_infra.app import compose
from magicmail_infra.settings import DeploymentTarget
from magicmail_infra.settings import StackSettings

# stack config is checked before anything is declared
settings = StackSettings.from_config(pulumi.Config())

# the only place the process environment is read
target = DeploymentTarget.from_environ(default_region=pulumi.Config("aws").get("region"))

compose(target, settings)
