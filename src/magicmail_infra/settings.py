import os
from dataclasses import dataclass
from typing import Mapping, Optional

import pulumi

from magicmail_infra.errors import ConfigurationError

# environment value that switches the bucket to "retain on teardown"
PRODUCTION = "prod"

# applied to every taggable resource through the provider's default tags
APP_TAGS = {"Project": "MagicMailBook"}


@dataclass(frozen=True)
class DeploymentTarget:
    """Account and region every resource is deployed into.

    Built once in the entry point and handed to ``compose``; nothing below
    the entry point reads the process environment.
    """
    account: Optional[str] = None
    region: Optional[str] = None

    @classmethod
    def from_environ(cls, environ: Mapping[str, str] = os.environ,
                     default_region: Optional[str] = None) -> "DeploymentTarget":
        account = environ.get("AWS_ACCOUNT_ID") or None
        # default_region is the stack's aws:region, which an explicit provider would not read itself
        region = (environ.get("AWS_REGION") or environ.get("AWS_DEFAULT_REGION")
                  or default_region or None)
        return cls(account=account, region=region)


@dataclass(frozen=True)
class StackSettings:
    environment: str
    project: str

    def __post_init__(self):
        missing = [name for name in ("environment", "project")
                   if not (getattr(self, name) or "").strip()]
        if missing:
            raise ConfigurationError(
                "Stack config {} must be set in Pulumi.<stack>.yaml or via "
                "`pulumi config set`".format(" and ".join(repr(m) for m in missing)))

    @property
    def is_production(self) -> bool:
        return self.environment == PRODUCTION

    def export_name(self, field: str) -> str:
        # qualified so parallel deployments of other environments don't collide
        return f"{self.project}-{self.environment}-{field}"

    @classmethod
    def from_config(cls, config: Optional[pulumi.Config] = None) -> "StackSettings":
        config = config if config is not None else pulumi.Config()
        return cls(environment=config.get("environment"),
                   project=config.get("project"))
