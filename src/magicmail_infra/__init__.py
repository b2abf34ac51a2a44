from magicmail_infra.errors import ConfigurationError
from magicmail_infra.errors import TopologyError
from magicmail_infra.settings import DeploymentTarget
from magicmail_infra.settings import StackSettings

__version__ = "0.1.0"

__all__ = [
    "ConfigurationError",
    "TopologyError",
    "DeploymentTarget",
    "StackSettings",
]
