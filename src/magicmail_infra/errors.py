import pulumi


class ConfigurationError(pulumi.RunError):
    """Raised when required stack configuration is missing or empty.

    Subclassing RunError lets the pulumi CLI print the message
    without a python traceback and exit non-zero.
    """


class TopologyError(ValueError):
    pass
