class AutoscaleError(Exception):
    """Base class for controller errors."""


class SampleError(AutoscaleError):
    """A load-balancer host could not be resolved, fetched or parsed."""

    def __init__(self, host, message):
        super().__init__(f"{host}: {message}")
        self.host = host


class OrchestratorError(AutoscaleError):
    """The orchestrator rejected or failed a request."""


class ConfigError(AutoscaleError):
    """Invalid configuration, fatal at start-up."""
