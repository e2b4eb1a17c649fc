from .autoscaler import Autoscaler
from .config import AutoscaleOptions, parse_options
from .errors import AutoscaleError, ConfigError, OrchestratorError, SampleError

__version__ = "0.1.0"

__all__ = [
    "Autoscaler",
    "AutoscaleOptions",
    "parse_options",
    "AutoscaleError",
    "ConfigError",
    "OrchestratorError",
    "SampleError",
]
