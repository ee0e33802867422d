"""Power Platform connection bootstrap: ensure connections, patch deployment settings."""

from pp_bootstrap.api import BootstrapResult, EnvironmentBootstrapper

__version__ = "0.1.0"

__all__ = ["BootstrapResult", "EnvironmentBootstrapper", "__version__"]
