"""
Environment setup check.

The administrative client libraries are declared dependencies, so nothing is
installed at runtime. This only fails fast, before authentication, when an
installation is broken or incomplete.
"""

from __future__ import annotations

import importlib.util

import structlog

from pp_bootstrap.exceptions import SetupError

logger = structlog.get_logger(__name__)

# import name -> distribution name on the package index
REQUIRED_MODULES: dict[str, str] = {
    "azure.identity": "azure-identity",
    "requests": "requests",
}


def _is_importable(module: str) -> bool:
    try:
        return importlib.util.find_spec(module) is not None
    except ModuleNotFoundError:
        # find_spec raises when a parent package ("azure") is itself missing
        return False


def check_dependencies(modules: dict[str, str] | None = None) -> None:
    """Raise ``SetupError`` if any required client library cannot be imported."""
    required = REQUIRED_MODULES if modules is None else modules
    missing = [dist for mod, dist in required.items() if not _is_importable(mod)]
    if missing:
        logger.error("dependencies_missing", missing=missing)
        raise SetupError(
            "Required client libraries are not installed: "
            + ", ".join(missing)
            + ". Install them with: pip install " + " ".join(missing)
        )
    logger.debug("dependencies_ok", modules=list(required))
