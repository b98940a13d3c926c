"""
trialflow_config -- single public entrypoint for runtime configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  No other component reads configuration files
    or the ``TRIALFLOW_CONFIG`` environment variable directly.

Architecture position:
    Configuration.  Sits above ``trialflow_kernel`` and beside
    ``trialflow_services`` / ``trialflow_batch``.  The kernel MUST NEVER
    import from ``trialflow_config``; ``bridges`` translates the loaded
    configuration into kernel policy objects.

Failure modes:
    - ``FileNotFoundError`` -- the configured file does not exist.
    - ``yaml.YAMLError`` -- the file is not valid YAML.
    - ``ValueError`` -- unknown sections or invalid values.

Audit relevance:
    Every successful ``get_active_config()`` call logs ``config_loaded``
    with the source path and the SHA-256 checksum of the parsed document.
"""

from __future__ import annotations

import os
from pathlib import Path

from trialflow_config.loader import load_yaml_file, parse_config
from trialflow_config.schema import TrialflowConfig
from trialflow_kernel.logging_config import get_logger

_logger = get_logger("config")

CONFIG_ENV_VAR = "TRIALFLOW_CONFIG"
DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"


def get_active_config(path: Path | str | None = None) -> TrialflowConfig:
    """The ONLY public configuration entrypoint.

    Resolution order: ``path`` argument, then ``$TRIALFLOW_CONFIG``, then
    the packaged ``defaults.yaml``.
    """
    source = Path(path or os.environ.get(CONFIG_ENV_VAR) or DEFAULT_CONFIG_PATH)
    config = parse_config(load_yaml_file(source), source=str(source))
    _logger.info(
        "config_loaded",
        extra={"source": str(source), "checksum": config.checksum},
    )
    return config


__all__ = [
    "CONFIG_ENV_VAR",
    "DEFAULT_CONFIG_PATH",
    "TrialflowConfig",
    "get_active_config",
]
