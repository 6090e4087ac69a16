"""
inspection_config -- single public entrypoint for deployment configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  No kernel component reads configuration
    files or environment variables directly.

Architecture position:
    Configuration -- sits above ``inspection_kernel``.  The kernel MUST NEVER
    import from ``inspection_config``; ``inspection_config.bridges``
    translates the configuration into kernel policy value objects.

Invariants enforced:
    - Single entrypoint: all runtime config flows through ``get_active_config()``.
    - Validation before use: every problem is reported in one ``ValueError``.
    - Deterministic identity: the same effective settings always produce the
      same checksum.

Failure modes:
    - ``FileNotFoundError`` -- the named configuration file does not exist.
    - ``yaml.YAMLError`` -- malformed YAML.
    - ``ValueError`` -- validation failures.

Audit relevance:
    Every successful call emits an ``INSPECTION_CONFIG_TRACE`` log entry with
    config id, version and checksum, tying kernel behavior to the exact
    configuration that governed it.  The bootstrap code is never logged.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from inspection_config.loader import load_yaml_file, parse_config
from inspection_config.schema import KernelConfig
from inspection_config.validator import validate_configuration

_logger = logging.getLogger("inspection_kernel.config")

CONFIG_ENV_VAR = "INSPECTION_KERNEL_CONFIG"
DATABASE_URL_ENV_VAR = "DATABASE_URL"

_DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"


def get_active_config(config_path: Path | str | None = None) -> KernelConfig:
    """The ONLY public configuration entrypoint.

    Resolution order for the file: ``config_path``, then the
    ``INSPECTION_KERNEL_CONFIG`` environment variable, then the packaged
    ``defaults.yaml``.  ``DATABASE_URL`` replaces ``database.url``.

    Raises:
        FileNotFoundError: the configuration file does not exist.
        ValueError: the configuration fails validation.
    """
    path = Path(config_path or os.environ.get(CONFIG_ENV_VAR) or _DEFAULT_CONFIG_PATH)
    data = load_yaml_file(path)

    database_url = os.environ.get(DATABASE_URL_ENV_VAR)
    if database_url:
        data = {**data, "database": {**(data.get("database") or {}), "url": database_url}}

    config = parse_config(data, source=str(path))

    validation = validate_configuration(config)
    if not validation.is_valid:
        raise ValueError(
            f"Configuration validation failed ({path}):\n"
            + "\n".join(f"  - {e}" for e in validation.errors)
        )
    for warning in validation.warnings:
        _logger.warning("config_warning", extra={"warning": warning, "source": str(path)})

    _logger.info(
        "INSPECTION_CONFIG_TRACE",
        extra={"trace_type": "INSPECTION_CONFIG_TRACE", **config.summary()},
    )
    return config


__all__ = [
    "KernelConfig",
    "get_active_config",
]
