"""
sourcing_config -- deployment settings for the sourcing workflow.

Responsibility:
    Provides ``load_settings()``, the one way scripts and entry points
    obtain configuration.  Services never read files or the environment;
    they receive the module config objects carried by ``SourcingSettings``.

Architecture position:
    Configuration -- sits above ``sourcing_kernel`` and
    ``sourcing_modules``.  The kernel MUST NEVER import from here.
"""

from sourcing_config.loader import (
    DEFAULT_SETTINGS_PATH,
    compute_checksum,
    load_settings,
    parse_settings,
)
from sourcing_config.schema import DatabaseSettings, LoggingSettings, SourcingSettings

__all__ = [
    "DEFAULT_SETTINGS_PATH",
    "DatabaseSettings",
    "LoggingSettings",
    "SourcingSettings",
    "compute_checksum",
    "load_settings",
    "parse_settings",
]
