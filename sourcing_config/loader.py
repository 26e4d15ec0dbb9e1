"""
Settings Loader (``sourcing_config.loader``).

Responsibility
--------------
Loads a YAML settings file and parses it into a ``SourcingSettings``.
The ``DATABASE_URL`` environment variable, when set, replaces the
configured database URL.

Invariants enforced
-------------------
* Unknown top-level sections are rejected with ``ValueError``; a typo never
  silently falls back to a default.
* Module sections go through each module config's ``from_dict``, so their
  own validation applies.
* ``compute_checksum`` produces a deterministic SHA-256 hash of the parsed
  document for change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown keys  -> ``ValueError`` / ``TypeError`` propagate.
"""

from __future__ import annotations

import hashlib
import json
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml

from sourcing_config.schema import DatabaseSettings, LoggingSettings, SourcingSettings
from sourcing_kernel.logging_config import get_logger
from sourcing_modules.quotation.config import QuotationConfig
from sourcing_modules.requisition.config import RequisitionConfig
from sourcing_modules.rfq.config import RFQConfig

logger = get_logger("config.loader")

DEFAULT_SETTINGS_PATH = Path(__file__).parent / "sets" / "default.yaml"

_SECTIONS = frozenset({"database", "logging", "requisition", "rfq", "quotation"})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a single YAML file.  An empty file yields an empty dict."""
    with open(path) as f:
        return yaml.safe_load(f) or {}


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def parse_settings(data: dict[str, Any], checksum: str = "") -> SourcingSettings:
    unknown = set(data) - _SECTIONS
    if unknown:
        raise ValueError(f"Unknown settings sections: {sorted(unknown)}")
    return SourcingSettings(
        database=DatabaseSettings(**(data.get("database") or {})),
        logging=LoggingSettings(**(data.get("logging") or {})),
        requisition=RequisitionConfig.from_dict(data.get("requisition") or {}),
        rfq=RFQConfig.from_dict(data.get("rfq") or {}),
        quotation=QuotationConfig.from_dict(data.get("quotation") or {}),
        checksum=checksum,
    )


def load_settings(
    path: Path | str | None = None,
    environ: Mapping[str, str] | None = None,
) -> SourcingSettings:
    """
    Read settings from ``path`` (the packaged defaults when omitted).

    ``environ`` defaults to ``os.environ``; ``DATABASE_URL`` in it wins over
    the file.
    """
    source = Path(path) if path is not None else DEFAULT_SETTINGS_PATH
    environ = os.environ if environ is None else environ

    data = load_yaml_file(source)
    checksum = compute_checksum(data)

    override = environ.get("DATABASE_URL")
    if override:
        database = dict(data.get("database") or {})
        database["url"] = override
        data = {**data, "database": database}

    settings = parse_settings(data, checksum=checksum)
    logger.info(
        "settings_loaded",
        extra={
            "path": str(source),
            "checksum": checksum,
            "database_url_overridden": bool(override),
        },
    )
    return settings
