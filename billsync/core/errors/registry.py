"""
Error registry: the catalogue of BSY-* codes in ``registry.yaml``.

Each entry decides how a BillSyncError surfaces: HTTP status and safe
message for the billing endpoints, severity for the log line. The file is
validated as a whole on load; a broken registry fails startup.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from billsync.core.errors import CODE_PATTERN

logger = logging.getLogger(__name__)

DEFAULT_REGISTRY_PATH = Path(__file__).with_name("registry.yaml")

# API: HTTP surface, CFG: configuration, DB: local store,
# STR: Stripe, EVT: event reconciliation, SYS: anything else
VALID_DOMAINS = frozenset({"API", "CFG", "DB", "STR", "EVT", "SYS"})
VALID_SEVERITIES = frozenset({"DEBUG", "INFO", "WARN", "ERROR", "CRITICAL"})
REQUIRED_FIELDS = frozenset(
    {"code", "domain", "title", "severity", "retryable", "http_status", "safe_message"}
)


@dataclass(frozen=True)
class ErrorEntry:
    code: str
    domain: str
    title: str
    severity: str
    retryable: bool
    http_status: int
    safe_message: str
    remediation: List[str] = field(default_factory=list)


class RegistryValidationError(Exception):
    """registry.yaml is malformed."""


def _parse_entry(idx: int, raw: Any) -> ErrorEntry:
    if not isinstance(raw, dict):
        raise RegistryValidationError(f"Entry {idx} is not a mapping")

    code = raw.get("code", "?")
    missing = REQUIRED_FIELDS - raw.keys()
    if missing:
        raise RegistryValidationError(f"{code}: missing fields {sorted(missing)}")
    if not CODE_PATTERN.match(code):
        raise RegistryValidationError(f"Invalid code format: {code!r}")

    domain = raw["domain"]
    if domain != code.split("-")[1]:
        raise RegistryValidationError(f"{code}: domain {domain!r} does not match the code")
    if domain not in VALID_DOMAINS:
        raise RegistryValidationError(f"{code}: unknown domain {domain!r}")
    if raw["severity"] not in VALID_SEVERITIES:
        raise RegistryValidationError(f"{code}: unknown severity {raw['severity']!r}")

    http_status = int(raw["http_status"])
    if not 400 <= http_status <= 599:
        raise RegistryValidationError(f"{code}: http_status {http_status} is not an error status")

    return ErrorEntry(
        code=code,
        domain=domain,
        title=raw["title"],
        severity=raw["severity"],
        retryable=bool(raw["retryable"]),
        http_status=http_status,
        safe_message=raw["safe_message"],
        remediation=list(raw.get("remediation") or []),
    )


class ErrorRegistry:
    def __init__(self) -> None:
        self._entries: Dict[str, ErrorEntry] = {}
        self.schema_version: int = 0

    def load(self, path: str | Path | None = None) -> None:
        """(Re)load the registry, replacing the current entries only if the whole file is valid."""
        path = Path(path) if path else DEFAULT_REGISTRY_PATH
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}

        raw_entries = data.get("errors", [])
        if not isinstance(raw_entries, list):
            raise RegistryValidationError("'errors' must be a list")

        entries: Dict[str, ErrorEntry] = {}
        for idx, raw in enumerate(raw_entries):
            entry = _parse_entry(idx, raw)
            if entry.code in entries:
                raise RegistryValidationError(f"Duplicate code: {entry.code}")
            entries[entry.code] = entry

        self._entries = entries
        self.schema_version = int(data.get("schema_version", 0))
        logger.info("error_registry_loaded", extra={"count": len(entries), "path": str(path)})

    def get(self, code: str) -> Optional[ErrorEntry]:
        return self._entries.get(code)

    def lookup(self, code: str) -> ErrorEntry:
        try:
            return self._entries[code]
        except KeyError:
            raise KeyError(f"Unknown error code: {code!r}") from None

    def all_codes(self) -> list[str]:
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)


error_registry = ErrorRegistry()
