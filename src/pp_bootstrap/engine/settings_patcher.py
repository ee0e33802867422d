"""
Settings Patcher
================
Points the connection references of a deployment-settings file at ensured
connections.

Expected document shape::

    {
      "ConnectionReferences": [
        {"LogicalName": "...", "ConnectionId": "...", "ConnectorId": "..."},
        ...
      ],
      ...
    }

Only ``ConnectionId`` and ``ConnectorId`` of matching entries change. Entry
order, unmatched entries and every other field round-trip unchanged.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path

import structlog

from pp_bootstrap.config import DATAVERSE_CONNECTOR, SHAREPOINT_CONNECTOR
from pp_bootstrap.exceptions import SettingsFileError, SettingsParseError

logger = structlog.get_logger(__name__)

API_PATH_PREFIX = "/providers/Microsoft.PowerApps/apis"
REFERENCES_KEY = "ConnectionReferences"


@dataclass(frozen=True)
class ConnectorDomain:
    """Maps a logical-name keyword to the connector it refers to."""

    keyword: str
    connector_name: str
    label: str

    @property
    def connector_id(self) -> str:
        return f"{API_PATH_PREFIX}/{self.connector_name}"

    def connection_uri(self, connection_id: str) -> str:
        return f"{self.connector_id}/connections/{connection_id}"

    def matches(self, logical_name: str, *, case_sensitive: bool = True) -> bool:
        if case_sensitive:
            return self.keyword in logical_name
        return self.keyword.casefold() in logical_name.casefold()


DATAVERSE = ConnectorDomain("dataverse", DATAVERSE_CONNECTOR, "Dataverse")
SHAREPOINT = ConnectorDomain("sharepoint", SHAREPOINT_CONNECTOR, "SharePoint")

# Priority order: a name containing both keywords is treated as Dataverse.
DEFAULT_DOMAINS: tuple[ConnectorDomain, ...] = (DATAVERSE, SHAREPOINT)


@dataclass
class PatchResult:
    """Which references were patched, in document order."""

    path: Path | None = None
    patched: list[tuple[str, str]] = field(default_factory=list)  # (logical name, connector)
    untouched: list[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.patched) + len(self.untouched)


def patch_connection_references(
    document: dict,
    resolved: list[tuple[ConnectorDomain, str]],
    *,
    case_sensitive: bool = True,
) -> PatchResult:
    """Patch *document* in place.

    *resolved* pairs each domain with its connection ID, in priority order;
    the first domain whose keyword appears in an entry's ``LogicalName`` wins.
    """
    if not isinstance(document, dict) or not isinstance(document.get(REFERENCES_KEY), list):
        raise SettingsParseError(f"Settings document has no '{REFERENCES_KEY}' list")

    result = PatchResult()
    for entry in document[REFERENCES_KEY]:
        logical_name = entry.get("LogicalName") if isinstance(entry, dict) else None
        if not isinstance(logical_name, str):
            result.untouched.append(str(logical_name))
            continue

        for domain, connection_id in resolved:
            if domain.matches(logical_name, case_sensitive=case_sensitive):
                entry["ConnectionId"] = domain.connection_uri(connection_id)
                entry["ConnectorId"] = domain.connector_id
                result.patched.append((logical_name, domain.connector_name))
                logger.debug("reference_patched", logical_name=logical_name, connector=domain.connector_name)
                break
        else:
            result.untouched.append(logical_name)

    return result


def read_settings(path: Path) -> dict:
    """Read and parse the settings file. Raises on I/O or parse failure."""
    try:
        text = path.read_text(encoding="utf-8-sig")
    except (OSError, UnicodeDecodeError) as exc:
        raise SettingsFileError(f"Cannot read deployment settings {path}: {exc}") from exc

    try:
        document = json.loads(text)
    except json.JSONDecodeError as exc:
        raise SettingsParseError(f"Deployment settings {path} is not valid JSON: {exc}") from exc

    if not isinstance(document, dict) or not isinstance(document.get(REFERENCES_KEY), list):
        raise SettingsParseError(f"Deployment settings {path} has no '{REFERENCES_KEY}' list")
    return document


def write_settings(path: Path, document: dict) -> None:
    try:
        path.write_text(json.dumps(document, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")
    except OSError as exc:
        raise SettingsFileError(f"Cannot write deployment settings {path}: {exc}") from exc


def patch_settings(
    path: str | Path,
    dataverse_connection_id: str,
    sharepoint_connection_id: str,
    *,
    case_sensitive: bool = True,
) -> PatchResult:
    """Rewrite the settings file at *path* to reference the given Dataverse and SharePoint connections."""
    return patch_settings_file(
        path,
        [(DATAVERSE, dataverse_connection_id), (SHAREPOINT, sharepoint_connection_id)],
        case_sensitive=case_sensitive,
    )


def patch_settings_file(
    path: str | Path,
    resolved: list[tuple[ConnectorDomain, str]],
    *,
    case_sensitive: bool = True,
) -> PatchResult:
    """Read, patch and rewrite *path*.

    Nothing is written when the file cannot be read or parsed.
    """
    path = Path(path)
    document = read_settings(path)

    result = patch_connection_references(document, resolved, case_sensitive=case_sensitive)
    result.path = path

    write_settings(path, document)
    logger.info(
        "settings_patched",
        path=str(path),
        patched=len(result.patched),
        untouched=len(result.untouched),
    )
    return result
