"""Test configuration and shared fixtures."""

import json
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from pp_bootstrap.config import BootstrapConfig, Credentials


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep real credentials in the developer's shell out of the tests."""
    for var in (
        "PP_ENVIRONMENT_URL",
        "AZURE_TENANT_ID",
        "AZURE_CLIENT_ID",
        "AZURE_CLIENT_SECRET",
        "PP_DEPLOYMENT_SETTINGS_PATH",
        "LOG_LEVEL",
    ):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def credentials() -> Credentials:
    return Credentials(
        environment_url="Default-tenant-0000",
        tenant_id="tenant-0000",
        client_id="client-1111",
        client_secret="s3cret",
    )


@pytest.fixture
def default_config(credentials: Credentials) -> BootstrapConfig:
    return BootstrapConfig(credentials=credentials)


@pytest.fixture
def fake_credential() -> MagicMock:
    """Stand-in for an azure-identity credential."""
    credential = MagicMock()
    credential.get_token.side_effect = lambda scope: MagicMock(token=f"token-for-{scope}")
    return credential


@pytest.fixture
def settings_document() -> dict:
    return {
        "EnvironmentVariables": [{"SchemaName": "new_SiteUrl", "Value": "https://contoso.sharepoint.com"}],
        "ConnectionReferences": [
            {"LogicalName": "new_dataverse", "ConnectionId": "OLD", "ConnectorId": "OLD"},
            {"LogicalName": "new_sharepointsite", "ConnectionId": "OLD", "ConnectorId": "OLD"},
            {"LogicalName": "new_other", "ConnectionId": "KEEP", "ConnectorId": "KEEP"},
        ],
    }


@pytest.fixture
def settings_file(tmp_path: Path, settings_document: dict) -> Path:
    path = tmp_path / "deploymentSettings.json"
    path.write_text(json.dumps(settings_document), encoding="utf-8")
    return path


def _make_response(status_code: int = 200, body: dict | None = None, text: str = "") -> MagicMock:
    resp = MagicMock(status_code=status_code)
    payload = body if body is not None else {}
    resp.json.return_value = payload
    resp.text = text or json.dumps(payload)
    resp.content = resp.text.encode("utf-8")
    return resp


def _connection_record(connector: str, connection_id: str, display_name: str = "") -> dict:
    return {
        "name": connection_id,
        "properties": {
            "apiId": f"/providers/Microsoft.PowerApps/apis/{connector}",
            "displayName": display_name or connection_id,
        },
    }


@pytest.fixture
def make_response():
    """Factory for requests.Response-like mocks."""
    return _make_response


@pytest.fixture
def connection_record():
    """Factory for connection records as returned by the admin connections endpoint."""
    return _connection_record
