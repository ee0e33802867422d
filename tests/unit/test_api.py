"""
Unit tests for the EnvironmentBootstrapper facade.
The admin client is mocked; the settings file is real.
"""

import json
from pathlib import Path
from unittest.mock import MagicMock, call, patch

import pytest

from pp_bootstrap.api import EnvironmentBootstrapper
from pp_bootstrap.config import BootstrapConfig, ConnectionSpec, Credentials
from pp_bootstrap.engine.admin_client import Connection
from pp_bootstrap.exceptions import AuthError, ConnectionCreateError, SettingsFileError

DATAVERSE = "shared_commondataserviceforapps"
SHAREPOINT = "shared_sharepointonline"


def _mock_client(existing: list[Connection]) -> MagicMock:
    client = MagicMock()
    client.list_connections.return_value = existing
    client.create_connection.side_effect = lambda name, label, params: Connection(name, f"new-{name}", label, params)
    return client


class TestConstruction:
    @pytest.mark.unit
    def test_keyword_overrides(self, default_config: BootstrapConfig) -> None:
        bootstrapper = EnvironmentBootstrapper(config=default_config, environment_url="Other-env")
        assert bootstrapper.credentials.environment_url == "Other-env"
        assert bootstrapper.credentials.tenant_id == "tenant-0000"

    @pytest.mark.unit
    def test_defaults_from_env(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("AZURE_TENANT_ID", "env-tenant")
        bootstrapper = EnvironmentBootstrapper()
        assert bootstrapper.credentials.tenant_id == "env-tenant"
        assert isinstance(bootstrapper.config, BootstrapConfig)


class TestRun:
    @pytest.mark.unit
    def test_existing_connections_patch_file(self, default_config, settings_file: Path) -> None:
        client = _mock_client([Connection(DATAVERSE, "dv-1"), Connection(SHAREPOINT, "sp-1")])
        bootstrapper = EnvironmentBootstrapper(config=default_config, client=client)

        result = bootstrapper.run(settings_file)

        client.authenticate.assert_called_once()
        client.create_connection.assert_not_called()
        assert result.dataverse_connection_id == "dv-1"
        assert result.sharepoint_connection_id == "sp-1"
        assert not result.dataverse_created
        assert not result.sharepoint_created

        refs = json.loads(settings_file.read_text(encoding="utf-8"))["ConnectionReferences"]
        assert refs[0]["ConnectionId"].endswith(f"{DATAVERSE}/connections/dv-1")
        assert refs[1]["ConnectionId"].endswith(f"{SHAREPOINT}/connections/sp-1")

    @pytest.mark.unit
    def test_missing_connections_created_with_rendered_parameters(self, default_config, settings_file: Path) -> None:
        client = _mock_client([])
        bootstrapper = EnvironmentBootstrapper(config=default_config, client=client)

        result = bootstrapper.run(settings_file)

        assert client.create_connection.call_args_list == [
            call(
                DATAVERSE,
                "Dataverse (service principal)",
                {
                    "token:grantType": "client_credentials",
                    "token:clientId": "client-1111",
                    "token:clientSecret": "s3cret",
                    "token:TenantId": "tenant-0000",
                },
            ),
            call(SHAREPOINT, "SharePoint Online", {}),
        ]
        assert result.dataverse_created and result.sharepoint_created
        assert result.patch.patched == [("new_dataverse", DATAVERSE), ("new_sharepointsite", SHAREPOINT)]

    @pytest.mark.unit
    def test_order_dataverse_before_sharepoint(self, default_config, settings_file: Path) -> None:
        client = _mock_client([])
        EnvironmentBootstrapper(config=default_config, client=client).run(settings_file)

        created = [c.args[0] for c in client.create_connection.call_args_list]
        assert created == [DATAVERSE, SHAREPOINT]

    @pytest.mark.unit
    def test_sharepoint_failure_keeps_dataverse_and_leaves_file(self, default_config, settings_file: Path) -> None:
        client = _mock_client([])

        def create(name, label, params):
            if name == SHAREPOINT:
                raise ConnectionCreateError("HTTP 400")
            return Connection(name, "dv-new", label, params)

        client.create_connection.side_effect = create
        before = settings_file.read_text(encoding="utf-8")

        with pytest.raises(ConnectionCreateError):
            EnvironmentBootstrapper(config=default_config, client=client).run(settings_file)

        assert client.create_connection.call_count == 2
        assert settings_file.read_text(encoding="utf-8") == before

    @pytest.mark.unit
    def test_auth_failure_stops_before_connections(self, default_config, settings_file: Path) -> None:
        client = _mock_client([])
        client.authenticate.side_effect = AuthError("bad secret")

        with pytest.raises(AuthError):
            EnvironmentBootstrapper(config=default_config, client=client).run(settings_file)
        client.list_connections.assert_not_called()

    @pytest.mark.unit
    def test_missing_credentials(self, settings_file: Path) -> None:
        config = BootstrapConfig(credentials=Credentials(environment_url="env"))
        client = _mock_client([])

        with pytest.raises(AuthError, match="tenant_id"):
            EnvironmentBootstrapper(config=config, client=client).run(settings_file)
        client.authenticate.assert_not_called()

    @pytest.mark.unit
    def test_no_settings_path(self, default_config) -> None:
        with pytest.raises(SettingsFileError):
            EnvironmentBootstrapper(config=default_config, client=_mock_client([])).run()

    @pytest.mark.unit
    def test_settings_path_from_config(self, default_config, settings_file: Path) -> None:
        config = default_config.model_copy(update={"settings_path": settings_file})
        client = _mock_client([Connection(DATAVERSE, "dv-1"), Connection(SHAREPOINT, "sp-1")])

        result = EnvironmentBootstrapper(config=config, client=client).run()
        assert result.patch.path == settings_file

    @pytest.mark.unit
    def test_custom_connector_used_for_patch(self, default_config, tmp_path: Path) -> None:
        config = default_config.model_copy(deep=True)
        config.connections.sharepoint = ConnectionSpec(connector="shared_onedriveforbusiness", display_name="OneDrive")
        path = tmp_path / "s.json"
        path.write_text(json.dumps({"ConnectionReferences": [{"LogicalName": "new_sharepoint"}]}), encoding="utf-8")
        client = _mock_client([Connection(DATAVERSE, "dv-1")])

        EnvironmentBootstrapper(config=config, client=client).run(path)

        ref = json.loads(path.read_text(encoding="utf-8"))["ConnectionReferences"][0]
        assert ref["ConnectorId"] == "/providers/Microsoft.PowerApps/apis/shared_onedriveforbusiness"

    @pytest.mark.unit
    def test_builds_admin_client_when_none_given(self, default_config) -> None:
        with patch("pp_bootstrap.api.PowerPlatformAdminClient") as client_cls:
            client = EnvironmentBootstrapper(config=default_config).authenticate()

        client_cls.assert_called_once_with(default_config.credentials)
        assert client is client_cls.return_value
        client.authenticate.assert_called_once()

    @pytest.mark.unit
    def test_literal_braces_in_parameters_pass_through(self, default_config, settings_file: Path) -> None:
        config = default_config.model_copy(deep=True)
        config.connections.sharepoint = ConnectionSpec(
            connector=SHAREPOINT,
            display_name="SharePoint Online",
            parameters={"json": '{"siteUrl": "x"}', "owner": "{client_id}@{tenant_id}", "other": "{unknown}"},
        )
        client = _mock_client([Connection(DATAVERSE, "dv-1")])

        EnvironmentBootstrapper(config=config, client=client).run(settings_file)

        client.create_connection.assert_called_once_with(
            SHAREPOINT,
            "SharePoint Online",
            {"json": '{"siteUrl": "x"}', "owner": "client-1111@tenant-0000", "other": "{unknown}"},
        )
