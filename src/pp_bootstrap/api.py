"""
Public Python API
==================
High-level facade for bootstrapping an environment from Python code.

Usage::

    from pp_bootstrap import EnvironmentBootstrapper

    bootstrapper = EnvironmentBootstrapper(
        environment_url="https://contoso.crm.dynamics.com",
        tenant_id="<tenant>",
        client_id="<app id>",
        client_secret="<secret>",
    )
    result = bootstrapper.run("deploymentSettings.json")
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from pathlib import Path
from typing import TYPE_CHECKING

import structlog

from pp_bootstrap.config import BootstrapConfig, ConnectionSpec, Credentials
from pp_bootstrap.engine.admin_client import PowerPlatformAdminClient
from pp_bootstrap.engine.connection_ensurer import ConnectionEnsurer
from pp_bootstrap.engine.settings_patcher import DATAVERSE, SHAREPOINT, patch_settings_file
from pp_bootstrap.environment import check_dependencies
from pp_bootstrap.exceptions import AuthError, SettingsFileError

if TYPE_CHECKING:
    from pp_bootstrap.engine.settings_patcher import PatchResult

logger = structlog.get_logger(__name__)


@dataclass
class BootstrapResult:
    """Outcome of one bootstrap run."""

    dataverse_connection_id: str
    sharepoint_connection_id: str
    dataverse_created: bool
    sharepoint_created: bool
    patch: PatchResult


class EnvironmentBootstrapper:
    """
    Runs the bootstrap pipeline: dependency check, authentication, Dataverse
    and SharePoint connection ensure, settings patch.

    Parameters
    ----------
    environment_url, tenant_id, client_id, client_secret : str, optional
        Override the matching values in *config*.
    config : BootstrapConfig or None, optional
        Pre-built config. Defaults come from environment variables.
    client : PowerPlatformAdminClient or None, optional
        Pre-built admin client, mainly for tests.
    """

    def __init__(
        self,
        *,
        environment_url: str | None = None,
        tenant_id: str | None = None,
        client_id: str | None = None,
        client_secret: str | None = None,
        config: BootstrapConfig | None = None,
        client: PowerPlatformAdminClient | None = None,
    ) -> None:
        base = config if config is not None else BootstrapConfig.from_yaml(Path("bootstrap_config.yaml"))
        self._config = base.with_credentials(
            environment_url=environment_url,
            tenant_id=tenant_id,
            client_id=client_id,
            client_secret=client_secret,
        )
        self._client = client

    @property
    def config(self) -> BootstrapConfig:
        return self._config

    @property
    def credentials(self) -> Credentials:
        return self._config.credentials

    def _render_parameters(self, spec: ConnectionSpec) -> dict[str, str]:
        """Substitute the credential placeholders (``{client_id}`` ...) in *spec* parameters.

        Only the known placeholders are replaced; any other braces, such as
        JSON values, pass through untouched.
        """
        values = self.credentials.model_dump()
        rendered: dict[str, str] = {}
        for name, template in spec.parameters.items():
            for key, value in values.items():
                template = template.replace("{" + key + "}", value)
            rendered[name] = template
        return rendered

    def authenticate(self) -> PowerPlatformAdminClient:
        """Check dependencies and return an authenticated admin client."""
        check_dependencies()
        missing = self.credentials.missing_fields()
        if missing:
            raise AuthError("Missing credentials: " + ", ".join(missing))

        if self._client is None:
            self._client = PowerPlatformAdminClient(self.credentials)
        self._client.authenticate()
        return self._client

    def run(self, settings_path: str | Path | None = None) -> BootstrapResult:
        """Ensure both connections exist and patch *settings_path* to use them."""
        path = settings_path or self._config.settings_path
        if path is None:
            raise SettingsFileError("No deployment settings path given")

        connections = self._config.connections
        dataverse_params = self._render_parameters(connections.dataverse)
        sharepoint_params = self._render_parameters(connections.sharepoint)

        client = self.authenticate()
        ensurer = ConnectionEnsurer(client)

        dataverse_id = ensurer.ensure_connection(
            connections.dataverse.connector,
            connections.dataverse.display_name,
            dataverse_params,
        )
        # a failure here leaves the Dataverse connection provisioned
        sharepoint_id = ensurer.ensure_connection(
            connections.sharepoint.connector,
            connections.sharepoint.display_name,
            sharepoint_params,
        )

        patch = patch_settings_file(
            path,
            [
                (replace(DATAVERSE, connector_name=connections.dataverse.connector), dataverse_id),
                (replace(SHAREPOINT, connector_name=connections.sharepoint.connector), sharepoint_id),
            ],
            case_sensitive=self._config.case_sensitive_match,
        )
        logger.info(
            "bootstrap_complete",
            dataverse_connection_id=dataverse_id,
            sharepoint_connection_id=sharepoint_id,
        )
        return BootstrapResult(
            dataverse_connection_id=dataverse_id,
            sharepoint_connection_id=sharepoint_id,
            dataverse_created=ensurer.created.get(dataverse_id, False),
            sharepoint_created=ensurer.created.get(sharepoint_id, False),
            patch=patch,
        )
