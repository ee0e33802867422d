"""
Power Platform Admin Client
============================
Authenticated session against a Power Platform environment, used to list and
create connections as a service principal.

API References:
  - List connections (admin):
    GET  /providers/Microsoft.PowerApps/scopes/admin/environments/{env}/connections
  - Create connection:
    PUT  /providers/Microsoft.PowerApps/apis/{connector}/connections/{connectionId}
  - List environments (BAP, used to resolve instance URLs):
    GET  /providers/Microsoft.BusinessAppPlatform/scopes/admin/environments
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING
from urllib.parse import urlparse

import requests
import structlog

from pp_bootstrap.exceptions import AuthError, ConnectionCreateError, ConnectionLookupError

if TYPE_CHECKING:
    from pp_bootstrap.config import Credentials

logger = structlog.get_logger(__name__)

POWERAPPS_API_BASE = "https://api.powerapps.com/providers/Microsoft.PowerApps"
POWERAPPS_SCOPE = "https://service.powerapps.com/.default"
POWERAPPS_API_VERSION = "2016-11-01"

BAP_API_BASE = "https://api.bap.microsoft.com/providers/Microsoft.BusinessAppPlatform"
BAP_SCOPE = "https://api.bap.microsoft.com/.default"
BAP_API_VERSION = "2021-04-01"

REQUEST_TIMEOUT = 60


@dataclass
class Connection:
    """A connection of one connector type inside an environment."""

    connector_name: str
    connection_id: str
    display_name: str = ""
    parameters: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_api(cls, record: dict) -> Connection:
        props = record.get("properties", {})
        api_id = props.get("apiId", "")
        return cls(
            connector_name=api_id.rstrip("/").rsplit("/", 1)[-1],
            connection_id=record.get("name", ""),
            display_name=props.get("displayName", ""),
        )


def _error_detail(resp: requests.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text[:300]
    if isinstance(body, dict) and isinstance(body.get("error"), dict):
        return body["error"].get("message", str(body))
    return str(body)[:300]


def _json_object(resp: requests.Response, error_cls: type[Exception], what: str) -> dict:
    """Parse a 2xx body that must be a JSON object, raising *error_cls* otherwise."""
    try:
        body = resp.json()
    except ValueError as exc:
        logger.error("unexpected_response_body", what=what, status=resp.status_code, body=resp.text[:300])
        raise error_cls(f"Unexpected non-JSON response for {what}: HTTP {resp.status_code}: {resp.text[:300]}") from exc
    if not isinstance(body, dict):
        raise error_cls(f"Unexpected response for {what}: expected a JSON object, got {type(body).__name__}")
    return body


def _looks_like_url(value: str) -> bool:
    return urlparse(value).scheme in ("http", "https")


class PowerPlatformAdminClient:
    """
    Explicit session object for the Power Apps administrative API.

    ``authenticate()`` must be called before any other method. The
    ``credential`` argument lets callers (and tests) supply any object with an
    azure-identity ``get_token(scope)`` method instead of building a
    ``ClientSecretCredential`` from *credentials*.
    """

    def __init__(
        self,
        credentials: Credentials,
        *,
        credential: object | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self.credentials = credentials
        self._credential = credential
        self._session = session or requests.Session()
        self._tokens: dict[str, str] = {}
        self._environment_name: str | None = None

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------

    def authenticate(self) -> None:
        """Acquire a Power Apps token for the service principal.

        Raises ``AuthError`` on any credential or token failure.
        """
        if self._credential is None:
            from azure.identity import ClientSecretCredential

            self._credential = ClientSecretCredential(
                tenant_id=self.credentials.tenant_id,
                client_id=self.credentials.client_id,
                client_secret=self.credentials.client_secret,
            )
            logger.info("using_service_principal", client_id=self.credentials.client_id)

        self._tokens.clear()
        self._token(POWERAPPS_SCOPE)
        logger.info("powerapps_auth_success", scope=POWERAPPS_SCOPE)

    @property
    def is_authenticated(self) -> bool:
        return POWERAPPS_SCOPE in self._tokens

    def _token(self, scope: str) -> str:
        if self._credential is None:
            raise AuthError("Not authenticated. Call authenticate() first.")
        if scope not in self._tokens:
            try:
                self._tokens[scope] = self._credential.get_token(scope).token  # type: ignore[attr-defined]
            except Exception as exc:
                logger.error("token_request_failed", scope=scope, error=str(exc))
                raise AuthError(f"Could not acquire a token for {scope}: {exc}") from exc
        return self._tokens[scope]

    def _headers(self, scope: str = POWERAPPS_SCOPE) -> dict[str, str]:
        if not self.is_authenticated:
            raise AuthError("Not authenticated. Call authenticate() first.")
        return {
            "Authorization": f"Bearer {self._token(scope)}",
            "Accept": "application/json",
            "Content-Type": "application/json",
        }

    # ------------------------------------------------------------------
    # API helpers
    # ------------------------------------------------------------------

    def _api_call(
        self,
        method: str,
        url: str,
        *,
        scope: str = POWERAPPS_SCOPE,
        params: dict | None = None,
        json_body: dict | None = None,
    ) -> requests.Response:
        """Make a single API call. Transport errors propagate as ``requests`` exceptions."""
        return self._session.request(
            method,
            url,
            headers=self._headers(scope),
            params=params,
            json=json_body,
            timeout=REQUEST_TIMEOUT,
        )

    def _get_paged(self, url: str, *, scope: str, params: dict, error_cls: type[Exception], what: str) -> list[dict]:
        records: list[dict] = []
        next_url: str | None = url
        next_params: dict | None = params
        while next_url:
            try:
                resp = self._api_call("GET", next_url, scope=scope, params=next_params)
            except requests.RequestException as exc:
                raise error_cls(f"Request to list {what} failed: {exc}") from exc
            if resp.status_code != 200:
                logger.error("list_error", what=what, status=resp.status_code, body=resp.text[:300])
                raise error_cls(f"Failed to list {what}: HTTP {resp.status_code}: {_error_detail(resp)}")
            data = _json_object(resp, error_cls, what)
            page = data.get("value", [])
            if not isinstance(page, list):
                raise error_cls(f"Unexpected response for {what}: 'value' is not a list")
            records.extend(page)
            # nextLink already carries the query string
            next_url = data.get("nextLink")
            next_params = None
        return records

    # ------------------------------------------------------------------
    # Environment resolution
    # ------------------------------------------------------------------

    @property
    def environment_name(self) -> str:
        """Environment name/GUID, resolving an instance URL on first use."""
        if self._environment_name is None:
            target = self.credentials.environment_url
            self._environment_name = self._resolve_environment(target) if _looks_like_url(target) else target
        return self._environment_name

    def list_environments(self) -> list[dict]:
        return self._get_paged(
            f"{BAP_API_BASE}/scopes/admin/environments",
            scope=BAP_SCOPE,
            params={"api-version": BAP_API_VERSION},
            error_cls=ConnectionLookupError,
            what="environments",
        )

    def _resolve_environment(self, instance_url: str) -> str:
        wanted = urlparse(instance_url).netloc.lower()
        for env in self.list_environments():
            linked = env.get("properties", {}).get("linkedEnvironmentMetadata", {}) or {}
            if urlparse(linked.get("instanceUrl", "")).netloc.lower() == wanted:
                logger.info("environment_resolved", instance_url=instance_url, environment=env["name"])
                return env["name"]
        raise ConnectionLookupError(f"No Power Platform environment is linked to {instance_url}")

    # ------------------------------------------------------------------
    # Connections
    # ------------------------------------------------------------------

    def list_connections(self) -> list[Connection]:
        """Return every connection in the target environment."""
        env = self.environment_name
        records = self._get_paged(
            f"{POWERAPPS_API_BASE}/scopes/admin/environments/{env}/connections",
            scope=POWERAPPS_SCOPE,
            params={"api-version": POWERAPPS_API_VERSION},
            error_cls=ConnectionLookupError,
            what="connections",
        )
        connections = [Connection.from_api(r) for r in records]
        logger.info("connections_listed", environment=env, count=len(connections))
        return connections

    def create_connection(
        self,
        connector_name: str,
        display_name: str,
        parameters: dict[str, str] | None = None,
    ) -> Connection:
        """Create a connection of *connector_name* and return it with its new ID."""
        env = self.environment_name
        connection_id = str(uuid.uuid4())
        body: dict = {
            "properties": {
                "environment": {
                    "id": f"/providers/Microsoft.PowerApps/environments/{env}",
                    "name": env,
                },
                "displayName": display_name,
            }
        }
        if parameters:
            body["properties"]["connectionParameters"] = dict(parameters)

        url = f"{POWERAPPS_API_BASE}/apis/{connector_name}/connections/{connection_id}"
        params = {"api-version": POWERAPPS_API_VERSION, "$filter": f"environment eq '{env}'"}
        try:
            resp = self._api_call("PUT", url, params=params, json_body=body)
        except requests.RequestException as exc:
            raise ConnectionCreateError(f"Request to create {connector_name} connection failed: {exc}") from exc

        if resp.status_code not in (200, 201):
            logger.error(
                "connection_create_failed",
                connector=connector_name,
                status=resp.status_code,
                body=resp.text[:300],
            )
            raise ConnectionCreateError(
                f"Failed to create {connector_name} connection: HTTP {resp.status_code}: {_error_detail(resp)}"
            )

        record = _json_object(resp, ConnectionCreateError, f"{connector_name} connection") if resp.content else {}
        created = Connection(
            connector_name=connector_name,
            connection_id=record.get("name") or connection_id,
            display_name=display_name,
            parameters=dict(parameters or {}),
        )
        logger.info("connection_created", connector=connector_name, connection_id=created.connection_id)
        return created
