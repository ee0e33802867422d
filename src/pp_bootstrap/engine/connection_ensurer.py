"""
Connection Ensurer
==================
Create-if-absent for one connector type in the target environment.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from pp_bootstrap.engine.admin_client import PowerPlatformAdminClient

logger = structlog.get_logger(__name__)


class ConnectionEnsurer:
    """Looks up an existing connection by connector name, creating one when none exists.

    Meant for sequential use: two ensurers racing against the same environment
    can both see "no match" and both create a connection.
    """

    def __init__(self, client: PowerPlatformAdminClient) -> None:
        self.client = client
        # connection_id -> True if it was created during this run
        self.created: dict[str, bool] = {}

    def ensure_connection(
        self,
        connector_name: str,
        friendly_label: str,
        parameters: dict[str, str] | None = None,
    ) -> str:
        """Return the ID of a *connector_name* connection, creating it if absent.

        The first existing match is authoritative and returned untouched.
        *parameters* are only sent when a connection has to be created;
        *friendly_label* is used as its display name and in log output.
        """
        if not connector_name:
            raise ValueError("connector_name must be a non-empty connector identifier")

        matches = [c for c in self.client.list_connections() if c.connector_name == connector_name]
        if matches:
            connection_id = matches[0].connection_id
            logger.info(
                "connection_found",
                label=friendly_label,
                connector=connector_name,
                connection_id=connection_id,
                matches=len(matches),
            )
            self.created.setdefault(connection_id, False)
            return connection_id

        logger.info("connection_missing_creating", label=friendly_label, connector=connector_name)
        connection = self.client.create_connection(connector_name, friendly_label, parameters or {})
        self.created[connection.connection_id] = True
        return connection.connection_id
