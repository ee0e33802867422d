"""
CLI Entry Point
================
Command-line interface for the Power Platform connection bootstrap.
"""

from __future__ import annotations

import sys
from pathlib import Path

import click
import structlog
from rich.console import Console
from rich.table import Table

from pp_bootstrap.api import EnvironmentBootstrapper
from pp_bootstrap.config import BootstrapConfig, LogLevel, load_config
from pp_bootstrap.engine.settings_patcher import patch_settings
from pp_bootstrap.exceptions import BootstrapError
from pp_bootstrap.logging_config import setup_logging

console = Console()
logger = structlog.get_logger(__name__)


def _fail(message: str, exc: Exception) -> None:
    logger.error("bootstrap_failed", error_type=type(exc).__name__, error=str(exc))
    console.print(f"[red]{message}:[/red] {exc}")
    sys.exit(1)


def _patch_table(patched: list[tuple[str, str]], untouched: list[str]) -> Table:
    table = Table(title="Connection References")
    table.add_column("Logical Name", style="cyan")
    table.add_column("Status")
    table.add_column("Connector")
    for name, connector in patched:
        table.add_row(name, "[green]patched[/green]", connector)
    for name in untouched:
        table.add_row(name, "[yellow]unchanged[/yellow]", "-")
    return table


def _credential_options(func):
    options = [
        click.option(
            "--environment-url",
            "-e",
            envvar="PP_ENVIRONMENT_URL",
            default=None,
            help="Environment name/GUID or Dataverse instance URL",
        ),
        click.option("--tenant-id", envvar="AZURE_TENANT_ID", default=None, help="Azure AD tenant ID"),
        click.option("--client-id", envvar="AZURE_CLIENT_ID", default=None, help="Azure AD client/app ID"),
        click.option(
            "--client-secret",
            envvar="AZURE_CLIENT_SECRET",
            default=None,
            help="Azure AD client secret",
        ),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def _resolve_config(ctx: click.Context, **credentials: str | None) -> BootstrapConfig:
    config: BootstrapConfig = ctx.obj["config"].with_credentials(**credentials)
    missing = config.credentials.missing_fields()
    if missing:
        flags = ", ".join("--" + name.replace("_", "-") for name in missing)
        raise click.UsageError(f"Missing required option(s): {flags}")
    return config


@click.group()
@click.option("--config", "-c", type=click.Path(exists=False), default="bootstrap_config.yaml", help="Config file path")
@click.option("--log-level", type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"]), default=None)
@click.option("--log-format", type=click.Choice(["console", "json"]), default="console")
@click.pass_context
def main(ctx: click.Context, config: str, log_level: str | None, log_format: str) -> None:
    """Power Platform connection bootstrap - ensure connections and patch deployment settings."""
    cfg = load_config(Path(config))
    if log_level:
        cfg.log_level = LogLevel(log_level)
    setup_logging(level=cfg.log_level.value, log_format=log_format)
    ctx.ensure_object(dict)
    ctx.obj["config"] = cfg


@main.command()
@click.argument("deployment_settings_path", type=click.Path(dir_okay=False))
@_credential_options
@click.pass_context
def bootstrap(
    ctx: click.Context,
    deployment_settings_path: str,
    environment_url: str | None,
    tenant_id: str | None,
    client_id: str | None,
    client_secret: str | None,
) -> None:
    """Ensure the Dataverse and SharePoint connections exist, then patch DEPLOYMENT_SETTINGS_PATH."""
    config = _resolve_config(
        ctx,
        environment_url=environment_url,
        tenant_id=tenant_id,
        client_id=client_id,
        client_secret=client_secret,
    )
    bootstrapper = EnvironmentBootstrapper(config=config)

    console.print(f"[bold]Bootstrapping environment:[/bold] {config.credentials.environment_url}\n")
    try:
        result = bootstrapper.run(Path(deployment_settings_path))
    except BootstrapError as exc:
        _fail("Bootstrap failed", exc)
        return

    table = Table(title="Connections")
    table.add_column("Connector", style="cyan")
    table.add_column("Connection ID")
    table.add_column("Status")
    for connector, connection_id, created in (
        (config.connections.dataverse.connector, result.dataverse_connection_id, result.dataverse_created),
        (config.connections.sharepoint.connector, result.sharepoint_connection_id, result.sharepoint_created),
    ):
        status = "[green]created[/green]" if created else "[blue]existing[/blue]"
        table.add_row(connector, connection_id, status)

    console.print(table)
    console.print(_patch_table(result.patch.patched, result.patch.untouched))
    console.print(
        f"\n[bold]Summary:[/bold] {len(result.patch.patched)} reference(s) patched, "
        f"{len(result.patch.untouched)} unchanged in {deployment_settings_path}"
    )


@main.command("list-connections")
@click.option("--connector", default=None, help="Only show connections of this connector (e.g. shared_sharepointonline)")
@_credential_options
@click.pass_context
def list_connections(
    ctx: click.Context,
    connector: str | None,
    environment_url: str | None,
    tenant_id: str | None,
    client_id: str | None,
    client_secret: str | None,
) -> None:
    """List the connections in the target environment."""
    config = _resolve_config(
        ctx,
        environment_url=environment_url,
        tenant_id=tenant_id,
        client_id=client_id,
        client_secret=client_secret,
    )
    bootstrapper = EnvironmentBootstrapper(config=config)

    console.print("Authenticating to Power Platform...")
    try:
        client = bootstrapper.authenticate()
        connections = client.list_connections()
    except BootstrapError as exc:
        _fail("Listing connections failed", exc)
        return

    if connector:
        connections = [c for c in connections if c.connector_name == connector]

    table = Table(title=f"Connections in {client.environment_name}")
    table.add_column("Connector", style="cyan")
    table.add_column("Connection ID")
    table.add_column("Display Name")
    for c in connections:
        table.add_row(c.connector_name, c.connection_id, c.display_name)

    console.print(table)
    console.print(f"\n[bold]Total:[/bold] {len(connections)}")


@main.command("patch-settings")
@click.argument("deployment_settings_path", type=click.Path(dir_okay=False))
@click.option("--dataverse-id", required=True, help="Dataverse connection ID")
@click.option("--sharepoint-id", required=True, help="SharePoint connection ID")
@click.pass_context
def patch_settings_cmd(
    ctx: click.Context,
    deployment_settings_path: str,
    dataverse_id: str,
    sharepoint_id: str,
) -> None:
    """Patch DEPLOYMENT_SETTINGS_PATH with known connection IDs, without calling any API."""
    config: BootstrapConfig = ctx.obj["config"]
    try:
        result = patch_settings(
            deployment_settings_path,
            dataverse_id,
            sharepoint_id,
            case_sensitive=config.case_sensitive_match,
        )
    except BootstrapError as exc:
        _fail("Patching settings failed", exc)
        return

    console.print(_patch_table(result.patched, result.untouched))


if __name__ == "__main__":
    main()
