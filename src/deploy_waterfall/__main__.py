"""CLI Runner for the deployment waterfall tool.

Usage:
    deploy-waterfall subscription --subscription-id <id> --deployment-name main --output cli
    deploy-waterfall resource-group --subscription-id <id> --resource-group rg-app \\
        --deployment-name main --output trace --output-file trace.json
"""

import logging
import sys
import traceback
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.logging import RichHandler

from deploy_waterfall import __version__
from deploy_waterfall.config import Settings, get_settings
from deploy_waterfall.models import DeploymentHandle
from deploy_waterfall.services import (
    ArmDeploymentSource,
    AzureCliTokenProvider,
    DeploymentSequencer,
    TraceExporter,
    TreeDrawer,
)
from deploy_waterfall.utils.time_utils import format_duration

console = Console()

EXIT_FAILURE = -1


def setup_logging(verbose: bool, settings: Settings) -> None:
    """Send log records to stderr through rich."""
    level = logging.DEBUG if verbose else settings.log_level.upper()
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def build_source(tenant_id: Optional[str], settings: Settings) -> ArmDeploymentSource:
    """Create an ARM source authenticated through the Azure CLI."""
    token_provider = AzureCliTokenProvider(tenant_id=tenant_id, resource=settings.token_resource)
    return ArmDeploymentSource(token_provider, settings=settings)


def output_options(func):
    """Options shared by the subscription and resource-group commands."""
    func = click.option(
        "--output-file", default=None, type=click.Path(dir_okay=False),
        help="File to write the trace JSON to (trace output only)",
    )(func)
    func = click.option(
        "--output", "output", required=True, type=click.Choice(["cli", "trace"]),
        help="cli: ASCII waterfall, trace: Jaeger JSON",
    )(func)
    return func


@click.group()
@click.version_option(version=__version__)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def cli(verbose: bool):
    """Azure deployment waterfall.

    Rebuild the timeline of a nested ARM deployment and render it as a tree
    or as a Jaeger trace.
    """
    setup_logging(verbose, get_settings())


@cli.command("subscription")
@click.option("--tenant-id", default=None, type=click.UUID, help="Azure AD tenant")
@click.option("--subscription-id", required=True, type=click.UUID, help="Subscription id")
@click.option("--deployment-name", required=True, help="Root deployment name")
@output_options
def subscription_deployment(tenant_id, subscription_id, deployment_name: str,
                            output: str, output_file: Optional[str]):
    """Sequence a subscription scoped deployment."""
    handle = DeploymentHandle(
        subscription_id=str(subscription_id),
        deployment_name=deployment_name,
    )
    run_waterfall(handle, tenant_id, output, output_file)


@cli.command("resource-group")
@click.option("--tenant-id", default=None, type=click.UUID, help="Azure AD tenant")
@click.option("--subscription-id", required=True, type=click.UUID, help="Subscription id")
@click.option("--resource-group", required=True, help="Resource group of the deployment")
@click.option("--deployment-name", required=True, help="Root deployment name")
@output_options
def resource_group_deployment(tenant_id, subscription_id, resource_group: str,
                              deployment_name: str, output: str, output_file: Optional[str]):
    """Sequence a resource group scoped deployment."""
    handle = DeploymentHandle(
        subscription_id=str(subscription_id),
        deployment_name=deployment_name,
        resource_group=resource_group,
    )
    run_waterfall(handle, tenant_id, output, output_file)


def run_waterfall(handle: DeploymentHandle, tenant_id, output: str,
                  output_file: Optional[str]) -> None:
    """Build the tree for a deployment and write it in the requested format.

    Any failure prints the message and traceback to stdout and exits with -1.
    """
    settings = get_settings()
    try:
        with build_source(str(tenant_id) if tenant_id else None, settings) as source:
            tree = DeploymentSequencer().build_tree(source, handle)

        if output == "cli":
            click.echo(TreeDrawer().draw(tree), nl=False)
            return

        document = TraceExporter(settings.portal_deployment_url).to_json(tree)
        if output_file:
            Path(output_file).write_text(document, encoding="utf-8")
            console.print(f"[green]Trace saved to:[/green] {output_file}")
            console.print(f"  Duration: {format_duration(tree.duration.total_seconds())}")
        else:
            click.echo(document)
    except Exception as e:
        console.print(str(e), markup=False)
        console.print(traceback.format_exc(), markup=False)
        sys.exit(EXIT_FAILURE)


if __name__ == "__main__":
    cli()
