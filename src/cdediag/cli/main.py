"""Main CLI entry point for cdediag."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING

import click
from rich.console import Console

from cdediag import __version__
from cdediag.core.exceptions import CdeDiagError
from cdediag.core.models import OutputFormat

if TYPE_CHECKING:
    from cdediag.collection.orchestrator import Collector
    from cdediag.core.config import CollectorConfig, LoggingConfig

# Collection output owns stdout; status messages go to stderr
console = Console(stderr=True)


class DiagContext:
    """Shared context for CLI commands with lazy initialization."""

    def __init__(self, config_path: str | None, overrides: dict[str, object]):
        """Initialize context.

        Args:
            config_path: Optional path to a YAML configuration file
            overrides: Values from global CLI options, applied over the file
        """
        self.config_path = config_path
        self.overrides = overrides
        self._config: CollectorConfig | None = None
        self._collector: Collector | None = None

    @property
    def config(self) -> CollectorConfig:
        """Get or create config lazily."""
        if self._config is None:
            from cdediag.core.config import CollectorConfig

            config = (
                CollectorConfig.from_file(self.config_path)
                if self.config_path
                else CollectorConfig()
            )
            o = self.overrides
            if o.get("kubeconfig"):
                config.kubernetes.kubeconfig = str(o["kubeconfig"])
            if o.get("context"):
                config.kubernetes.context = str(o["context"])
            if o.get("in_cluster"):
                config.kubernetes.in_cluster = True
            if o.get("role_arn"):
                config.aws.role_arn = str(o["role_arn"])
            if o.get("profile"):
                config.aws.profile = str(o["profile"])
            if o.get("region"):
                config.aws.region = str(o["region"])
            if o.get("output_format"):
                config.collection.output_format = OutputFormat(o["output_format"])
            if o.get("request_timeout") is not None:
                config.collection.request_timeout = float(o["request_timeout"])  # type: ignore[arg-type]
            self._config = config
        return self._config

    def logging_settings(self) -> LoggingConfig:
        """Logging section of the config file, or the defaults if it cannot be loaded.

        A load failure is reported later, when a command reads the config.
        """
        from cdediag.core.config import LoggingConfig

        try:
            return self.config.logging
        except CdeDiagError:
            return LoggingConfig()

    @property
    def collector(self) -> Collector:
        """Get or create the collector lazily."""
        if self._collector is None:
            from cdediag.collection.orchestrator import Collector

            self._collector = Collector.from_config(self.config)
        return self._collector


@contextmanager
def fatal_errors(ctx: click.Context) -> Iterator[None]:
    """Report fatal cdediag errors on stderr and exit non-zero."""
    from cdediag.utils.logging import get_logger, log_error

    try:
        yield
    except CdeDiagError as e:
        log_error(get_logger(__name__), e, operation=ctx.command.name)
        console.print(f"[red]Error: {e}[/red]")
        ctx.exit(1)


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False),
    envvar="CDEDIAG_CONFIG",
    help="Path to YAML configuration file",
)
@click.option(
    "--kubeconfig",
    type=click.Path(dir_okay=False),
    envvar="KUBECONFIG",
    help="Path to kubeconfig (connection target)",
)
@click.option("--context", "kube_context", help="Kubeconfig context to use")
@click.option("--in-cluster", is_flag=True, help="Use the pod service account as connection target")
@click.option("--role-arn", envvar="CDEDIAG_ROLE_ARN", help="IAM role to assume before collecting")
@click.option("--profile", help="AWS profile holding long-lived credentials")
@click.option("--region", help="AWS region")
@click.option(
    "--format",
    "output_format",
    type=click.Choice([f.value for f in OutputFormat]),
    help="Rendering of cluster resource listings",
)
@click.option("--request-timeout", type=float, help="Timeout for each external call (seconds)")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Log level (overrides the config file, default WARNING)",
)
@click.option(
    "--log-format",
    type=click.Choice(["console", "json"]),
    help="Log format (overrides the config file, default console)",
)
@click.pass_context
def cli(
    ctx: click.Context,
    config_path: str | None,
    kubeconfig: str | None,
    kube_context: str | None,
    in_cluster: bool,
    role_arn: str | None,
    profile: str | None,
    region: str | None,
    output_format: str | None,
    request_timeout: float | None,
    log_level: str | None,
    log_format: str | None,
) -> None:
    """CDE Diagnostic Collector (cdediag) - collect cluster, cloud and virtual cluster state."""
    from cdediag.utils.logging import setup_logging

    ctx.obj = DiagContext(
        config_path=config_path,
        overrides={
            "kubeconfig": kubeconfig,
            "context": kube_context,
            "in_cluster": in_cluster,
            "role_arn": role_arn,
            "profile": profile,
            "region": region,
            "output_format": output_format,
            "request_timeout": request_timeout,
        },
    )

    settings = ctx.obj.logging_settings()
    setup_logging(
        level=log_level or settings.level,
        format=log_format or settings.format,
        output=settings.output,
    )


@cli.command()
@click.option(
    "--cluster-descriptor",
    type=click.Path(dir_okay=False),
    help="Service descriptor JSON/YAML (enables cloud sections)",
)
@click.option("--output-dir", type=click.Path(file_okay=False), help="Write status.out here")
@click.pass_context
def status(ctx: click.Context, cluster_descriptor: str | None, output_dir: str | None) -> None:
    """Collect a structured status snapshot."""
    from pathlib import Path

    with fatal_errors(ctx):
        report = ctx.obj.collector.status(cluster_descriptor)
        text = report.render()
        if output_dir:
            path = Path(output_dir)
            path.mkdir(parents=True, exist_ok=True)
            (path / "status.out").write_text(text)
            console.print(f"[green]✓ Status written to {path / 'status.out'}[/green]")
        else:
            click.echo(text, nl=False)


@cli.command()
@click.option("--output-dir", type=click.Path(file_okay=False), help="Write one file per container")
@click.pass_context
def logs(ctx: click.Context, output_dir: str | None) -> None:
    """Collect logs of every container in system and virtual cluster namespaces."""
    with fatal_errors(ctx):
        summary = ctx.obj.collector.logs(output_dir=output_dir, stream=click.get_text_stream("stdout"))
        color = "green" if summary.failures == 0 else "yellow"
        console.print(
            f"[{color}]Collected {summary.units} container logs "
            f"({summary.failures} failures)[/{color}]"
        )


@cli.command()
@click.option(
    "--cluster-descriptor",
    type=click.Path(dir_okay=False),
    help="Service descriptor JSON/YAML (enables cloud sections)",
)
@click.option(
    "--destination",
    type=click.Path(file_okay=False),
    default=".",
    show_default=True,
    help="Directory receiving the archive",
)
@click.pass_context
def bundle(ctx: click.Context, cluster_descriptor: str | None, destination: str) -> None:
    """Collect status and logs into a single .tar.gz bundle."""
    from cdediag.bundle.packager import BundlePackager

    with fatal_errors(ctx):
        archive = BundlePackager(ctx.obj.collector).collect_bundle(
            destination, descriptor_path=cluster_descriptor
        )
        console.print("[bold green]✓ Bundle created[/bold green]")
        click.echo(str(archive))


@cli.command()
@click.argument("kind")
@click.option("-n", "--namespace", default="default", show_default=True)
@click.option("-l", "--selector", help="Label selector")
@click.pass_context
def get(ctx: click.Context, kind: str, namespace: str, selector: str | None) -> None:
    """Run a single cluster resource query."""
    from cdediag.collection.formatting import render_listing
    from cdediag.interfaces.query_types import Err

    with fatal_errors(ctx):
        collector = ctx.obj.collector
        collector.ensure_session()
        result = collector.cluster_client.query_cluster_resource(namespace, kind, selector)
        if isinstance(result, Err):
            console.print(f"[red]Error: {result.message}[/red]")
            ctx.exit(1)
        click.echo(render_listing(result.value, ctx.obj.config.collection.output_format))


@cli.command()
@click.pass_context
def tenants(ctx: click.Context) -> None:
    """List discovered virtual cluster namespaces."""
    from cdediag.collection.discovery import discover_tenants

    with fatal_errors(ctx):
        collector = ctx.obj.collector
        collector.ensure_session()
        found = discover_tenants(
            collector.cluster_client, ctx.obj.config.collection.tenant_pattern
        )
        if not found:
            console.print("[yellow]No virtual cluster namespaces found[/yellow]")
        for name in found:
            click.echo(name)


@cli.command()
@click.option("--refresh", is_flag=True, help="Discard the cached session first")
@click.pass_context
def auth(ctx: click.Context, refresh: bool) -> None:
    """Ensure a valid temporary session for the configured role."""
    from cdediag.utils.credential_cache import CredentialCache

    with fatal_errors(ctx):
        config = ctx.obj.config
        if not config.aws.role_arn:
            console.print("[yellow]No role configured; ambient credentials are used[/yellow]")
            return

        cache = CredentialCache.from_config(config)
        if refresh:
            cache.clear()
        credentials = cache.ensure_valid_session(config.aws.role_arn)
        console.print(f"[green]✓ Session valid for {config.aws.role_arn}[/green]")
        expiration = credentials.expiration.isoformat() if credentials else "n/a"
        click.echo(f"expiration: {expiration}")


if __name__ == "__main__":
    cli()
