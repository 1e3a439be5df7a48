"""ingressbridge CLI - Command line interface."""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import signal
import sys

import click
import structlog
import yaml
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ingressbridge.core.config import BridgeConfig, get_config, set_config
from ingressbridge.core.exceptions import BridgeError, format_error_for_user

console = Console()
err_console = Console(stderr=True)


def _configure_logging(level: str, as_json: bool) -> None:
    """Route structlog events to stderr so rendered manifests stay clean."""
    renderer = (
        structlog.processors.JSONRenderer()
        if as_json
        else structlog.dev.ConsoleRenderer(colors=err_console.is_terminal)
    )
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, level.upper())),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
    )


def _show_error(error: BaseException) -> None:
    if isinstance(error, BridgeError):
        err_console.print(Panel(f"[red]{error.message}[/red]", title=f"Error: {error.code}"))
    else:
        err_console.print(f"[red]{format_error_for_user(error)}[/red]")


@click.group(invoke_without_command=True)
@click.option(
    "--config", "-c",
    "config_file",
    type=click.Path(exists=True, dir_okay=False),
    help="Path to YAML or TOML config file",
)
@click.option(
    "--log-level",
    type=click.Choice(["debug", "info", "warning", "error"]),
    default=None,
    help="Log level (default: info, or INGRESSBRIDGE_LOG_LEVEL)",
)
@click.option("--log-json/--no-log-json", default=None, help="Emit log events as JSON lines")
@click.pass_context
def main(ctx: click.Context, config_file: str | None, log_level: str | None, log_json: bool | None):
    """Translate Kubernetes Ingresses into Gateway API HTTPRoutes.

    Settings come from INGRESSBRIDGE_* environment variables, an optional
    config file, and command line flags, in increasing order of priority.
    """
    overrides = {"log_level": log_level, "log_json": log_json}
    try:
        if config_file:
            cfg = BridgeConfig.from_file(config_file, **overrides)
        else:
            cfg = BridgeConfig(**{k: v for k, v in overrides.items() if v is not None})
    except Exception as e:
        err_console.print(f"[red]Failed to load config: {e}[/red]")
        sys.exit(1)

    set_config(cfg)
    _configure_logging(cfg.log_level, cfg.log_json)

    if ctx.invoked_subcommand is None:
        console.print("Usage: ingressbridge run", style="yellow")
        console.print("       ingressbridge render -f ingress.yaml -f gateways.yaml", style="yellow")
        console.print("\nCommands:", style="bold")
        console.print("  ingressbridge run      Run the controller against a cluster", style="dim")
        console.print("  ingressbridge render   Print HTTPRoutes for local manifests", style="dim")
        console.print("  ingressbridge config   Show configuration", style="dim")
        console.print("  ingressbridge version  Show version information", style="dim")


@main.command()
@click.option("--kubeconfig", type=click.Path(exists=True, dir_okay=False), help="Path to kubeconfig")
@click.option("--context", "kube_context", help="Kubeconfig context to use")
@click.option("--namespace", "-n", default=None, help="Only watch this namespace (default: all)")
@click.option("--workers", "-w", type=int, default=None, help="Concurrent reconcile workers")
@click.option(
    "--require-hostname/--allow-catch-all",
    default=None,
    help="Skip Ingresses that only have a default backend",
)
@click.option(
    "--cross-namespace/--same-namespace",
    default=None,
    help="Honour backend namespaces other than the Ingress namespace",
)
def run(
    kubeconfig: str | None,
    kube_context: str | None,
    namespace: str | None,
    workers: int | None,
    require_hostname: bool | None,
    cross_namespace: bool | None,
):
    """Run the controller against a cluster.

    Uses the in-cluster service account when available, otherwise the
    kubeconfig. Stops cleanly on Ctrl+C or SIGTERM.

    Examples:

        ingressbridge run

        ingressbridge run -n shop --require-hostname
    """
    from ingressbridge.controller import Controller
    from ingressbridge.store import KubernetesStore, load_kubernetes_config

    updates = {
        "watch_namespace": namespace,
        "workers": workers,
        "require_hostname": require_hostname,
        "cross_namespace": cross_namespace,
    }
    cfg = get_config().model_copy(update={k: v for k, v in updates.items() if v is not None})
    if cfg.workers < 1:
        err_console.print("[red]--workers must be at least 1[/red]")
        sys.exit(1)
    set_config(cfg)

    try:
        load_kubernetes_config(kubeconfig, kube_context)
    except Exception as e:
        err_console.print(f"[red]Cannot load Kubernetes configuration:[/red] {e}")
        sys.exit(1)

    controller = Controller(KubernetesStore(request_timeout=cfg.request_timeout), cfg)
    console.print(
        f"[bold]Watching[/bold] {cfg.watch_namespace or 'all namespaces'} "
        f"with {cfg.workers} workers"
    )
    asyncio.run(_run_controller(controller))


async def _run_controller(controller) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, controller.stop)
    await controller.run()


@main.command()
@click.option(
    "--filename", "-f",
    "files",
    multiple=True,
    required=True,
    type=click.Path(exists=True, dir_okay=False),
    help="Manifest file (repeatable)",
)
@click.option(
    "--output", "-o",
    type=click.Choice(["yaml", "json"]),
    default="yaml",
    help="Output format",
)
def render(files: tuple[str, ...], output: str):
    """Print the HTTPRoutes generated for local manifests.

    Reads Ingresses, Gateways, Services and existing HTTPRoutes from the
    given files and runs the same reconciliation as the controller, without
    talking to a cluster.

    Examples:

        ingressbridge render -f ingress.yaml -f gateways.yaml

        ingressbridge render -f all.yaml -o json
    """
    try:
        manifests, failures = asyncio.run(_render_async(files, get_config()))
    except BridgeError as e:
        _show_error(e)
        sys.exit(1)

    if output == "json":
        click.echo(json.dumps({"apiVersion": "v1", "kind": "List", "items": manifests}, indent=2))
    elif manifests:
        click.echo(yaml.safe_dump_all(manifests, sort_keys=False), nl=False)

    for key, error in failures:
        err_console.print(f"[yellow]Skipped Ingress {key}:[/yellow] {format_error_for_user(error)}")
    if failures:
        sys.exit(1)


async def _render_async(files, cfg: BridgeConfig):
    """Reconcile every Ingress in ``files``; return route manifests and failures."""
    from ingressbridge.reconcile import ApplyResult, IngressReconciler
    from ingressbridge.store import ManifestStore

    store = ManifestStore.from_files(files)
    reconciler = IngressReconciler(store, cfg)

    manifests = []
    failures: list[tuple[str, BridgeError]] = []
    for ingress in await store.list_ingresses():
        try:
            report = await reconciler.reconcile(ingress.namespace, ingress.name)
        except BridgeError as e:
            failures.append((ingress.key, e))
            continue
        for name, result in report.results.items():
            if result is ApplyResult.SKIPPED:
                continue
            manifest = (await store.get_route(ingress.namespace, name)).to_manifest()
            manifest["metadata"].pop("resourceVersion", None)
            manifests.append(manifest)
    return manifests, failures


@main.command()
def version():
    """Show version information."""
    from ingressbridge import __version__

    console.print(f"[bold]Version:[/bold] {__version__}")
    console.print(f"[bold]Python:[/bold] {sys.version}")


@main.group()
def config():
    """View configuration settings.

    All settings can be configured via environment variables with the
    INGRESSBRIDGE_ prefix. Use these commands to see current values.

    Examples:

        ingressbridge config show            # Show all config settings

        ingressbridge config show --json     # Machine-readable output
    """
    pass


@config.command("show")
@click.option("--json", "json_output", is_flag=True, help="Output as JSON")
@click.option("--section", "-s", help="Show only specific section (synthesis, controller, logging)")
def config_show(json_output: bool, section: str | None):
    """Show current configuration settings.

    Values come from environment variables, the config file or defaults.
    """
    cfg = get_config()
    display = cfg.to_display_dict()

    if section:
        section = section.lower()
        if section not in display:
            console.print(f"[red]Unknown section:[/red] {section}")
            console.print(f"[dim]Available: {', '.join(display.keys())}[/dim]")
            sys.exit(1)
        display = {section: display[section]}

    if json_output:
        click.echo(json.dumps(display, indent=2))
        return

    console.print("[bold]Current Configuration[/bold]\n")

    for section_name, settings in display.items():
        table = Table(title=section_name.replace("_", " ").title())
        table.add_column("Setting", style="cyan")
        table.add_column("Value", style="green")
        table.add_column("Env Variable", style="dim")

        for key, value in settings.items():
            env_var = f"INGRESSBRIDGE_{key.upper()}"
            value_str = str(value) if value is not None else "[dim]None[/dim]"
            table.add_row(key, value_str, env_var)

        console.print(table)
        console.print()


if __name__ == "__main__":
    main()
