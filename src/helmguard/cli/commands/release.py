"""Helm release commands.

This module provides commands that run a Helm action and verify that the
released workloads actually become healthy, failing fast on crash loops
and image pull errors.
"""

from pathlib import Path
from typing import Annotated, TypeVar

import typer
from rich.panel import Panel
from rich.table import Table

from helmguard.config.constants import DEFAULT_CONSTANTS
from helmguard.config.loader import load_config
from helmguard.config.models import ConfigData
from helmguard.infra.k8s import get_cluster_accessor, run_sync
from helmguard.release import (
    ActionKind,
    ReleaseDescriptor,
    ReleaseResult,
    ReleaseStatus,
    ReleaseSupervisor,
)

from .shared import (
    configure_logging,
    confirm_action,
    console,
    print_header,
    with_error_handling,
)

release_app = typer.Typer(
    help="Install, upgrade, roll back and inspect releases with health verification",
    no_args_is_help=True,
)


# ---------------------------------------------------------------------------
# Shared Options
# ---------------------------------------------------------------------------

ReleaseArg = Annotated[
    str | None,
    typer.Argument(help="Release name (default: release.releaseName from config)"),
]
ChartArg = Annotated[
    str | None,
    typer.Argument(help="Chart path or reference (default: release.chartName)"),
]
NamespaceOpt = Annotated[
    str | None,
    typer.Option("--namespace", "-n", help="Kubernetes namespace"),
]
ValuesOpt = Annotated[
    list[str] | None,
    typer.Option("--values", "-f", help="Values file (repeatable, applied in order)"),
]
SetOpt = Annotated[
    list[str] | None,
    typer.Option("--set", help="Set a value, key=value (repeatable)"),
]
SetLiteralOpt = Annotated[
    list[str] | None,
    typer.Option("--set-literal", help="Set a literal string value (repeatable)"),
]
RepoOpt = Annotated[
    str | None,
    typer.Option("--repo", help="Chart repository URL"),
]
VersionOpt = Annotated[
    str | None,
    typer.Option("--version", help="Chart version constraint"),
]
TimeoutOpt = Annotated[
    int | None,
    typer.Option("--timeout", min=1, help="Seconds to wait for the release"),
]
AtomicOpt = Annotated[
    bool | None,
    typer.Option("--atomic/--no-atomic", help="Let helm undo a failed release"),
]
WaitOpt = Annotated[
    bool | None,
    typer.Option("--wait/--no-wait", help="Verify workload health (default: wait)"),
]
CreateNamespaceOpt = Annotated[
    bool | None,
    typer.Option(
        "--create-namespace/--no-create-namespace",
        help="Create the namespace if it does not exist",
    ),
]
HistoryMaxOpt = Annotated[
    int | None,
    typer.Option("--history-max", min=0, help="Revisions helm keeps per release"),
]
ForceOpt = Annotated[
    bool | None,
    typer.Option("--force/--no-force", help="Replace resources instead of patching"),
]
DebugOpt = Annotated[
    bool,
    typer.Option("--debug", help="Show debug logging"),
]
ConfigOpt = Annotated[
    Path | None,
    typer.Option(
        "--config",
        "-c",
        help=f"Config file (default: ./{DEFAULT_CONSTANTS.CONFIG_FILE_NAME} if present)",
    ),
]


# ---------------------------------------------------------------------------
# Helper Functions
# ---------------------------------------------------------------------------


T = TypeVar("T")


def _pick(cli_value: T | None, config_value: T | None, default: T) -> T:
    if cli_value is not None:
        return cli_value
    if config_value is not None:
        return config_value
    return default


def build_descriptor(
    config: ConfigData,
    *,
    release: str | None = None,
    chart: str | None = None,
    namespace: str | None = None,
    values: list[str] | None = None,
    set_values: list[str] | None = None,
    set_literal: list[str] | None = None,
    repo: str | None = None,
    version: str | None = None,
    timeout: int | None = None,
    atomic: bool | None = None,
    wait: bool | None = None,
    create_namespace: bool | None = None,
    history_max: int | None = None,
    force: bool | None = None,
    revision: int = 0,
) -> ReleaseDescriptor:
    """Merge command-line options over the config file's release section.

    List options replace the configured list when given at all.

    Raises:
        ValueError: If no release name is available or a value is invalid
    """
    section = config.release
    name = release or section.release_name
    if not name:
        raise ValueError(
            "A release name is required, as an argument or as "
            f"release.releaseName in {DEFAULT_CONSTANTS.CONFIG_FILE_NAME}"
        )

    return ReleaseDescriptor(
        name=name,
        namespace=_pick(namespace, section.namespace, DEFAULT_CONSTANTS.DEFAULT_NAMESPACE),
        chart=_pick(chart, section.chart_name, ""),
        values_files=tuple(values or section.values),
        set_values=tuple(set_values or section.set_values),
        set_literal_values=tuple(set_literal or section.set_literal),
        repo_url=_pick(repo, section.repo, None),
        version=_pick(version, section.version, None),
        atomic=_pick(atomic, section.atomic, False),
        wait=_pick(wait, section.wait, True),
        timeout=_pick(timeout, section.timeout, DEFAULT_CONSTANTS.DEFAULT_TIMEOUT_SECONDS),
        history_max=_pick(
            history_max, section.history_max, DEFAULT_CONSTANTS.DEFAULT_HISTORY_MAX
        ),
        create_namespace=_pick(create_namespace, section.create_namespace, False),
        force=_pick(force, section.force, False),
        revision=revision,
    )


def _print_result(result: ReleaseResult) -> None:
    table = Table(show_header=False, box=None)
    table.add_column("", style="dim")
    table.add_column("")

    chart = result.chart_name
    if result.chart_version:
        chart = f"{chart}-{result.chart_version}"
    resources = ", ".join(f"{kind}: {count}" for kind, count in result.resources.items())

    table.add_row("Release", result.release)
    table.add_row("Namespace", result.namespace)
    table.add_row("Action", result.action.value)
    table.add_row("Revision", str(result.revision))
    table.add_row("Status", result.status or "unknown")
    table.add_row("Chart", chart or "-")
    table.add_row("Resources", resources or "-")
    table.add_row("Elapsed", f"{result.elapsed:.1f}s")

    console.print()
    console.print(table)
    console.print(f"\n[green]✅ Release {result.release} is healthy[/green]")


def _supervisor(config: ConfigData) -> ReleaseSupervisor:
    return ReleaseSupervisor(
        get_cluster_accessor(),
        settings=config.watch.to_settings(),
    )


def _execute(
    descriptor: ReleaseDescriptor,
    action: ActionKind | None,
    config: ConfigData,
) -> ReleaseResult:
    supervisor = _supervisor(config)
    label = action.value if action else "deploy"
    verb = "Verifying" if descriptor.wait else "Applying"
    with console.status(
        f"[bold cyan]{verb} {label} of {descriptor.name} in {descriptor.namespace}...[/bold cyan]"
    ):
        result = run_sync(supervisor.execute(descriptor, action))
    _print_result(result)
    return result


def _print_status(status: ReleaseStatus) -> None:
    record = status.record
    table = Table(show_header=False, box=None)
    table.add_column("", style="dim")
    table.add_column("")

    chart = record.chart_name
    if record.chart_version:
        chart = f"{chart}-{record.chart_version}"

    table.add_row("Release", record.name)
    table.add_row("Namespace", record.namespace)
    table.add_row("Status", record.status or "unknown")
    table.add_row("Revision", str(record.revision))
    table.add_row("Chart", chart or "-")
    table.add_row("App version", record.app_version or "-")

    console.print()
    console.print(table)
    if record.notes:
        console.print(Panel(record.notes.strip(), title="Notes", border_style="dim"))

    resources = Table(title="Resources")
    resources.add_column("Resource", style="cyan")
    resources.add_column("Ready")
    resources.add_column("Detail")
    for resource in status.readiness.statuses:
        resources.add_row(
            f"{resource.kind.value}/{resource.name}",
            "[green]yes[/green]" if resource.ready else "[red]no[/red]",
            resource.detail,
        )
    console.print()
    console.print(resources)

    if status.ready:
        console.print(f"\n[green]✅ All resources of {record.name} are ready[/green]")
        return

    console.print(f"\n[yellow]⚠️  Some resources of {record.name} are not ready[/yellow]")
    if status.report is not None:
        console.print(Panel(status.report.render(), title="Diagnostics", border_style="yellow"))


def _read_status(release: str, namespace: str, config: ConfigData) -> ReleaseStatus:
    supervisor = _supervisor(config)
    with console.status(
        f"[bold cyan]Reading status of {release} in {namespace}...[/bold cyan]"
    ):
        status = run_sync(supervisor.status(release, namespace))
    _print_status(status)
    return status


def _release_command(
    title: str,
    action: ActionKind | None,
    *,
    debug: bool,
    config_file: Path | None,
    **options: object,
) -> None:
    configure_logging(debug)
    print_header(title)
    config = load_config(config_file)
    descriptor = build_descriptor(config, **options)  # type: ignore[arg-type]
    _execute(descriptor, action, config)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@release_app.command()
@with_error_handling
def deploy(
    release: ReleaseArg = None,
    chart: ChartArg = None,
    namespace: NamespaceOpt = None,
    values: ValuesOpt = None,
    set_values: SetOpt = None,
    set_literal: SetLiteralOpt = None,
    repo: RepoOpt = None,
    version: VersionOpt = None,
    timeout: TimeoutOpt = None,
    atomic: AtomicOpt = None,
    wait: WaitOpt = None,
    create_namespace: CreateNamespaceOpt = None,
    history_max: HistoryMaxOpt = None,
    force: ForceOpt = None,
    debug: DebugOpt = False,
    config_file: ConfigOpt = None,
) -> None:
    """Install the release, or upgrade it if it is already deployed.

    Examples:
        helmguard release deploy web ./charts/web -n prod
        helmguard release deploy                       # everything from helmguard.yaml
    """
    _release_command(
        "Deploying Release",
        None,
        debug=debug,
        config_file=config_file,
        release=release,
        chart=chart,
        namespace=namespace,
        values=values,
        set_values=set_values,
        set_literal=set_literal,
        repo=repo,
        version=version,
        timeout=timeout,
        atomic=atomic,
        wait=wait,
        create_namespace=create_namespace,
        history_max=history_max,
        force=force,
    )


@release_app.command()
@with_error_handling
def install(
    release: ReleaseArg = None,
    chart: ChartArg = None,
    namespace: NamespaceOpt = None,
    values: ValuesOpt = None,
    set_values: SetOpt = None,
    set_literal: SetLiteralOpt = None,
    repo: RepoOpt = None,
    version: VersionOpt = None,
    timeout: TimeoutOpt = None,
    atomic: AtomicOpt = None,
    wait: WaitOpt = None,
    create_namespace: CreateNamespaceOpt = None,
    debug: DebugOpt = False,
    config_file: ConfigOpt = None,
) -> None:
    """Install a chart as a new release and wait for it to become healthy.

    Examples:
        helmguard release install web ./charts/web -n prod --create-namespace
        helmguard release install web nginx --repo https://charts.example.com --version 1.2.3
    """
    _release_command(
        "Installing Release",
        ActionKind.INSTALL,
        debug=debug,
        config_file=config_file,
        release=release,
        chart=chart,
        namespace=namespace,
        values=values,
        set_values=set_values,
        set_literal=set_literal,
        repo=repo,
        version=version,
        timeout=timeout,
        atomic=atomic,
        wait=wait,
        create_namespace=create_namespace,
    )


@release_app.command()
@with_error_handling
def upgrade(
    release: ReleaseArg = None,
    chart: ChartArg = None,
    namespace: NamespaceOpt = None,
    values: ValuesOpt = None,
    set_values: SetOpt = None,
    set_literal: SetLiteralOpt = None,
    repo: RepoOpt = None,
    version: VersionOpt = None,
    timeout: TimeoutOpt = None,
    atomic: AtomicOpt = None,
    wait: WaitOpt = None,
    history_max: HistoryMaxOpt = None,
    force: ForceOpt = None,
    debug: DebugOpt = False,
    config_file: ConfigOpt = None,
) -> None:
    """Upgrade an existing release and wait for it to become healthy.

    Examples:
        helmguard release upgrade web ./charts/web -n prod -f prod.yaml --set image.tag=1.4.0
    """
    _release_command(
        "Upgrading Release",
        ActionKind.UPGRADE,
        debug=debug,
        config_file=config_file,
        release=release,
        chart=chart,
        namespace=namespace,
        values=values,
        set_values=set_values,
        set_literal=set_literal,
        repo=repo,
        version=version,
        timeout=timeout,
        atomic=atomic,
        wait=wait,
        history_max=history_max,
        force=force,
    )


@release_app.command()
@with_error_handling
def rollback(
    release: Annotated[str, typer.Argument(help="Release to roll back")],
    revision: Annotated[
        int,
        typer.Argument(min=0, help="Revision to roll back to (default: previous)"),
    ] = 0,
    namespace: NamespaceOpt = None,
    timeout: TimeoutOpt = None,
    wait: WaitOpt = None,
    history_max: HistoryMaxOpt = None,
    force: ForceOpt = None,
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Skip confirmation prompt"),
    ] = False,
    debug: DebugOpt = False,
    config_file: ConfigOpt = None,
) -> None:
    """Roll a release back to an earlier revision and verify its health.

    Examples:
        helmguard release rollback web -n prod          # Previous revision
        helmguard release rollback web 3 -n prod --yes  # Specific revision
    """
    configure_logging(debug)
    print_header("Rolling Back Release")

    config = load_config(config_file)
    descriptor = build_descriptor(
        config,
        release=release,
        namespace=namespace,
        timeout=timeout,
        wait=wait,
        history_max=history_max,
        force=force,
        revision=revision,
    )

    target = f"revision {revision}" if revision else "the previous revision"
    if not confirm_action(
        f"Roll back {descriptor.name} in {descriptor.namespace} to {target}",
        force=yes,
    ):
        console.print("[dim]Rollback cancelled.[/dim]")
        raise typer.Exit(0)

    _execute(descriptor, ActionKind.ROLLBACK, config)


@release_app.command()
@with_error_handling
def status(
    release: ReleaseArg = None,
    namespace: NamespaceOpt = None,
    debug: DebugOpt = False,
    config_file: ConfigOpt = None,
) -> None:
    """Show a release's helm record and whether its workloads are ready.

    Resources that are not ready are followed by a diagnostic report of the
    release's pods. Nothing is changed and nothing is waited for.

    Examples:
        helmguard release status web -n prod
        helmguard release status                       # release from helmguard.yaml
    """
    configure_logging(debug)
    print_header("Release Status")

    config = load_config(config_file)
    descriptor = build_descriptor(config, release=release, namespace=namespace)
    _read_status(descriptor.name, descriptor.namespace, config)
