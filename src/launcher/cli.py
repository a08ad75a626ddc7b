"""cloudxfer command-line entry point.

Root flags are declared once on the Typer callback; every command hands
its logic to :func:`_invoke`, which runs the shared startup sequence in
:class:`~src.launcher.orchestrator.RootOrchestrator` and is the single
place the process exit code is raised.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import uuid
from typing import Optional

import typer

from src.launcher.config import RootOptions
from src.launcher.engine import LocalEngine
from src.launcher.lifecycle import LifecycleManager
from src.launcher.orchestrator import Command, CommandContext, RootOrchestrator
from src.launcher.shutdown import CancellationWatcher
from src.shared.config import LauncherSettings
from src.shared.constants import APP_NAME, VERSION
from src.shared.logging import invocation_id_var, setup_logging

logger = logging.getLogger(__name__)

app = typer.Typer(
    name=APP_NAME,
    help="cloudxfer -- copy data to and from cloud storage.",
    no_args_is_help=True,
    add_completion=False,
    rich_markup_mode="rich",
)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"{APP_NAME} version {VERSION}")
        raise typer.Exit()


@app.callback()
def main_callback(
    ctx: typer.Context,
    cap_mbps: int = typer.Option(
        0,
        "--cap-mbps",
        min=0,
        help=(
            "Caps the transfer rate, in megabits per second. Moment-by-moment "
            "throughput might vary slightly from the cap. If this option is set "
            "to zero, or it is omitted, the throughput isn't capped."
        ),
    ),
    output_type: str = typer.Option(
        "text",
        "--output-type",
        help="Format of the command's output. The choices include: text, json.",
    ),
    cancel_from_stdin: bool = typer.Option(
        False,
        "--cancel-from-stdin",
        hidden=True,
        help="Used by partner tooling to send in `cancel` through stdin to stop a job.",
    ),
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
) -> None:
    """Flags applying to all commands."""
    ctx.obj = RootOptions(
        cap_mbps=cap_mbps,
        output_type=output_type,
        cancel_from_stdin=cancel_from_stdin,
    )


def _invoke(
    ctx: typer.Context,
    command: Command,
    *,
    prefer_auto_tune: bool = False,
    provide_advice: bool = False,
) -> None:
    """Run *command* through the orchestrator and exit with its code."""
    options: RootOptions = ctx.obj or RootOptions()
    settings = LauncherSettings()
    invocation_id_var.set(str(uuid.uuid4()))

    lifecycle = LifecycleManager()
    orchestrator = RootOrchestrator(
        lifecycle,
        LocalEngine(),
        settings,
        configure_logging=functools.partial(
            setup_logging,
            APP_NAME,
            level=settings.log_level,
            log_dir=settings.resolved_log_dir(),
            namespace="src",
        ),
        cancellation=CancellationWatcher(),
    )
    code = asyncio.run(
        orchestrator.run(
            options,
            command,
            prefer_auto_tune=prefer_auto_tune,
            provide_advice=provide_advice,
        )
    )
    raise typer.Exit(code)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def _env_command(context: CommandContext) -> None:
    settings = context.settings
    for name in LauncherSettings.model_fields:
        value = getattr(settings, name)
        context.lifecycle.info(f"CLOUDXFER_{name.upper()}={'' if value is None else value}")
    context.lifecycle.info(f"JOB_PLAN_DIR={settings.resolved_job_plan_dir()}")
    context.lifecycle.info(f"LOG_DIR={settings.resolved_log_dir()}")
    for name, value in context.concurrency.to_dict().items():
        context.lifecycle.info(f"{name.upper()}={'' if value is None else value}")


@app.command("env")
def env(ctx: typer.Context) -> None:
    """Show the environment settings and the resolved worker-pool size."""
    _invoke(ctx, _env_command)


def main() -> None:
    """Console-script entry point."""
    app()


if __name__ == "__main__":
    main()
