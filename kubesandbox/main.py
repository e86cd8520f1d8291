#!/usr/bin/env python3
"""
kubesandbox - Main Entry Point

Command line with three sub-commands:
- run: provisions a sandbox project and runs the test binaries inside it
- serve: the executor server that runs inside the project
- clean-after-delay: deletes the project after some time, also inside the project
"""

import logging
import os
import re
import signal
from typing import List, Optional

import click

from kubesandbox.errors import SandboxError
from kubesandbox.logging_config import configure_logging
from kubesandbox.modules.cleaner import Cleaner
from kubesandbox.modules.executor import DEFAULT_LISTEN, ExecutorServer
from kubesandbox.modules.session import Runner, RunnerBuilder, RunSummary

logger = logging.getLogger("kubesandbox.main")

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|s|m|h)")
_DURATION_UNITS = {"ms": 0.001, "s": 1, "m": 60, "h": 3600}


class Duration(click.ParamType):
    """Durations like '90s', '1m' or '1h30m'. Plain numbers are seconds."""

    name = "duration"

    def convert(self, value, param, ctx):
        if isinstance(value, (int, float)):
            return float(value)
        text = value.strip()
        if re.fullmatch(r"\d+(\.\d+)?", text):
            return float(text)
        total = 0.0
        position = 0
        for match in _DURATION_PART.finditer(text):
            if match.start() != position:
                break
            total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
            position = match.end()
        if position == 0 or position != len(text):
            self.fail(f"'{value}' isn't a valid duration", param, ctx)
        return total


DURATION = Duration()


def default_kubeconfig() -> Optional[str]:
    """The ~/.kube/config file, if it exists."""
    path = os.path.join(os.path.expanduser("~"), ".kube", "config")
    return path if os.path.exists(path) else None


@click.group()
@click.option("--debug", is_flag=True, default=False, help="Enable debug mode.")
@click.pass_context
def cli(ctx: click.Context, debug: bool):
    """Test sandbox."""
    configure_logging(debug)
    ctx.obj = {"debug": debug}


# run


def execute_run(builder: RunnerBuilder) -> int:
    """Build the runner, run the tests and return the exit code of the process."""
    try:
        runner = builder.build()
    except SandboxError as e:
        logger.error(f"Can't create runner: {e}")
        return 1

    summary: Optional[RunSummary] = None
    try:
        summary = runner.run()
    except SandboxError as e:
        logger.error(f"Can't run tests: {e}")
    finally:
        try:
            runner.teardown()
        except SandboxError as e:
            logger.error(f"Can't destroy runner: {e}")

    if summary is None:
        return 1
    if not summary.ok:
        logger.info(
            f"Tests failed ({summary.passed} passed, {summary.failed} failed, "
            f"{summary.skipped} skipped)"
        )
        return 1
    logger.info("Tests passed")
    return 0


@cli.command("run")
@click.argument("directories", nargs=-1)
@click.option(
    "--kubeconfig",
    default=default_kubeconfig,
    help="Cluster client configuration file.",
)
@click.option("--proxy", default=None, help="URL of the proxy server used to connect to the cluster.")
@click.option(
    "--insecure",
    is_flag=True,
    default=False,
    help="Accept servers that identify themselves with certificates signed by unknown "
    "certificate authorities.",
)
@click.option(
    "--recursive",
    is_flag=True,
    default=False,
    help="Recursively find all directories that contain test files and run them.",
)
@click.option(
    "--compile/--no-compile",
    "compile_",
    default=True,
    help="Compile the test binaries with 'go test -c'. Otherwise only the previously built "
    "binaries are used.",
)
@click.option(
    "--keep",
    is_flag=True,
    default=False,
    help="Preserve the project created to run the tests instead of deleting it.",
)
@click.option(
    "--cleanup-delay",
    type=DURATION,
    default=None,
    help="Time after which the project is deleted even if the runner doesn't finish.",
)
@click.option("--image", default=None, help="Image used for the server and the cleaner.")
@click.pass_context
def run_command(
    ctx: click.Context,
    directories: List[str],
    kubeconfig: Optional[str],
    proxy: Optional[str],
    insecure: bool,
    recursive: bool,
    compile_: bool,
    keep: bool,
    cleanup_delay: Optional[float],
    image: Optional[str],
):
    """Runs a collection of tests inside a sandbox project."""
    if not directories:
        logger.error("Expected at least one test to run")
        ctx.exit(1)
    builder = (
        Runner.builder()
        .kubeconfig(kubeconfig)
        .proxy(proxy)
        .insecure(insecure)
        .keep(keep)
        .compile(compile_)
        .recursive(recursive)
        .cleanup_delay(cleanup_delay)
        .image(image)
        .directories(*directories)
    )
    ctx.exit(execute_run(builder))


# serve


@cli.command("serve")
@click.option("--listen", default=DEFAULT_LISTEN, help="Address and port where the server will listen.")
@click.option(
    "--token",
    envvar="SANDBOX_TOKEN",
    default=None,
    help="Authentication token required in every request. Mandatory.",
)
@click.option(
    "--work",
    default=None,
    help="Directory where the test directories are created, the temporary directory by default.",
)
@click.pass_context
def serve_command(ctx: click.Context, listen: str, token: Optional[str], work: Optional[str]):
    """Starts the executor server that runs inside the sandbox project."""
    if not token:
        logger.error("Option '--token' is mandatory")
        ctx.exit(1)
    try:
        server = ExecutorServer.builder().listen(listen).token(token).work(work).build()
    except SandboxError as e:
        logger.error(f"Can't create server: {e}")
        ctx.exit(1)
    server.serve("DEBUG" if ctx.obj.get("debug") else "INFO")


# clean-after-delay


def execute_clean(cleaner: Cleaner) -> int:
    """Start the cleaner and wait for a termination signal before stopping it."""
    signals = {signal.SIGTERM, signal.SIGINT}
    # Block the signals before starting the timer thread so that only sigwait sees them:
    signal.pthread_sigmask(signal.SIG_BLOCK, signals)
    try:
        try:
            cleaner.start()
        except SandboxError as e:
            logger.error(f"Can't start cleaner: {e}")
            return 1
        received = signal.sigwait(signals)
        logger.info(f"Received signal {signal.Signals(received).name}, stopping cleaner")
        cleaner.stop()
    finally:
        cleaner.destroy()
        signal.pthread_sigmask(signal.SIG_UNBLOCK, signals)
    return 0


@cli.command("clean-after-delay")
@click.option("--wait", type=DURATION, default=None, help="How long to wait before removing the project.")
@click.pass_context
def clean_command(ctx: click.Context, wait: Optional[float]):
    """Removes the sandbox project after a given amount of time."""
    if not wait:
        logger.error("Option '--wait' is mandatory")
        ctx.exit(1)
    try:
        cleaner = Cleaner.builder().wait(wait).build()
    except SandboxError as e:
        logger.error(f"Can't create cleaner: {e}")
        ctx.exit(1)
    ctx.exit(execute_clean(cleaner))


def main():
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
