"""procsem CLI: gate commands behind cross-process mutexes and semaphores."""

import subprocess
import sys
from pathlib import Path

import typer
from rich.console import Console

from procsem import __version__

from .config import ResolvedResource, load_config, write_config_template
from .constants import DEFAULT_CONFIG_FILE, DEFAULT_RETRY_DELAY_MS, EXIT_ERROR, EXIT_TIMEOUT
from .errors import LockTimeoutError, ProcsemError
from .logging import configure_logging
from .mutex import Mutex
from .output import OutputContext, state_summary
from .semaphore import Semaphore
from .state_io import read_state

# Exit code used by shells for "command not found"
EXIT_COMMAND_NOT_FOUND = 127


def _version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"procsem {__version__}")
        raise typer.Exit()


app = typer.Typer(
    name="procsem",
    help="Cross-process mutexes and counting semaphores backed by file locks",
    no_args_is_help=True,
)

_ctx: OutputContext | None = None
_config_path: Path = Path(DEFAULT_CONFIG_FILE)


def get_output_context() -> OutputContext:
    """Get the current output context."""
    if _ctx is None:
        return OutputContext(Console())
    return _ctx


def _load_resource(name: str) -> ResolvedResource:
    ctx = get_output_context()
    try:
        return load_config(_config_path).get_resource(name)
    except ProcsemError as e:
        ctx.error(str(e))
        raise typer.Exit(EXIT_ERROR) from None


def _open_semaphore(res: ResolvedResource) -> Semaphore:
    return Semaphore(res.capacity, res.path, res.retry_delay_ms, res.name, strict=res.strict)


def _run_command(command: list[str]) -> int:
    try:
        return subprocess.run(command).returncode
    except FileNotFoundError:
        get_output_context().error(f"Command not found: {command[0]}")
        return EXIT_COMMAND_NOT_FOUND


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
    verbose: int = typer.Option(
        0,
        "--verbose",
        "-v",
        count=True,
        help="Increase verbosity (-v, -vv)",
    ),
    quiet: bool = typer.Option(
        False,
        "--quiet",
        "-q",
        help="Hide wait notifications",
    ),
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Output in JSON format for automation",
    ),
    no_color: bool = typer.Option(
        False,
        "--no-color",
        help="Disable colored output",
    ),
    config: Path = typer.Option(
        Path(DEFAULT_CONFIG_FILE),
        "--config",
        "-c",
        help="Path to the procsem TOML config",
    ),
) -> None:
    """procsem - cross-process mutexes and semaphores."""
    global _ctx
    global _config_path
    configure_logging(
        verbosity=verbose,
        quiet=quiet,
        no_color=no_color,
        stream=sys.stderr,
    )
    _ctx = OutputContext(console=Console(no_color=no_color), json_mode=json_output)
    _config_path = config


# ============================================================================
# procsem init
# ============================================================================


@app.command()
def init() -> None:
    """Write a starter config file."""
    ctx = get_output_context()
    if _config_path.exists():
        ctx.error(f"Config already exists: {_config_path}")
        raise typer.Exit(EXIT_ERROR)
    path = write_config_template(_config_path)
    ctx.emit({"config": str(path)}, f"[green]Created config template:[/green] {path}")


# ============================================================================
# procsem run / procsem mutex
# ============================================================================


@app.command()
def run(
    resource: str = typer.Argument(..., help="Resource name from the config"),
    command: list[str] = typer.Argument(..., help="Command to run while holding a slot"),
    timeout: float | None = typer.Option(
        None, "--timeout", "-t", help="Give up after this many seconds"
    ),
) -> None:
    """Run a command while holding one slot of a configured semaphore.

    Separate the command with "--": procsem run gpu -- train.py --epochs 3
    """
    ctx = get_output_context()
    res = _load_resource(resource)

    try:
        semaphore = _open_semaphore(res)
        semaphore.acquire(timeout=timeout)
    except LockTimeoutError as e:
        ctx.error(str(e))
        raise typer.Exit(EXIT_TIMEOUT) from None
    except (ProcsemError, OSError) as e:
        ctx.error(str(e))
        raise typer.Exit(EXIT_ERROR) from None

    try:
        returncode = _run_command(command)
    finally:
        semaphore.release()
    if returncode:
        raise typer.Exit(returncode)


@app.command()
def mutex(
    path: Path = typer.Argument(..., help="Lock file shared by the cooperating processes"),
    command: list[str] = typer.Argument(..., help="Command to run while holding the lock"),
    retry_delay: int = typer.Option(
        DEFAULT_RETRY_DELAY_MS, "--retry-delay", min=1, help="Milliseconds between attempts"
    ),
    timeout: float | None = typer.Option(
        None, "--timeout", "-t", help="Give up after this many seconds"
    ),
) -> None:
    """Run a command while holding an exclusive lock on PATH.

    Separate the command with "--": procsem mutex /tmp/deploy.lock -- make deploy
    """
    ctx = get_output_context()
    lock = Mutex(path, retry_delay)
    try:
        lock.acquire(timeout=timeout)
    except LockTimeoutError as e:
        ctx.error(str(e))
        raise typer.Exit(EXIT_TIMEOUT) from None
    except OSError as e:
        ctx.error(str(e))
        raise typer.Exit(EXIT_ERROR) from None

    try:
        returncode = _run_command(command)
    finally:
        lock.release()
    if returncode:
        raise typer.Exit(returncode)


# ============================================================================
# procsem status / procsem clean
# ============================================================================


@app.command()
def status(
    resource: str = typer.Argument(..., help="Resource name from the config"),
) -> None:
    """Show free slots and holders of a semaphore."""
    ctx = get_output_context()
    res = _load_resource(resource)

    lock = Mutex(res.path, res.retry_delay_ms, resource)
    try:
        handle, _ = lock.acquire()
        try:
            state = read_state(handle, res.capacity)
        finally:
            lock.release()
    except (ProcsemError, OSError) as e:
        ctx.error(str(e))
        raise typer.Exit(EXIT_ERROR) from None

    ctx.show_state(resource, res.path, res.capacity, state)


@app.command()
def clean(
    resource: str = typer.Argument(..., help="Resource name from the config"),
) -> None:
    """Reclaim slots held by processes that no longer exist."""
    ctx = get_output_context()
    res = _load_resource(resource)

    try:
        # Construction already ran the cleanup
        semaphore = _open_semaphore(res)
        state = semaphore.read_state()
    except (ProcsemError, OSError) as e:
        ctx.error(str(e))
        raise typer.Exit(EXIT_ERROR) from None

    reclaimed = semaphore.reclaimed_pids
    data = state_summary(resource, res.path, res.capacity, state)
    data["reclaimed"] = reclaimed
    if reclaimed:
        pids = ", ".join(str(pid) for pid in reclaimed)
        message = f"[green]Reclaimed {len(reclaimed)} slot(s) from dead processes:[/green] {pids}"
    else:
        message = "[green]No dead holders found[/green]"
    ctx.emit(data, message)
