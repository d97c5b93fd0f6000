"""
CLI commands for the task driver.

This module owns configuration loading and logging setup, and drives single
tasks through the container lifecycle from the command line.
"""

import logging
import threading
from pathlib import Path
from typing import List, Optional

import typer
import yaml
from docker.errors import DockerException
from rich.console import Console
from rich.table import Table

from taskdriver.config import Settings
from taskdriver.core.context import Context
from taskdriver.core.driver import Docker
from taskdriver.core.lifecycle import Transition, start_task, transition
from taskdriver.core.runtime import DockerRuntime
from taskdriver.models.config import Config, InvalidConfig
from taskdriver.models.enums import State
from taskdriver.models.task import Task
from taskdriver.utils.formatting import bytes_to_human, format_time, parse_memory


app = typer.Typer(help="Run tasks as Docker containers", add_completion=False)

# Initialize Rich console
console = Console()

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def configure_logging(level: str):
    """Configure root logging for the CLI process."""
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)


def format_task_state(state: str) -> str:
    """Format task state with appropriate color."""
    colors = {
        "pending": "yellow",
        "scheduled": "cyan",
        "running": "green",
        "completed": "blue",
        "failed": "red"
    }
    return f"[{colors.get(state, 'white')}]{state}[/{colors.get(state, 'white')}]"


def get_driver(ctx: typer.Context) -> Docker:
    """Build a driver bound to the runtime configured for this invocation."""
    settings: Settings = ctx.obj
    try:
        return Docker(DockerRuntime.from_settings(settings))
    except DockerException as e:
        console.print(f"[bold red]Error:[/bold red] cannot connect to Docker: {str(e)}")
        raise typer.Exit(code=1)


def make_context(timeout: Optional[float]) -> Context:
    return Context.with_timeout(timeout) if timeout else Context.background()


def load_task_file(path: Path) -> Config:
    """Load a Config from a YAML task file."""
    with open(path, 'r') as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise InvalidConfig(f"Task file {path} must contain a mapping")
    return Config.from_dict(data)


def print_transition(tr: Transition):
    """Print a task and the driver's result."""
    task = tr.task

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Field")
    table.add_column("Value")

    table.add_row("Task ID", str(task.id))
    table.add_row("Name", task.name)
    table.add_row("Image", task.image)
    table.add_row("State", format_task_state(task.state.value))
    table.add_row("CPU", str(task.cpu))
    table.add_row("Memory", bytes_to_human(task.memory))
    table.add_row("Container", task.container_id or "")
    for port, binding in sorted(task.port_bindings.items()):
        table.add_row(f"Port {port}", binding)
    table.add_row("Started", format_time(task.start_time))
    table.add_row("Finished", format_time(task.finish_time))

    console.print("\n[bold cyan]Task[/bold cyan]")
    console.print(table)

    result = tr.result
    if result.ok:
        console.print(f"[bold green]{result.action}: {result.result}[/bold green]")
    else:
        step = getattr(result.error, 'step', '') or result.action
        console.print(f"[bold red]Error ({step}):[/bold red] {result.error}")


@app.callback()
def main(
    ctx: typer.Context,
    docker_host: Optional[str] = typer.Option(None, "--docker-host", help="Docker daemon URL"),
    api_timeout: Optional[float] = typer.Option(None, "--api-timeout", help="Runtime API timeout in seconds"),
    debug: bool = typer.Option(False, "--debug", help="Enable debug logging"),
):
    """Run tasks as Docker containers."""
    try:
        settings = Settings.from_env()
    except ValueError as e:
        console.print(f"[bold red]Error:[/bold red] {str(e)}")
        raise typer.Exit(code=2)

    if docker_host:
        settings.docker_host = docker_host
    if api_timeout:
        settings.api_timeout = api_timeout
    if debug:
        settings.log_level = "DEBUG"

    configure_logging(settings.log_level)
    ctx.obj = settings


@app.command()
def run(
    ctx: typer.Context,
    image: Optional[str] = typer.Argument(None, help="Image to run, e.g. redis:alpine"),
    name: str = typer.Option("", "--name", "-n", help="Container name"),
    cpu: float = typer.Option(0.0, "--cpu", help="CPU in fractional cores"),
    memory: str = typer.Option("0", "--memory", "-m", help="Memory limit, e.g. 64m"),
    disk: str = typer.Option("0", "--disk", help="Disk request, e.g. 1g"),
    port: Optional[List[str]] = typer.Option(None, "--port", "-p", help="Exposed port, e.g. 6379/tcp"),
    env: Optional[List[str]] = typer.Option(None, "--env", "-e", help="Environment entry KEY=VALUE"),
    restart: str = typer.Option("", "--restart", help="Restart policy"),
    file: Optional[Path] = typer.Option(None, "--file", "-f", help="YAML task file"),
    timeout: Optional[float] = typer.Option(None, "--timeout", help="Give up after this many seconds"),
):
    """Pull, create and start a container for a task."""
    try:
        if file:
            config = load_task_file(file)
        elif image:
            config = Config(
                name=name,
                image=image,
                cpu=cpu,
                memory=parse_memory(memory),
                disk=parse_memory(disk),
                exposed_ports=frozenset(port or ()),
                env=tuple(env or ()),
                restart_policy=restart,
            )
        else:
            console.print("[bold red]Error:[/bold red] an IMAGE or --file is required")
            raise typer.Exit(code=2)
    except (InvalidConfig, ValueError, OSError, yaml.YAMLError) as e:
        console.print(f"[bold red]Error:[/bold red] {str(e)}")
        raise typer.Exit(code=2)

    task = Task(
        name=config.name,
        image=config.image,
        cpu=config.cpu,
        memory=config.memory,
        disk=config.disk,
        exposed_ports=config.exposed_ports,
        env=list(config.env),
        cmd=list(config.cmd),
        restart_policy=config.restart_policy,
    )
    # this process is its own scheduler
    task = transition(task, State.SCHEDULED)

    console.print(f"[bold green]Starting task {task.name or task.image}...[/bold green]")
    tr = start_task(get_driver(ctx), task, ctx=make_context(timeout))
    print_transition(tr)
    if not tr.ok:
        raise typer.Exit(code=1)


@app.command()
def stop(
    ctx: typer.Context,
    container_id: str = typer.Argument(..., help="Container ID or name"),
    timeout: Optional[float] = typer.Option(None, "--timeout", help="Give up after this many seconds"),
):
    """Stop a container and remove it with its anonymous volumes."""
    console.print(f"Stopping container {container_id}")
    result = get_driver(ctx).stop(container_id, ctx=make_context(timeout))
    if not result.ok:
        console.print(f"[bold red]Error ({result.error.step}):[/bold red] {result.error}")
        raise typer.Exit(code=1)
    console.print(f"[bold green]Container {container_id} stopped and removed[/bold green]")


@app.command()
def inspect(
    ctx: typer.Context,
    container_id: str = typer.Argument(..., help="Container ID or name"),
):
    """Show a container's state and port bindings."""
    response = get_driver(ctx).inspect(container_id)
    if not response.ok:
        console.print(f"[bold red]Error:[/bold red] {response.error}")
        raise typer.Exit(code=1)

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Field")
    table.add_column("Value")
    table.add_row("ID", response.container.get('Id', '')[:12])
    table.add_row("Name", response.container.get('Name', '').lstrip('/'))
    table.add_row("Status", response.state)
    if response.exit_code is not None:
        table.add_row("Exit Code", str(response.exit_code))
    for port, binding in sorted(response.port_bindings().items()):
        table.add_row(f"Port {port}", binding)
    console.print(table)


@app.command()
def logs(
    ctx: typer.Context,
    container_id: str = typer.Argument(..., help="Container ID or name"),
    follow: bool = typer.Option(False, "--follow", "-f", help="Follow log output"),
):
    """Copy a container's stdout and stderr to this terminal."""
    driver = get_driver(ctx)
    cancel = Context.background()
    outcome = {}

    def _stream():
        outcome['result'] = driver.stream_logs(container_id, ctx=cancel, follow=follow)

    worker = threading.Thread(target=_stream, daemon=True)
    worker.start()
    try:
        while worker.is_alive():
            worker.join(timeout=0.5)
    except KeyboardInterrupt:
        console.print("[yellow]Stopped following logs[/yellow]")
        cancel.cancel()
        worker.join(timeout=5)
        return

    result = outcome.get('result')
    if result is not None and not result.ok:
        console.print(f"[bold red]Error:[/bold red] {result.error}")
        raise typer.Exit(code=1)


@app.command()
def version():
    """Show version information."""
    from taskdriver import __version__
    console.print(f"[bold cyan]taskdriver[/bold cyan] v{__version__}")


if __name__ == "__main__":
    app()
