"""ComfyUI Client CLI - Main command-line interface."""

import asyncio
import json
import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn
from rich.table import Table

from comfy_client import ComfyClient
from comfy_client.exceptions import (
    ComfyClientError,
    ExecutionError,
    RemoteRejectionError,
)
from comfy_client.models import ExecutionResult, HistoryItem, QueueItem
from comfy_client.tracker import ProgressState
from comfy_client.workflow import Workflow, load_workflow

console = Console()


class PromptProgressTracker:
    """Track prompt progress with Rich progress bar."""

    def __init__(self, description: str):
        self.description = description
        self.progress = Progress(
            SpinnerColumn(),
            TextColumn("[bold blue]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            TextColumn("{task.fields[eta]}"),
            console=console,
        )
        self.task_id = None
        self.last_state: Optional[ProgressState] = None

    def __enter__(self):
        self.progress.start()
        self.task_id = self.progress.add_task(self.description, total=100, eta="")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.progress.stop()

    def on_update(self, state: ProgressState):
        """Update progress bar."""
        self.last_state = state
        if self.task_id is None:
            return

        node = f" node {state.current_node}" if state.current_node else ""
        eta = state.eta()
        self.progress.update(
            self.task_id,
            completed=100 if state.is_terminal else state.percentage,
            description=f"{self.description} [{state.status.value}{node}]",
            eta=f"ETA {eta:.1f}s" if eta is not None and not state.is_terminal else "",
        )


def parse_assignments(ctx, param, values: tuple[str, ...]) -> list[tuple[str, str, object]]:
    """Parse ``--set NODE.INPUT=VALUE`` options; VALUE is JSON if it parses, else a string."""
    assignments = []
    for item in values:
        target, sep, raw = item.partition("=")
        node_id, dot, input_name = target.partition(".")
        if not sep or not dot or not node_id or not input_name:
            raise click.BadParameter(f"expected NODE.INPUT=VALUE, got {item!r}", ctx=ctx, param=param)
        try:
            value = json.loads(raw)
        except json.JSONDecodeError:
            value = raw
        assignments.append((node_id, input_name, value))
    return assignments


def print_result(result: ExecutionResult):
    """Print execution result in a nice table."""
    table = Table(title=f"Prompt {result.prompt_id}")
    table.add_column("Field", style="cyan", no_wrap=True)
    table.add_column("Value", style="green")

    table.add_row("Prompt ID", result.prompt_id)
    table.add_row("Status", result.status.status_str or "unknown")
    table.add_row("Duration", f"{result.duration:.2f}s")
    table.add_row("Output nodes", str(len(result.outputs)))
    for image in result.images:
        location = f"{image.subfolder}/{image.filename}" if image.subfolder else image.filename
        table.add_row("Image", f"{location} ({image.type})")

    console.print(table)


def print_queue_items(title: str, items: list[QueueItem]):
    table = Table(title=title)
    table.add_column("#", style="cyan", no_wrap=True)
    table.add_column("Prompt ID", style="green")
    table.add_column("Nodes", justify="right")

    for item in items:
        table.add_row(str(item.number), item.prompt_id, str(len(item.workflow)))

    console.print(table)


def print_history(history: dict[str, HistoryItem]):
    table = Table(title="History")
    table.add_column("Prompt ID", style="cyan", no_wrap=True)
    table.add_column("Status", style="green")
    table.add_column("Images", justify="right")

    for prompt_id, item in history.items():
        table.add_row(prompt_id, item.status.status_str or "unknown", str(len(item.images)))

    console.print(table)


@click.group()
@click.version_option(package_name="comfy-client")
@click.option("--url", envvar="COMFY_URL", default=None, help="Server base URL (default: $COMFY_URL or local)")
@click.pass_context
def cli(ctx: click.Context, url: Optional[str]):
    """ComfyUI Client CLI - Command-line interface for a ComfyUI server.

    Examples:
      comfy-client run workflow_api.json --set 6.text="a red fox" --watch
      comfy-client queue
      comfy-client history <prompt-id>
      comfy-client download ComfyUI_00001_.png ./out.png
    """
    ctx.ensure_object(dict)
    ctx.obj["url"] = url


@cli.command()
@click.argument("workflow_file", type=click.Path(exists=True, path_type=Path))
@click.option("--set", "assignments", multiple=True, callback=parse_assignments, metavar="NODE.INPUT=VALUE",
              help="Override a node input before submitting (repeatable)")
@click.option("--watch", "-w", is_flag=True, help="Watch progress in real-time")
@click.option("--timeout", "-t", default=300.0, help="Timeout in seconds")
@click.option("--output", "-o", type=click.Path(file_okay=False, path_type=Path),
              help="Download produced images into this directory")
@click.pass_context
def run(ctx: click.Context, workflow_file: Path, assignments: list, watch: bool, timeout: float,
        output: Optional[Path]):
    """Submit an API-format workflow and wait for its result.

    Examples:
        comfy-client run workflow_api.json
        comfy-client run workflow_api.json --set 3.seed=42 --set 6.text="a cat" -o out/
    """
    try:
        workflow: Workflow = load_workflow(workflow_file)
        for node_id, input_name, value in assignments:
            workflow.set_node_input(node_id, input_name, value)
    except ComfyClientError as e:
        raise click.BadParameter(str(e), param_hint="--set")

    async def run_workflow():
        async with ComfyClient(base_url=ctx.obj["url"]) as client:
            if watch:
                tracker = PromptProgressTracker(description=workflow_file.name)
                with tracker:
                    result = await client.execute(workflow, timeout=timeout, on_update=tracker.on_update)
            else:
                with console.status(f"[bold green]Running {workflow_file.name}..."):
                    result = await client.execute(workflow, timeout=timeout)

            console.print("[green]✓ Workflow completed[/green]")
            print_result(result)

            if output and result.images:
                paths = await client.save_images(result.images, output)
                for path in paths:
                    console.print(f"[green]✓ Downloaded to {path}[/green]")

    try:
        asyncio.run(run_workflow())
    except RemoteRejectionError as e:
        console.print(f"[red]✗ {e}[/red]")
        for node_id, errors in e.node_errors.items():
            console.print(f"  node {node_id}: {json.dumps(errors)}", markup=False)
        sys.exit(1)
    except ExecutionError as e:
        console.print(f"[red]✗ {e}[/red]")
        for line in e.traceback:
            console.print(line.rstrip(), markup=False)
        sys.exit(1)
    except ComfyClientError as e:
        console.print(f"[red]✗ {e}[/red]")
        sys.exit(1)


@cli.command()
@click.pass_context
def queue(ctx: click.Context):
    """Show running and pending prompts."""
    async def show():
        async with ComfyClient(base_url=ctx.obj["url"]) as client:
            status = await client.get_queue()
            print_queue_items("Running", status.running)
            print_queue_items("Pending", status.pending)

    asyncio.run(show())


@cli.command()
@click.argument("prompt_id", type=str, required=False)
@click.option("--max-items", "-n", type=int, default=None, help="Limit number of entries")
@click.pass_context
def history(ctx: click.Context, prompt_id: Optional[str], max_items: Optional[int]):
    """Show execution history (all prompts, or one)."""
    async def show():
        async with ComfyClient(base_url=ctx.obj["url"]) as client:
            entries = await client.get_history(prompt_id, max_items=max_items)
            if prompt_id and prompt_id not in entries:
                console.print(f"[yellow]No history for prompt {prompt_id}[/yellow]")
                sys.exit(1)
            print_history(entries)

    asyncio.run(show())


@cli.command()
@click.argument("prompt_id", type=str, required=False)
@click.pass_context
def interrupt(ctx: click.Context, prompt_id: Optional[str]):
    """Interrupt the running prompt."""
    async def send():
        async with ComfyClient(base_url=ctx.obj["url"]) as client:
            await client.interrupt(prompt_id)
            console.print("[green]✓ Interrupt sent[/green]")

    asyncio.run(send())


@cli.command("clear-queue")
@click.pass_context
def clear_queue(ctx: click.Context):
    """Remove all pending prompts."""
    async def send():
        async with ComfyClient(base_url=ctx.obj["url"]) as client:
            await client.clear_queue()
            console.print("[green]✓ Queue cleared[/green]")

    asyncio.run(send())


@cli.command()
@click.argument("image", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--subfolder", default=None, help="Target subfolder")
@click.option("--overwrite", is_flag=True, help="Overwrite an existing file of the same name")
@click.pass_context
def upload(ctx: click.Context, image: Path, subfolder: Optional[str], overwrite: bool):
    """Upload an image for use as a workflow input."""
    async def send():
        async with ComfyClient(base_url=ctx.obj["url"]) as client:
            with console.status(f"[bold green]Uploading {image.name}..."):
                response = await client.upload_image(image, subfolder=subfolder, overwrite=overwrite)
            console.print(f"[green]✓ Uploaded as {response.name}[/green]")
            if response.subfolder:
                console.print(f"  Subfolder: {response.subfolder}")

    asyncio.run(send())


@cli.command()
@click.argument("filename", type=str)
@click.argument("destination", type=click.Path(path_type=Path), required=False)
@click.option("--subfolder", default="", help="Server subfolder")
@click.option("--type", "folder_type", default="output", type=click.Choice(["output", "input", "temp"]),
              help="Storage class")
@click.pass_context
def download(ctx: click.Context, filename: str, destination: Optional[Path], subfolder: str, folder_type: str):
    """Download an image from the server.

    Examples:
        comfy-client download ComfyUI_00001_.png
        comfy-client download ComfyUI_00001_.png ./result.png --subfolder renders
    """
    async def fetch():
        dest = destination or Path(filename)

        async with ComfyClient(base_url=ctx.obj["url"]) as client:
            with console.status(f"[bold green]Downloading {filename}..."):
                data = await client.get_image(filename, subfolder, folder_type)

        dest.parent.mkdir(parents=True, exist_ok=True)
        dest.write_bytes(data)
        console.print(f"[green]✓ Downloaded to {dest}[/green]")
        console.print(f"  Size: {len(data)} bytes")

    asyncio.run(fetch())
