import asyncio
import logging
import uuid

from rich.console import Console
from rich.markdown import Markdown
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from scriptroom.realtime.events import (
    ElementAdded,
    Error,
    GenerationCompleted,
    GenerationStarted,
    Info,
    OrchestrationEvent,
    TextChunk,
)
from scriptroom.runtime import Runtime, build_runtime

logger = logging.getLogger(__name__)

HELP_TEXT = (
    "  /project <id>        switch project\n"
    "  /new                 start a new project id\n"
    "  /elements            list the project's script elements\n"
    "  /budget              show generation budget\n"
    "  /resetmonth          reset the monthly budget counter"
)


def render_event(console: Console, event: OrchestrationEvent) -> None:
    if isinstance(event, TextChunk):
        console.print(Markdown(event.content))
    elif isinstance(event, Info):
        console.print(f"[cyan]i {escape(event.message)}[/]")
    elif isinstance(event, Error):
        console.print(f"[bold red]Error:[/bold red] {escape(event.message)}")
    elif isinstance(event, GenerationStarted):
        console.print(f"[dim]Generating {event.element_type.lower()} ({event.element_id[:8]})...[/]")
    elif isinstance(event, GenerationCompleted):
        if event.asset_url:
            console.print(f"[dim]Generation finished: {event.asset_url}[/]")
        else:
            console.print("[dim]Generation finished without an asset[/]")
    elif isinstance(event, ElementAdded):
        el = event.element
        body = escape(el.get("content", ""))
        if el.get("assetUrl"):
            body = f"{body}\n[link={el['assetUrl']}]{el['assetUrl']}[/link]"
        console.print(Panel(
            body,
            title=f"[bold magenta]#{el.get('order')} {el.get('type')}[/]",
            border_style="magenta",
            expand=False,
        ))


def budget_table(status: dict) -> Table:
    table = Table(title="Generation budget")
    table.add_column("Period")
    table.add_column("Used", justify="right")
    table.add_column("Limit", justify="right")
    table.add_column("Remaining", justify="right")
    table.add_column("%", justify="right")
    for period in ("daily", "monthly"):
        s = status[period]
        table.add_row(
            period,
            f"${s['used']:.2f}",
            f"${s['limit']:.2f}",
            f"${s['remaining']:.2f}",
            f"{s['percentage']:.1f}",
        )
    return table


async def run_prompt(runtime: Runtime, console: Console, project_id: str, prompt: str) -> None:
    """Run one cycle while rendering the project's events as they arrive."""
    sub = runtime.bus.subscribe_project(project_id)
    try:
        task = asyncio.create_task(runtime.orchestrator.handle_prompt(project_id, prompt))
        with console.status("Processing..."):
            while not task.done():
                event = await sub.get(timeout=0.1)
                if event is not None:
                    render_event(console, event)
        for event in sub.drain():
            render_event(console, event)
        await task
    finally:
        sub.close()


async def main(runtime: Runtime = None, console: Console = None) -> None:
    console = console or Console()
    if runtime is None:
        from scriptroom.config.config import config
        from scriptroom.utils.logging_setup import configure_logging

        # CLI logging: write to file, keep console clean.
        configure_logging(log_file=config["log_file"], level=config["log_level"])
        runtime = build_runtime(config)

    console.print(Panel.fit(
        "[bold cyan]ScriptRoom CLI[/bold cyan]\n"
        "[dim]Type /help for commands. Type 'exit' or 'quit' to stop.[/dim]",
        border_style="cyan",
    ))
    project_id = f"project_{uuid.uuid4().hex[:8]}"

    try:
        while True:
            try:
                console.print(f"[dim]Project: [bold]{project_id}[/][/]")
                input_prompt = await asyncio.to_thread(console.input, "[bold green]>>> [/]")

                if input_prompt.lower() in ["exit", "quit"]:
                    break
                if not input_prompt.strip():
                    continue

                if input_prompt.startswith("/"):
                    parts = input_prompt.strip().split()
                    cmd = parts[0].lower()
                    if cmd == "/help":
                        console.print(Panel(HELP_TEXT, title="Commands", border_style="yellow"))
                    elif cmd == "/project" and len(parts) >= 2:
                        project_id = parts[1]
                        console.print(f"[green]project_id set to {project_id}[/]")
                    elif cmd == "/new":
                        project_id = f"project_{uuid.uuid4().hex[:8]}"
                        console.print(f"[green]project_id set to {project_id}[/]")
                    elif cmd == "/elements":
                        for el in runtime.repository.list_elements(project_id):
                            render_event(console, ElementAdded(element=el.to_dict()))
                    elif cmd == "/budget":
                        console.print(budget_table(runtime.ledger.status()))
                    elif cmd == "/resetmonth":
                        runtime.ledger.reset_monthly()
                        console.print("[green]monthly budget reset[/]")
                    else:
                        console.print("[red]unknown command, use /help[/]")
                    continue

                await run_prompt(runtime, console, project_id, input_prompt)
                console.print()

            except (KeyboardInterrupt, EOFError):
                break
            except Exception as e:
                logger.exception("CLI error")
                console.print(f"[bold red]System Error:[/bold red] {e}")
    finally:
        runtime.close()


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
