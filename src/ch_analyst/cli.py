"""CLI interface using typer + rich."""

from __future__ import annotations

import asyncio
import json
import logging

from dotenv import load_dotenv

load_dotenv()

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markdown import Markdown
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from ch_analyst.config import load_config, load_credentials
from ch_analyst.errors import AnalystError, ConfigurationError
from ch_analyst.pipeline.analyst_service import AnalystService

app = typer.Typer(
    name="ch-analyst",
    help="Companies House company research with an LLM analyst",
    no_args_is_help=True,
)
console = Console()


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(name)s: %(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _build_service() -> AnalystService:
    try:
        return AnalystService.from_config(load_config(), load_credentials())
    except ConfigurationError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)


@app.command()
def search(query: str = typer.Argument(help="Company name or number")) -> None:
    """Search the register (first 5 matches)."""
    service = _build_service()

    async def _run() -> list[dict]:
        try:
            return await service.search(query)
        finally:
            await service.aclose()

    results = asyncio.run(_run())
    if not results:
        console.print("[yellow]No matching companies.[/yellow]")
        return

    table = Table(title=f"Results for '{query}'")
    table.add_column("Number", style="bold")
    table.add_column("Name")
    table.add_column("Status")
    table.add_column("Address", style="dim")
    for item in results:
        table.add_row(
            item.get("company_number", ""),
            item.get("title", ""),
            item.get("company_status", ""),
            item.get("address_snippet", ""),
        )
    console.print(table)


@app.command()
def company(
    company_number: str = typer.Argument(help="Company number"),
    as_json: bool = typer.Option(False, "--json", help="Print the raw snapshot as JSON"),
) -> None:
    """Show a company's profile, officers, PSC and filing history."""
    service = _build_service()

    async def _run():
        try:
            return await service.get_company_bundle(company_number)
        finally:
            await service.aclose()

    try:
        snapshot = asyncio.run(_run())
    except AnalystError as e:
        console.print(f"[red]Error loading company info: {e}[/red]")
        raise typer.Exit(1)

    if as_json:
        console.print_json(json.dumps(snapshot.model_dump(), default=str))
        return

    profile = snapshot.profile
    console.print(Panel(
        f"[bold]{snapshot.company_name}[/bold] ({snapshot.company_number})\n"
        f"Status: {profile.get('company_status', 'unknown')}"
        f" | Incorporated: {profile.get('date_of_creation', '-')}"
        f" | Type: {profile.get('type', '-')}",
        title="Company",
    ))

    officers = Table(title=f"Officers ({len(snapshot.officers)})")
    for col in ("Name", "Role", "Appointed", "Resigned"):
        officers.add_column(col)
    for o in snapshot.officers:
        officers.add_row(
            o.get("name", ""), o.get("officer_role", ""),
            o.get("appointed_on", ""), o.get("resigned_on", ""),
        )
    console.print(officers)

    psc = Table(title=f"Persons with significant control ({len(snapshot.psc_list)})")
    psc.add_column("Name")
    psc.add_column("Nature of control")
    for p in snapshot.psc_list:
        psc.add_row(p.get("name", ""), ", ".join(p.get("natures_of_control", [])))
    console.print(psc)

    filings = Table(title=f"Filing history ({len(snapshot.filing_history)})")
    for col in ("Date", "Type", "Description"):
        filings.add_column(col)
    for f in snapshot.filing_history:
        filings.add_row(f.get("date", ""), f.get("type", ""), f.get("description", ""))
    console.print(filings)


@app.command()
def analyze(
    company_number: str = typer.Argument(help="Company number"),
    prompt: str = typer.Option(None, "--prompt", "-p", help="Single question; omit for a chat session"),
    no_documents: bool = typer.Option(False, "--no-documents", help="Skip filing document text"),
) -> None:
    """Ask the model about a company, one question or an interactive chat."""
    service = _build_service()
    if no_documents:
        service.include_documents = False

    async def _ask(question: str) -> bool:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
            transient=True,
        ) as progress:
            task = progress.add_task("Analysing...", total=None)

            def on_step(event: str, detail: str) -> None:
                if event == "function":
                    progress.update(task, description=f"Calling {detail}")
                elif event == "model":
                    progress.update(task, description=detail)

            result = await service.analyze(company_number, question, on_step=on_step)

        if not result.ok:
            console.print(f"[red]Error performing analysis: {result.error}[/red]")
            return False
        console.print(Panel(Markdown(result.answer or ""), title="Analysis"))
        if result.function_calls:
            console.print(f"[dim]Functions used: {', '.join(result.function_calls)}[/dim]")
        return True

    async def _run() -> bool:
        try:
            with console.status("Loading company..."):
                snapshot = await service.open_session(company_number)
            console.print(f"[green]Loaded {snapshot.company_name} ({snapshot.company_number})[/green]")

            if prompt:
                return await _ask(prompt)

            console.print("[dim]Type a question, or an empty line to quit.[/dim]")
            while True:
                question = console.input("[bold]> [/bold]").strip()
                if not question:
                    return True
                await _ask(question)
        finally:
            tokens = service.chat.get_token_summary()
            requests = service.registry.get_request_count()
            if tokens["calls"] or requests:
                console.print(
                    f"[dim]Tokens: {tokens['input']} in / {tokens['output']} out"
                    f" | Registry requests: {requests}[/dim]"
                )
            await service.aclose()

    try:
        ok = asyncio.run(_run())
    except AnalystError as e:
        console.print(f"[red]Error loading company info: {e}[/red]")
        raise typer.Exit(1)
    if not ok:
        raise typer.Exit(1)


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host", help="Bind address"),
    port: int = typer.Option(3000, "--port", help="Port"),
    reload: bool = typer.Option(False, "--reload", help="Auto-reload on code changes"),
) -> None:
    """Run the web interface."""
    import uvicorn

    try:
        load_credentials()
    except ConfigurationError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]Server running on http://{host}:{port}[/green]")
    uvicorn.run("ch_analyst.web.app:create_app", factory=True, host=host, port=port, reload=reload)


if __name__ == "__main__":
    app()
