# cli/main.py
# ============================================================
# ID Card Merge — Command Line Interface
# ============================================================
# Typer-based CLI around the batch pipeline. Provides commands
# to merge folders of ID card photos into PDFs, to merge one
# already labelled front/back pair, to inspect how a single
# image is classified, and to show the active rule table.
#
# Usage:
#   idmerge batch input/张三 input/李四 --output output/
#   idmerge batch input/ --root --json output/batch.json
#   idmerge classify input/张三/IMG_0001.jpg
#   idmerge merge front.jpg back.jpg --name 张三
#   idmerge rules
#
#   python -m cli.main batch input/ --root
# ============================================================

import asyncio
import json
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from config.settings import settings
from idmerge.classification.classifier import ImageCandidate, SideClassifier
from idmerge.document.compositor import PillowCompositor
from idmerge.document.loader import discover_unit_dirs, load_units
from idmerge.document.storage import ArtifactStore
from idmerge.document.units import UnitImage
from idmerge.errors import BatchLevelError, CompositionError
from idmerge.ocr.baidu import BaiduOcrClient
from idmerge.ocr.gateway import RecognitionGateway
from idmerge.pipeline.merge import MergedDocument, merge_pair
from idmerge.pipeline.orchestrator import BatchResult, batch_session
from idmerge.validation.rules import RuleTable, load_rules

# ============================================================
# CLI App Setup
# ============================================================

app = typer.Typer(
    name="idmerge",
    help=(
        "🪪 ID Card Merge — Front/Back Classification and PDF Merging\n\n"
        "Sorts each owner's ID card photos into front and back with Baidu OCR,\n"
        "then lays both sides and the extracted fields out on one A4 PDF page."
    ),
    add_completion=False,
    rich_markup_mode="rich",
)

console = Console()


def _load_rules_or_exit(rules_path: Optional[str]) -> RuleTable:
    try:
        return load_rules(rules_path or settings.rules_path)
    except (OSError, ValueError) as e:
        console.print(f"[red]Error:[/red] Cannot load rule table: {e}")
        raise typer.Exit(code=2)


# ============================================================
# Commands
# ============================================================

@app.command()
def batch(
    folders: list[str] = typer.Argument(
        ...,
        help="Unit folders, one per card owner. With --root, folders holding unit folders.",
    ),
    root: bool = typer.Option(
        False,
        "--root", "-r",
        help="Treat each FOLDER as a parent whose subfolders are the units.",
    ),
    output: Optional[str] = typer.Option(
        None,
        "--output", "-o",
        help="Directory for the merged PDFs. Default: from settings.",
    ),
    json_path: Optional[str] = typer.Option(
        None,
        "--json", "-j",
        help="Also write the batch response as JSON to this file.",
    ),
    concurrency: Optional[int] = typer.Option(
        None,
        "--concurrency", "-c",
        min=1, max=8,
        help="Units processed at the same time. Default: from settings.",
    ),
    rules_path: Optional[str] = typer.Option(
        None,
        "--rules",
        help="JSON rule table overriding the built-in heuristics.",
    ),
):
    """
    📄 Merge the front and back photos of every unit into one PDF.

    Each folder is one card owner. Failed units are listed at the end;
    the exit code is 1 when any unit failed.

    Examples:
        batch input/张三 input/李四
        batch input/ --root --output output/ --json output/batch.json
    """
    rules = _load_rules_or_exit(rules_path)

    if root:
        try:
            unit_dirs = [d for folder in folders for d in discover_unit_dirs(folder)]
        except FileNotFoundError as e:
            console.print(f"[red]Error:[/red] {e}")
            raise typer.Exit(code=1)
    else:
        unit_dirs = [Path(folder) for folder in folders]

    if not unit_dirs:
        console.print("[red]Error:[/red] No unit folders found.")
        raise typer.Exit(code=1)

    console.print(Panel(
        f"[bold blue]Baidu OCR[/bold blue] — ID Card Merge\n"
        f"Units:       {len(unit_dirs)}\n"
        f"Output:      {output or settings.output_dir}\n"
        f"Concurrency: {concurrency or settings.max_concurrent_units}",
        title="🪪 ID Merge",
        border_style="blue",
    ))

    units = load_units(unit_dirs)

    async def run_batch() -> BatchResult:
        async with batch_session(
            output_dir=output,
            rules=rules,
            max_concurrent_units=concurrency,
        ) as orchestrator:
            return await orchestrator.run(units)

    try:
        result = asyncio.run(run_batch())
    except BatchLevelError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=2)

    _print_batch_table(result)

    if json_path:
        saved = result.save_json(json_path)
        console.print(f"JSON written to [bold]{saved}[/bold]")

    if result.summary.failed:
        raise typer.Exit(code=1)


@app.command()
def classify(
    image_path: str = typer.Argument(..., help="Path to one ID card photo."),
    rules_path: Optional[str] = typer.Option(
        None,
        "--rules",
        help="JSON rule table overriding the built-in heuristics.",
    ),
    as_json: bool = typer.Option(False, "--json", help="Print the classification as JSON."),
):
    """
    🔍 Score one image as card front and as card back.

    Shows both verdicts with the reason behind every point awarded.
    """
    path = Path(image_path)
    if not path.is_file():
        console.print(f"[red]Error:[/red] Input path not found: {image_path}")
        raise typer.Exit(code=1)

    rules = _load_rules_or_exit(rules_path)
    image = UnitImage(name=path.name, data=path.read_bytes())

    async def run_classify() -> ImageCandidate:
        client = BaiduOcrClient.from_settings(rules)
        try:
            classifier = SideClassifier(RecognitionGateway(client), rules=rules)
            return await classifier.classify(image)
        finally:
            await client.aclose()

    try:
        candidate = asyncio.run(run_classify())
    except BatchLevelError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=2)

    if as_json:
        console.print_json(json.dumps(candidate.to_dict(), ensure_ascii=False))
        return

    _print_candidate(candidate)


@app.command()
def merge(
    front_path: str = typer.Argument(..., help="Photo of the card front."),
    back_path: str = typer.Argument(..., help="Photo of the card back."),
    name: Optional[str] = typer.Option(
        None,
        "--name", "-n",
        help="Holder name for the document. Default: read from the front, else the front file name.",
    ),
    output: Optional[str] = typer.Option(
        None,
        "--output", "-o",
        help="Directory for the merged PDF. Default: from settings.",
    ),
    no_ocr: bool = typer.Option(
        False,
        "--no-ocr",
        help="Skip recognition; the page carries only the name.",
    ),
    rules_path: Optional[str] = typer.Option(
        None,
        "--rules",
        help="JSON rule table overriding the built-in heuristics.",
    ),
):
    """
    🧷 Merge a front and a back photo you have already labelled.

    No classification: FRONT is used as the front and BACK as the back.

    Examples:
        merge scans/front.jpg scans/back.jpg
        merge a.jpg b.jpg --name 张三 --no-ocr --output output/
    """
    paths = [Path(front_path), Path(back_path)]
    for path in paths:
        if not path.is_file():
            console.print(f"[red]Error:[/red] Input path not found: {path}")
            raise typer.Exit(code=1)

    front, back = (path.read_bytes() for path in paths)
    rules = None if no_ocr else _load_rules_or_exit(rules_path)

    async def run_merge() -> MergedDocument:
        options = dict(
            compositor=PillowCompositor(),
            store=ArtifactStore(output),
            name=name,
            fallback_name=paths[0].stem,
        )
        if no_ocr:
            return await merge_pair(front, back, **options)
        client = BaiduOcrClient.from_settings(rules)
        try:
            return await merge_pair(front, back, gateway=RecognitionGateway(client), **options)
        finally:
            await client.aclose()

    try:
        document = asyncio.run(run_merge())
    except BatchLevelError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=2)
    except (CompositionError, OSError) as e:
        console.print(f"[red]Error:[/red] Could not produce the document: {e}")
        raise typer.Exit(code=1)

    console.print(Panel(
        f"Name:     [bold]{document.title}[/bold]\n"
        f"Document: {document.artifact_ref}"
        + "".join(f"\n[yellow]{note}[/yellow]" for note in document.notes),
        title="🧷 Merged",
        border_style="green",
    ))


@app.command()
def rules(
    rules_path: Optional[str] = typer.Option(
        None,
        "--rules",
        help="JSON rule table to show instead of the configured one.",
    ),
):
    """
    📋 Show the rule table used to recognize card backs.
    """
    table_data = _load_rules_or_exit(rules_path).to_dict()

    table = Table(title="Rule Table", show_header=False)
    table.add_column("Rule", style="bold")
    table.add_column("Values")
    for key, values in table_data.items():
        table.add_row(key, "\n".join(values))

    console.print(table)


# ============================================================
# Helper Functions
# ============================================================

def _print_batch_table(result: BatchResult) -> None:
    """Print one row per unit plus a summary row."""
    table = Table(title="Batch Summary")
    table.add_column("Unit")
    table.add_column("Status", justify="center")
    table.add_column("Front / Back")
    table.add_column("Document / Error")
    table.add_column("Latency", justify="right")

    for outcome in result.results:
        if outcome.success:
            status = "[yellow]⚠️[/yellow]" if outcome.low_confidence else "[green]✅[/green]"
            pair = f"{outcome.front_image_ref} / {outcome.back_image_ref}"
            detail = outcome.artifact_ref or ""
        else:
            status = "[red]❌[/red]"
            pair = "-"
            detail = f"[red]{outcome.error_message}[/red]"
        table.add_row(outcome.unit_name, status, pair, detail, f"{outcome.latency_ms:.0f}ms")

    summary = result.summary
    table.add_section()
    table.add_row(
        "[bold]Total[/bold]",
        f"[bold]{summary.succeeded}/{summary.total}[/bold]",
        "",
        f"[bold]Failed: {', '.join(summary.failed_unit_names) or 'none'}[/bold]",
        f"[bold]{result.total_latency_ms:.0f}ms[/bold]",
    )

    console.print(table)


def _print_candidate(candidate: ImageCandidate) -> None:
    """Print both verdicts of one classified image."""
    console.print(Panel(
        f"Image: [bold]{candidate.name}[/bold]\n"
        f"Recommended side: [bold cyan]{candidate.recommended_side.value}[/bold cyan]",
        title="🔍 Classification",
        border_style="cyan",
    ))

    for side, verdict in (("Front", candidate.front_verdict), ("Back", candidate.back_verdict)):
        if verdict is None:
            continue
        color = "green" if verdict.is_valid else "red"
        table = Table(title=f"{side}: [{color}]{verdict.score}[/{color}]", show_header=False)
        table.add_column("Reason")
        for reason in verdict.reasons:
            table.add_row(reason)
        console.print(table)


# ============================================================
# Entry Point
# ============================================================

if __name__ == "__main__":
    app()
