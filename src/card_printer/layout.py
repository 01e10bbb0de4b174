"""High-level export helpers with console reporting."""
from __future__ import annotations

from pathlib import Path
from typing import Optional

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn, TimeElapsedColumn
from rich.table import Table

from .deck import Deck
from .expander import count_total, count_unique
from .models import ExportJob, ExportResult, SheetGeometry, SheetPlan
from .normalizer import ImageNormalizer
from .pdf_generator import get_file_size_str
from .pipeline import ExportPipeline, job_from_deck


# Rich console instance for beautiful output
console = Console()


def build_cards_document(
    deck: Deck,
    output_path: Path,
    fmt: str = "pdf",
    normalizer: Optional[ImageNormalizer] = None,
) -> ExportResult:
    """
    High-level helper:
    - Validates the deck and freezes it into an export job
    - Normalizes every card image (with relay fallback for remote art)
    - Writes a single PDF or DOCX with the configured grid

    Args:
        deck: Deck with cards, back image and settings
        output_path: Path to the output file
        fmt: "pdf" or "docx"
        normalizer: Image normalizer to use (default settings when omitted)
    """
    job = job_from_deck(deck)

    console.print()
    console.print(Panel.fit(
        "[bold magenta]🃏 Card Printer[/bold magenta]\n"
        "[dim]Creating printable card sheets[/dim]",
        border_style="magenta",
    ))
    console.print()

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        TimeElapsedColumn(),
        console=console,
    ) as progress:
        pipeline = ExportPipeline(normalizer=normalizer, progress=progress)
        result = pipeline.run(job, output_path=output_path, fmt=fmt)

    console.print()
    table = Table(box=box.ROUNDED, border_style="green")
    table.add_column("Property", style="cyan")
    table.add_column("Value", style="white")

    table.add_row("🃏 Unique cards", f"[bold]{count_unique(job.cards)}[/bold]")
    table.add_row("🖨 Prints", f"[bold]{count_total(job.cards)}[/bold]")
    table.add_row("📐 Card box", f"[bold]{_box_str(result.geometry)}[/bold]")
    table.add_row("📄 Pages created", f"[bold]{result.page_count}[/bold]")
    table.add_row("💾 Output file", f"[bold]{output_path}[/bold]")
    table.add_row("📊 File size", f"[bold]{get_file_size_str(output_path)}[/bold]")
    console.print(table)

    if job.needs_back and result.back is None and result.front is not None:
        console.print("[yellow]⚠[/yellow] The back image could not be loaded - back pages were skipped.")
    print_fit_warning(result.geometry)
    print_failed_images_report(result)

    console.print()
    console.print("[green]✔[/green] [bold green]Done![/bold green] Your card sheets are ready to print.")
    console.print()
    return result


def print_failed_images_report(result: ExportResult) -> None:
    """Print one warning for all images that could not be embedded."""
    failed = result.failed_images
    if not failed:
        return

    console.print()
    console.print(
        f"[yellow]⚠ {len(failed)} images could not be embedded "
        f"(usually blocked downloads or unsupported formats).[/yellow]"
    )
    console.print("[dim]Download them and reference the local files to print everything.[/dim]")
    failed_table = Table(box=box.SIMPLE, border_style="yellow", show_header=True)
    failed_table.add_column("Source", style="white")
    failed_table.add_column("Error", style="yellow")
    for img in failed[:20]:
        source = img.key if len(img.key) <= 60 else img.key[:57] + "..."
        failed_table.add_row(source, img.error[:60] + "..." if len(img.error) > 60 else img.error)
    if len(failed) > 20:
        failed_table.add_row(f"[dim]and {len(failed) - 20} more[/dim]", "")
    console.print(failed_table)


def print_plan(job: ExportJob) -> None:
    """Show the resolved geometry and page fill without fetching any image."""
    geometry, front, back = ExportPipeline().plan(job)

    table = Table(box=box.ROUNDED, border_style="cyan")
    table.add_column("Property", style="cyan")
    table.add_column("Value", style="white")
    table.add_row("📄 Page", f"{job.settings.page_size} {job.settings.orientation} "
                  f"({geometry.page_width_mm:.1f} × {geometry.page_height_mm:.1f} mm)")
    table.add_row("📐 Card box", _box_str(geometry))
    table.add_row("🔍 Scale", f"{geometry.scale:.3f}")
    table.add_row("🔲 Grid", f"{geometry.cols} × {geometry.rows}")
    table.add_row("🖨 Prints", str(count_total(job.cards)))
    for plan in (front, back):
        if plan is not None:
            table.add_row(f"📑 {plan.side.title()} pages", _fill_str(plan))
    console.print(table)
    print_fit_warning(geometry)


def print_fit_warning(geometry: SheetGeometry) -> None:
    if not geometry.fits:
        console.print(
            "[yellow]⚠[/yellow] The grid does not fit the page with auto-fit off; "
            "pages will hold fewer rows."
        )


def _box_str(geometry: SheetGeometry) -> str:
    return f"{geometry.card_width_mm:.2f} × {geometry.card_height_mm:.2f} mm"


def _fill_str(plan: SheetPlan) -> str:
    counts = plan.slot_counts()
    return f"{len(counts)} ({', '.join(str(c) for c in counts)})"
