"""CLI entry point for card_printer."""
from __future__ import annotations

import argparse
from pathlib import Path
from typing import Any, Dict

from rich import box
from rich.panel import Panel
from rich.table import Table

from card_printer.deck import Deck, load_deck, merge_decks, save_deck, settings_from_dict
from card_printer.docx_generator import write_docx_check
from card_printer.errors import CardPrinterError
from card_printer.geometry import CARD_PRESETS, PAGE_SIZES
from card_printer.layout import build_cards_document, console, print_plan
from card_printer.models import CropMode, FlipMode, SideMode
from card_printer.normalizer import DEFAULT_MAX_WORKERS, DEFAULT_RELAY_URL, DEFAULT_TIMEOUT, ImageNormalizer
from card_printer.pipeline import RENDERERS, job_from_deck
from card_printer.relay import DEFAULT_PORT, serve
from card_printer.ydk import read_ydk, write_ydk


def _add_layout_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("deck", type=str, help="Path to the deck JSON file.")
    parser.add_argument("--page-size", choices=sorted(PAGE_SIZES), default=None)
    parser.add_argument("--orientation", choices=["portrait", "landscape"], default=None)
    parser.add_argument("--margin", type=float, default=None, help="Page margin in mm.")
    parser.add_argument("--gap", type=float, default=None, help="Gap between cards in mm.")
    parser.add_argument("--bleed", type=float, default=None, help="Bleed around each card in mm.")
    parser.add_argument(
        "--card-size",
        choices=sorted(CARD_PRESETS) + ["custom"],
        default=None,
        help="Card size preset (width x height in mm).",
    )
    parser.add_argument("--card-width", type=float, default=None, help="Card width in mm.")
    parser.add_argument("--card-height", type=float, default=None, help="Card height in mm.")
    parser.add_argument("--crop-marks", choices=[m.value for m in CropMode], default=None)
    parser.add_argument(
        "--auto-fit",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Shrink cards so the grid fits the page.",
    )
    parser.add_argument("--sides", choices=[m.value for m in SideMode], default=None)
    parser.add_argument(
        "--flip",
        choices=[m.value for m in FlipMode],
        default=None,
        help="Edge the sheet is flipped over for the back pass.",
    )
    parser.add_argument("--back", type=str, default=None, help="Back image (path or URL).")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Card Printer – Print-ready card sheets with crop marks and duplex backs"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    build_cmd = subparsers.add_parser("build", help="Export a deck to PDF or DOCX")
    _add_layout_options(build_cmd)
    build_cmd.add_argument("--format", choices=sorted(RENDERERS), default="pdf")
    build_cmd.add_argument(
        "--output",
        type=str,
        default=None,
        help="Path to output file (default: build/<fileName>.<format>).",
    )
    build_cmd.add_argument(
        "--relay-url",
        type=str,
        default=DEFAULT_RELAY_URL,
        help=f"Image relay prefix for blocked remote images (default: {DEFAULT_RELAY_URL}).",
    )
    build_cmd.add_argument("--no-relay", action="store_true", help="Disable the relay retry.")
    build_cmd.add_argument("--max-workers", type=int, default=DEFAULT_MAX_WORKERS)
    build_cmd.add_argument("--timeout", type=float, default=DEFAULT_TIMEOUT)
    build_cmd.add_argument(
        "--no-fallback",
        action="store_true",
        help="Disable PyMuPDF fallback for PDF card sources (use only pypdf).",
    )

    plan_cmd = subparsers.add_parser("plan", help="Show geometry and page fill without exporting")
    _add_layout_options(plan_cmd)

    ydk_import = subparsers.add_parser("ydk-import", help="Create a deck JSON from a .ydk file")
    ydk_import.add_argument("ydk", type=str)
    ydk_import.add_argument("--output", type=str, required=True)

    ydk_export = subparsers.add_parser("ydk-export", help="Write the YDK cards of a deck to a .ydk file")
    ydk_export.add_argument("deck", type=str)
    ydk_export.add_argument("--output", type=str, required=True)

    merge_cmd = subparsers.add_parser("merge", help="Add new cards from one deck file to another")
    merge_cmd.add_argument("source", type=str)
    merge_cmd.add_argument("target", type=str)

    check_cmd = subparsers.add_parser("docx-check", help="Write a minimal test DOCX")
    check_cmd.add_argument("--output", type=str, default="test-word.docx")

    serve_cmd = subparsers.add_parser("serve", help="Run the image relay endpoint")
    serve_cmd.add_argument("--host", type=str, default="127.0.0.1")
    serve_cmd.add_argument("--port", type=int, default=DEFAULT_PORT)

    return parser


def settings_overrides(args: argparse.Namespace) -> Dict[str, Any]:
    """Translate CLI flags into deck ``settings`` keys."""
    mapping = {
        "page_size": "pageSize",
        "orientation": "orientation",
        "margin": "margin",
        "gap": "gap",
        "bleed": "bleed",
        "card_size": "cardPreset",
        "card_width": "cardW",
        "card_height": "cardH",
        "crop_marks": "cropMarks",
        "auto_fit": "autoFit",
        "sides": "frontBackMode",
        "flip": "backFlipMode",
    }
    return {key: getattr(args, attr) for attr, key in mapping.items() if getattr(args, attr) is not None}


def load_deck_with_overrides(args: argparse.Namespace) -> Deck:
    deck = load_deck(Path(args.deck).resolve())
    deck.settings = settings_from_dict(settings_overrides(args), base=deck.settings)
    if args.back:
        deck.back_src = args.back
    return deck


def run_build(args: argparse.Namespace) -> None:
    deck = load_deck_with_overrides(args)
    output_path = (
        Path(args.output).resolve()
        if args.output is not None
        else Path("build", f"{deck.settings.file_name}.{args.format}").resolve()
    )
    normalizer = ImageNormalizer(
        relay_url=None if args.no_relay else args.relay_url,
        timeout=args.timeout,
        max_workers=args.max_workers,
        use_fitz_fallback=not args.no_fallback,
    )
    build_cards_document(deck, output_path=output_path, fmt=args.format, normalizer=normalizer)


def run_plan(args: argparse.Namespace) -> None:
    deck = load_deck_with_overrides(args)
    console.print()
    console.print(Panel.fit(
        "[bold cyan]📐 Card Printer - Layout Plan[/bold cyan]\n"
        f"[dim]{Path(args.deck).name}[/dim]",
        border_style="cyan",
    ))
    print_plan(job_from_deck(deck))


def run_ydk_import(args: argparse.Namespace) -> None:
    cards = read_ydk(Path(args.ydk))
    out = save_deck(Deck(cards=cards), Path(args.output))

    table = Table(box=box.ROUNDED, border_style="cyan")
    table.add_column("Property", style="cyan")
    table.add_column("Value", style="white")
    table.add_row("🃏 Unique cards", f"[bold]{len(cards)}[/bold]")
    table.add_row("🖨 Prints", f"[bold]{sum(c.quantity for c in cards)}[/bold]")
    table.add_row("💾 Deck file", f"[bold]{out}[/bold]")
    console.print(table)


def run_ydk_export(args: argparse.Namespace) -> None:
    deck = load_deck(Path(args.deck))
    out = write_ydk(deck.cards, Path(args.output))
    console.print(f"[green]✔[/green] Wrote [bold]{out}[/bold]")


def run_merge(args: argparse.Namespace) -> None:
    source = load_deck(Path(args.source))
    target_path = Path(args.target)
    target = load_deck(target_path)
    merged, added = merge_decks(target, source)
    if not added:
        console.print("[yellow]⚠[/yellow] No new cards to add.")
        return
    save_deck(merged, target_path)
    console.print(f"[green]✔[/green] Added [bold]{added}[/bold] new cards to [bold]{target_path}[/bold]")


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return

    try:
        if args.command == "build":
            run_build(args)
        elif args.command == "plan":
            run_plan(args)
        elif args.command == "ydk-import":
            run_ydk_import(args)
        elif args.command == "ydk-export":
            run_ydk_export(args)
        elif args.command == "merge":
            run_merge(args)
        elif args.command == "docx-check":
            out = write_docx_check(Path(args.output))
            console.print(f"[green]✔[/green] Wrote [bold]{out}[/bold] - open it to confirm DOCX output works.")
        elif args.command == "serve":
            console.print(f"🚀 Image relay on http://{args.host}:{args.port}/img?url=...")
            serve(host=args.host, port=args.port)
    except (CardPrinterError, FileNotFoundError) as e:
        console.print(f"[red]✘[/red] {e}")
        raise SystemExit(1) from e


if __name__ == "__main__":
    main()
