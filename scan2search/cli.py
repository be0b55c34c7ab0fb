"""
scan2search: turn a scanned PDF into a searchable PDF.

Pipeline:
  Raster:  every page to a JPEG (ImageMagick), optional levels adjustment.
  OCR:     every page image to a one-page searchable PDF (Tesseract).
  Merge:   all page PDFs into <name>_final.pdf (pdftk).

Progress is recorded after every page so an interrupted run picks up where
it stopped. Do not run two instances against the same document at once.
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskProgressColumn,
    TextColumn,
    TimeElapsedColumn,
)
from rich.prompt import Confirm, IntPrompt, Prompt
from rich.table import Table
from rich.text import Text

from . import __version__
from .config import ToolProblem, ensure_directories, load_settings, validate_tools
from .errors import PipelineError
from .layout import Document, LevelsAdjustment
from .logs import log, setup_logging
from .pipeline import STATUS_ALREADY_COMPLETE, PipelineRunner
from .state import STAGE_OCR, STAGE_RASTER

console = Console()

STAGE_LABELS = {
    STAGE_RASTER: "Rasterizing",
    STAGE_OCR: "OCR",
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def format_file_size(size_bytes: int) -> str:
    if size_bytes >= 1_048_576:
        return f"{size_bytes / 1_048_576:.1f} MB"
    return f"{size_bytes / 1024:.1f} KB"


def print_tool_problems(problems: list[ToolProblem]) -> None:
    table = Table(show_header=True, header_style="bold red")
    table.add_column("Tool")
    table.add_column("Path")
    table.add_column("Problem")
    for p in problems:
        table.add_row(escape(p.tool), escape(p.path), escape(p.reason))
    console.print("\n[bold red]Some external tools are not usable:[/]\n")
    console.print(table)
    console.print(
        "\n  [dim]Install them or point SCAN2SEARCH_<TOOL> at the executable "
        "(e.g. in a .env file).[/]\n"
    )


def print_error(err: PipelineError) -> None:
    console.print()
    console.print(
        Panel(
            Text(err.describe()),
            title="[bold red]Stopped[/]",
            border_style="red",
            padding=(1, 2),
        )
    )
    console.print("  [dim]Fix the problem and run again; finished pages are kept.[/]")


def _as_pdf(choice: str) -> Path | None:
    path = Path(choice).expanduser()
    if path.is_file() and path.suffix.lower() == ".pdf":
        return path
    return None


def select_pdf(source_dir: Path) -> Path | None:
    console.print("\n[bold]Select a PDF file to process:[/]\n")

    pdf_files = sorted(source_dir.glob("*.pdf")) if source_dir.exists() else []

    if not pdf_files:
        console.print(f"  [dim]No PDFs found in {escape(str(source_dir))}/.[/]")
        choice = Prompt.ask("  Enter full path to a PDF file")
        path = _as_pdf(choice)
        if path is None:
            console.print(f"[red]File not found or not a PDF: {escape(choice)}[/]")
        return path

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("#", style="dim", width=4)
    table.add_column("Filename")
    table.add_column("Size", justify="right")
    for i, f in enumerate(pdf_files, 1):
        table.add_row(str(i), escape(f.name), format_file_size(f.stat().st_size))

    console.print(table)
    console.print(
        f"\n  [dim]Enter a number (1-{len(pdf_files)}) or type a full file path[/]"
    )
    choice = Prompt.ask("\n  Selection")

    try:
        idx = int(choice) - 1
    except ValueError:
        path = _as_pdf(choice)
        if path is None:
            console.print(f"[red]File not found or not a PDF: {escape(choice)}[/]")
        return path

    if 0 <= idx < len(pdf_files):
        return pdf_files[idx]
    console.print("[red]Invalid selection.[/]")
    return None


def select_levels() -> LevelsAdjustment | None:
    console.print("\n[bold]Levels adjustment[/]")
    console.print(
        "  [dim]Remaps black/white points before OCR; helps faded or grey scans.[/]"
    )
    if not Confirm.ask("\n  Apply a levels adjustment?", default=False):
        return None

    while True:
        black = IntPrompt.ask("  Black point %", default=10)
        white = IntPrompt.ask("  White point %", default=90)
        try:
            return LevelsAdjustment(black, white)
        except ValueError as e:
            console.print(f"  [red]{escape(str(e))}[/]")


def print_resume_status(counts: dict[str, int], total_pages: int) -> None:
    if not counts[STAGE_RASTER] and not counts[STAGE_OCR] and not counts["final"]:
        return
    console.print(
        Panel(
            f"[bold yellow]Previous progress found![/]\n\n"
            f"  [bold]Page images:[/]  {counts[STAGE_RASTER]}/{total_pages}\n"
            f"  [bold]OCR pages:[/]    {counts[STAGE_OCR]}/{total_pages}\n"
            f"  [bold]Final PDF:[/]    {'present' if counts['final'] else 'not yet'}\n\n"
            f"  [dim]Pages made with different settings are redone.[/]",
            title="[bold yellow]Resume Available[/]",
            border_style="yellow",
            padding=(1, 2),
        )
    )


def parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="scan2search",
        description="Convert a scanned PDF into a searchable PDF (resumable).",
    )
    parser.add_argument(
        "pdf", nargs="?", default=None,
        help="PDF to process (default: choose from the source directory)",
    )
    parser.add_argument(
        "--level", nargs=2, type=int, metavar=("BLACK", "WHITE"), default=None,
        help="Apply a levels adjustment, e.g. --level 10 90",
    )
    parser.add_argument(
        "--no-level", action="store_true",
        help="Do not ask about a levels adjustment",
    )
    parser.add_argument(
        "-y", "--yes", action="store_true",
        help="Start without asking for confirmation",
    )
    parser.add_argument(
        "--env-file", default=None,
        help="Read settings from this .env file (default: ./.env)",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser.parse_args(argv)


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)

    levels = None
    if args.level:
        try:
            levels = LevelsAdjustment(*args.level)
        except ValueError as e:
            console.print(f"[red]--level: {escape(str(e))}[/]")
            return 2

    try:
        settings = load_settings(args.env_file)
    except ValueError as e:
        console.print(f"[bold red]Configuration error:[/] {escape(str(e))}")
        return 1

    console.print(
        Panel(
            "[bold]scan2search[/]\n"
            "[dim]Scanned PDF → searchable PDF (raster → OCR → merge)[/]\n"
            f"[dim]Density: {settings.density} dpi  |  Quality: {settings.quality}  "
            f"|  Language: {settings.language}[/]",
            border_style="cyan",
            padding=(1, 2),
        )
    )

    # --- Setup ---
    log_path = setup_logging(settings)
    console.print(f"  [dim]Log: {escape(str(log_path))}[/]\n")

    runner = PipelineRunner(settings)
    problems = validate_tools(settings, runner.invoker)
    if problems:
        print_tool_problems(problems)
        return 1
    ensure_directories(settings)

    if args.pdf:
        pdf_path = _as_pdf(args.pdf)
        if pdf_path is None:
            console.print(f"[red]File not found or not a PDF: {escape(args.pdf)}[/]")
            return 1
    else:
        pdf_path = select_pdf(settings.source_dir)
        if pdf_path is None:
            return 1

    document = Document.from_path(pdf_path)
    try:
        total_pages = runner.page_count(document)
    except PipelineError as e:
        log.error("Page count failed: %s", e)
        print_error(e)
        return 1

    console.print(f"\n  [bold]File:[/]  {escape(pdf_path.name)}")
    console.print(f"  [bold]Size:[/]  {format_file_size(pdf_path.stat().st_size)}")
    console.print(f"  [bold]Pages:[/] {total_pages}")

    if levels is None and not args.no_level and not args.yes:
        levels = select_levels()

    print_resume_status(runner.summarize(document, total_pages), total_pages)

    if not args.yes and not Confirm.ask("\n  [bold]Start processing?[/]", default=True):
        console.print("\n  [dim]Cancelled.[/]")
        return 0

    log.info("PDF: %s (%d pages), levels=%s", pdf_path, total_pages,
             levels.level_arg if levels else "none")

    # --- Process ---
    console.print()
    try:
        with Progress(
            SpinnerColumn(),
            TextColumn("[bold cyan]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            TimeElapsedColumn(),
            console=console,
        ) as prog:

            def stage_progress(stage: str, total: int):
                label = STAGE_LABELS.get(stage, stage)
                task = prog.add_task(f"{label}...", total=total)

                def on_page(index: int, skipped: bool):
                    note = " (done earlier)" if skipped else ""
                    prog.update(task, description=f"{label}: page {index + 1}/{total}{note}")
                    prog.advance(task)

                return on_page

            result = runner.run(document, levels, total_pages, progress=stage_progress)
    except PipelineError as e:
        log.error("Pipeline failed: %s", e)
        print_error(e)
        return 1

    # --- Summary ---
    for w in result.warnings:
        console.print(f"  [yellow]Warning: {escape(w)}[/]")

    if result.status == STATUS_ALREADY_COMPLETE:
        console.print(
            f"\n  [green]Already complete:[/] {escape(str(result.final_path))} "
            f"({result.total_pages} pages)"
        )
        return 0

    lines = ["[bold green]Searchable PDF ready![/]\n"]
    lines.append(f"  [bold]Output:[/]       {escape(str(result.final_path))}")
    lines.append(f"  [bold]Pages:[/]        {result.total_pages}")
    for stage, report in result.reports.items():
        lines.append(
            f"  [bold]{STAGE_LABELS.get(stage, stage) + ':':<13}[/] "
            f"{len(report.processed)} done now, {len(report.skipped)} reused"
        )
    lines.append(
        f"  [bold]Output size:[/]  {format_file_size(result.final_path.stat().st_size)}"
    )
    if result.warnings:
        lines.append(f"\n  [yellow]{len(result.warnings)} warning(s), see above.[/]")

    console.print()
    console.print(
        Panel(
            "\n".join(lines),
            title="[bold green]Results[/]",
            border_style="green" if not result.warnings else "yellow",
            padding=(1, 2),
        )
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
