from __future__ import annotations

import json
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import List, Optional

import typer
import yaml
from rich import print as rprint
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

# Layout + thresholds (YAML/JSON) and their defaults
from .config_io import SheetConfig, layout_to_dict, load_sheet_config, DEFAULT_LAYOUT
from .scoring_defaults import apply_overrides

# Core modules
from .analyze_core import analyze
from .grade_core import grade_images
from .visualize_core import overlay_layout
from .results import AnalysisResult, SheetMetadata
from .tools.image_io import directory_sink, load_images, rotate_upright, save_image
from .tools.qr_metadata import decode_metadata, render_metadata_qr

app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help="sheet-omr: read answers and identity QR codes from photographed answer sheets.",
)

console = Console()


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True, show_path=False)],
        force=True,
    )


def _load_config(
    layout: Optional[str],
    min_fill_multiplier: Optional[float] = None,
    dominance_ratio: Optional[float] = None,
    block_size: Optional[int] = None,
    offset: Optional[float] = None,
) -> SheetConfig:
    """Load the layout file and apply command-line threshold overrides; exit 2 on bad config."""
    try:
        cfg = load_sheet_config(layout)
        scoring = apply_overrides(cfg.scoring,
                                  min_fill_multiplier=min_fill_multiplier,
                                  dominance_ratio=dominance_ratio)
        binarize = cfg.binarize
        if block_size is not None:
            binarize = replace(binarize, block_size=block_size)
        if offset is not None:
            binarize = replace(binarize, offset=offset)
    except (OSError, ValueError, yaml.YAMLError) as e:
        rprint(f"[red]Failed to load layout {layout}:[/red] {e}")
        raise typer.Exit(code=2)
    return SheetConfig(layout=cfg.layout, scoring=scoring, binarize=binarize)


def _result_table(title: str, result: AnalysisResult, cfg: SheetConfig) -> Table:
    layout = cfg.layout
    table = Table(title=title, show_lines=False)
    table.add_column("Q", justify="right")
    for spec in layout.columns:
        table.add_column(spec.name, justify="center")
    by_key = {(a.test_index, a.question_number): a.detected for a in result.answers}
    for q in range(1, layout.questions_per_column + 1):
        cells = []
        for t in range(len(layout.columns)):
            label = layout.label_for(by_key.get((t, q), -1))
            cells.append({"": "[dim]-[/dim]", "*": "[yellow]*[/yellow]"}.get(label, label))
        table.add_row(str(q), *cells)
    return table


def _metadata_text(meta: Optional[SheetMetadata]) -> str:
    if meta is None:
        return "no QR metadata"
    return f"type={meta.test_type or '-'} set={meta.set_number if meta.set_number is not None else '-'} " \
           f"seat={meta.seat_number if meta.seat_number is not None else '-'}"


# ------------------------------- SCAN --------------------------------
@app.command()
def scan(
    inputs: List[str] = typer.Argument(..., help="Photos, scans or PDFs"),
    layout: Optional[str] = typer.Option(None, "--layout", "-l", help="Layout file (.yaml/.yml or .json); default 4x25x4 sheet"),
    rotation: int = typer.Option(0, "--rotation", "-r", help="Clockwise rotation to apply first: 0|90|180|270"),
    debug_dir: Optional[str] = typer.Option(None, "--debug-dir", help="Directory to dump intermediate images"),
    as_json: bool = typer.Option(False, "--json", help="Print one JSON object per page instead of tables"),
    no_qr: bool = typer.Option(False, "--no-qr", help="Skip QR metadata decoding"),
    dpi: int = typer.Option(200, "--dpi", help="Render DPI for PDF input"),
):
    """
    Read the answers on each page and print them.
    """
    cfg = _load_config(layout)
    failures = 0
    for path in inputs:
        try:
            pages = load_images(path, dpi=dpi)
        except (FileNotFoundError, RuntimeError) as e:
            rprint(f"[red]Could not read {path}:[/red] {e}")
            failures += 1
            continue

        for page_idx, img in enumerate(pages, start=1):
            sink = directory_sink(debug_dir, prefix=f"{Path(path).stem}_p{page_idx:03d}_") if debug_dir else None
            try:
                result = analyze(img, cfg.layout, rotation=rotation, scoring=cfg.scoring,
                                 binarize_params=cfg.binarize, decode_qr=not no_qr, debug_sink=sink)
            except ValueError as e:
                rprint(f"[red]Analysis failed for {path}:[/red] {e}")
                raise typer.Exit(code=2)

            if as_json:
                payload = {"source": path, "page_index": page_idx, **result.to_dict()}
                typer.echo(json.dumps(payload))
                continue

            title = f"{Path(path).name} p{page_idx} - {_metadata_text(result.metadata)}"
            if not result.sheet_found:
                rprint(f"[yellow]{title}: no sheet found[/yellow]")
                continue
            console.print(_result_table(title, result, cfg))

    if failures and failures == len(inputs):
        raise typer.Exit(code=2)


# ------------------------------- GRADE -------------------------------
@app.command()
def grade(
    inputs: List[str] = typer.Argument(..., help="Photos, scans or PDFs"),
    layout: Optional[str] = typer.Option(None, "--layout", "-l", help="Layout file (.yaml/.yml or .json)"),
    key_txt: Optional[str] = typer.Option(None, "--key-txt", "-k",
        help="Answer key: one line per test element, one letter per question ('-' = unkeyed)."),
    out_csv: str = typer.Option("results.csv", "--out-csv", "-o", help="Output CSV of per-page results"),
    out_annotated_dir: Optional[str] = typer.Option(None, "--out-annotated-dir", help="Directory to write annotated sheets"),
    rotation: int = typer.Option(0, "--rotation", "-r", help="Clockwise rotation to apply first: 0|90|180|270"),
    min_fill_multiplier: Optional[float] = typer.Option(None, "--min-fill-multiplier",
        help="Best choice must reach mean(row) x this to count as marked"),
    dominance_ratio: Optional[float] = typer.Option(None, "--dominance-ratio",
        help="Second-best above best x this means 'multiple marks'"),
    block_size: Optional[int] = typer.Option(None, "--block-size", help="Adaptive threshold block size (odd)"),
    offset: Optional[float] = typer.Option(None, "--offset", help="Adaptive threshold offset"),
    dpi: int = typer.Option(200, "--dpi", help="Render DPI for PDF input"),
):
    """
    Grade a batch of sheets into a CSV, optionally scoring against a key.
    """
    cfg = _load_config(layout, min_fill_multiplier, dominance_ratio, block_size, offset)
    try:
        results = grade_images(
            inputs,
            cfg,
            out_csv=out_csv,
            key_txt=key_txt,
            out_annotated_dir=out_annotated_dir,
            rotation=rotation,
            dpi=dpi,
        )
    except (OSError, ValueError) as e:
        rprint(f"[red]Grading failed:[/red] {e}")
        raise typer.Exit(code=2)

    found = sum(1 for r in results if r.sheet_found)
    rprint(f"[green]Wrote results:[/green] {out_csv} ({found}/{len(results)} sheets found)")


# --------------------------- VISUALIZE -------------------------------
@app.command()
def visualize(
    input_path: str = typer.Argument(..., help="A photo/scan of a sheet or the blank template"),
    layout: Optional[str] = typer.Option(None, "--layout", "-l", help="Layout file (.yaml/.yml or .json)"),
    out_image: str = typer.Option("layout_overlay.png", "--out-image", "-o", help="Output overlay PNG"),
    rectify: bool = typer.Option(True, "--rectify/--no-rectify", help="Warp to the canonical frame first"),
    dpi: int = typer.Option(200, "--dpi", help="Render DPI for PDF input"),
):
    """
    Overlay the layout's column zones and bubble cells to check calibration.
    """
    cfg = _load_config(layout)
    try:
        out, quad = overlay_layout(input_path, cfg.layout, out_image=out_image,
                                   rectify_sheet=rectify, pad=cfg.scoring.cell_padding, dpi=dpi)
    except (OSError, RuntimeError) as e:
        rprint(f"[red]Visualization failed for {input_path}:[/red] {e}")
        raise typer.Exit(code=2)
    if rectify and quad is None:
        rprint("[yellow]No sheet outline found; overlay drawn on the resized page.[/yellow]")
    rprint(f"[green]Wrote:[/green] {out}")


# -------------------------------- QR ---------------------------------
@app.command()
def qr(
    input_path: str = typer.Argument(..., help="Photo/scan containing the identity QR code"),
    rotation: int = typer.Option(0, "--rotation", "-r", help="Clockwise rotation to apply first"),
):
    """
    Decode only the sheet identity QR code.
    """
    try:
        img = rotate_upright(load_images(input_path)[0], rotation)
    except (FileNotFoundError, RuntimeError, ValueError) as e:
        rprint(f"[red]Could not read {input_path}:[/red] {e}")
        raise typer.Exit(code=2)
    meta = decode_metadata(img)
    if meta is None:
        rprint("[yellow]No QR metadata found.[/yellow]")
        raise typer.Exit(code=1)
    rprint(f"[green]{_metadata_text(meta)}[/green]  (raw: {meta.raw})")


@app.command("make-qr")
def make_qr(
    out: str = typer.Option("sheet_qr.png", "--out", "-o", help="Output PNG"),
    test_type: Optional[str] = typer.Option(None, "--type", help="Test type/variant, e.g. C"),
    set_number: Optional[int] = typer.Option(None, "--set", help="Set number"),
    seat_number: Optional[int] = typer.Option(None, "--seat", help="Seat number"),
    module_px: int = typer.Option(8, "--module-px", help="Pixels per QR module"),
):
    """
    Generate an identity QR code to print on a sheet.
    """
    meta = SheetMetadata(test_type=test_type, set_number=set_number, seat_number=seat_number)
    try:
        img = render_metadata_qr(meta, module_px=module_px)
    except ValueError as e:
        rprint(f"[red]{e}[/red]")
        raise typer.Exit(code=2)
    rprint(f"[green]Wrote:[/green] {save_image(img, out)}")


@app.command("init-layout")
def init_layout(
    out: str = typer.Argument("layout.yaml", help="Where to write the default layout"),
):
    """
    Write the built-in 4 x 25 x 4 layout as YAML, as a starting point for calibration.
    """
    path = Path(out)
    if path.exists():
        rprint(f"[red]{path} already exists[/red]")
        raise typer.Exit(code=2)
    path.write_text(yaml.safe_dump(layout_to_dict(DEFAULT_LAYOUT), sort_keys=False), encoding="utf-8")
    rprint(f"[green]Wrote:[/green] {path}")


# ------------------------------- MAIN --------------------------------
def app_main() -> None:
    """Entry point for console_scripts."""
    try:
        app()
    except KeyboardInterrupt:
        rprint("\n[red]Interrupted[/red]")
        sys.exit(130)


if __name__ == "__main__":
    app_main()
