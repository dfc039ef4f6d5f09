"""Rich command-line interface powered by Typer."""

from __future__ import annotations

import logging
import time
from collections.abc import Sequence
from pathlib import Path

import numpy as np
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.progress import BarColumn, MofNCompleteColumn, Progress, TextColumn, TimeElapsedColumn
from rich.table import Table

from mosaicify.assignment import RunResult
from mosaicify.config import MosaicConfig
from mosaicify.coordinator import build_assignment, build_pool
from mosaicify.errors import InvalidConfig, MosaicError
from mosaicify.grid import GridCell
from mosaicify.image_io import collect_images, compose_mosaic, load_image, load_sources, save_image
from mosaicify.pool import CandidatePool

app = typer.Typer(
    name="mosaicify",
    help="Generate a photomosaic of a target image from a folder of source images.",
    add_completion=False,
    rich_markup_mode="rich",
)
console = Console()
logger = logging.getLogger("mosaicify")


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False, markup=True)],
    )


def _parse_weights(weights: str | None) -> tuple[float, ...] | None:
    if not weights:
        return None
    try:
        return tuple(float(w) for w in weights.split(","))
    except ValueError as exc:
        raise InvalidConfig(f"cannot parse channel weights '{weights}'") from exc


def _mean_distance(
    pool: CandidatePool, cells: Sequence[GridCell], result: RunResult,
) -> float:
    dists = [
        pool.distances(cell.signature)[result.assignment[cell.coords]]
        for cell in cells
        if cell.coords in result.assignment
    ]
    return float(np.mean(dists)) if dists else float("nan")


def _report_failures(result: RunResult) -> None:
    table = Table(title="Unassigned cells", border_style="red")
    table.add_column("row", justify="right")
    table.add_column("col", justify="right")
    table.add_column("reason")
    for failure in result.failures:
        r, c = failure.coords
        table.add_row(str(r), str(c), f"{type(failure.error).__name__}: {failure.error}")
    console.print(table)


def _run_one(
    target_path: Path,
    output: Path,
    pool: CandidatePool,
    sources: Sequence[np.ndarray],
    cfg: MosaicConfig,
    max_side: int | None,
    scale: int,
    allow_gaps: bool,
) -> bool:
    """Build and save one mosaic. Returns False if cells were left empty."""
    target = load_image(target_path, max_side)
    h, w = target.shape[:2]
    logger.info("Target: %dx%d, grid %dx%d", w, h, cfg.rows, cfg.cols)

    with Progress(
        TextColumn("[cyan]{task.description}"),
        BarColumn(),
        MofNCompleteColumn(),
        TimeElapsedColumn(),
        console=console,
        transient=True,
    ) as progress:
        task = progress.add_task("Matching", total=cfg.rows * cfg.cols)
        cells, result = build_assignment(
            target, pool, cfg, progress=lambda _cell: progress.advance(task),
        )

    if result.failures:
        _report_failures(result)
        if not allow_gaps:
            return False

    mosaic = compose_mosaic(target.shape, cells, result.assignment, sources, scale)
    output.parent.mkdir(parents=True, exist_ok=True)
    save_image(mosaic, output)

    console.print(
        f"  [green]✓[/green] {output}  "
        f"[dim]{cfg.rows}x{cfg.cols} cells  "
        f"{len(set(result.assignment.values()))} distinct sources  "
        f"mean distance={_mean_distance(pool, cells, result):.1f}[/dim]"
    )
    return not result.failures


def _make_config(**kwargs) -> MosaicConfig:
    return MosaicConfig(**kwargs).validate()


def _load_pool(
    images_dir: Path, cfg: MosaicConfig,
) -> tuple[CandidatePool, list[np.ndarray]]:
    paths = collect_images(images_dir, cfg.SUPPORTED_EXTENSIONS)
    sources, labels = load_sources(paths, cfg.source_max_side)
    return build_pool(sources, cfg, labels), sources


# Defaults come from MosaicConfig - single source of truth
_DEFAULTS = MosaicConfig()


# -- build command -----------------------------------------------------

@app.command()
def build(
    target: Path = typer.Argument(..., help="Path to the target image"),
    rows: int = typer.Argument(..., help="Number of rows in the mosaic"),
    cols: int = typer.Argument(..., help="Number of columns in the mosaic"),
    images: Path = typer.Argument(..., help="Folder containing the source images"),
    output: Path = typer.Option(_DEFAULTS.output, "--output", "-o", help="Output image path"),
    color_space: str = typer.Option(
        _DEFAULTS.color_space, "--color-space", "-c", help="'lab', 'rgb' or 'gray'",
    ),
    avoid_duplicates: bool = typer.Option(
        _DEFAULTS.avoid_duplicates, "--avoid-duplicates", "-d",
        help="Use every source image at most once",
    ),
    solver: str = typer.Option(_DEFAULTS.solver, "--solver", help="'greedy' or 'hungarian'"),
    metric: str = typer.Option(_DEFAULTS.metric, "--metric", help="'euclidean' or 'manhattan'"),
    weights: str | None = typer.Option(
        None, "--weights", help="Comma-separated channel weights, e.g. '2,1,1'",
    ),
    subregions: int = typer.Option(
        _DEFAULTS.subregions, "--subregions", help="Compare n x n sub-grids of means",
    ),
    workers: int | None = typer.Option(_DEFAULTS.workers, "--workers", "-w"),
    deterministic: bool = typer.Option(
        _DEFAULTS.deterministic, "--deterministic",
        help="Match cells sequentially for reproducible output",
    ),
    shuffle: bool = typer.Option(
        _DEFAULTS.shuffle, "--shuffle/--no-shuffle", help="Visit cells in random order",
    ),
    seed: int | None = typer.Option(_DEFAULTS.seed, "--seed", "-s"),
    max_side: int | None = typer.Option(
        None, "--max-side", "-m", help="Shrink the target so its longest side is at most this",
    ),
    source_max_side: int = typer.Option(
        _DEFAULTS.source_max_side, "--source-max-side", help="Shrink sources on load",
    ),
    scale: int = typer.Option(1, "--scale", help="Output magnification"),
    allow_gaps: bool = typer.Option(
        False, "--allow-gaps", help="Save the mosaic even if some cells failed",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    """Build a mosaic of TARGET from the images in IMAGES."""
    _setup_logging(verbose)
    try:
        cfg = _make_config(
            rows=rows, cols=cols, avoid_duplicates=avoid_duplicates,
            color_space=color_space, metric=metric,
            channel_weights=_parse_weights(weights), subregions=subregions,
            solver=solver, workers=workers, deterministic=deterministic,
            shuffle=shuffle, seed=seed, source_max_side=source_max_side,
            output=output,
        )
        console.print(Panel.fit(
            f"[bold]MOSAICIFY[/bold]\n"
            f"Grid: {cfg.rows}x{cfg.cols}  |  Colour space: {cfg.color_space}\n"
            f"Solver: {cfg.solver}  |  Avoid duplicates: {cfg.avoid_duplicates}",
            border_style="cyan",
        ))
        t0 = time.perf_counter()
        pool, sources = _load_pool(images, cfg)
        ok = _run_one(target, output, pool, sources, cfg, max_side, scale, allow_gaps)
    except MosaicError as exc:
        console.print(f"[bold red]Error:[/bold red] {exc}")
        raise typer.Exit(1) from exc

    if not ok:
        console.print("[red]Mosaic incomplete.[/red]")
        raise typer.Exit(1)
    console.print(f"[dim]Done in {time.perf_counter() - t0:.1f}s[/dim]")


# -- batch command -----------------------------------------------------

@app.command()
def batch(
    input_dir: Path = typer.Option(Path("targets"), "--input", "-i", help="Folder with target images"),
    images: Path = typer.Option(Path("images"), "--images", help="Folder with source images"),
    output_dir: Path = typer.Option(Path("output"), "--output", "-o", help="Results folder"),
    rows: int = typer.Option(_DEFAULTS.rows, "--rows", "-r"),
    cols: int = typer.Option(_DEFAULTS.cols, "--cols", "-k"),
    color_space: str = typer.Option(_DEFAULTS.color_space, "--color-space", "-c"),
    avoid_duplicates: bool = typer.Option(_DEFAULTS.avoid_duplicates, "--avoid-duplicates", "-d"),
    solver: str = typer.Option(_DEFAULTS.solver, "--solver"),
    seed: int | None = typer.Option(_DEFAULTS.seed, "--seed", "-s"),
    output_format: str = typer.Option("jpg", "--format", help="Output image format"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    """Build a mosaic for every image in INPUT_DIR, sharing one source pool."""
    _setup_logging(verbose)
    try:
        cfg = _make_config(
            rows=rows, cols=cols, color_space=color_space,
            avoid_duplicates=avoid_duplicates, solver=solver, seed=seed,
        )
        targets = collect_images(input_dir, cfg.SUPPORTED_EXTENSIONS)
        if not targets:
            console.print(f"\n[yellow]No images found in {input_dir}/[/yellow]")
            raise typer.Exit(0)
        pool, sources = _load_pool(images, cfg)
    except MosaicError as exc:
        console.print(f"[bold red]Error:[/bold red] {exc}")
        raise typer.Exit(1) from exc

    failed = []
    for idx, target_path in enumerate(targets, 1):
        console.rule(f"[bold cyan][{idx}/{len(targets)}] {target_path.name}[/bold cyan]")
        out = output_dir / f"{target_path.stem}_mosaic.{output_format}"
        try:
            if not _run_one(target_path, out, pool.fresh(), sources, cfg, None, 1, False):
                failed.append(target_path.name)
        except MosaicError as exc:
            console.print(f"  [red]✗[/red] {exc}")
            failed.append(target_path.name)

    if failed:
        console.print(f"[red]{len(failed)} target(s) failed:[/red] {', '.join(failed)}")
        raise typer.Exit(1)
    console.print(Panel.fit(
        f"[bold green]ALL DONE[/bold green] - results in [bold]{output_dir}/[/bold]",
        border_style="green",
    ))


if __name__ == "__main__":
    app()
