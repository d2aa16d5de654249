from __future__ import annotations

import sys
from enum import Enum
from pathlib import Path
from typing import Optional

import typer

from pingmap.models import Block, InvalidBlockError, ProbeResult, RetryPolicy, SweepConfig
from pingmap.processing.results import outcome_counts, results_to_dataframe, save_csv
from pingmap.sweep.engine import run_sweep
from pingmap.utils.logging import configure_logging, get_logger
from pingmap.viz.bitmap import build_bitmap_figure
from pingmap.viz.export import save_html, save_png

app = typer.Typer(help="ICMP sweep of an IPv4 block, drawn as a Hilbert-curve bitmap.")

log = get_logger(__name__)


class OutputFormat(str, Enum):
    png = "png"
    html = "html"


@app.callback()
def _root() -> None:
    """ICMP sweep of an IPv4 block, drawn as a Hilbert-curve bitmap."""


def _parse_block(cidr: str) -> Block:
    try:
        return Block.from_cidr(cidr)
    except InvalidBlockError as e:
        raise typer.BadParameter(str(e), param_hint="'CIDR'")


@app.command()
def sweep(
        cidr: str = typer.Argument(
            ...,
            help="IPv4 block to sweep, e.g. 192.168.1.0/24 (prefix between /2 and /32).",
        ),
        output: Path = typer.Option(
            Path("image.png"),
            "--output",
            "-o",
            help="Output file path (PNG or HTML).",
        ),
        output_format: OutputFormat = typer.Option(
            OutputFormat.png,
            "--output-format",
            "-f",
            help="Output format: png | html",
        ),
        pool_size: int = typer.Option(
            20,
            "--pool-size",
            "-w",
            envvar="PINGMAP_POOL_SIZE",
            help="Number of concurrent probe workers.",
        ),
        queue_capacity: int = typer.Option(
            10,
            "--queue-capacity",
            envvar="PINGMAP_QUEUE_CAPACITY",
            help="Capacity of the task and result queues (backpressure threshold).",
        ),
        timeout: float = typer.Option(
            3.0,
            "--timeout",
            envvar="PINGMAP_TIMEOUT",
            help="Seconds to wait for each echo reply.",
        ),
        max_attempts: int = typer.Option(
            3,
            "--max-attempts",
            envvar="PINGMAP_MAX_ATTEMPTS",
            help="Attempts per address before it is recorded as unreachable.",
        ),
        retry_backoff: float = typer.Option(
            0.5,
            "--retry-backoff",
            help="Seconds before retrying after a socket error (doubled each time).",
        ),
        privileged: bool = typer.Option(
            True,
            "--privileged/--unprivileged",
            help="Raw ICMP sockets (root / CAP_NET_RAW) or Linux unprivileged ping sockets.",
        ),
        fit_canvas: bool = typer.Option(
            False,
            "--fit-canvas",
            help="Size the bitmap to the Hilbert grid instead of the fixed 2 x prefix length.",
        ),
        pixel_size: int = typer.Option(
            1,
            "--pixel-size",
            min=1,
            help="Upscale factor: rendered size of one bitmap pixel (1 keeps the 2 x prefix raster).",
        ),
        csv: Optional[Path] = typer.Option(
            None,
            "--csv",
            help="Also write a per-address CSV report to this path.",
        ),
        verbose: bool = typer.Option(
            False,
            "--verbose",
            "-v",
            help="Log every retry and clipped pixel.",
        ),
):
    """
    Ping every host of CIDR and draw the result along a Hilbert curve.

    Example:

        sudo pingmap sweep 192.168.1.0/24 -o lan.png
        pingmap sweep 10.0.0.0/28 --unprivileged -f html -o lan.html --csv lan.csv
    """
    configure_logging(verbose)

    # 1) validate input
    block = _parse_block(cidr)
    try:
        config = SweepConfig(
            pool_size=pool_size,
            queue_capacity=queue_capacity,
            probe_timeout=timeout,
            retry=RetryPolicy(max_attempts=max_attempts, backoff=retry_backoff),
            privileged=privileged,
            fit_canvas=fit_canvas,
        )
    except ValueError as e:
        raise typer.BadParameter(str(e))

    # 2) sweep
    collected: list[ProbeResult] = []
    with typer.progressbar(length=block.host_count, label=f"Sweeping {block.cidr}", file=sys.stderr) as bar:
        def on_result(result: ProbeResult) -> None:
            bar.update(1)
            if csv is not None:
                collected.append(result)

        summary = run_sweep(block, config, on_result=on_result)

    # 3) export
    fig = build_bitmap_figure(
        summary.canvas,
        title=block.cidr if output_format == OutputFormat.html else None,
        pixel_size=pixel_size,
    )
    output = output.expanduser().resolve()
    if output_format == OutputFormat.png:
        if output.suffix.lower() != ".png":
            output = output.with_suffix(".png")
        save_png(fig, output)
    else:
        if output.suffix.lower() not in (".html", ".htm"):
            output = output.with_suffix(".html")
        save_html(fig, output, caption=f"{summary.reachable}/{summary.total} hosts reachable")
    typer.echo(f"Wrote bitmap to {output}")

    if csv is not None:
        df = results_to_dataframe(collected, block.size)
        save_csv(df, csv.expanduser().resolve())
        counts = outcome_counts(df)
        log.info("Outcomes: %s", ", ".join(f"{k}={v}" for k, v in counts.items()))
        typer.echo(f"Wrote {len(df)} rows to {csv}")

    typer.echo(f"{summary.reachable}/{summary.total} hosts reachable in {block.cidr}")


def main() -> None:
    """Entry point for console_scripts."""
    try:
        app(prog_name="pingmap")
    except KeyboardInterrupt:
        # worker threads are daemons, so leaving here ends the sweep
        typer.echo("Sweep interrupted; no bitmap written.", err=True)
        raise SystemExit(130)


if __name__ == "__main__":
    main()
