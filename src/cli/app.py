"""Typer application entrypoint."""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional

import typer
from pydantic import ValidationError
from rich import print as rprint
from rich.table import Table

from compress.config import BoundaryPolicy, CompressionConfig, bytes_to_human, human_to_bytes
from compress.engine import CompressionResult, run_compression
from compress.errors import CompressionError, FileAccessError
from logging_config import configure_logging


configure_logging()

PROG_NAME = "chunkpress"
USAGE = f"Usage: {PROG_NAME} <input_file> <output_file>"

app = typer.Typer(help="Compress a file with concurrent chunk workers", add_completion=False)


def _print_summary(result: CompressionResult) -> None:
    table = Table(title=f"{result.input_path.name} -> {result.output_path.name}")
    table.add_column("Block", justify="right")
    table.add_column("Compressed", justify="right")
    for index, size in enumerate(result.block_sizes, start=1):
        table.add_row(str(index), bytes_to_human(size))
    rprint(table)
    rprint(
        f"{bytes_to_human(result.input_bytes)} -> {bytes_to_human(result.output_bytes)} "
        f"in {result.blocks} block(s), ratio {result.ratio:.2f}, {result.elapsed_seconds:.2f}s"
    )


@app.command()
def compress(
    paths: Optional[List[str]] = typer.Argument(None, metavar="INPUT_FILE OUTPUT_FILE", show_default=False),
    chunk_size: str = typer.Option("1024", "--chunk-size", help="Compressed size that closes a block (e.g. 1024, 64KiB)"),
    workers: int = typer.Option(4, min=1, max=64, help="Number of chunk workers"),
    order: str = typer.Option("length", help="Block order: length or sequence"),
    partition: str = typer.Option("shared", help="Input sharing: shared cursor or byte ranges"),
    receive: str = typer.Option("bounded", help="Collector receive policy: bounded or until-done"),
    strict: bool = typer.Option(False, "--strict/--lenient", help="Exit non-zero on usage and open/create errors"),
    verify: bool = typer.Option(False, help="Decode the written output after compressing"),
    summary: bool = typer.Option(False, help="Print a table of the written blocks"),
) -> None:
    """Compress INPUT_FILE into OUTPUT_FILE."""

    policy = BoundaryPolicy.STRICT if strict else BoundaryPolicy.LENIENT

    if not paths or len(paths) != 2:
        typer.echo(USAGE, err=True)
        raise typer.Exit(code=policy.exit_code())

    order_value = order.lower()
    if order_value not in {"length", "sequence"}:
        typer.echo("Order must be 'length' or 'sequence'.", err=True)
        raise typer.Exit(code=1)
    partition_value = partition.lower()
    if partition_value not in {"shared", "ranges"}:
        typer.echo("Partition must be 'shared' or 'ranges'.", err=True)
        raise typer.Exit(code=1)
    receive_value = receive.lower().replace("-", "_")
    if receive_value not in {"bounded", "until_done"}:
        typer.echo("Receive must be 'bounded' or 'until-done'.", err=True)
        raise typer.Exit(code=1)
    try:
        chunk_bytes = human_to_bytes(chunk_size)
    except ValueError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1)

    try:
        config = CompressionConfig(
            chunk_size=chunk_bytes,
            workers=workers,
            ordering=order_value,  # type: ignore[arg-type]
            partition=partition_value,  # type: ignore[arg-type]
            receive=receive_value,  # type: ignore[arg-type]
            verify=verify,
        )
    except ValidationError as exc:
        typer.echo(f"Invalid options: {exc}", err=True)
        raise typer.Exit(code=1)

    input_path, output_path = (Path(value) for value in paths)
    try:
        result = run_compression(config, input_path, output_path)
    except FileAccessError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=policy.exit_code())
    except CompressionError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1)

    if summary:
        _print_summary(result)


def main() -> None:
    app(prog_name=PROG_NAME)


if __name__ == "__main__":
    main()
