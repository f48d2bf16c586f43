#!/usr/bin/env python3
"""
Main CLI entry point for brandpulse.

Submits image files as one batch, runs the analysis with bounded concurrency
and prints taglines and top keywords for each item.
"""
import sys
import json
import asyncio
import argparse
import logging
from pathlib import Path
from typing import List

from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn, BarColumn, TimeElapsedColumn
from rich.table import Table

from .api import AVAILABLE_APIS, get_client
from .core.config import EngineConfig
from .core.engine import BatchEngine
from .core.image_encoder import RawImage
from .core.keywords import ALL_PLATFORMS, SORT_ALPHABETICAL, SORT_RELEVANCE, filter_keywords, format_keywords, preview_keywords
from .core.models import BatchItem, ItemStatus, Platform
from .utils.log_utils import configure_logging, get_logger

logger = get_logger(__name__)


def parse_args(argv=None):
    defaults = EngineConfig.from_env()
    parser = argparse.ArgumentParser(description='Generate marketing taglines and stock keywords for images')
    parser.add_argument('images', nargs='+', help='Image files to analyze')
    parser.add_argument('--api',
                        default=defaults.api_name,
                        choices=AVAILABLE_APIS,
                        help=f'API provider to use for analysis (default: {defaults.api_name})')
    parser.add_argument('--concurrency',
                        type=int,
                        default=defaults.concurrency_limit,
                        help=f'Maximum concurrent API calls (default: {defaults.concurrency_limit})')
    parser.add_argument('--platform',
                        default=ALL_PLATFORMS,
                        choices=[ALL_PLATFORMS] + [p.value for p in Platform],
                        help='Only show keywords suited for this platform')
    parser.add_argument('--sort',
                        default=SORT_RELEVANCE,
                        choices=[SORT_RELEVANCE, SORT_ALPHABETICAL],
                        help='Keyword order (default: relevance)')
    parser.add_argument('--output',
                        help='Write all items as JSON to this file')
    parser.add_argument('--log-level',
                        choices=['debug', 'info', 'warning', 'error', 'critical', 'none'],
                        default='warning',
                        help="Set logging level ('none' to disable)")
    args = parser.parse_args(argv)
    if args.concurrency < 1:
        parser.error('--concurrency must be at least 1')
    return args, defaults


def print_item(console: Console, item: BatchItem, platform: str, sort_by: str) -> None:
    title = f"{item.name or item.id} [{item.status.value}]"
    if item.status is not ItemStatus.COMPLETED:
        console.print(f"[bold red]✗ {title}[/bold red]: {item.error}")
        return

    result = item.result
    table = Table(title=title, show_header=False, title_justify="left")
    table.add_column("Field", style="bold cyan", no_wrap=True)
    table.add_column("Value")
    table.add_row("Mood", result.description)
    table.add_row("Taglines", "\n".join(f"• {t}" for t in result.taglines))
    shown, hidden = preview_keywords(filter_keywords(result.keywords, platform, sort_by))
    keywords = ", ".join(f"{kw.word} ({kw.relevance})" for kw in shown)
    if hidden:
        keywords += f" [dim]+{hidden} more[/dim]"
    table.add_row("Keywords", keywords)
    table.add_row("Platforms", ", ".join(result.suggested_platforms))
    console.print(table)


async def run_batch(engine: BatchEngine, paths: List[Path], console: Console) -> None:
    images = []
    for path in paths:
        try:
            images.append(RawImage.from_path(path))
        except OSError as err:
            console.print(f"[red]Cannot read {path}: {err}[/red]")
    ids = await engine.submit(images)
    if not ids:
        return

    with Progress(
        SpinnerColumn("dots8"),
        TextColumn("[bold yellow]Analyzing images..."),
        BarColumn(bar_width=None),
        TextColumn("({task.completed}/{task.total})"),
        TimeElapsedColumn(),
        console=console,
    ) as progress:
        task = progress.add_task("analyze", total=len(ids))

        def on_item_changed(item: BatchItem) -> None:
            if item.status in (ItemStatus.COMPLETED, ItemStatus.ERROR):
                progress.advance(task)

        engine.on_item_changed = on_item_changed
        await engine.process_all()


def main(argv=None):
    args, defaults = parse_args(argv)
    if args.log_level.lower() != 'none':
        configure_logging(getattr(logging, args.log_level.upper()))

    console = Console()
    try:
        provider = get_client(args.api)
    except ValueError as err:
        console.print(f"[red]{err}[/red]")
        sys.exit(1)

    config = EngineConfig(
        concurrency_limit=args.concurrency,
        max_dimension=defaults.max_dimension,
        batch_quality=defaults.batch_quality,
        capture_quality=defaults.capture_quality,
        preview_size=defaults.preview_size,
        api_name=args.api,
    )
    engine = BatchEngine(provider, config)
    engine.on_rejected = lambda image, err: console.print(f"[yellow]Skipped {image.name}: {err}[/yellow]")

    try:
        asyncio.run(run_batch(engine, [Path(p) for p in args.images], console))
    except KeyboardInterrupt:
        console.print("Interrupted")
        sys.exit(130)

    items = engine.snapshot()
    for item in reversed(items):
        print_item(console, item, args.platform, args.sort)

    stats = engine.stats()
    console.print(
        f"\n{int(stats['completed'])} done, {int(stats['error'])} failed of {int(stats['total'])} "
        f"({stats['progress']:.0f}%)"
    )
    combined = engine.combined_keywords()
    if combined:
        console.print(f"[bold]Batch keywords:[/bold] {format_keywords(combined)}")

    if args.output:
        Path(args.output).write_text(
            json.dumps([item.to_dict() for item in reversed(items)], ensure_ascii=False, indent=2),
            encoding='utf-8',
        )
        console.print(f"Wrote {len(items)} item(s) to {args.output}")

    engine.clear_all()
    sys.exit(0 if stats['error'] == 0 else 1)


if __name__ == "__main__":
    main()
