"""
Command-line interface for motion in-betweening data export.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Generator, List, Optional

from rich.console import Console
from rich.progress import BarColumn, Progress, TextColumn, TimeElapsedColumn

from phasebetween.config.settings import Character, PhaseMode, PipelineConfig
from phasebetween.core.exporter import ExportPathError, ExportProgress, ExportSummary, MotionExporter
from phasebetween.data.library import MotionLibrary

console = Console()


def setup_logging(verbose: bool = False):
    """Configure logging for the command-line tool."""
    formatter = logging.Formatter(
        fmt='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        datefmt='%H:%M:%S'
    )

    level = logging.DEBUG if verbose else logging.INFO

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.WARNING)
    root_logger.addHandler(console_handler)

    logging.getLogger('phasebetween').setLevel(level)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="phasebetween",
        description="Export motion in-betweening training data from BVH files",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Export every BVH file of a folder
  phasebetween data/bvh --output data/export

  # Only clips whose name contains "walk", without mirrored copies
  phasebetween data/bvh --output data/export --filter walk --no-mirror

  # Use a configuration file and local phase features
  phasebetween data/bvh --config export.yaml --phases LOCAL_PHASES

  # Write the default configuration to a file
  phasebetween --dump-config export.yaml
        """,
    )

    parser.add_argument(
        "source",
        type=Path,
        nargs="?",
        help="Folder containing BVH files",
    )

    parser.add_argument(
        "--output", "-o",
        type=Path,
        help="Existing export folder (overrides the config file)",
    )

    parser.add_argument(
        "--config",
        type=Path,
        help="Configuration file (YAML)",
    )

    parser.add_argument(
        "--filter",
        default=None,
        help="Only export files whose name contains this text (case-insensitive)",
    )

    parser.add_argument(
        "--phases",
        choices=[mode.name for mode in PhaseMode],
        help="Phase feature block",
    )

    parser.add_argument(
        "--character",
        choices=[character.name for character in Character],
        help="Contact bone preset",
    )

    parser.add_argument(
        "--styles",
        action="store_true",
        help="Export style label features",
    )

    parser.add_argument(
        "--no-mirror",
        action="store_true",
        help="Do not write mirrored copies",
    )

    parser.add_argument(
        "--frame-shifts",
        type=int,
        help="Number of additional sub-step shifted passes",
    )

    parser.add_argument(
        "--scale",
        type=float,
        help="Scale applied to imported positions",
    )

    parser.add_argument(
        "--dump-config",
        type=Path,
        help="Write the effective configuration to this YAML file and exit",
    )

    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable debug logging",
    )

    return parser


def load_config(args: argparse.Namespace) -> PipelineConfig:
    """Configuration from the optional file, overridden by command-line flags."""
    config = PipelineConfig.from_yaml(args.config) if args.config else PipelineConfig()

    if args.output is not None:
        config.export.export_dir = args.output
    if args.filter is not None:
        config.export.asset_filter = args.filter
    if args.phases is not None:
        config.export.phases = PhaseMode[args.phases]
    if args.character is not None:
        config.export.character = Character[args.character]
    if args.styles:
        config.export.export_style_labels = True
    if args.no_mirror:
        config.export.write_mirror = False
    if args.frame_shifts is not None:
        config.export.frame_shifts = args.frame_shifts
    if args.scale is not None:
        config.importing.scale = args.scale

    return config


def finish_run(run: Generator[ExportProgress, None, ExportSummary]) -> Optional[ExportSummary]:
    """Resume a cancelled run until it returns its summary (None if it already ended)."""
    while True:
        try:
            next(run)
        except StopIteration as stop:
            return stop.value


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(args.verbose)
    config = load_config(args)

    if args.dump_config:
        config.to_yaml(args.dump_config)
        console.print(f"[green]✓[/green] Wrote configuration: {args.dump_config}")
        return 0

    if args.source is None:
        parser.error("source folder is required (or use --dump-config)")

    issues = config.validate()
    if issues:
        console.print("[yellow]Configuration warnings:[/yellow]")
        for issue in issues:
            console.print(f"  - {issue}")

    try:
        library = MotionLibrary.scan(
            args.source,
            asset_filter=config.export.asset_filter,
            import_config=config.importing,
            mirror_axis=config.export.mirror_axis,
        )
    except FileNotFoundError as e:
        console.print(f"[red]Error:[/red] {e}")
        return 1

    if not library.entries:
        console.print("[yellow]No BVH files to export.[/yellow]")
        return 1

    exporter = MotionExporter(config, library)
    console.print(f"\n[bold green]Exporting {len(library.selected())} assets to:[/bold green] "
                  f"{config.export.export_dir}")

    run = exporter.run()
    summary = None
    interrupted = False
    try:
        try:
            with Progress(
                TextColumn("[progress.description]{task.description}"),
                BarColumn(),
                TextColumn("{task.completed}/{task.total} assets"),
                TextColumn("{task.fields[samples]} samples"),
                TextColumn("{task.fields[throughput]:.0f}/s"),
                TimeElapsedColumn(),
                console=console,
            ) as progress:
                task = progress.add_task(
                    "Exporting", total=len(library.entries), samples=0, throughput=0.0
                )
                while True:
                    try:
                        snapshot = next(run)
                    except StopIteration as stop:
                        summary = stop.value
                        break
                    progress.update(
                        task,
                        description=snapshot.asset + (" [Mirror]" if snapshot.mirrored else ""),
                        completed=snapshot.asset_position if snapshot.asset_done else snapshot.asset_position - 1,
                        samples=snapshot.samples,
                        throughput=snapshot.throughput,
                    )
        except KeyboardInterrupt:
            interrupted = True
            exporter.cancel()
            console.print("\n[yellow]Cancelling: finishing the current asset...[/yellow]")
            summary = finish_run(run)
    except KeyboardInterrupt:
        run.close()
        console.print("\n[red]Export aborted.[/red]")
        return 130
    except ExportPathError as e:
        console.print(f"[red]Error:[/red] {e}")
        return 1
    except Exception as e:
        console.print(f"\n[red]Error exporting data:[/red] {e}")
        logging.getLogger(__name__).debug("Export failed", exc_info=True)
        return 1

    if summary is None:
        # The interrupt stopped the run itself; its writers were finished on the way out
        summary = ExportSummary(
            samples=exporter.context.samples,
            sequences=exporter.context.sequence,
            assets_exported=sum(entry.exported for entry in library.entries),
            cancelled=True,
        )

    if interrupted or summary.cancelled:
        console.print("\n[bold yellow]Export cancelled; partial results were written.[/bold yellow]")
    else:
        console.print("\n[bold green]✓ Export complete![/bold green]")
    console.print(f"  Samples: {summary.samples}")
    console.print(f"  Sequences: {summary.sequences}")
    console.print(f"  Assets exported: {summary.assets_exported}")
    console.print(f"  Assets skipped: {summary.assets_skipped}")
    console.print(f"  Cancelled: {'yes' if summary.cancelled else 'no'}")
    console.print(f"  Elapsed: {summary.elapsed:.1f}s")
    return 130 if interrupted else 0


if __name__ == "__main__":
    sys.exit(main())
