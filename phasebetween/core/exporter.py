"""
Export orchestration.

Walks the selected assets (asset -> mirror -> frame shift -> sequence -> time
step), builds a Container pair per step, encodes it and stores the resulting
vectors. The run is a generator that yields progress snapshots so a caller
can refresh a display or cancel between batches.
"""

import logging
import math
import time
from contextlib import ExitStack
from dataclasses import dataclass, field
from pathlib import Path
from threading import Event
from typing import Callable, Generator, Optional

from phasebetween.config.settings import PipelineConfig
from phasebetween.core.container import FrameExtractor
from phasebetween.core.encoder import MotionInBetweeningEncoder
from phasebetween.core.feature_writer import FeatureWriter
from phasebetween.data.bvh_importer import BVHParseError
from phasebetween.data.library import AssetEntry, MotionLibrary
from phasebetween.data.motion_data import MotionAsset

logger = logging.getLogger(__name__)

# Tolerance for comparing accumulated sample times against sequence bounds
TIME_EPSILON = 1e-6


class ExportPathError(FileNotFoundError):
    """Raised when the export directory does not exist."""


@dataclass
class RunContext:
    """Mutable state of the current export run."""
    cancel_event: Event = field(default_factory=Event)
    exporting: bool = False
    mirrored: bool = False
    sequence: int = 0
    samples: int = 0

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def reset(self):
        self.cancel_event.clear()
        self.exporting = False
        self.mirrored = False
        self.sequence = 0
        self.samples = 0


@dataclass
class ExportProgress:
    """
    Snapshot yielded during an export run.

    Attributes:
        asset: Name of the asset being exported
        asset_position: 1-based position among the library entries
        asset_count: Number of library entries
        progress: Fraction of the current sequence completed
        samples: Vectors stored so far
        throughput: Vectors per second over the last batch
        asset_done: True for the snapshot that closes an asset
    """
    asset: str
    asset_position: int
    asset_count: int
    progress: float
    samples: int
    throughput: float
    mirrored: bool = False
    asset_done: bool = False


@dataclass
class ExportSummary:
    """Result of a finished (or cancelled) export run."""
    samples: int = 0
    sequences: int = 0
    assets_exported: int = 0
    assets_skipped: int = 0
    cancelled: bool = False
    elapsed: float = 0.0


def ceil_to_target_time(timestamp: float, framerate: float) -> float:
    return math.ceil(round(timestamp * framerate, 6)) / framerate


def floor_to_target_time(timestamp: float, framerate: float) -> float:
    return math.floor(round(timestamp * framerate, 6)) / framerate


class MotionExporter:
    """
    Exports in-betweening training data for a motion library.

    Files written to the export directory:
        Sequences.txt, Input.txt, Output.txt, InputNorm.txt, OutputNorm.txt,
        InputLabels.txt, OutputLabels.txt

    Example:
        >>> exporter = MotionExporter(PipelineConfig(), MotionLibrary.scan(Path("bvh")))
        >>> summary = exporter.export()
    """

    def __init__(
        self,
        config: PipelineConfig,
        library: MotionLibrary,
        extractor: Optional[FrameExtractor] = None,
        encoder: Optional[MotionInBetweeningEncoder] = None,
    ):
        self.config = config
        self.library = library
        self.extractor = extractor or FrameExtractor(config)
        self.encoder = encoder or MotionInBetweeningEncoder.from_config(config.export)
        self.context = RunContext()

        self.progress = 0.0
        self.throughput = 0.0

    def cancel(self):
        """Request cancellation; honored before the next asset starts."""
        self.context.cancel_event.set()

    @property
    def is_exporting(self) -> bool:
        return self.context.exporting

    def export(
        self,
        progress_callback: Optional[Callable[[ExportProgress], None]] = None,
    ) -> ExportSummary:
        """
        Run the export to completion.

        Args:
            progress_callback: Optional callback receiving every progress snapshot

        Returns:
            Summary of the run
        """
        run = self.run()
        while True:
            try:
                snapshot = next(run)
            except StopIteration as stop:
                return stop.value
            if progress_callback is not None:
                progress_callback(snapshot)

    def run(self) -> Generator[ExportProgress, None, ExportSummary]:
        """
        Generator that exports all selected assets.

        Yields:
            ExportProgress every frame_buffer vectors and after each asset

        Returns:
            ExportSummary once all assets are done or the run was cancelled

        Raises:
            ExportPathError: If the export directory does not exist
        """
        settings = self.config.export
        export_dir = Path(settings.export_dir)
        if not export_dir.is_dir():
            raise ExportPathError(f"No export folder found at {export_dir}.")

        context = self.context
        context.reset()
        context.exporting = True
        summary = ExportSummary()
        start_time = time.perf_counter()

        entries = self.library.entries
        for entry in entries:
            entry.exported = False

        try:
            with ExitStack() as files:
                sequence_file = files.enter_context(
                    open(export_dir / "Sequences.txt", "w", encoding="utf-8", newline="\n")
                )
                X = files.enter_context(FeatureWriter.create(export_dir, "Input"))
                Y = files.enter_context(FeatureWriter.create(export_dir, "Output"))

                for position, entry in enumerate(entries, start=1):
                    if context.cancelled:
                        logger.info("Export cancelled")
                        summary.cancelled = True
                        break
                    if not entry.selected:
                        continue

                    asset = self._load(entry)
                    if asset is None:
                        summary.assets_skipped += 1
                        continue
                    if not asset.export:
                        logger.info(f"Skipping Asset: {asset.name}")
                        summary.assets_skipped += 1
                        continue

                    missing = self.extractor.modules(asset).missing_requirements(
                        self.encoder.phase_mode, self.encoder.styles
                    )
                    if missing:
                        logger.warning(f"Skipping Asset: {asset.name} (missing {', '.join(missing)})")
                        summary.assets_skipped += 1
                        continue

                    yield from self._export_asset(asset, position, len(entries), sequence_file, X, Y)

                    entry.exported = True
                    summary.assets_exported += 1
                    yield self._snapshot(asset, position, len(entries), asset_done=True)
        finally:
            context.exporting = False
            self.progress = 0.0

        summary.samples = context.samples
        summary.sequences = context.sequence
        summary.elapsed = time.perf_counter() - start_time
        logger.info(f"Exported {summary.samples} samples.")
        return summary

    def _export_asset(
        self,
        asset: MotionAsset,
        position: int,
        count: int,
        sequence_file,
        X: FeatureWriter,
        Y: FeatureWriter,
    ) -> Generator[ExportProgress, None, None]:
        settings = self.config.export
        target_fps = self.config.sampling.target_framerate
        context = self.context

        items = 0
        batch_start = time.perf_counter()

        for mirrored in (False, True):
            if mirrored and not settings.write_mirror:
                continue
            context.mirrored = mirrored
            logger.debug(f"Exporting asset {asset.name} {'[Mirror]' if mirrored else '[Default]'}")

            for shift in range(settings.frame_shifts + 1):
                offset = shift / asset.framerate
                for sequence in asset.sequences:
                    context.sequence += 1
                    start = ceil_to_target_time(
                        asset.get_frame_by_index(sequence.start).timestamp, target_fps
                    )
                    end = floor_to_target_time(
                        asset.get_frame_by_index(sequence.end).timestamp, target_fps
                    )

                    index = 0
                    while start + (index + 1) / target_fps + offset <= end + TIME_EPSILON:
                        current_time = start + index / target_fps + offset
                        next_time = start + (index + 1) / target_fps + offset

                        current, following = self.extractor.extract_pair(
                            asset, current_time, next_time, mirrored
                        )
                        self.encoder.export(X, Y, current, following)
                        X.store()
                        Y.store()
                        sequence_file.write(f"{context.sequence}\n")

                        index += 1
                        self.progress = (index / target_fps) / (end - start)
                        items += 1
                        context.samples += 1

                        if items >= settings.frame_buffer:
                            elapsed = time.perf_counter() - batch_start
                            self.throughput = items / elapsed if elapsed > 0 else 0.0
                            batch_start = time.perf_counter()
                            items = 0
                            yield self._snapshot(asset, position, count)

                    self.progress = 0.0

    def _load(self, entry: AssetEntry) -> Optional[MotionAsset]:
        """Load an entry, retrying while it is unavailable."""
        settings = self.config.export
        for attempt in range(settings.load_retries + 1):
            try:
                return self.library.load(entry)
            except BVHParseError as e:
                logger.error(f"Skipping Asset: {entry.name} ({e})")
                return None
            except (KeyError, ValueError) as e:
                logger.warning(f"Skipping Asset: {entry.name} has invalid sidecar data ({e})")
                return None
            except OSError as e:
                if attempt == settings.load_retries:
                    logger.warning(f"Skipping Asset: {entry.name} could not be loaded ({e})")
                    return None
                logger.info(f"Waiting for asset {entry.name} being loaded...")
                time.sleep(settings.retry_delay)
        return None

    def _snapshot(
        self,
        asset: MotionAsset,
        position: int,
        count: int,
        asset_done: bool = False,
    ) -> ExportProgress:
        return ExportProgress(
            asset=asset.name,
            asset_position=position,
            asset_count=count,
            progress=self.progress,
            samples=self.context.samples,
            throughput=self.throughput,
            mirrored=self.context.mirrored,
            asset_done=asset_done,
        )
