"""
Core feature export pipeline.

Contains:
- Time series keys and per-feature series providers
- Coordinate frame extraction into Containers
- The motion in-betweening feature encoder
- The buffered normalizing feature writer
- The export orchestrator
"""

from phasebetween.core.timeseries import TimeSeries, Sample
from phasebetween.core.modules import (
    ModuleSet,
    RootModule,
    ContactModule,
    StyleModule,
    PhaseModule,
    DeepPhaseModule,
    TargetPoseSampler,
    SamplePose,
)
from phasebetween.core.container import Container, FrameExtractor
from phasebetween.core.feature_writer import (
    FeatureWriter,
    RunningStatistics,
    WriterState,
    SchemaMismatchError,
    NonFiniteFeatureError,
)
from phasebetween.core.encoder import MotionInBetweeningEncoder
from phasebetween.core.exporter import (
    MotionExporter,
    ExportProgress,
    ExportSummary,
    ExportPathError,
    RunContext,
)

__all__ = [
    "TimeSeries",
    "Sample",
    "ModuleSet",
    "RootModule",
    "ContactModule",
    "StyleModule",
    "PhaseModule",
    "DeepPhaseModule",
    "TargetPoseSampler",
    "SamplePose",
    "Container",
    "FrameExtractor",
    "FeatureWriter",
    "RunningStatistics",
    "WriterState",
    "SchemaMismatchError",
    "NonFiniteFeatureError",
    "MotionInBetweeningEncoder",
    "MotionExporter",
    "ExportProgress",
    "ExportSummary",
    "ExportPathError",
    "RunContext",
]
