"""
Per-feature series providers.

Each module reads one kind of signal from a motion asset and samples it at
the keys of a TimeSeries around a timestamp:
- RootModule: ground-projected root trajectory (positions, directions, velocities)
- ContactModule: per-bone ground contact values
- StyleModule: style label values
- PhaseModule: per-bone local phases
- DeepPhaseModule: learned phase manifold channels
- TargetPoseSampler: future target pose for in-betweening
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np

from phasebetween.config.settings import ContactConfig, PhaseMode, PipelineConfig
from phasebetween.core.timeseries import TimeSeries
from phasebetween.data.motion_data import Frame, MotionAsset, swap_side
from phasebetween.utils.math_utils import (
    get_forward,
    get_position,
    look_at_rotation,
    normalize_vector,
    phase_vector,
    trs,
)

logger = logging.getLogger(__name__)


class SeriesModule(ABC):
    """Base class for providers queried at every key of a time series."""

    def __init__(self, asset: MotionAsset):
        self.asset = asset

    @abstractmethod
    def extract(self, time_series: TimeSeries, timestamp: float, mirrored: bool):
        """Sample this module's signal at every key around a timestamp."""

    def key_frames(self, time_series: TimeSeries, timestamp: float) -> List[Frame]:
        """Asset frames at each key (clamped to the asset range)."""
        return [
            self.asset.get_frame(timestamp + sample.timestamp)
            for sample in time_series.samples
        ]


# =============================================================================
# Root trajectory
# =============================================================================

@dataclass
class RootSeries:
    """Root transforms (Kx4x4) and velocities (Kx3) at each key."""
    transformations: np.ndarray
    velocities: np.ndarray

    def get_position(self, k: int) -> np.ndarray:
        return get_position(self.transformations[k])

    def get_direction(self, k: int) -> np.ndarray:
        return get_forward(self.transformations[k])

    def get_velocity(self, k: int) -> np.ndarray:
        return self.velocities[k].copy()


class RootModule(SeriesModule):
    """
    Root frame derived from the root bone: its position projected onto the
    ground plane, facing its forward axis projected onto the ground plane.
    """

    def __init__(self, asset: MotionAsset, root_bone: Optional[str] = None):
        super().__init__(asset)
        if root_bone is not None:
            self.bone = asset.get_bone_index(root_bone)
        else:
            self.bone = asset.parents.index(-1)

    def frame_transformation(self, frame: Frame, mirrored: bool) -> np.ndarray:
        transform = self.asset.get_bone_transformation(frame, self.bone, mirrored)
        position = get_position(transform)
        position[1] = 0.0

        forward = get_forward(transform)
        forward[1] = 0.0
        forward = normalize_vector(forward)
        if not forward.any():
            forward = np.array([0.0, 0.0, 1.0])

        return trs(position, look_at_rotation(forward))

    def frame_velocity(self, frame: Frame, mirrored: bool) -> np.ndarray:
        if self.asset.num_frames < 2:
            return np.zeros(3)
        a, b = self.asset.difference_pair(frame)
        delta = (
            get_position(self.frame_transformation(b, mirrored))
            - get_position(self.frame_transformation(a, mirrored))
        )
        return delta * self.asset.framerate

    def root_transformation(self, timestamp: float, mirrored: bool) -> np.ndarray:
        """Root frame (4x4) at a timestamp."""
        return self.frame_transformation(self.asset.get_frame(timestamp), mirrored)

    def extract(self, time_series: TimeSeries, timestamp: float, mirrored: bool) -> RootSeries:
        frames = self.key_frames(time_series, timestamp)
        return RootSeries(
            transformations=np.stack([self.frame_transformation(f, mirrored) for f in frames]),
            velocities=np.stack([self.frame_velocity(f, mirrored) for f in frames]),
        )


# =============================================================================
# Contacts
# =============================================================================

@dataclass
class ContactSeries:
    """Contact values (K x bones) at each key."""
    bones: List[str]
    values: np.ndarray

    def get_contacts(self, k: int, bones: Sequence[str]) -> np.ndarray:
        """Contact values of the named bones at key k."""
        columns = []
        for name in bones:
            if name not in self.bones:
                raise KeyError(f"No contact channel for bone '{name}'")
            columns.append(self.bones.index(name))
        return self.values[k, columns]


class ContactModule(SeriesModule):
    """
    Contacts from the asset's contact channels, or, when it carries none,
    from bone height and speed thresholds.
    """

    def __init__(
        self,
        asset: MotionAsset,
        bones: Sequence[str],
        config: Optional[ContactConfig] = None,
    ):
        super().__init__(asset)
        self.bones = list(bones)
        self.config = config or ContactConfig()

    def missing_bones(self) -> List[str]:
        if self.asset.contacts is not None:
            available = set(self.asset.contacts.names)
        else:
            available = set(self.asset.bone_names)
        return [name for name in self.bones if name not in available]

    def frame_contacts(self, frame: Frame, mirrored: bool) -> np.ndarray:
        channels = self.asset.contacts
        if channels is not None:
            row = channels.values[frame.index - 1]
            values = []
            for name in self.bones:
                source = swap_side(name) if mirrored else name
                if source not in channels.names:
                    source = name
                values.append(row[channels.column(source)])
            return np.array(values, dtype=float)

        indices = [self.asset.get_bone_index(name) for name in self.bones]
        heights = self.asset.get_bone_transformations(frame, mirrored)[indices, 1, 3]
        speeds = np.linalg.norm(self.asset.get_bone_velocities(frame, mirrored)[indices], axis=1)
        grounded = (heights <= self.config.height_threshold) & (speeds <= self.config.velocity_threshold)
        return grounded.astype(float)

    def extract(self, time_series: TimeSeries, timestamp: float, mirrored: bool) -> ContactSeries:
        frames = self.key_frames(time_series, timestamp)
        if not self.bones:
            return ContactSeries(bones=[], values=np.zeros((len(frames), 0)))
        values = np.stack([self.frame_contacts(f, mirrored) for f in frames])
        return ContactSeries(bones=list(self.bones), values=values)


# =============================================================================
# Styles
# =============================================================================

@dataclass
class StyleSeries:
    """Style values (K x styles) at each key."""
    styles: List[str]
    values: np.ndarray

    def get_styles(self, k: int, names: Sequence[str]) -> np.ndarray:
        columns = []
        for name in names:
            if name not in self.styles:
                raise KeyError(f"No style channel named '{name}'")
            columns.append(self.styles.index(name))
        return self.values[k, columns]


class StyleModule(SeriesModule):
    """Style label values read from the asset's style channels."""

    def missing_styles(self, names: Sequence[str]) -> List[str]:
        available = self.asset.styles.names if self.asset.styles is not None else []
        return [name for name in names if name not in available]

    def extract(self, time_series: TimeSeries, timestamp: float, mirrored: bool) -> StyleSeries:
        if self.asset.styles is None:
            return StyleSeries(styles=[], values=np.zeros((len(time_series), 0)))
        rows = [f.index - 1 for f in self.key_frames(time_series, timestamp)]
        return StyleSeries(
            styles=list(self.asset.styles.names),
            values=self.asset.styles.values[rows],
        )


# =============================================================================
# Local phases
# =============================================================================

@dataclass
class PhaseSeries:
    """Per-bone phases and amplitudes (K x bones) at each key."""
    bones: List[str]
    phases: np.ndarray
    amplitudes: np.ndarray


class PhaseModule(SeriesModule):
    """Per-bone local phase channels; mirrored queries read the symmetric bone."""

    def __init__(self, asset: MotionAsset):
        super().__init__(asset)
        if asset.phases is None:
            raise ValueError(f"Asset '{asset.name}' has no local phase channels")
        self.data = asset.phases
        bones = self.data.bones
        self._mirror_columns = [
            bones.index(swap_side(name)) if swap_side(name) in bones else i
            for i, name in enumerate(bones)
        ]

    def extract(self, time_series: TimeSeries, timestamp: float, mirrored: bool) -> PhaseSeries:
        rows = [f.index - 1 for f in self.key_frames(time_series, timestamp)]
        phases = self.data.phases[rows]
        amplitudes = self.data.amplitudes[rows]
        if mirrored:
            phases = phases[:, self._mirror_columns]
            amplitudes = amplitudes[:, self._mirror_columns]
        return PhaseSeries(bones=list(self.data.bones), phases=phases, amplitudes=amplitudes)


# =============================================================================
# Deep phases
# =============================================================================

@dataclass
class DeepPhaseSeries:
    """Learned phase channels (K x channels) at each key."""
    pivot: int
    phases: np.ndarray
    amplitudes: np.ndarray
    frequencies: np.ndarray

    def get_alignment(self) -> np.ndarray:
        """Phase vectors of every channel at every key, flattened."""
        values = []
        for k in range(len(self.phases)):
            for c in range(self.phases.shape[1]):
                values.extend(phase_vector(self.phases[k, c], self.amplitudes[k, c]))
        return np.array(values)

    def get_update(self) -> np.ndarray:
        """Phase vector, frequency and amplitude of every channel for keys from the pivot on."""
        values = []
        for k in range(self.pivot, len(self.phases)):
            for c in range(self.phases.shape[1]):
                values.extend(phase_vector(self.phases[k, c], self.amplitudes[k, c]))
                values.append(self.frequencies[k, c])
                values.append(self.amplitudes[k, c])
        return np.array(values)


class DeepPhaseModule(SeriesModule):
    """Learned phase manifold channels read from the asset."""

    def __init__(self, asset: MotionAsset):
        super().__init__(asset)
        if asset.deep_phases is None:
            raise ValueError(f"Asset '{asset.name}' has no deep phase channels")
        self.data = asset.deep_phases

    def extract(self, time_series: TimeSeries, timestamp: float, mirrored: bool) -> DeepPhaseSeries:
        rows = [f.index - 1 for f in self.key_frames(time_series, timestamp)]
        return DeepPhaseSeries(
            pivot=time_series.pivot,
            phases=self.data.phases[rows],
            amplitudes=self.data.amplitudes[rows],
            frequencies=self.data.frequencies[rows],
        )


# =============================================================================
# Target pose sampling
# =============================================================================

@dataclass
class SamplePose:
    """
    A future pose used as the in-betweening target.

    Attributes:
        pose: World transforms of all bones (Bx4x4)
        velocities: World velocities of all bones (Bx3)
        time_offset: Seconds from the query timestamp to the target frame
        frame_index: 1-based index of the target frame
    """
    pose: np.ndarray
    velocities: np.ndarray
    time_offset: float
    frame_index: int


class TargetPoseSampler:
    """
    Picks a target frame a random number of frames ahead.

    The generator is seeded with the query frame index, so a given
    (asset, timestamp, mirrored) query always yields the same target.
    """

    def __init__(
        self,
        asset: MotionAsset,
        min_frames: int = 1,
        max_frames: int = 60,
        seed: int = 0,
    ):
        if not 1 <= min_frames <= max_frames:
            raise ValueError(f"Invalid target frame window [{min_frames}, {max_frames}]")
        self.asset = asset
        self.min_frames = min_frames
        self.max_frames = max_frames
        self.seed = seed

    def sample(self, timestamp: float, mirrored: bool) -> SamplePose:
        frame = self.asset.get_frame(timestamp)
        rng = np.random.default_rng(self.seed + frame.index)
        offset = int(rng.integers(self.min_frames, self.max_frames + 1))
        target = self.asset.get_frame_by_index(min(frame.index + offset, self.asset.num_frames))

        return SamplePose(
            pose=self.asset.get_bone_transformations(target, mirrored),
            velocities=self.asset.get_bone_velocities(target, mirrored),
            time_offset=target.timestamp - timestamp,
            frame_index=target.index,
        )


# =============================================================================
# Module set
# =============================================================================

@dataclass
class ModuleSet:
    """All providers of one asset."""
    root: RootModule
    contacts: ContactModule
    styles: StyleModule
    sampler: TargetPoseSampler
    phases: Optional[PhaseModule] = None
    deep_phases: Optional[DeepPhaseModule] = None

    @classmethod
    def for_asset(cls, asset: MotionAsset, config: PipelineConfig) -> "ModuleSet":
        """Default providers for an asset under a pipeline configuration."""
        return cls(
            root=RootModule(asset, config.importing.root_bone),
            contacts=ContactModule(asset, config.export.resolve_contact_bones(), config.contacts),
            styles=StyleModule(asset),
            sampler=TargetPoseSampler(
                asset,
                min_frames=config.sampling.min_target_frames,
                max_frames=config.sampling.max_target_frames,
                seed=config.sampling.random_seed,
            ),
            phases=PhaseModule(asset) if asset.phases is not None else None,
            deep_phases=DeepPhaseModule(asset) if asset.deep_phases is not None else None,
        )

    def missing_requirements(self, phase_mode: PhaseMode, styles: Sequence[str]) -> List[str]:
        """Describe what the asset lacks for the requested feature blocks."""
        missing = []
        if phase_mode == PhaseMode.LOCAL_PHASES and self.phases is None:
            missing.append("local phase channels")
        if phase_mode == PhaseMode.DEEP_PHASES and self.deep_phases is None:
            missing.append("deep phase channels")
        for name in self.styles.missing_styles(styles):
            missing.append(f"style channel '{name}'")
        for name in self.contacts.missing_bones():
            missing.append(f"contact bone '{name}'")
        return missing
