"""
Coordinate frame extraction.

A Container is the snapshot of one timestamp of an asset: the ego-centric
root frame, the posed skeleton, every provider's series, and a future target
pose together with its own root frame.
"""

import logging
from dataclasses import dataclass, replace
from typing import Callable, Dict, List, Optional, Tuple

import numpy as np

from phasebetween.config.settings import PipelineConfig
from phasebetween.core.modules import (
    ContactSeries,
    DeepPhaseSeries,
    ModuleSet,
    PhaseSeries,
    RootSeries,
    SamplePose,
    StyleSeries,
)
from phasebetween.core.timeseries import TimeSeries
from phasebetween.data.motion_data import Frame, MotionAsset
from phasebetween.data.skeleton import Skeleton

logger = logging.getLogger(__name__)


@dataclass
class Container:
    """
    Features of one asset timestamp.

    Attributes:
        root: Ego-centric root frame (4x4)
        posture: Bone world transforms (Bx4x4)
        velocities: Bone world velocities (Bx3)
        target_pose: Sampled future pose
        target_root: Root frame at the target pose (4x4)
        target_bone_distances: Per-bone distance to the target pose, if computed
    """
    asset: MotionAsset
    frame: Frame
    timestamp: float
    mirrored: bool
    time_series: TimeSeries
    root_series: RootSeries
    contact_series: ContactSeries
    style_series: StyleSeries
    phase_series: Optional[PhaseSeries]
    deep_phase_series: Optional[DeepPhaseSeries]
    root: np.ndarray
    posture: np.ndarray
    velocities: np.ndarray
    bone_names: List[str]
    target_pose: SamplePose
    target_root: np.ndarray
    target_bone_distances: Optional[np.ndarray] = None


class FrameExtractor:
    """
    Builds Containers for (asset, timestamp, mirrored) queries.

    Providers come from a module factory so they can be replaced per asset;
    the default builds ModuleSet.for_asset from the pipeline configuration.

    Example:
        >>> extractor = FrameExtractor(PipelineConfig())
        >>> current, following = extractor.extract_pair(asset, 0.0, 1 / 30, mirrored=False)
    """

    def __init__(
        self,
        config: Optional[PipelineConfig] = None,
        module_factory: Optional[Callable[[MotionAsset], ModuleSet]] = None,
    ):
        self.config = config or PipelineConfig()
        self.time_series = TimeSeries.from_config(self.config.time_series)
        self.module_factory = module_factory or (
            lambda asset: ModuleSet.for_asset(asset, self.config)
        )

        self._asset: Optional[MotionAsset] = None
        self._modules: Optional[ModuleSet] = None
        self._skeletons: Dict[bool, Skeleton] = {}

    def _bind(self, asset: MotionAsset):
        if asset is self._asset:
            return
        self._asset = asset
        self._modules = self.module_factory(asset)
        self._skeletons = {}

    def modules(self, asset: MotionAsset) -> ModuleSet:
        """Providers of an asset (cached while the asset stays current)."""
        self._bind(asset)
        return self._modules

    def skeleton(self, asset: MotionAsset, mirrored: bool) -> Skeleton:
        self._bind(asset)
        if mirrored not in self._skeletons:
            self._skeletons[mirrored] = asset.create_skeleton(
                allow_realignment=self.config.importing.allow_realignment,
                mirrored=mirrored,
            )
        return self._skeletons[mirrored]

    def extract(
        self,
        asset: MotionAsset,
        timestamp: float,
        mirrored: bool,
        target: Optional[SamplePose] = None,
    ) -> Container:
        """
        Build the Container of one timestamp.

        Args:
            asset: Source asset
            timestamp: Query time in seconds
            mirrored: Whether to read the mirrored motion
            target: Reuse this target pose instead of sampling a new one
        """
        modules = self.modules(asset)
        frame = asset.get_frame(timestamp)

        skeleton = self.skeleton(asset, mirrored)
        skeleton.set_pose(
            asset.get_bone_transformations(frame, mirrored),
            asset.get_bone_velocities(frame, mirrored),
        )
        skeleton.restore_alignment()
        skeleton.root_transform = modules.root.root_transformation(timestamp, mirrored)

        series = self.time_series
        root_series = modules.root.extract(series, timestamp, mirrored)
        contact_series = modules.contacts.extract(series, timestamp, mirrored)
        style_series = modules.styles.extract(series, timestamp, mirrored)
        phase_series = modules.phases.extract(series, timestamp, mirrored) if modules.phases else None
        deep_phase_series = (
            modules.deep_phases.extract(series, timestamp, mirrored) if modules.deep_phases else None
        )

        if target is None:
            target = modules.sampler.sample(timestamp, mirrored)
        target_frame = asset.get_frame_by_index(target.frame_index)
        # Offsets are always relative to this container's own timestamp
        target = replace(target, time_offset=target_frame.timestamp - timestamp)
        target_root = modules.root.frame_transformation(target_frame, mirrored)

        posture = skeleton.get_bone_transformations()
        distances = None
        if self.config.sampling.compute_bone_distances:
            distances = np.linalg.norm(skeleton.get_bone_positions() - target.pose[:, :3, 3], axis=1)

        return Container(
            asset=asset,
            frame=frame,
            timestamp=timestamp,
            mirrored=mirrored,
            time_series=series,
            root_series=root_series,
            contact_series=contact_series,
            style_series=style_series,
            phase_series=phase_series,
            deep_phase_series=deep_phase_series,
            root=skeleton.root_transform.copy(),
            posture=posture,
            velocities=skeleton.get_bone_velocities(),
            bone_names=skeleton.get_bone_names(),
            target_pose=target,
            target_root=target_root,
            target_bone_distances=distances,
        )

    def extract_pair(
        self,
        asset: MotionAsset,
        current_time: float,
        next_time: float,
        mirrored: bool,
    ) -> Tuple[Container, Container]:
        """
        Build the (current, next) Containers of one training example.

        Both share the target pose sampled for the current timestamp.
        """
        current = self.extract(asset, current_time, mirrored)
        following = self.extract(asset, next_time, mirrored, target=current.target_pose)

        if current.frame.index == following.frame.index:
            logger.warning(
                f"Same frames for input output pairs selected! "
                f"({asset.name}, frame {current.frame.index})"
            )

        return current, following
