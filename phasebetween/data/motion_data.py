"""
Motion data storage.

Provides:
- Frame: one timestamp's full-body pose (local and world transforms)
- Sequence: an exported frame range of an asset
- MotionAsset: an imported animation with symmetry, mirroring and
  optional per-frame annotation channels (contacts, styles, phases)
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence as SequenceType

import numpy as np

from phasebetween.data.skeleton import Skeleton
from phasebetween.utils.math_utils import mirror_transform, mirror_vector

logger = logging.getLogger(__name__)

SYMMETRY_PAIRS = [("Left", "Right"), ("left", "right"), ("LEFT", "RIGHT")]


def swap_side(name: str) -> str:
    """Name of the symmetric counterpart (Left <-> Right), or the name itself."""
    for left, right in SYMMETRY_PAIRS:
        if left in name:
            return name.replace(left, right)
        if right in name:
            return name.replace(right, left)
    return name


@dataclass
class Frame:
    """
    A single frame of an asset.

    Attributes:
        index: 1-based frame index within the asset
        timestamp: Time in seconds ((index - 1) / framerate)
        local: Bx4x4 parent-relative transforms
        world: Bx4x4 world transforms
    """
    index: int
    timestamp: float
    local: np.ndarray
    world: np.ndarray


@dataclass
class Sequence:
    """Inclusive 1-based frame range exported from an asset."""
    start: int
    end: int


@dataclass
class ChannelData:
    """Named per-frame values (frames x channels)."""
    names: List[str]
    values: np.ndarray

    def column(self, name: str) -> int:
        """Column index of a channel, raising KeyError if absent."""
        try:
            return self.names.index(name)
        except ValueError:
            raise KeyError(f"Unknown channel: {name}") from None


@dataclass
class PhaseData:
    """Per-bone local phase channels (frames x bones)."""
    bones: List[str]
    phases: np.ndarray
    amplitudes: np.ndarray


@dataclass
class DeepPhaseData:
    """Learned phase manifold channels (frames x channels)."""
    phases: np.ndarray
    amplitudes: np.ndarray
    frequencies: np.ndarray

    @property
    def num_channels(self) -> int:
        return self.phases.shape[1]


class MotionAsset:
    """
    An imported animation clip.

    Bone data can be queried mirrored: values are read from the symmetric
    bone and then reflected across the mirror axis.
    """

    def __init__(
        self,
        name: str,
        bone_names: SequenceType[str],
        parents: SequenceType[int],
        framerate: float,
        frames: List[Frame],
        mirror_axis: str = "x",
    ):
        if not frames:
            raise ValueError(f"Asset '{name}' has no frames")

        self.name = name
        self.bone_names = list(bone_names)
        self.parents = list(parents)
        self.framerate = float(framerate)
        self.frames = frames
        self.mirror_axis = mirror_axis

        self.export = True
        self.sequences: List[Sequence] = [Sequence(1, len(frames))]

        # Optional annotation channels
        self.contacts: Optional[ChannelData] = None
        self.styles: Optional[ChannelData] = None
        self.phases: Optional[PhaseData] = None
        self.deep_phases: Optional[DeepPhaseData] = None

        self.symmetry = self.detect_symmetry()

    @property
    def num_frames(self) -> int:
        return len(self.frames)

    @property
    def num_bones(self) -> int:
        return len(self.bone_names)

    def detect_symmetry(self) -> List[int]:
        """
        Pair bones by swapping Left/Right in their names.

        Returns:
            For each bone, the index of its symmetric counterpart (itself if none)
        """
        lookup = {name: i for i, name in enumerate(self.bone_names)}
        return [
            lookup.get(swap_side(name), i) for i, name in enumerate(self.bone_names)
        ]

    def get_bone_index(self, name: str) -> int:
        try:
            return self.bone_names.index(name)
        except ValueError:
            raise KeyError(f"Asset '{self.name}' has no bone named '{name}'") from None

    def set_sequences(self, ranges: SequenceType[SequenceType[int]]):
        """Replace the exported sequences with clamped (start, end) frame ranges."""
        sequences = []
        for start, end in ranges:
            start = max(1, int(start))
            end = min(self.num_frames, int(end))
            if start > end:
                logger.warning(f"Ignoring empty sequence [{start}, {end}] in {self.name}")
                continue
            sequences.append(Sequence(start, end))
        self.sequences = sequences

    def get_frame(self, timestamp: float) -> Frame:
        """Frame nearest to a timestamp, clamped to the asset range."""
        index = int(np.floor(timestamp * self.framerate + 0.5))
        index = min(max(index, 0), self.num_frames - 1)
        return self.frames[index]

    def get_frame_by_index(self, index: int) -> Frame:
        """Frame by 1-based index."""
        return self.frames[index - 1]

    def get_bone_transformations(self, frame: Frame, mirrored: bool = False) -> np.ndarray:
        """World transforms (Bx4x4) of all bones at a frame."""
        if not mirrored:
            return frame.world.copy()
        return mirror_transform(frame.world[self.symmetry], self.mirror_axis)

    def get_bone_transformation(self, frame: Frame, index: int, mirrored: bool = False) -> np.ndarray:
        """World transform (4x4) of one bone at a frame."""
        if not mirrored:
            return frame.world[index].copy()
        return mirror_transform(frame.world[self.symmetry[index]], self.mirror_axis)

    def difference_pair(self, frame: Frame):
        """
        Frames used to differentiate at a frame: (previous, frame), or
        (frame, next) for the first frame.
        """
        position = frame.index - 1
        if position == 0:
            return self.frames[0], self.frames[min(1, self.num_frames - 1)]
        return self.frames[position - 1], frame

    def get_bone_velocities(self, frame: Frame, mirrored: bool = False) -> np.ndarray:
        """
        World-space bone velocities (Bx3) at a frame by finite difference
        against the previous frame (next frame for the first one).
        """
        if self.num_frames < 2:
            return np.zeros((self.num_bones, 3))

        a, b = self.difference_pair(frame)
        velocities = (b.world[:, :3, 3] - a.world[:, :3, 3]) * self.framerate
        if mirrored:
            velocities = mirror_vector(velocities[self.symmetry], self.mirror_axis)
        return velocities

    def create_skeleton(self, allow_realignment: bool = True, mirrored: bool = False) -> Skeleton:
        """
        Build a skeleton for this asset with alignment axes computed from
        the first frame (mirrored if the skeleton will be posed mirrored).
        """
        skeleton = Skeleton.from_hierarchy(
            self.bone_names,
            self.parents,
            name=self.name,
            allow_realignment=allow_realignment,
        )
        skeleton.set_pose(self.get_bone_transformations(self.frames[0], mirrored))
        skeleton.compute_alignment()
        return skeleton

    def attach_channels(
        self,
        contacts: Optional[ChannelData] = None,
        styles: Optional[ChannelData] = None,
        phases: Optional[PhaseData] = None,
        deep_phases: Optional[DeepPhaseData] = None,
    ):
        """Attach annotation channels, checking their frame counts."""
        for label, arrays in (
            ("contacts", [contacts.values] if contacts else []),
            ("styles", [styles.values] if styles else []),
            ("phases", [phases.phases, phases.amplitudes] if phases else []),
            ("deep_phases", [deep_phases.phases, deep_phases.amplitudes,
                             deep_phases.frequencies] if deep_phases else []),
        ):
            for array in arrays:
                if array.ndim != 2 or array.shape[0] != self.num_frames:
                    raise ValueError(
                        f"{label} channels of '{self.name}' have shape {array.shape}, "
                        f"expected ({self.num_frames}, n)"
                    )

        if contacts is not None:
            self.contacts = contacts
        if styles is not None:
            self.styles = styles
        if phases is not None:
            self.phases = phases
        if deep_phases is not None:
            self.deep_phases = deep_phases

    def __repr__(self) -> str:
        return (
            f"MotionAsset(name={self.name!r}, bones={self.num_bones}, "
            f"frames={self.num_frames}, framerate={self.framerate})"
        )
