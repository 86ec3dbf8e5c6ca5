"""
BVH (Biovision Hierarchy) format importer.

Reads a BVH file into a MotionAsset:
1. HIERARCHY section - bone names, parents, rest offsets and channels
2. MOTION section - per-frame channel values composed into world transforms
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

import numpy as np
from scipy.spatial.transform import Rotation

from phasebetween.data.motion_data import Frame, MotionAsset
from phasebetween.utils.math_utils import mirror_transform

logger = logging.getLogger(__name__)

POSITION_CHANNELS = {"Xposition": 0, "Yposition": 1, "Zposition": 2}
ROTATION_CHANNELS = {"Xrotation": "X", "Yrotation": "Y", "Zrotation": "Z"}


class BVHParseError(ValueError):
    """Raised when BVH text does not follow the expected layout."""


@dataclass
class _BoneSpec:
    name: str
    parent: int
    offset: np.ndarray
    channels: List[str] = field(default_factory=list)


class BVHImporter:
    """
    Imports motion clips from BVH files.

    End Site bones are kept as regular bones named after their parent with a
    "Site" suffix (e.g. "LeftHandSite"). A bone whose position channels are
    all zero in a frame uses its rest offset instead. Clips with a single
    frame are replicated into one second of static pose.
    """

    def __init__(
        self,
        scale: float = 1.0,
        flip: bool = False,
        flip_axis: str = "x",
        mirror_axis: str = "x",
    ):
        """
        Initialize the importer.

        Args:
            scale: Multiplier applied to all positions and offsets
            flip: Mirror every local transform across flip_axis on import
            flip_axis: Axis used when flip is enabled
            mirror_axis: Axis the resulting asset mirrors across at export time
        """
        self.scale = scale
        self.flip = flip
        self.flip_axis = flip_axis
        self.mirror_axis = mirror_axis

    def load(self, path: Path) -> MotionAsset:
        """Load a BVH file from disk."""
        path = Path(path)
        text = path.read_text(encoding="utf-8", errors="replace")
        asset = self.parse(text, name=path.stem)
        logger.debug(f"Imported {asset}")
        return asset

    def parse(self, text: str, name: str = "motion") -> MotionAsset:
        """
        Parse BVH text into a MotionAsset.

        Raises:
            BVHParseError: If the hierarchy or motion section is malformed
        """
        lines = text.splitlines()
        try:
            motion_start = next(
                i for i, line in enumerate(lines) if line.strip() == "MOTION"
            )
        except StopIteration:
            raise BVHParseError(f"{name}: missing MOTION section") from None

        bones = self._parse_hierarchy(lines[:motion_start], name)
        num_frames, frame_time, motion = self._parse_motion(lines[motion_start + 1:], name)

        num_values = sum(len(bone.channels) for bone in bones)
        if motion.shape[1] != num_values:
            raise BVHParseError(
                f"{name}: motion rows have {motion.shape[1]} values, "
                f"hierarchy declares {num_values} channels"
            )

        framerate = int(round(1.0 / frame_time))
        world = self._compose(bones, motion)
        local = self._local_from_world(bones, world)

        frames = [
            Frame(index=k + 1, timestamp=k / framerate, local=local[k], world=world[k])
            for k in range(num_frames)
        ]

        if num_frames == 1:
            reference = frames[0]
            frames = [
                Frame(
                    index=k + 1,
                    timestamp=k / framerate,
                    local=reference.local.copy(),
                    world=reference.world.copy(),
                )
                for k in range(max(framerate, 1))
            ]

        return MotionAsset(
            name=name,
            bone_names=[bone.name for bone in bones],
            parents=[bone.parent for bone in bones],
            framerate=framerate,
            frames=frames,
            mirror_axis=self.mirror_axis,
        )

    def _parse_hierarchy(self, lines: List[str], name: str) -> List[_BoneSpec]:
        bones: List[_BoneSpec] = []
        stack: List[int] = []
        pending: Optional[_BoneSpec] = None

        for number, line in enumerate(lines, start=1):
            tokens = line.split()
            if not tokens:
                continue
            keyword = tokens[0]

            if keyword in ("ROOT", "JOINT"):
                if len(tokens) < 2:
                    raise BVHParseError(f"{name}:{number}: {keyword} without a name")
                parent = stack[-1] if stack else -1
                if keyword == "JOINT" and parent == -1:
                    raise BVHParseError(f"{name}:{number}: JOINT outside of ROOT")
                pending = _BoneSpec(tokens[1], parent, np.zeros(3))
            elif keyword == "End":
                if not stack:
                    raise BVHParseError(f"{name}:{number}: End Site outside of ROOT")
                parent = stack[-1]
                pending = _BoneSpec(bones[parent].name + "Site", parent, np.zeros(3))
            elif keyword == "{":
                if pending is None:
                    raise BVHParseError(f"{name}:{number}: unexpected '{{'")
                bones.append(pending)
                stack.append(len(bones) - 1)
                pending = None
            elif keyword == "}":
                if not stack:
                    raise BVHParseError(f"{name}:{number}: unbalanced '}}'")
                stack.pop()
            elif keyword == "OFFSET":
                if not stack or len(tokens) < 4:
                    raise BVHParseError(f"{name}:{number}: malformed OFFSET")
                bones[stack[-1]].offset = np.array([float(v) for v in tokens[1:4]])
            elif keyword == "CHANNELS":
                if not stack:
                    raise BVHParseError(f"{name}:{number}: CHANNELS outside of a bone")
                count = int(tokens[1])
                channels = tokens[2:2 + count]
                unknown = [
                    c for c in channels
                    if c not in POSITION_CHANNELS and c not in ROTATION_CHANNELS
                ]
                if len(channels) != count or unknown:
                    raise BVHParseError(f"{name}:{number}: malformed CHANNELS")
                bones[stack[-1]].channels = channels

        if not bones:
            raise BVHParseError(f"{name}: empty hierarchy")
        if stack:
            raise BVHParseError(f"{name}: unbalanced hierarchy braces")
        return bones

    def _parse_motion(self, lines: List[str], name: str):
        rows = [line.strip() for line in lines if line.strip()]
        if len(rows) < 2 or not rows[0].startswith("Frames:") or not rows[1].startswith("Frame Time:"):
            raise BVHParseError(f"{name}: expected 'Frames:' and 'Frame Time:' header")

        num_frames = int(rows[0].split(":", 1)[1])
        frame_time = float(rows[1].split(":", 1)[1])
        if num_frames < 1 or frame_time <= 0:
            raise BVHParseError(f"{name}: invalid frame count or frame time")

        data = rows[2:2 + num_frames]
        if len(data) < num_frames:
            raise BVHParseError(f"{name}: expected {num_frames} frames, found {len(data)}")

        try:
            motion = np.array([[float(v) for v in row.split()] for row in data])
        except ValueError as e:
            raise BVHParseError(f"{name}: {e}") from e
        if motion.ndim != 2:
            raise BVHParseError(f"{name}: motion rows differ in length")

        return num_frames, frame_time, motion

    def _compose(self, bones: List[_BoneSpec], motion: np.ndarray) -> np.ndarray:
        """World transforms (F x B x 4 x 4) from channel values."""
        num_frames = motion.shape[0]
        world = np.zeros((num_frames, len(bones), 4, 4))
        column = 0

        for i, bone in enumerate(bones):
            position = np.zeros((num_frames, 3))
            axes = ""
            angles = []
            for channel in bone.channels:
                if channel in POSITION_CHANNELS:
                    position[:, POSITION_CHANNELS[channel]] = motion[:, column]
                else:
                    axes += ROTATION_CHANNELS[channel]
                    angles.append(motion[:, column])
                column += 1

            # Zero position channels fall back to the rest offset
            unset = np.all(position == 0.0, axis=1)
            position[unset] = bone.offset
            position *= self.scale

            local = np.tile(np.eye(4), (num_frames, 1, 1))
            if axes:
                # Uppercase axes compose intrinsically, in channel order
                local[:, :3, :3] = Rotation.from_euler(
                    axes, np.stack(angles, axis=1), degrees=True
                ).as_matrix()
            local[:, :3, 3] = position

            if self.flip:
                local = mirror_transform(local, self.flip_axis)

            world[:, i] = local if bone.parent == -1 else world[:, bone.parent] @ local

        return world

    @staticmethod
    def _local_from_world(bones: List[_BoneSpec], world: np.ndarray) -> np.ndarray:
        local = world.copy()
        for i, bone in enumerate(bones):
            if bone.parent != -1:
                local[:, i] = np.linalg.inv(world[:, bone.parent]) @ world[:, i]
        return local
