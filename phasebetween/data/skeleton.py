"""
Skeleton data structures.

Provides the bone hierarchy queried by the exporter:
- Bones stored in an index arena (parents always precede children)
- Posing from per-bone world transforms and velocities
- Alignment axes that keep bone directions consistent after posing
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

import numpy as np

from phasebetween.utils.math_utils import (
    from_to_rotation,
    normalize_vector,
    relative_direction_to,
)


@dataclass
class Bone:
    """
    A single bone of the skeleton.

    Attributes:
        index: Position in the skeleton's bone list
        name: Bone name (unique identifier)
        parent: Parent bone index (-1 for the root)
        children: Child bone indices in insertion order
        transform: Current 4x4 world transform
        velocity: Current world-space velocity
        alignment: Direction to the single child in bone space (zero if unset)
    """
    index: int
    name: str
    parent: int = -1
    children: List[int] = field(default_factory=list)
    transform: np.ndarray = field(default_factory=lambda: np.eye(4))
    velocity: np.ndarray = field(default_factory=lambda: np.zeros(3))
    alignment: np.ndarray = field(default_factory=lambda: np.zeros(3))

    @property
    def position(self) -> np.ndarray:
        return self.transform[:3, 3]

    @property
    def rotation(self) -> np.ndarray:
        return self.transform[:3, :3]

    def has_alignment(self) -> bool:
        return bool(np.any(self.alignment != 0.0))


class Skeleton:
    """
    Hierarchical bone arena.

    Bones are addressed by index; a bone's parent must be added before it.
    """

    def __init__(self, name: str = "skeleton", allow_realignment: bool = True):
        """Initialize an empty skeleton."""
        self.name = name
        self.allow_realignment = allow_realignment
        self.root_transform = np.eye(4)
        self._bones: List[Bone] = []
        self._by_name: Dict[str, int] = {}
        self._alignment_valid = False

    @classmethod
    def from_hierarchy(
        cls,
        names: Sequence[str],
        parents: Sequence[int],
        name: str = "skeleton",
        allow_realignment: bool = True,
    ) -> "Skeleton":
        """Build a skeleton from parallel name/parent-index lists."""
        skeleton = cls(name=name, allow_realignment=allow_realignment)
        for bone_name, parent in zip(names, parents):
            skeleton.add_bone(bone_name, parent)
        return skeleton

    def add_bone(self, name: str, parent: int = -1) -> Bone:
        """
        Append a bone to the skeleton.

        Args:
            name: Unique bone name
            parent: Index of an already added bone, or -1 for a root

        Returns:
            The created bone

        Raises:
            ValueError: If the parent does not reference an earlier bone or
                the name is already taken
        """
        index = len(self._bones)
        if parent != -1 and not 0 <= parent < index:
            raise ValueError(
                f"Bone '{name}' references parent {parent}, which is not an earlier bone"
            )
        if name in self._by_name:
            raise ValueError(f"Duplicate bone name: {name}")

        bone = Bone(index=index, name=name, parent=parent)
        self._bones.append(bone)
        self._by_name[name] = index

        if parent != -1:
            self._bones[parent].children.append(index)

        self.invalidate_alignment()
        return bone

    @property
    def bones(self) -> List[Bone]:
        """Get list of all bones."""
        return list(self._bones)

    @property
    def num_bones(self) -> int:
        """Get number of bones."""
        return len(self._bones)

    def get_bone(self, name: str) -> Optional[Bone]:
        """Get bone by name."""
        index = self._by_name.get(name)
        return self._bones[index] if index is not None else None

    def get_bone_index(self, name: str) -> int:
        """Get bone index by name, raising KeyError if unknown."""
        return self._by_name[name]

    def get_parent(self, bone: Bone) -> Optional[Bone]:
        return self._bones[bone.parent] if bone.parent != -1 else None

    def get_bone_names(self) -> List[str]:
        return [bone.name for bone in self._bones]

    def set_pose(
        self,
        transforms: np.ndarray,
        velocities: Optional[np.ndarray] = None,
    ):
        """
        Set world transforms (Bx4x4) and optionally velocities (Bx3) of all bones.
        """
        if len(transforms) != len(self._bones):
            raise ValueError(
                f"Pose has {len(transforms)} transforms for {len(self._bones)} bones"
            )
        for i, bone in enumerate(self._bones):
            bone.transform = np.array(transforms[i], dtype=float)
            if velocities is not None:
                bone.velocity = np.array(velocities[i], dtype=float)

    def get_bone_transformations(self) -> np.ndarray:
        """World transforms of all bones as a Bx4x4 array."""
        return np.stack([bone.transform for bone in self._bones])

    def get_bone_velocities(self) -> np.ndarray:
        """Velocities of all bones as a Bx3 array."""
        return np.stack([bone.velocity for bone in self._bones])

    def get_bone_positions(self) -> np.ndarray:
        """World positions of all bones as a Bx3 array."""
        return np.stack([bone.position for bone in self._bones])

    def invalidate_alignment(self):
        """Drop cached alignment axes."""
        self._alignment_valid = False
        for bone in self._bones:
            bone.alignment = np.zeros(3)

    def compute_alignment(self):
        """
        Cache, for every bone with exactly one child, the direction to that
        child in the bone's local space at the current pose.
        """
        for bone in self._bones:
            if len(bone.children) != 1:
                bone.alignment = np.zeros(3)
                continue
            child = self._bones[bone.children[0]]
            bone.alignment = relative_direction_to(
                child.position - bone.position, bone.transform
            )
        self._alignment_valid = True

    @property
    def has_alignment(self) -> bool:
        return self._alignment_valid

    def get_descendants(self, bone: Bone) -> List[Bone]:
        """All bones below a bone, parents before children."""
        descendants = []
        stack = list(reversed(bone.children))
        while stack:
            child = self._bones[stack.pop()]
            descendants.append(child)
            stack.extend(reversed(child.children))
        return descendants

    def restore_alignment(self):
        """
        Rotate each aligned bone so its alignment axis points at its child,
        then move the child to the cached bone length along that direction.

        The child's whole subtree is translated with it, so bone directions
        further down the chain are kept. Rotations below the bone are left
        unchanged.
        """
        if not self.allow_realignment or not self._alignment_valid:
            return

        for bone in self._bones:
            if not bone.has_alignment():
                continue
            child = self._bones[bone.children[0]]
            position = bone.position.copy()
            target = child.position - position
            if np.linalg.norm(target) < 1e-10:
                continue

            aligned = bone.rotation @ bone.alignment
            bone.transform[:3, :3] = from_to_rotation(aligned, target) @ bone.rotation
            offset = (
                position + np.linalg.norm(bone.alignment) * normalize_vector(target)
                - child.position
            )
            for moved in [child] + self.get_descendants(child):
                moved.transform[:3, 3] += offset
