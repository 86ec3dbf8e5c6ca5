"""
Motion data structures and import.

Provides:
- Skeleton bone arena with alignment restoration
- Motion assets with frames, sequences and annotation channels
- BVH import and a directory-backed asset library
"""

from phasebetween.data.skeleton import Skeleton, Bone
from phasebetween.data.motion_data import (
    MotionAsset,
    Frame,
    Sequence,
    ChannelData,
    PhaseData,
    DeepPhaseData,
)
from phasebetween.data.bvh_importer import BVHImporter, BVHParseError
from phasebetween.data.library import MotionLibrary, AssetEntry

__all__ = [
    "Skeleton",
    "Bone",
    "MotionAsset",
    "Frame",
    "Sequence",
    "ChannelData",
    "PhaseData",
    "DeepPhaseData",
    "BVHImporter",
    "BVHParseError",
    "MotionLibrary",
    "AssetEntry",
]
