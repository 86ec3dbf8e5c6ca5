"""Utility modules for phasebetween."""

from phasebetween.utils.math_utils import (
    normalize_vector,
    look_at_rotation,
    trs,
    get_position,
    get_rotation,
    get_forward,
    get_up,
    relative_position_to,
    relative_direction_to,
    position_from_relative,
    direction_from_relative,
    mirror_transform,
    mirror_vector,
    phase_vector,
    signed_phase_update,
)

__all__ = [
    "normalize_vector",
    "look_at_rotation",
    "trs",
    "get_position",
    "get_rotation",
    "get_forward",
    "get_up",
    "relative_position_to",
    "relative_direction_to",
    "position_from_relative",
    "direction_from_relative",
    "mirror_transform",
    "mirror_vector",
    "phase_vector",
    "signed_phase_update",
]
