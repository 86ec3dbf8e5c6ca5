"""
Mathematical utilities for skeletal motion data.

Provides functions for:
- Homogeneous 4x4 transform construction and decomposition
- Relative position/direction conversion between coordinate frames
- Mirroring of transforms and vectors across an axis
- Phase vector helpers
"""

import numpy as np
from typing import Tuple

AXIS_INDEX = {"x": 0, "y": 1, "z": 2}


def normalize_vector(v: np.ndarray) -> np.ndarray:
    """
    Normalize a vector to unit length.

    Args:
        v: Input vector

    Returns:
        Normalized vector (or zero vector if input is zero)
    """
    norm = np.linalg.norm(v)
    if norm < 1e-10:
        return np.zeros_like(v)
    return v / norm


def look_at_rotation(
    direction: np.ndarray,
    up: np.ndarray = np.array([0.0, 1.0, 0.0])
) -> np.ndarray:
    """
    Create rotation matrix whose forward (Z) axis looks along a direction.

    Args:
        direction: Look direction vector
        up: Up vector (default: Y-up)

    Returns:
        3x3 rotation matrix with columns [right, up, forward]
    """
    forward = normalize_vector(direction)
    right = normalize_vector(np.cross(up, forward))
    actual_up = np.cross(forward, right)

    return np.column_stack([right, actual_up, forward])


def trs(position: np.ndarray, rotation: np.ndarray) -> np.ndarray:
    """Build a 4x4 transform from a translation and a 3x3 rotation."""
    matrix = np.eye(4)
    matrix[:3, :3] = rotation
    matrix[:3, 3] = position
    return matrix


def get_position(matrix: np.ndarray) -> np.ndarray:
    """Translation part of a 4x4 transform."""
    return matrix[:3, 3].copy()


def get_rotation(matrix: np.ndarray) -> np.ndarray:
    """Rotation part of a 4x4 transform."""
    return matrix[:3, :3].copy()


def get_forward(matrix: np.ndarray) -> np.ndarray:
    """Local +Z axis of a transform in world space."""
    return matrix[:3, 2].copy()


def get_up(matrix: np.ndarray) -> np.ndarray:
    """Local +Y axis of a transform in world space."""
    return matrix[:3, 1].copy()


def inverse_transform(
    rotation: np.ndarray,
    translation: np.ndarray
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Compute inverse of a rotation + translation transform.

    Args:
        rotation: 3x3 rotation matrix
        translation: 3D translation vector

    Returns:
        Tuple of (inverse_rotation, inverse_translation)
    """
    inv_rotation = rotation.T
    inv_translation = -inv_rotation @ translation
    return inv_rotation, inv_translation


def relative_position_to(point: np.ndarray, frame: np.ndarray) -> np.ndarray:
    """
    Express a world-space point in the local space of a frame.

    Args:
        point: 3D world position
        frame: 4x4 rigid transform of the reference frame

    Returns:
        Point relative to the frame origin and orientation
    """
    inv_rotation, inv_translation = inverse_transform(frame[:3, :3], frame[:3, 3])
    return inv_rotation @ point + inv_translation


def relative_direction_to(direction: np.ndarray, frame: np.ndarray) -> np.ndarray:
    """Express a world-space direction (or velocity) in the local space of a frame."""
    return frame[:3, :3].T @ direction


def position_from_relative(point: np.ndarray, frame: np.ndarray) -> np.ndarray:
    """Inverse of relative_position_to."""
    return frame[:3, :3] @ point + frame[:3, 3]


def direction_from_relative(direction: np.ndarray, frame: np.ndarray) -> np.ndarray:
    """Inverse of relative_direction_to."""
    return frame[:3, :3] @ direction


def mirror_matrix(axis: str = "x") -> np.ndarray:
    """4x4 reflection that negates the given axis."""
    matrix = np.eye(4)
    matrix[AXIS_INDEX[axis], AXIS_INDEX[axis]] = -1.0
    return matrix


def mirror_transform(matrix: np.ndarray, axis: str = "x") -> np.ndarray:
    """
    Mirror a transform (or a stack of transforms) across an axis.

    Conjugating with the reflection keeps the rotation part proper, so the
    result is still a rigid transform.
    """
    reflection = mirror_matrix(axis)
    return reflection @ matrix @ reflection


def mirror_vector(vector: np.ndarray, axis: str = "x") -> np.ndarray:
    """Negate one component of a vector (or of each row of an Nx3 array)."""
    mirrored = np.array(vector, dtype=float, copy=True)
    mirrored[..., AXIS_INDEX[axis]] *= -1.0
    return mirrored


def from_to_rotation(source: np.ndarray, target: np.ndarray) -> np.ndarray:
    """
    Smallest rotation that turns one direction onto another.

    Args:
        source: Direction to rotate from
        target: Direction to rotate to

    Returns:
        3x3 rotation matrix (identity if either vector is degenerate)
    """
    a = normalize_vector(np.asarray(source, dtype=float))
    b = normalize_vector(np.asarray(target, dtype=float))
    if not a.any() or not b.any():
        return np.eye(3)

    axis = np.cross(a, b)
    sin_angle = np.linalg.norm(axis)
    cos_angle = np.clip(np.dot(a, b), -1.0, 1.0)

    if sin_angle < 1e-10:
        if cos_angle > 0:
            return np.eye(3)
        # Opposite directions: rotate 180 degrees about any perpendicular axis
        helper = np.array([1.0, 0.0, 0.0]) if abs(a[0]) < 0.9 else np.array([0.0, 1.0, 0.0])
        axis = normalize_vector(np.cross(a, helper))
        return 2.0 * np.outer(axis, axis) - np.eye(3)

    axis = axis / sin_angle
    K = np.array([
        [0, -axis[2], axis[1]],
        [axis[2], 0, -axis[0]],
        [-axis[1], axis[0], 0]
    ])
    return np.eye(3) + sin_angle * K + (1 - cos_angle) * (K @ K)


def phase_vector(phase: float, amplitude: float = 1.0) -> np.ndarray:
    """
    Encode a cyclic phase in [0, 1) as a 2D point on a circle.

    Returns:
        amplitude * (sin(2*pi*phase), cos(2*pi*phase))
    """
    angle = 2.0 * np.pi * phase
    return amplitude * np.array([np.sin(angle), np.cos(angle)])


def signed_phase_update(current: float, following: float) -> float:
    """Shortest signed phase delta from one phase to another, in [-0.5, 0.5)."""
    return float(((following - current + 0.5) % 1.0) - 0.5)
