import math
from pathlib import Path

import numpy as np
import pytest

from phasebetween.config.settings import PipelineConfig
from phasebetween.data.bvh_importer import BVHImporter

HIERARCHY = """HIERARCHY
ROOT Hips
{
  OFFSET 0.0 0.0 0.0
  CHANNELS 6 Xposition Yposition Zposition Zrotation Xrotation Yrotation
  JOINT Spine
  {
    OFFSET 0.0 0.2 0.0
    CHANNELS 3 Zrotation Xrotation Yrotation
    JOINT Head
    {
      OFFSET 0.0 0.3 0.0
      CHANNELS 3 Zrotation Xrotation Yrotation
      End Site
      {
        OFFSET 0.0 0.1 0.0
      }
    }
    JOINT LeftArm
    {
      OFFSET 0.2 0.2 0.0
      CHANNELS 3 Zrotation Xrotation Yrotation
      JOINT LeftHand
      {
        OFFSET 0.3 0.0 0.0
        CHANNELS 3 Zrotation Xrotation Yrotation
        End Site
        {
          OFFSET 0.1 0.0 0.0
        }
      }
    }
    JOINT RightArm
    {
      OFFSET -0.2 0.2 0.0
      CHANNELS 3 Zrotation Xrotation Yrotation
      JOINT RightHand
      {
        OFFSET -0.3 0.0 0.0
        CHANNELS 3 Zrotation Xrotation Yrotation
        End Site
        {
          OFFSET -0.1 0.0 0.0
        }
      }
    }
  }
  JOINT LeftUpLeg
  {
    OFFSET 0.1 0.0 0.0
    CHANNELS 3 Zrotation Xrotation Yrotation
    JOINT LeftFoot
    {
      OFFSET 0.0 -0.9 0.0
      CHANNELS 3 Zrotation Xrotation Yrotation
      End Site
      {
        OFFSET 0.0 0.0 0.1
      }
    }
  }
  JOINT RightUpLeg
  {
    OFFSET -0.1 0.0 0.0
    CHANNELS 3 Zrotation Xrotation Yrotation
    JOINT RightFoot
    {
      OFFSET 0.0 -0.9 0.0
      CHANNELS 3 Zrotation Xrotation Yrotation
      End Site
      {
        OFFSET 0.0 0.0 0.1
      }
    }
  }
}
"""

BONE_NAMES = [
    "Hips", "Spine", "Head", "HeadSite",
    "LeftArm", "LeftHand", "LeftHandSite",
    "RightArm", "RightHand", "RightHandSite",
    "LeftUpLeg", "LeftFoot", "LeftFootSite",
    "RightUpLeg", "RightFoot", "RightFootSite",
]

# Joints with rotation channels, in file order (after Hips)
JOINTS = [
    "Spine", "Head", "LeftArm", "LeftHand", "RightArm", "RightHand",
    "LeftUpLeg", "LeftFoot", "RightUpLeg", "RightFoot",
]


def motion_row(k: int) -> list:
    """Channel values of frame k: the hips walk diagonally while turning."""
    row = [0.02 * k, 1.0, 0.05 * k, 0.0, 0.0, 3.0 * k]
    for j, _ in enumerate(JOINTS):
        swing = 10.0 * math.sin(0.3 * k + j)
        row.extend([swing, 0.5 * swing, 0.0])
    return row


def make_bvh(num_frames: int, frame_time: float = 1.0 / 30.0) -> str:
    lines = [HIERARCHY.rstrip("\n"), "MOTION", f"Frames: {num_frames}", f"Frame Time: {frame_time:.7f}"]
    for k in range(num_frames):
        lines.append(" ".join(f"{v:.6f}" for v in motion_row(k)))
    return "\n".join(lines) + "\n"


@pytest.fixture
def bvh_text():
    return make_bvh(4)


@pytest.fixture
def asset():
    """A 4-frame, 30 fps clip."""
    return BVHImporter().parse(make_bvh(4), name="walk")


@pytest.fixture
def long_asset():
    """A 40-frame, 30 fps clip."""
    return BVHImporter().parse(make_bvh(40), name="walk_long")


@pytest.fixture
def motion_dir(tmp_path):
    """Folder with a single 4-frame clip."""
    folder = tmp_path / "bvh"
    folder.mkdir()
    (folder / "walk.bvh").write_text(make_bvh(4))
    return folder


@pytest.fixture
def export_dir(tmp_path):
    folder = tmp_path / "export"
    folder.mkdir()
    return folder


@pytest.fixture
def config(export_dir):
    """Configuration for a small run: no mirror, no shifts, no phases, no styles."""
    config = PipelineConfig()
    config.export.export_dir = export_dir
    config.export.write_mirror = False
    config.export.frame_shifts = 0
    config.export.retry_delay = 0.0
    return config


def read_rows(path: Path) -> np.ndarray:
    lines = [line for line in path.read_text().splitlines() if line]
    return np.array([[float(v) for v in line.split(" ")] for line in lines])


def read_labels(path: Path) -> list:
    return [line.split(" ", 1)[1] for line in path.read_text().splitlines() if line]
