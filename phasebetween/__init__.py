"""
phasebetween - Motion in-betweening training data export

Converts skeletal motion clips (BVH) into flat feature files for training a
motion in-betweening model.

Features:
- Ego-centric and target-centric coordinate frames per training example
- Root trajectory, pose, contact, style and phase features
- Mirrored and frame-shifted data augmentation
- Streaming writer with online mean/std normalization statistics
- Cancellable batch export with progress reporting
"""

__version__ = "1.0.0"
__author__ = "phasebetween Contributors"
__license__ = "MIT"

from phasebetween.config.settings import PipelineConfig
from phasebetween.core.container import Container, FrameExtractor
from phasebetween.core.encoder import MotionInBetweeningEncoder
from phasebetween.core.exporter import MotionExporter
from phasebetween.core.feature_writer import FeatureWriter
from phasebetween.data.library import MotionLibrary
from phasebetween.data.motion_data import MotionAsset

__all__ = [
    "PipelineConfig",
    "Container",
    "FrameExtractor",
    "MotionInBetweeningEncoder",
    "MotionExporter",
    "FeatureWriter",
    "MotionLibrary",
    "MotionAsset",
]
