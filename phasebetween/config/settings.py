"""
Export configuration management.

Provides dataclasses for every configurable aspect of a feature export run:
which assets are processed, how motion is imported, how time windows and
target poses are sampled, and which feature blocks are written.
"""

from dataclasses import dataclass, field
from enum import Enum, auto
from pathlib import Path
from typing import Dict, List, Optional

import yaml


class PhaseMode(Enum):
    """Phase feature block written at the end of each vector."""
    NO_PHASES = auto()
    LOCAL_PHASES = auto()
    DEEP_PHASES = auto()


class Character(Enum):
    """Character presets that determine the contact bones."""
    LAFAN = auto()
    DOG = auto()


CONTACT_PRESETS: Dict[Character, List[str]] = {
    Character.LAFAN: ["Hips", "LeftHand", "RightHand", "LeftFoot", "RightFoot"],
    Character.DOG: ["LeftHandSite", "RightHandSite", "LeftFootSite", "RightFootSite"],
}

DEFAULT_STYLES = ["Move", "Aiming", "Crouching"]


@dataclass
class ExportConfig:
    """Configuration for the export run and the written feature blocks."""

    export_dir: Path = field(default_factory=lambda: Path("data/export"))

    # Iteration
    frame_shifts: int = 0
    frame_buffer: int = 30  # Vectors per throughput measurement / yield
    write_mirror: bool = True
    mirror_axis: str = "x"

    # Feature blocks
    phases: PhaseMode = PhaseMode.NO_PHASES
    character: Character = Character.LAFAN
    contact_bones: Optional[List[str]] = None  # Overrides the character preset
    export_style_labels: bool = False
    styles: List[str] = field(default_factory=lambda: list(DEFAULT_STYLES))

    # Asset selection
    asset_filter: str = ""
    load_retries: int = 3
    retry_delay: float = 0.05

    def resolve_contact_bones(self) -> List[str]:
        """Contact bone names for this run."""
        if self.contact_bones is not None:
            return list(self.contact_bones)
        return list(CONTACT_PRESETS[self.character])

    def resolve_styles(self) -> List[str]:
        """Style labels written per key, empty when style export is off."""
        return list(self.styles) if self.export_style_labels else []

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "export_dir": str(self.export_dir),
            "frame_shifts": self.frame_shifts,
            "frame_buffer": self.frame_buffer,
            "write_mirror": self.write_mirror,
            "mirror_axis": self.mirror_axis,
            "phases": self.phases.name,
            "character": self.character.name,
            "contact_bones": self.contact_bones,
            "export_style_labels": self.export_style_labels,
            "styles": list(self.styles),
            "asset_filter": self.asset_filter,
            "load_retries": self.load_retries,
            "retry_delay": self.retry_delay,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ExportConfig":
        """Create from dictionary."""
        config = cls()
        for key, value in data.items():
            if key == "phases":
                value = PhaseMode[value]
            elif key == "character":
                value = Character[value]
            elif key == "export_dir":
                value = Path(value)
            if hasattr(config, key):
                setattr(config, key, value)
        return config


@dataclass
class TimeSeriesConfig:
    """Past/future key layout shared by every series provider."""

    past_keys: int = 6
    future_keys: int = 6
    past_window: float = 1.0  # Seconds
    future_window: float = 1.0  # Seconds


@dataclass
class SamplingConfig:
    """Configuration for time stepping and target pose sampling."""

    target_framerate: float = 30.0
    min_target_frames: int = 1
    max_target_frames: int = 60
    random_seed: int = 0
    compute_bone_distances: bool = False


@dataclass
class ImportConfig:
    """Configuration for reading BVH motion files."""

    scale: float = 1.0
    flip: bool = False
    flip_axis: str = "x"
    allow_realignment: bool = True
    root_bone: Optional[str] = None  # Defaults to the hierarchy root


@dataclass
class ContactConfig:
    """Thresholds for deriving contacts when an asset carries none."""

    height_threshold: float = 0.1
    velocity_threshold: float = 1.0


@dataclass
class PipelineConfig:
    """Main feature export configuration."""

    export: ExportConfig = field(default_factory=ExportConfig)
    time_series: TimeSeriesConfig = field(default_factory=TimeSeriesConfig)
    sampling: SamplingConfig = field(default_factory=SamplingConfig)
    importing: ImportConfig = field(default_factory=ImportConfig)
    contacts: ContactConfig = field(default_factory=ContactConfig)

    @classmethod
    def from_dict(cls, data: dict) -> "PipelineConfig":
        """Create from a nested dictionary."""
        config = cls()
        data = data or {}

        if "export" in data:
            config.export = ExportConfig.from_dict(data["export"])
        if "time_series" in data:
            config.time_series = TimeSeriesConfig(**data["time_series"])
        if "sampling" in data:
            config.sampling = SamplingConfig(**data["sampling"])
        if "importing" in data:
            config.importing = ImportConfig(**data["importing"])
        if "contacts" in data:
            config.contacts = ContactConfig(**data["contacts"])

        return config

    def to_dict(self) -> dict:
        """Convert to a nested dictionary of plain values."""
        def dataclass_to_dict(obj):
            if hasattr(obj, "__dataclass_fields__"):
                return {
                    k: dataclass_to_dict(v) for k, v in obj.__dict__.items()
                }
            return obj

        data = {
            "export": self.export.to_dict(),
            "time_series": dataclass_to_dict(self.time_series),
            "sampling": dataclass_to_dict(self.sampling),
            "importing": dataclass_to_dict(self.importing),
            "contacts": dataclass_to_dict(self.contacts),
        }
        return data

    @classmethod
    def from_yaml(cls, path: Path) -> "PipelineConfig":
        """Load configuration from YAML file."""
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
        return cls.from_dict(data)

    def to_yaml(self, path: Path) -> None:
        """Save configuration to YAML file."""
        with open(path, "w", encoding="utf-8") as f:
            yaml.dump(self.to_dict(), f, default_flow_style=False, sort_keys=False)

    def validate(self) -> List[str]:
        """Validate configuration and return list of warnings/errors."""
        issues = []

        if not Path(self.export.export_dir).is_dir():
            issues.append(f"Export directory does not exist: {self.export.export_dir}")

        if self.export.frame_shifts < 0:
            issues.append("frame_shifts must be >= 0")

        if self.export.frame_buffer < 1:
            issues.append("frame_buffer must be >= 1")

        if self.export.mirror_axis not in ("x", "y", "z"):
            issues.append(f"Unknown mirror axis: {self.export.mirror_axis}")

        if self.importing.flip_axis not in ("x", "y", "z"):
            issues.append(f"Unknown flip axis: {self.importing.flip_axis}")

        if self.sampling.target_framerate <= 0:
            issues.append("target_framerate must be positive")

        if not 1 <= self.sampling.min_target_frames <= self.sampling.max_target_frames:
            issues.append("Target frame window must satisfy 1 <= min <= max")

        if self.time_series.past_keys < 0 or self.time_series.future_keys < 0:
            issues.append("Time series key counts must be >= 0")

        if self.export.export_style_labels and not self.export.styles:
            issues.append("Style export enabled but no style labels configured")

        return issues
