"""Configuration module for phasebetween."""

from phasebetween.config.settings import (
    PipelineConfig,
    ExportConfig,
    TimeSeriesConfig,
    SamplingConfig,
    ImportConfig,
    ContactConfig,
    PhaseMode,
    Character,
    CONTACT_PRESETS,
)

__all__ = [
    "PipelineConfig",
    "ExportConfig",
    "TimeSeriesConfig",
    "SamplingConfig",
    "ImportConfig",
    "ContactConfig",
    "PhaseMode",
    "Character",
    "CONTACT_PRESETS",
]
