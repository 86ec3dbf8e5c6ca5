"""
Motion asset library.

Scans a directory of BVH files and loads each selected clip together with
its optional sidecars:
- <name>.yaml: export flag and sequence ranges
- <name>.npz: contact, style and phase channels
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

import numpy as np
import yaml

from phasebetween.config.settings import ImportConfig
from phasebetween.data.bvh_importer import BVHImporter
from phasebetween.data.motion_data import (
    ChannelData,
    DeepPhaseData,
    MotionAsset,
    PhaseData,
)

logger = logging.getLogger(__name__)


@dataclass
class AssetEntry:
    """A motion file known to the library."""
    name: str
    path: Path
    selected: bool = True
    exported: bool = False


class MotionLibrary:
    """
    Collection of BVH assets available for export.

    Example:
        >>> library = MotionLibrary.scan(Path("data/bvh"), asset_filter="walk")
        >>> for entry in library.selected():
        ...     asset = library.load(entry)
    """

    def __init__(
        self,
        entries: Optional[List[AssetEntry]] = None,
        import_config: Optional[ImportConfig] = None,
        mirror_axis: str = "x",
    ):
        self.entries: List[AssetEntry] = entries or []
        self.import_config = import_config or ImportConfig()
        self.importer = BVHImporter(
            scale=self.import_config.scale,
            flip=self.import_config.flip,
            flip_axis=self.import_config.flip_axis,
            mirror_axis=mirror_axis,
        )

    @classmethod
    def scan(
        cls,
        directory: Path,
        asset_filter: str = "",
        import_config: Optional[ImportConfig] = None,
        mirror_axis: str = "x",
    ) -> "MotionLibrary":
        """
        Collect all *.bvh files of a directory, sorted by name.

        Args:
            directory: Folder containing BVH files
            asset_filter: Case-insensitive substring the file name must contain
            import_config: Import options applied when loading
            mirror_axis: Axis the loaded assets mirror across
        """
        directory = Path(directory)
        if not directory.is_dir():
            raise FileNotFoundError(f"Motion directory does not exist: {directory}")

        needle = asset_filter.lower()
        entries = [
            AssetEntry(name=path.stem, path=path)
            for path in sorted(directory.glob("*.bvh"))
            if needle in path.name.lower()
        ]
        logger.info(f"Found {len(entries)} motion files in {directory}")
        return cls(entries, import_config=import_config, mirror_axis=mirror_axis)

    def selected(self) -> List[AssetEntry]:
        return [entry for entry in self.entries if entry.selected]

    def select_all(self, selected: bool = True):
        for entry in self.entries:
            entry.selected = selected

    def load(self, entry: AssetEntry) -> MotionAsset:
        """Import an entry and attach its sidecar metadata and channels."""
        asset = self.importer.load(entry.path)
        self._apply_metadata(asset, entry.path.with_suffix(".yaml"))
        self._apply_channels(asset, entry.path.with_suffix(".npz"))
        return asset

    @staticmethod
    def _apply_metadata(asset: MotionAsset, path: Path):
        if not path.exists():
            return
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        asset.export = bool(data.get("export", True))
        if "sequences" in data:
            asset.set_sequences(data["sequences"])

    @staticmethod
    def _apply_channels(asset: MotionAsset, path: Path):
        if not path.exists():
            return
        contacts = styles = phases = deep_phases = None
        with np.load(path, allow_pickle=False) as data:
            keys = set(data.files)

            def names(key: str) -> List[str]:
                return [str(n) for n in data[key]]

            if "contacts" in keys:
                contacts = ChannelData(names("contact_bones"), data["contacts"].astype(float))
            if "styles" in keys:
                styles = ChannelData(names("style_names"), data["styles"].astype(float))
            if "phases" in keys:
                phases = PhaseData(
                    bones=names("phase_bones"),
                    phases=data["phases"].astype(float),
                    amplitudes=data["amplitudes"].astype(float),
                )
            if "deep_phases" in keys:
                deep_phases = DeepPhaseData(
                    phases=data["deep_phases"].astype(float),
                    amplitudes=data["deep_amplitudes"].astype(float),
                    frequencies=data["deep_frequencies"].astype(float),
                )

        asset.attach_channels(contacts, styles, phases, deep_phases)
