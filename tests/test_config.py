from pathlib import Path

from phasebetween.config.settings import (
    Character,
    ExportConfig,
    PhaseMode,
    PipelineConfig,
)


def test_defaults():
    config = PipelineConfig()
    assert config.export.phases == PhaseMode.NO_PHASES
    assert config.export.write_mirror is True
    assert config.time_series.past_keys == 6
    assert config.sampling.target_framerate == 30.0
    assert config.export.resolve_contact_bones() == ["Hips", "LeftHand", "RightHand", "LeftFoot", "RightFoot"]
    assert config.export.resolve_styles() == []


def test_contact_presets():
    export = ExportConfig(character=Character.DOG)
    assert export.resolve_contact_bones() == ["LeftHandSite", "RightHandSite", "LeftFootSite", "RightFootSite"]
    export.contact_bones = ["Tail"]
    assert export.resolve_contact_bones() == ["Tail"]


def test_styles_only_when_enabled():
    export = ExportConfig(export_style_labels=True, styles=["Move"])
    assert export.resolve_styles() == ["Move"]


def test_yaml_round_trip(tmp_path):
    config = PipelineConfig()
    config.export.export_dir = tmp_path
    config.export.phases = PhaseMode.DEEP_PHASES
    config.export.character = Character.DOG
    config.export.frame_shifts = 2
    config.sampling.max_target_frames = 20
    config.importing.scale = 0.01
    config.contacts.height_threshold = 0.05

    path = tmp_path / "export.yaml"
    config.to_yaml(path)
    loaded = PipelineConfig.from_yaml(path)

    assert loaded.export.export_dir == Path(tmp_path)
    assert loaded.export.phases == PhaseMode.DEEP_PHASES
    assert loaded.export.character == Character.DOG
    assert loaded.export.frame_shifts == 2
    assert loaded.sampling.max_target_frames == 20
    assert loaded.importing.scale == 0.01
    assert loaded.contacts.height_threshold == 0.05
    assert loaded.to_dict() == config.to_dict()


def test_partial_dict():
    config = PipelineConfig.from_dict({"export": {"write_mirror": False}, "sampling": {"random_seed": 3}})
    assert config.export.write_mirror is False
    assert config.sampling.random_seed == 3
    assert config.sampling.target_framerate == 30.0


def test_empty_yaml(tmp_path):
    path = tmp_path / "empty.yaml"
    path.write_text("")
    assert PipelineConfig.from_yaml(path).to_dict() == PipelineConfig().to_dict()


def test_validate(tmp_path):
    config = PipelineConfig()
    config.export.export_dir = tmp_path
    assert config.validate() == []

    config.export.export_dir = tmp_path / "missing"
    config.export.frame_shifts = -1
    config.sampling.min_target_frames = 10
    config.sampling.max_target_frames = 5
    config.export.mirror_axis = "w"
    issues = config.validate()
    assert len(issues) == 4
    assert any("Export directory" in issue for issue in issues)
