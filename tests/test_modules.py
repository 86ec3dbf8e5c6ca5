import numpy as np
import pytest

from phasebetween.config.settings import ContactConfig, PhaseMode, PipelineConfig
from phasebetween.core.modules import (
    ContactModule,
    DeepPhaseModule,
    DeepPhaseSeries,
    ModuleSet,
    PhaseModule,
    RootModule,
    StyleModule,
    TargetPoseSampler,
)
from phasebetween.core.timeseries import TimeSeries
from phasebetween.data.motion_data import ChannelData, DeepPhaseData, PhaseData


@pytest.fixture
def series():
    return TimeSeries()


def test_root_is_ground_projected(long_asset):
    module = RootModule(long_asset)
    root = module.frame_transformation(long_asset.get_frame_by_index(10), mirrored=False)
    assert root[1, 3] == 0.0
    assert root[1, 2] == pytest.approx(0.0)
    assert np.allclose(root[[0, 2], 3], [0.18, 0.45], atol=1e-6)
    assert np.linalg.det(root[:3, :3]) == pytest.approx(1.0)


def test_root_mirrored(long_asset):
    module = RootModule(long_asset)
    frame = long_asset.get_frame_by_index(10)
    default = module.frame_transformation(frame, mirrored=False)
    mirrored = module.frame_transformation(frame, mirrored=True)
    assert mirrored[0, 3] == pytest.approx(-default[0, 3])
    assert mirrored[0, 2] == pytest.approx(-default[0, 2])
    assert mirrored[2, 2] == pytest.approx(default[2, 2])


def test_root_velocity(long_asset):
    module = RootModule(long_asset)
    velocity = module.frame_velocity(long_asset.get_frame(0.2), mirrored=False)
    assert np.allclose(velocity, [0.6, 0.0, 1.5], atol=1e-4)


def test_root_bone_override(long_asset):
    module = RootModule(long_asset, root_bone="Spine")
    assert module.bone == long_asset.get_bone_index("Spine")
    with pytest.raises(KeyError):
        RootModule(long_asset, root_bone="Tail")


def test_root_series_keys(long_asset, series):
    root_series = RootModule(long_asset).extract(series, 0.5, mirrored=False)
    assert root_series.transformations.shape == (13, 4, 4)
    assert root_series.velocities.shape == (13, 3)
    # Past keys before the clip start clamp to the first frame
    assert np.allclose(root_series.get_position(0), [0.0, 0.0, 0.0])
    assert np.allclose(root_series.get_position(6), [0.3, 0.0, 0.75], atol=1e-6)


def test_contacts_from_channels(long_asset, series):
    values = np.zeros((long_asset.num_frames, 2))
    values[:, 0] = 1.0
    long_asset.attach_channels(contacts=ChannelData(["LeftFoot", "RightFoot"], values))
    module = ContactModule(long_asset, ["LeftFoot", "RightFoot"])

    assert module.missing_bones() == []
    default = module.extract(series, 0.5, mirrored=False)
    mirrored = module.extract(series, 0.5, mirrored=True)
    assert np.allclose(default.get_contacts(6, ["LeftFoot", "RightFoot"]), [1.0, 0.0])
    assert np.allclose(mirrored.get_contacts(6, ["LeftFoot", "RightFoot"]), [0.0, 1.0])
    with pytest.raises(KeyError):
        default.get_contacts(6, ["Hips"])


def test_contacts_from_thresholds(long_asset, series):
    module = ContactModule(long_asset, ["Hips", "LeftFoot"], ContactConfig(height_threshold=0.5))
    contacts = module.extract(series, 0.5, mirrored=False)
    assert contacts.values.shape == (13, 2)
    assert set(np.unique(contacts.values)) <= {0.0, 1.0}
    # Hips stay at one unit of height
    assert np.all(contacts.values[:, 0] == 0.0)


def test_contacts_missing_bone(long_asset):
    module = ContactModule(long_asset, ["LeftToe"])
    assert module.missing_bones() == ["LeftToe"]


def test_styles(long_asset, series):
    values = np.tile([1.0, 0.0, 0.5], (long_asset.num_frames, 1))
    long_asset.attach_channels(styles=ChannelData(["Move", "Aiming", "Crouching"], values))
    module = StyleModule(long_asset)
    assert module.missing_styles(["Move", "Jump"]) == ["Jump"]
    styles = module.extract(series, 0.5, mirrored=False)
    assert np.allclose(styles.get_styles(3, ["Crouching", "Move"]), [0.5, 1.0])


def test_styles_without_channels(long_asset, series):
    module = StyleModule(long_asset)
    assert module.missing_styles(["Move"]) == ["Move"]
    assert module.extract(series, 0.5, mirrored=False).values.shape == (13, 0)


def test_phases_mirror_columns(long_asset, series):
    n = long_asset.num_frames
    phases = np.stack([np.full(n, 0.1), np.full(n, 0.6), np.full(n, 0.3)], axis=1)
    long_asset.attach_channels(phases=PhaseData(["LeftFoot", "RightFoot", "Hips"], phases, np.ones((n, 3))))
    module = PhaseModule(long_asset)

    default = module.extract(series, 0.5, mirrored=False)
    mirrored = module.extract(series, 0.5, mirrored=True)
    assert np.allclose(default.phases[0], [0.1, 0.6, 0.3])
    assert np.allclose(mirrored.phases[0], [0.6, 0.1, 0.3])


def test_phase_modules_require_channels(long_asset):
    with pytest.raises(ValueError):
        PhaseModule(long_asset)
    with pytest.raises(ValueError):
        DeepPhaseModule(long_asset)


def test_attach_channels_checks_frames(long_asset):
    with pytest.raises(ValueError):
        long_asset.attach_channels(contacts=ChannelData(["LeftFoot"], np.zeros((3, 1))))


def test_deep_phase_series_layout(long_asset, series):
    n = long_asset.num_frames
    long_asset.attach_channels(deep_phases=DeepPhaseData(
        phases=np.full((n, 2), 0.25),
        amplitudes=np.full((n, 2), 2.0),
        frequencies=np.full((n, 2), 1.5),
    ))
    deep = DeepPhaseModule(long_asset).extract(series, 0.5, mirrored=False)
    assert isinstance(deep, DeepPhaseSeries)

    alignment = deep.get_alignment()
    assert alignment.shape == (13 * 2 * 2,)
    assert np.allclose(alignment[:2], [2.0, 0.0], atol=1e-12)

    update = deep.get_update()
    assert update.shape == (7 * 2 * 4,)
    assert np.allclose(update[:4], [2.0, 0.0, 1.5, 2.0], atol=1e-12)


def test_sampler_is_deterministic(long_asset):
    a = TargetPoseSampler(long_asset, 1, 10, seed=7).sample(0.3, mirrored=False)
    b = TargetPoseSampler(long_asset, 1, 10, seed=7).sample(0.3, mirrored=False)
    assert a.frame_index == b.frame_index
    assert np.allclose(a.pose, b.pose)
    assert 11 <= a.frame_index <= 20
    assert a.time_offset == pytest.approx((a.frame_index - 1) / 30 - 0.3)


def test_sampler_clamps_to_last_frame(long_asset):
    sample = TargetPoseSampler(long_asset, 5, 5).sample(long_asset.frames[-1].timestamp, mirrored=False)
    assert sample.frame_index == long_asset.num_frames
    assert sample.time_offset == pytest.approx(0.0)


def test_sampler_mirrored_uses_same_frame(long_asset):
    sampler = TargetPoseSampler(long_asset, 1, 60)
    default = sampler.sample(0.2, mirrored=False)
    mirrored = sampler.sample(0.2, mirrored=True)
    assert default.frame_index == mirrored.frame_index
    hips = long_asset.get_bone_index("Hips")
    assert mirrored.pose[hips, 0, 3] == pytest.approx(-default.pose[hips, 0, 3])


def test_sampler_rejects_bad_window(long_asset):
    with pytest.raises(ValueError):
        TargetPoseSampler(long_asset, 0, 10)
    with pytest.raises(ValueError):
        TargetPoseSampler(long_asset, 5, 2)


def test_module_set_requirements(long_asset):
    config = PipelineConfig()
    modules = ModuleSet.for_asset(long_asset, config)
    assert modules.phases is None
    assert modules.missing_requirements(PhaseMode.NO_PHASES, []) == []
    assert modules.missing_requirements(PhaseMode.LOCAL_PHASES, []) == ["local phase channels"]
    assert modules.missing_requirements(PhaseMode.DEEP_PHASES, ["Move"]) == [
        "deep phase channels",
        "style channel 'Move'",
    ]
