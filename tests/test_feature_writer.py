import numpy as np
import pytest

from phasebetween.core.feature_writer import (
    FeatureWriter,
    NonFiniteFeatureError,
    RunningStatistics,
    SchemaMismatchError,
    WriterState,
)

from conftest import read_labels, read_rows


@pytest.fixture
def writer(tmp_path):
    writer = FeatureWriter.create(tmp_path, "Input")
    yield writer
    writer.finish()


def test_running_statistics():
    stats = RunningStatistics(1)
    for value in [1.0, 2.0, 3.0, 4.0]:
        stats.add([value])
    assert stats.mean()[0] == pytest.approx(2.5)
    assert stats.std()[0] == pytest.approx(1.118034, abs=1e-6)


def test_running_statistics_order_invariant():
    rng = np.random.default_rng(0)
    values = rng.normal(size=(50, 4))
    forward, backward = RunningStatistics(4), RunningStatistics(4)
    for row in values:
        forward.add(row)
    for row in values[::-1]:
        backward.add(row)
    assert np.allclose(forward.mean(), backward.mean())
    assert np.allclose(forward.std(), backward.std())
    assert np.allclose(forward.std(), values.std(axis=0))


def test_files_and_statistics(tmp_path, writer):
    for value in [1.0, 2.0, 3.0, 4.0]:
        writer.feed(value, "Speed")
        writer.feed(7.0, "Constant")
        writer.store()
    assert writer.finish() == 4
    assert writer.state == WriterState.CLOSED

    rows = read_rows(tmp_path / "Input.txt")
    assert rows.shape == (4, 2)
    assert rows[:, 0].tolist() == [1.0, 2.0, 3.0, 4.0]

    norm = (tmp_path / "InputNorm.txt").read_text().splitlines()
    assert norm == ["2.50000 7.00000", "1.11803 1.00000"]


def test_labels(tmp_path, writer):
    writer.feed(0.0, "Root")
    writer.feed_values([1.0, 2.0], "Contacts-")
    writer.feed_vector(np.array([1.0, 2.0, 3.0]), "BonePosition")
    writer.feed_xz(np.array([1.0, 2.0, 3.0]), "Trajectory")
    writer.store()
    writer.finish()

    lines = (tmp_path / "InputLabels.txt").read_text().splitlines()
    assert lines[0] == "[0] Root"
    assert read_labels(tmp_path / "InputLabels.txt") == [
        "Root", "Contacts-1", "Contacts-2",
        "BonePositionX", "BonePositionY", "BonePositionZ",
        "TrajectoryX", "TrajectoryZ",
    ]
    assert writer.dim == 8


def test_vector_order_is_kept(tmp_path, writer):
    writer.feed_xz(np.array([1.0, 2.0, 3.0]), "A")
    writer.feed_vector(np.array([4.0, 5.0]), "B")
    writer.store()
    writer.feed_xz(np.array([-1.0, -2.0, -3.0]), "A")
    writer.feed_vector(np.array([-4.0, -5.0]), "B")
    writer.store()
    writer.finish()

    rows = read_rows(tmp_path / "Input.txt")
    assert rows.tolist() == [[1.0, 3.0, 4.0, 5.0], [-1.0, -3.0, -4.0, -5.0]]


def test_number_format(tmp_path, writer):
    writer.feed(1.0 / 3.0, "Third")
    writer.store()
    writer.finish()
    assert (tmp_path / "Input.txt").read_text() == "0.33333\n"


def test_extra_feed_aborts_writer(tmp_path, writer):
    writer.feed(1.0, "A")
    writer.feed(2.0, "B")
    writer.store()
    writer.feed(10.0, "A")
    writer.feed(20.0, "B")
    with pytest.raises(SchemaMismatchError):
        writer.feed(30.0, "C")
    assert writer.state == WriterState.ABORTED

    with pytest.raises(RuntimeError):
        writer.feed(40.0, "A")
    with pytest.raises(RuntimeError):
        writer.store()

    assert writer.finish() == 1
    assert read_rows(tmp_path / "Input.txt").tolist() == [[1.0, 2.0]]
    assert read_rows(tmp_path / "InputNorm.txt").shape == (2, 2)


def test_short_store_aborts_writer(tmp_path, writer):
    writer.feed(1.0, "A")
    writer.feed(2.0, "B")
    writer.store()
    writer.feed(1.0, "A")
    with pytest.raises(SchemaMismatchError):
        writer.store()
    assert writer.state == WriterState.ABORTED

    with pytest.raises(RuntimeError):
        writer.feed(1.0, "A")
    writer.finish()
    assert read_rows(tmp_path / "Input.txt").tolist() == [[1.0, 2.0]]


def test_near_constant_dimension_gets_unit_std(tmp_path, writer):
    for value in [0.1 + 0.2, 0.3, 0.30000000000000004, 0.3]:
        writer.feed(value, "Noise")
        writer.store()
    writer.finish()
    assert (tmp_path / "InputNorm.txt").read_text().splitlines() == ["0.30000", "1.00000"]


def test_empty_store_raises(writer):
    with pytest.raises(SchemaMismatchError):
        writer.store()


def test_non_finite_raises(tmp_path, writer):
    writer.feed(1.0, "A")
    writer.store()
    writer.feed(float("nan"), "A")
    with pytest.raises(NonFiniteFeatureError):
        writer.store()
    writer.finish()
    assert read_rows(tmp_path / "Input.txt").tolist() == [[1.0]]


def test_non_finite_first_vector_does_not_lock_schema(writer):
    writer.feed(float("inf"), "A")
    with pytest.raises(NonFiniteFeatureError):
        writer.store()
    assert writer.state == WriterState.UNCONFIGURED
    writer.feed(1.0, "B")
    writer.store()
    assert writer.schema == ["B"]


def test_finish_without_vectors(tmp_path):
    writer = FeatureWriter.create(tmp_path, "Output")
    assert writer.finish() == 0
    assert (tmp_path / "Output.txt").read_text() == ""
    assert (tmp_path / "OutputNorm.txt").read_text() == ""
    assert (tmp_path / "OutputLabels.txt").read_text() == ""


def test_finish_is_idempotent(writer):
    writer.feed(1.0, "A")
    writer.store()
    assert writer.finish() == 1
    assert writer.finish() == 1
    with pytest.raises(RuntimeError):
        writer.feed(1.0, "A")


def test_context_manager(tmp_path):
    with FeatureWriter.create(tmp_path, "Data") as writer:
        writer.feed(2.0, "A")
        writer.store()
    assert writer.state == WriterState.CLOSED
    assert (tmp_path / "DataNorm.txt").read_text().splitlines() == ["2.00000", "1.00000"]


def test_many_vectors(tmp_path, writer):
    for i in range(500):
        writer.feed(float(i), "Index")
        writer.store()
    writer.finish()
    rows = read_rows(tmp_path / "Input.txt")
    assert rows[:, 0].tolist() == [float(i) for i in range(500)]
