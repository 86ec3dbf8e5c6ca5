import pytest

from phasebetween.config.settings import TimeSeriesConfig
from phasebetween.core.timeseries import TimeSeries


def test_default_layout():
    series = TimeSeries.from_config(TimeSeriesConfig())
    assert len(series) == 13
    assert series.pivot == 6
    assert series.samples[series.pivot].timestamp == 0.0
    assert series.samples[0].timestamp == pytest.approx(-1.0)
    assert series.samples[-1].timestamp == pytest.approx(1.0)
    assert [s.index for s in series.samples] == list(range(13))


def test_keys_are_evenly_spaced():
    series = TimeSeries(past_keys=2, future_keys=4, past_window=1.0, future_window=2.0)
    assert [s.timestamp for s in series.samples] == pytest.approx([-1.0, -0.5, 0.0, 0.5, 1.0, 1.5, 2.0])


def test_no_past_keys():
    series = TimeSeries(past_keys=0, future_keys=2)
    assert series.pivot == 0
    assert [s.timestamp for s in series.samples] == pytest.approx([0.0, 0.5, 1.0])
