import pytest

from nodekit.core.helpers.progress import ProgressEstimator


class FakeClock:
    def __init__(self, now: float = 100.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.mark.ut
def test_disabled_with_level_zero():
    estimator = ProgressEstimator(1000, log_level=0)
    assert not estimator.enabled
    assert estimator.tick(100) is None


@pytest.mark.ut
@pytest.mark.parametrize("level,period", [(1, 100), (2, 10), (3, 1)])
def test_period_follows_level(level, period):
    assert ProgressEstimator(1000, log_level=level).period == period


@pytest.mark.ut
def test_period_falls_back_when_total_is_small():
    assert ProgressEstimator(5, log_level=2).period == 1
    assert ProgressEstimator(5, log_level=2, fallback_period=10).period == 10


@pytest.mark.ut
def test_tick_only_on_period_multiples():
    estimator = ProgressEstimator(1000, log_level=1)
    assert estimator.tick(0) is None
    assert estimator.tick(99) is None
    assert estimator.tick(100) is not None
    assert estimator.tick(150) is None
    assert estimator.tick(200) is not None


@pytest.mark.ut
def test_sample_elapsed_and_eta():
    clock = FakeClock()
    estimator = ProgressEstimator(1000, log_level=1, clock=clock)

    clock.now += 10
    sample = estimator.tick(250)
    assert sample.elapsed == pytest.approx(10)
    assert sample.since_last == pytest.approx(10)
    assert sample.fraction_done == pytest.approx(0.25)
    assert sample.percent == 25
    assert sample.eta == pytest.approx(30)

    clock.now += 5
    sample = estimator.tick(500)
    assert sample.elapsed == pytest.approx(15)
    assert sample.since_last == pytest.approx(5)
    assert sample.eta == pytest.approx(15)


@pytest.mark.ut
def test_fraction_is_capped():
    estimator = ProgressEstimator(10, log_level=1)
    sample = estimator.tick(20)
    assert sample.fraction_done == 1.0
    assert sample.eta == pytest.approx(0, abs=1e-6)


@pytest.mark.ut
def test_zero_total_has_unknown_eta():
    estimator = ProgressEstimator(0, log_level=1)
    sample = estimator.tick(3)
    assert sample.fraction_done == 0.0
    assert sample.eta is None
