import time
from collections.abc import Callable
from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class ProgressSample:
    count: int
    elapsed: float
    """Seconds since the estimator was started."""

    since_last: float
    """Seconds since the previous emitted sample."""

    fraction_done: float
    eta: float | None
    """Extrapolated seconds remaining, None when nothing can be inferred yet."""

    @property
    def percent(self) -> int:
        return int(self.fraction_done * 100)


class ProgressEstimator:
    """
    Decide when a long-running scan should report progress and compute
    the elapsed time and ETA of each report.

    `log_level` 0 disables reporting. With N > 0 a sample is emitted
    roughly every `total / 10**N` items, i.e. 1 -> every 10%,
    2 -> every 1%, 3 -> every 0.1%. When that period rounds down to 0
    the estimator falls back to `fallback_period` (or 1).

    The estimator performs no I/O: callers log the returned samples.
    """
    def __init__(
        self,
        total: int,
        log_level: int = 0,
        fallback_period: int | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._total = max(total, 0)
        self._log_level = log_level
        self._clock = clock
        self._period = self._compute_period(fallback_period)
        self._started = clock()
        self._last = self._started

    @property
    def enabled(self) -> bool:
        return self._period > 0

    @property
    def period(self) -> int:
        return self._period

    @property
    def total(self) -> int:
        return self._total

    def elapsed(self) -> float:
        return self._clock() - self._started

    def tick(self, count: int) -> ProgressSample | None:
        if not self.enabled or count <= 0 or count % self._period != 0:
            return None

        now = self._clock()
        elapsed = now - self._started
        since_last = now - self._last
        self._last = now

        fraction = min(count / self._total, 1.0) if self._total else 0.0
        eta = elapsed / fraction - elapsed if fraction > 0 else None

        return ProgressSample(
            count=count,
            elapsed=elapsed,
            since_last=since_last,
            fraction_done=fraction,
            eta=eta,
        )

    def _compute_period(self, fallback_period: int | None) -> int:
        if self._log_level <= 0:
            return 0

        period = self._total // (10 ** self._log_level)
        if period == 0:
            period = fallback_period or 1
        return period
