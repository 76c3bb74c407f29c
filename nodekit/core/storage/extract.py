import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import StrEnum
from typing import Protocol

from nodekit.core.errors import MalformedKey, WriteFailure
from nodekit.core.helpers.progress import ProgressEstimator
from nodekit.core.storage.batch import BatchedWriter
from nodekit.core.storage.codec import KeyCodec

Entry = tuple[bytes, bytes]

Transform = Callable[[bytes, bytes], Iterable[Entry]]
"""
Map one source entry to the entries written to the destination.
An empty result drops the entry. May raise MalformedKey.
"""


class RangeSource(Protocol):
    def iterate_range(
        self,
        start: bytes | None,
        end: bytes | None,
    ) -> Iterable[Entry]:
        """Yield entries in ascending key order within [start, end)."""


class ScanStep(StrEnum):
    proceed = "continue"
    stop = "stop"


@dataclass
class ScanResult:
    matched: int = 0
    """Source entries that passed the prefix check."""

    copied: int = 0
    """Source entries for which at least one entry was written."""

    skipped: int = 0
    """Source entries rejected by the prefix check or the transform."""

    error: WriteFailure | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def raise_for_error(self) -> None:
        if self.error is not None:
            raise self.error


def passthrough(key: bytes, value: bytes) -> Iterable[Entry]:
    return ((key, value),)


def rewrite_height_prefix(old_prefix: bytes, new_prefix: bytes) -> Transform:
    def transform(key: bytes, value: bytes) -> Iterable[Entry]:
        return ((KeyCodec.rewrite_height_prefix(key, old_prefix, new_prefix), value),)
    return transform


class RangeExtractor:
    """
    Stream the entries of an ordered source through a transform into a
    BatchedWriter.

    For each source entry:
        1. if a `prefix` is configured, entries lacking `prefix || 0x00`
           are logged and skipped (neighbouring keys such as b"vmq" sort
           inside the [b"vm", b"vn") range without belonging to it)
        2. the transform maps the entry to zero or more output entries;
           MalformedKey rejects the entry with a warning
        3. outputs are queued, the writer may flush, progress is reported

    The first write failure stops the scan. Whatever is still pending is
    then flushed durably by `finish`, so that a partial result is at
    least consistently on disk, and the failure is returned in the
    ScanResult. `on_complete` runs after a successful scan and before
    `finish`, which lets callers append synthetic records.
    """
    def __init__(
        self,
        writer: BatchedWriter,
        transform: Transform = passthrough,
        prefix: bytes | None = None,
        progress: ProgressEstimator | None = None,
        on_complete: Callable[[ScanResult, BatchedWriter], None] | None = None,
        name: str = "range",
    ) -> None:
        self._writer = writer
        self._transform = transform
        self._prefix = prefix
        self._progress = progress
        self._on_complete = on_complete
        self._name = name
        self._logger = logging.getLogger("core.storage.extract")

    def extract(
        self,
        source: RangeSource,
        start: bytes | None,
        end: bytes | None,
    ) -> ScanResult:
        return self.run(source.iterate_range(start, end))

    def run(self, entries: Iterable[Entry]) -> ScanResult:
        result = ScanResult()

        for key, value in entries:
            if self._step(result, key, value) is ScanStep.stop:
                break

        if result.ok and self._on_complete is not None:
            self._on_complete(result, self._writer)

        try:
            self._writer.finish()
        except WriteFailure as ex:
            if result.error is None:
                result.error = ex
            else:
                self._logger.error(f"Final flush of '{self._name}' failed too: {ex}")

        if result.ok:
            self._logger.info(
                f"Extracted '{self._name}': {result.copied} entries copied, "
                f"{result.skipped} skipped"
            )
        return result

    def _step(self, result: ScanResult, key: bytes, value: bytes) -> ScanStep:
        if self._prefix is not None and not KeyCodec.has_prefix(key, self._prefix):
            self._logger.warning(f"Key does not have prefix, skipped {key!r}")
            result.skipped += 1
            return ScanStep.proceed

        result.matched += 1

        try:
            outputs = list(self._transform(key, value))
        except MalformedKey as ex:
            self._logger.warning(f"Failed to transform {key!r}, skipped: {ex}")
            result.skipped += 1
            return ScanStep.proceed

        if not outputs:
            result.skipped += 1
            return ScanStep.proceed

        for out_key, out_value in outputs:
            self._writer.put(out_key, out_value)
        result.copied += 1

        try:
            self._writer.maybe_flush()
        except WriteFailure as ex:
            self._logger.error(f"Stopping '{self._name}' after {result.copied} entries: {ex}")
            result.error = ex
            return ScanStep.stop

        self._report(result.copied, key)
        return ScanStep.proceed

    def _report(self, count: int, key: bytes) -> None:
        if self._progress is None:
            return

        sample = self._progress.tick(count)
        if sample is None:
            return

        eta = "unknown" if sample.eta is None else f"{sample.eta:.0f}s"
        self._logger.info(
            f"{count} keys processed ({sample.percent}% of {self._progress.total}), "
            f"elapsed {sample.elapsed:.0f}s, ETA {eta}, current key {key!r}"
        )
