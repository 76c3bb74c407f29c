import pytest

from nodekit.core.errors import WriteFailure
from nodekit.core.helpers.progress import ProgressEstimator
from nodekit.core.storage.batch import BatchedWriter
from nodekit.core.storage.extract import RangeExtractor, ScanResult, rewrite_height_prefix
from tests.fake.fake_storage import FakeKeyValueStore


def height_le(height: int) -> bytes:
    return height.to_bytes(8, "little")


@pytest.mark.ut
def test_passthrough_copies_range():
    source = FakeKeyValueStore({b"a": b"1", b"b": b"2", b"c": b"3", b"d": b"4"})
    dest = FakeKeyValueStore()

    result = RangeExtractor(BatchedWriter(dest)).extract(source, b"b", b"d")

    assert result == ScanResult(matched=2, copied=2, skipped=0)
    assert dest.data == {b"b": b"2", b"c": b"3"}


@pytest.mark.ut
def test_prefix_filter_skips_neighbour_keys():
    source = FakeKeyValueStore({
        b"vm\x00a": b"1",
        b"vmq": b"x",
        b"vm\x00b": b"2",
    })
    dest = FakeKeyValueStore()

    result = RangeExtractor(BatchedWriter(dest), prefix=b"vm").extract(source, b"vm", b"vn")

    assert result.matched == 2
    assert result.skipped == 1
    assert b"vmq" not in dest.data
    assert set(dest.data) == {b"vm\x00a", b"vm\x00b"}


@pytest.mark.ut
def test_malformed_keys_are_skipped():
    source = FakeKeyValueStore({
        b"txHash\x00" + height_le(3): b"h3",
        b"txHash\x00\x01\x02": b"short",
        b"txHash\x00" + height_le(7): b"h7",
    })
    dest = FakeKeyValueStore()

    extractor = RangeExtractor(
        BatchedWriter(dest),
        transform=rewrite_height_prefix(b"txHash", b"th"),
        prefix=b"txHash",
    )
    result = extractor.extract(source, b"txHash", b"txHasi")

    assert result.copied == 2
    assert result.skipped == 1
    assert dest.data == {
        b"th\x00" + (3).to_bytes(8, "big"): b"h3",
        b"th\x00" + (7).to_bytes(8, "big"): b"h7",
    }


@pytest.mark.ut
def test_empty_transform_output_drops_entry():
    source = FakeKeyValueStore({b"a": b"1", b"b": b"2"})
    dest = FakeKeyValueStore()

    def only_a(key, value):
        return [(key, value)] if key == b"a" else []

    result = RangeExtractor(BatchedWriter(dest), transform=only_a).extract(source, None, None)
    assert result.copied == 1
    assert result.skipped == 1
    assert dest.data == {b"a": b"1"}


@pytest.mark.ut
def test_on_complete_runs_before_final_flush():
    source = FakeKeyValueStore({b"a": b"1"})
    dest = FakeKeyValueStore()

    def trailer(result, writer):
        writer.put(b"z", b"%d" % result.copied)

    result = RangeExtractor(BatchedWriter(dest), on_complete=trailer).extract(source, None, None)
    assert result.ok
    assert dest.data == {b"a": b"1", b"z": b"1"}
    assert len(dest.batches) == 1


@pytest.mark.ut
def test_write_failure_stops_scan_and_flushes_pending():
    source = FakeKeyValueStore({b"k%d" % i: b"v" for i in range(10)})
    dest = FakeKeyValueStore(fail_on_batch=2)
    called = []

    extractor = RangeExtractor(
        BatchedWriter(dest, flush_threshold=2),
        on_complete=lambda *_: called.append(True),
    )
    result = extractor.extract(source, None, None)

    assert not result.ok
    assert isinstance(result.error, WriteFailure)
    assert result.error.written == 3
    assert result.copied == 6
    assert called == []
    # first batch went through, the failed one was discarded, finish wrote nothing left
    assert len(dest.data) == 3
    assert dest.batches[-1] == ([], True)

    with pytest.raises(WriteFailure):
        result.raise_for_error()


@pytest.mark.ut
def test_progress_is_reported(caplog):
    source = FakeKeyValueStore({b"k%d" % i: b"v" for i in range(10)})
    dest = FakeKeyValueStore()

    extractor = RangeExtractor(
        BatchedWriter(dest),
        progress=ProgressEstimator(10, log_level=1),
        name="test",
    )
    with caplog.at_level("INFO", logger="core.storage.extract"):
        extractor.extract(source, None, None)

    reports = [r for r in caplog.records if "keys processed" in r.getMessage()]
    assert len(reports) == 10
