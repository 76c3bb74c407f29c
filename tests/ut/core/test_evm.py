import pytest

from nodekit.core.appstore.evm import (
    BLOOM_FILTERS,
    DEFAULT_ROOT,
    EVM_PREFIX,
    EVM_PREFIX_END,
    EvmStateTransform,
    TX_HASHES,
    evm_root_key,
)
from nodekit.core.storage.batch import BatchedWriter
from nodekit.core.storage.extract import RangeExtractor
from tests.fake.fake_storage import FakeKeyValueStore


def run_evm(source, version=7):
    dest = FakeKeyValueStore()
    transform = EvmStateTransform(version)
    extractor = RangeExtractor(
        BatchedWriter(dest),
        transform=transform,
        prefix=EVM_PREFIX,
        on_complete=transform.complete,
    )
    return extractor.extract(source, EVM_PREFIX, EVM_PREFIX_END), dest, transform


@pytest.mark.ut
def test_evm_root_key_layout():
    assert evm_root_key(7) == b"vm\x00evmroot\x00" + (7).to_bytes(8, "big")


@pytest.mark.ut
def test_vmroot_is_duplicated_under_evmroot():
    source = FakeKeyValueStore({
        b"vm\x00acct": b"balance",
        b"vm\x00vmroot": b"\xaa" * 32,
    })
    result, dest, transform = run_evm(source)

    assert transform.root_seen
    assert result.copied == 2
    assert dest.data == {
        b"vm\x00acct": b"balance",
        b"vm\x00vmroot": b"\xaa" * 32,
        evm_root_key(7): b"\xaa" * 32,
    }


@pytest.mark.ut
def test_empty_vmroot_value_gets_default_root():
    source = FakeKeyValueStore({b"vm\x00vmroot": b""})
    _, dest, _ = run_evm(source)
    assert dest.data[evm_root_key(7)] == DEFAULT_ROOT


@pytest.mark.ut
def test_empty_state_gets_default_root():
    source = FakeKeyValueStore({b"vmq": b"x", b"vn": b"y"})
    result, dest, _ = run_evm(source, version=3)

    assert result.matched == 0
    assert dest.data == {evm_root_key(3): DEFAULT_ROOT}


@pytest.mark.ut
def test_state_without_vmroot_gets_default_root():
    source = FakeKeyValueStore({b"vm\x000": b"state"})
    _, dest, _ = run_evm(source, version=3)
    assert dest.data == {b"vm\x000": b"state", evm_root_key(3): DEFAULT_ROOT}


@pytest.mark.ut
@pytest.mark.parametrize("keyspace,new_prefix", [(BLOOM_FILTERS, b"bf"), (TX_HASHES, b"th")])
def test_aux_keyspaces_rewrite_heights(keyspace, new_prefix):
    transform = keyspace.transform()
    key = keyspace.prefix + b"\x00" + (258).to_bytes(8, "little")
    assert list(transform(key, b"data")) == [
        (new_prefix + b"\x00" + (258).to_bytes(8, "big"), b"data"),
    ]
