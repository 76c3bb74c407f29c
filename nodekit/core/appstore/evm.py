import logging
from collections.abc import Iterable
from dataclasses import dataclass

from nodekit.core.storage.batch import BatchedWriter
from nodekit.core.storage.codec import KeyCodec
from nodekit.core.storage.extract import Entry, ScanResult, Transform, rewrite_height_prefix

EVM_PREFIX = b"vm"
EVM_PREFIX_END = b"vn"
VM_ROOT_KEY = b"vmroot"
EVM_ROOT_PREFIX = b"evmroot"
DEFAULT_ROOT = b"\x01"


def evm_root_key(height: int) -> bytes:
    return KeyCodec.compose(EVM_PREFIX, EVM_ROOT_PREFIX, KeyCodec.encode_height_be(height))


class EvmStateTransform:
    """
    Copy EVM state entries unchanged. When the Patricia root record
    (`vm\\x00vmroot`) goes by, its value is also stored under the
    version-keyed `evmroot` record; if it never shows up, a default root
    is written for the version once the scan is over.
    """
    def __init__(self, version: int) -> None:
        self._version = version
        self._root_seen = False
        self._root_key = KeyCodec.compose(EVM_PREFIX, VM_ROOT_KEY)
        self._logger = logging.getLogger("core.appstore.evm")

    @property
    def root_seen(self) -> bool:
        return self._root_seen

    def __call__(self, key: bytes, value: bytes) -> Iterable[Entry]:
        if key != self._root_key:
            return ((key, value),)

        self._root_seen = True
        self._logger.info(f"Copy vmroot to evmroot at height {self._version}")
        return (
            (evm_root_key(self._version), value or DEFAULT_ROOT),
            (key, value),
        )

    def complete(self, result: ScanResult, writer: BatchedWriter) -> None:
        if self._root_seen:
            return

        if result.matched == 0:
            self._logger.info(
                f"EVM state is empty, put default evmroot key at height {self._version}"
            )
        else:
            self._logger.info(
                f"No vmroot record found, put default evmroot key at height {self._version}"
            )
        writer.put(evm_root_key(self._version), DEFAULT_ROOT)


@dataclass(frozen=True, slots=True)
class AuxKeyspace:
    name: str
    prefix: bytes
    end: bytes
    new_prefix: bytes

    def transform(self) -> Transform:
        return rewrite_height_prefix(self.prefix, self.new_prefix)


BLOOM_FILTERS = AuxKeyspace(
    name="bloomFilter",
    prefix=b"bloomFilter",
    end=b"bloomFiltes",
    new_prefix=b"bf",
)

TX_HASHES = AuxKeyspace(
    name="txHash",
    prefix=b"txHash",
    end=b"txHasi",
    new_prefix=b"th",
)
