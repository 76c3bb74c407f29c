from typing import Iterator, Protocol

Mutation = tuple[bytes, bytes | None]
"""A pending write: (key, value) for a put, (key, None) for a delete."""


class KeyValueStore(Protocol):
    """
    Minimal synchronous interface of an ordered byte-key store.

    Keys are compared by raw bytes and iteration follows that order.
    Batched writes are atomic: either every mutation of a batch is
    applied or none is. A batch written with `sync=False` may be lost
    on a crash until a later `sync=True` write returns.
    """

    def get(self, key: bytes) -> bytes | None:
        """Return the value stored under `key`, or None if absent."""

    def has(self, key: bytes) -> bool:
        """Return True if `key` is present."""

    def iterate(
        self,
        start: bytes | None = None,
        end: bytes | None = None,
    ) -> Iterator[tuple[bytes, bytes]]:
        """
        Yield entries whose key lies in the half-open range [start, end)
        in ascending byte order. None means unbounded on that side.
        """

    def last(self, prefix: bytes) -> tuple[bytes, bytes] | None:
        """Return the greatest entry whose key starts with `prefix`."""

    def write_batch(self, mutations: list[Mutation], sync: bool = False) -> None:
        """Apply all `mutations` atomically, durably when `sync` is set."""

    def compact(self) -> None:
        """Reclaim the space held by deleted and overwritten entries."""

    def close(self) -> None:
        """
        Release the file handles held by this store. The instance must
        not be used afterwards.
        """


class StoreFactory(Protocol):
    """
    Open key-value stores by filesystem path. Opening a missing store
    read-only, or a store locked by another process, raises
    StoreOpenFailure before anything is written.
    """

    def open(self, path: str, readonly: bool = False) -> KeyValueStore:
        ...
