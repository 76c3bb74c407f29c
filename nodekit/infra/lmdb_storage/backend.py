import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import Iterator

import lmdb

from nodekit.core.errors import CompactionFailure, StoreOpenFailure, WriteFailure
from nodekit.core.ports.storage import Mutation
from nodekit.core.storage.codec import KeyCodec


class LMDBBackend:
    """
    Ordered key-value store backed by a single LMDB environment.

    The environment is opened with `sync=False` for writable stores:
    each committed transaction is visible immediately but only reaches
    the disk when a durable batch is written (`write_batch(..., sync=True)`)
    or when the environment is closed. This is what lets the batched
    writers trade durability of intermediate flushes for throughput.
    """
    def __init__(
        self,
        path: str,
        map_size: int = 1 << 30,
        readonly: bool = False,
        readahead: bool = True,
        writemap: bool = False,
        max_readers: int = 126,
        lock: bool = True,
    ) -> None:
        self._path = path
        self._options = dict(
            map_size=map_size,
            readonly=readonly,
            readahead=readahead,
            writemap=writemap,
            max_readers=max_readers,
            lock=lock,
        )
        self._readonly = readonly
        self._logger = logging.getLogger("infra.lmdb_storage.backend")
        self._env = self._open()

    @property
    def path(self) -> str:
        return self._path

    def get(self, key: bytes) -> bytes | None:
        with self._env.begin(write=False) as txn:
            return txn.get(key)

    def has(self, key: bytes) -> bool:
        return self.get(key) is not None

    def put(self, key: bytes, value: bytes, sync: bool = False) -> None:
        self.write_batch([(key, value)], sync=sync)

    def delete(self, key: bytes, sync: bool = False) -> None:
        self.write_batch([(key, None)], sync=sync)

    def iterate(
        self,
        start: bytes | None = None,
        end: bytes | None = None,
    ) -> Iterator[tuple[bytes, bytes]]:
        with self._env.begin(write=False) as txn:
            with txn.cursor() as cursor:
                positioned = cursor.set_range(start) if start else cursor.first()
                if not positioned:
                    return

                for key, value in cursor.iternext(keys=True, values=True):
                    if end is not None and key >= end:
                        break
                    yield key, value

    def iterate_prefix(self, prefix: bytes) -> Iterator[tuple[bytes, bytes]]:
        return self.iterate(prefix, KeyCodec.range_end(prefix))

    def last(self, prefix: bytes) -> tuple[bytes, bytes] | None:
        with self._env.begin(write=False) as txn:
            with txn.cursor() as cursor:
                end = KeyCodec.range_end(prefix)
                if end is not None and cursor.set_range(end):
                    positioned = cursor.prev()
                else:
                    positioned = cursor.last()

                if not positioned or not cursor.key().startswith(prefix):
                    return None
                return cursor.key(), cursor.value()

    def write_batch(self, mutations: list[Mutation], sync: bool = False) -> None:
        try:
            with self._env.begin(write=True) as txn:
                for key, value in mutations:
                    if value is None:
                        txn.delete(key)
                    else:
                        txn.put(key, value)
            if sync:
                self._env.sync(True)
        except lmdb.Error as ex:
            raise WriteFailure(
                "failed to write batch", path=self._path, size=len(mutations)
            ) from ex

    def compact(self) -> None:
        """
        Rewrite the environment through a compacting copy, then swap the
        compacted data file in place and reopen the environment.
        """
        if self._readonly:
            raise StoreOpenFailure("cannot compact a read-only store", path=self._path)

        parent = os.path.dirname(os.path.abspath(self._path))
        scratch = tempfile.mkdtemp(prefix=".compact-", dir=parent)
        try:
            self._env.copy(scratch, compact=True)
        except lmdb.Error as ex:
            shutil.rmtree(scratch, ignore_errors=True)
            raise CompactionFailure("failed to copy store", path=self._path) from ex

        self._env.close()
        try:
            os.replace(
                os.path.join(scratch, "data.mdb"),
                os.path.join(self._path, "data.mdb"),
            )
        except OSError as ex:
            raise CompactionFailure(
                "failed to swap in the compacted data file", path=self._path
            ) from ex
        finally:
            shutil.rmtree(scratch, ignore_errors=True)
            # the store stays usable, compacted or not
            self._env = self._open()

        self._logger.info(f"Compacted store {self._path}")

    def close(self) -> None:
        self._env.close()

    def __enter__(self) -> "LMDBBackend":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _open(self) -> lmdb.Environment:
        if self._readonly and not Path(self._path).is_dir():
            raise StoreOpenFailure("store not found", path=self._path)

        try:
            return lmdb.open(
                self._path,
                subdir=True,
                create=not self._readonly,
                sync=False,
                max_dbs=0,
                **self._options,
            )
        except lmdb.Error as ex:
            raise StoreOpenFailure(f"failed to open store: {ex}", path=self._path) from ex


class LMDBStoreFactory:
    """
    Factory for opening LMDB-backed stores. All stores opened by the
    factory share the same environment configuration; each path is an
    independent LMDB environment (a directory).
    """
    def __init__(
        self,
        map_size: int = 1 << 30,
        max_readers: int = 126,
        readahead: bool = True,
        writemap: bool = False,
    ) -> None:
        self._map_size = map_size
        self._max_readers = max_readers
        self._readahead = readahead
        self._writemap = writemap

    def open(self, path: str, readonly: bool = False) -> LMDBBackend:
        return LMDBBackend(
            path=path,
            map_size=self._map_size,
            readonly=readonly,
            readahead=self._readahead,
            writemap=self._writemap,
            max_readers=self._max_readers,
        )
