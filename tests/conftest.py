import pytest

from nodekit.infra.lmdb_storage.backend import LMDBStoreFactory
from nodekit.infra.merkle.tree import MerkleTreeFactory
from nodekit.infra.msgpack_serializer import MsgPackSerializer
from tests.fake.fake_storage import FakeKeyValueStore


@pytest.fixture
def serializer():
    return MsgPackSerializer()


@pytest.fixture
def store_factory():
    return LMDBStoreFactory(map_size=1 << 24)


@pytest.fixture
def tree_factory(serializer):
    return MerkleTreeFactory(serializer)


@pytest.fixture
def memory_store():
    return FakeKeyValueStore()
