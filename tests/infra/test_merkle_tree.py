from contextlib import closing

import pytest

from nodekit.core.errors import MissingRecord, VersionLoadFailure
from nodekit.infra.merkle.nodedb import NodeDB
from nodekit.infra.merkle.tree import MutableMerkleTree
from tests.fake.fake_storage import FakeKeyValueStore
from tests.helpers import build_app_store


class CollectingVisitor:
    def __init__(self):
        self.leaves = []
        self.inner = []

    def leaf_visited(self, node):
        self.leaves.append(node.key)

    def inner_visited(self, node):
        self.inner.append(node.key)


def new_tree(serializer, store=None, inline_values=True):
    store = store or FakeKeyValueStore()
    return MutableMerkleTree(NodeDB(store, serializer), inline_values=inline_values), store


@pytest.mark.ut
def test_save_and_iterate(serializer):
    tree, _ = new_tree(serializer)
    for key in [b"c", b"a", b"d", b"b", b"e"]:
        tree.set(key, key.upper())

    assert tree.save_version() == 1
    assert tree.size == 5
    assert list(tree.iterate()) == [(k, k.upper()) for k in [b"a", b"b", b"c", b"d", b"e"]]
    assert tree.get(b"d") == b"D"
    assert tree.get(b"z") is None


@pytest.mark.ut
def test_iterate_range(serializer):
    tree, _ = new_tree(serializer)
    for i in range(20):
        tree.set(b"k%02d" % i, b"v")
    tree.save_version()

    keys = [k for k, _ in tree.iterate_range(b"k05", b"k12")]
    assert keys == [b"k%02d" % i for i in range(5, 12)]
    assert list(tree.iterate_range(b"x", None)) == []


@pytest.mark.ut
def test_versions_are_kept(serializer):
    tree, store = new_tree(serializer)
    tree.set(b"a", b"1")
    tree.save_version()
    tree.set(b"b", b"2")
    tree.remove(b"a")
    tree.save_version()

    reopened, _ = new_tree(serializer, store)
    assert reopened.load_version() == 2
    assert list(reopened.iterate()) == [(b"b", b"2")]

    assert reopened.load_version(1) == 1
    assert list(reopened.iterate()) == [(b"a", b"1")]

    assert dict(reopened.get_immutable(2).iterate()) == {b"b": b"2"}


@pytest.mark.ut
def test_load_version_picks_nearest_lower(serializer):
    tree, store = new_tree(serializer)
    tree.set(b"a", b"1")
    tree.save_version()
    tree.save_version()

    assert tree.load_version(50) == 2


@pytest.mark.ut
def test_load_version_of_empty_store(serializer):
    tree, _ = new_tree(serializer)
    with pytest.raises(VersionLoadFailure):
        tree.load_version()


@pytest.mark.ut
def test_get_immutable_of_missing_version(serializer):
    tree, _ = new_tree(serializer)
    tree.save_version()
    with pytest.raises(VersionLoadFailure):
        tree.get_immutable(9)


@pytest.mark.ut
def test_empty_version(serializer):
    tree, _ = new_tree(serializer)
    tree.set(b"a", b"1")
    tree.save_version()
    tree.remove(b"a")
    assert tree.save_version() == 2
    assert tree.size == 0
    assert tree.root_hash is None
    assert list(tree.iterate()) == []


@pytest.mark.ut
def test_walk_visits_children_first(serializer):
    tree, _ = new_tree(serializer)
    for key in [b"a", b"b", b"c", b"d"]:
        tree.set(key, b"v")
    tree.save_version()

    visitor = CollectingVisitor()
    assert tree.walk(visitor) == 7
    assert visitor.leaves == [b"a", b"b", b"c", b"d"]
    assert len(visitor.inner) == 3
    # root inner node is visited last
    assert visitor.inner[-1] == b"c"


@pytest.mark.ut
def test_identical_content_has_identical_root(serializer):
    one, _ = new_tree(serializer)
    two, _ = new_tree(serializer)
    for tree in (one, two):
        tree.set(b"a", b"1")
        tree.set(b"b", b"2")
        tree.save_version()
    assert one.root_hash == two.root_hash

    two.set(b"b", b"3")
    two.save_version()
    three, _ = new_tree(serializer)
    three.set(b"a", b"1")
    three.set(b"b", b"3")
    three.save_version()
    three.save_version()
    assert two.root_hash == three.root_hash


@pytest.mark.ut
def test_values_resolved_through_value_getter(serializer):
    store = FakeKeyValueStore()
    values = {b"a": b"1"}
    tree = MutableMerkleTree(NodeDB(store, serializer, values.get), inline_values=False)
    tree.set(b"a", b"1")
    tree.save_version()

    node_key = NodeDB.node_key(tree.root_hash)
    assert serializer.deserialize(store.get(node_key))[4] is None

    split = MutableMerkleTree(NodeDB(store, serializer, values.get))
    split.load_version()
    assert split.get(b"a") == b"1"

    bare = MutableMerkleTree(NodeDB(store, serializer))
    with pytest.raises(MissingRecord):
        bare.load_version()


@pytest.mark.it
def test_tree_on_lmdb(tmp_path, store_factory, serializer, tree_factory):
    path = tmp_path / "app.db"
    build_app_store(store_factory, serializer, path, [{b"a": b"1"}, {b"b": b"2"}])

    with closing(store_factory.open(str(path), readonly=True)) as store:
        tree = tree_factory.open_tree(store)
        assert tree.load_version() == 2
        assert tree.latest_version() == 2
        assert dict(tree.iterate()) == {b"a": b"1", b"b": b"2"}
