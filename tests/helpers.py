import os
from contextlib import closing

from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, YamlConfigSettingsSource

from nodekit.bootstrap.config.settings import NodekitConfig
from nodekit.core.blockstore.store import BlockKeys
from nodekit.core.blockstore.txindex import TxIndexStore
from nodekit.core.models.block import Block, BlockMeta, TxResult, tx_hash
from nodekit.core.storage.codec import KeyCodec
from nodekit.infra.merkle.nodedb import NodeDB
from nodekit.infra.merkle.tree import MutableMerkleTree


class FakeNodekitConfig(NodekitConfig):
    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        sources: tuple[PydanticBaseSettingsSource, ...] = (init_settings, env_settings)
        configfile = os.environ.get("TEST_NODEKITCONFIG")
        if configfile:
            sources += (YamlConfigSettingsSource(settings_cls, yaml_file=configfile),)
        return sources


def build_app_store(store_factory, serializer, path, versions, value_path=None) -> None:
    """
    Write one tree version per dict of `versions`. Each dict is applied
    on top of the previous version; a None value removes the key.

    With `value_path`, leaves are stored without values and the values
    of the last version are written to a separate value store.
    """
    values: dict[bytes, bytes] = {}
    split = value_path is not None

    with closing(store_factory.open(str(path))) as store:
        ndb = NodeDB(store, serializer, values.get if split else None)
        tree = MutableMerkleTree(ndb, inline_values=not split)
        for changes in versions:
            for key, value in changes.items():
                if value is None:
                    tree.remove(key)
                else:
                    tree.set(key, value)
                    values[key] = value
            tree.save_version()

            # removed leaves are still read while the version is built
            for key, value in changes.items():
                if value is None:
                    values.pop(key, None)

        if split:
            with closing(store_factory.open(str(value_path))) as value_store:
                value_store.write_batch(sorted(values.items()), sync=True)


def block_txs(height: int) -> list[bytes]:
    return [b"tx-%d-%d" % (height, i) for i in range(2)]


def write_block(store, serializer, height: int, parts: int = 2) -> BlockMeta:
    block = Block(height=height, txs=block_txs(height))
    payload = serializer.serialize(block.to_dict())

    size = -(-len(payload) // parts)
    chunks = [payload[i * size:(i + 1) * size] for i in range(parts)]

    meta = BlockMeta(
        height=height,
        hash=KeyCodec.encode_height_be(height) * 4,
        parts_total=parts,
        num_txs=len(block.txs),
    )

    mutations = [(BlockKeys.meta(height), serializer.serialize(meta.to_dict()))]
    for index, chunk in enumerate(chunks):
        mutations.append((BlockKeys.part(height, index), serializer.serialize({"index": index, "bytes": chunk})))
    mutations.append((BlockKeys.commit(height - 1), b"commit-%d" % (height - 1)))
    mutations.append((BlockKeys.seen_commit(height), b"seen-commit-%d" % height))
    store.write_batch(mutations, sync=True)
    return meta


def write_tx_results(store, serializer, height: int) -> None:
    mutations = []
    for index, tx in enumerate(block_txs(height)):
        result = TxResult(height=height, index=index, tx=tx)
        mutations.append((tx_hash(tx), serializer.serialize(result.to_dict())))
        mutations.append((TxIndexStore.height_key(result), tx_hash(tx)))
    store.write_batch(mutations, sync=True)


def build_block_archive(
    store_factory,
    serializer,
    chain_data_dir,
    heights,
    state_height: int | None = None,
    with_tx_index: bool = False,
) -> None:
    data_dir = os.path.join(str(chain_data_dir), "data")
    os.makedirs(data_dir, exist_ok=True)

    heights = list(heights)
    with closing(store_factory.open(os.path.join(data_dir, "blockstore.db"))) as store:
        for height in heights:
            write_block(store, serializer, height)
        state = state_height if state_height is not None else max(heights)
        store.write_batch(
            [(BlockKeys.STATE, serializer.serialize({"height": state}))],
            sync=True,
        )

    if with_tx_index:
        with closing(store_factory.open(os.path.join(data_dir, "tx_index.db"))) as store:
            for height in heights:
                write_tx_results(store, serializer, height)


def read_all(store_factory, path) -> dict[bytes, bytes]:
    with closing(store_factory.open(str(path), readonly=True)) as store:
        return dict(store.iterate())
