import argparse
import json
from functools import lru_cache

from pydantic import ValidationError

from nodekit.bootstrap.config.loader import build_parser, get_cli_args
from nodekit.bootstrap.config.settings import NodekitConfig
from nodekit.core.cmd import NodekitCmd
from nodekit.core.ports.render import Renderer
from nodekit.core.service.appstore import AppStoreService
from nodekit.core.service.blockstore import BlockStoreService
from nodekit.infra.format_renderer import JsonRenderer, YamlRenderer
from nodekit.infra.lmdb_storage.backend import LMDBStoreFactory
from nodekit.infra.merkle.tree import MerkleTreeFactory
from nodekit.infra.msgpack_serializer import MsgPackSerializer


@lru_cache
def get_cli() -> NodekitCmd:
    args = get_cli_args()
    return NodekitCmd(build_parser(), args, get_renderer(args.output))


def get_renderer(output: str) -> Renderer:
    if output == "json":
        return JsonRenderer()
    return YamlRenderer()


@lru_cache
def get_serializer() -> MsgPackSerializer:
    return MsgPackSerializer()


@lru_cache
def get_store_factory() -> LMDBStoreFactory:
    config = get_config()
    return LMDBStoreFactory(
        map_size=config.storage.map_size,
        max_readers=config.storage.max_readers,
    )


@lru_cache
def get_appstore_service() -> AppStoreService:
    return AppStoreService(
        store_factory=get_store_factory(),
        tree_factory=MerkleTreeFactory(get_serializer()),
    )


@lru_cache
def get_blockstore_service() -> BlockStoreService:
    config = get_config()
    return BlockStoreService(
        store_factory=get_store_factory(),
        serializer=get_serializer(),
        blockstore_name=config.storage.blockstore_name,
        tx_index_name=config.storage.tx_index_name,
    )


@lru_cache
def get_config() -> NodekitConfig:
    try:
        return NodekitConfig()
    except FileNotFoundError as ex:
        raise SystemExit(f"Provide a correct configuration file path: {ex}")
    except ValidationError as ex:
        msg = ["Configuration validation failed:"]
        errs = json.loads(ex.json())
        for err in errs:
            msg.append(f"  {'.'.join(str(p) for p in err['loc'])}: {err['msg']}")
        raise SystemExit("\n".join(msg))


def get_batch_size(namespace: argparse.Namespace) -> int:
    return get_config().defaults.resolve_batch_size(namespace.batch_size)


def get_log_level(namespace: argparse.Namespace) -> int:
    return get_config().defaults.resolve_log_level(namespace.log)
