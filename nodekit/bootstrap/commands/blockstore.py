import argparse
from dataclasses import asdict

from nodekit.bootstrap.deps import get_batch_size, get_blockstore_service, get_cli, get_log_level
from nodekit.core.helpers.utils import require_absent, require_dir

cli = get_cli()


@cli.command("block-store", "index-by-hash")
def index_by_hash(namespace: argparse.Namespace) -> dict:
    result = get_blockstore_service().index_by_hash(
        root_path=require_dir(namespace.chaindata, "Chain data"),
        dest_path=require_absent(namespace.dest),
        batch_size=get_batch_size(namespace),
        log_level=get_log_level(namespace),
    )
    return {"indexed": result.copied, "skipped": result.skipped}


@cli.command("block-store", "rollback")
def rollback(namespace: argparse.Namespace) -> dict:
    result = get_blockstore_service().rollback(
        chain_data_dir=require_dir(namespace.chaindata, "Chain data"),
        height=namespace.height,
        with_tx_index=namespace.tx_index,
    )
    return asdict(result)


@cli.command("block-store", "purge")
def purge(namespace: argparse.Namespace) -> dict:
    result = get_blockstore_service().purge(
        chain_data_dir=require_dir(namespace.chaindata, "Chain data"),
        height=namespace.height,
        batch_size=get_batch_size(namespace),
        log_level=get_log_level(namespace),
        skip_missing=namespace.skip_missing,
        skip_compaction=namespace.skip_compaction,
        with_tx_index=namespace.tx_index,
    )
    return asdict(result)
