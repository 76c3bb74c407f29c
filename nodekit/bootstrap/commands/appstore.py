import argparse
import logging
from dataclasses import asdict

from nodekit.bootstrap.deps import get_appstore_service, get_batch_size, get_cli, get_log_level
from nodekit.core.helpers.utils import dir_size, require_absent, require_dir

cli = get_cli()
logger = logging.getLogger("bootstrap.commands.appstore")


@cli.command("app-store", "clone")
def clone(namespace: argparse.Namespace) -> dict:
    src = require_dir(namespace.src, "Source DB")
    dest = require_absent(namespace.dest)
    value_db = None
    if namespace.src_value_db:
        value_db = require_dir(namespace.src_value_db, "Source value DB")

    result = get_appstore_service().clone(
        src_path=src,
        src_value_path=value_db,
        dest_path=dest,
        height=namespace.height,
        log_level=get_log_level(namespace),
        saves_per_commit=namespace.saves_per_commit,
    )

    src_size = dir_size(src)
    dest_size = dir_size(dest)
    logger.info(f"Source DB size {src_size} bytes, destination DB size {dest_size} bytes")

    return {
        **asdict(result),
        "source_size": src_size,
        "destination_size": dest_size,
    }


@cli.command("app-store", "extract-values")
def extract_values(namespace: argparse.Namespace) -> dict:
    result = get_appstore_service().extract_values(
        src_path=require_dir(namespace.src, "Source DB"),
        dest_path=require_absent(namespace.dest),
        version=namespace.version,
        log_level=get_log_level(namespace),
        batch_size=get_batch_size(namespace),
    )
    return {"matched": result.matched, "copied": result.copied, "skipped": result.skipped}


@cli.command("app-store", "extract-evm-state")
def extract_evm_state(namespace: argparse.Namespace) -> dict:
    result = get_appstore_service().extract_evm_state(
        src_path=require_dir(namespace.src, "Source DB"),
        dest_path=require_absent(namespace.dest),
        batch_size=get_batch_size(namespace),
        log_level=get_log_level(namespace),
        height=namespace.height,
    )
    return {"matched": result.matched, "copied": result.copied, "skipped": result.skipped}


@cli.command("app-store", "extract-evm-data")
def extract_evm_data(namespace: argparse.Namespace) -> dict:
    # no selector means both keyspaces
    both = not namespace.bloom_filters and not namespace.tx_hashes
    results = get_appstore_service().extract_evm_aux(
        src_path=require_dir(namespace.src, "Source DB"),
        dest_path=require_absent(namespace.dest),
        batch_size=get_batch_size(namespace),
        log_level=get_log_level(namespace),
        bloom_filter=both or namespace.bloom_filters,
        tx_hash=both or namespace.tx_hashes,
    )
    return {
        name: {"matched": r.matched, "copied": r.copied, "skipped": r.skipped}
        for name, r in results.items()
    }


@cli.command("app-store", "total-data")
def total_data(namespace: argparse.Namespace) -> dict:
    stats = get_appstore_service().total_data(
        path=require_dir(namespace.path),
        prefix=namespace.prefix.encode("utf-8") or None,
        height=namespace.height,
        log_level=get_log_level(namespace),
    )
    return {
        "num_keys": stats.num_keys,
        "total_key_bytes": stats.total_key_bytes,
        "total_value_bytes": stats.total_value_bytes,
        "total_bytes": stats.total_bytes,
        "elapsed": round(stats.elapsed, 3),
    }
