import argparse
import os
from functools import lru_cache
from pathlib import Path


def positive_int(raw: str) -> int:
    value = int(raw)
    if value <= 0:
        raise argparse.ArgumentTypeError(f"expected a positive integer, got {raw}")
    return value


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="nodekit",
        description=(
            "Maintenance tools for the stores of a blockchain node.\n\n"
            "Operates on the versioned app store (app.db) and on the block\n"
            "archive (chaindata/data/blockstore.db). Every command expects\n"
            "exclusive access to the stores it writes."
        ),
        formatter_class=argparse.RawTextHelpFormatter
    )

    parser.add_argument(
        "-c", "--config",
        type=str,
        help="Path to a nodekit configuration file"
    )

    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging verbosity (default from configuration, INFO otherwise)."
    )

    parser.add_argument(
        "-o", "--output",
        type=str,
        default="yaml",
        choices=["yaml", "json"],
        help="Format of the command report printed on completion."
    )

    progress_help = (
        "How often progress output should be printed.\n"
        "1 - every 10%%, 2 - every 1%%, 3 - every 0.1%%."
    )

    sub = parser.add_subparsers(dest="namespace")
    sub.add_parser("version", help="Display the nodekit version")

    app = sub.add_parser("app-store", help="Tools that operate on the app store (app.db)")
    app_sub = app.add_subparsers(dest="command", required=True)

    clone = app_sub.add_parser(
        "clone",
        help="Clone a single version of the tree from an app store to a new store"
    )
    clone.add_argument("src")
    clone.add_argument("dest")
    clone.add_argument("-b", "--height", type=int, default=0,
                       help="Version to clone. Default is the latest one.")
    clone.add_argument("-l", "--log", type=int, default=None, dest="log",
                       help=progress_help)
    clone.add_argument("-s", "--saves-per-commit", type=int, default=0,
                       help="Number of saves between commits. 0 means no intermediate commits.")
    clone.add_argument("--src-value-db", default=None,
                       help="Optional path to the value store (app_state.db)")

    values = app_sub.add_parser(
        "extract-values",
        help="Extract the keys & values stored in the leaves of the tree to a new store"
    )
    values.add_argument("src")
    values.add_argument("dest")
    values.add_argument("--version", type=int, default=0,
                        help="Tree version to extract. Default is the latest one.")
    values.add_argument("--log", type=int, default=None, help=progress_help)
    values.add_argument("--batch-size", type=positive_int, default=None,
                        help="Number of keys to write in each batch.")

    evm = app_sub.add_parser(
        "extract-evm-state",
        help="Extract the EVM state from app.db to a separate store"
    )
    evm.add_argument("src")
    evm.add_argument("dest")
    evm.add_argument("--log", type=int, default=None, help=progress_help)
    evm.add_argument("--batch-size", type=positive_int, default=None,
                     help="Number of keys to write in each batch.")
    evm.add_argument("--height", type=int, default=0,
                     help="app.db version at which the EVM state is extracted")

    aux = app_sub.add_parser(
        "extract-evm-data",
        help="Extract EVM bloom filters and tx hashes from app.db to a separate store"
    )
    aux.add_argument("src")
    aux.add_argument("dest")
    aux.add_argument("--log", type=int, default=None, help=progress_help)
    aux.add_argument("--batch-size", type=positive_int, default=None,
                     help="Number of keys to write in each batch.")
    aux.add_argument("--bloom-filters", action="store_true",
                     help="Extract bloom filters only")
    aux.add_argument("--tx-hashes", action="store_true",
                     help="Extract EVM tx hashes only")

    total = app_sub.add_parser(
        "total-data",
        help="Display stats for an app store. Might take a long time with a large store!"
    )
    total.add_argument("path")
    total.add_argument("-p", "--prefix", default="",
                       help="Prefix of the keys to total, default \"\" to total all keys.")
    total.add_argument("-l", "--log", type=int, default=None, help=progress_help)
    total.add_argument("-b", "--height", type=int, default=0,
                       help="Version to inspect. Default is the latest one.")

    blocks = sub.add_parser(
        "block-store",
        help="Tools that operate on the block store (chaindata/data/blockstore.db)"
    )
    blocks_sub = blocks.add_subparsers(dest="command", required=True)

    index = blocks_sub.add_parser(
        "index-by-hash",
        help="Index an existing block store by hash and write the index to a new store"
    )
    index.add_argument("chaindata")
    index.add_argument("dest")
    index.add_argument("--batch-size", type=positive_int, default=None,
                       help="Number of keys to write in each batch.")
    index.add_argument("--log", type=int, default=None, help=progress_help)

    rollback = blocks_sub.add_parser(
        "rollback",
        help="Roll back the block store to the specified height"
    )
    rollback.add_argument("chaindata")
    rollback.add_argument("--height", type=int, default=1,
                          help="Block height to roll back to.")
    rollback.add_argument("--tx-index", action="store_true",
                          help="Also remove the tx index entries of the removed blocks")

    purge = blocks_sub.add_parser(
        "purge",
        help="Remove the blocks below the specified height"
    )
    purge.add_argument("chaindata")
    purge.add_argument("--height", type=int, default=1,
                       help="Blocks below this height are removed.")
    purge.add_argument("--batch-size", type=positive_int, default=None,
                       help="Number of mutations to write in each batch.")
    purge.add_argument("--log", type=int, default=None, help=progress_help)
    purge.add_argument("--skip-missing", action="store_true",
                       help="Skip the missing blocks during purging")
    purge.add_argument("--skip-compaction", action="store_true",
                       help="Don't compact the store after purging")
    purge.add_argument("--tx-index", action="store_true",
                       help="Also remove the tx index entries of the removed blocks")

    return parser


@lru_cache
def get_cli_args() -> argparse.Namespace:
    return build_parser().parse_args()


@lru_cache
def get_configfile() -> Path | None:
    args = get_cli_args()

    # Priority: CLI > ENV > default file in current working directory
    raw = args.config or os.getenv("NODEKIT_CONFIG")

    if raw is None:
        file = Path.cwd() / "nodekit.yaml"
        return file if file.is_file() else None

    file = Path(raw)
    if not file.is_file():
        raise SystemExit(
            f"[config] Configuration file not found: '{file}'.\n"
            "  - Use --config <file.yaml>\n"
            "  - Or set the NODEKIT_CONFIG environment variable\n"
            "  - Or place a 'nodekit.yaml' file in the current working directory."
        )

    return file
