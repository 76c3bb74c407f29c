import argparse
from importlib.metadata import PackageNotFoundError, version as dist_version

from nodekit.bootstrap.deps import get_cli

cli = get_cli()


@cli.command("version")
def version(namespace: argparse.Namespace) -> dict:
    try:
        return {"version": dist_version("nodekit")}
    except PackageNotFoundError:
        return {"version": "unknown"}
