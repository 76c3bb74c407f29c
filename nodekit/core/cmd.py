import argparse
import logging
import sys

from nodekit.core.dispatcher import CommandDispatcher
from nodekit.core.errors import NodekitError
from nodekit.core.ports.render import Renderer


class NodekitCmd:
    """
    One-shot command runner: resolves the parsed subcommand path to a
    registered handler and prints the handler's report.
    """
    def __init__(
        self,
        parser: argparse.ArgumentParser,
        args: argparse.Namespace,
        renderer: Renderer,
    ) -> None:
        self._parser = parser
        self._args = args
        self._renderer = renderer
        self._dispatcher = CommandDispatcher()
        self._logger = logging.getLogger("core.cmd")

    @property
    def args(self) -> argparse.Namespace:
        return self._args

    def command(self, *arguments: str):
        return self._dispatcher.command(*arguments)

    def handlers(self) -> list[tuple[str, ...]]:
        return self._dispatcher.commands

    def run(self) -> int:
        if self._args.namespace is None:
            self._parser.print_help()
            return 2

        arguments = [self._args.namespace]
        command = getattr(self._args, "command", None)
        if command is not None:
            arguments.append(command)

        return self.handle(*arguments)

    def handle(self, *arguments: str) -> int:
        try:
            report = self._dispatcher.dispatch(*arguments, namespace=self._args)
        except NodekitError as ex:
            self._logger.error(f"{' '.join(arguments)} failed: {ex}")
            print(f"error: {ex}", file=sys.stderr)
            return 1

        if report:
            print(self._renderer.render(report), end="")
        return 0
