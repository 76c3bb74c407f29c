import argparse
import functools
from typing import Protocol


class CommandHandler(Protocol):
    def __call__(self, namespace: argparse.Namespace) -> dict:
        ...


class CommandDispatcher:
    def __init__(self) -> None:
        self._commands: dict[tuple[str, ...], CommandHandler] = {}

    @property
    def commands(self) -> list[tuple[str, ...]]:
        return sorted(self._commands)

    def dispatch(self, *arguments: str, namespace: argparse.Namespace) -> dict:
        command = self._commands.get(arguments)
        if command is None:
            raise RuntimeError(f"Unknown '{' '.join(arguments)}' Command")
        return command(namespace)

    def command(self, *arguments: str):
        def decorator(func: CommandHandler):

            @functools.wraps(func)
            def wrapper(namespace: argparse.Namespace) -> dict:
                return func(namespace)

            self._commands[arguments] = wrapper

            return wrapper

        return decorator
