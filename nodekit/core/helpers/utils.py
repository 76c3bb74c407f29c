import functools
import importlib
import logging
import os
import pkgutil
from collections.abc import Callable
from pathlib import Path


def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=level,
        format='%(asctime)s %(levelname)-8s [%(name)s:%(funcName)s] : %(message)s',
    )


def scan(package: str):
    """
    Decorator that triggers a component scan when the decorated function
    is called, so that the modules of `package` get a chance to register
    themselves (e.g. command handlers) before it runs.
    """
    def decorator(func: Callable):

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            py_package = importlib.import_module(package)

            for module_info in pkgutil.iter_modules(py_package.__path__):
                module_name = f"{package}.{module_info.name}"
                importlib.import_module(module_name)

            return func(*args, **kwargs)

        return wrapper

    return decorator


def require_dir(raw: str, what: str = "DB") -> str:
    path = Path(raw).resolve()
    if not path.is_dir():
        raise SystemExit(f"{what} cannot be found at '{path}'")
    return str(path)


def require_absent(raw: str) -> str:
    path = Path(raw).resolve()
    if path.exists():
        raise SystemExit(
            f"Something already exists at '{path}', please specify another path"
        )
    return str(path)


def dir_size(raw: str) -> int:
    size = 0
    for root, _, files in os.walk(raw):
        for name in files:
            size += os.path.getsize(os.path.join(root, name))
    return size
