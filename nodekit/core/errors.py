from typing import Any


class NodekitError(Exception):
    """
    Base class for every failure surfaced by a maintenance operation.

    Each error carries a small set of structured fields (path, height,
    key, ...) which are rendered into the message so that an operator
    can diagnose the failure and re-run the operation.
    """
    def __init__(self, message: str, **context: Any) -> None:
        self.message = message
        self.context = context
        super().__init__(self._render())

    def _render(self) -> str:
        if not self.context:
            return self.message
        fields = ", ".join(f"{k}={self._fmt(v)}" for k, v in self.context.items())
        return f"{self.message} ({fields})"

    @staticmethod
    def _fmt(value: Any) -> str:
        if isinstance(value, bytes):
            return repr(value)
        return str(value)


class StoreOpenFailure(NodekitError):
    """The store path is missing, locked or otherwise unusable."""


class VersionLoadFailure(NodekitError):
    """The requested tree version does not exist in the store."""


class VersionMismatch(NodekitError):
    """A value-store backed tree was asked for a non-latest version."""


class InvalidRange(NodekitError):
    """Rollback/purge target height violates its precondition."""


class NothingToPurge(NodekitError):
    """No block exists below the purge target height."""


class MalformedKey(NodekitError):
    """A key is too short to carry the expected prefix and suffix."""


class WriteFailure(NodekitError):
    """A destination flush failed. `written` counts the items flushed before it."""

    def __init__(self, message: str, written: int = 0, **context: Any) -> None:
        self.written = written
        super().__init__(message, written=written, **context)


class MissingRecord(NodekitError):
    """An expected block archive record is absent."""


class CompactionFailure(NodekitError):
    """The compacting copy of a store or the swap of its data file failed."""
