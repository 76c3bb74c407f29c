from typing import Protocol, Any


class Serializer(Protocol):
    """
    Defines the interface for encoding/decoding the records persisted
    in the stores (tree nodes, block metadata, tx results, ...).

    Implementations must be:
    - deterministic
    - pure (no side effects)
    - able to round-trip bytes values unchanged
    """

    def serialize(self, message: Any) -> bytes:
        """Encode a Python object into bytes suitable for storage."""

    def deserialize(self, data: bytes) -> Any:
        """Decode bytes read from a store into a Python object."""
