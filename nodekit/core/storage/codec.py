from nodekit.core.errors import MalformedKey


class KeyCodec:
    SEPARATOR: bytes = b"\x00"
    HEIGHT_SIZE: int = 8

    @classmethod
    def compose(cls, *parts: bytes) -> bytes:
        return cls.SEPARATOR.join(parts)

    @classmethod
    def decompose(cls, key: bytes, prefix: bytes) -> bytes:
        """
        Strip `prefix` and the separator that follows it from `key`.

        The separator byte itself is not re-validated; callers that need
        that guarantee filter with `has_prefix` first.
        """
        if len(prefix) + 1 > len(key):
            raise MalformedKey("prefix longer than key", prefix=prefix, key=key)
        return key[len(prefix) + 1:]

    @classmethod
    def has_prefix(cls, key: bytes, prefix: bytes) -> bool:
        if not prefix:
            return False
        return key.startswith(prefix + cls.SEPARATOR)

    @classmethod
    def range_end(cls, prefix: bytes | None) -> bytes | None:
        """
        Exclusive upper bound of the keys starting with `prefix`.

        Trailing 0xFF bytes are dropped before incrementing the last
        remaining byte. Returns None (unbounded) for an empty prefix or
        a prefix made only of 0xFF bytes.
        """
        if not prefix:
            return None

        end = prefix.rstrip(b"\xff")
        if not end:
            return None
        return end[:-1] + bytes([end[-1] + 1])

    @classmethod
    def encode_height_be(cls, height: int) -> bytes:
        return height.to_bytes(cls.HEIGHT_SIZE, "big")

    @classmethod
    def decode_height_be(cls, data: bytes) -> int:
        if len(data) < cls.HEIGHT_SIZE:
            raise MalformedKey("height suffix too short", data=data)
        return int.from_bytes(data[:cls.HEIGHT_SIZE], "big")

    @classmethod
    def decode_height_le(cls, data: bytes) -> int:
        if len(data) < cls.HEIGHT_SIZE:
            raise MalformedKey("height suffix too short", data=data)
        return int.from_bytes(data[:cls.HEIGHT_SIZE], "little")

    @classmethod
    def rewrite_height_prefix(
        cls,
        key: bytes,
        old_prefix: bytes,
        new_prefix: bytes
    ) -> bytes:
        """
        Rewrite:
            old_prefix || 0x00 || height(8, little-endian)
        into:
            new_prefix || 0x00 || height(8, big-endian)

        The endianness flip is part of the on-disk contract of the
        extracted auxiliary store and must be kept as is.
        """
        suffix = cls.decompose(key, old_prefix)
        height = cls.decode_height_le(suffix)
        return cls.compose(new_prefix, cls.encode_height_be(height))
