import hashlib
from dataclasses import dataclass, asdict, field
from typing import Any


def tx_hash(tx: bytes) -> bytes:
    return hashlib.sha256(tx).digest()


@dataclass
class BlockMeta:
    height: int
    hash: bytes
    parts_total: int
    parts_hash: bytes = b""
    num_txs: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "block_id": {
                "hash": self.hash,
                "parts": {"total": self.parts_total, "hash": self.parts_hash},
            },
            "header": {"height": self.height, "num_txs": self.num_txs},
        }

    @classmethod
    def from_dict(cls, data: dict) -> "BlockMeta":
        if "block_id" not in data:
            raise KeyError("Missing 'block_id' key")

        block_id = data["block_id"]
        parts = block_id.get("parts", {})
        header = data.get("header", {})
        return cls(
            height=header.get("height", 0),
            hash=block_id["hash"],
            parts_total=parts.get("total", 0),
            parts_hash=parts.get("hash", b""),
            num_txs=header.get("num_txs", 0),
        )


@dataclass
class Block:
    height: int
    txs: list[bytes] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"header": {"height": self.height}, "txs": list(self.txs)}

    @classmethod
    def from_dict(cls, data: dict) -> "Block":
        return cls(
            height=data["header"]["height"],
            txs=list(data.get("txs") or []),
        )


@dataclass
class TxResult:
    height: int
    index: int
    tx: bytes
    result: bytes = b""

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "TxResult":
        return cls(
            height=data["height"],
            index=data["index"],
            tx=data["tx"],
            result=data.get("result", b""),
        )
