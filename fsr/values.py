from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any


ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")
HEX_RE = re.compile(r"^0x(?:[0-9a-fA-F]{2})*$")


class ValueKind(str, Enum):
    ADDRESS = "address"
    INTEGER = "integer"
    BOOLEAN = "boolean"
    BYTES = "bytes"


@dataclass(frozen=True, eq=False)
class Value:
    """A field value as seen on the remote system.

    Equality is by kind and content. Addresses compare case-insensitively so
    that a checksummed address equals its lowercase form.
    """

    kind: ValueKind
    data: str | int | bool | bytes

    def _key(self) -> Any:
        if self.kind is ValueKind.ADDRESS:
            return str(self.data).lower()
        return self.data

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Value):
            return NotImplemented
        return self.kind is other.kind and self._key() == other._key()

    def __hash__(self) -> int:
        return hash((self.kind, self._key()))

    def __str__(self) -> str:
        if self.kind is ValueKind.BYTES:
            return "0x" + bytes(self.data).hex()  # type: ignore[arg-type]
        if self.kind is ValueKind.BOOLEAN:
            return "true" if self.data else "false"
        return str(self.data)

    def __repr__(self) -> str:
        return f"Value({self.kind.value}:{self})"

    def to_json(self) -> str | int | bool:
        """JSON-safe rendition (bytes become 0x-prefixed hex)."""
        if self.kind is ValueKind.BYTES:
            return str(self)
        return self.data  # type: ignore[return-value]

    @classmethod
    def address(cls, raw: str) -> "Value":
        return cls.coerce(raw, ValueKind.ADDRESS)

    @classmethod
    def integer(cls, raw: int | str) -> "Value":
        return cls.coerce(raw, ValueKind.INTEGER)

    @classmethod
    def boolean(cls, raw: bool | str) -> "Value":
        return cls.coerce(raw, ValueKind.BOOLEAN)

    @classmethod
    def bytes_(cls, raw: bytes | str) -> "Value":
        return cls.coerce(raw, ValueKind.BYTES)

    @classmethod
    def coerce(cls, raw: Any, kind: ValueKind | str | None = None) -> "Value":
        """Convert a raw python/JSON/RPC value into a Value.

        With ``kind`` unset the kind is inferred from the python type.
        Raises ValueError if ``raw`` cannot represent the requested kind.
        """
        if isinstance(raw, Value):
            if kind is None or ValueKind(kind) is raw.kind:
                return raw
            raw = raw.data
        if kind is None:
            kind = infer_kind(raw)
        kind = ValueKind(kind)

        if kind is ValueKind.BOOLEAN:
            if isinstance(raw, bool):
                return cls(kind, raw)
            if isinstance(raw, str) and raw.strip().lower() in {"true", "false"}:
                return cls(kind, raw.strip().lower() == "true")

        elif kind is ValueKind.INTEGER:
            if isinstance(raw, int) and not isinstance(raw, bool):
                return cls(kind, raw)
            if isinstance(raw, str):
                s = raw.strip()
                try:
                    return cls(kind, int(s, 16) if s.lower().startswith("0x") else int(s))
                except ValueError:
                    pass

        elif kind is ValueKind.BYTES:
            if isinstance(raw, (bytes, bytearray)):
                return cls(kind, bytes(raw))
            if isinstance(raw, str) and HEX_RE.match(raw.strip()):
                return cls(kind, bytes.fromhex(raw.strip()[2:]))

        elif kind is ValueKind.ADDRESS:
            if isinstance(raw, str) and raw.strip():
                return cls(kind, raw.strip())
            if isinstance(raw, (bytes, bytearray)) and len(raw) == 20:
                return cls(kind, "0x" + bytes(raw).hex())

        raise ValueError(f"cannot interpret {raw!r} as {kind.value}")


def infer_kind(raw: Any) -> ValueKind:
    if isinstance(raw, bool):
        return ValueKind.BOOLEAN
    if isinstance(raw, int):
        return ValueKind.INTEGER
    if isinstance(raw, (bytes, bytearray)):
        return ValueKind.BYTES
    if isinstance(raw, str):
        s = raw.strip()
        if ADDRESS_RE.match(s):
            return ValueKind.ADDRESS
        if HEX_RE.match(s) and len(s) > 2:
            return ValueKind.BYTES
        return ValueKind.ADDRESS
    raise ValueError(f"unsupported value type: {type(raw).__name__}")
