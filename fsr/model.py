from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterator

from .errors import ConfigurationError
from .values import Value


def utc_now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


@dataclass(frozen=True)
class ReadRef:
    """An operation argument whose value is itself read from the target."""

    name: str
    args: tuple[Any, ...] = ()


@dataclass(frozen=True)
class OperationRef:
    name: str
    args: tuple[Any, ...] = ()

    def __str__(self) -> str:
        return f"{self.name}({', '.join(_fmt_arg(a) for a in self.args)})"


def _fmt_arg(a: Any) -> str:
    if isinstance(a, ReadRef):
        return f"<{a.name}>"
    if isinstance(a, (bytes, bytearray)):
        return "0x" + bytes(a).hex()
    return str(a)


@dataclass(frozen=True)
class FieldAssignment:
    field_name: str
    desired_value: Value
    read: OperationRef
    write: OperationRef

    @classmethod
    def setter(cls, field_name: str, desired_value: Value, read: str, write: str) -> "FieldAssignment":
        """Plain getter/setter pair: ``read()`` returns the value, ``write(value)`` sets it."""
        return cls(
            field_name=field_name,
            desired_value=desired_value,
            read=OperationRef(read),
            write=OperationRef(write, (desired_value,)),
        )


@dataclass(frozen=True)
class DesiredState:
    assignments: tuple[FieldAssignment, ...]
    target: str | None = None

    def __iter__(self) -> Iterator[FieldAssignment]:
        return iter(self.assignments)

    def __len__(self) -> int:
        return len(self.assignments)

    def validate(self) -> None:
        seen: set[str] = set()
        for a in self.assignments:
            if not a.field_name:
                raise ConfigurationError("field name must not be empty")
            if a.field_name in seen:
                raise ConfigurationError(f"duplicate field name '{a.field_name}'")
            seen.add(a.field_name)
            if not a.read.name or not a.write.name:
                raise ConfigurationError(f"field '{a.field_name}' needs both a read and a write operation")


class Outcome(str, Enum):
    UNCHANGED = "unchanged"
    UPDATED = "updated"
    FAILED = "failed"


@dataclass(frozen=True)
class FieldResult:
    field_name: str
    outcome: Outcome
    old_value: Value | None = None
    new_value: Value | None = None
    error_kind: str | None = None
    error: str | None = None
    attempts: int = 0  # write attempts

    def to_dict(self) -> dict[str, Any]:
        return {
            "field": self.field_name,
            "outcome": self.outcome.value,
            "old_value": self.old_value.to_json() if self.old_value is not None else None,
            "new_value": self.new_value.to_json() if self.new_value is not None else None,
            "error_kind": self.error_kind,
            "error": self.error,
            "attempts": self.attempts,
        }


@dataclass
class ReconciliationResult:
    """Per-field outcomes of one run, in input order.

    Appended to while the run is in progress; read-only once closed.
    """

    target: str
    started_at: str = field(default_factory=utc_now)
    finished_at: str | None = None
    cancelled: bool = False
    _fields: list[FieldResult] = field(default_factory=list, repr=False)

    @property
    def fields(self) -> tuple[FieldResult, ...]:
        return tuple(self._fields)

    @property
    def closed(self) -> bool:
        return self.finished_at is not None

    @property
    def ok(self) -> bool:
        return not self.cancelled and all(f.outcome is not Outcome.FAILED for f in self._fields)

    @property
    def writes(self) -> int:
        return sum(f.attempts for f in self._fields)

    def failed(self) -> list[FieldResult]:
        return [f for f in self._fields if f.outcome is Outcome.FAILED]

    def record(self, r: FieldResult) -> None:
        if self.closed:
            raise RuntimeError("reconciliation result is closed")
        self._fields.append(r)

    def close(self, cancelled: bool = False) -> None:
        if self.closed:
            return
        self.cancelled = cancelled
        self.finished_at = utc_now()

    def counts(self) -> dict[str, int]:
        out = {o.value: 0 for o in Outcome}
        for f in self._fields:
            out[f.outcome.value] += 1
        return out

    def to_dict(self) -> dict[str, Any]:
        return {
            "target": self.target,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "cancelled": self.cancelled,
            "ok": self.ok,
            "counts": self.counts(),
            "fields": [f.to_dict() for f in self._fields],
        }
