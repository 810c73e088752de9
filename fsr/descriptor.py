from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Union

from pydantic import BaseModel, Field, ValidationError

from .errors import ConfigurationError
from .model import DesiredState, FieldAssignment, OperationRef, ReadRef
from .values import ADDRESS_RE, Value, ValueKind


class ReadRefSpec(BaseModel):
    """``{"read": "ROLE_ID"}`` as an argument: use what the target returns for ``ROLE_ID()``."""

    read: str = Field(..., min_length=1)
    args: list[Arg] = Field(default_factory=list)


Arg = Union[ReadRefSpec, str, int, bool]
ReadRefSpec.model_rebuild()


class OperationSpec(BaseModel):
    method: str = Field(..., min_length=1, description="Remote operation name")
    args: list[Arg] | None = Field(None, description="Ordered arguments; write defaults to [value]")


class FieldSpec(BaseModel):
    field: str = Field(..., min_length=1, description="Unique field name within the descriptor")
    type: ValueKind | None = Field(None, description="address|integer|boolean|bytes; inferred for booleans, integers and 0x + 40 hex addresses")
    value: Union[bool, int, str]
    read: OperationSpec
    write: OperationSpec


class DescriptorModel(BaseModel):
    target: str | None = Field(None, description="Target identifier, e.g. a deployment name")
    fields: list[FieldSpec]


def _arg(a: Any) -> Any:
    if isinstance(a, ReadRefSpec):
        return ReadRef(a.read, tuple(_arg(x) for x in a.args))
    return a


def _assignment(f: FieldSpec) -> FieldAssignment:
    # Untyped strings are only taken as addresses in full 0x + 40 hex form;
    # anything else ("0xA", "0xabcd", "vault.eth") must say which type it is.
    if f.type is None and isinstance(f.value, str) and not ADDRESS_RE.match(f.value.strip()):
        raise ConfigurationError(f"field '{f.field}': string value {f.value!r} needs an explicit 'type'")
    try:
        desired = Value.coerce(f.value, f.type)
    except ValueError as e:
        raise ConfigurationError(f"field '{f.field}': {e}") from e
    write_args = tuple(_arg(a) for a in f.write.args) if f.write.args is not None else (desired,)
    return FieldAssignment(
        field_name=f.field,
        desired_value=desired,
        read=OperationRef(f.read.method, tuple(_arg(a) for a in (f.read.args or []))),
        write=OperationRef(f.write.method, write_args),
    )


def parse_descriptor(data: Any, target: str | None = None) -> DesiredState:
    """Validate a decoded descriptor and build a DesiredState.

    ``target`` overrides the descriptor's own target. Raises ConfigurationError.
    """
    try:
        model = data if isinstance(data, DescriptorModel) else DescriptorModel.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(f"invalid descriptor: {e}") from e
    state = DesiredState(tuple(_assignment(f) for f in model.fields), target=target or model.target)
    state.validate()
    return state


def load_descriptor(path: str | Path, target: str | None = None) -> DesiredState:
    p = Path(path)
    try:
        data = json.loads(p.read_text(encoding="utf-8"))
    except OSError as e:
        raise ConfigurationError(f"cannot read descriptor {p}: {e}") from e
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"descriptor {p} is not valid JSON: {e}") from e
    return parse_descriptor(data, target=target)
