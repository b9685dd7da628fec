"""JSON value codec for generated declarations.

Values travel in the shape ResourceLib emits: classes as objects keyed by
their original field names, enums as original member names, and variants as
``{"$type": tag, "$val": value}`` resolved through a ``VariantRegistry``.
Validation itself is pydantic's; this module supplies the registry context
and turns failures into ``DecodeError``.
"""

from __future__ import annotations

from typing import Any, Sequence, Union

from pydantic import PydanticUserError, ValidationError

from .variant import REGISTRY_CONTEXT_KEY, VariantRegistry, adapter_for, wire_name_of


class DecodeError(ValueError):
    def __init__(self, message: str, path: str) -> None:
        super().__init__(f"{path}: {message}")
        self.path = path


def error_path(loc: Sequence[Union[str, int]]) -> str:
    path = "$"
    for part in loc:
        path += f"[{part}]" if isinstance(part, int) else f".{part}"
    return path


def _validate(tp: Any, registry: VariantRegistry, validate: str, data: Any) -> Any:
    context = {REGISTRY_CONTEXT_KEY: registry}
    try:
        return getattr(adapter_for(tp), validate)(data, context=context)
    except ValidationError as e:
        first = e.errors()[0]
        raise DecodeError(first["msg"], error_path(first["loc"])) from e
    except (NameError, PydanticUserError) as e:
        raise DecodeError(f"unresolved type in {wire_name_of(tp)} ({e})", "$") from e


def decode(tp: Any, data: Any, registry: VariantRegistry) -> Any:
    return _validate(tp, registry, "validate_python", data)


def encode(value: Any) -> Any:
    return adapter_for(type(value)).dump_python(value, mode="json", by_alias=True)


def from_json(tp: Any, text: Union[str, bytes], registry: VariantRegistry) -> Any:
    return _validate(tp, registry, "validate_json", text)


def to_json(value: Any) -> str:
    return adapter_for(type(value)).dump_json(value, by_alias=True).decode("utf-8")
