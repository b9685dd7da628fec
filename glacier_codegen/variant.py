"""Runtime support for generated glacier bindings.

Generated ``enums.py`` / ``properties.py`` modules import everything they
reference from here: primitive width aliases, the ``ZVariant`` box, the
``TArray`` and ``FixedArray`` sequence types, the ``VariantRegistry`` and the
pydantic base classes that carry external (wire) names.
"""

from __future__ import annotations

import dataclasses
import enum
import functools
import typing
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple, Type, Union

from pydantic import BaseModel, ConfigDict, Field, GetCoreSchemaHandler, TypeAdapter, conint, constr
from pydantic_core import core_schema

int8 = conint(strict=True, ge=-(2**7), le=2**7 - 1)
int16 = conint(strict=True, ge=-(2**15), le=2**15 - 1)
int32 = conint(strict=True, ge=-(2**31), le=2**31 - 1)
int64 = conint(strict=True, ge=-(2**63), le=2**63 - 1)
uint8 = conint(strict=True, ge=0, le=2**8 - 1)
uint16 = conint(strict=True, ge=0, le=2**16 - 1)
uint32 = conint(strict=True, ge=0, le=2**32 - 1)
uint64 = conint(strict=True, ge=0, le=2**64 - 1)
float32 = float
float64 = float
char = constr(min_length=1, max_length=1)

EXTERNAL_NAME_ATTR = "__external_name__"
MEMBER_NAMES_ATTR = "__external_members__"
REGISTRY_CONTEXT_KEY = "registry"
TYPE_KEY = "$type"
VALUE_KEY = "$val"
WIDE_ARRAY_THRESHOLD = 32
BIG_ARRAY_STRATEGY = "big_array"


class VariantError(Exception):
    pass


class UnknownVariantTag(VariantError):
    def __init__(self, tag: str) -> None:
        super().__init__(f"unknown variant tag '{tag}'")
        self.tag = tag


class VariantTagCollision(VariantError):
    def __init__(self, tag: str, existing: Any, new: Any) -> None:
        super().__init__(
            f"variant tag '{tag}' already registered for {_label(existing)}, cannot register {_label(new)}"
        )
        self.tag = tag
        self.existing = existing
        self.new = new


def _label(tp: Any) -> str:
    return getattr(tp, "__name__", str(tp))


@functools.lru_cache(maxsize=None)
def adapter_for(tp: Any) -> TypeAdapter:
    return TypeAdapter(tp)


class WireString(str):
    """A string that keeps its declared type through validation."""

    @classmethod
    def __get_pydantic_core_schema__(cls, source: Any, handler: GetCoreSchemaHandler) -> core_schema.CoreSchema:
        return core_schema.no_info_after_validator_function(cls, core_schema.str_schema())


class ZString(WireString):
    pass


class ZEncryptedString(WireString):
    pass


class ZRepositoryId(WireString):
    pass


class TypeId(WireString):
    pass


class UnitValue:
    """A value with no payload, written as ``null``."""

    def __eq__(self, other: object) -> bool:
        return type(other) is type(self)

    def __hash__(self) -> int:
        return hash(type(self))

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"

    @classmethod
    def from_wire(cls, data: Any) -> "UnitValue":
        if data is None or data == {}:
            return cls()
        raise ValueError(f"{cls.__name__} carries no value, got {type(data).__name__}")

    @classmethod
    def __get_pydantic_core_schema__(cls, source: Any, handler: GetCoreSchemaHandler) -> core_schema.CoreSchema:
        return core_schema.no_info_plain_validator_function(
            cls.from_wire,
            serialization=core_schema.plain_serializer_function_ser_schema(lambda value: None),
        )


class ZhmArenas(UnitValue):
    pass


class Empty(UnitValue):
    pass


# Serialized either as a string or as a number, with no tag.
EntityTemplatePropertyId = Union[str, uint32]


class GlacierModel(BaseModel):
    """Base of every generated class: fields are read and written by wire name."""

    model_config = ConfigDict(populate_by_name=True, protected_namespaces=())


class GlacierEnum(enum.IntEnum):
    """Base of every generated enum: members are read and written by wire name."""

    @classmethod
    def from_wire(cls, data: Any) -> "GlacierEnum":
        if isinstance(data, cls):
            return data
        if isinstance(data, str):
            members: Dict[str, str] = getattr(cls, MEMBER_NAMES_ATTR, {})
            for name, raw in members.items():
                if raw == data:
                    return cls[name]
            try:
                return cls[data]
            except KeyError:
                raise ValueError(f"'{data}' is not a member of {wire_name_of(cls)}") from None
        if isinstance(data, int) and not isinstance(data, bool):
            return cls(data)
        raise ValueError(f"expected enum member name, got {type(data).__name__}")

    @property
    def wire_name(self) -> str:
        members: Dict[str, str] = getattr(type(self), MEMBER_NAMES_ATTR, {})
        return members.get(self.name, self.name)

    @classmethod
    def __get_pydantic_core_schema__(cls, source: Any, handler: GetCoreSchemaHandler) -> core_schema.CoreSchema:
        return core_schema.no_info_plain_validator_function(
            cls.from_wire,
            serialization=core_schema.plain_serializer_function_ser_schema(lambda member: member.wire_name),
        )


@dataclasses.dataclass
class ZVariant:
    """A property value whose concrete type is named by ``type`` (its tag).

    Decoding resolves the tag through the ``VariantRegistry`` passed in the
    validation context under ``"registry"``.
    """

    type: str
    value: Any = None

    @classmethod
    def from_wire(cls, data: Any, info: core_schema.ValidationInfo) -> "ZVariant":
        if isinstance(data, cls):
            return data
        registry = (info.context or {}).get(REGISTRY_CONTEXT_KEY)
        if registry is None:
            raise ValueError("decoding a variant requires a registry in the validation context")
        if not isinstance(data, dict) or TYPE_KEY not in data:
            raise ValueError(f"variant without '{TYPE_KEY}'")
        tag = data[TYPE_KEY]
        try:
            tp = registry.resolve(tag)
        except VariantError as e:
            raise ValueError(str(e)) from e
        return cls(tag, adapter_for(tp).validate_python(data.get(VALUE_KEY), context=info.context))

    @staticmethod
    def to_wire(variant: "ZVariant", info: core_schema.SerializationInfo) -> Dict[str, Any]:
        mode = "json" if info.mode == "json" else "python"
        value = adapter_for(type(variant.value)).dump_python(variant.value, mode=mode, by_alias=True)
        return {TYPE_KEY: variant.type, VALUE_KEY: value}

    @classmethod
    def __get_pydantic_core_schema__(cls, source: Any, handler: GetCoreSchemaHandler) -> core_schema.CoreSchema:
        return core_schema.with_info_plain_validator_function(
            cls.from_wire,
            serialization=core_schema.plain_serializer_function_ser_schema(cls.to_wire, info_arg=True),
        )


class TArray(list):
    """Homogeneous sequence usable as a variant payload.

    ``TArray[T]`` returns one cached subclass per element type so it can be
    registered under its own tag.
    """

    element_type: Any = None
    _specialized: Dict[Any, Type["TArray"]] = {}

    def __class_getitem__(cls, element_type: Any) -> Type["TArray"]:
        cached = cls._specialized.get(element_type)
        if cached is None:
            cached = type(f"TArray[{_label(element_type)}]", (TArray,), {"element_type": element_type})
            cls._specialized[element_type] = cached
        return cached

    @classmethod
    def __get_pydantic_core_schema__(cls, source: Any, handler: GetCoreSchemaHandler) -> core_schema.CoreSchema:
        return core_schema.no_info_after_validator_function(cls, handler.generate_schema(List[cls.element_type]))


@dataclasses.dataclass(frozen=True)
class FixedLength:
    """Annotation metadata pinning a sequence to exactly ``length`` elements."""

    length: int

    @property
    def wide(self) -> bool:
        return self.length > WIDE_ARRAY_THRESHOLD

    def check(self, value: Any) -> Any:
        if len(value) != self.length:
            raise ValueError(f"expected {self.length} elements, got {len(value)}")
        return value

    def __get_pydantic_core_schema__(self, source: Any, handler: GetCoreSchemaHandler) -> core_schema.CoreSchema:
        return core_schema.no_info_after_validator_function(self.check, handler(source))


class FixedArray:
    """``FixedArray[T, N]``: a tuple of exactly ``N`` elements of ``T``."""

    def __class_getitem__(cls, params: Tuple[Any, int]) -> Any:
        element, length = params
        return typing.Annotated[Tuple[element, ...], FixedLength(length)]


def fixed_array_info(tp: Any) -> Optional[Tuple[Any, FixedLength]]:
    """Return ``(element type, FixedLength)`` for a ``FixedArray`` annotation."""
    if typing.get_origin(tp) is not typing.Annotated:
        return None
    base, *metadata = typing.get_args(tp)
    for item in metadata:
        if isinstance(item, FixedLength):
            return typing.get_args(base)[0], item
    return None


def external_name(name: str, members: Optional[Dict[str, str]] = None) -> Callable[[type], type]:
    """Attach the wire name of a declaration and, for enums, of its members."""

    def decorate(cls: type) -> type:
        setattr(cls, EXTERNAL_NAME_ATTR, name)
        if members is not None:
            setattr(cls, MEMBER_NAMES_ATTR, dict(members))
        return cls

    return decorate


def wire(name: str, *, wide_array: bool = False) -> Any:
    extra = {"with": BIG_ARRAY_STRATEGY} if wide_array else None
    return Field(alias=name, json_schema_extra=extra)


def wire_name_of(cls: type) -> str:
    return getattr(cls, EXTERNAL_NAME_ATTR, _label(cls))


class VariantRegistry:
    """Ordered mapping from external tag to concrete type."""

    def __init__(self) -> None:
        self._by_tag: Dict[str, Any] = {}
        self._by_type: Dict[Any, str] = {}

    def __len__(self) -> int:
        return len(self._by_tag)

    def __contains__(self, tag: object) -> bool:
        return tag in self._by_tag

    def __iter__(self) -> Iterator[str]:
        return iter(self._by_tag)

    def items(self) -> List[Tuple[str, Any]]:
        return list(self._by_tag.items())

    def register(self, tag: str, tp: Any) -> None:
        existing = self._by_tag.get(tag)
        if existing is not None:
            if existing is tp or existing == tp:
                return
            raise VariantTagCollision(tag, existing, tp)
        self._by_tag[tag] = tp
        self._by_type.setdefault(tp, tag)

    def register_with_array(self, tag: str, tp: Any) -> None:
        self.register(tag, tp)
        self.register(f"TArray<{tag}>", TArray[tp])

    def resolve(self, tag: str) -> Any:
        try:
            return self._by_tag[tag]
        except KeyError:
            raise UnknownVariantTag(tag) from None

    def tag_of(self, tp: Any) -> str:
        try:
            return self._by_type[tp]
        except KeyError:
            raise VariantError(f"type {_label(tp)} has no registered variant tag") from None

    def update(self, other: "VariantRegistry") -> "VariantRegistry":
        for tag, tp in other.items():
            self.register(tag, tp)
        return self

    @classmethod
    def with_builtins(cls) -> "VariantRegistry":
        registry = cls()
        for tag, tp in BUILTIN_VARIANTS:
            registry.register_with_array(tag, tp)
        registry.register("void", Empty)
        return registry


BUILTIN_VARIANTS: Tuple[Tuple[str, Any], ...] = (
    ("int8", int8),
    ("int16", int16),
    ("int32", int32),
    ("int64", int64),
    ("uint8", uint8),
    ("uint16", uint16),
    ("uint32", uint32),
    ("uint64", uint64),
    ("float32", float32),
    ("float64", float64),
    ("bool", bool),
    ("char", char),
    ("String", str),
    ("ZString", ZString),
    ("ZEncryptedString", ZEncryptedString),
    ("ZHMArenas", ZhmArenas),
    ("ZRepositoryID", ZRepositoryId),
)

# Nominal names the generated modules may reference without declaring them.
RUNTIME_TYPE_NAMES = frozenset(
    [
        "ZString",
        "ZEncryptedString",
        "ZhmArenas",
        "ZRepositoryId",
        "TypeId",
        "Empty",
        "EntityTemplatePropertyId",
        "ZVariant",
    ]
)

__all__ = [
    "int8",
    "int16",
    "int32",
    "int64",
    "uint8",
    "uint16",
    "uint32",
    "uint64",
    "float32",
    "float64",
    "char",
    "ZString",
    "ZEncryptedString",
    "ZhmArenas",
    "ZRepositoryId",
    "TypeId",
    "Empty",
    "EntityTemplatePropertyId",
    "ZVariant",
    "TArray",
    "FixedArray",
    "GlacierEnum",
    "GlacierModel",
    "VariantRegistry",
    "external_name",
    "wire",
]
