"""Typed parsing of game resources into generated bindings."""

from __future__ import annotations

import json
from types import ModuleType
from typing import Any, Dict

from .resourcelib import (
    ConversionFailedError,
    InvalidResourceTypeError,
    PathLike,
    ResourceConverter,
    ResourceGenerator,
    WoaVersion,
    coerce_version,
)
from .serde import decode, encode

# resource type code -> root declaration name, per version
RESOURCE_CLASSES: Dict[WoaVersion, Dict[str, str]] = {
    WoaVersion.HM2016: {
        "TEMP": "STemplateEntity",
        "TBLU": "STemplateEntityBlueprint",
        "AIRG": "SReasoningGrid",
        "ATMD": "ZamdTake",
        "VIDB": "SVideoDatabaseData",
        "CBLU": "SCppEntityBlueprint",
        "CPPT": "SCppEntity",
        "CRMD": "SCrowdMapData",
    },
    WoaVersion.HM2: {
        "TEMP": "STemplateEntityFactory",
        "TBLU": "STemplateEntityBlueprint",
        "AIRG": "SReasoningGrid",
        "ATMD": "ZamdTake",
        "VIDB": "SVideoDatabaseData",
        "CBLU": "SCppEntityBlueprint",
        "CPPT": "SCppEntity",
        "CRMD": "SCrowdMapData",
    },
}
RESOURCE_CLASSES[WoaVersion.HM3] = dict(RESOURCE_CLASSES[WoaVersion.HM2])


def resource_class(bindings: ModuleType, version: Any, resource_type: str) -> type:
    version = coerce_version(version)
    name = RESOURCE_CLASSES[version].get(resource_type)
    if name is None or not hasattr(bindings, name):
        raise InvalidResourceTypeError(resource_type)
    return getattr(bindings, name)


class ResourceParser:
    """Converts one resource type between binary form and generated classes.

    ``bindings`` is the generated package for ``version`` (for example
    ``hm3_bindings``); its ``VARIANTS`` registry decodes tagged properties.
    """

    def __init__(self, native: Any, bindings: ModuleType, version: Any, resource_type: str) -> None:
        self.version = coerce_version(version)
        self.resource_type = resource_type
        self.cls = resource_class(bindings, self.version, resource_type)
        self.registry = bindings.VARIANTS
        self.converter = ResourceConverter(native, self.version, resource_type)
        self.generator = ResourceGenerator(native, self.version, resource_type)

    def _decode(self, text: str, where: str) -> Any:
        try:
            return decode(self.cls, json.loads(text), self.registry)
        except ValueError as e:
            raise ConversionFailedError(f"{where}: {e}") from e

    def _encode(self, obj: Any) -> str:
        if not isinstance(obj, self.cls):
            raise TypeError(f"expected {self.cls.__name__}, got {type(obj).__name__}")
        return json.dumps(encode(obj))

    def parse_from_memory(self, resource_data: bytes) -> Any:
        return self._decode(self.converter.memory_to_json_string(resource_data), "parse_from_memory")

    def parse_from_file(self, resource_file_path: PathLike) -> Any:
        return self._decode(self.converter.resource_file_to_json_string(resource_file_path), "parse_from_file")

    def parse_to_memory(self, obj: Any, generate_compatible: bool) -> bytes:
        return self.generator.json_string_to_resource_mem(self._encode(obj), generate_compatible)

    def parse_to_file(self, resource_file_path: PathLike, obj: Any, generate_compatible: bool) -> bool:
        return self.generator.json_string_to_resource_file(self._encode(obj), resource_file_path, generate_compatible)
