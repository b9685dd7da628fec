"""Checked access to the native ResourceLib converter and generator tables.

``native`` is any object exposing the library's C entry points as Python
callables, named ``<VERSION>_<Function>`` (``HM3_GetConverterForResource``
and so on). Converter and generator handles expose their function table as
attributes; a missing entry is ``None`` and a null result is ``None``.
Loading the shared libraries is the caller's concern.
"""

from __future__ import annotations

import enum
import os
from typing import Any, List, Union

RESOURCE_TYPE_LENGTH = 4


class ResourceLibError(Exception):
    pass


class GetSupportedResourceTypesError(ResourceLibError):
    def __init__(self) -> None:
        super().__init__("Failed to get supported resource types")


class InvalidResourceTypeError(ResourceLibError):
    def __init__(self, resource_type: str) -> None:
        super().__init__(f"Unable to use the resource type: {resource_type}")
        self.resource_type = resource_type


class InvalidPathError(ResourceLibError):
    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"Unable to use path: {path} {reason}")
        self.path = path
        self.reason = reason


class NullPointerError(ResourceLibError):
    def __init__(self, where: str) -> None:
        super().__init__(f"Null pointer encountered in function {where}")
        self.where = where


class ConversionFailedError(ResourceLibError):
    def __init__(self, where: str) -> None:
        super().__init__(f"Conversion failed in function {where}")
        self.where = where


class LibraryFunctionError(ResourceLibError):
    def __init__(self, function: str) -> None:
        super().__init__(f"ResourceLib function {function} is not available")
        self.function = function


class ConverterFunctionError(ResourceLibError):
    def __init__(self, function: str) -> None:
        super().__init__(f"Resource converter function {function} returned an error")
        self.function = function


class GeneratorFunctionError(ResourceLibError):
    def __init__(self, function: str) -> None:
        super().__init__(f"Resource generator function {function} returned an error")
        self.function = function


class UnknownWoaVersionError(ResourceLibError):
    def __init__(self, version: Any) -> None:
        super().__init__(f"Unknown WoaVersion variant: {version!r}")
        self.version = version


class WoaVersion(enum.Enum):
    HM2016 = "HM2016"
    HM2 = "HM2"
    HM3 = "HM3"


PathLike = Union[str, "os.PathLike[str]"]


def coerce_version(version: Any) -> WoaVersion:
    if isinstance(version, WoaVersion):
        return version
    try:
        return WoaVersion(version)
    except ValueError:
        raise UnknownWoaVersionError(version) from None


def prepare_resource_type(resource_type: str) -> bytes:
    if len(resource_type) != RESOURCE_TYPE_LENGTH or "\x00" in resource_type:
        raise InvalidResourceTypeError(resource_type)
    try:
        return resource_type.encode("ascii")
    except UnicodeEncodeError:
        raise InvalidResourceTypeError(resource_type) from None


def prepare_path_parameter(path: PathLike, must_exist: bool) -> str:
    path_display = os.fspath(path)
    if must_exist and not os.path.exists(path_display):
        raise InvalidPathError(path_display, "Path does not exist")
    if "\x00" in path_display:
        raise InvalidPathError(path_display, "cannot pass path to native code")
    return path_display


def _entry_point(native: Any, version: WoaVersion, function: str) -> Any:
    name = f"{version.value}_{function}"
    func = getattr(native, name, None)
    if func is None:
        raise LibraryFunctionError(name)
    return func


def _lossy_text(data: Union[str, bytes]) -> str:
    if isinstance(data, bytes):
        return data.decode("utf-8", errors="replace")
    return data


class ResourceLib:
    def __init__(self, native: Any) -> None:
        self.native = native

    def supported_resource_types(self, version: Any) -> List[str]:
        version = coerce_version(version)
        types = _entry_point(self.native, version, "GetSupportedResourceTypes")()
        if types is None:
            raise GetSupportedResourceTypesError()

        result: List[str] = []
        for item in types:
            if item is None:
                raise NullPointerError("Types array element")
            result.append(_lossy_text(item))

        _entry_point(self.native, version, "FreeSupportedResourceTypes")(types)
        return result

    def is_supported_resource_type(self, version: Any, resource_type: str) -> bool:
        version = coerce_version(version)
        c_resource_type = prepare_resource_type(resource_type)
        return bool(_entry_point(self.native, version, "IsResourceTypeSupported")(c_resource_type))

    def converter(self, version: Any, resource_type: str) -> "ResourceConverter":
        return ResourceConverter(self.native, version, resource_type)

    def generator(self, version: Any, resource_type: str) -> "ResourceGenerator":
        return ResourceGenerator(self.native, version, resource_type)


class ResourceConverter:
    """Converts binary resources of one type to ResourceLib JSON."""

    def __init__(self, native: Any, version: Any, resource_type: str) -> None:
        self.version = coerce_version(version)
        self.resource_type = resource_type
        c_resource_type = prepare_resource_type(resource_type)
        handle = _entry_point(native, self.version, "GetConverterForResource")(c_resource_type)
        if handle is None:
            raise NullPointerError("created converter")
        self._handle = handle

    def _function(self, name: str) -> Any:
        func = getattr(self._handle, name, None)
        if func is None:
            raise ConverterFunctionError(name)
        return func

    def _take_json(self, result: Any) -> str:
        if result is None:
            raise NullPointerError("json result string")
        text = _lossy_text(getattr(result, "JsonData", result))
        self._function("FreeJsonString")(result)
        return text

    def resource_file_to_json_file(self, resource_file_path: PathLike, output_file_path: PathLike) -> bool:
        source = prepare_path_parameter(resource_file_path, True)
        target = prepare_path_parameter(output_file_path, False)
        if not self._function("FromResourceFileToJsonFile")(source, target):
            raise ConversionFailedError("FromResourceFileToJsonFile")
        return True

    def memory_to_json_file(self, resource_data: bytes, output_file_path: PathLike) -> bool:
        target = prepare_path_parameter(output_file_path, False)
        if not self._function("FromMemoryToJsonFile")(bytes(resource_data), len(resource_data), target):
            raise ConversionFailedError("FromMemoryToJsonFile")
        return True

    def memory_to_json_string(self, resource_data: bytes) -> str:
        func = self._function("FromMemoryToJsonString")
        return self._take_json(func(bytes(resource_data), len(resource_data)))

    def resource_file_to_json_string(self, resource_file_path: PathLike) -> str:
        source = prepare_path_parameter(resource_file_path, True)
        func = self._function("FromResourceFileToJsonString")
        return self._take_json(func(source))


class ResourceGenerator:
    """Builds binary resources of one type from ResourceLib JSON."""

    def __init__(self, native: Any, version: Any, resource_type: str) -> None:
        self.version = coerce_version(version)
        self.resource_type = resource_type
        c_resource_type = prepare_resource_type(resource_type)
        handle = _entry_point(native, self.version, "GetGeneratorForResource")(c_resource_type)
        if handle is None:
            raise NullPointerError("created generator")
        self._handle = handle

    def _function(self, name: str) -> Any:
        func = getattr(self._handle, name, None)
        if func is None:
            raise GeneratorFunctionError(name)
        return func

    def _take_resource(self, result: Any) -> bytes:
        if result is None:
            raise NullPointerError("created resource mem")
        data = bytes(getattr(result, "ResourceData", result))
        self._function("FreeResourceMem")(result)
        return data

    def json_file_to_resource_file(
        self, json_file_path: PathLike, resource_file_path: PathLike, generate_compatible: bool
    ) -> bool:
        source = prepare_path_parameter(json_file_path, True)
        target = prepare_path_parameter(resource_file_path, False)
        if not self._function("FromJsonFileToResourceFile")(source, target, generate_compatible):
            raise ConversionFailedError("FromJsonFileToResourceFile")
        return True

    def json_string_to_resource_file(
        self, json_str: str, resource_file_path: PathLike, generate_compatible: bool
    ) -> bool:
        target = prepare_path_parameter(resource_file_path, False)
        payload = json_str.encode("utf-8")
        if not self._function("FromJsonStringToResourceFile")(payload, len(payload), target, generate_compatible):
            raise ConversionFailedError("FromJsonStringToResourceFile")
        return True

    def json_file_to_resource_mem(self, json_file_path: PathLike, generate_compatible: bool) -> bytes:
        source = prepare_path_parameter(json_file_path, True)
        func = self._function("FromJsonFileToResourceMem")
        return self._take_resource(func(source, generate_compatible))

    def json_string_to_resource_mem(self, json_str: str, generate_compatible: bool) -> bytes:
        payload = json_str.encode("utf-8")
        func = self._function("FromJsonStringToResourceMem")
        return self._take_resource(func(payload, len(payload), generate_compatible))
