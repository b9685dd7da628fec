"""glacier binding generator.

Input:  ZHMGen-style C++ headers (``enum class`` and ``class`` declarations),
        one per game version family.
Output: one Python package per family (``enums.py``, ``properties.py`` and an
        ``__init__.py`` aggregator) with wire-name metadata and variant tag
        registrations.
"""

from __future__ import annotations

import argparse
import dataclasses
import hashlib
import keyword
import pathlib
import re
import sys
from typing import Dict, Iterator, List, Optional, Sequence, Set, Tuple, Union

from pydantic import BaseModel

from .variant import RUNTIME_TYPE_NAMES

GENERATOR_VERSION = "0.3.0"
FORMAT_VERSION = "1"
DIGEST_PATTERN = re.compile(r"^# digest: ([0-9a-f]{64})$", re.MULTILINE)

ENUM_PATTERN = re.compile(r"enum class\s+(\w+)")
CLASS_PATTERN = re.compile(r"(?:^|\W)(enum )?class\s+(?:/\*\s*alignas\(\d+\)\s*\*/\s*)?(\w+)")
ENUM_VARIANT_PATTERN = re.compile(r"^(?P<name>[A-Za-z_]\w*)(?:\s*=\s*(?P<value>.+))?$")
FIELD_PATTERN = re.compile(
    r"^(?:[A-Za-z0-9_]+::)?(?P<type>[A-Za-z_]\w*(?:::[A-Za-z_]\w*)*(?:\s*<.*>)?)\s+(?P<name>[A-Za-z_]\w*)\s*;$"
)
HUNGARIAN_PREFIX = re.compile(r"^[a-zA-Z]_")
INTEGER_SUFFIX = re.compile(r"\b(0[xX][0-9A-Fa-f]+|\d+)[uUlL]+\b")
IDENTIFIER = re.compile(r"\b[A-Za-z_]\w*")
TYPE_TOKEN = re.compile(r"\s*(?:(?P<ident>[A-Za-z_]\w*(?:\s*::\s*[A-Za-z_]\w*)*)|(?P<number>\d+)|(?P<punct>[<>,]))")

RESERVED_WORDS = frozenset(["type", "move", *keyword.kwlist])
# Public pydantic model attributes a generated field must not shadow.
MODEL_ATTRIBUTES = frozenset(name for name in dir(BaseModel) if not name.startswith("_"))
FIELD_DIGIT_PREFIX = "field"
BOOL_PREFIX = "is_"
WIDE_ARRAY_THRESHOLD = 32
HANDLE_SEPARATOR = "_"
HANDLE_JOINER = "."
HANDLE_PASSTHROUGH = "eParticleEmitterBoxEntity"
BOXED_TYPE = "ZVariant"

# Names every generated properties module imports from the runtime.
RUNTIME_IMPORTS = (
    "Empty",
    "EntityTemplatePropertyId",
    "FixedArray",
    "GlacierModel",
    "TArray",
    "TypeId",
    "VariantRegistry",
    "ZEncryptedString",
    "ZRepositoryId",
    "ZString",
    "ZVariant",
    "ZhmArenas",
    "char",
    "external_name",
    "float32",
    "float64",
    "int8",
    "int16",
    "int32",
    "int64",
    "uint8",
    "uint16",
    "uint32",
    "uint64",
    "wire",
)

PRIMITIVE_TYPES = {
    "int8": "int8",
    "int16": "int16",
    "int32": "int32",
    "int": "int32",
    "int64": "int64",
    "uint8": "uint8",
    "uint16": "uint16",
    "uint32": "uint32",
    "unsigned": "uint32",
    "uint64": "uint64",
    "float32": "float32",
    "float": "float32",
    "float64": "float64",
    "double": "float64",
    "bool": "bool",
    "char": "char",
    "string": "str",
}

# (original class name, original field name) -> replacement type expression
FIELD_TYPE_OVERRIDES = {
    ("SEntityTemplateProperty", "nPropertyID"): "EntityTemplatePropertyId",
}


class ParseError(RuntimeError):
    def __init__(self, message: str, index: int) -> None:
        super().__init__(message)
        self.index = index


@dataclasses.dataclass(frozen=True)
class TypeNode:
    name: str
    args: Tuple[Union["TypeNode", int], ...] = ()

    def __str__(self) -> str:
        if not self.args:
            return self.name
        return f"{self.name}<{', '.join(str(arg) for arg in self.args)}>"


@dataclasses.dataclass(frozen=True)
class ResolvedType:
    kind: str  # primitive | boxed | sequence | fixed | mapping | nominal
    name: str = ""
    args: Tuple["ResolvedType", ...] = ()
    length: int = 0


@dataclasses.dataclass
class EnumVariant:
    raw_name: str
    name: str
    value: Optional[str] = None


@dataclasses.dataclass
class EnumDeclaration:
    raw_name: str
    name: str
    index: int
    variants: List[EnumVariant] = dataclasses.field(default_factory=list)


@dataclasses.dataclass
class FieldDeclaration:
    raw_name: str
    name: str
    source_type: str
    resolved: ResolvedType
    index: int = 0

    @property
    def wide_array(self) -> bool:
        return self.resolved.kind == "fixed" and self.resolved.length > WIDE_ARRAY_THRESHOLD


@dataclasses.dataclass
class ClassDeclaration:
    raw_name: str
    name: str
    index: int
    fields: List[FieldDeclaration] = dataclasses.field(default_factory=list)


@dataclasses.dataclass
class GenerationState:
    """Everything one run over one header accumulates."""

    seen_names: Set[str] = dataclasses.field(default_factory=set)
    enums: List[EnumDeclaration] = dataclasses.field(default_factory=list)
    classes: List[ClassDeclaration] = dataclasses.field(default_factory=list)

    def claim(self, name: str) -> bool:
        if name in self.seen_names:
            return False
        self.seen_names.add(name)
        return True


@dataclasses.dataclass
class Diagnostic:
    message: str
    index: int


def line_col(text: str, index: int) -> Tuple[int, int]:
    line = text.count("\n", 0, index) + 1
    line_start = text.rfind("\n", 0, index)
    if line_start < 0:
        line_start = -1
    col = index - line_start
    return line, col


def fail(path: pathlib.Path, text: str, error: ParseError) -> None:
    line, col = line_col(text, error.index)
    print(f"{path}:{line}:{col}: error: {error}", file=sys.stderr)


def warn(path: pathlib.Path, text: str, diagnostic: Diagnostic) -> None:
    line, col = line_col(text, diagnostic.index)
    print(f"{path}:{line}:{col}: warning: {diagnostic.message}", file=sys.stderr)


# -- structural block scanner -------------------------------------------------


def find_block(text: str, start: int, name: str) -> Optional[Tuple[int, int]]:
    """Return the (open, close) brace positions of the body following ``start``.

    Braces are counted blindly: string literals and comments are not skipped.
    Returns None for a forward declaration (``;`` before any ``{``).
    """
    i = start
    n = len(text)
    while i < n and text[i] != "{":
        if text[i] == ";":
            return None
        i += 1
    if i >= n:
        return None

    open_index = i
    depth = 1
    i += 1
    while i < n:
        ch = text[i]
        if ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return open_index, i
        i += 1

    raise ParseError(f"unterminated block for '{name}'", open_index)


# -- name mapper --------------------------------------------------------------


def split_words(text: str) -> List[str]:
    words: List[str] = []
    for chunk in re.split(r"[^A-Za-z0-9]+", text):
        if not chunk:
            continue
        start = 0
        mode = "boundary"
        for i, ch in enumerate(chunk):
            if i + 1 == len(chunk):
                words.append(chunk[start:])
                break
            nxt = chunk[i + 1]
            if ch.islower():
                next_mode = "lower"
            elif ch.isupper():
                next_mode = "upper"
            else:
                next_mode = mode
            if next_mode == "lower" and nxt.isupper():
                words.append(chunk[start : i + 1])
                start = i + 1
                mode = "boundary"
            elif mode == "upper" and ch.isupper() and nxt.islower():
                if start < i:
                    words.append(chunk[start:i])
                start = i
                mode = "boundary"
            else:
                mode = next_mode
    return words


def upper_camel(text: str) -> str:
    return "".join(word[:1].upper() + word[1:].lower() for word in split_words(text))


def snake_case(text: str) -> str:
    return "_".join(word.lower() for word in split_words(text))


def guard_reserved(name: str) -> str:
    if name[:1].isdigit():
        name = "_" + name
    if name in RESERVED_WORDS:
        return name + "_"
    return name


def map_type_name(raw_name: str) -> str:
    return guard_reserved(upper_camel(raw_name))


def map_field_name(raw_name: str) -> str:
    trimmed = HUNGARIAN_PREFIX.sub("", raw_name, count=1)
    name = guard_reserved(snake_case(trimmed))
    # pydantic treats leading-underscore names as private attributes
    if name.startswith("_"):
        name = FIELD_DIGIT_PREFIX + name
    if name in MODEL_ATTRIBUTES:
        name += "_"
    return name


def replace_last(text: str, pattern: str, replacement: str) -> str:
    pos = text.rfind(pattern)
    if pos < 0:
        return text
    return text[:pos] + replacement + text[pos + len(pattern) :]


def variant_handle(raw_name: str) -> str:
    if HANDLE_PASSTHROUGH in raw_name:
        return raw_name
    return replace_last(raw_name, HANDLE_SEPARATOR, HANDLE_JOINER)


def class_handle(raw_name: str) -> str:
    return replace_last(raw_name, HANDLE_SEPARATOR, HANDLE_JOINER)


def array_handle(handle: str) -> str:
    return f"TArray<{handle}>"


# -- type expressions ---------------------------------------------------------


def normalize_type(type_name: str) -> str:
    return " ".join(type_name.strip().split())


def tokenize_type(text: str) -> List[Tuple[str, str]]:
    tokens: List[Tuple[str, str]] = []
    i = 0
    n = len(text)
    while i < n:
        if text[i].isspace():
            i += 1
            continue
        m = TYPE_TOKEN.match(text, i)
        if not m:
            raise ParseError(f"unexpected character '{text[i]}' in type expression", i)
        kind = m.lastgroup or ""
        value = m.group(kind)
        if kind == "ident":
            value = re.sub(r"\s+", "", value)
        tokens.append((kind, value))
        i = m.end()
    return tokens


def parse_type_expr(text: str) -> TypeNode:
    tokens = tokenize_type(text)
    node, pos = _parse_type_node(tokens, 0)
    if pos != len(tokens):
        raise ParseError(f"unexpected '{tokens[pos][1]}' in type expression", pos)
    return node


def _parse_type_node(tokens: Sequence[Tuple[str, str]], pos: int) -> Tuple[TypeNode, int]:
    if pos >= len(tokens) or tokens[pos][0] != "ident":
        raise ParseError("expected type name", pos)
    name = tokens[pos][1]
    pos += 1
    if pos >= len(tokens) or tokens[pos][1] != "<":
        return TypeNode(name), pos

    pos += 1
    args: List[Union[TypeNode, int]] = []
    while True:
        if pos < len(tokens) and tokens[pos][0] == "number":
            args.append(int(tokens[pos][1]))
            pos += 1
        else:
            arg, pos = _parse_type_node(tokens, pos)
            args.append(arg)
        if pos >= len(tokens):
            raise ParseError("unterminated template argument list", pos)
        if tokens[pos][1] == ",":
            pos += 1
            continue
        if tokens[pos][1] == ">":
            return TypeNode(name, tuple(args)), pos + 1
        raise ParseError(f"unexpected '{tokens[pos][1]}' in template argument list", pos)


def nominal_type(text: str) -> ResolvedType:
    return ResolvedType(kind="nominal", name=map_type_name(text.replace("::", "_")))


def translate_node(node: TypeNode) -> ResolvedType:
    args = node.args
    if not args:
        if node.name in PRIMITIVE_TYPES:
            return ResolvedType(kind="primitive", name=PRIMITIVE_TYPES[node.name])
        if node.name == BOXED_TYPE:
            return ResolvedType(kind="boxed", name=BOXED_TYPE)
    elif node.name == "TArray" and len(args) == 1 and isinstance(args[0], TypeNode):
        return ResolvedType(kind="sequence", args=(translate_node(args[0]),))
    elif (
        node.name == "TFixedArray"
        and len(args) == 2
        and isinstance(args[0], TypeNode)
        and isinstance(args[1], int)
    ):
        return ResolvedType(kind="fixed", args=(translate_node(args[0]),), length=args[1])
    elif node.name == "TMap" and len(args) == 2 and all(isinstance(arg, TypeNode) for arg in args):
        return ResolvedType(kind="mapping", args=tuple(translate_node(arg) for arg in args))

    return nominal_type(str(node))


def translate_type(type_expr: str) -> ResolvedType:
    text = normalize_type(type_expr)
    try:
        node = parse_type_expr(text)
    except ParseError:
        return nominal_type(text)
    return translate_node(node)


def render_type(resolved: ResolvedType) -> str:
    if resolved.kind == "sequence":
        return f"List[{render_type(resolved.args[0])}]"
    if resolved.kind == "fixed":
        return f"FixedArray[{render_type(resolved.args[0])}, {resolved.length}]"
    if resolved.kind == "mapping":
        return f"Dict[{render_type(resolved.args[0])}, {render_type(resolved.args[1])}]"
    return resolved.name


def nominal_references(resolved: ResolvedType) -> Iterator[str]:
    if resolved.kind == "nominal":
        yield resolved.name
    for arg in resolved.args:
        yield from nominal_references(arg)


# -- extraction ---------------------------------------------------------------


def body_lines(body: str) -> Iterator[Tuple[int, str]]:
    """Yield ``(offset, line)`` for comment-stripped lines directly inside ``body``."""
    depth = 0
    offset = 0
    for raw in body.splitlines(keepends=True):
        start = offset + len(raw) - len(raw.lstrip())
        offset += len(raw)
        line = raw.split("//", 1)[0].strip()
        opened = line.count("{")
        closed = line.count("}")
        if line and depth == 0 and not opened and not closed:
            yield start, line
        depth = max(depth + opened - closed, 0)


def parse_enum_variants(body: str) -> List[EnumVariant]:
    variants: List[EnumVariant] = []
    seen: Set[str] = set()

    for _, line in body_lines(body):
        m = ENUM_VARIANT_PATTERN.match(line.rstrip(",").strip())
        if not m:
            continue
        raw_name = m.group("name")
        name = map_type_name(raw_name)
        if not name or name in seen:
            continue
        seen.add(name)
        value = m.group("value")
        variants.append(EnumVariant(raw_name=raw_name, name=name, value=value.strip() if value else None))

    rewrite_repeated_literals(variants)
    strip_common_prefix(variants)
    return variants


def rewrite_repeated_literals(variants: Sequence[EnumVariant]) -> None:
    existing: Set[str] = set()
    for variant in variants:
        if variant.value is None:
            continue
        if variant.value in existing:
            variant.value = f"-{variant.value}"
        else:
            existing.add(variant.value)


def strip_common_prefix(variants: Sequence[EnumVariant]) -> None:
    if not variants:
        return
    first = variants[0].raw_name
    underscore = first.find("_")
    if underscore <= 0:
        return
    prefix = first[: underscore + 1]
    if not all(v.raw_name.startswith(prefix) for v in variants):
        return

    canonical_prefix = upper_camel(prefix)
    for variant in variants:
        if not variant.name.startswith(canonical_prefix):
            continue
        stripped = variant.name[len(canonical_prefix) :]
        if not stripped or stripped[0].isdigit():
            continue
        variant.name = guard_reserved(stripped)


def parse_class_fields(class_raw_name: str, body: str, body_index: int = 0) -> List[FieldDeclaration]:
    fields: List[FieldDeclaration] = []
    for offset, line in body_lines(body):
        m = FIELD_PATTERN.match(line)
        if not m:
            continue
        raw_name = m.group("name")
        source_type = normalize_type(m.group("type"))
        override = FIELD_TYPE_OVERRIDES.get((class_raw_name, raw_name))
        resolved = translate_type(override if override is not None else source_type)

        name = map_field_name(raw_name)
        if resolved.kind == "primitive" and resolved.name == "bool" and not name.startswith(BOOL_PREFIX):
            name = BOOL_PREFIX + name
        fields.append(
            FieldDeclaration(
                raw_name=raw_name,
                name=name,
                source_type=source_type,
                resolved=resolved,
                index=body_index + offset,
            )
        )
    return fields


def extract_enums(text: str, state: GenerationState) -> None:
    for m in ENUM_PATTERN.finditer(text):
        raw_name = m.group(1)
        name = map_type_name(raw_name)
        if name in state.seen_names:
            continue
        block = find_block(text, m.end(), raw_name)
        if block is None:
            continue
        state.claim(name)
        open_index, close_index = block
        variants = parse_enum_variants(text[open_index + 1 : close_index])
        state.enums.append(EnumDeclaration(raw_name=raw_name, name=name, index=m.start(), variants=variants))


def extract_classes(text: str, state: GenerationState) -> None:
    for m in CLASS_PATTERN.finditer(text):
        if m.group(1):
            continue
        raw_name = m.group(2)
        name = map_type_name(raw_name)
        if name in state.seen_names:
            continue
        block = find_block(text, m.end(), raw_name)
        if block is None:
            continue
        state.claim(name)
        open_index, close_index = block
        fields = parse_class_fields(raw_name, text[open_index + 1 : close_index], open_index + 1)
        state.classes.append(ClassDeclaration(raw_name=raw_name, name=name, index=m.start(2), fields=fields))


def unresolved_references(state: GenerationState) -> List[Diagnostic]:
    known = set(state.seen_names) | RUNTIME_TYPE_NAMES
    diagnostics: List[Diagnostic] = []
    for decl in state.classes:
        for field in decl.fields:
            for name in nominal_references(field.resolved):
                if name not in known:
                    diagnostics.append(
                        Diagnostic(
                            f"unresolved type '{name}' for field '{decl.raw_name}::{field.raw_name}'",
                            field.index,
                        )
                    )
    return diagnostics


def extract_declarations(text: str) -> GenerationState:
    state = GenerationState()
    extract_enums(text, state)
    extract_classes(text, state)
    return state


# -- emission -----------------------------------------------------------------


def render_string_list(name: str, items: Sequence[str]) -> List[str]:
    if not items:
        return [f"{name} = []"]
    lines = [f"{name} = ["]
    lines.extend(f'    "{item}",' for item in items)
    lines.append("]")
    return lines


def render_registration(handle: str, name: str) -> List[str]:
    return [
        f'VARIANTS.register("{handle}", {name})',
        f'VARIANTS.register("{array_handle(handle)}", TArray[{name}])',
    ]


def render_enum_value(value: str, canonical: Dict[str, str]) -> str:
    value = INTEGER_SUFFIX.sub(r"\1", value)
    return IDENTIFIER.sub(lambda m: canonical.get(m.group(0), m.group(0)), value)


def render_enum(decl: EnumDeclaration) -> List[str]:
    lines: List[str] = []
    lines.append("@external_name(")
    lines.append(f'    "{decl.raw_name}",')
    lines.append("    members={")
    for variant in decl.variants:
        lines.append(f'        "{variant.name}": "{variant.raw_name}",')
    lines.append("    },")
    lines.append(")")
    lines.append(f"class {decl.name}(GlacierEnum):")

    if not decl.variants:
        lines.append("    pass")

    canonical: Dict[str, str] = {}
    previous: Optional[str] = None
    for variant in decl.variants:
        if variant.value:
            value = render_enum_value(variant.value, canonical)
        elif previous is None:
            value = "0"
        else:
            value = f"{previous} + 1"
        lines.append(f"    {variant.name} = {value}")
        canonical[variant.raw_name] = variant.name
        previous = variant.name

    lines.append("")
    lines.append("")
    lines.extend(render_registration(variant_handle(decl.raw_name), decl.name))
    return lines


def render_field(field: FieldDeclaration) -> str:
    options = [f'"{field.raw_name}"']
    if field.wide_array:
        options.append("wide_array=True")
    return f"    {field.name}: {render_type(field.resolved)} = wire({', '.join(options)})"


def render_class(decl: ClassDeclaration) -> List[str]:
    lines: List[str] = []
    lines.append(f'@external_name("{decl.raw_name}")')
    lines.append(f"class {decl.name}(GlacierModel):")
    if not decl.fields:
        lines.append("    pass")
    for field in decl.fields:
        lines.append(render_field(field))
    lines.append("")
    lines.append("")
    lines.extend(render_registration(class_handle(decl.raw_name), decl.name))
    return lines


def render_module(preamble: Sequence[str], exported: Sequence[str], blocks: Sequence[List[str]]) -> str:
    lines: List[str] = list(preamble)
    lines.append("")
    lines.extend(render_string_list("__all__", exported))
    lines.append("")
    lines.append("VARIANTS = VariantRegistry()")
    for block in blocks:
        lines.append("")
        lines.append("")
        lines.extend(block)
    return "\n".join(lines) + "\n"


def render_enums_module(state: GenerationState) -> str:
    preamble = [
        "from __future__ import annotations",
        "",
        "from glacier_codegen.variant import GlacierEnum, TArray, VariantRegistry, external_name",
    ]
    return render_module(preamble, [d.name for d in state.enums], [render_enum(d) for d in state.enums])


def render_properties_module(state: GenerationState) -> str:
    preamble = [
        "from __future__ import annotations",
        "",
        "from typing import Dict, List",
        "",
        "from glacier_codegen.variant import (",
        *(f"    {name}," for name in RUNTIME_IMPORTS),
        ")",
        "",
        "from .enums import *  # noqa: F401,F403",
    ]
    return render_module(preamble, [d.name for d in state.classes], [render_class(d) for d in state.classes])


def render_package_module() -> str:
    lines = [
        "from glacier_codegen.variant import VariantRegistry",
        "",
        "from . import enums, properties",
        "from .enums import *  # noqa: F401,F403",
        "from .properties import *  # noqa: F401,F403",
        "",
        "VARIANTS = VariantRegistry.with_builtins()",
        "VARIANTS.update(enums.VARIANTS)",
        "VARIANTS.update(properties.VARIANTS)",
    ]
    return "\n".join(lines) + "\n"


def compute_file_digest(source_bytes: bytes) -> str:
    h = hashlib.sha256()
    h.update(GENERATOR_VERSION.encode("utf-8"))
    h.update(b"\x00")
    h.update(FORMAT_VERSION.encode("utf-8"))
    h.update(b"\x00")
    h.update(source_bytes)
    return h.hexdigest()


def source_label_for(source_path: pathlib.Path) -> str:
    try:
        return str(source_path.resolve().relative_to(pathlib.Path.cwd().resolve()))
    except ValueError:
        return str(source_path.resolve())


@dataclasses.dataclass
class FamilyOutput:
    files: Dict[str, str]
    warnings: List[Diagnostic]


def render_family(
    source_path: pathlib.Path, source_text: str, source_bytes: bytes, strict: bool = False
) -> FamilyOutput:
    state = extract_declarations(source_text)
    diagnostics = unresolved_references(state)
    if strict and diagnostics:
        raise ParseError(diagnostics[0].message, diagnostics[0].index)

    meta = (
        "# glacier-codegen generated\n"
        f"# source: {source_label_for(source_path)}\n"
        f"# generator_version: {GENERATOR_VERSION}\n"
        f"# format_version: {FORMAT_VERSION}\n"
        f"# digest: {compute_file_digest(source_bytes)}\n\n"
    )
    files = {
        "__init__.py": meta + render_package_module(),
        "enums.py": meta + render_enums_module(state),
        "properties.py": meta + render_properties_module(state),
    }
    return FamilyOutput(files=files, warnings=diagnostics)


def extract_existing_digest(text: str) -> str | None:
    m = DIGEST_PATTERN.search(text)
    if not m:
        return None
    return m.group(1)


def write_output(out_path: pathlib.Path, rendered: str, check: bool) -> int:
    if check:
        if not out_path.exists():
            print(f"{out_path} is missing (run generator)", file=sys.stderr)
            return 1
        existing = out_path.read_text(encoding="utf-8")
        if existing != rendered:
            print(f"{out_path} is out of date (run generator)", file=sys.stderr)
            return 1
        print(f"up-to-date: {out_path}")
        return 0

    if out_path.exists():
        existing = out_path.read_text(encoding="utf-8")
        old_digest = extract_existing_digest(existing)
        new_digest = extract_existing_digest(rendered)
        if old_digest and new_digest and old_digest == new_digest:
            print(f"unchanged: {out_path}")
            return 0
        if existing == rendered:
            print(f"unchanged: {out_path}")
            return 0

    out_path.parent.mkdir(parents=True, exist_ok=True)
    out_path.write_text(rendered, encoding="utf-8")
    print(f"generated: {out_path}")
    return 0


def parse_family(value: str) -> Tuple[str, pathlib.Path]:
    name, sep, path = value.partition("=")
    if not sep or not path:
        raise argparse.ArgumentTypeError(f"expected NAME=HEADER, got '{value}'")
    if not name.isidentifier():
        raise argparse.ArgumentTypeError(f"family name '{name}' is not a valid package name")
    return name, pathlib.Path(path)


def run(args: argparse.Namespace) -> int:
    out_dir = pathlib.Path(args.output)
    status = 0

    for name, in_path in args.families:
        if not in_path.exists():
            print(f"error: input file does not exist: {in_path}", file=sys.stderr)
            status = 1
            continue

        source_bytes = in_path.read_bytes()
        try:
            source_text = source_bytes.decode("utf-8")
        except UnicodeDecodeError as e:
            print(f"{in_path}: error: not valid UTF-8 at byte {e.start} ({e.reason})", file=sys.stderr)
            status = 1
            continue

        try:
            output = render_family(in_path, source_text, source_bytes, strict=args.strict)
        except ParseError as e:
            fail(in_path, source_text, e)
            status = 1
            continue

        for diagnostic in output.warnings:
            warn(in_path, source_text, diagnostic)

        for filename, rendered in output.files.items():
            if write_output(out_dir / name / filename, rendered, args.check):
                status = 1

    return status


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Generate glacier Python bindings from ZHMGen headers")
    parser.add_argument(
        "--family",
        dest="families",
        action="append",
        type=parse_family,
        required=True,
        metavar="NAME=HEADER",
        help="Output package name and its input header (repeatable)",
    )
    parser.add_argument("--out", dest="output", required=True, help="Directory receiving one package per family")
    parser.add_argument("--check", action="store_true", help="Check outputs are up to date")
    parser.add_argument("--strict", action="store_true", help="Fail on type references no declaration provides")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    return run(build_arg_parser().parse_args(argv))

