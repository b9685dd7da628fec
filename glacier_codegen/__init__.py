"""Python bindings generator and runtime for Glacier engine resources."""

from .generator import GENERATOR_VERSION, ParseError, extract_declarations, render_family, translate_type
from .variant import TArray, VariantRegistry, ZVariant

__version__ = GENERATOR_VERSION

__all__ = [
    "ParseError",
    "TArray",
    "VariantRegistry",
    "ZVariant",
    "extract_declarations",
    "render_family",
    "translate_type",
]
