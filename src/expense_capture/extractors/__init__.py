"""
Receipt field extractors.

Provides:
- OCRTextExtractor: ordered heuristic strategies over recognized text
- Strategy lists per field (document number, amount, date), testable alone
- Base classes for custom extractors and strategies

Extraction never raises; a missed field is an empty string.
"""

from .base import BaseExtractor, ExtractionResult, FieldMatch, FieldStrategy, TextLine
from .ocr_extractor import (
    AMOUNT_STRATEGIES,
    DATE_STRATEGIES,
    DOCUMENT_NUMBER_STRATEGIES,
    OCRTextExtractor,
    extract_fields,
    normalize_lines,
    parse_amount,
)

__all__ = [
    "OCRTextExtractor",
    "extract_fields",
    "normalize_lines",
    "parse_amount",
    "DOCUMENT_NUMBER_STRATEGIES",
    "AMOUNT_STRATEGIES",
    "DATE_STRATEGIES",
    "BaseExtractor",
    "ExtractionResult",
    "FieldMatch",
    "FieldStrategy",
    "TextLine",
]
