"""
Receipt capture pipeline.
"""

from .capture import (
    CaptureDraft,
    CapturePipeline,
    DraftValidationError,
    TesseractRecognizer,
    TextRecognizer,
    encode_photo,
)

__all__ = [
    "CaptureDraft",
    "CapturePipeline",
    "DraftValidationError",
    "TesseractRecognizer",
    "TextRecognizer",
    "encode_photo",
]
