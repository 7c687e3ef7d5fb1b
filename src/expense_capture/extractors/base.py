"""
Base extractor interface and common types.
"""

from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from typing import Any


@dataclass(frozen=True)
class TextLine:
    """One non-blank line of recognized text."""

    index: int
    text: str  # whitespace-collapsed original
    folded: str  # lowercase, accents stripped; used for keyword detection only


@dataclass(frozen=True)
class FieldMatch:
    """A value found by a field strategy."""

    value: str  # normalized value (e.g. "2025-11-05", "150.50")
    raw: str  # text as it appeared
    line_index: int
    strategy: str


@dataclass
class ExtractionResult:
    """Best-effort receipt fields. Missing fields are empty strings."""

    date: str = ""  # YYYY-MM-DD
    document_number: str = ""
    amount: str = ""  # two fractional digits, no currency

    # Debug info: field name -> matched raw text and strategy
    raw_matches: dict[str, Any] = field(default_factory=dict)
    extraction_strategy: str = ""

    @property
    def is_empty(self) -> bool:
        return not (self.date or self.document_number or self.amount)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class FieldStrategy(ABC):
    """
    One matcher in a field's ordered strategy list.

    Anchored strategies look only near label keywords; unanchored ones
    scan the whole text. Strategies are independent of each other.
    """

    name: str
    anchored: bool

    @abstractmethod
    def find(self, lines: list[TextLine]) -> FieldMatch | None:
        """Return the strategy's match, or None."""
        pass


class BaseExtractor(ABC):
    """Base class for receipt field extractors."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Extractor name for logging and provenance."""
        pass

    @abstractmethod
    def extract(self, content: str) -> ExtractionResult:
        """
        Extract receipt fields from recognized text.

        Must never raise: a field that cannot be found is left empty.
        """
        pass
