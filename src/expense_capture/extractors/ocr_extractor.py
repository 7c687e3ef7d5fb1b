"""
OCR text heuristics extractor.

Extracts receipt fields from noisy recognized text using ordered lists of
independent matcher strategies per field.

Tie-break policy:
- Anchored matches (near a label keyword) always beat unanchored ones
- Document number and date: first match in document order wins
- Amount without an anchor: the largest currency-marked value wins

Supported formats:
- Dates: d/m/Y, d-m-Y (plus Y-m-d and Y/m/d when no anchor matches)
- Amounts: Q150.50, Q. 1,234.56, Q1.234,56, GTQ 20, $ 9.99
- Document numbers: UUID-shaped authorization numbers, long numeric codes
"""

import logging
import re
import unicodedata
from collections.abc import Callable
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from .base import BaseExtractor, ExtractionResult, FieldMatch, FieldStrategy, TextLine

logger = logging.getLogger(__name__)

# UTF-8 bytes decoded as Latin-1 (common when text passes through several tools)
MOJIBAKE_REPAIRS = {
    "\u00c3\u00a1": "\u00e1",
    "\u00c3\u00a9": "\u00e9",
    "\u00c3\u00ad": "\u00ed",
    "\u00c3\u00b3": "\u00f3",
    "\u00c3\u00ba": "\u00fa",
    "\u00c3\u00b1": "\u00f1",
    "\u00c3\u00bc": "\u00fc",
    "\u00c3\u0081": "\u00c1",
    "\u00c3\u0089": "\u00c9",
    "\u00c3\u008d": "\u00cd",
    "\u00c3\u0093": "\u00d3",
    "\u00c3\u009a": "\u00da",
    "\u00c3\u0091": "\u00d1",
}

# Anchor keywords, matched against folded lines
DOCUMENT_NUMBER_ANCHOR = re.compile(
    r"numero\s+de\s+autorizacion|no\.?\s+de\s+autorizacion|autorizacion|authori[sz]ation"
    r"|\bserie\b|\bnumero\b|\bnumber\b|\bno\s*\.|\bnro\b|\bn[°o]\s*:"
    r"|\bdte\b|\bdocumento\b|\bdoc\b|\bfactura\b|\binvoice\b"
)
TOTAL_ANCHOR = re.compile(
    r"(?<!sub )(?<!sub-)\btotal\b|\ba\s+pagar\b|\bmonto\b|\bimporte\b|\bvalor\b"
)
# "Total IVA" and friends carry a component, not the grand total
TOTAL_EXCLUDE = re.compile(r"\btotal\s+(?:de\s+)?(?:iva|impuestos?|descuentos?)\b")
# Lines whose long numbers are contact or tax IDs, never document numbers
NON_DOCUMENT_LINE = re.compile(r"\bnit\b|\btel\b|\btelefono\b|\bcel\b|\bphone\b|\bdpi\b")
ISSUE_DATE_ANCHOR = re.compile(
    r"fecha\s+de\s+emision|fecha\s+emision|\bemision\b|\bemitid[oa]\b|\bfecha\b"
    r"|\bissue\s+date\b|\bdate\b"
)

# Structured identifiers
UUID_PATTERN = re.compile(
    r"\b[0-9A-F]{8}\s?-\s?[0-9A-F]{4}\s?-\s?[0-9A-F]{4}\s?-\s?[0-9A-F]{4}\s?-\s?[0-9A-F]{12}\b",
    re.IGNORECASE,
)
# >= 8 plain digits, or >= 2 hyphen-joined groups of >= 3 digits (never a date)
NUMERIC_CODE_PATTERN = re.compile(r"(?<![\d.,/-])(?:\d{3,}(?:-\d{3,})+|\d{8,})(?![\d.,/-])")

# Amounts
CURRENCY_AMOUNT_PATTERN = re.compile(r"(?:\bGTQ|\bUSD|\bQ|\$)\s*\.?\s*(\d[\d.,]*\d|\d)")
UNMARKED_DECIMAL_PATTERN = re.compile(r"(?<![\d.,])(\d[\d.,]*[.,]\d{2})(?![\d.,]*\d)")

# Dates
DMY_PATTERN = re.compile(r"(?<!\d)(\d{1,2})\s*[/-]\s*(\d{1,2})\s*[/-]\s*(\d{4})(?!\d)")
YMD_PATTERN = re.compile(r"(?<!\d)(\d{4})[/-](\d{1,2})[/-](\d{1,2})(?!\d)")

CENTS = Decimal("0.01")

Converter = Callable[[re.Match], "str | None"]


def fold_text(text: str) -> str:
    """Lowercase, repair mojibake and strip accents for keyword matching."""
    for broken, fixed in MOJIBAKE_REPAIRS.items():
        text = text.replace(broken, fixed)
    decomposed = unicodedata.normalize("NFKD", text)
    return "".join(c for c in decomposed if not unicodedata.combining(c)).lower()


def normalize_lines(content: str) -> list[TextLine]:
    """Split text on any newline convention, collapse whitespace, drop blanks."""
    lines: list[TextLine] = []
    for raw in re.split(r"\r\n|\r|\n", content or ""):
        cleaned = re.sub(r"[ \t\f\v\u00a0]+", " ", raw).strip()
        if cleaned:
            lines.append(TextLine(index=len(lines), text=cleaned, folded=fold_text(cleaned)))
    return lines


def parse_amount(amount_str: str) -> Decimal | None:
    """
    Parse a locale-ambiguous amount into a Decimal.

    - Both ',' and '.': the right-most one is the decimal separator
      (1,234.56 and 1.234,56 both give 1234.56)
    - Only ',': a single comma is decimal, several are thousands separators
    - Only '.': a single period is decimal; several are thousands separators
      unless the last group has one or two digits
    """
    cleaned = amount_str.strip().replace(" ", "")
    if not cleaned or not re.fullmatch(r"[\d.,]+", cleaned):
        return None

    has_comma = "," in cleaned
    has_dot = "." in cleaned

    if has_comma and has_dot:
        decimal_sep = "," if cleaned.rfind(",") > cleaned.rfind(".") else "."
        thousands_sep = "." if decimal_sep == "," else ","
        cleaned = cleaned.replace(thousands_sep, "").replace(decimal_sep, ".")
    elif has_comma:
        if cleaned.count(",") == 1:
            cleaned = cleaned.replace(",", ".")
        else:
            cleaned = cleaned.replace(",", "")
    elif has_dot and cleaned.count(".") > 1:
        head, _, tail = cleaned.rpartition(".")
        if len(tail) <= 2:
            cleaned = head.replace(".", "") + "." + tail
        else:
            cleaned = cleaned.replace(".", "")

    try:
        return Decimal(cleaned)
    except InvalidOperation:
        return None


def format_amount(amount: Decimal) -> str:
    """Render an amount with exactly two fractional digits."""
    return str(amount.quantize(CENTS, rounding=ROUND_HALF_UP))


def _validated_date(year: int, month: int, day: int) -> str | None:
    if not (1 <= month <= 12 and 1 <= day <= 31):
        return None
    return f"{year:04d}-{month:02d}-{day:02d}"


# Converters: turn a regex match into a normalized value, or reject it


def convert_document_number(match: re.Match) -> str | None:
    return re.sub(r"\s+", "", match.group(0)).upper()


def convert_amount(match: re.Match) -> str | None:
    amount = parse_amount(match.group(1))
    if amount is None or amount <= 0:
        return None
    return format_amount(amount)


def convert_dmy_date(match: re.Match) -> str | None:
    day, month, year = (int(g) for g in match.groups())
    return _validated_date(year, month, day)


def convert_ymd_date(match: re.Match) -> str | None:
    year, month, day = (int(g) for g in match.groups())
    return _validated_date(year, month, day)


def _first_in_line(
    line: TextLine, patterns: list[tuple[re.Pattern, Converter]]
) -> tuple[str, str] | None:
    """First accepted match in a line, in left-to-right order."""
    candidates = []
    for order, (pattern, convert) in enumerate(patterns):
        for match in pattern.finditer(line.text):
            candidates.append((match.start(), order, match, convert))

    for _, _, match, convert in sorted(candidates, key=lambda c: (c[0], c[1])):
        value = convert(match)
        if value:
            return value, match.group(0)
    return None


class AnchoredStrategy(FieldStrategy):
    """Search lines containing an anchor keyword (and optionally the next few)."""

    anchored = True

    def __init__(
        self,
        name: str,
        anchor: re.Pattern,
        patterns: list[tuple[re.Pattern, Converter]],
        lookahead: int = 0,
        exclude: re.Pattern | None = None,
        skip: re.Pattern | None = None,
    ):
        self.name = name
        self.anchor = anchor
        self.patterns = patterns
        self.lookahead = lookahead
        self.exclude = exclude
        self.skip = skip

    def find(self, lines: list[TextLine]) -> FieldMatch | None:
        for line in lines:
            if not self.anchor.search(line.folded):
                continue
            if self.exclude and self.exclude.search(line.folded):
                continue
            for candidate in lines[line.index : line.index + self.lookahead + 1]:
                if self.skip and self.skip.search(candidate.folded):
                    continue
                found = _first_in_line(candidate, self.patterns)
                if found:
                    value, raw = found
                    return FieldMatch(value, raw, candidate.index, self.name)
        return None


class FirstMatchStrategy(FieldStrategy):
    """First accepted match anywhere in the text."""

    anchored = False

    def __init__(
        self,
        name: str,
        patterns: list[tuple[re.Pattern, Converter]],
        skip: re.Pattern | None = None,
    ):
        self.name = name
        self.patterns = patterns
        self.skip = skip

    def find(self, lines: list[TextLine]) -> FieldMatch | None:
        for line in lines:
            if self.skip and self.skip.search(line.folded):
                continue
            found = _first_in_line(line, self.patterns)
            if found:
                value, raw = found
                return FieldMatch(value, raw, line.index, self.name)
        return None


class MaxValueStrategy(FieldStrategy):
    """Largest accepted numeric match anywhere in the text."""

    anchored = False

    def __init__(self, name: str, pattern: re.Pattern, convert: Converter):
        self.name = name
        self.pattern = pattern
        self.convert = convert

    def find(self, lines: list[TextLine]) -> FieldMatch | None:
        best: FieldMatch | None = None
        for line in lines:
            for match in self.pattern.finditer(line.text):
                value = self.convert(match)
                if not value:
                    continue
                if best is None or Decimal(value) > Decimal(best.value):
                    best = FieldMatch(value, match.group(0), line.index, self.name)
        return best


DOCUMENT_NUMBER_PATTERNS = [
    (UUID_PATTERN, convert_document_number),
    (NUMERIC_CODE_PATTERN, convert_document_number),
]

DOCUMENT_NUMBER_STRATEGIES: list[FieldStrategy] = [
    AnchoredStrategy(
        "anchored_identifier",
        DOCUMENT_NUMBER_ANCHOR,
        DOCUMENT_NUMBER_PATTERNS,
        lookahead=3,
        skip=NON_DOCUMENT_LINE,
    ),
    FirstMatchStrategy("any_identifier", DOCUMENT_NUMBER_PATTERNS, skip=NON_DOCUMENT_LINE),
]

AMOUNT_STRATEGIES: list[FieldStrategy] = [
    AnchoredStrategy(
        "anchored_currency_total",
        TOTAL_ANCHOR,
        [(CURRENCY_AMOUNT_PATTERN, convert_amount)],
        exclude=TOTAL_EXCLUDE,
    ),
    AnchoredStrategy(
        "anchored_decimal_total",
        TOTAL_ANCHOR,
        [(UNMARKED_DECIMAL_PATTERN, convert_amount)],
        exclude=TOTAL_EXCLUDE,
    ),
    MaxValueStrategy("max_currency_amount", CURRENCY_AMOUNT_PATTERN, convert_amount),
]

DATE_STRATEGIES: list[FieldStrategy] = [
    AnchoredStrategy(
        "anchored_issue_date", ISSUE_DATE_ANCHOR, [(DMY_PATTERN, convert_dmy_date)]
    ),
    FirstMatchStrategy(
        "any_date", [(DMY_PATTERN, convert_dmy_date), (YMD_PATTERN, convert_ymd_date)]
    ),
]


def run_strategies(strategies: list[FieldStrategy], lines: list[TextLine]) -> FieldMatch | None:
    """Return the first strategy's match in priority order."""
    for strategy in strategies:
        match = strategy.find(lines)
        if match:
            return match
    return None


class OCRTextExtractor(BaseExtractor):
    """
    Extract receipt fields from recognized text using pattern matching.

    Each field runs its own strategy list; a field with no match stays empty.
    """

    FIELDS = {
        "document_number": DOCUMENT_NUMBER_STRATEGIES,
        "amount": AMOUNT_STRATEGIES,
        "date": DATE_STRATEGIES,
    }

    @property
    def name(self) -> str:
        return "ocr_heuristic"

    def extract(self, content: str) -> ExtractionResult:
        """Extract date, document number and amount."""
        result = ExtractionResult(extraction_strategy=self.name)
        lines = normalize_lines(content)
        if not lines:
            return result

        for field_name, strategies in self.FIELDS.items():
            try:
                match = run_strategies(strategies, lines)
            except (ValueError, ArithmeticError) as e:
                logger.warning(f"Extraction of {field_name} failed: {e}")
                continue

            if match:
                setattr(result, field_name, match.value)
                result.raw_matches[field_name] = {
                    "match": match.raw,
                    "line": match.line_index,
                    "strategy": match.strategy,
                }

        logger.debug(
            "Extracted date=%r document_number=%r amount=%r",
            result.date,
            result.document_number,
            result.amount,
        )
        return result


def extract_fields(content: str) -> ExtractionResult:
    """Convenience wrapper around OCRTextExtractor."""
    return OCRTextExtractor().extract(content)
