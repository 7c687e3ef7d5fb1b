"""
Capture pipeline: photo -> recognized text -> prefilled draft -> queued record.

The recognizer and extractor are best-effort; any failure yields a draft
with blank fields for the user to complete. Only the final append to the
record store can fail the capture.
"""

import base64
import io
import logging
from collections.abc import Callable
from dataclasses import asdict, dataclass
from datetime import date
from decimal import Decimal
from typing import Any, Protocol

from ..extractors import BaseExtractor, ExtractionResult, OCRTextExtractor
from ..extractors.ocr_extractor import format_amount, parse_amount
from ..services import SyncTrigger
from ..state_store import RecordStore

logger = logging.getLogger(__name__)

OTHER_PROJECT_CHOICES = ("otro", "other")


class DraftValidationError(Exception):
    """Raised when a capture form is incomplete."""

    def __init__(self, problems: list[str]):
        self.problems = problems
        super().__init__("Incomplete capture: " + "; ".join(problems))


class TextRecognizer(Protocol):
    """Turns image bytes into raw text."""

    def recognize(self, image_bytes: bytes) -> str: ...


class TesseractRecognizer:
    """Tesseract OCR via pytesseract. Requires the `ocr` extra."""

    def __init__(self, lang: str = "spa"):
        self.lang = lang

    def recognize(self, image_bytes: bytes) -> str:
        # Heavy optional dependencies, imported on first use
        import pytesseract
        from PIL import Image

        with Image.open(io.BytesIO(image_bytes)) as img:
            if img.mode != "L":
                img = img.convert("L")
            return pytesseract.image_to_string(img, lang=self.lang)


def encode_photo(image_bytes: bytes, mime_type: str = "image/jpeg") -> str:
    """Encode image bytes as a data URI."""
    encoded = base64.b64encode(image_bytes).decode("ascii")
    return f"data:{mime_type};base64,{encoded}"


@dataclass
class CaptureDraft:
    """Form data reviewed by the user before it becomes a record."""

    date: str = ""
    description: str = ""
    document_number: str = ""
    project: str = ""
    other_project: str = ""  # free text used when project is "otro"
    amount: str = ""
    requester: str = ""
    photo: str = ""

    @classmethod
    def from_extraction(cls, result: ExtractionResult, photo: str) -> "CaptureDraft":
        return cls(
            date=result.date or date.today().isoformat(),
            document_number=result.document_number,
            amount=result.amount,
            photo=photo,
        )

    def resolve_project(self) -> str:
        """Project name as stored: the free text when "other" was chosen."""
        if self.is_other_project():
            return self.other_project.strip()
        return self.project.strip()

    def is_other_project(self) -> bool:
        return self.project.strip().lower() in OTHER_PROJECT_CHOICES

    def normalized_amount(self) -> str | None:
        """Amount with two fractional digits, or None if it is not a plain number."""
        amount = parse_amount(self.amount or "")
        if amount is None or not amount.is_finite():
            return None
        return format_amount(amount)

    def validate(self, projects: list[str] | None = None) -> list[str]:
        """
        Return a list of problems (empty if the draft can be saved).

        When projects is given, a named project must be one of them;
        "otro" with a free-text name is always accepted.
        """
        problems = []

        if not self.photo:
            problems.append("photo is required")
        if not self.description.strip():
            problems.append("description is required")
        if not self.requester.strip():
            problems.append("requester is required")
        if not self.resolve_project():
            problems.append("project is required")
        elif projects and not self.is_other_project():
            known = {p.strip().lower() for p in projects}
            if self.project.strip().lower() not in known:
                choices = ", ".join(list(projects) + [OTHER_PROJECT_CHOICES[0]])
                problems.append(f"project must be one of: {choices}")

        try:
            date.fromisoformat(self.date)
        except ValueError:
            problems.append(f"date must be YYYY-MM-DD: {self.date!r}")

        amount = self.normalized_amount()
        if amount is None:
            problems.append(f"amount is not a number: {self.amount!r}")
        elif Decimal(amount) <= 0:
            problems.append("amount must be positive")

        return problems

    def to_record_fields(self) -> dict[str, Any]:
        fields = asdict(self)
        fields.pop("other_project")
        fields["project"] = self.resolve_project()
        fields["description"] = self.description.strip()
        fields["requester"] = self.requester.strip()
        fields["amount"] = self.normalized_amount() or self.amount
        return fields


class CapturePipeline:
    """
    Turns a receipt photo into a queued capture record.

    prefill() never fails on bad OCR; submit() validates, persists, and asks
    for a sync run when online.
    """

    def __init__(
        self,
        store: RecordStore,
        recognizer: TextRecognizer | None = None,
        extractor: BaseExtractor | None = None,
        request_sync: Callable[[SyncTrigger], object] | None = None,
        is_online: Callable[[], bool] | None = None,
        projects: list[str] | None = None,
    ):
        self.store = store
        self.recognizer = recognizer
        self.extractor = extractor or OCRTextExtractor()
        self.request_sync = request_sync
        self.is_online = is_online
        self.projects = projects

    def recognize(self, image_bytes: bytes) -> str:
        """Run the recognizer; failures become empty text."""
        if self.recognizer is None:
            return ""
        try:
            return self.recognizer.recognize(image_bytes) or ""
        except Exception as e:
            logger.warning(f"Text recognition failed, fields left blank: {e}")
            return ""

    def prefill(self, image_bytes: bytes, mime_type: str = "image/jpeg") -> CaptureDraft:
        """Build a draft from a photo, prefilled with whatever could be extracted."""
        photo = encode_photo(image_bytes, mime_type)
        text = self.recognize(image_bytes)

        result = self.extractor.extract(text) if text.strip() else ExtractionResult()
        logger.info(
            f"Prefilled draft: date={result.date or '-'} "
            f"document={result.document_number or '-'} amount={result.amount or '-'}"
        )
        return CaptureDraft.from_extraction(result, photo)

    def submit(self, draft: CaptureDraft) -> int:
        """
        Persist a reviewed draft. Returns the record ID.

        Raises:
            DraftValidationError: If required fields are missing or malformed
            PersistenceError: If the record could not be stored
        """
        problems = draft.validate(self.projects)
        if problems:
            raise DraftValidationError(problems)

        record_id = self.store.append(draft.to_record_fields())

        if self.request_sync is not None and (self.is_online is None or self.is_online()):
            self.request_sync(SyncTrigger.APPEND)

        return record_id
