"""Test fixtures and utilities."""

from pathlib import Path

import pytest

from expense_capture.state_store import RecordStore

# Guatemalan FEL receipt as returned by Tesseract (spa)
SAMPLE_OCR_TEXT_FEL = """
DISTRIBUIDORA EL SOL, S.A.
NIT: 1234567-8
6a Avenida 12-34 Zona 1, Guatemala
Tel: 2233-4455
FACTURA ELECTRONICA EN LINEA (FEL)
Serie: 4F2A1B3C
Numero de Autorizacion:
4F2A1B3C-9D8E-4A7B-B6C5-1234567890AB
Fecha de Emision: 05/11/2025 10:32:15

Cant Descripcion Precio
2 Cuaderno Q12.50 Q25.00
1 Lapicero Q5.00 Q5.00

Subtotal Q26.79
IVA (12%) Q3.21
TOTAL Q30.00

Gracias por su compra
"""

# No anchor keywords at all: every field comes from a fallback strategy
SAMPLE_OCR_TEXT_UNANCHORED = """
SUPER TIENDA LA ESQUINA
Ticket 20251105
2025-11-05
Leche Q12.00
Pan Q8.50
Q20.50
"""

PHOTO_DATA_URI = "data:image/jpeg;base64,/9j/4AAQSkZJRgABAQ=="


@pytest.fixture
def sample_ocr_fel() -> str:
    """Sample FEL receipt OCR text."""
    return SAMPLE_OCR_TEXT_FEL


@pytest.fixture
def sample_ocr_unanchored() -> str:
    """Sample receipt OCR text without label keywords."""
    return SAMPLE_OCR_TEXT_UNANCHORED


@pytest.fixture
def record_fields() -> dict:
    """Form fields for one capture record."""
    return {
        "date": "2025-11-05",
        "description": "Cuadernos para capacitacion",
        "document_number": "4F2A1B3C-9D8E-4A7B-B6C5-1234567890AB",
        "project": "Operaciones",
        "amount": "30.00",
        "requester": "Ana Lopez",
        "photo": PHOTO_DATA_URI,
    }


@pytest.fixture
def temp_db(tmp_path) -> Path:
    """Temporary database path for testing."""
    return tmp_path / "test_capture.db"


@pytest.fixture
def store(temp_db) -> RecordStore:
    """Fresh record store, closed after the test."""
    store = RecordStore(temp_db)
    yield store
    store.close()
