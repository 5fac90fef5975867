"""
Centralized magic-byte detection for fetched documents.

All signature checks used by document normalization live here.

Magic bytes reference:
- PDF:  %PDF- (0x255044462D)
- GZIP: 0x1F8B
"""

from typing import Final

from invoice_pipeline.core.config import ENVELOPE_SEARCH_WINDOW

PDF_MAGIC: Final[bytes] = b"%PDF-"
GZIP_MAGIC: Final[bytes] = b"\x1f\x8b"


def is_gzip(data: bytes) -> bool:
    return data.startswith(GZIP_MAGIC)


def has_pdf_header(data: bytes) -> bool:
    return data.startswith(PDF_MAGIC)


def find_pdf_header(data: bytes, window: int = ENVELOPE_SEARCH_WINDOW) -> int:
    """
    Offset of ``%PDF-`` if it starts within the first ``window`` bytes, else -1.

    Example:
        >>> find_pdf_header(b'junk%PDF-1.4')
        4
    """
    return data.find(PDF_MAGIC, 0, window + len(PDF_MAGIC) - 1)
