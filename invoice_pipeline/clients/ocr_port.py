"""OcrPort protocol for the external OCR collaborator."""

from __future__ import annotations

from typing import Protocol

from invoice_pipeline.models.dto import DeliveryMode, OcrText


class OcrPort(Protocol):
    """Abstraction over the OCR engine used by the pipeline.

    ``payload`` is the document URL for ``by-reference`` delivery and a
    ``data:application/pdf;base64,...`` string for ``inline-base64``.
    Implementations raise ``OcrError`` on failure; a validation-type
    ``OcrError`` on a by-reference payload makes the pipeline retry inline.
    """

    async def extract(self, delivery_mode: DeliveryMode, payload: str) -> OcrText: ...
