"""Response builders shared by the unit tests."""

import json
from typing import Any

import httpx


def chat_response(
    content: Any, *, prompt_tokens: int = 100, completion_tokens: int = 20
) -> httpx.Response:
    """Chat-completions body carrying ``content`` (non-strings are JSON-encoded)."""
    if not isinstance(content, str):
        content = json.dumps(content)
    return httpx.Response(
        200,
        json={
            "choices": [{"message": {"role": "assistant", "content": content}}],
            "usage": {
                "prompt_tokens": prompt_tokens,
                "completion_tokens": completion_tokens,
                "total_tokens": prompt_tokens + completion_tokens,
            },
        },
    )


def reasoned(value: Any, confidence: str = "high", reason_code: str = "explicit_label") -> dict:
    return {"value": value, "confidence": confidence, "reason_code": reason_code}


def pdf_bytes(size: int) -> bytes:
    """A buffer of exactly ``size`` bytes starting with the PDF header."""
    header = b"%PDF-1.7\n"
    return header + b"0" * (size - len(header))
