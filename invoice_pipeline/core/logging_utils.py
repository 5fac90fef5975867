"""
Content-safe logging utilities.

Provides minimal sanitization helpers to prevent document content, prompts
and credentials from leaking into logs while keeping them useful for
debugging.
"""

from urllib.parse import urlsplit, urlunsplit

from invoice_pipeline.core.config import LOG_PREVIEW_CHARS


def preview_text(text: str | None, limit: int = LOG_PREVIEW_CHARS) -> str:
    """
    Truncated, single-line preview of model content for logs.

    Rules:
    - None / empty → empty string
    - Whitespace collapsed, cut to ``limit`` chars with an ellipsis marker
    """
    if not text:
        return ""
    flat = " ".join(text.split())
    if len(flat) <= limit:
        return flat
    return f"{flat[:limit]}…(+{len(flat) - limit} chars)"


def redact_url(url: str | None) -> str:
    """
    Strip credentials, query string and fragment from a URL for logs.

    Presigned document URLs carry signatures in the query string.
    """
    if not url:
        return ""
    try:
        parts = urlsplit(url)
        host = parts.hostname or ""
        if parts.port:
            host = f"{host}:{parts.port}"
    except ValueError:
        return "<unparsable-url>"
    return urlunsplit((parts.scheme, host, parts.path, "", ""))


def host_of(url: str | None) -> str | None:
    if not url:
        return None
    try:
        return urlsplit(url).hostname
    except ValueError:
        return None
