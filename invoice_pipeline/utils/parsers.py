import json
import math
import re
from typing import Any, Optional

from json_repair import repair_json

_CODE_FENCE = re.compile(r"^```[a-zA-Z0-9_-]*\s*|\s*```$")
_OUTER_OBJECT = re.compile(r"\{[\s\S]*\}")


class CompletionParseError(ValueError):
    """Response body is not a usable chat-completion envelope."""


def parse_chat_completion(body: Any) -> tuple[str, dict[str, int]]:
    """
    Pull ``choices[0].message.content`` and the usage block out of a
    chat-completion response body.

    Returns:
        (content, usage) where usage holds prompt/completion/total token counts.

    Raises:
        CompletionParseError: When the envelope has no string content.
    """
    if not isinstance(body, dict):
        raise CompletionParseError("Response body is not a JSON object")

    choices = body.get("choices")
    if not isinstance(choices, list) or not choices:
        raise CompletionParseError("Response has no choices")

    first = choices[0] if isinstance(choices[0], dict) else {}
    message = first.get("message")
    if not isinstance(message, dict):
        raise CompletionParseError("Response choice has no message object")
    content = message.get("content")
    if not isinstance(content, str):
        raise CompletionParseError("Response message has no text content")

    raw_usage = body.get("usage") if isinstance(body.get("usage"), dict) else {}
    usage = {
        key: _token_count(raw_usage.get(key))
        for key in ("prompt_tokens", "completion_tokens", "total_tokens")
    }
    if not usage["total_tokens"]:
        usage["total_tokens"] = usage["prompt_tokens"] + usage["completion_tokens"]
    return content, usage


def _token_count(value: Any) -> int:
    """Non-negative token count; malformed usage values count as 0."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    if not math.isfinite(value):
        return 0
    return max(0, int(value))


def parse_json_strict(text: str) -> Optional[Any]:
    """Plain ``json.loads``; None when the text is not valid JSON."""
    try:
        return json.loads(text)
    except (json.JSONDecodeError, TypeError):
        return None


def strip_code_fences(text: str) -> str:
    return _CODE_FENCE.sub("", text.strip())


def repair_json_text(text: str) -> Optional[Any]:
    """
    Best-effort recovery of a JSON object from malformed model output.

    Steps:
    - strip markdown code fences
    - keep the outermost ``{...}`` span when prose surrounds it
    - let json-repair fix quotes, trailing commas and truncation

    Returns:
        Parsed value, or None when nothing usable could be recovered.
    """
    if not text or not text.strip():
        return None

    candidate = strip_code_fences(text)
    match = _OUTER_OBJECT.search(candidate)
    if match:
        candidate = match.group(0)

    parsed = parse_json_strict(candidate)
    if parsed is not None:
        return parsed

    repaired = repair_json(candidate, return_objects=True)
    # json-repair returns "" for input it cannot salvage
    if repaired in ("", None):
        return None
    return repaired
