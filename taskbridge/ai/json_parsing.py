"""
Loose parsing of model-generated JSON.

Models wrap JSON in prose or code fences. Try a direct parse, then the
outermost {...} span, and let the caller fall back to a safe default.
"""

import json
import re
from typing import Any, Callable, Optional, TypeVar

T = TypeVar("T")

_OBJECT_PATTERN = re.compile(r"\{[\s\S]*\}")


def parse_json_with_fallback(raw: Optional[str], convert: Callable[[Any], Optional[T]]) -> Optional[T]:
    """
    Parse ``raw`` and pass the decoded value through ``convert``.

    ``convert`` returns None for shapes it does not accept; the embedded
    object is then tried. Returns None if neither attempt yields a value.
    """
    if not raw:
        return None

    text = raw.strip()
    for candidate in (text, _embedded_object(text)):
        if not candidate:
            continue
        try:
            decoded = json.loads(candidate)
        except (json.JSONDecodeError, ValueError):
            continue
        result = convert(decoded)
        if result is not None:
            return result
    return None


def _embedded_object(text: str) -> Optional[str]:
    match = _OBJECT_PATTERN.search(text)
    return match.group(0) if match else None


def read_text_field(value: Any) -> Optional[str]:
    """Converter for {"text": "..."} replies."""
    if not isinstance(value, dict):
        return None
    text = value.get("text")
    if not isinstance(text, str) or not text.strip():
        return None
    return text.strip()
