"""
Common utility functions and helpers.
"""
from typing import Any, Dict, Optional
import json
import re

from researchdoc.exceptions import MalformedModelOutput

_FENCED_BLOCK_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)```", re.IGNORECASE)


def extract_fenced_block(text: str) -> Optional[str]:
    """
    Return the interior of the first ``` fenced block in *text*.

    Args:
        text: Raw model output

    Returns:
        The fenced content, or None when there is no complete fence
    """
    match = _FENCED_BLOCK_RE.search(text)
    return match.group(1) if match else None


def extract_json_object(text: str) -> Optional[str]:
    """
    Find the first complete, balanced ``{...}`` span in *text*.

    Braces inside JSON strings are ignored.

    Returns:
        The matched fragment, or None if no balanced object is found
    """
    start = text.find("{")
    if start == -1:
        return None

    depth = 0
    in_string = False
    escape_next = False

    for i, ch in enumerate(text[start:], start=start):
        if escape_next:
            escape_next = False
            continue
        if ch == "\\" and in_string:
            escape_next = True
            continue
        if ch == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return text[start : i + 1]
    return None


def parse_json_object(text: str) -> Dict[str, Any]:
    """
    Coerce a model reply into a JSON object.

    Tries, in order: the first fenced code block, then the first balanced
    ``{...}`` span.

    Raises:
        MalformedModelOutput: when neither candidate parses to a JSON object
    """
    if not text:
        raise MalformedModelOutput("Empty model reply")

    candidates = []
    fenced = extract_fenced_block(text)
    if fenced is not None:
        candidates.append(fenced)
    span = extract_json_object(text)
    if span is not None:
        candidates.append(span)

    for candidate in candidates:
        try:
            value = json.loads(candidate)
        except (json.JSONDecodeError, ValueError):
            continue
        if isinstance(value, dict):
            return value

    raise MalformedModelOutput(f"No JSON object in model reply: {text[:200]!r}")


def normalize_whitespace(text: str) -> str:
    """Collapse runs of whitespace into single spaces."""
    return re.sub(r"\s+", " ", text).strip()


def truncate_text(text: str, max_length: int = 200, suffix: str = "...") -> str:
    """
    Truncate text to maximum length.

    Args:
        text: Text to truncate
        max_length: Maximum length
        suffix: Suffix to add if truncated

    Returns:
        Truncated text
    """
    if len(text) <= max_length:
        return text
    return text[:max_length - len(suffix)] + suffix


def safe_filename(title: str, suffix: str) -> str:
    """Replace every non-alphanumeric character of *title* with '-' and append *suffix*."""
    return re.sub(r"[^a-zA-Z0-9]", "-", title) + suffix
