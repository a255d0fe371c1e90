"""Cleans raw runtime output into user-presentable text.

The runtime streams internal telemetry (step markers, message snapshots) as
JSON lines mixed with the model's answer. Those lines are dropped here; every
other line is kept verbatim.
"""

import json
import re
from typing import Any

_FENCE_OPEN = re.compile(r"^```[a-z\-]*\s*", re.IGNORECASE)
_FENCE_CLOSE = re.compile(r"```$")
_SNAPSHOT_KEYS = ("sessionID", "messageID", "snapshot")


def format_response(payload: Any) -> str:
    """Turn a runtime prompt response into plain text.

    Accepts a string, an object with ``content`` (string or list of parts) or
    an object with a ``parts`` list. Any other shape is rendered as indented
    JSON.
    """
    if payload is None:
        return ""
    if isinstance(payload, str):
        return payload
    if isinstance(payload, dict):
        content = payload.get("content")
        if isinstance(content, str):
            return content
        if isinstance(content, list):
            return "\n".join(_content_item_text(item) for item in content)
        parts = payload.get("parts")
        if isinstance(parts, list):
            return "\n".join(_part_text(part) for part in parts)
    return json.dumps(payload, indent=2, ensure_ascii=False, default=str)


def _content_item_text(item: Any) -> str:
    if isinstance(item, str):
        return item
    if isinstance(item, dict) and item.get("text"):
        return str(item["text"])
    return json.dumps(item, ensure_ascii=False, default=str)


def _part_text(part: Any) -> str:
    if isinstance(part, dict) and isinstance(part.get("text"), str):
        return part["text"]
    return json.dumps(part, ensure_ascii=False, default=str)


def is_telemetry_line(line: str) -> bool:
    """True for single-line JSON objects emitted as runtime telemetry."""
    if not (line.startswith("{") and line.endswith("}")):
        return False
    try:
        parsed = json.loads(line)
    except ValueError:
        return False
    if not isinstance(parsed, dict):
        return False

    kind = parsed.get("type")
    if isinstance(kind, str) and kind.startswith("step-"):
        return True
    return all(key in parsed for key in _SNAPSHOT_KEYS)


def _strip_fence(text: str) -> str:
    if text.startswith("```") and text.endswith("```"):
        text = _FENCE_CLOSE.sub("", _FENCE_OPEN.sub("", text)).strip()
    return text


def _clean_once(text: str) -> str:
    lines = (line.strip() for line in text.splitlines())
    kept = [line for line in lines if line and not is_telemetry_line(line)]
    cleaned = _strip_fence("\n".join(kept).strip())
    return cleaned or text.strip()


def sanitize(raw_text: str) -> str:
    """Drop telemetry lines and an outer code fence from runtime output.

    Never returns an empty string for non-blank input: when nothing survives
    filtering, the outer-trimmed input is returned instead. Cleaning repeats
    until the text stops changing, so sanitizing twice equals sanitizing once.
    """
    if not raw_text or not isinstance(raw_text, str):
        return ""

    current = raw_text
    while True:
        cleaned = _clean_once(current)
        if cleaned == current:
            return cleaned
        current = cleaned
