"""
Reply extraction for whatever n8n sends back.

n8n workflows return whatever shape their last node produced, so there are
two readers here:

- decode_reply / extract_reply_text: the inline reply of a webhook call.
  Known shapes are decoded into a tagged Reply; anything else is kept as raw
  JSON text. Always yields a string.
- resolve_callback_reply: the payload of an asynchronous callback. Searches
  nested n8n structures (data / results[] / json wrappers) up to a fixed depth.
"""

import json
import logging
from typing import Any, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel

logger = logging.getLogger(__name__)

REPLY_FIELDS = ("output", "text", "message", "response")
CALLBACK_FIELDS = ("processedResult", "response", "message")
MAX_SEARCH_DEPTH = 5
DEFAULT_CALLBACK_MESSAGE = "Message received by n8n"


class TextReply(BaseModel):
    kind: Literal["text"] = "text"
    text: str


class OutputListReply(BaseModel):
    kind: Literal["output-list"] = "output-list"
    text: str


class FieldReply(BaseModel):
    kind: Literal["field"] = "field"
    field: str
    text: str


class RawReply(BaseModel):
    kind: Literal["raw"] = "raw"
    text: str


Reply = Union[TextReply, OutputListReply, FieldReply, RawReply]


def _non_empty_str(value: Any) -> bool:
    return isinstance(value, str) and value != ""


def to_json_text(value: Any) -> str:
    """Compact JSON, same spacing as JSON.stringify."""
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


def decode_reply(value: Any) -> Reply:
    if isinstance(value, str):
        return TextReply(text=value)

    if isinstance(value, list) and value and isinstance(value[0], dict):
        output = value[0].get("output")
        if isinstance(output, str):
            return OutputListReply(text=output)

    if isinstance(value, dict):
        for field in REPLY_FIELDS:
            if _non_empty_str(value.get(field)):
                return FieldReply(field=field, text=value[field])

    try:
        return RawReply(text=to_json_text(value))
    except (TypeError, ValueError) as e:
        logger.warning(f"Could not serialise reply, falling back to str(): {e}")
        return RawReply(text=str(value))


def extract_reply_text(value: Any) -> str:
    return decode_reply(value).text


# ── Callback payloads ─────────────────────────────────────────────────────────

def find_nested_reply(obj: Any, depth: int = 0) -> Optional[str]:
    if depth > MAX_SEARCH_DEPTH or not obj:
        return None

    if isinstance(obj, list):
        for item in obj:
            found = find_nested_reply(item, depth + 1)
            if found:
                return found
        return None

    if not isinstance(obj, dict):
        return None

    for field in CALLBACK_FIELDS:
        if _non_empty_str(obj.get(field)):
            return obj[field]

    if obj.get("data"):
        found = find_nested_reply(obj["data"], depth + 1)
        if found:
            return found

    results = obj.get("results")
    if isinstance(results, list):
        for result in results:
            found = find_nested_reply(result, depth + 1)
            if found:
                return found

    if obj.get("json"):
        found = find_nested_reply(obj["json"], depth + 1)
        if found:
            return found

    for key, value in obj.items():
        if not isinstance(value, (dict, list)) or key in ("data", "json"):
            continue
        if key == "results" and isinstance(value, list):
            continue
        found = find_nested_reply(value, depth + 1)
        if found:
            logger.debug(f"Reply found in nested structure under '{key}'")
            return found

    return None


def resolve_callback_reply(data: Any) -> Tuple[str, str]:
    """Returns (message, source) for a callback body. Never raises."""
    if isinstance(data, str) and data:
        return data, "raw-text"

    nested = find_nested_reply(data)
    if nested:
        return nested, "nested"

    if isinstance(data, dict):
        logger.info(f"No known reply field found. Available keys: {list(data.keys())}")
        string_fields: List[Tuple[str, str]] = [
            (key, value) for key, value in data.items() if isinstance(value, str)
        ]
        if len(string_fields) == 1:
            key, value = string_fields[0]
            logger.info(f"Using lone string field '{key}' as the reply")
            return value, f"auto-detected:{key}"
        if string_fields:
            logger.info(
                "Several string fields, none chosen: "
                + ", ".join(key for key, _ in string_fields)
            )

    return DEFAULT_CALLBACK_MESSAGE, "default"
