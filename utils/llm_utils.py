"""
LLM response parsing helpers

Models wrap JSON in markdown fences or stop mid-object when they hit the
output token limit. These helpers recover what they can.
"""
import json
import re


def strip_code_fence(text: str) -> str:
    text = text.strip()
    if text.startswith("```"):
        parts = text.split("```")
        if len(parts) >= 3:
            inner = parts[1]
            if inner.startswith("json"):
                inner = inner[4:]
            text = inner.strip()
        else:
            # no closing fence
            text = text.split("\n", 1)[1] if "\n" in text else text[3:]
            if text.endswith("```"):
                text = text[:-3]
            text = text.strip()
    return text


def parse_llm_json(text: str) -> dict:
    """Strip markdown code fences and parse JSON.

    Supported:
      - ```json ... ```
      - ``` ... ```
      - plain JSON
    """
    return json.loads(strip_code_fence(text))


def repair_truncated_json(text: str) -> str:
    """Close an unterminated string and any open arrays/objects.

    Walks the text tracking string state so braces inside strings are
    ignored, then appends the closers in reverse nesting order.
    """
    stack = []
    in_string = False
    escaped = False
    for ch in text:
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch in "{[":
            stack.append("}" if ch == "{" else "]")
        elif ch in "}]" and stack:
            stack.pop()

    repaired = text
    if in_string:
        repaired += '"'
    # a dangling comma or colon cannot be closed directly
    repaired = re.sub(r"[,:]\s*$", "", repaired)
    return repaired + "".join(reversed(stack))


def parse_llm_json_lenient(text: str) -> dict:
    """parse_llm_json, retrying once on a repaired copy of the text."""
    cleaned = strip_code_fence(text)
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError:
        return json.loads(repair_truncated_json(cleaned))
