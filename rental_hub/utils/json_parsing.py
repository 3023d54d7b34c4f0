"""
Lenient JSON object parsing for language model responses.
"""

import json
from typing import Any, Dict, Optional


def find_json_object(text: str) -> Optional[str]:
    """
    Return the first balanced ``{...}`` substring of text, or None.

    Braces inside JSON string literals are ignored.
    """
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for index in range(start, len(text)):
            char = text[index]
            if in_string:
                if escaped:
                    escaped = False
                elif char == "\\":
                    escaped = True
                elif char == '"':
                    in_string = False
                continue
            if char == '"':
                in_string = True
            elif char == "{":
                depth += 1
            elif char == "}":
                depth -= 1
                if depth == 0:
                    return text[start : index + 1]
        # unbalanced from this brace; try the next one
        start = text.find("{", start + 1)
    return None


def parse_json_object(text: str) -> Dict[str, Any]:
    """
    Parse a JSON object out of a model response.

    The whole response is tried first, then the first balanced ``{...}``
    block inside it.

    Raises:
        ValueError: If no JSON object can be recovered.
    """
    if text is None:
        raise ValueError("Response is empty")

    stripped = text.strip()
    if not stripped:
        raise ValueError("Response is empty")

    try:
        data = json.loads(stripped)
    except json.JSONDecodeError:
        candidate = find_json_object(stripped)
        if candidate is None:
            raise ValueError("No JSON object found in response")
        try:
            data = json.loads(candidate)
        except json.JSONDecodeError as e:
            raise ValueError(f"Embedded JSON object is invalid: {e}") from e

    if not isinstance(data, dict):
        raise ValueError(f"Expected a JSON object, got {type(data).__name__}")

    return data
