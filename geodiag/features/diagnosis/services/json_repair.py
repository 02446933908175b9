"""
Recovery parser for JSON embedded in LLM output.

Models wrap their answer in prose or code fences, leave raw newlines inside
strings, add trailing commas, or stop mid-object when they run out of tokens.
`parse_oracle_json` extracts the object and, if a strict parse fails, runs the
repair passes below in order before parsing again.
"""
import json
import logging
import re
from typing import Any, Callable, Dict, List

from geodiag.platform.exceptions import OracleResponseMalformed

logger = logging.getLogger(__name__)

_OPENING_FENCE = re.compile(r"^```[a-zA-Z]*[ \t]*\r?\n?")
_CONTROL_ESCAPES = {"\n": "\\n", "\r": "\\r", "\t": "\\t"}


def extract_candidate(text: str) -> str:
    """
    The JSON object inside `text`, from the first '{' to the brace that closes
    it. Fences inside string values are content, so only a leading fence is
    dropped and the closing one is left to the string-aware scan. If the
    object never closes (truncated output) the rest of the text is returned
    and left to the repair passes.
    """
    text = _OPENING_FENCE.sub("", text.strip(), count=1)

    start = text.find("{")
    if start == -1:
        raise OracleResponseMalformed("No JSON object found in oracle response")

    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
        elif ch == '"':
            in_string = True
        elif ch in "{[":
            depth += 1
        elif ch in "}]":
            depth -= 1
            if depth == 0:
                return text[start:i + 1]
    return text[start:]


def escape_control_characters(candidate: str) -> str:
    """Escape raw newlines, carriage returns and tabs that appear inside strings."""
    out = []
    in_string = False
    escaped = False
    for ch in candidate:
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            elif ch in _CONTROL_ESCAPES:
                out.append(_CONTROL_ESCAPES[ch])
                continue
        elif ch == '"':
            in_string = True
        out.append(ch)
    return "".join(out)


def strip_trailing_commas(candidate: str) -> str:
    """Remove commas that directly precede a closing bracket, outside strings."""
    out: List[str] = []
    in_string = False
    escaped = False
    for ch in candidate:
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
        elif ch == '"':
            in_string = True
        elif ch in "]}":
            # Walk back over whitespace to the last significant character
            i = len(out) - 1
            while i >= 0 and out[i].isspace():
                i -= 1
            if i >= 0 and out[i] == ",":
                del out[i]
        out.append(ch)
    return "".join(out)


def balance_brackets(candidate: str) -> str:
    """Close an unterminated string and any brackets left open, innermost first."""
    stack: List[str] = []
    in_string = False
    escaped = False
    for ch in candidate:
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
        elif ch == '"':
            in_string = True
        elif ch == "{":
            stack.append("}")
        elif ch == "[":
            stack.append("]")
        elif ch in "]}" and stack and stack[-1] == ch:
            stack.pop()

    repaired = candidate
    if in_string:
        if escaped:
            repaired = repaired[:-1]
        repaired += '"'
    # A dangling comma or colon would still break the parse
    repaired = repaired.rstrip()
    if repaired.endswith(","):
        repaired = repaired[:-1]
    elif repaired.endswith(":"):
        repaired += " null"
    return repaired + "".join(reversed(stack))


REPAIR_PASSES: List[Callable[[str], str]] = [
    escape_control_characters,
    strip_trailing_commas,
    balance_brackets,
]


def parse_oracle_json(text: str) -> Dict[str, Any]:
    if not text or not text.strip():
        raise OracleResponseMalformed("Oracle returned an empty response")

    try:
        parsed = json.loads(text.strip())
    except json.JSONDecodeError:
        parsed = None
    if isinstance(parsed, dict):
        return parsed

    candidate = extract_candidate(text)
    try:
        parsed = json.loads(candidate)
    except json.JSONDecodeError as first_error:
        repaired = candidate
        for repair in REPAIR_PASSES:
            repaired = repair(repaired)
        try:
            parsed = json.loads(repaired)
        except json.JSONDecodeError:
            logger.error(f"Unrecoverable oracle JSON. Raw text: {text[:500]!r}")
            raise OracleResponseMalformed(f"JSON parse failed: {first_error}")
        logger.info("Oracle JSON parsed after repair")

    if not isinstance(parsed, dict):
        raise OracleResponseMalformed("Oracle JSON is not an object")
    return parsed
