"""
Parsing of raw model output into a candidate question list.

Strict JSON parsing is tried first. When it fails, a short ordered list of
repair rules is applied cumulatively, each a pure ``str -> str`` function,
with a strict re-parse after every rule. The rules target what truncated or
sloppy model output actually looks like: markdown fences and preambles,
strings cut off by the token limit, trailing commas and unclosed brackets.
"""
import json
import logging
import re
from typing import Any, Callable, List, Tuple

from error_handling import MalformedOutput

logger = logging.getLogger("quizgen.output_parser")

_CODE_FENCE_RE = re.compile(r"```(?:json|JSON)?[ \t]*\n?")
_TRAILING_COMMA_RE = re.compile(r",(\s*[}\]])")

_WRAPPER_KEYS = ("questions", "quiz", "items", "data")


def strip_wrapping_text(text: str) -> str:
    """Drop markdown fences and any preamble before the first bracket."""
    text = _CODE_FENCE_RE.sub("", text).strip()
    starts = [i for i in (text.find("["), text.find("{")) if i != -1]
    if starts:
        text = text[min(starts):]
    return text


def _scan(text: str) -> Tuple[bool, bool, List[str]]:
    """Walk the text, returning (inside string, pending escape, open brackets)."""
    in_string = False
    escaped = False
    stack: List[str] = []
    for ch in text:
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
        elif ch == '"':
            in_string = True
        elif ch in "[{":
            stack.append(ch)
        elif ch in "]}" and stack:
            stack.pop()
    return in_string, escaped, stack


def close_unterminated_string(text: str) -> str:
    """Terminate a string left open at the end of the text."""
    in_string, escaped, _ = _scan(text)
    if not in_string:
        return text
    if escaped:
        text = text[:-1]
    return text + '"'


def strip_trailing_commas(text: str) -> str:
    """Remove commas that directly precede a closing bracket or brace."""
    return _TRAILING_COMMA_RE.sub(r"\1", text)


def close_open_brackets(text: str) -> str:
    """Append the closers for any brackets still open at the end."""
    in_string, _, stack = _scan(text)
    if in_string or not stack:
        return text
    text = text.rstrip().rstrip(",")
    closers = {"[": "]", "{": "}"}
    return text + "".join(closers[ch] for ch in reversed(stack))


REPAIR_RULES: List[Callable[[str], str]] = [
    strip_wrapping_text,
    close_unterminated_string,
    strip_trailing_commas,
    close_open_brackets,
]


def parse_model_output(raw: str) -> Any:
    """
    Parse model output, repairing it when strict parsing fails.

    Valid JSON is returned exactly as ``json.loads`` would return it.

    Raises:
        MalformedOutput: if the text still does not parse after every rule.
    """
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        last_error = e
        logger.debug("Strict parse failed: %s", e)

    text = raw
    for rule in REPAIR_RULES:
        repaired = rule(text)
        if repaired == text:
            continue
        text = repaired
        try:
            result = json.loads(text)
        except json.JSONDecodeError as e:
            last_error = e
            continue
        logger.info("Model output repaired by %s", rule.__name__)
        return result

    raise MalformedOutput("Invalid JSON after attempted fix", str(last_error))


def extract_questions(candidate: Any) -> Any:
    """
    Unwrap the question array from common object wrappers.

    Models asked for an array sometimes answer ``{"questions": [...]}`` or a
    single bare question object. Anything unrecognised is returned unchanged
    so the validator can report it.
    """
    if not isinstance(candidate, dict):
        return candidate
    for key in _WRAPPER_KEYS:
        if isinstance(candidate.get(key), list):
            return candidate[key]
    lists = [value for value in candidate.values() if isinstance(value, list)]
    if len(candidate) == 1 and len(lists) == 1:
        return lists[0]
    if "question" in candidate:
        return [candidate]
    return candidate
