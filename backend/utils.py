import json
import re
from typing import Any, Optional

from json_repair import repair_json

from models import ParseOutcome, ParseStatus

_FENCE_RE = re.compile(r"```(?:json|JSON)?[ \t]*\n?")
_QUESTIONS_KEY_RE = re.compile(r"""["']questions["']\s*:\s*\[""")
_TRAILING_COMMA_RE = re.compile(r",\s*[}\]]")
_PREVIEW_CHARS = 300


def strip_code_fences(text: str) -> str:
    """
    Remove markdown fences (```json ... ``` or ``` ... ```) and any prose the
    model added before the first opening bracket or after the last closing one.
    """
    text = _FENCE_RE.sub("", text).strip()
    text = text.strip("`").strip()

    starts = [i for i in (text.find("{"), text.find("[")) if i != -1]
    if not starts:
        return text
    start = min(starts)
    end = max(text.rfind("}"), text.rfind("]"))
    if end < start:
        # Truncated output: keep everything after the opening bracket
        return text[start:]
    return text[start:end + 1]


def _has_structure(value: Any) -> bool:
    # Repair turns stray text into bare strings, e.g. "{oops}" -> ["oops}"]
    if isinstance(value, dict):
        return bool(value)
    if isinstance(value, list):
        return any(isinstance(v, (dict, list)) for v in value)
    return False


def parse_llm_json(text: str) -> ParseOutcome:
    """
    Parse a JSON value out of a raw model response.

    Strict parse first, then a forgiving repair pass for the usual model
    mistakes (trailing commas, single quotes, unquoted keys, missing closers).
    Never raises; failures come back as ParseStatus.FAILED with a diagnostic.
    """
    original = text or ""
    cleaned = strip_code_fences(original)

    if not cleaned or cleaned[0] not in "{[":
        return ParseOutcome(
            status=ParseStatus.FAILED,
            original_text=original,
            error="Response does not contain a JSON object or array",
        )

    try:
        return ParseOutcome(status=ParseStatus.OK, data=json.loads(cleaned), original_text=original)
    except json.JSONDecodeError as e:
        strict_error = f"{e.msg} at line {e.lineno} column {e.colno}"

    repaired = repair_json(cleaned, return_objects=True)
    if _has_structure(repaired):
        return ParseOutcome(status=ParseStatus.REPAIRED, data=repaired, original_text=original)

    return ParseOutcome(
        status=ParseStatus.FAILED,
        original_text=original,
        error=f"JSON parsing failed: {strict_error}",
    )


def extract_partial_questions(text: str) -> Optional[dict]:
    """
    Last-resort scan for a "questions" array inside broken JSON.
    Decodes array elements one by one and stops at the first broken one, so a
    response cut off mid-question still yields the questions before it.
    """
    if not text:
        return None
    match = _QUESTIONS_KEY_RE.search(text)
    if not match:
        return None

    decoder = json.JSONDecoder()
    pos = match.end()
    questions: list[Any] = []
    while True:
        while pos < len(text) and text[pos] in " \t\r\n,":
            pos += 1
        if pos >= len(text) or text[pos] == "]":
            break
        try:
            item, pos = decoder.raw_decode(text, pos)
        except json.JSONDecodeError:
            break
        if isinstance(item, dict):
            questions.append(item)

    if not questions:
        return None
    return {"questions": questions}


def describe_parse_failure(text: str, error: Optional[str]) -> dict:
    """Structured diagnostics for logging a response that could not be parsed."""
    text = text or ""
    return {
        "error": error,
        "response_length": len(text),
        "response_preview": text[:_PREVIEW_CHARS],
        "response_suffix": text[-100:] if len(text) > _PREVIEW_CHARS else "",
        "contains_code_blocks": "```" in text,
        "contains_single_quotes": "'" in text,
        "contains_trailing_commas": bool(_TRAILING_COMMA_RE.search(text)),
    }
