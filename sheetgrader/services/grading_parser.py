"""
Grading Response Parser
=======================
Turns the raw text returned by the AI into a GradingResult.

The AI output is untrusted: it may be invalid JSON, wrapped in a Markdown
code fence, or missing fields. Parsing never raises; anything unusable is
replaced by a default and recorded on the returned ParseOutcome so callers
can tell "well-formed but empty" apart from "garbage".
"""
import json
import logging
import math
import re
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation

from sheetgrader.models import (
    GradingResult, ParseOutcome, RubricCriterion, ScoredItem, StudentInfo,
)

logger = logging.getLogger(__name__)

NUMERIC_ITEM_FIELDS = ("max_points", "weight", "raw_score", "weighted_score")
TEXT_ITEM_FIELDS = ("criterion_id", "name", "justification")

# json.loads turns unpaired \uD800-style escapes into lone surrogates
_SURROGATE_RE = re.compile("[\ud800-\udfff]")

# Keys the prompt asks for first, then the English spellings
STUDENT_KEYS = {
    "name": ("ogrenci_ad", "name"),
    "id": ("ogrenci_no", "id"),
    "class_name": ("sinif", "className", "class_name"),
}

# Student numbers are often emitted as JSON numbers; names and classes are not
NUMERIC_TEXT_STUDENT_FIELDS = ("id",)


def _clean(text):
    return _SURROGATE_RE.sub("", text)


def _strip_code_fence(text):
    """Remove a surrounding ```json ... ``` fence if the model added one."""
    if not text.startswith("```"):
        return text
    lines = text.split('\n')
    end = len(lines)
    for i in range(len(lines) - 1, 0, -1):
        if lines[i].strip() == "```":
            end = i
            break
    return '\n'.join(lines[1:end]).strip()


def to_number(value):
    """Coerce a JSON value to a finite number, or None if it isn't one.

    Booleans are rejected even though Python treats them as ints.
    Numeric strings ("8.5") are accepted.
    """
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, int):
        try:
            float(value)
        except OverflowError:
            return None
        number = value
    elif isinstance(value, float):
        number = value
    elif isinstance(value, str):
        # float() also takes Python digit grouping ("1_000"); JSON does not
        if "_" in value:
            return None
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    if isinstance(number, float) and not math.isfinite(number):
        return None
    return number


def round_half_away_from_zero(value) -> int:
    """Round to the nearest integer; .5 goes away from zero (87.5 -> 88)."""
    try:
        quantized = Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    except InvalidOperation:
        return 0
    return int(quantized)


def _text_or_none(value, allow_numbers=True):
    if value is None:
        return None
    if isinstance(value, str):
        return _clean(value)
    if allow_numbers and isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return None


def _parse_student(raw_student, issues):
    if raw_student is None:
        return StudentInfo()
    if not isinstance(raw_student, dict):
        issues.append("student is not an object")
        return StudentInfo()

    fields = {}
    for field, keys in STUDENT_KEYS.items():
        value = None
        for key in keys:
            if key in raw_student:
                value = raw_student[key]
                break
        text = _text_or_none(value, allow_numbers=field in NUMERIC_TEXT_STUDENT_FIELDS)
        if value is not None and text is None:
            issues.append(f"student.{field} has unsupported type")
        fields[field] = text
    return StudentInfo(**fields)


def _parse_flags(raw_flags, index, issues):
    if raw_flags is None:
        return []
    if not isinstance(raw_flags, list):
        issues.append(f"items[{index}].flags is not a list")
        return []
    return [_clean(f) if isinstance(f, str) else str(f) for f in raw_flags if f is not None]


def _parse_item(raw_item, index, issues):
    fields = {}
    for key in NUMERIC_ITEM_FIELDS:
        number = to_number(raw_item.get(key))
        if number is None:
            issues.append(f"items[{index}].{key} defaulted to 0")
            number = 0
        fields[key] = number

    for key in TEXT_ITEM_FIELDS:
        value = raw_item.get(key)
        if value is None:
            fields[key] = ""
        elif isinstance(value, str):
            fields[key] = _clean(value)
        else:
            fields[key] = str(value)

    fields["flags"] = _parse_flags(raw_item.get("flags"), index, issues)
    return ScoredItem(**fields)


def _parse_items(raw_items, issues):
    if raw_items is None:
        return []
    if not isinstance(raw_items, list):
        issues.append("items is not a list")
        return []

    items = []
    for index, raw_item in enumerate(raw_items):
        if not isinstance(raw_item, dict):
            issues.append(f"items[{index}] is not an object; dropped")
            continue
        items.append(_parse_item(raw_item, index, issues))
    return items


def _parse_final_score(raw_score, issues):
    number = to_number(raw_score)
    if number is None:
        if raw_score is not None:
            issues.append("final_score_100 is not numeric")
        return 0
    return round_half_away_from_zero(max(0, min(100, number)))


def parse_grading_response(raw_text) -> ParseOutcome:
    """Parse raw AI output into a ParseOutcome. Never raises.

    Args:
        raw_text: Text the model returned, expected to be a JSON object.

    Returns:
        ParseOutcome whose ``result`` is always a valid GradingResult.
    """
    text = _strip_code_fence((raw_text or "").strip()) if isinstance(raw_text, str) else ""

    malformed = False
    try:
        data = json.loads(text)
    except (json.JSONDecodeError, ValueError, RecursionError) as e:
        logger.warning("AI returned non-JSON grading response: %s", e)
        data = {}
        malformed = True

    if not isinstance(data, dict):
        logger.warning("AI grading response is %s, expected an object", type(data).__name__)
        data = {}
        malformed = True

    issues = []
    result = GradingResult(
        student=_parse_student(data.get("student"), issues),
        items=_parse_items(data.get("items"), issues),
        final_score_100=_parse_final_score(data.get("final_score_100"), issues),
        notes=_clean(data["notes"]) if isinstance(data.get("notes"), str) else None,
    )
    if issues:
        logger.info("Grading response needed %d default(s): %s", len(issues), "; ".join(issues))

    return ParseOutcome(result=result, malformed=malformed, issues=issues)


def parse_grading_result(raw_text) -> GradingResult:
    """Shortcut returning only the GradingResult."""
    return parse_grading_response(raw_text).result


def parse_rubric(criteria_json, default_subject=""):
    """Parse the caller's rubric form field.

    Accepts either a JSON array of criteria or an object of the form
    ``{"subject": "...", "criteria": [...]}``.

    Returns:
        Tuple of (subject, list of RubricCriterion).
    """
    subject = ""
    raw_criteria = []
    if criteria_json:
        try:
            parsed = json.loads(criteria_json)
        except (json.JSONDecodeError, TypeError, ValueError):
            logger.warning("criteriaJson is not valid JSON; grading without criteria")
            parsed = None
        if isinstance(parsed, list):
            raw_criteria = parsed
        elif isinstance(parsed, dict) and isinstance(parsed.get("criteria"), list):
            subject = parsed.get("subject") or ""
            raw_criteria = parsed["criteria"]

    criteria = []
    for raw in raw_criteria:
        if not isinstance(raw, dict):
            continue
        fields = dict(raw)
        for key in ("max_points", "weight"):
            fields[key] = to_number(raw.get(key)) or 0
        for key in ("criterion_id", "name"):
            fields[key] = _text_or_none(raw.get(key)) or ""
        criteria.append(RubricCriterion(**fields))

    if not isinstance(subject, str):
        subject = str(subject)
    return subject or default_subject, criteria
