"""
Per-period score parsing.

Scores of a match are stored as a list of per-period goals. Three encodings
exist in the data, all of which must keep parsing:

    JSON array:        "[2,1]"  -> [2, 1]
    comma separated:   "2,1"    -> [2, 1]   (legacy)
    single number:     "2"      -> [2]      (legacy)

None, empty strings and malformed input parse to [0]. Nothing here raises.
"""

import json
import logging
from typing import Any, Union

logger = logging.getLogger(__name__)

ScoreInput = Union[str, bytes, int, float, None]


def _to_int(value: Any) -> int:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0
    if number != number:  # NaN
        return 0
    return int(number)


def parse_score_array(score: ScoreInput) -> list[int]:
    """Parse any stored score encoding into a list of per-period goals."""
    if score is None:
        return [0]

    if isinstance(score, bool):
        return [int(score)]

    if isinstance(score, (int, float)):
        return [_to_int(score)]

    if isinstance(score, (bytes, bytearray, memoryview)):
        try:
            score = bytes(score).decode("utf-8")
        except UnicodeDecodeError:
            return [0]

    if not isinstance(score, str):
        logger.warning(f"Unexpected score type: {type(score).__name__}")
        return [0]

    trimmed = score.strip()
    if not trimmed:
        return [0]

    if trimmed.startswith("[") and trimmed.endswith("]"):
        try:
            parsed = json.loads(trimmed)
        except ValueError:
            logger.warning(f"JSON parse failed for score: {trimmed!r}")
            return [0]
        if isinstance(parsed, list):
            return [_to_int(n) for n in parsed] or [0]
        return [0]

    if "," in trimmed:
        return [_parse_leading_int(part) for part in trimmed.split(",")]

    return [_parse_leading_int(trimmed)]


def _parse_leading_int(text: str) -> int:
    """int() of the leading digits, 0 when there are none ("3a" -> 3)."""
    text = text.strip()
    sign = 1
    if text[:1] in ("-", "+"):
        sign = -1 if text[0] == "-" else 1
        text = text[1:]
    digits = ""
    for ch in text:
        if not ch.isdigit():
            break
        digits += ch
    return sign * int(digits) if digits else 0


def parse_total_score(score: ScoreInput) -> int:
    """Sum of per-period goals."""
    return sum(parse_score_array(score))


def format_score_array(scores: Union[list, int, None]) -> str:
    """Canonical storage form: JSON array string, e.g. "[2,1]"."""
    if scores is None:
        return "[0]"
    if isinstance(scores, (int, float)):
        return json.dumps([_to_int(scores)])
    if isinstance(scores, list):
        if not scores:
            return "[0]"
        return json.dumps([_to_int(s) for s in scores], separators=(",", ":"))
    logger.warning(f"Unexpected scores type: {type(scores).__name__}")
    return "[0]"


def format_score_display(scores: Union[list, str, None], separator: str = "-") -> str:
    """Per-period display string, e.g. "2-1-0"."""
    score_list = parse_score_array(scores) if isinstance(scores, str) else (scores or [0])
    return separator.join(str(s) for s in score_list)


def is_valid_score(score: ScoreInput) -> bool:
    """True when at least one period has a positive score."""
    if score is None:
        return False
    return any(s > 0 for s in parse_score_array(score))
