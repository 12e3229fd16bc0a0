"""Random value generation and rotation scheduling.

Both helpers are pure: they only read their arguments and the system
random source, and are called by the ExternalSecret handler.
"""

from __future__ import annotations

import random
import re
from datetime import datetime, timedelta, timezone
from typing import Protocol, Sequence

import dateparser
import rstr
from pytimeparse import parse as parse_duration

from .utils.errors import PatternError, RotationExpressionError

_generator = rstr.Rstr(random.SystemRandom())


def generate(pattern: str, size: int) -> str:
    """Generate a value made of ``size`` consecutive matches of ``pattern``.

    Args:
        pattern: Regular expression describing one unit of the value
        size: Number of repetitions

    Raises:
        PatternError: If the pattern does not compile or size is not positive
    """
    if size < 1:
        raise PatternError(f"random size must be at least 1, got {size}")

    expression = f"(?:{pattern}){{{size}}}"
    try:
        re.compile(expression)
    except re.error as e:
        raise PatternError(f"invalid random pattern {pattern!r}: {e}") from e

    return _generator.xeger(expression)


class RotationParser(Protocol):
    """Turns a time expression into an absolute time, or None if it cannot."""

    def parse(self, text: str, reference: datetime) -> datetime | None:
        ...


class DurationParser:
    """Duration-style expressions such as "24 hours", "30d" or "1 week"."""

    def parse(self, text: str, reference: datetime) -> datetime | None:
        seconds = parse_duration(text.strip())
        if seconds is None:
            return None
        return reference + timedelta(seconds=seconds)


class NaturalLanguageParser:
    """Relative or absolute expressions such as "in 2 months" or "next friday"."""

    def parse(self, text: str, reference: datetime) -> datetime | None:
        parsed = dateparser.parse(
            text,
            settings={
                "RELATIVE_BASE": reference.astimezone(timezone.utc).replace(tzinfo=None),
                "PREFER_DATES_FROM": "future",
                "TIMEZONE": "UTC",
                "RETURN_AS_TIMEZONE_AWARE": False,
            },
        )
        if parsed is None:
            return None
        return parsed.replace(tzinfo=timezone.utc)


class ChainedParser:
    """First parser to understand the expression wins."""

    def __init__(self, parsers: Sequence[RotationParser]) -> None:
        self.parsers = list(parsers)

    def parse(self, text: str, reference: datetime) -> datetime | None:
        for parser in self.parsers:
            result = parser.parse(text, reference)
            if result is not None:
                return result
        return None


default_parser: RotationParser = ChainedParser([DurationParser(), NaturalLanguageParser()])


def next_rotation(
    expression: str,
    now: datetime | None = None,
    parser: RotationParser | None = None,
) -> datetime:
    """Compute when a generated value is due for rotation.

    Args:
        expression: Human-readable time expression, evaluated relative to now
        now: Reference time, defaults to the current UTC time
        parser: Parser to use instead of the default chain

    Returns:
        Timezone-aware UTC datetime strictly after ``now``

    Raises:
        RotationExpressionError: If the expression cannot be parsed or is not in the future
    """
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    if not expression or not expression.strip():
        raise RotationExpressionError("rotation expression is empty")

    result = (parser or default_parser).parse(expression, now)
    if result is None:
        raise RotationExpressionError(f"cannot parse rotation expression {expression!r}")

    if result.tzinfo is None:
        result = result.replace(tzinfo=timezone.utc)
    result = result.astimezone(timezone.utc)

    if result <= now:
        raise RotationExpressionError(f"rotation expression {expression!r} does not point to the future")
    return result
