"""
Date and time extraction.

Formats are tried in tiers, most reliable first:
1. ISO (2023-12-12, 2023/12/12)
2. OCR-glued textual month (12DEC2023, 12-N0V-23)
3. Spelled month (12 December 2023, Dec 12th, 2023)
4. Numeric slash/dash/dot (12/10/2023), day-first unless invalid

Within a tier, a date on a line that also carries a time wins.
"""

import logging
import re
from datetime import datetime
from typing import List, Optional, Sequence

from ..utils.candidates import FieldCandidate, select_best
from ..utils.lines import TIME_TOKEN, split_lines
from ..utils.patterns import PatternSpec

logger = logging.getLogger(__name__)

MIN_YEAR = 1990
MAX_YEAR = 2100
TIME_BONUS = 0.05

MONTHS = {
    'jan': 1, 'feb': 2, 'mar': 3, 'apr': 4, 'may': 5, 'jun': 6,
    'jul': 7, 'aug': 8, 'sep': 9, 'oct': 10, 'nov': 11, 'dec': 12,
}

# Month abbreviations with the usual OCR confusions (O/0, I/l/1, S/5).
GLUED_MONTHS = (
    r'JAN|FEB|MAR|APR|MAY|JUN|JUL|AUG|[S5]EP|[O0]CT|N[O0]V|DEC'
)
OCR_DIGIT = r'[0-9OoIlS]'

MONTH_NAME = (
    r'(?:jan(?:uary)?|feb(?:ruary)?|mar(?:ch)?|apr(?:il)?|may|june?|july?|'
    r'aug(?:ust)?|sep(?:t(?:ember)?)?|oct(?:ober)?|nov(?:ember)?|dec(?:ember)?)'
)

DATE_TIERS = [
    PatternSpec(
        name='iso',
        pattern=r'\b(?P<year>(?:19|20)\d{2})[-/](?P<month>\d{1,2})[-/](?P<day>\d{1,2})\b',
        example='2023-12-12',
        priority=1,
        score=0.95,
    ),
    PatternSpec(
        name='glued_month',
        pattern=(
            rf'(?<![A-Za-z0-9])(?P<day>\d{{1,2}}|{OCR_DIGIT}\d|\d{OCR_DIGIT})[-/. ]?'
            rf'(?P<month>{GLUED_MONTHS})[-/. ]?(?P<year>{OCR_DIGIT}{{4}}|\d{{2}})(?![A-Za-z0-9])'
        ),
        example='12DEC2023',
        notes='OCR drops spaces and confuses O/0, I/l/1, S/5',
        priority=2,
        score=0.85,
    ),
    PatternSpec(
        name='spelled_day_first',
        pattern=rf'\b(?P<day>\d{{1,2}})(?:st|nd|rd|th)?\s+(?P<month>{MONTH_NAME})\.?,?\s+(?P<year>\d{{4}}|\d{{2}})\b',
        example='12th December 2023',
        priority=3,
        score=0.8,
    ),
    PatternSpec(
        name='spelled_month_first',
        pattern=rf'\b(?P<month>{MONTH_NAME})\.?\s+(?P<day>\d{{1,2}})(?:st|nd|rd|th)?,?\s+(?P<year>\d{{4}})\b',
        example='December 12, 2023',
        priority=3,
        score=0.8,
    ),
    PatternSpec(
        name='numeric',
        pattern=r'(?<![\d.,/-])(?P<first>\d{1,2})(?P<sep>[/.-])(?P<second>\d{1,2})(?P=sep)(?P<year>\d{4}|\d{2})(?![\d.,/-])',
        example='12/10/2023',
        notes='Day-first; month-first only when day-first is impossible',
        priority=4,
        score=0.7,
    ),
]

OCR_DIGIT_FIXES = str.maketrans({'O': '0', 'o': '0', 'I': '1', 'l': '1', 'S': '5'})


def _year(raw: str) -> int:
    year = int(raw)
    if len(raw) == 2:
        year += 2000
    return year


def _month(raw: str) -> int:
    return MONTHS[raw.lower()[:3].replace('0', 'o').replace('5', 's')]


def _build(year: int, month: int, day: int) -> Optional[datetime]:
    if not MIN_YEAR <= year <= MAX_YEAR:
        return None
    try:
        return datetime(year, month, day)
    except ValueError:
        return None


def _parse_match(spec: PatternSpec, match: re.Match) -> Optional[datetime]:
    groups = match.groupdict()
    if spec.name == 'numeric':
        first, second, year = int(groups['first']), int(groups['second']), _year(groups['year'])
        return _build(year, second, first) or _build(year, first, second)
    if spec.name == 'glued_month':
        day = groups['day'].translate(OCR_DIGIT_FIXES)
        year = groups['year'].translate(OCR_DIGIT_FIXES)
        return _build(_year(year), _month(groups['month']), int(day))
    if spec.name == 'iso':
        return _build(int(groups['year']), int(groups['month']), int(groups['day']))
    return _build(_year(groups['year']), _month(groups['month']), int(groups['day']))


def _time_on(line: str):
    match = TIME_TOKEN.search(line)
    if not match:
        return None
    hour = int(match.group('hour'))
    minute = int(match.group('minute'))
    second = int(match.group('second') or 0)
    ampm = (match.group('ampm') or '').lower()
    if ampm == 'pm' and hour < 12:
        hour += 12
    elif ampm == 'am' and hour == 12:
        hour = 0
    return hour, minute, second


def extract_date(lines: Sequence[str]) -> Optional[FieldCandidate]:
    """
    Find the transaction date.

    Returns:
        FieldCandidate whose value is a naive datetime (time attached when
        the same line carries one), or None
    """
    for spec in DATE_TIERS:
        candidates: List[FieldCandidate] = []
        for index, line in enumerate(lines):
            for match in spec.compiled.finditer(line):
                try:
                    value = _parse_match(spec, match)
                except (KeyError, ValueError):
                    logger.debug("Unparseable date token %r", match.group(0))
                    continue
                if value is None:
                    continue
                score = spec.score
                time = _time_on(line[:match.start()] + ' ' + line[match.end():])
                if time:
                    value = value.replace(hour=time[0], minute=time[1], second=time[2])
                    score += TIME_BONUS
                candidates.append(FieldCandidate(value, score, spec.name, index, match.group(0)))
        best = select_best(candidates)
        if best:
            logger.debug("Date found", extra={'date': best.describe()})
            return best
    return None


def find_date(text: str) -> Optional[datetime]:
    """Convenience wrapper over extract_date() for free text."""
    candidate = extract_date(split_lines(text))
    return candidate.value if candidate else None
