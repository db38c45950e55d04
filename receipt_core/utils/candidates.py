"""
Candidate dataclass for extraction scoring.

Every field extractor returns a FieldCandidate (or None) so the parser can
log which rule produced a value and how confident that rule was.
"""

from dataclasses import dataclass
from typing import Any, Iterable, Optional


@dataclass(frozen=True)
class FieldCandidate:
    """
    A potential extracted value with provenance.

    - value: the extracted value (str, Decimal, datetime, ...)
    - score: rule confidence from 0.0 (worst) to 1.0 (best)
    - source: name of the rule that produced the value
    - line_index: index into the line tuple, when the value came from one line
    - raw_text: the text the value was read from
    """
    value: Any
    score: float
    source: str
    line_index: Optional[int] = None
    raw_text: str = ""

    def describe(self) -> dict:
        return {
            'value': str(self.value),
            'score': round(self.score, 2),
            'source': self.source,
            'line': self.line_index,
        }


def select_best(candidates: Iterable[FieldCandidate]) -> Optional[FieldCandidate]:
    """
    Highest score wins; ties go to the earliest line.

    Deterministic for identical input, which keeps parser output stable.
    """
    best = None
    for candidate in candidates:
        if candidate is None:
            continue
        if best is None or _rank(candidate) > _rank(best):
            best = candidate
    return best


def _rank(candidate: FieldCandidate):
    line = candidate.line_index if candidate.line_index is not None else 10_000
    return (round(candidate.score, 6), -line)
