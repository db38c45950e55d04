"""
Store location extraction.
"""

import logging
from typing import Iterable, List, Optional, Sequence

from ..utils.candidates import FieldCandidate, select_best
from ..utils.lines import has_price, is_logo_artifact, is_promotional, looks_like_phone
from ..utils.scoring import score_location_line

logger = logging.getLogger(__name__)

MIN_LOCATION_SCORE = 0.3
MAX_LOCATION_LENGTH = 200
TOP_WINDOW = 8
BOTTOM_WINDOW = 8
MERCHANT_ADJACENT_WINDOW = 3


def _usable(line: str) -> bool:
    return not (
        has_price(line)
        or is_promotional(line)
        or looks_like_phone(line)
        or is_logo_artifact(line)
    )


def _windows(line_count: int, merchant_index: Optional[int]):
    if merchant_index is not None:
        start = merchant_index + 1
        yield 'merchant_adjacent', range(start, min(line_count, start + MERCHANT_ADJACENT_WINDOW))
    yield 'top', range(0, min(line_count, TOP_WINDOW))
    yield 'bottom', range(max(0, line_count - BOTTOM_WINDOW), line_count)


def _complementary(lines: Sequence[str], index: int, skip: Iterable[int]) -> bool:
    if index < 0 or index >= len(lines) or index in skip:
        return False
    line = lines[index]
    return _usable(line) and score_location_line(line) > 0


def extract_location(lines: Sequence[str], merchant_index: Optional[int] = None) -> Optional[FieldCandidate]:
    """
    Find the store address.

    Windows are searched in priority order (merchant-adjacent lines, top of
    the document, bottom of the document) and the first window with a line
    scoring at least MIN_LOCATION_SCORE wins. Neighbouring address
    fragments (street above a postcode line, city below a street line) are
    merged with ", ".

    Args:
        lines: Receipt lines from split_lines()
        merchant_index: Line the merchant name came from, if known

    Returns:
        FieldCandidate with the address string, or None
    """
    skip = {merchant_index} if merchant_index is not None else set()

    for window_name, indices in _windows(len(lines), merchant_index):
        candidates: List[FieldCandidate] = []
        for index in indices:
            line = lines[index]
            if index in skip or not _usable(line):
                continue
            score = score_location_line(line)
            if score >= MIN_LOCATION_SCORE:
                candidates.append(FieldCandidate(line, score, f'{window_name}_window', index, line))

        best = select_best(candidates)
        if not best:
            continue

        start = best.line_index
        if _complementary(lines, start - 1, skip) and (start - 1) in indices:
            start -= 1
        end = best.line_index
        if _complementary(lines, end + 1, skip):
            end += 1

        parts = [lines[i].strip(' ,;|') for i in range(start, end + 1)]
        value = ', '.join(part for part in parts if part)[:MAX_LOCATION_LENGTH]
        logger.debug(
            "Location found",
            extra={'window': window_name, 'lines': list(range(start, end + 1)), 'score': round(best.score, 2)},
        )
        return FieldCandidate(value, best.score, best.source, best.line_index, best.raw_text)

    return None
