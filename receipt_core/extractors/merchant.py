"""
Merchant name extraction.

Three ordered passes over the top of the receipt:
1. Known merchant vocabulary, possessive names and "welcome to X" forms
2. Structural line scoring (see utils.scoring.score_merchant_line)
3. First short, mostly alphabetic line
"""

import logging
import re
import string
from typing import List, Optional, Sequence, Tuple

from ..utils.candidates import FieldCandidate, select_best
from ..utils.lines import alpha_ratio, has_price, is_logo_artifact, is_promotional, letter_count
from ..utils.patterns import PatternSpec
from ..utils.scoring import score_merchant_line
from ..utils.vocabulary import RECEIPT_KEYWORD_PATTERN, find_known_merchant
from .totals import TOTAL_LABEL

logger = logging.getLogger(__name__)

MERCHANT_WINDOW = 10
MIN_SCORED_CONFIDENCE = 0.5

NAMING_PATTERNS = [
    PatternSpec(
        name='welcome_to',
        pattern=r"^(?:welcome\s+to|thank\s+you\s+for\s+(?:shopping|visiting)\s+at)\s+(?P<name>[a-z][a-z&'. -]{1,40}?)[.!]*$",
        example='Welcome to Joe\'s Diner',
        score=0.85,
    ),
    PatternSpec(
        name='possessive',
        pattern=r"^(?P<name>[a-z]{2,}['’]s(?:\s+[a-z&]{2,}){0,3})$",
        example="JOE'S DINER",
        notes='Possessive shop names rarely appear anywhere but the header',
        score=0.85,
    ),
    PatternSpec(
        name='company_suffix',
        pattern=r"^(?P<name>[a-z][a-z&'. -]{1,40}?\s+(?:ltd|limited|plc|inc|llc))\.?$",
        example='Acme Foods Ltd',
        score=0.8,
    ),
]

Window = List[Tuple[int, str]]


def clean_merchant_name(name: str) -> str:
    """
    Tidy a raw header line into a display name.

    ALL CAPS headers are converted to capitalised words; mixed-case names
    are kept as printed.
    """
    name = re.sub(r'\s+', ' ', name).strip(" .,:;|*-_=~'\"")
    if name.isupper():
        name = string.capwords(name.lower())
    return name


def _known_or_named(window: Window) -> Optional[FieldCandidate]:
    candidates = []
    for index, line in window:
        if has_price(line):
            continue
        known = find_known_merchant(line)
        if known:
            candidates.append(FieldCandidate(known, 0.95, 'known_merchant', index, line))
            continue
        for spec in NAMING_PATTERNS:
            match = spec.compiled.match(line)
            if match:
                candidates.append(FieldCandidate(
                    clean_merchant_name(match.group('name')), spec.score, spec.name, index, line
                ))
                break
    return select_best(candidates)


def _scored_line(window: Window) -> Optional[FieldCandidate]:
    candidates = []
    for index, line in window:
        if letter_count(line) < 3:
            continue
        score = score_merchant_line(line, index)
        if score >= MIN_SCORED_CONFIDENCE:
            candidates.append(FieldCandidate(clean_merchant_name(line), score, 'scored_line', index, line))
    return select_best(candidates)


def _first_alphabetic_line(window: Window) -> Optional[FieldCandidate]:
    for index, line in window:
        if (
            len(line) <= 40
            and letter_count(line) >= 3
            and alpha_ratio(line) >= 0.6
            and not is_promotional(line)
            and not RECEIPT_KEYWORD_PATTERN.search(line)
            and not has_price(line)
            and not TOTAL_LABEL.search(line)
        ):
            return FieldCandidate(clean_merchant_name(line), 0.3, 'first_alpha_line', index, line)
    return None


def extract_merchant(lines: Sequence[str]) -> Optional[FieldCandidate]:
    """
    Find the merchant name in the first lines of a receipt.

    Logo OCR artifacts are dropped before any pass runs.

    Args:
        lines: Receipt lines from split_lines()

    Returns:
        FieldCandidate with the display name, or None
    """
    window = [
        (index, line) for index, line in enumerate(lines[:MERCHANT_WINDOW])
        if not is_logo_artifact(line)
    ]
    if not window:
        return None

    for finder in (_known_or_named, _scored_line, _first_alphabetic_line):
        candidate = finder(window)
        if candidate and candidate.value:
            logger.debug("Merchant found", extra={'merchant': candidate.describe()})
            return candidate
    return None
