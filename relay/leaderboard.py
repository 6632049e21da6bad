"""
Filtering and ordering of public leaderboard entries.
"""

from __future__ import annotations

import math
import re
from typing import Iterable, List, Optional

from relay.catalog import CatalogRecord

LISTING_PAGE_SIZE = 250

TIME_PATTERN = re.compile(r"\s*[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?")


def parse_time(value: Optional[str]) -> float:
    """
    Parse the leading decimal number of `time_s`.

    Trailing text is ignored ("8.5s" is 8.5). Values with no leading number,
    or that are not finite, sort after every real time.
    """
    match = TIME_PATTERN.match(value or "")
    if match is None:
        return math.inf
    parsed = float(match.group(0))
    if not math.isfinite(parsed):
        return math.inf
    return parsed


def select_verified(
    records: Iterable[CatalogRecord], field_name: str, value: str
) -> List[CatalogRecord]:
    return [
        record
        for record in records
        if record.verified and record.fields.get(field_name) == value
    ]


def rank_by_time(records: Iterable[CatalogRecord]) -> List[CatalogRecord]:
    return sorted(records, key=lambda record: parse_time(record.fields.get("time_s")))


def build_leaderboard(
    records: Iterable[CatalogRecord], field_name: str, value: str
) -> List[dict]:
    """Verified entries matching `field_name == value`, fastest first."""
    matching = select_verified(records, field_name, value)
    return [record.as_entry() for record in rank_by_time(matching)]
