"""Data quality scoring for extracted product records.

A record must carry a name, an origin, the source site name and a valid
item URL. On top of that it earns points for completeness and is accepted
once it reaches the minimum score.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from coffee_crawler.crawler.normalize import is_valid_item_url
from coffee_crawler.models import ProductRecord

logger = logging.getLogger(__name__)

DEFAULT_MIN_SCORE = 60

# Points per present field, summing to 100
SCORE_WEIGHTS = {
    "name": 20,
    "origin": 20,
    "tasting_notes": 20,
    "label_image_url": 20,
    "variety": 10,
    "processing": 10,
}


@dataclass
class QualityVerdict:
    """Validator outcome for one record. Truthy when accepted."""

    accepted: bool
    score: int
    reason: Optional[str] = None

    def __bool__(self) -> bool:
        return self.accepted


def quality_score(record: ProductRecord) -> int:
    """Completeness score between 0 and 100."""
    score = 0
    for field_name, points in SCORE_WEIGHTS.items():
        if getattr(record, field_name):
            score += points
    return score


class QualityValidator:
    """Accept or reject records by required fields and completeness score."""

    def __init__(self, min_score: int = DEFAULT_MIN_SCORE):
        self.min_score = min_score

    def validate(self, record: ProductRecord) -> QualityVerdict:
        """Score the record in place and decide whether to keep it.

        Args:
            record: Freshly extracted record. Its ``quality_score`` is set.

        Returns:
            QualityVerdict with the score and, when rejected, the reason.
        """
        score = quality_score(record)
        record.quality_score = score

        missing = [
            name for name, value in (
                ("name", record.name),
                ("origin", record.origin),
                ("site_name", record.site_name),
            )
            if not value
        ]
        if missing:
            return QualityVerdict(False, score, f"missing required {', '.join(missing)}")
        if not is_valid_item_url(record.source_url):
            return QualityVerdict(False, score, f"invalid item URL {record.source_url!r}")
        if score < self.min_score:
            return QualityVerdict(False, score, f"score {score} below {self.min_score}")

        logger.debug("Accepted %s with score %d", record.source_url, score)
        return QualityVerdict(True, score)
