"""Purpose-tagged fund rules"""

from typing import Dict, FrozenSet, Optional

from parental_guard.domain.models import Category, PurposeTag

# None means any merchant category is accepted
PURPOSE_CATEGORIES: Dict[PurposeTag, Optional[FrozenSet[Category]]] = {
    PurposeTag.MEDICAL: frozenset({Category.MEDICAL, Category.GROCERY}),
    PurposeTag.TRAVEL: frozenset({Category.TRAVEL, Category.TRANSPORT}),
    PurposeTag.EDUCATION: frozenset({Category.EDUCATION, Category.OTHER}),
    PurposeTag.EXAM_FEES: frozenset({Category.EDUCATION}),
    PurposeTag.EMERGENCY: None,
}


def purpose_allows(purpose: PurposeTag, category: Category) -> bool:
    allowed = PURPOSE_CATEGORIES.get(purpose)
    return allowed is None or category in allowed
