"""Named question tags, projector roles and record categories.

Catalog questions carry a small integer tag that gives them business
meaning. Every place in the engine that reacts to a tag goes through the
enumerations and the role table below instead of comparing literals.
"""

from __future__ import annotations

from enum import Enum, IntEnum


class QuestionTag(IntEnum):
    SEX = 8
    LACTATING = 9
    EVENT_DATE = 10
    PREGNANCY_STATE = 15
    LACTATING_STATE = 16
    DELIVERY_DATE = 53
    PREGNANCY_DETECTED = 56
    PREGNANCY_DETECTION_DATE = 57
    HEAT_DATE = 64
    DELIVERY_TYPE = 65
    DELIVERY_EVENT_DATE = 66


class TagRole(str, Enum):
    SEX = "sex"
    LACTATION = "lactation"
    PREGNANCY = "pregnancy"
    EVENT_DATE = "event_date"
    HEAT_DATE = "heat_date"
    DELIVERY = "delivery"


# Declarative tag -> role table, checked against the catalog at startup.
TAG_ROLES: dict[QuestionTag, TagRole] = {
    QuestionTag.SEX: TagRole.SEX,
    QuestionTag.LACTATING: TagRole.LACTATION,
    QuestionTag.EVENT_DATE: TagRole.EVENT_DATE,
    QuestionTag.PREGNANCY_STATE: TagRole.PREGNANCY,
    QuestionTag.LACTATING_STATE: TagRole.LACTATION,
    QuestionTag.DELIVERY_DATE: TagRole.EVENT_DATE,
    QuestionTag.PREGNANCY_DETECTED: TagRole.PREGNANCY,
    QuestionTag.PREGNANCY_DETECTION_DATE: TagRole.EVENT_DATE,
    QuestionTag.HEAT_DATE: TagRole.HEAT_DATE,
    QuestionTag.DELIVERY_TYPE: TagRole.DELIVERY,
    QuestionTag.DELIVERY_EVENT_DATE: TagRole.EVENT_DATE,
}

# A write carrying any of these tags is projected onto the yield history.
PROJECTED_TAGS: frozenset[QuestionTag] = frozenset(
    tag for tag, role in TAG_ROLES.items() if role is not TagRole.HEAT_DATE
)

# Preference order when one batch answers several tags of the same role.
PREGNANCY_TAGS = (QuestionTag.PREGNANCY_DETECTED, QuestionTag.PREGNANCY_STATE)
LACTATION_TAGS = (QuestionTag.LACTATING, QuestionTag.LACTATING_STATE)
EVENT_DATE_TAGS = (
    QuestionTag.PREGNANCY_DETECTION_DATE,
    QuestionTag.DELIVERY_DATE,
    QuestionTag.DELIVERY_EVENT_DATE,
    QuestionTag.EVENT_DATE,
)


def tag_of(value: int | None) -> QuestionTag | None:
    """Return the named tag for a catalog tag id, or None when it has no role."""
    if value is None:
        return None
    try:
        return QuestionTag(int(value))
    except ValueError:
        return None


class Category(IntEnum):
    BASIC = 1
    BREEDING = 2
    MILK = 3
    BIRTH = 4
    HEALTH = 5
    HEAT_EVENT = 99
    DELIVERY = 100
    PREGNANCY_DETECTION = 102

    @property
    def slug(self) -> str:
        return _SLUGS[self]

    @classmethod
    def from_slug(cls, slug: str) -> "Category":
        for category, value in _SLUGS.items():
            if value == slug:
                return category
        raise ValueError(f"unknown category slug: {slug}")


_SLUGS: dict[Category, str] = {
    Category.BASIC: "basic",
    Category.BREEDING: "breeding",
    Category.MILK: "milk",
    Category.BIRTH: "birth",
    Category.HEALTH: "health",
    Category.HEAT_EVENT: "heat-event",
    Category.DELIVERY: "delivery",
    Category.PREGNANCY_DETECTION: "pregnancy-detection",
}


def category_of(value: int) -> Category | None:
    try:
        return Category(int(value))
    except ValueError:
        return None


__all__ = [
    "QuestionTag",
    "TagRole",
    "TAG_ROLES",
    "PROJECTED_TAGS",
    "PREGNANCY_TAGS",
    "LACTATION_TAGS",
    "EVENT_DATE_TAGS",
    "tag_of",
    "Category",
    "category_of",
]
