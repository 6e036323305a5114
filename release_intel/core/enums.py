"""Enums for release intel records and pipeline state."""

from enum import Enum


class SourceTier(str, Enum):
    """Trust class of an intel source."""

    A = "A"  # Structured API / feed
    B = "B"  # Light HTML fetch + parse
    C = "C"  # Curated or rumor source


class SourceType(str, Enum):
    """Kind of publisher behind an intel source."""

    OFFICIAL = "official"
    DISTRIBUTOR = "distributor"
    RETAILER = "retailer"
    NEWS = "news"
    COMMUNITY = "community"


class Category(str, Enum):
    """Trading card game a release belongs to."""

    POKEMON = "pokemon"
    MTG = "mtg"
    YUGIOH = "yugioh"
    ONE_PIECE = "one_piece"
    LORCANA = "lorcana"
    DIGIMON = "digimon"


class ProductType(str, Enum):
    """Sealed product format."""

    SET_DEFAULT = "set_default"
    ELITE_TRAINER_BOX = "elite_trainer_box"
    BOOSTER_BOX = "booster_box"
    BOOSTER_BUNDLE = "booster_bundle"
    TIN = "tin"
    COLLECTION = "collection"
    BLISTER = "blister"
    BUILD_BATTLE = "build_battle"
    OTHER = "other"


class Confidence(str, Enum):
    """Confidence in a release product record."""

    CONFIRMED = "confirmed"  # score >= 75
    UNCONFIRMED = "unconfirmed"  # score >= 50
    RUMOR = "rumor"


class RunTrigger(str, Enum):
    """What started a pipeline run."""

    MANUAL = "manual"
    SCHEDULED = "scheduled"


class RunStatus(str, Enum):
    """Lifecycle status of a pipeline run."""

    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class MatchAction(str, Enum):
    """How a reconciled set was resolved to a release."""

    CONTAINMENT = "containment"
    FUZZY = "fuzzy"
    CREATED = "created"


class StrategyPrimary(str, Enum):
    """Primary recommendation produced by the strategy collaborator."""

    FLIP = "Flip"
    SHORT_HOLD = "Short Hold"
    LONG_HOLD = "Long Hold"
    AVOID = "Avoid"
    WATCH = "Watch"
