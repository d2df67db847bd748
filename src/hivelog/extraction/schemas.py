"""Field schema and pydantic models for extracted inspection data.

The JSON keys are a contract with the prompt that produces the raw
extraction text and with previously stored data, so they are kept exactly
as the model emits them (Swedish, with diacritics). Python code uses the
English attribute names; the aliases carry the wire names.

Field kinds:
  SCALE       integer 1-5
  COUNT       integer >= 0
  YES_NO      "ja" | "nej"
  TEXT        free text, trimmed, never empty
  CONFIDENCE  float clamped into [0.0, 1.0]
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

HIVE_REF_KEY = "bikupa"
APIARY_KEY = "bigård"
CONFIDENCE_KEY = "extractionConfidence"

SCALE_MIN = 1
SCALE_MAX = 5


class YesNo(str, Enum):
    """Two-valued answer as spoken in the inspection report."""

    YES = "ja"
    NO = "nej"


class FieldKind(str, Enum):
    """Validation rule family for an observation field."""

    SCALE = "scale"
    COUNT = "count"
    YES_NO = "yes_no"
    TEXT = "text"
    CONFIDENCE = "confidence"


class FieldGroup(str, Enum):
    """Semantic grouping used when displaying an inspection."""

    CORE = "core"
    BROOD_FOOD = "brood_food"
    BEHAVIOR_RISK = "behavior_risk"
    HEALTH_CONDITION = "health_condition"
    HONEY_PRODUCTION = "honey_production"
    ENVIRONMENTAL = "environmental"
    PLANNING = "planning"
    TECHNICAL = "technical"


@dataclass(frozen=True, slots=True)
class FieldSpec:
    """One recognised observation key."""

    key: str  # JSON key
    attr: str  # Python attribute
    kind: FieldKind
    group: FieldGroup
    label: str


OBSERVATION_FIELDS: tuple[FieldSpec, ...] = (
    FieldSpec("finnsDrottning", "queen_present", FieldKind.YES_NO, FieldGroup.CORE, "Queen"),
    FieldSpec("nylagdaÄgg", "fresh_eggs", FieldKind.YES_NO, FieldGroup.CORE, "Eggs"),
    FieldSpec("mängdBin", "population", FieldKind.SCALE, FieldGroup.CORE, "Population"),
    FieldSpec("binasHälsa", "health", FieldKind.SCALE, FieldGroup.CORE, "Health"),
    FieldSpec("yngelstatus", "brood_status", FieldKind.SCALE, FieldGroup.BROOD_FOOD, "Brood"),
    FieldSpec("foder", "feed_status", FieldKind.SCALE, FieldGroup.BROOD_FOOD, "Feed"),
    FieldSpec("svärmningsrisk", "swarm_risk", FieldKind.SCALE, FieldGroup.BEHAVIOR_RISK, "Swarm risk"),
    FieldSpec(
        "aktivitetVidFlustret", "entrance_activity", FieldKind.SCALE, FieldGroup.BEHAVIOR_RISK, "Activity"
    ),
    FieldSpec("aggressivitet", "aggressiveness", FieldKind.SCALE, FieldGroup.BEHAVIOR_RISK, "Aggressiveness"),
    FieldSpec("väder", "weather", FieldKind.TEXT, FieldGroup.ENVIRONMENTAL, "Weather"),
    FieldSpec(
        "växtDragförhållanden", "forage_conditions", FieldKind.TEXT, FieldGroup.ENVIRONMENTAL, "Forage"
    ),
    FieldSpec("fuktMögel", "moisture_mold", FieldKind.YES_NO, FieldGroup.HEALTH_CONDITION, "Moisture/mold"),
    FieldSpec("varroastatus", "mite_status", FieldKind.SCALE, FieldGroup.HEALTH_CONDITION, "Varroa"),
    FieldSpec("kupansSkick", "hive_condition", FieldKind.SCALE, FieldGroup.HEALTH_CONDITION, "Hive condition"),
    FieldSpec("antalSkattlådar", "super_count", FieldKind.COUNT, FieldGroup.HONEY_PRODUCTION, "Supers"),
    FieldSpec("skattlådorFulla", "supers_full", FieldKind.YES_NO, FieldGroup.HONEY_PRODUCTION, "Supers full"),
    FieldSpec("planeradÅtgärd", "next_action", FieldKind.TEXT, FieldGroup.PLANNING, "Next action"),
    FieldSpec(CONFIDENCE_KEY, "extraction_confidence", FieldKind.CONFIDENCE, FieldGroup.TECHNICAL, "Confidence"),
)

FIELDS_BY_KEY: dict[str, FieldSpec] = {spec.key: spec for spec in OBSERVATION_FIELDS}
FIELDS_BY_ATTR: dict[str, FieldSpec] = {spec.attr: spec for spec in OBSERVATION_FIELDS}
OBSERVATION_ATTRS: frozenset[str] = frozenset(FIELDS_BY_ATTR)


class ObservationFields(BaseModel):
    """Observation values shared by extraction and inspection records.

    ``None`` means "not mentioned". A mentioned negative is ``YesNo.NO``
    and a mentioned zero is ``0``; neither is ever produced as a default.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    queen_present: YesNo | None = Field(default=None, alias="finnsDrottning")
    fresh_eggs: YesNo | None = Field(default=None, alias="nylagdaÄgg")
    population: int | None = Field(default=None, alias="mängdBin", ge=SCALE_MIN, le=SCALE_MAX)
    health: int | None = Field(default=None, alias="binasHälsa", ge=SCALE_MIN, le=SCALE_MAX)
    brood_status: int | None = Field(default=None, alias="yngelstatus", ge=SCALE_MIN, le=SCALE_MAX)
    feed_status: int | None = Field(default=None, alias="foder", ge=SCALE_MIN, le=SCALE_MAX)
    swarm_risk: int | None = Field(default=None, alias="svärmningsrisk", ge=SCALE_MIN, le=SCALE_MAX)
    entrance_activity: int | None = Field(
        default=None, alias="aktivitetVidFlustret", ge=SCALE_MIN, le=SCALE_MAX
    )
    aggressiveness: int | None = Field(default=None, alias="aggressivitet", ge=SCALE_MIN, le=SCALE_MAX)
    weather: str | None = Field(default=None, alias="väder", min_length=1)
    forage_conditions: str | None = Field(default=None, alias="växtDragförhållanden", min_length=1)
    moisture_mold: YesNo | None = Field(default=None, alias="fuktMögel")
    mite_status: int | None = Field(default=None, alias="varroastatus", ge=SCALE_MIN, le=SCALE_MAX)
    hive_condition: int | None = Field(default=None, alias="kupansSkick", ge=SCALE_MIN, le=SCALE_MAX)
    super_count: int | None = Field(default=None, alias="antalSkattlådar", ge=0)
    supers_full: YesNo | None = Field(default=None, alias="skattlådorFulla")
    next_action: str | None = Field(default=None, alias="planeradÅtgärd", min_length=1)
    extraction_confidence: float | None = Field(default=None, alias=CONFIDENCE_KEY, ge=0.0, le=1.0)

    def observations(self) -> dict[str, object]:
        """Return the mentioned observation values keyed by attribute name."""
        return self.model_dump(include=set(OBSERVATION_ATTRS), exclude_none=True)


class ExtractionRecord(ObservationFields):
    """A candidate that passed per-field schema checks.

    ``hive_ref`` is the free-text hive reference as spoken ("bikupa 2",
    "norra kupan"); it is resolved against the hive registry later.
    """

    hive_ref: str = Field(alias=HIVE_REF_KEY, min_length=1)
    apiary: str | None = Field(default=None, alias=APIARY_KEY, min_length=1)

    def to_payload(self) -> dict[str, object]:
        """Serialize back to the wire format, omitting unmentioned fields."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")
