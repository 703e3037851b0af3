"""Pydantic schemas shared across the API."""
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class ActivityType(str, Enum):
    FEEDING = "FEEDING"
    SLEEP = "SLEEP"
    DIAPER = "DIAPER"
    TEMPERATURE = "TEMPERATURE"
    MEDICINE = "MEDICINE"
    BATH = "BATH"
    PLAY = "PLAY"


class FeedingType(str, Enum):
    BREAST = "BREAST"
    FORMULA = "FORMULA"
    PUMPED = "PUMPED"
    BABY_FOOD = "BABY_FOOD"


class BreastSide(str, Enum):
    LEFT = "LEFT"
    RIGHT = "RIGHT"
    BOTH = "BOTH"


class SleepType(str, Enum):
    NIGHT = "NIGHT"
    NAP = "NAP"


class DiaperType(str, Enum):
    URINE = "URINE"
    STOOL = "STOOL"
    BOTH = "BOTH"


class StoolCondition(str, Enum):
    NORMAL = "NORMAL"
    SOFT = "SOFT"
    HARD = "HARD"
    WATERY = "WATERY"


class FeedingDetails(BaseModel):
    kind: Literal["feeding"] = "feeding"
    feeding_type: Optional[FeedingType] = None
    amount_ml: Optional[int] = Field(default=None, description="Bottle/food amount in ml")
    duration_minutes: Optional[int] = Field(default=None, description="Breastfeeding minutes")
    breast_side: Optional[BreastSide] = None


class SleepDetails(BaseModel):
    kind: Literal["sleep"] = "sleep"
    sleep_type: Optional[SleepType] = None


class DiaperDetails(BaseModel):
    kind: Literal["diaper"] = "diaper"
    diaper_type: Optional[DiaperType] = None
    stool_condition: Optional[StoolCondition] = None


class TemperatureDetails(BaseModel):
    kind: Literal["temperature"] = "temperature"
    celsius: Optional[float] = None


class MedicineDetails(BaseModel):
    kind: Literal["medicine"] = "medicine"
    name: Optional[str] = None
    amount: Optional[str] = Field(default=None, description="Dose as entered, e.g. 5")
    unit: Optional[str] = Field(default=None, description="ml | 정 | mg")


class BathDetails(BaseModel):
    kind: Literal["bath"] = "bath"
    bath_type: Optional[str] = None
    water_celsius: Optional[float] = None


class PlayDetails(BaseModel):
    kind: Literal["play"] = "play"
    play_type: Optional[str] = None
    location: Optional[str] = None


ActivityDetails = Annotated[
    Union[
        FeedingDetails,
        SleepDetails,
        DiaperDetails,
        TemperatureDetails,
        MedicineDetails,
        BathDetails,
        PlayDetails,
    ],
    Field(discriminator="kind"),
]

DETAILS_KIND_BY_TYPE = {
    ActivityType.FEEDING: "feeding",
    ActivityType.SLEEP: "sleep",
    ActivityType.DIAPER: "diaper",
    ActivityType.TEMPERATURE: "temperature",
    ActivityType.MEDICINE: "medicine",
    ActivityType.BATH: "bath",
    ActivityType.PLAY: "play",
}


class ActivityPayload(BaseModel):
    """Body for creating or fully replacing an activity."""

    child_id: int
    type: ActivityType
    start_time: datetime
    end_time: Optional[datetime] = None
    note: Optional[str] = None
    details: ActivityDetails


class ActivityEvent(BaseModel):
    id: int
    child_id: int
    user_id: Optional[int] = None
    type: ActivityType
    start_time: datetime
    end_time: Optional[datetime] = None
    note: Optional[str] = None
    details: ActivityDetails
    created_at: datetime
    updated_at: datetime


class MeasurementPayload(BaseModel):
    child_id: int
    measured_at: Optional[datetime] = None
    weight_kg: float = Field(..., gt=0)
    height_cm: float = Field(..., gt=0)
    note: Optional[str] = None


class Measurement(BaseModel):
    id: int
    child_id: int
    measured_at: datetime
    weight_kg: Optional[float] = None
    height_cm: Optional[float] = None
    note: Optional[str] = None
    created_at: datetime


class ActivityBundle(BaseModel):
    """Events for one child and window, split by category."""

    feedings: List[ActivityEvent] = Field(default_factory=list)
    sleeps: List[ActivityEvent] = Field(default_factory=list)
    diapers: List[ActivityEvent] = Field(default_factory=list)
    temperatures: List[ActivityEvent] = Field(default_factory=list)
    medicines: List[ActivityEvent] = Field(default_factory=list)
    measurements: List[Measurement] = Field(default_factory=list)

    def is_empty(self) -> bool:
        return not any(
            [self.feedings, self.sleeps, self.diapers, self.temperatures, self.medicines, self.measurements]
        )


class PeriodStats(BaseModel):
    feeding_count: int = 0
    feeding_avg_amount: int = Field(default=0, description="ml per feeding")
    sleep_count: int = 0
    sleep_avg_hours: float = 0.0
    diaper_count: int = 0
    stool_count: int = 0
    urine_count: int = 0
    medicine_count: int = 0
    temperature_count: int = 0


class TrendType(str, Enum):
    INCREASED = "increased"
    DECREASED = "decreased"
    UNCHANGED = "unchanged"
    FIRST_TIME = "first_time"


class ComparisonResult(BaseModel):
    diff: int
    trend: TrendType
    message: str


class PeriodComparison(BaseModel):
    feeding: ComparisonResult
    sleep: ComparisonResult
    diaper: ComparisonResult
    medicine: ComparisonResult


class PeriodWindow(BaseModel):
    start: datetime
    end: datetime


class PeriodSummary(BaseModel):
    days: int
    current_window: PeriodWindow
    previous_window: PeriodWindow
    current: PeriodStats
    previous: PeriodStats
    comparison: PeriodComparison


class ChatMessageIn(BaseModel):
    role: str
    content: str


class ChatRequest(BaseModel):
    messages: List[ChatMessageIn] = Field(..., min_length=1)
    baby_id: Optional[Union[int, str]] = Field(default=None, alias="babyId")

    model_config = ConfigDict(populate_by_name=True)


class ConversationTurn(BaseModel):
    """A stored user/assistant exchange; text fields hold ciphertext."""

    id: int
    child_id: int
    user_id: int
    message: str
    reply: str = ""
    summary: Optional[str] = None
    is_shared: bool = False
    shared_by: Optional[int] = None
    shared_at: Optional[datetime] = None
    created_at: datetime


class ShareTurnRequest(BaseModel):
    message_id: int = Field(..., alias="messageId")
    is_shared: bool = Field(..., alias="isShared")

    model_config = ConfigDict(populate_by_name=True)
