"""Pydantic schemas shared across the API."""
from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class Family(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    name: str
    phone: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class Caregiver(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    family_id: str
    name: str
    phone: Optional[str] = None
    email: Optional[str] = None
    relationship: Optional[str] = None
    is_primary: bool = False
    created_at: Optional[datetime] = None


class Baby(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    family_id: str
    name: str
    birth_date: date
    gender: Optional[str] = None
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ActivityKind(str, Enum):
    SLEEP = "sleep"
    BREASTFEEDING = "breastfeeding"
    WALK = "walk"


class FeedingType(str, Enum):
    BREASTFEEDING = "breastfeeding"
    BOTTLE = "bottle"
    PUREE = "puree"
    FRUIT = "fruit"
    WATER = "water"
    JUICE = "juice"
    OTHER = "other"


class BreastSide(str, Enum):
    LEFT = "left"
    RIGHT = "right"
    BOTH = "both"


class DiaperType(str, Enum):
    GAS = "gas"
    URINE = "urine"
    MIXED = "mixed"
    LIQUID = "liquid"
    SOLID = "solid"


class StoolConsistency(str, Enum):
    RUNNY = "runny"
    PASTY = "pasty"
    FIRM = "firm"
    DRY = "dry"


class StoolColor(str, Enum):
    YELLOW = "yellow"
    BROWN = "brown"
    GREEN = "green"
    WHITE = "white"
    OTHER = "other"


class SleepEntry(BaseModel):
    baby_id: str
    sleep_start: datetime
    sleep_end: Optional[datetime] = None
    sleep_location: Optional[str] = None
    notes: Optional[str] = None


class WalkEntry(BaseModel):
    baby_id: str
    walk_start: datetime
    walk_end: Optional[datetime] = None
    location: Optional[str] = None
    notes: Optional[str] = None


class BreastfeedingEntry(BaseModel):
    feeding_type: Literal["breastfeeding"]
    baby_id: str
    feeding_time: datetime
    breastfeeding_start: Optional[datetime] = None
    breastfeeding_end: Optional[datetime] = None
    breast_side: Optional[BreastSide] = None
    notes: Optional[str] = None


class LiquidFeedingEntry(BaseModel):
    feeding_type: Literal["bottle", "water", "juice"]
    baby_id: str
    feeding_time: datetime
    amount_ml: Optional[int] = Field(default=None, ge=0)
    notes: Optional[str] = None


class FoodFeedingEntry(BaseModel):
    feeding_type: Literal["puree", "fruit", "other"]
    baby_id: str
    feeding_time: datetime
    food_description: Optional[str] = None
    notes: Optional[str] = None


FeedingEntry = Annotated[
    Union[BreastfeedingEntry, LiquidFeedingEntry, FoodFeedingEntry],
    Field(discriminator="feeding_type"),
]


class SimpleDiaperEntry(BaseModel):
    """Diaper events that never carry a consistency."""

    diaper_type: Literal["gas", "urine", "mixed", "liquid"]
    baby_id: str
    recorded_at: datetime
    smell_intensity: Optional[int] = Field(default=None, ge=1, le=5)
    notes: Optional[str] = None


class SolidDiaperEntry(BaseModel):
    diaper_type: Literal["solid"]
    baby_id: str
    recorded_at: datetime
    consistency: StoolConsistency
    color: Optional[StoolColor] = None
    smell_intensity: Optional[int] = Field(default=None, ge=1, le=5)
    notes: Optional[str] = None


DiaperEntry = Annotated[
    Union[SimpleDiaperEntry, SolidDiaperEntry],
    Field(discriminator="diaper_type"),
]


class GrowthEntry(BaseModel):
    baby_id: str
    weight_grams: int = Field(..., gt=0)
    height_cm: Optional[float] = Field(default=None, gt=0)
    head_circumference_cm: Optional[float] = Field(default=None, gt=0)
    measurement_date: date
    measurement_location: Optional[str] = None
    notes: Optional[str] = None


class BabyPayload(BaseModel):
    name: str = Field(..., min_length=1)
    birth_date: date
    gender: Optional[str] = None


class CaregiverPayload(BaseModel):
    name: str = Field(..., min_length=1)
    phone: str = Field(..., min_length=1)
    email: Optional[str] = None
    relationship: Optional[str] = None


class ActivityRecord(BaseModel):
    """A record row as cached by a page, with display fields filled in."""

    model_config = ConfigDict(extra="allow")

    id: str
    baby_id: str
    caregiver_id: Optional[str] = None
    baby_name: str = "Unknown baby"
    caregiver_name: str = "Unknown caregiver"
    in_progress: bool = False
    duration_minutes: Optional[int] = None


class SignInRequest(BaseModel):
    phone: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class SignUpRequest(BaseModel):
    phone: str = Field(..., min_length=1)
    password: str = Field(..., min_length=6)
    name: str = Field(..., min_length=1)
    family_name: str = Field(..., min_length=1)


class SessionState(BaseModel):
    loading: bool
    user_id: Optional[str] = None
    user_email: Optional[str] = None
    family: Optional[Family] = None
    caregiver: Optional[Caregiver] = None


class StopActivityRequest(BaseModel):
    breast_side: Optional[BreastSide] = None


class QuickDiaperRequest(BaseModel):
    diaper_type: DiaperType


class LoaderState(str, Enum):
    AWAITING_AUTH = "awaiting_auth"
    AWAITING_TENANT = "awaiting_tenant"
    LOADING = "loading"
    READY = "ready"
    FAILED = "failed"
    IDLE = "idle"


class LoaderSnapshot(BaseModel):
    state: LoaderState
    loading: bool
    error: str = ""
    retry_count: int = 0
    is_retrying: bool = False


class PageResult(BaseModel):
    page: str
    data: Dict[str, Any] = Field(default_factory=dict)
    loader: LoaderSnapshot


class ChartSeries(BaseModel):
    labels: List[str]
    counts: List[int]
