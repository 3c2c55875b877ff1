"""
Student model - field vocabulary and payload schemas for student records.

Records are persisted as plain dicts with camelCase keys (the admin and
portal pages read those keys directly). The pydantic models below validate
what callers send; ``StudentFields.model_dump(exclude_unset=True)`` yields
exactly the fields a request carried, which is what merge-by-presence needs.
"""

import enum
from typing import List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Weekday(str, enum.Enum):
    """Days a session can be scheduled on."""
    SUNDAY = "الأحد"
    MONDAY = "الإثنين"
    TUESDAY = "الثلاثاء"
    WEDNESDAY = "الأربعاء"
    THURSDAY = "الخميس"
    FRIDAY = "الجمعة"
    SATURDAY = "السبت"


class Evaluation(str, enum.Enum):
    """Grade labels, best first."""
    EXCELLENT = "ممتاز"
    VERY_GOOD = "جيد جداً"
    GOOD = "جيد"
    ACCEPTABLE = "مقبول"
    WEAK = "ضعيف"
    NEW = "جديد"


class PaymentType(str, enum.Enum):
    PER_SESSION = "perSession"
    MONTHLY = "monthly"
    YEARLY = "yearly"


TOP_EVALUATION = Evaluation.EXCELLENT
DEFAULT_EVALUATION = Evaluation.NEW
DEFAULT_PAYMENT_TYPE = PaymentType.PER_SESSION

# Fields a status-only update may carry
STATUS_FIELDS = frozenset({"currentMonthPaid", "sessionsAttended"})

# Fields a full edit may overwrite (photo is handled separately)
EDITABLE_FIELDS = (
    "name", "password", "currentSurah", "lastSurah", "schedule",
    "evaluation", "paymentType", "notes",
)

# Defaults for keys missing from older records
RECORD_DEFAULTS = {
    "currentSurah": "",
    "lastSurah": "",
    "schedule": [],
    "evaluation": "",
    "sessionsAttended": 0,
    "paymentType": DEFAULT_PAYMENT_TYPE.value,
    "currentMonthPaid": False,
    "lastPaymentDate": None,
    "notes": "",
    "photo": None,
}


class ScheduleEntry(BaseModel):
    """One weekly session slot."""
    day: Weekday
    time: str = Field(..., pattern=r"^([01]\d|2[0-3]):[0-5]\d$", description="HH:MM, 24h")


class StudentFields(BaseModel):
    """
    Every client-writable student field, all optional.

    Used for both create (after the required-field check) and update.
    Unknown keys are ignored so that whole HTML forms can be posted.
    """
    model_config = ConfigDict(extra="ignore", use_enum_values=True)

    name: Optional[str] = None
    password: Optional[str] = None
    currentSurah: Optional[str] = None
    lastSurah: Optional[str] = None
    schedule: Optional[List[ScheduleEntry]] = None
    evaluation: Optional[Union[Evaluation, Literal[""]]] = None
    paymentType: Optional[PaymentType] = None
    notes: Optional[str] = None
    currentMonthPaid: Optional[bool] = None
    sessionsAttended: Optional[int] = Field(None, ge=0)

    @field_validator("name", "currentSurah")
    @classmethod
    def _not_blank(cls, value):
        if value is not None and not value.strip():
            raise ValueError("must not be empty")
        return value.strip() if value is not None else value


class RoutinePayload(BaseModel):
    """Body of POST /api/routine."""
    routine: str = ""


class StudentLogin(BaseModel):
    """Body of POST /api/student/login."""
    studentName: str
    password: str


class AdminLogin(BaseModel):
    """Body of POST /api/admin/login."""
    password: str


def public_view(record: dict) -> dict:
    """Outbound form of a stored record: defaults filled, password removed."""
    view = {**RECORD_DEFAULTS, **record}
    view.pop("password", None)
    return view


def outstanding_view(record: dict) -> dict:
    """Projection used by the outstanding-students board."""
    return {
        "id": record.get("id"),
        "name": record.get("name"),
        "currentSurah": record.get("currentSurah", ""),
        "photo": record.get("photo"),
    }
