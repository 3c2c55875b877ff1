"""
Student Service - entity rules and update semantics over the record store.

Implements:
1. Create with required-field checks and default state
2. Partial updates by merge-by-presence, in one of two modes:
   - status-only (currentMonthPaid / sessionsAttended)
   - full edit (profile fields, plan change, photo replacement)
3. Session attendance with wraparound at the session cap
4. Outstanding-students projection and the shared routine note

Every mutation is a read-modify-write inside ``RecordStore.transaction()``,
so concurrent requests in this process are serialized on the store lock.
"""

import hmac
import json
import os
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import Depends
from pydantic import ValidationError

from halaqa.errors import AuthenticationFailed, InvalidInput, StorageError, StudentNotFound
from halaqa.logging_config import get_logger, log_with_context
from halaqa.models.student import (
    DEFAULT_EVALUATION, DEFAULT_PAYMENT_TYPE, EDITABLE_FIELDS, STATUS_FIELDS,
    TOP_EVALUATION, StudentFields, outstanding_view, public_view,
)
from halaqa.services.photos import PhotoStorage, get_photo_storage
from halaqa.store import RecordStore, get_store

# Channel logger for student operations
logger = get_logger("students")

# Sessions per billing period; attendance wraps to 0 after this
SESSION_CAP = int(os.getenv("SESSION_CAP", "8"))

REQUIRED_FIELDS = ("name", "password", "currentSurah")


def utc_now() -> str:
    """Current time as an ISO 8601 UTC string."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _drop_nulls(payload: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in (payload or {}).items() if v is not None}


def _parse_schedule(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Accept ``schedule`` as a JSON string (multipart forms) as well as a list."""
    schedule = payload.get("schedule")
    if isinstance(schedule, str):
        try:
            payload = {**payload, "schedule": json.loads(schedule) if schedule.strip() else []}
        except ValueError:
            raise InvalidInput("Invalid schedule format", field="schedule")
    return payload


def _validate(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Validate ``payload`` and return only the fields it actually carried."""
    try:
        fields = StudentFields.model_validate(payload)
    except ValidationError as e:
        error = e.errors()[0]
        field = ".".join(str(part) for part in error["loc"]) if error.get("loc") else None
        raise InvalidInput("Invalid value for {}: {}".format(field, error["msg"]), field=field)
    return fields.model_dump(mode="json", exclude_unset=True)


class StudentService:
    """Student operations backed by a ``RecordStore``."""

    def __init__(self, store: RecordStore, photos: PhotoStorage, session_cap: int = SESSION_CAP):
        self.store = store
        self.photos = photos
        self.session_cap = session_cap

    # ── Reads ────────────────────────────────────────────────

    def list(self) -> List[dict]:
        document = self.store.load()
        return [public_view(s) for s in document["students"]]

    def get(self, student_id: str) -> dict:
        document = self.store.load()
        return public_view(self._find(document, student_id))

    def list_outstanding(self) -> List[dict]:
        """Students whose evaluation is the top grade."""
        document = self.store.load()
        return [
            outstanding_view(s) for s in document["students"]
            if s.get("evaluation") == TOP_EVALUATION.value
        ]

    def get_routine(self) -> str:
        return self.store.load().get("routine", "")

    # ── Mutations ────────────────────────────────────────────

    def create(self, fields: Dict[str, Any], photo: Optional[str] = None) -> dict:
        """
        Add a new student.

        Args:
            fields: Submitted fields; name, password and currentSurah are required.
                An evaluation, if present, is ignored.
            photo: URL path of an already stored photo, if one was uploaded

        Returns:
            The created record without its password
        """
        try:
            record = self._create(_drop_nulls(fields), photo)
        except Exception as e:
            self._discard_upload(photo, e)
            raise

        log_with_context(logger, "INFO", "Student created",
            student_id=record["id"],
            extra_data={"has_photo": photo is not None})
        return public_view(record)

    def _create(self, fields: Dict[str, Any], photo: Optional[str]) -> dict:
        for field in REQUIRED_FIELDS:
            value = fields.get(field)
            if not isinstance(value, str) or not value.strip():
                raise InvalidInput("{} is required".format(field), field=field)

        # New students always start on the default grade; it is set by a later edit
        fields = {k: v for k, v in fields.items() if k != "evaluation"}
        values = _validate(_parse_schedule(fields))

        with self.store.transaction() as document:
            record = {
                "id": self._new_id(document),
                "name": values["name"],
                "password": values["password"],
                "currentSurah": values["currentSurah"],
                "lastSurah": values.get("lastSurah", ""),
                "schedule": values.get("schedule", []),
                "evaluation": DEFAULT_EVALUATION.value,
                "sessionsAttended": 0,
                "paymentType": values.get("paymentType", DEFAULT_PAYMENT_TYPE.value),
                "notes": values.get("notes", ""),
                "photo": photo,
                "currentMonthPaid": False,
                "lastPaymentDate": None,
                "createdAt": utc_now(),
            }
            document["students"].append(record)
        return record

    def update(self, student_id: str, payload: Dict[str, Any], photo: Optional[str] = None) -> dict:
        """
        Apply a partial update to a student.

        A payload made only of currentMonthPaid / sessionsAttended is a
        status-only update; anything else is a full edit. Fields absent from
        the payload keep their stored values.
        """
        payload = _drop_nulls(payload)
        status_only = bool(payload) and photo is None and set(payload) <= STATUS_FIELDS

        try:
            if status_only:
                values = self._status_values(payload)
            else:
                values = self._edit_values(payload)

            with self.store.transaction() as document:
                record = self._find(document, student_id)
                if status_only:
                    self._apply_status(record, values)
                    old_photo = None
                else:
                    old_photo = self._apply_edit(record, values, photo)
        except Exception as e:
            self._discard_upload(photo, e)
            raise

        if old_photo and old_photo != photo:
            self.photos.delete(old_photo)

        log_with_context(logger, "INFO",
            "Student updated ({})".format("status" if status_only else "edit"),
            student_id=student_id,
            extra_data={"fields": sorted(values), "photo_replaced": photo is not None})
        return public_view(record)

    def record_session(self, student_id: str) -> dict:
        """
        Count one attended session.

        At the cap the counter wraps to 0 and the current month's payment
        is cleared, which opens the next billing period.
        """
        with self.store.transaction() as document:
            record = self._find(document, student_id)
            current = int(record.get("sessionsAttended") or 0)
            wrapped = current >= self.session_cap
            if wrapped:
                record["sessionsAttended"] = 0
                record["currentMonthPaid"] = False
                record["lastPaymentDate"] = None
            else:
                record["sessionsAttended"] = current + 1

        log_with_context(logger, "INFO", "Session recorded",
            student_id=student_id,
            extra_data={"sessions_attended": record["sessionsAttended"], "wrapped": wrapped})
        return public_view(record)

    def delete(self, student_id: str) -> None:
        with self.store.transaction() as document:
            record = self._find(document, student_id)
            document["students"] = [s for s in document["students"] if s.get("id") != student_id]

        self.photos.delete(record.get("photo"))
        log_with_context(logger, "INFO", "Student deleted", student_id=student_id)

    def set_routine(self, text: str) -> str:
        with self.store.transaction() as document:
            document["routine"] = text or ""
        log_with_context(logger, "INFO", "Routine note updated",
            extra_data={"length": len(document["routine"])})
        return document["routine"]

    # ── Authentication ───────────────────────────────────────

    def authenticate(self, name: str, password: str) -> dict:
        """Return the student matching ``name`` (case-insensitive) and ``password``."""
        wanted = (name or "").strip().lower()
        for record in self.store.load()["students"]:
            # Legacy documents may hold numbers here
            if str(record.get("name") or "").strip().lower() != wanted:
                continue
            stored = record.get("password")
            if stored is None or stored == "":
                continue
            if hmac.compare_digest(str(stored).encode("utf-8"), (password or "").encode("utf-8")):
                return public_view(record)
        raise AuthenticationFailed("Invalid student name or password")

    # ── Helpers ──────────────────────────────────────────────

    def _discard_upload(self, photo: Optional[str], error: Exception) -> None:
        """Remove a just-stored photo unless the failed write may already reference it."""
        if isinstance(error, StorageError) and error.written:
            log_with_context(logger, "WARNING", "Keeping uploaded photo after an unverified write",
                extra_data={"photo": photo})
            return
        self.photos.delete(photo)

    @staticmethod
    def _find(document: dict, student_id: str) -> dict:
        for record in document["students"]:
            if record.get("id") == student_id:
                return record
        raise StudentNotFound(student_id)

    @staticmethod
    def _new_id(document: dict) -> str:
        """Epoch milliseconds, bumped until unused."""
        taken = {s.get("id") for s in document["students"]}
        candidate = int(time.time() * 1000)
        while str(candidate) in taken:
            candidate += 1
        return str(candidate)

    def _status_values(self, payload: Dict[str, Any]) -> dict:
        values = _validate(payload)
        sessions = values.get("sessionsAttended")
        if sessions is not None and sessions > self.session_cap:
            raise InvalidInput(
                "sessionsAttended must be between 0 and {}".format(self.session_cap),
                field="sessionsAttended")
        return values

    @staticmethod
    def _edit_values(payload: Dict[str, Any]) -> dict:
        edit = {k: v for k, v in payload.items() if k in EDITABLE_FIELDS}
        # Blank password or plan selection keeps the current one
        for key in ("password", "paymentType"):
            if isinstance(edit.get(key), str) and not edit[key].strip():
                del edit[key]
        return _validate(_parse_schedule(edit))

    @staticmethod
    def _apply_status(record: dict, values: dict) -> None:
        if "currentMonthPaid" in values:
            paid = values["currentMonthPaid"]
            record["currentMonthPaid"] = paid
            record["lastPaymentDate"] = utc_now() if paid else None
        if "sessionsAttended" in values:
            record["sessionsAttended"] = values["sessionsAttended"]

    @staticmethod
    def _apply_edit(record: dict, values: dict, photo: Optional[str]) -> Optional[str]:
        """Merge a full edit into ``record``; return the photo it replaced, if any."""
        previous_plan = record.get("paymentType", DEFAULT_PAYMENT_TYPE.value)
        for key, value in values.items():
            record[key] = value

        if "paymentType" in values and values["paymentType"] != previous_plan:
            record["currentMonthPaid"] = False
            record["lastPaymentDate"] = None
            record["sessionsAttended"] = 0

        old_photo = None
        if photo is not None:
            old_photo = record.get("photo")
            record["photo"] = photo
        return old_photo


def get_student_service(
    store: RecordStore = Depends(get_store),
    photos: PhotoStorage = Depends(get_photo_storage),
) -> StudentService:
    """FastAPI dependency that builds the service over the injected store."""
    return StudentService(store, photos)
