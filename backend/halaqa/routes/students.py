"""
Students API routes - CRUD and actions on student records.

Provides endpoints for:
- Listing students and viewing one student
- Creating a student (multipart, optional photo)
- Updating a student (JSON status update, or JSON/multipart full edit)
- Recording an attended session
- Deleting a student
- The outstanding-students board
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile
from starlette.concurrency import run_in_threadpool
from starlette.datastructures import UploadFile as StarletteUploadFile

from halaqa.auth import ROLE_ADMIN, get_current_principal, require_admin
from halaqa.errors import InvalidInput, PermissionDenied
from halaqa.logging_config import get_logger, log_with_context
from halaqa.services.photos import PhotoStorage, get_photo_storage
from halaqa.services.students import StudentService, get_student_service

router = APIRouter()
logger = get_logger("http")

# Form keys that are not student fields
_FORM_CONTROL_KEYS = {"photo", "day", "time", "studentId"}


def _has_file(upload) -> bool:
    """Browsers send an empty file part when no photo was picked."""
    return isinstance(upload, StarletteUploadFile) and bool(upload.filename)


def _schedule_from_form(form) -> Optional[list]:
    """Pair repeated day/time form fields into schedule entries."""
    days = form.getlist("day")
    if not days:
        return None
    times = form.getlist("time")
    return [
        {"day": day, "time": times[i] if i < len(times) else ""}
        for i, day in enumerate(days)
    ]


async def _read_update_body(request: Request):
    """Return (payload, upload) from a JSON or form-encoded update request."""
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("application/json"):
        try:
            payload = await request.json()
        except ValueError:
            raise InvalidInput("Request body is not valid JSON")
        if not isinstance(payload, dict):
            raise InvalidInput("Request body must be a JSON object")
        return payload, None

    form = await request.form()
    payload: Dict[str, Any] = {
        key: form.get(key) for key in form.keys() if key not in _FORM_CONTROL_KEYS
    }
    schedule = _schedule_from_form(form)
    if schedule:
        payload["schedule"] = schedule
    upload = form.get("photo")
    return payload, upload if _has_file(upload) else None


@router.get("/api/students")
def list_students(
    _admin: dict = Depends(require_admin),
    service: StudentService = Depends(get_student_service),
):
    """List every student (passwords are never included)."""
    students = service.list()
    log_with_context(logger, "INFO", "Listed {} students".format(len(students)))
    return students


@router.get("/api/students/{student_id}")
def get_student(
    student_id: str,
    principal: dict = Depends(get_current_principal),
    service: StudentService = Depends(get_student_service),
):
    """One student; admins may read anyone, students only themselves."""
    if principal["role"] != ROLE_ADMIN and principal["sub"] != student_id:
        raise PermissionDenied("You can only view your own record")
    return service.get(student_id)


@router.post("/api/students", status_code=201)
def create_student(
    name: Optional[str] = Form(None),
    password: Optional[str] = Form(None),
    currentSurah: Optional[str] = Form(None),
    lastSurah: Optional[str] = Form(None),
    schedule: Optional[str] = Form(None, description="JSON list of {day, time}"),
    paymentType: Optional[str] = Form(None),
    notes: Optional[str] = Form(None),
    photo: Optional[UploadFile] = File(None),
    _admin: dict = Depends(require_admin),
    service: StudentService = Depends(get_student_service),
    photos: PhotoStorage = Depends(get_photo_storage),
):
    """Add a student from the admin form."""
    fields = {
        "name": name,
        "password": password,
        "currentSurah": currentSurah,
        "lastSurah": lastSurah,
        "schedule": schedule,
        "paymentType": paymentType or None,
        "notes": notes,
    }
    stored_photo = photos.save(photo) if _has_file(photo) else None
    student = service.create(fields, stored_photo)
    return {"message": "Student added", "student": student}


@router.put("/api/students/{student_id}")
async def update_student(
    student_id: str,
    request: Request,
    _admin: dict = Depends(require_admin),
    service: StudentService = Depends(get_student_service),
    photos: PhotoStorage = Depends(get_photo_storage),
):
    """
    Update a student.

    A JSON body with only currentMonthPaid / sessionsAttended updates the
    payment and attendance status. Any other JSON or multipart body is a
    full edit; only the fields present are changed.
    """
    payload, upload = await _read_update_body(request)
    stored_photo = await run_in_threadpool(photos.save, upload) if upload is not None else None
    return await run_in_threadpool(service.update, student_id, payload, stored_photo)


@router.post("/api/students/{student_id}/sessions")
def record_session(
    student_id: str,
    _admin: dict = Depends(require_admin),
    service: StudentService = Depends(get_student_service),
):
    """Count one attended session, wrapping at the session cap."""
    return service.record_session(student_id)


@router.delete("/api/students/{student_id}")
def delete_student(
    student_id: str,
    _admin: dict = Depends(require_admin),
    service: StudentService = Depends(get_student_service),
):
    service.delete(student_id)
    return {"message": "Student deleted"}


@router.get("/api/outstanding-students")
def list_outstanding_students(service: StudentService = Depends(get_student_service)):
    """Top-graded students for the public board."""
    return service.list_outstanding()
