"""
Routine API routes - the shared daily routine note.
"""

from fastapi import APIRouter, Depends

from halaqa.auth import require_admin
from halaqa.models.student import RoutinePayload
from halaqa.services.students import StudentService, get_student_service

router = APIRouter()


@router.get("/api/routine")
def get_routine(service: StudentService = Depends(get_student_service)):
    return {"routine": service.get_routine()}


@router.post("/api/routine")
def set_routine(
    request: RoutinePayload,
    _admin: dict = Depends(require_admin),
    service: StudentService = Depends(get_student_service),
):
    """Replace the routine note."""
    return {"routine": service.set_routine(request.routine)}
