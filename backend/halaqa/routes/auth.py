"""
Login routes - issue signed bearer tokens for students and the admin.
"""

from fastapi import APIRouter, Depends

from halaqa.auth import ROLE_ADMIN, ROLE_STUDENT, check_admin_password, create_access_token
from halaqa.errors import AuthenticationFailed
from halaqa.logging_config import get_logger, log_with_context
from halaqa.models.student import AdminLogin, StudentLogin
from halaqa.services.students import StudentService, get_student_service

router = APIRouter()
logger = get_logger("auth")


@router.post("/api/student/login")
def student_login(request: StudentLogin, service: StudentService = Depends(get_student_service)):
    """Log a student in by name and password."""
    try:
        student = service.authenticate(request.studentName, request.password)
    except AuthenticationFailed:
        log_with_context(logger, "WARNING", "Student login failed",
            extra_data={"student_name": request.studentName.strip()})
        raise

    token = create_access_token(student["id"], ROLE_STUDENT)
    log_with_context(logger, "INFO", "Student logged in", student_id=student["id"])
    return {"success": True, "token": token, "studentId": student["id"]}


@router.post("/api/admin/login")
def admin_login(request: AdminLogin):
    if not check_admin_password(request.password):
        log_with_context(logger, "WARNING", "Admin login failed")
        raise AuthenticationFailed("Wrong admin password")

    log_with_context(logger, "INFO", "Admin logged in")
    return {"success": True, "token": create_access_token(ROLE_ADMIN, ROLE_ADMIN)}
