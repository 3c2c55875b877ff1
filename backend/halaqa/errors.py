"""
Error taxonomy shared by the store, the services and the HTTP layer.

Services raise these; ``halaqa.main`` turns them into JSON responses with
the status code each class carries.
"""


class HalaqaError(Exception):
    """Base class for every error the API reports to callers."""

    status_code = 500

    def __init__(self, message: str = None):
        self.message = message or self.__class__.__doc__
        super().__init__(self.message)


class InvalidInput(HalaqaError):
    """The request payload is missing a field or carries a bad value."""

    status_code = 400

    def __init__(self, message: str = None, field: str = None):
        self.field = field
        super().__init__(message)


class UploadRejected(HalaqaError):
    """The uploaded photo could not be accepted."""

    status_code = 400


class AuthenticationFailed(HalaqaError):
    """Missing, malformed or invalid credentials."""

    status_code = 401


class PermissionDenied(HalaqaError):
    """The caller is authenticated but not allowed to do this."""

    status_code = 403


class StudentNotFound(HalaqaError):
    """Student not found."""

    status_code = 404

    def __init__(self, student_id: str):
        self.student_id = student_id
        super().__init__("Student {} not found".format(student_id))


class StorageError(HalaqaError):
    """The records document could not be written or verified."""

    status_code = 500

    def __init__(self, message: str = None, written: bool = False):
        # True once the new document has replaced the file on disk
        self.written = written
        super().__init__(message)
