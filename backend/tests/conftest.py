import pytest
from fastapi.testclient import TestClient

from halaqa.auth import ROLE_ADMIN, ROLE_STUDENT, create_access_token
from halaqa.main import app
from halaqa.services.photos import PhotoStorage, get_photo_storage
from halaqa.services.students import StudentService
from halaqa.store import RecordStore, get_store


@pytest.fixture
def store(tmp_path):
    return RecordStore(tmp_path / "data" / "students.json")


@pytest.fixture
def photos(tmp_path):
    return PhotoStorage(tmp_path / "uploads", max_bytes=1024)


@pytest.fixture
def service(store, photos):
    return StudentService(store, photos, session_cap=8)


@pytest.fixture
def client(store, photos):
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_photo_storage] = lambda: photos
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def admin_headers():
    return {"Authorization": "Bearer " + create_access_token(ROLE_ADMIN, ROLE_ADMIN)}


@pytest.fixture
def student_headers():
    def _headers(student_id):
        return {"Authorization": "Bearer " + create_access_token(student_id, ROLE_STUDENT)}
    return _headers


@pytest.fixture
def new_student():
    """Minimal valid create payload."""
    return {"name": "A", "password": "x", "currentSurah": "Al-Fatiha"}
