import jwt

from halaqa import auth

PNG = b"\x89PNG\r\n\x1a\n fake image"


def _create(client, headers, **fields):
    data = {"name": "A", "password": "x", "currentSurah": "Al-Fatiha"}
    data.update(fields)
    return client.post("/api/students", data=data, headers=headers)


# ── auth ─────────────────────────────────────────────────────

def test_admin_routes_require_token(client):
    resp = client.get("/api/students")
    assert resp.status_code == 401
    assert resp.headers["WWW-Authenticate"] == "Bearer"


def test_unsigned_or_foreign_tokens_are_rejected(client):
    forged = jwt.encode({"sub": "admin", "role": "admin"}, "someone-elses-secret", algorithm="HS256")

    for token in ["token-admin", forged]:
        resp = client.get("/api/students", headers={"Authorization": "Bearer " + token})
        assert resp.status_code == 401


def test_student_token_cannot_use_admin_routes(client, student_headers):
    assert client.get("/api/students", headers=student_headers("1")).status_code == 403


def test_admin_login(client):
    assert client.post("/api/admin/login", json={"password": "wrong"}).status_code == 401

    resp = client.post("/api/admin/login", json={"password": auth.ADMIN_PASSWORD})
    assert resp.status_code == 200
    token = resp.json()["token"]
    assert client.get("/api/students", headers={"Authorization": "Bearer " + token}).status_code == 200


def test_student_login_and_own_record(client, admin_headers):
    mine = _create(client, admin_headers, name="Yusuf").json()["student"]
    other = _create(client, admin_headers, name="Maryam").json()["student"]

    assert client.post("/api/student/login", json={"studentName": "yusuf", "password": "bad"}).status_code == 401
    resp = client.post("/api/student/login", json={"studentName": " yusuf ", "password": "x"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["studentId"] == mine["id"]

    headers = {"Authorization": "Bearer " + body["token"]}
    own = client.get(f"/api/students/{mine['id']}", headers=headers)
    assert own.status_code == 200
    assert "password" not in own.json()
    assert client.get(f"/api/students/{other['id']}", headers=headers).status_code == 403


def test_student_login_with_legacy_numeric_password(client, store):
    store.save({"students": [{"id": "1", "name": "Old", "password": 1234}], "routine": ""})

    assert client.post("/api/student/login", json={"studentName": "Old", "password": "bad"}).status_code == 401
    resp = client.post("/api/student/login", json={"studentName": "Old", "password": "1234"})
    assert resp.status_code == 200
    assert resp.json()["studentId"] == "1"


# ── students CRUD ────────────────────────────────────────────

def test_create_and_payment_scenario(client, admin_headers):
    resp = _create(client, admin_headers)
    assert resp.status_code == 201
    student = resp.json()["student"]
    assert student["sessionsAttended"] == 0
    assert student["evaluation"] == "جديد"
    assert student["currentMonthPaid"] is False
    assert "password" not in student
    url = f"/api/students/{student['id']}"

    paid = client.put(url, json={"currentMonthPaid": True}, headers=admin_headers).json()
    assert paid["lastPaymentDate"]

    client.put(url, json={"sessionsAttended": 8}, headers=admin_headers)
    reset = client.put(url, json={"sessionsAttended": 0, "currentMonthPaid": False}, headers=admin_headers).json()
    assert reset["currentMonthPaid"] is False
    assert reset["lastPaymentDate"] is None


def test_create_cannot_set_evaluation(client, admin_headers):
    resp = _create(client, admin_headers, evaluation="ممتاز")

    assert resp.status_code == 201
    assert resp.json()["student"]["evaluation"] == "جديد"
    assert client.get("/api/outstanding-students").json() == []


def test_create_missing_field_is_400(client, admin_headers):
    resp = client.post("/api/students", data={"name": "A", "password": "x"}, headers=admin_headers)

    assert resp.status_code == 400
    assert "currentSurah" in resp.json()["detail"]
    assert client.get("/api/students", headers=admin_headers).json() == []


def test_create_with_schedule_and_photo(client, admin_headers, photos):
    resp = client.post(
        "/api/students",
        data={
            "name": "A", "password": "x", "currentSurah": "Al-Fatiha",
            "schedule": '[{"day": "الإثنين", "time": "18:00"}]',
            "paymentType": "monthly",
        },
        files={"photo": ("me.png", PNG, "image/png")},
        headers=admin_headers,
    )

    assert resp.status_code == 201
    student = resp.json()["student"]
    assert student["schedule"] == [{"day": "الإثنين", "time": "18:00"}]
    assert student["paymentType"] == "monthly"
    assert photos.resolve(student["photo"]).read_bytes() == PNG


def test_create_rejects_disallowed_upload(client, admin_headers):
    resp = client.post(
        "/api/students",
        data={"name": "A", "password": "x", "currentSurah": "Al-Fatiha"},
        files={"photo": ("evil.exe", b"MZ", "application/octet-stream")},
        headers=admin_headers,
    )

    assert resp.status_code == 400
    assert client.get("/api/students", headers=admin_headers).json() == []


def test_list_and_get_hide_passwords(client, admin_headers):
    student_id = _create(client, admin_headers).json()["student"]["id"]

    listed = client.get("/api/students", headers=admin_headers).json()
    single = client.get(f"/api/students/{student_id}", headers=admin_headers).json()

    assert len(listed) == 1
    assert all("password" not in s for s in listed)
    assert "password" not in single


def test_get_unknown_student_is_404(client, admin_headers):
    assert client.get("/api/students/nope", headers=admin_headers).status_code == 404


def test_form_edit_with_repeated_schedule_fields(client, admin_headers):
    student_id = _create(client, admin_headers, notes="keep").json()["student"]["id"]

    resp = client.put(
        f"/api/students/{student_id}",
        data={"currentSurah": "Al-Mulk", "day": ["الأحد", "الخميس"], "time": ["16:00", "17:15"], "studentId": student_id},
        headers=admin_headers,
    )

    assert resp.status_code == 200
    student = resp.json()
    assert student["currentSurah"] == "Al-Mulk"
    assert student["schedule"] == [{"day": "الأحد", "time": "16:00"}, {"day": "الخميس", "time": "17:15"}]
    assert student["notes"] == "keep"


def test_form_edit_replaces_photo(client, admin_headers, photos):
    created = client.post(
        "/api/students",
        data={"name": "A", "password": "x", "currentSurah": "Al-Fatiha"},
        files={"photo": ("old.png", PNG, "image/png")},
        headers=admin_headers,
    ).json()["student"]
    old_path = photos.resolve(created["photo"])

    resp = client.put(
        f"/api/students/{created['id']}",
        data={"evaluation": "ممتاز"},
        files={"photo": ("new.jpg", PNG, "image/jpeg")},
        headers=admin_headers,
    )

    assert resp.status_code == 200
    updated = resp.json()
    assert updated["photo"] != created["photo"]
    assert updated["photo"].endswith(".jpg")
    assert not old_path.exists()
    assert photos.resolve(updated["photo"]).exists()


def test_plan_change_over_http_resets_payment(client, admin_headers):
    student_id = _create(client, admin_headers, paymentType="monthly").json()["student"]["id"]
    url = f"/api/students/{student_id}"
    client.put(url, json={"currentMonthPaid": True, "sessionsAttended": 6}, headers=admin_headers)

    student = client.put(url, json={"paymentType": "perSession", "currentMonthPaid": True},
                         headers=admin_headers).json()

    assert student["sessionsAttended"] == 0
    assert student["currentMonthPaid"] is False
    assert student["lastPaymentDate"] is None


def test_update_rejects_out_of_range_sessions(client, admin_headers):
    student_id = _create(client, admin_headers).json()["student"]["id"]

    resp = client.put(f"/api/students/{student_id}", json={"sessionsAttended": 12}, headers=admin_headers)

    assert resp.status_code == 400


def test_update_unknown_student_is_404(client, admin_headers):
    resp = client.put("/api/students/nope", json={"currentMonthPaid": True}, headers=admin_headers)
    assert resp.status_code == 404


def test_update_rejects_non_object_json(client, admin_headers):
    student_id = _create(client, admin_headers).json()["student"]["id"]

    resp = client.put(f"/api/students/{student_id}", json=[1, 2], headers=admin_headers)

    assert resp.status_code == 400


def test_record_session_endpoint(client, admin_headers):
    student_id = _create(client, admin_headers).json()["student"]["id"]
    url = f"/api/students/{student_id}/sessions"

    for _ in range(8):
        resp = client.post(url, headers=admin_headers)
    assert resp.json()["sessionsAttended"] == 8

    assert client.post(url, headers=admin_headers).json()["sessionsAttended"] == 0


def test_delete(client, admin_headers):
    student_id = _create(client, admin_headers).json()["student"]["id"]

    assert client.delete("/api/students/nope", headers=admin_headers).status_code == 404
    assert len(client.get("/api/students", headers=admin_headers).json()) == 1

    assert client.delete(f"/api/students/{student_id}", headers=admin_headers).status_code == 200
    assert client.get("/api/students", headers=admin_headers).json() == []


# ── public boards ────────────────────────────────────────────

def test_outstanding_students_is_public(client, admin_headers):
    top = _create(client, admin_headers, name="Top").json()["student"]
    _create(client, admin_headers, name="Other")
    client.put(f"/api/students/{top['id']}", json={"evaluation": "ممتاز"}, headers=admin_headers)

    resp = client.get("/api/outstanding-students")

    assert resp.status_code == 200
    assert [s["name"] for s in resp.json()] == ["Top"]
    assert set(resp.json()[0]) == {"id", "name", "currentSurah", "photo"}


def test_routine(client, admin_headers):
    assert client.get("/api/routine").json() == {"routine": ""}
    assert client.post("/api/routine", json={"routine": "ورد"}).status_code == 401

    resp = client.post("/api/routine", json={"routine": "ورد"}, headers=admin_headers)

    assert resp.json() == {"routine": "ورد"}
    assert client.get("/api/routine").json() == {"routine": "ورد"}


def test_health_and_request_id(client):
    resp = client.get("/health")

    assert resp.json()["status"] == "healthy"
    assert resp.headers["X-Request-ID"]
