"""
Data Loader Script - Seeds a running Halaqa Admin instance with students.

Reads a seed file (default: sample_students.json next to this script) of the
form {"routine": "...", "students": [...]}, logs in as admin and creates
each student through the API.

Usage:
    python load_data.py                              # Uses default URL
    python load_data.py http://localhost:8000         # Custom API URL
    python load_data.py http://localhost:8000 my_students.json

The admin password is taken from ADMIN_PASSWORD (default: admin).
"""

import json
import os
import sys

import httpx


def admin_token(client: httpx.Client, api_url: str) -> str:
    resp = client.post(f"{api_url}/api/admin/login",
                       json={"password": os.getenv("ADMIN_PASSWORD", "admin")})
    resp.raise_for_status()
    return resp.json()["token"]


def create_student(client: httpx.Client, api_url: str, token: str, student: dict) -> httpx.Response:
    """POST one student as the admin form would."""
    form = {
        "name": student.get("name", ""),
        "password": student.get("password", ""),
        "currentSurah": student.get("currentSurah", ""),
        "lastSurah": student.get("lastSurah", ""),
        "schedule": json.dumps(student.get("schedule", []), ensure_ascii=False),
        "paymentType": student.get("paymentType", "perSession"),
        "notes": student.get("notes", ""),
    }
    return client.post(
        f"{api_url}/api/students",
        data=form,
        headers={"Authorization": f"Bearer {token}"},
    )


def grade_student(client: httpx.Client, api_url: str, token: str, student_id: str, evaluation: str) -> httpx.Response:
    """Set the evaluation with a full edit; creation always uses the default grade."""
    return client.put(
        f"{api_url}/api/students/{student_id}",
        json={"evaluation": evaluation},
        headers={"Authorization": f"Bearer {token}"},
    )


def main():
    api_url = sys.argv[1] if len(sys.argv) > 1 else os.getenv("API_URL", "http://localhost:8000")
    default_file = os.path.join(os.path.dirname(os.path.abspath(__file__)), "sample_students.json")
    data_file = sys.argv[2] if len(sys.argv) > 2 else default_file

    if not os.path.exists(data_file):
        print(f"Error: Could not find {data_file}")
        sys.exit(1)

    print(f"Loading data from: {data_file}")
    with open(data_file, "r", encoding="utf-8") as f:
        seed = json.load(f)
    students = seed.get("students", [])

    print(f"Found {len(students)} students to create")
    print(f"Sending to: {api_url}")
    print()

    created, failed = 0, 0
    with httpx.Client(timeout=30.0) as client:
        token = admin_token(client, api_url)
        for student in students:
            resp = create_student(client, api_url, token, student)
            if resp.status_code == 201:
                created += 1
                student_id = resp.json()["student"]["id"]
                if student.get("evaluation"):
                    grade_student(client, api_url, token, student_id, student["evaluation"]).raise_for_status()
                print(f"  ✅ {student.get('name')}: {student_id}")
            else:
                failed += 1
                detail = resp.json().get("detail", resp.text) if resp.content else resp.status_code
                print(f"  ❌ {student.get('name')}: {detail}")

        if seed.get("routine"):
            client.post(f"{api_url}/api/routine", json={"routine": seed["routine"]},
                        headers={"Authorization": f"Bearer {token}"})

    print()
    print("=" * 60)
    print(f"  Created: {created}")
    print(f"  Failed:  {failed}")
    print("=" * 60)


if __name__ == "__main__":
    main()
