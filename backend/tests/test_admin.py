import math
import os

import pytest

from conftest import ADMIN_PASSWORD, valid_form

PDF = b"%PDF-1.4\n%test\n"


def _submit(client, **overrides):
    r = client.post("/api/v1/submissions/submit", data=valid_form(**overrides))
    assert r.status_code == 200, r.text
    return r.json()["id"]


def test_login_success_and_failure_shapes(client):
    ok = client.post("/api/v1/admin/login", json={"password": ADMIN_PASSWORD})
    assert ok.status_code == 200
    assert ok.json()["success"] is True and ok.json()["token"]

    wrong = client.post("/api/v1/admin/login", json={"password": "wrong"})
    close = client.post("/api/v1/admin/login", json={"password": ADMIN_PASSWORD[:-1]})
    assert wrong.status_code == close.status_code == 401
    assert wrong.json() == close.json() == {"success": False, "message": "Invalid credentials"}


def test_login_requires_password(client):
    r = client.post("/api/v1/admin/login", json={})
    assert r.status_code == 400
    assert r.json()["success"] is False


def test_login_is_throttled_after_five_attempts(client):
    for _ in range(5):
        assert client.post("/api/v1/admin/login", json={"password": "guess"}).status_code == 401
    r = client.post("/api/v1/admin/login", json={"password": ADMIN_PASSWORD})
    assert r.status_code == 429
    assert r.json()["success"] is False


def test_admin_routes_require_token(client):
    assert client.get("/api/v1/admin/submissions").status_code == 401
    assert client.get("/api/v1/admin/export-csv").status_code == 401
    assert client.delete("/api/v1/admin/submissions/1").status_code == 401
    bad = {"Authorization": "Bearer not-a-token"}
    r = client.get("/api/v1/admin/submissions", headers=bad)
    assert r.status_code == 401
    assert r.json() == {"success": False, "message": "Unauthorized"}


def test_legacy_admin_routes(client):
    token = client.post("/admin/login", json={"password": ADMIN_PASSWORD}).json()["token"]
    r = client.get("/admin/submissions", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 200
    assert r.json()["success"] is True


@pytest.mark.parametrize("limit", [1, 2, 3, 7, 10])
def test_page_walk_covers_every_row_once(client, auth_header, limit):
    ids = {_submit(client) for _ in range(7)}

    first = client.get("/api/v1/admin/submissions", params={"page": 1, "limit": limit},
                       headers=auth_header).json()
    pages = first["pagination"]["pages"]
    assert first["pagination"]["total"] == 7
    assert pages == math.ceil(7 / limit)

    seen = []
    for page in range(1, pages + 1):
        body = client.get("/api/v1/admin/submissions", params={"page": page, "limit": limit},
                          headers=auth_header).json()
        seen.extend(s["id"] for s in body["submissions"])
    assert sorted(seen) == sorted(ids)
    assert len(seen) == len(set(seen))


def test_list_is_newest_first(client, auth_header):
    ids = [_submit(client) for _ in range(3)]
    got = [s["id"] for s in client.get("/api/v1/admin/submissions", headers=auth_header).json()["submissions"]]
    assert got == sorted(ids, reverse=True)


@pytest.mark.parametrize("page,limit", [("0", "-5"), ("abc", "x"), (None, None)])
def test_bad_pagination_params_fall_back_to_defaults(client, auth_header, page, limit):
    params = {k: v for k, v in {"page": page, "limit": limit}.items() if v is not None}
    body = client.get("/api/v1/admin/submissions", params=params, headers=auth_header).json()
    assert body["pagination"]["page"] == 1
    assert body["pagination"]["limit"] == 10
    assert body["pagination"]["pages"] == 0


def test_delete_is_idempotent_and_removes_file(client, auth_header, upload_dir):
    r = client.post("/api/v1/submissions/submit", data=valid_form(),
                    files={"upload": ("doc.pdf", PDF, "application/pdf")})
    sid = r.json()["id"]
    assert len(os.listdir(upload_dir)) == 1

    first = client.delete(f"/api/v1/admin/submissions/{sid}", headers=auth_header)
    assert first.status_code == 200
    assert first.json() == {"success": True, "message": "Submission deleted successfully"}
    assert os.listdir(upload_dir) == []

    second = client.delete(f"/api/v1/admin/submissions/{sid}", headers=auth_header)
    assert second.status_code == 404
    assert second.json()["success"] is False

    assert client.get(f"/api/v1/admin/submissions/{sid}", headers=auth_header).status_code == 404


def test_delete_survives_missing_file(client, auth_header, upload_dir):
    r = client.post("/api/v1/submissions/submit", data=valid_form(),
                    files={"upload": ("doc.pdf", PDF, "application/pdf")})
    sid = r.json()["id"]
    for name in os.listdir(upload_dir):
        os.remove(os.path.join(upload_dir, name))

    assert client.delete(f"/api/v1/admin/submissions/{sid}", headers=auth_header).status_code == 200


def test_ids_are_not_reused_after_delete(client, auth_header):
    first = _submit(client)
    client.delete(f"/api/v1/admin/submissions/{first}", headers=auth_header)
    assert _submit(client) > first


def test_delete_only_logs_when_file_cannot_be_removed(app, client, auth_header, upload_dir, monkeypatch):
    r = client.post("/api/v1/submissions/submit", data=valid_form(),
                    files={"upload": ("doc.pdf", PDF, "application/pdf")})
    sid = r.json()["id"]

    class LockedFile:
        def unlink(self):
            raise PermissionError("locked")

    monkeypatch.setattr(app.state.uploads, "path_for", lambda reference: LockedFile())
    r = client.delete(f"/api/v1/admin/submissions/{sid}", headers=auth_header)
    assert r.status_code == 200
    assert r.json()["success"] is True
    assert len(os.listdir(upload_dir)) == 1
    assert client.get(f"/api/v1/admin/submissions/{sid}", headers=auth_header).status_code == 404
