import os, tempfile

# keep the module-level app in main.py away from the working directory
_IMPORT_DIR = tempfile.mkdtemp(prefix="formservice-")
os.environ.setdefault("DATABASE_URL", f"sqlite:///{os.path.join(_IMPORT_DIR, 'import.db')}")
os.environ.setdefault("UPLOAD_DIR", os.path.join(_IMPORT_DIR, "uploads"))
os.environ.setdefault("JWT_SECRET", "import-secret")

import pytest
from fastapi.testclient import TestClient

from config import Settings
from main import create_app

ADMIN_PASSWORD = "correct-horse-battery"


@pytest.fixture
def settings(tmp_path):
    return Settings(
        database_url=f"sqlite:///{tmp_path / 'test.db'}",
        upload_dir=str(tmp_path / "uploads"),
        admin_password=ADMIN_PASSWORD,
        jwt_secret="test-secret",
    )


@pytest.fixture
def app(settings):
    return create_app(settings)


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def store(app):
    return app.state.store


@pytest.fixture
def upload_dir(settings):
    return settings.upload_dir


@pytest.fixture
def token(client):
    r = client.post("/api/v1/admin/login", json={"password": ADMIN_PASSWORD})
    assert r.status_code == 200, r.text
    return r.json()["token"]


@pytest.fixture
def auth_header(token):
    return {"Authorization": f"Bearer {token}"}


def valid_form(**overrides):
    form = {
        "shortAnswer": "abc",
        "longAnswer": "0123456789",
    }
    form.update(overrides)
    return form
