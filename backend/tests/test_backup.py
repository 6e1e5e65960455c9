import sqlite3

import pytest

from scripts.backup import create_backup, list_backups, restore_backup
from scripts.init_env import render_env


def _make_db(path, value):
    with sqlite3.connect(path) as conn:
        conn.execute("CREATE TABLE IF NOT EXISTS t (v TEXT)")
        conn.execute("DELETE FROM t")
        conn.execute("INSERT INTO t VALUES (?)", (value,))
    conn.close()


def _read(path):
    conn = sqlite3.connect(path)
    try:
        return conn.execute("SELECT v FROM t").fetchone()[0]
    finally:
        conn.close()


def test_create_prunes_to_max(tmp_path):
    db = tmp_path / "responses.db"
    _make_db(db, "one")
    backups = tmp_path / "backups"
    for _ in range(4):
        create_backup(db, backups, max_backups=2)
    assert len(list_backups(backups)) == 2


def test_restore_saves_current_first(tmp_path):
    db = tmp_path / "responses.db"
    backups = tmp_path / "backups"
    _make_db(db, "before")
    target = create_backup(db, backups)
    _make_db(db, "after")

    saved = restore_backup(target.name, db, backups)
    assert _read(db) == "before"
    assert _read(saved) == "after"


def test_restore_missing_backup(tmp_path):
    with pytest.raises(FileNotFoundError):
        restore_backup("backup-nope.db", tmp_path / "x.db", tmp_path)


def test_create_requires_database(tmp_path):
    with pytest.raises(FileNotFoundError):
        create_backup(tmp_path / "missing.db", tmp_path / "backups")


def test_render_env():
    text = render_env("longenough")
    assert "ADMIN_PASSWORD=longenough" in text
    secret = [l for l in text.splitlines() if l.startswith("JWT_SECRET=")][0].split("=", 1)[1]
    assert len(secret) == 128
    with pytest.raises(ValueError):
        render_env("short")
