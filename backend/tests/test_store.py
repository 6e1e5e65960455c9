from sqlalchemy import update

import pytest

from errors import StorageError
from models import Submission
from store import Raw, Structured, decode_multi_select, encode_multi_select, normalize_page


def _record(**overrides):
    rec = {"shortAnswer": "abc", "longAnswer": "0123456789", "multiSelect": encode_multi_select(["x", "y"])}
    rec.update(overrides)
    return rec


def test_create_then_first_page(store):
    sid = store.create(_record())
    items, total = store.list(1, 1)
    assert total == 1
    assert items[0]["id"] == sid
    assert items[0]["multiSelect"] == Structured(("x", "y"))
    assert items[0]["created_at"] is not None


def test_delete_reports_whether_a_row_went(store):
    sid = store.create(_record())
    assert store.delete(sid) is True
    assert store.delete(sid) is False
    assert store.delete(99999) is False
    assert store.get(sid) is None


def test_file_ref_lookup(store):
    sid = store.create(_record(file="0123456789abcdef0123456789abcdef.pdf"))
    assert store.get_file_ref(sid) == "0123456789abcdef0123456789abcdef.pdf"
    assert store.get_file_ref(12345) is None


def test_export_all_newest_first(store):
    ids = [store.create(_record()) for _ in range(4)]
    assert [r["id"] for r in store.export_all()] == sorted(ids, reverse=True)


def test_legacy_multi_select_reads_back_raw(app, store):
    sid = store.create(_record())
    with app.state.engine.begin() as conn:
        conn.execute(update(Submission.__table__).where(Submission.id == sid).values(multiSelect="red,green"))
    assert store.get(sid)["multiSelect"] == Raw("red,green")
    assert store.export_all()[0]["multiSelect"] == Raw("red,green")


def test_unknown_field_is_a_storage_error(store):
    with pytest.raises(StorageError):
        store.create(_record(color="blue"))


@pytest.mark.parametrize("stored,expected", [
    (None, None),
    ('["a", "b"]', Structured(("a", "b"))),
    ("[]", Structured(())),
    ("a,b", Raw("a,b")),
    ('"a"', Raw('"a"')),
    ("{bad json", Raw("{bad json")),
])
def test_decode_multi_select(stored, expected):
    assert decode_multi_select(stored) == expected


@pytest.mark.parametrize("value,expected", [
    (3, 3), ("4", 4), ("0", 10), (-2, 10), ("x", 10), (None, 10), (True, 10),
])
def test_normalize_page(value, expected):
    assert normalize_page(value, 10) == expected


def test_out_of_range_integer_is_a_storage_error(store):
    with pytest.raises(StorageError):
        store.create(_record(number=2**70))
    assert store.list()[1] == 0
