"""Submission persistence.

One store object is built at startup around a session factory and passed to
whatever needs it; nothing here holds module-level connection state.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Optional, Union

from sqlalchemy import select, func, inspect as sa_inspect
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from errors import StorageError
from models import Submission

logger = logging.getLogger(__name__)

DEFAULT_PAGE = 1
DEFAULT_PAGE_SIZE = 10

MULTI_SELECT_COLUMN = "multiSelect"

# stored column name -> ORM attribute name
_ATTR_BY_COLUMN = {
    prop.columns[0].name: prop.key for prop in sa_inspect(Submission).column_attrs
}
SUBMISSION_COLUMNS = list(_ATTR_BY_COLUMN)


@dataclass(frozen=True)
class Structured:
    """Multi-select value that decoded to an ordered list of strings."""
    values: tuple[str, ...]


@dataclass(frozen=True)
class Raw:
    """Multi-select value that could not be decoded; kept as stored."""
    value: str


MultiSelect = Union[Structured, Raw]


def encode_multi_select(values: Optional[list[str]]) -> Optional[str]:
    if values is None:
        return None
    return json.dumps(list(values))


def decode_multi_select(stored: Any) -> Optional[MultiSelect]:
    """Decode a stored multi-select value, never raising.

    Rows written by older writers may hold a comma list or a bare word; those
    come back as ``Raw`` rather than an error.
    """
    if stored is None:
        return None
    if not isinstance(stored, str):
        return Raw(str(stored))
    try:
        parsed = json.loads(stored)
    except ValueError:
        return Raw(stored)
    if not isinstance(parsed, list):
        return Raw(stored)
    return Structured(tuple(v if isinstance(v, str) else json.dumps(v) for v in parsed))


def multi_select_json(value: Optional[MultiSelect]):
    """Render a decoded value for a JSON response: list when structured, str when raw."""
    if isinstance(value, Structured):
        return list(value.values)
    if isinstance(value, Raw):
        return value.value
    return None


def normalize_page(value: Any, default: int) -> int:
    """Coerce a page/limit value to a positive int, falling back to ``default``."""
    if isinstance(value, bool):
        return default
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    return number if number > 0 else default


def _to_record(row) -> dict:
    record = dict(row)
    if MULTI_SELECT_COLUMN in record:
        record[MULTI_SELECT_COLUMN] = decode_multi_select(record[MULTI_SELECT_COLUMN])
    return record


class SubmissionStore:
    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def _session(self) -> Session:
        return self._session_factory()

    def create(self, record: dict) -> int:
        """Insert a submission and return its new id.

        Args:
            record (dict): Column name -> value. ``multiSelect`` must already be
                encoded; ``id`` and ``created_at`` are ignored.

        Raises:
            StorageError: On constraint or I/O failure.
        """
        unknown = set(record) - set(_ATTR_BY_COLUMN)
        if unknown:
            logger.error("Refusing to save submission with unknown fields: %s", ", ".join(sorted(unknown)))
            raise StorageError("Error saving your submission")
        values = {
            _ATTR_BY_COLUMN[k]: v for k, v in record.items() if k not in ("id", "created_at")
        }
        try:
            with self._session() as db:
                row = Submission(**values)
                db.add(row)
                db.commit()
                return row.id
        except (SQLAlchemyError, OverflowError):
            logger.exception("Error saving submission")
            raise StorageError("Error saving your submission")

    def list(self, page: Any = None, page_size: Any = None) -> tuple[list[dict], int]:
        """Return one page of submissions (newest first) and the total row count."""
        page = normalize_page(page, DEFAULT_PAGE)
        page_size = normalize_page(page_size, DEFAULT_PAGE_SIZE)
        offset = (page - 1) * page_size
        try:
            with self._session() as db:
                total = db.execute(select(func.count()).select_from(Submission)).scalar_one()
                rows = db.execute(
                    select(Submission.__table__)
                    .order_by(Submission.created_at.desc(), Submission.id.desc())
                    .limit(page_size)
                    .offset(offset)
                ).mappings().all()
        except SQLAlchemyError:
            logger.exception("Error fetching submissions page=%s limit=%s", page, page_size)
            raise StorageError("Database error")
        return [_to_record(r) for r in rows], total

    def get(self, submission_id: int) -> Optional[dict]:
        try:
            with self._session() as db:
                row = db.execute(
                    select(Submission.__table__).where(Submission.id == submission_id)
                ).mappings().first()
        except SQLAlchemyError:
            logger.exception("Error fetching submission id=%s", submission_id)
            raise StorageError("Database error")
        return _to_record(row) if row else None

    def get_file_ref(self, submission_id: int) -> Optional[str]:
        try:
            with self._session() as db:
                return db.execute(
                    select(Submission.file).where(Submission.id == submission_id)
                ).scalar_one_or_none()
        except SQLAlchemyError:
            logger.exception("Error retrieving submission file id=%s", submission_id)
            raise StorageError("Database error")

    def delete(self, submission_id: int) -> bool:
        """Delete a row. Returns False when no such row exists."""
        try:
            with self._session() as db:
                row = db.get(Submission, submission_id)
                if not row:
                    return False
                db.delete(row)
                db.commit()
                return True
        except SQLAlchemyError:
            logger.exception("Error deleting submission id=%s", submission_id)
            raise StorageError("Database error")

    def export_all(self) -> list[dict]:
        """Every submission, newest first. Unbounded; meant for CSV export only."""
        try:
            with self._session() as db:
                rows = db.execute(
                    select(Submission.__table__)
                    .order_by(Submission.created_at.desc(), Submission.id.desc())
                ).mappings().all()
        except SQLAlchemyError:
            logger.exception("Error fetching submissions for export")
            raise StorageError("Database error")
        return [_to_record(r) for r in rows]
