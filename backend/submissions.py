"""Form intake: validation, attachment storage and hand-off to the store."""
import logging
import os
import re
import secrets
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Mapping, Optional, Sequence, Union

from pydantic import ValidationError as PydanticValidationError

from errors import FileUploadError, NotFoundError, StorageError, ValidationError
from schemas import SubmissionIn
from store import SubmissionStore, encode_multi_select

logger = logging.getLogger(__name__)

ALLOWED_CONTENT_TYPES = {
    "application/pdf": ".pdf",
    "image/jpeg": ".jpg",
    "image/png": ".png",
}
MULTI_VALUE_FIELDS = {"multiSelect"}

REFERENCE_RE = re.compile(r"^[0-9a-f]{32}(\.[a-z0-9]{1,8})?$")
_EXTENSION_RE = re.compile(r"^\.[a-z0-9]{1,8}$")

_FIELD_LABELS = {
    "shortAnswer": "Short answer",
    "longAnswer": "Long answer",
}


@dataclass
class IncomingFile:
    """An attachment as received from the client, not yet stored."""
    filename: str
    content_type: str
    data: bytes


class UploadStorage:
    """Attachments on disk, named by opaque generated references."""

    def __init__(self, upload_dir: Union[str, Path]):
        self.root = Path(upload_dir)
        self.root.mkdir(parents=True, exist_ok=True)

    def path_for(self, reference: str) -> Optional[Path]:
        """Resolve a reference to a path, or None if it is not a name we generate."""
        if not reference or not REFERENCE_RE.match(reference):
            return None
        return self.root / reference

    def save(self, incoming: IncomingFile) -> str:
        extension = os.path.splitext(incoming.filename or "")[1].lower()
        if not _EXTENSION_RE.match(extension):
            extension = ALLOWED_CONTENT_TYPES.get(incoming.content_type, "")
        reference = secrets.token_hex(16) + extension
        path = self.root / reference
        try:
            with open(path, "wb") as buffer:
                buffer.write(incoming.data)
        except OSError:
            logger.exception("Error saving file %s", reference)
            self.discard(reference)
            raise StorageError("Error saving your submission")
        return reference

    def discard(self, reference: Optional[str]) -> bool:
        """Remove a stored attachment. Failures are logged, never raised."""
        path = self.path_for(reference) if reference else None
        if path is None:
            return False
        try:
            path.unlink()
            return True
        except FileNotFoundError:
            return False
        except OSError:
            logger.exception("Error deleting file %s", reference)
            return False


def check_upload(incoming: IncomingFile, max_size: int) -> None:
    if incoming.content_type not in ALLOWED_CONTENT_TYPES:
        raise FileUploadError("Invalid file type. Only PDF, JPG, and PNG are allowed.")
    if len(incoming.data) > max_size:
        raise FileUploadError(f"File size is too large. Maximum size is {_human_size(max_size)}")


def _human_size(size: int) -> str:
    if size >= 1024 * 1024 and size % (1024 * 1024) == 0:
        return f"{size // (1024 * 1024)}MB"
    if size >= 1024 and size % 1024 == 0:
        return f"{size // 1024}KB"
    return f"{size} bytes"


def normalize_fields(form: Mapping[str, Union[str, Sequence[str]]]) -> dict:
    """Flatten raw form input.

    Multi-value fields always become a list (a single value is wrapped);
    every other field keeps its first value.
    """
    out = {}
    for key, value in form.items():
        if isinstance(value, (list, tuple)):
            values = [str(v) for v in value]
        else:
            values = [str(value)]
        if key in MULTI_VALUE_FIELDS:
            out[key] = values
        elif values:
            out[key] = values[0]
    return out


def _field_errors(exc: PydanticValidationError) -> list[dict]:
    errors = []
    for err in exc.errors():
        field = str(err["loc"][0]) if err["loc"] else "form"
        if err["type"] == "missing":
            label = _FIELD_LABELS.get(field, field)
            message = f"{label} is required"
        elif err.get("ctx", {}).get("error") is not None:
            message = str(err["ctx"]["error"])
        else:
            message = err["msg"]
        errors.append({"field": field, "message": message})
    return errors


def validate_submission(fields: dict) -> SubmissionIn:
    try:
        return SubmissionIn.model_validate(fields)
    except PydanticValidationError as exc:
        raise ValidationError(_field_errors(exc))


class SubmissionService:
    def __init__(self, store: SubmissionStore, uploads: UploadStorage, max_file_size: int):
        self.store = store
        self.uploads = uploads
        self.max_file_size = max_file_size

    def submit(self, form: Mapping, incoming: Optional[IncomingFile] = None) -> int:
        """Validate and persist a submission, returning its id.

        Everything is checked before anything is written; if the insert fails
        the just-stored attachment is removed again.

        Raises:
            FileUploadError: Disallowed type or oversized attachment.
            ValidationError: One or more fields failed validation.
            StorageError: The insert failed.
        """
        if incoming is not None:
            check_upload(incoming, self.max_file_size)
        data = validate_submission(normalize_fields(form))

        record = data.model_dump(by_alias=True)
        record["multiSelect"] = encode_multi_select(data.multi_select)

        reference = self.uploads.save(incoming) if incoming is not None else None
        record["file"] = reference
        try:
            return self.store.create(record)
        except Exception:
            if reference:
                self.uploads.discard(reference)
            raise

    def delete(self, submission_id: int,
               schedule: Optional[Callable[..., None]] = None) -> None:
        """Delete a submission, then its attachment.

        The row delete is the commit point. Attachment removal happens after it
        (through ``schedule`` when given, e.g. a background task) and only logs
        on failure.

        Raises:
            NotFoundError: No submission with that id.
        """
        reference = self.store.get_file_ref(submission_id)
        if not self.store.delete(submission_id):
            raise NotFoundError("Submission not found")
        if reference:
            if schedule is not None:
                schedule(self.uploads.discard, reference)
            else:
                self.uploads.discard(reference)
