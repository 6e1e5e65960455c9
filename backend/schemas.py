# schemas.py
import re
import datetime as dt
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

PHONE_RE = re.compile(r"^[\d\s\-+()]+$")
TIME_RE = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")
EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
WEBSITE_RE = re.compile(
    r"^(https?://)?([a-z0-9]([a-z0-9-]*[a-z0-9])?\.)+[a-z]{2,}(:\d{1,5})?([/?#]\S*)?$",
    re.IGNORECASE,
)
# largest value an SQLite INTEGER column holds
SQLITE_INT_MAX = 2**63 - 1


def _int_in_range(value, lo: int, hi: Optional[int], message: str) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValueError(message)
    if isinstance(value, int):
        number = value
    else:
        text = str(value).strip()
        if not re.fullmatch(r"[+-]?\d+", text):
            raise ValueError(message)
        number = int(text)
    if number < lo or (hi is not None and number > hi):
        raise ValueError(message)
    return number


class SubmissionIn(BaseModel):
    """Validated form submission; field names match the form/column names."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    short_answer: str = Field(alias="shortAnswer")
    long_answer: str = Field(alias="longAnswer")
    multi_select: Optional[List[str]] = Field(default=None, alias="multiSelect")
    single_select: Optional[str] = Field(default=None, alias="singleSelect")
    date: Optional[str] = None
    time: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    number: Optional[int] = None
    website: Optional[str] = None
    scale: Optional[int] = None
    dropdown: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _blank_is_absent(cls, data):
        if not isinstance(data, dict):
            return data
        cleaned = {}
        for key, value in data.items():
            if isinstance(value, str):
                value = value.strip()
                if not value:
                    continue
            elif isinstance(value, list):
                # elements are kept as sent; only an all-blank list counts as absent
                if all(isinstance(v, str) and not v.strip() for v in value):
                    continue
            cleaned[key] = value
        return cleaned

    @field_validator("short_answer")
    @classmethod
    def _short_answer_length(cls, v: str) -> str:
        if not 3 <= len(v) <= 500:
            raise ValueError("Short answer must be between 3 and 500 characters")
        return v

    @field_validator("long_answer")
    @classmethod
    def _long_answer_length(cls, v: str) -> str:
        if not 10 <= len(v) <= 5000:
            raise ValueError("Long answer must be between 10 and 5000 characters")
        return v

    @field_validator("email")
    @classmethod
    def _email(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not EMAIL_RE.match(v):
            raise ValueError("Please provide a valid email address")
        return v.lower() if v else v

    @field_validator("phone")
    @classmethod
    def _phone(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not PHONE_RE.match(v):
            raise ValueError("Please provide a valid phone number")
        return v

    @field_validator("website")
    @classmethod
    def _website(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not WEBSITE_RE.match(v):
            raise ValueError("Please provide a valid URL")
        return v

    @field_validator("number", mode="before")
    @classmethod
    def _number(cls, v):
        return _int_in_range(v, 0, SQLITE_INT_MAX, "Number must be a non-negative integer")

    @field_validator("scale", mode="before")
    @classmethod
    def _scale(cls, v):
        return _int_in_range(v, 1, 10, "Scale must be between 1 and 10")

    @field_validator("date")
    @classmethod
    def _date(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        try:
            dt.date.fromisoformat(v)
        except ValueError:
            try:
                dt.datetime.fromisoformat(v)
            except ValueError:
                raise ValueError("Please provide a valid date")
        return v

    @field_validator("time")
    @classmethod
    def _time(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not TIME_RE.match(v):
            raise ValueError("Please provide a valid time in HH:MM format")
        return v


class LoginIn(BaseModel):
    password: str = Field(..., min_length=1, description="Admin password")
    username: Optional[str] = None

    @field_validator("password")
    @classmethod
    def _password_present(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Password is required")
        return v


class LoginOut(BaseModel):
    success: bool = True
    token: str


class SubmitOut(BaseModel):
    success: bool = True
    message: str
    id: int


class Pagination(BaseModel):
    total: int
    page: int
    limit: int
    pages: int


class MessageOut(BaseModel):
    success: bool = True
    message: str
