from sqlalchemy import Column, Integer, String, Text, DateTime
from sqlalchemy.sql import func
from db import Base


class Submission(Base):
    __tablename__ = "submissions"
    # AUTOINCREMENT keeps SQLite from reusing ids of deleted rows
    __table_args__ = {"sqlite_autoincrement": True}

    id = Column(Integer, primary_key=True, index=True)
    short_answer = Column("shortAnswer", Text, nullable=True)
    long_answer = Column("longAnswer", Text, nullable=True)
    multi_select = Column("multiSelect", Text, nullable=True)
    single_select = Column("singleSelect", Text, nullable=True)
    date = Column(String(32), nullable=True)
    time = Column(String(16), nullable=True)
    phone = Column(String(64), nullable=True)
    email = Column(String(255), nullable=True, index=True)
    number = Column(Integer, nullable=True)
    website = Column(Text, nullable=True)
    scale = Column(Integer, nullable=True)
    dropdown = Column(Text, nullable=True)
    file = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)


class AdminCredential(Base):
    __tablename__ = "admins"
    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(255), unique=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
