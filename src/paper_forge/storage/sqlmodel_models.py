"""SQLModel ORM tables for generated paper storage."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Column, DateTime, Index, Text
from sqlmodel import Field, SQLModel


class Paper(SQLModel, table=True):
    __tablename__ = "papers"  # type: ignore[bad-override]
    __table_args__ = (Index("ix_papers_user_created", "user_id", "created_at"),)

    paper_id: int | None = Field(default=None, primary_key=True)
    user_id: str = Field(index=True)
    subject: str
    semester: str
    student_name: str | None = None
    full_json_data: str = Field(sa_column=Column(Text, nullable=False))
    job_id: str | None = Field(default=None, index=True)
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
