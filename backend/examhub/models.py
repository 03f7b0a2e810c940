"""SQLModel data models.

This module defines the application's database tables using SQLModel.
Each class maps to a table and uses relationships where appropriate.
All timestamps are timezone-aware UTC; `UTCDateTime` keeps them that way
on backends (SQLite) that do not store an offset.
"""

from typing import Optional
from sqlmodel import SQLModel, Field, Relationship
from sqlalchemy import DateTime, UniqueConstraint
from sqlalchemy.types import TypeDecorator
from datetime import datetime, timezone
from typing import List


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UTCDateTime(TypeDecorator):
    """DateTime column that always hands back aware UTC values."""
    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class User(SQLModel, table=True):
    """A registered exam taker.

    Fields:
    - `email`: unique login identifier
    - `password_hash`: hashed password string (never store plaintext)
    """
    id: Optional[int] = Field(default=None, primary_key=True)
    email: str = Field(index=True, nullable=False, unique=True)
    username: str
    password_hash: str
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)


class Admin(SQLModel, table=True):
    """An administrator account; authenticates in its own token namespace."""
    id: Optional[int] = Field(default=None, primary_key=True)
    email: str = Field(index=True, nullable=False, unique=True)
    name: str
    password_hash: str
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)


class Exam(SQLModel, table=True):
    """An exam open for sessions during `[start_time, end_time)`."""
    id: Optional[int] = Field(default=None, primary_key=True)
    title: str
    description: str
    duration_minutes: int
    start_time: datetime = Field(index=True, sa_type=UTCDateTime)
    end_time: datetime = Field(index=True, sa_type=UTCDateTime)
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
    questions: List['Question'] = Relationship(back_populates='exam')

    def is_open(self, now: datetime) -> bool:
        return self.start_time <= now < self.end_time


class Question(SQLModel, table=True):
    """A single-correct-answer question belonging to one exam.

    A question is created first, then its options, then it is sealed by
    pointing `correct_option_id` at one of its own options. Unsealed
    questions can never be answered correctly.
    """
    id: Optional[int] = Field(default=None, primary_key=True)
    exam_id: int = Field(foreign_key='exam.id', index=True)
    text: str
    correct_option_id: Optional[int] = None
    sealed: bool = False
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
    exam: Optional[Exam] = Relationship(back_populates='questions')
    options: List['QuestionOption'] = Relationship(back_populates='question')


class QuestionOption(SQLModel, table=True):
    """A selectable option for a `Question`."""
    id: Optional[int] = Field(default=None, primary_key=True)
    question_id: int = Field(foreign_key='question.id', index=True)
    text: str
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
    question: Optional[Question] = Relationship(back_populates='options')


class ExamSession(SQLModel, table=True):
    """One user's single attempt at one exam.

    The unique (user_id, exam_id) pair allows one attempt per user per
    exam for the lifetime of the exam.
    """
    __table_args__ = (UniqueConstraint('user_id', 'exam_id', name='uq_examsession_user_exam'),)

    id: Optional[int] = Field(default=None, primary_key=True)
    exam_id: int = Field(foreign_key='exam.id', index=True)
    user_id: int = Field(foreign_key='user.id', index=True)
    start_time: datetime = Field(sa_type=UTCDateTime)
    end_time: Optional[datetime] = Field(default=None, sa_type=UTCDateTime)
    completed: bool = False
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)


class ExamAnswer(SQLModel, table=True):
    """The option selected for one question within a session."""
    __table_args__ = (UniqueConstraint('session_id', 'question_id', name='uq_examanswer_session_question'),)

    id: Optional[int] = Field(default=None, primary_key=True)
    session_id: int = Field(foreign_key='examsession.id', index=True)
    question_id: int = Field(foreign_key='question.id')
    selected_option_id: int = Field(foreign_key='questionoption.id')
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
