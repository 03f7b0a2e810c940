"""Pydantic request schemas used by the API.

Schemas keep API input shapes stable and provide validation for
controller handlers and tests. Datetimes are normalized to aware UTC so
they compare cleanly with stored values.
"""

from datetime import datetime, timezone
from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator
from typing import List, Optional


def _to_utc(value: datetime) -> datetime:
    # naive input is taken to be UTC already
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class RegisterIn(BaseModel):
    """Payload for user registration and admin-side single user creation."""
    email: EmailStr
    username: str = Field(min_length=1)
    password: str = Field(min_length=1)


class LoginIn(BaseModel):
    """Payload for user and admin login endpoints."""
    email: EmailStr
    password: str = Field(min_length=1)


class OptionIn(BaseModel):
    """A possible option of a question being authored."""
    text: str = Field(min_length=1)
    correct: bool = False


class QuestionIn(BaseModel):
    """A question with its options; at most one option may be correct."""
    text: str = Field(min_length=1)
    options: List[OptionIn] = Field(min_length=1)

    @field_validator('options')
    @classmethod
    def _single_correct(cls, options: List[OptionIn]) -> List[OptionIn]:
        if sum(1 for o in options if o.correct) > 1:
            raise ValueError('a question may have at most one correct option')
        return options


class ExamIn(BaseModel):
    """Request format for authoring an exam with nested questions."""
    title: str = Field(min_length=1)
    description: str = Field(min_length=1)
    duration: int = Field(gt=0, description="duration in minutes")
    start_time: datetime
    end_time: datetime
    questions: List[QuestionIn] = Field(min_length=1)

    @field_validator('start_time', 'end_time')
    @classmethod
    def _normalize(cls, value: datetime) -> datetime:
        return _to_utc(value)

    @model_validator(mode='after')
    def _window(self):
        if self.end_time <= self.start_time:
            raise ValueError('end_time must be after start_time')
        return self


class AnswerIn(BaseModel):
    """Single submitted answer."""
    question_id: int
    selected_option_id: int


class SubmissionIn(BaseModel):
    """Request model for submitting an exam; may be empty."""
    answers: List[AnswerIn] = Field(default_factory=list)


class BulkUserItem(BaseModel):
    """One entry of a bulk user creation; incomplete entries are skipped."""
    email: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None


class BulkUsersIn(BaseModel):
    users: List[BulkUserItem] = Field(min_length=1)
