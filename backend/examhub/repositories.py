"""Repository classes encapsulating database operations.

Each repository is small and focused on a single aggregate (users,
admins, exams, questions, sessions, answers). Repositories return
SQLModel objects and flush so generated ids are available, but never
commit: the calling service owns the transaction boundary.
"""

from datetime import datetime
from typing import Dict, Iterable, List, Optional, Set
from sqlalchemy import update
from sqlmodel import Session, select
from . import models


class UserRepository:
    """CRUD operations for `User` objects."""
    def __init__(self, session: Session):
        self.session = session

    def create(self, user: models.User) -> models.User:
        """Stage a new user and return the managed instance with its id."""
        self.session.add(user)
        self.session.flush()
        return user

    def get_by_email(self, email: str) -> Optional[models.User]:
        """Return a `User` by email or `None` if not found."""
        stmt = select(models.User).where(models.User.email == email)
        return self.session.exec(stmt).first()

    def get(self, user_id: int) -> Optional[models.User]:
        """Get a `User` by primary key."""
        return self.session.get(models.User, user_id)

    def list_newest_first(self) -> List[models.User]:
        stmt = select(models.User).order_by(models.User.created_at.desc(), models.User.id.desc())
        return self.session.exec(stmt).all()

    def existing_emails(self, emails: Iterable[str]) -> Set[str]:
        """Return the subset of `emails` already registered."""
        wanted = list(set(emails))
        if not wanted:
            return set()
        stmt = select(models.User.email).where(models.User.email.in_(wanted))
        return set(self.session.exec(stmt).all())


class AdminRepository:
    """Lookups for `Admin` accounts."""
    def __init__(self, session: Session):
        self.session = session

    def create(self, admin: models.Admin) -> models.Admin:
        self.session.add(admin)
        self.session.flush()
        return admin

    def get(self, admin_id: int) -> Optional[models.Admin]:
        return self.session.get(models.Admin, admin_id)

    def get_by_email(self, email: str) -> Optional[models.Admin]:
        stmt = select(models.Admin).where(models.Admin.email == email)
        return self.session.exec(stmt).first()


class ExamRepository:
    """Exam reads, creation and cascading removal."""
    def __init__(self, session: Session):
        self.session = session

    def create(self, exam: models.Exam) -> models.Exam:
        self.session.add(exam)
        self.session.flush()
        return exam

    def get(self, exam_id: int) -> Optional[models.Exam]:
        """Fetch an exam by id."""
        return self.session.get(models.Exam, exam_id)

    def list_newest_first(self) -> List[models.Exam]:
        stmt = select(models.Exam).order_by(models.Exam.created_at.desc(), models.Exam.id.desc())
        return self.session.exec(stmt).all()

    def list_open(self, now: datetime) -> List[models.Exam]:
        """Return exams whose window `[start_time, end_time)` contains `now`."""
        stmt = select(models.Exam).where(
            models.Exam.start_time <= now,
            models.Exam.end_time > now
        ).order_by(models.Exam.start_time, models.Exam.id)
        return self.session.exec(stmt).all()

    def delete_cascade(self, exam_id: int) -> bool:
        """Delete an exam and every row depending on it, deepest first.

        Returns False when the exam row itself is missing at the final
        step; the caller must then roll back the whole unit of work.
        """
        session_ids = self.session.exec(
            select(models.ExamSession.id).where(models.ExamSession.exam_id == exam_id)
        ).all()
        question_ids = self.session.exec(
            select(models.Question.id).where(models.Question.exam_id == exam_id)
        ).all()
        if session_ids:
            self._delete_all(select(models.ExamAnswer).where(models.ExamAnswer.session_id.in_(session_ids)))
            self._delete_all(select(models.ExamSession).where(models.ExamSession.exam_id == exam_id))
        if question_ids:
            self._delete_all(select(models.QuestionOption).where(models.QuestionOption.question_id.in_(question_ids)))
            self._delete_all(select(models.Question).where(models.Question.exam_id == exam_id))
        exam = self.get(exam_id)
        if exam is None:
            return False
        self.session.delete(exam)
        self.session.flush()
        return True

    def _delete_all(self, stmt):
        for row in self.session.exec(stmt).all():
            self.session.delete(row)
        self.session.flush()


class QuestionRepository:
    """CRUD operations for `Question` and related `QuestionOption` records."""
    def __init__(self, session: Session):
        self.session = session

    def create(self, question: models.Question, options: List[models.QuestionOption]) -> models.Question:
        """Create a question and attach provided options.

        The question is flushed first to obtain an id, then that id is
        assigned to the options before they are flushed.
        """
        self.session.add(question)
        self.session.flush()
        for o in options:
            o.question_id = question.id
            self.session.add(o)
        self.session.flush()
        return question

    def seal(self, question: models.Question, option: models.QuestionOption) -> models.Question:
        """Mark `option` as the correct option of `question`."""
        if option.question_id != question.id:
            raise ValueError(f"option {option.id} does not belong to question {question.id}")
        question.correct_option_id = option.id
        question.sealed = True
        self.session.add(question)
        self.session.flush()
        return question

    def list_for_exam(self, exam_id: int) -> List[models.Question]:
        """Return the questions of an exam in authoring order."""
        stmt = select(models.Question).where(models.Question.exam_id == exam_id).order_by(models.Question.id)
        return self.session.exec(stmt).all()

    def options_by_question(self, question_ids: List[int]) -> Dict[int, List[models.QuestionOption]]:
        """Group the options of `question_ids` by question id, in creation order."""
        grouped: Dict[int, List[models.QuestionOption]] = {qid: [] for qid in question_ids}
        if not question_ids:
            return grouped
        stmt = select(models.QuestionOption).where(
            models.QuestionOption.question_id.in_(question_ids)
        ).order_by(models.QuestionOption.id)
        for option in self.session.exec(stmt).all():
            grouped[option.question_id].append(option)
        return grouped


class SessionRepository:
    """Persistence for `ExamSession` rows."""
    def __init__(self, session: Session):
        self.session = session

    def create(self, exam_session: models.ExamSession) -> models.ExamSession:
        self.session.add(exam_session)
        self.session.flush()
        return exam_session

    def find(self, user_id: int, exam_id: int, completed: Optional[bool] = None) -> Optional[models.ExamSession]:
        """Return the session of `user_id` for `exam_id`, optionally filtered by state."""
        stmt = select(models.ExamSession).where(
            models.ExamSession.user_id == user_id,
            models.ExamSession.exam_id == exam_id
        )
        if completed is not None:
            stmt = stmt.where(models.ExamSession.completed == completed)
        return self.session.exec(stmt).first()

    def complete(self, session_id: int, finished_at: datetime) -> bool:
        """Move an Active session to Completed.

        Returns False when the session was already completed, e.g. by an
        overlapping submit that committed first.
        """
        stmt = update(models.ExamSession).where(
            models.ExamSession.id == session_id,
            models.ExamSession.completed == False  # noqa: E712
        ).values(completed=True, end_time=finished_at)
        return self.session.exec(stmt).rowcount == 1

    def list_for_exam(self, exam_id: int) -> List[models.ExamSession]:
        stmt = select(models.ExamSession).where(models.ExamSession.exam_id == exam_id).order_by(models.ExamSession.id)
        return self.session.exec(stmt).all()

    def list_completed_for_user(self, user_id: int) -> List[models.ExamSession]:
        stmt = select(models.ExamSession).where(
            models.ExamSession.user_id == user_id,
            models.ExamSession.completed == True  # noqa: E712
        ).order_by(models.ExamSession.end_time, models.ExamSession.id)
        return self.session.exec(stmt).all()


class AnswerRepository:
    """Query helpers for `ExamAnswer` records."""
    def __init__(self, session: Session):
        self.session = session

    def add_many(self, answers: List[models.ExamAnswer]) -> None:
        for a in answers:
            self.session.add(a)
        self.session.flush()

    def list_for_session(self, session_id: int) -> List[models.ExamAnswer]:
        """List all answer rows for the provided `session_id`."""
        stmt = select(models.ExamAnswer).where(models.ExamAnswer.session_id == session_id).order_by(models.ExamAnswer.id)
        return self.session.exec(stmt).all()
