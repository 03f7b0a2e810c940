"""Business logic services used by HTTP controllers.

This module holds small service classes that coordinate repositories
and domain logic. Services validate input, enforce the exam session
state machine (NoSession -> Active -> Completed) and own the
transaction boundary: every mutating operation commits on success and
rolls back fully on failure.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Tuple

from email_validator import EmailNotValidError, validate_email
from passlib.context import CryptContext
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session

from . import errors, models, repositories, schemas
from .auth import ADMIN_AUDIENCE, USER_AUDIENCE, create_access_token
from .config import Settings
from .mailer import WelcomeNotice
from .scoring import ScoreReport, score_answers

PWD_CTX = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")
logger = logging.getLogger("examhub.services")

Clock = Callable[[], datetime]


def user_out(user: models.User) -> dict:
    return {'id': user.id, 'email': user.email, 'username': user.username, 'created_at': user.created_at}


def admin_out(admin: models.Admin) -> dict:
    return {'id': admin.id, 'email': admin.email, 'name': admin.name}


def exam_out(exam: models.Exam) -> dict:
    return {
        'id': exam.id,
        'title': exam.title,
        'description': exam.description,
        'duration': exam.duration_minutes,
        'start_time': exam.start_time,
        'end_time': exam.end_time,
        'created_at': exam.created_at,
    }


class AuthService:
    """Authentication related operations for users and admins."""
    def __init__(self, session: Session, settings: Settings):
        self.session = session
        self.settings = settings
        self.user_repo = repositories.UserRepository(session)
        self.admin_repo = repositories.AdminRepository(session)

    def register(self, email: str, username: str, password: str) -> Tuple[models.User, str]:
        """Create a new user with a hashed password and return it with a token."""
        if self.user_repo.get_by_email(email):
            raise errors.UserExists()
        user = models.User(email=email, username=username, password_hash=PWD_CTX.hash(password))
        try:
            self.user_repo.create(user)
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            raise errors.UserExists()
        self.session.refresh(user)
        return user, create_access_token(user.id, USER_AUDIENCE, self.settings)

    def authenticate(self, email: str, password: str) -> Tuple[models.User, str]:
        """Verify user credentials and return the user with a signed token."""
        # One lookup by email then verify the supplied password hash.
        user = self.user_repo.get_by_email(email)
        if not user or not PWD_CTX.verify(password, user.password_hash):
            raise errors.AuthError('Invalid credentials')
        return user, create_access_token(user.id, USER_AUDIENCE, self.settings)

    def authenticate_admin(self, email: str, password: str) -> Tuple[models.Admin, str]:
        """Verify admin credentials and return a token in the admin namespace."""
        admin = self.admin_repo.get_by_email(email)
        if not admin or not PWD_CTX.verify(password, admin.password_hash):
            raise errors.AuthError('Invalid credentials')
        return admin, create_access_token(admin.id, ADMIN_AUDIENCE, self.settings)

    def upsert_admin(self, email: str, name: str, password: str) -> models.Admin:
        """Create an admin account or reset the password of an existing one."""
        admin = self.admin_repo.get_by_email(email)
        if admin:
            admin.name = name
            admin.password_hash = PWD_CTX.hash(password)
            self.session.add(admin)
        else:
            admin = self.admin_repo.create(models.Admin(email=email, name=name, password_hash=PWD_CTX.hash(password)))
        self.session.commit()
        self.session.refresh(admin)
        return admin


@dataclass
class BulkResult:
    created: List[models.User] = field(default_factory=list)
    skipped: List[dict] = field(default_factory=list)
    notices: List[WelcomeNotice] = field(default_factory=list)


class UserAdminService:
    """Admin-side user management."""
    def __init__(self, session: Session):
        self.session = session
        self.user_repo = repositories.UserRepository(session)

    def list_users(self) -> List[models.User]:
        return self.user_repo.list_newest_first()

    def create_user(self, email: str, username: str, password: str) -> Tuple[models.User, WelcomeNotice]:
        """Create one user and return it with the welcome notice to deliver."""
        if self.user_repo.get_by_email(email):
            raise errors.UserExists()
        user = models.User(email=email, username=username, password_hash=PWD_CTX.hash(password))
        try:
            self.user_repo.create(user)
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            raise errors.UserExists()
        self.session.refresh(user)
        return user, WelcomeNotice(to=user.email, username=user.username, password=password)

    @staticmethod
    def _bulk_entry(item: schemas.BulkUserItem) -> Tuple[str, str, str, str]:
        """Return (skip reason, email, username, password); the reason is '' for usable entries."""
        email = (item.email or '').strip()
        username = (item.username or '').strip()
        if not email or not username or not item.password:
            return 'Missing email, password, or username', email or 'N/A', username, ''
        try:
            email = validate_email(email, check_deliverability=False).normalized
        except EmailNotValidError:
            return 'Invalid email address', email, username, ''
        return '', email, username, item.password

    def bulk_create(self, items: List[schemas.BulkUserItem]) -> BulkResult:
        """Create every valid entry of `items`.

        Emails are normalized the same way `EmailStr` does for single
        registration. Entries missing a field, with an invalid address,
        whose email is already stored or that repeat an earlier email of
        the same batch are reported in `skipped`, in input order; the
        remaining entries are created together.
        """
        result = BulkResult()
        entries = [self._bulk_entry(item) for item in items]
        seen = self.user_repo.existing_emails([e[1] for e in entries if not e[0]])
        for reason, email, username, password in entries:
            if not reason and email in seen:
                reason = 'Email already exists'
            if reason:
                result.skipped.append({'email': email, 'reason': reason})
                continue
            user = models.User(email=email, username=username, password_hash=PWD_CTX.hash(password))
            self.user_repo.create(user)
            seen.add(email)
            result.created.append(user)
            result.notices.append(WelcomeNotice(to=email, username=username, password=password))
        try:
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        for user in result.created:
            self.session.refresh(user)
        logger.info("bulk user creation: %d created, %d skipped", len(result.created), len(result.skipped))
        return result


class ExamCatalogService:
    """Exam authoring, listing and removal."""
    def __init__(self, session: Session, clock: Clock = models.utcnow):
        self.session = session
        self.clock = clock
        self.exam_repo = repositories.ExamRepository(session)
        self.q_repo = repositories.QuestionRepository(session)

    def create_exam(self, payload: schemas.ExamIn) -> models.Exam:
        """Create an exam with its questions and options in one transaction.

        Each question is created, then its options, then it is sealed with
        the option marked correct (if any).
        """
        exam = models.Exam(
            title=payload.title,
            description=payload.description,
            duration_minutes=payload.duration,
            start_time=payload.start_time,
            end_time=payload.end_time,
        )
        try:
            self.exam_repo.create(exam)
            for qin in payload.questions:
                question = models.Question(exam_id=exam.id, text=qin.text)
                options = [models.QuestionOption(text=o.text) for o in qin.options]
                self.q_repo.create(question, options)
                for oin, option in zip(qin.options, options):
                    if oin.correct:
                        self.q_repo.seal(question, option)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        self.session.refresh(exam)
        logger.info("exam %s created with %d questions", exam.id, len(payload.questions))
        return exam

    def list_open(self) -> List[models.Exam]:
        """Exams whose window contains the current time."""
        return self.exam_repo.list_open(self.clock())

    def list_all(self) -> List[models.Exam]:
        return self.exam_repo.list_newest_first()

    def get_exam(self, exam_id: int) -> models.Exam:
        exam = self.exam_repo.get(exam_id)
        if not exam:
            raise errors.NotFound('Exam not found')
        return exam

    def exam_detail(self, exam_id: int, reveal_answers: bool = False) -> dict:
        """Return the exam with nested questions and options.

        Correctness is only included when `reveal_answers` is set (admin
        views).
        """
        exam = self.get_exam(exam_id)
        questions = self.q_repo.list_for_exam(exam_id)
        options = self.q_repo.options_by_question([q.id for q in questions])
        out = exam_out(exam)
        out['questions'] = []
        for q in questions:
            item = {'id': q.id, 'text': q.text, 'options': []}
            if reveal_answers:
                item['correct_option_id'] = q.correct_option_id
                item['sealed'] = q.sealed
            for o in options[q.id]:
                opt = {'id': o.id, 'text': o.text}
                if reveal_answers:
                    opt['correct'] = q.sealed and o.id == q.correct_option_id
                item['options'].append(opt)
            out['questions'].append(item)
        return out

    def delete_exam(self, exam_id: int) -> None:
        """Delete an exam with its questions, options, sessions and answers.

        Everything happens in one transaction; if the exam row is gone at
        the final step nothing is removed and NotFound is raised.
        """
        try:
            if not self.exam_repo.delete_cascade(exam_id):
                raise errors.NotFound('Exam not found or already deleted')
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        logger.info("exam %s deleted", exam_id)


class ExamSessionService:
    """Lifecycle of one user's attempt at one exam: start then submit."""
    def __init__(self, session: Session, clock: Clock = models.utcnow):
        self.session = session
        self.clock = clock
        self.exam_repo = repositories.ExamRepository(session)
        self.q_repo = repositories.QuestionRepository(session)
        self.session_repo = repositories.SessionRepository(session)
        self.answer_repo = repositories.AnswerRepository(session)

    def start(self, user_id: int, exam_id: int) -> models.ExamSession:
        """Open a new Active session for `user_id` on `exam_id`."""
        exam = self.exam_repo.get(exam_id)
        if not exam:
            raise errors.NotFound('Exam not found')
        now = self.clock()
        if not exam.is_open(now):
            raise errors.InvalidTime()
        self._ensure_no_session(user_id, exam_id)
        exam_session = models.ExamSession(exam_id=exam_id, user_id=user_id, start_time=now)
        try:
            self.session_repo.create(exam_session)
            self.session.commit()
        except IntegrityError:
            # a concurrent start won the unique (user_id, exam_id) slot
            self.session.rollback()
            self._ensure_no_session(user_id, exam_id)
            raise errors.SessionExists()
        self.session.refresh(exam_session)
        logger.info("session %s started: user=%s exam=%s", exam_session.id, user_id, exam_id)
        return exam_session

    def _ensure_no_session(self, user_id: int, exam_id: int) -> None:
        if self.session_repo.find(user_id, exam_id, completed=True):
            raise errors.AlreadyTaken()
        if self.session_repo.find(user_id, exam_id, completed=False):
            raise errors.SessionExists()

    def submit(self, user_id: int, exam_id: int, answers: List[dict]) -> models.ExamSession:
        """Record `answers` and complete the Active session atomically.

        Every answer must name a question of this exam and one of that
        question's options; otherwise nothing is stored and the session
        stays Active. Repeated answers for a question keep the last one.
        """
        active = self.session_repo.find(user_id, exam_id, completed=False)
        if not active:
            raise errors.SessionNotFound()
        questions = self.q_repo.list_for_exam(exam_id)
        options = self.q_repo.options_by_question([q.id for q in questions])
        allowed = {qid: {o.id for o in opts} for qid, opts in options.items()}
        latest: Dict[int, int] = {}
        for a in answers:
            qid, oid = a['question_id'], a['selected_option_id']
            if qid not in allowed:
                raise errors.ValidationError(f"question {qid} is not part of this exam")
            if oid not in allowed[qid]:
                raise errors.ValidationError(f"option {oid} does not belong to question {qid}")
            latest[qid] = oid
        rows = [models.ExamAnswer(session_id=active.id, question_id=qid, selected_option_id=oid)
                for qid, oid in latest.items()]
        try:
            # completion is conditional so that only one overlapping submit wins
            if not self.session_repo.complete(active.id, self.clock()):
                raise errors.SessionNotFound()
            self.answer_repo.add_many(rows)
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            raise errors.SessionNotFound()
        except Exception:
            self.session.rollback()
            raise
        self.session.refresh(active)
        logger.info("session %s submitted with %d answers", active.id, len(rows))
        return active


class ResultService:
    """Score views for users and admins."""
    def __init__(self, session: Session):
        self.session = session
        self.exam_repo = repositories.ExamRepository(session)
        self.q_repo = repositories.QuestionRepository(session)
        self.session_repo = repositories.SessionRepository(session)
        self.answer_repo = repositories.AnswerRepository(session)
        self.user_repo = repositories.UserRepository(session)

    def score(self, exam_session: models.ExamSession) -> ScoreReport:
        """Score a completed session."""
        if not exam_session.completed:
            raise errors.ResultsNotFound()
        questions = self.q_repo.list_for_exam(exam_session.exam_id)
        answers = self.answer_repo.list_for_session(exam_session.id)
        return score_answers(questions, answers)

    def user_result(self, user_id: int, exam_id: int) -> dict:
        """Reduced score summary for the caller's own completed session."""
        completed = self.session_repo.find(user_id, exam_id, completed=True)
        if not completed:
            raise errors.ResultsNotFound()
        report = self.score(completed)
        return {
            'score': report.score,
            'total_questions': report.total_questions,
            'correct_answers': report.correct_answers,
            'incorrect_answers': report.incorrect_answers,
        }

    def user_results(self, user_id: int) -> List[dict]:
        """Summaries of every exam the user has completed."""
        out = []
        for s in self.session_repo.list_completed_for_user(user_id):
            exam = self.exam_repo.get(s.exam_id)
            report = self.score(s)
            out.append({
                'exam_id': s.exam_id,
                'exam_title': exam.title if exam else None,
                'score': report.score,
                'total_questions': report.total_questions,
                'completed_at': s.end_time,
            })
        return out

    def exam_results(self, exam_id: int) -> List[dict]:
        """Every session of an exam with user details and per-question outcomes."""
        if not self.exam_repo.get(exam_id):
            raise errors.NotFound('Exam not found')
        option_text = self._option_texts(exam_id)
        total = len(self.q_repo.list_for_exam(exam_id))
        return [self._session_result(s, option_text, total) for s in self.session_repo.list_for_exam(exam_id)]

    def user_exam_result(self, exam_id: int, user_id: int) -> dict:
        """Detailed result of one user's session for an exam."""
        exam_session = self.session_repo.find(user_id, exam_id)
        if not exam_session:
            raise errors.NotFound('No exam session found for this user and exam.')
        total = len(self.q_repo.list_for_exam(exam_id))
        out = self._session_result(exam_session, self._option_texts(exam_id), total)
        if not exam_session.completed:
            out['message'] = 'Exam session not completed.'
        return out

    def _option_texts(self, exam_id: int) -> Dict[int, str]:
        questions = self.q_repo.list_for_exam(exam_id)
        grouped = self.q_repo.options_by_question([q.id for q in questions])
        return {o.id: o.text for opts in grouped.values() for o in opts}

    def _session_result(self, s: models.ExamSession, option_text: Dict[int, str], total: int) -> dict:
        user = self.user_repo.get(s.user_id)
        out = {
            'session_id': s.id,
            'start_time': s.start_time,
            'end_time': s.end_time,
            'completed': s.completed,
            'user_id': s.user_id,
            'user_email': user.email if user else None,
            'username': user.username if user else None,
            'score': None,
            'total_questions': total,
            'correct_answers': None,
            'answers': [],
        }
        if not s.completed:
            return out
        report = self.score(s)
        out['score'] = report.score
        out['total_questions'] = report.total_questions
        out['correct_answers'] = report.correct_answers
        out['answers'] = [_outcome_out(o, option_text) for o in report.outcomes]
        return out


def _outcome_out(outcome, option_text: Dict[int, str]) -> dict:
    return {
        'question_id': outcome.question_id,
        'question_text': outcome.question_text,
        'selected_option_id': outcome.selected_option_id,
        'selected_option_text': option_text.get(outcome.selected_option_id),
        'correct_option_id': outcome.correct_option_id,
        'correct_option_text': option_text.get(outcome.correct_option_id),
        'is_correct': outcome.is_correct,
    }
