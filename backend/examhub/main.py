"""FastAPI application factory and HTTP controllers.

This module defines the HTTP endpoints of the ExamHub backend.
Controllers are intentionally thin: they accept requests, delegate to
services, and wrap results in the `{"data": ...}` envelope. Errors are
rendered by the exception handlers as `{"error": {"code", "message"}}`.

Endpoints implemented:
- POST /auth/register, POST /auth/login, GET /auth/me, POST /auth/logout
- GET /exams, GET /exams/results, GET /exams/{id}
- POST /exams/{id}/start, POST /exams/{id}/submit, GET /exams/{id}/results
- POST /admin/login
- GET/POST /admin/exams, GET/DELETE /admin/exams/{id}
- GET /admin/exams/{id}/results, GET /admin/exams/{id}/results/{user_id}
- GET/POST /admin/users, POST /admin/users/bulk
- GET /health
"""

import json
import logging
import time
import uuid
from typing import Callable, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from sqlalchemy.engine import Engine
from sqlmodel import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import errors, models, services
from .auth import get_current_admin, get_current_user
from .config import Settings
from .database import build_engine, create_db_and_tables, get_session
from .mailer import Mailer, deliver_welcome_emails
from .schemas import BulkUsersIn, ExamIn, LoginIn, RegisterIn, SubmissionIn

logger = logging.getLogger("examhub.api")

_HTTP_CODES = {
    400: "VALIDATION_ERROR",
    401: "AUTH_ERROR",
    403: "AUTH_ERROR",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
}


def _error(status_code: int, code: str, message: str, headers: Optional[dict] = None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={'error': {'code': code, 'message': message}}, headers=headers)


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_clock(request: Request) -> Callable:
    return request.app.state.clock


def get_mailer(request: Request) -> Mailer:
    return request.app.state.mailer


def _session_out(s: models.ExamSession) -> dict:
    return {
        'id': s.id,
        'exam_id': s.exam_id,
        'user_id': s.user_id,
        'start_time': s.start_time,
        'end_time': s.end_time,
        'completed': s.completed,
    }


auth_router = APIRouter(prefix='/auth', tags=['auth'])
exams_router = APIRouter(prefix='/exams', tags=['exams'])
admin_router = APIRouter(prefix='/admin', tags=['admin'])


@auth_router.post('/register', status_code=201)
def register(payload: RegisterIn, db: Session = Depends(get_session), settings: Settings = Depends(get_settings)):
    """Register a new user and return it with a bearer token."""
    user, token = services.AuthService(db, settings).register(payload.email, payload.username, payload.password)
    return {'data': {'user': services.user_out(user), 'token': token}}


@auth_router.post('/login')
def login(payload: LoginIn, db: Session = Depends(get_session), settings: Settings = Depends(get_settings)):
    """Authenticate a user and return a signed JWT token.

    The token carries only the user id as subject and expires after the
    configured lifetime (7 days by default).
    """
    user, token = services.AuthService(db, settings).authenticate(payload.email, payload.password)
    return {'data': {'user': services.user_out(user), 'token': token}}


@auth_router.get('/me')
def me(user: models.User = Depends(get_current_user)):
    return {'data': {'user': services.user_out(user)}}


@auth_router.post('/logout')
def logout(user: models.User = Depends(get_current_user)):
    """Tokens are stateless; the client discards its token."""
    return {'data': {'message': 'Logged out successfully'}}


@exams_router.get('')
def list_open_exams(db: Session = Depends(get_session), clock=Depends(get_clock), user: models.User = Depends(get_current_user)):
    """List exams whose window `[start_time, end_time)` contains now."""
    exams = services.ExamCatalogService(db, clock).list_open()
    return {'data': [services.exam_out(e) for e in exams]}


@exams_router.get('/results')
def my_results(db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    """All of the caller's completed exams with their scores."""
    return {'data': services.ResultService(db).user_results(user.id)}


@exams_router.get('/{exam_id}')
def exam_detail(exam_id: int, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    """Exam with questions and options; correct answers are not revealed."""
    return {'data': services.ExamCatalogService(db).exam_detail(exam_id)}


@exams_router.post('/{exam_id}/start', status_code=201)
def start_exam(exam_id: int, db: Session = Depends(get_session), clock=Depends(get_clock), user: models.User = Depends(get_current_user)):
    exam_session = services.ExamSessionService(db, clock).start(user.id, exam_id)
    return {'data': _session_out(exam_session)}


@exams_router.post('/{exam_id}/submit')
def submit_exam(exam_id: int, submission: SubmissionIn, db: Session = Depends(get_session), clock=Depends(get_clock), user: models.User = Depends(get_current_user)):
    """Store the submitted answers and complete the caller's active session."""
    answers = [{'question_id': a.question_id, 'selected_option_id': a.selected_option_id} for a in submission.answers]
    services.ExamSessionService(db, clock).submit(user.id, exam_id, answers)
    return {'data': {'message': 'Exam submitted successfully'}}


@exams_router.get('/{exam_id}/results')
def my_exam_result(exam_id: int, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    return {'data': services.ResultService(db).user_result(user.id, exam_id)}


@admin_router.post('/login')
def admin_login(payload: LoginIn, db: Session = Depends(get_session), settings: Settings = Depends(get_settings)):
    """Authenticate an admin; the token is only valid on admin routes."""
    admin, token = services.AuthService(db, settings).authenticate_admin(payload.email, payload.password)
    return {'data': {'admin': services.admin_out(admin), 'token': token}}


@admin_router.get('/exams')
def admin_list_exams(db: Session = Depends(get_session), admin: models.Admin = Depends(get_current_admin)):
    exams = services.ExamCatalogService(db).list_all()
    return {'data': [services.exam_out(e) for e in exams]}


@admin_router.post('/exams', status_code=201)
def admin_create_exam(payload: ExamIn, db: Session = Depends(get_session), admin: models.Admin = Depends(get_current_admin)):
    """Author an exam with nested questions and options."""
    exam = services.ExamCatalogService(db).create_exam(payload)
    return {'data': {'message': 'Exam created successfully', 'exam': services.exam_out(exam)}}


@admin_router.get('/exams/{exam_id}')
def admin_exam_detail(exam_id: int, db: Session = Depends(get_session), admin: models.Admin = Depends(get_current_admin)):
    return {'data': services.ExamCatalogService(db).exam_detail(exam_id, reveal_answers=True)}


@admin_router.get('/exams/{exam_id}/results')
def admin_exam_results(exam_id: int, db: Session = Depends(get_session), admin: models.Admin = Depends(get_current_admin)):
    return {'data': services.ResultService(db).exam_results(exam_id)}


@admin_router.get('/exams/{exam_id}/results/{user_id}')
def admin_user_exam_result(exam_id: int, user_id: int, db: Session = Depends(get_session), admin: models.Admin = Depends(get_current_admin)):
    return {'data': services.ResultService(db).user_exam_result(exam_id, user_id)}


@admin_router.delete('/exams/{exam_id}')
def admin_delete_exam(exam_id: int, db: Session = Depends(get_session), admin: models.Admin = Depends(get_current_admin)):
    """Delete an exam and all of its dependent rows in one transaction."""
    services.ExamCatalogService(db).delete_exam(exam_id)
    return {'data': {'message': 'Exam deleted successfully'}}


@admin_router.get('/users')
def admin_list_users(db: Session = Depends(get_session), admin: models.Admin = Depends(get_current_admin)):
    users = services.UserAdminService(db).list_users()
    return {'data': [services.user_out(u) for u in users]}


@admin_router.post('/users', status_code=201)
def admin_create_user(payload: RegisterIn, background_tasks: BackgroundTasks, db: Session = Depends(get_session), mailer: Mailer = Depends(get_mailer), admin: models.Admin = Depends(get_current_admin)):
    user, notice = services.UserAdminService(db).create_user(payload.email, payload.username, payload.password)
    background_tasks.add_task(deliver_welcome_emails, mailer, [notice])
    return {'data': {'user': services.user_out(user)}}


@admin_router.post('/users/bulk', status_code=201)
def admin_bulk_create_users(payload: BulkUsersIn, background_tasks: BackgroundTasks, db: Session = Depends(get_session), mailer: Mailer = Depends(get_mailer), admin: models.Admin = Depends(get_current_admin)):
    """Create many users; invalid or duplicate entries are skipped.

    Welcome emails (with the plaintext password) are delivered after the
    response is sent; delivery failures are logged only.
    """
    result = services.UserAdminService(db).bulk_create(payload.users)
    if result.notices:
        background_tasks.add_task(deliver_welcome_emails, mailer, result.notices)
    return {'data': {
        'message': f"Bulk user creation processed. {len(result.created)} users created, {len(result.skipped)} skipped.",
        'created': [services.user_out(u) for u in result.created],
        'skipped': result.skipped,
    }}


def _request_log(request: Request, req_id: str, started: float, **extra) -> str:
    """One-line JSON summary of a handled request."""
    entry = {
        "request_id": req_id,
        "method": request.method,
        "path": request.url.path,
        "duration_ms": round((time.perf_counter() - started) * 1000.0, 2),
    }
    entry.update(extra)
    return json.dumps(entry, ensure_ascii=True)


def _register_exception_handlers(app: FastAPI):
    @app.exception_handler(errors.ExamHubError)
    async def examhub_error_handler(request: Request, exc: errors.ExamHubError):
        if exc.status_code >= 500:
            logger.error("request %s failed: %s", request.url.path, exc.message)
        return _error(exc.status_code, exc.code, exc.message)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        problems = []
        for err in exc.errors():
            loc = '.'.join(str(p) for p in err.get('loc', ()) if p != 'body')
            problems.append(f"{loc}: {err.get('msg')}" if loc else str(err.get('msg')))
        return _error(400, 'VALIDATION_ERROR', '; '.join(problems) or 'Invalid request')

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        code = _HTTP_CODES.get(exc.status_code, f"HTTP_{exc.status_code}")
        message = exc.detail if isinstance(exc.detail, str) else 'Request failed'
        return _error(exc.status_code, code, message, headers=getattr(exc, 'headers', None))

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("unhandled error on %s %s", request.method, request.url.path)
        return _error(500, 'SERVER_ERROR', 'Something went wrong')


def create_app(settings: Optional[Settings] = None, engine: Optional[Engine] = None,
               mailer: Optional[Mailer] = None, clock: Optional[Callable] = None) -> FastAPI:
    """Build the application with explicit collaborators.

    Settings are validated on construction; the engine, mailer and clock
    default to ones derived from them and are stored on `app.state` for
    the request dependencies.
    """
    settings = settings or Settings()
    if not logging.getLogger().handlers:
        logging.basicConfig(level=settings.LOG_LEVEL)

    app = FastAPI(title="ExamHub API")
    app.state.settings = settings
    app.state.engine = engine or build_engine(settings.DATABASE_URL)
    app.state.mailer = mailer or Mailer(settings)
    app.state.clock = clock or models.utcnow
    create_db_and_tables(app.state.engine)
    if not settings.email_enabled:
        logger.warning("SMTP_HOST not configured; welcome emails will not be delivered")

    # Wide-open CORS keeps local HTML frontends working without extra config in dev.
    if settings.ALLOW_DEV_CORS:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    @app.middleware("http")
    async def request_context_middleware(request: Request, call_next):
        req_id = request.headers.get("X-Request-ID", uuid.uuid4().hex)
        request.state.request_id = req_id
        started = time.perf_counter()
        try:
            response: Response = await call_next(request)
        except Exception:
            logger.exception("request_failed %s", _request_log(request, req_id, started))
            raise
        response.headers["X-Request-ID"] = req_id
        logger.info("request_done %s", _request_log(request, req_id, started, status_code=response.status_code))
        return response

    _register_exception_handlers(app)
    app.include_router(auth_router)
    app.include_router(exams_router)
    app.include_router(admin_router)

    @app.get("/health")
    def health():
        """Lightweight health check for uptime monitoring."""
        return {"data": {"status": "ok"}}

    return app
