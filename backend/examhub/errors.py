"""Domain error taxonomy.

Services raise these exceptions; the application's exception handlers
turn them into the `{"error": {"code", "message"}}` envelope using the
class-level `code` and `status_code`.
"""


class ExamHubError(Exception):
    code = "SERVER_ERROR"
    status_code = 500
    message = "An unexpected error occurred"

    def __init__(self, message=None):
        self.message = message or self.message
        super().__init__(self.message)


class ValidationError(ExamHubError):
    code = "VALIDATION_ERROR"
    status_code = 400
    message = "Invalid request"


class AuthError(ExamHubError):
    code = "AUTH_ERROR"
    status_code = 401
    message = "Please authenticate"


class NotFound(ExamHubError):
    code = "NOT_FOUND"
    status_code = 404
    message = "Not found"


class UserExists(ExamHubError):
    code = "USER_EXISTS"
    status_code = 400
    message = "User already exists with this email"


class InvalidTime(ExamHubError):
    code = "INVALID_TIME"
    status_code = 400
    message = "Exam is not available at this time"


class AlreadyTaken(ExamHubError):
    code = "EXAM_ALREADY_TAKEN"
    status_code = 400
    message = "You have already completed this exam"


class SessionExists(ExamHubError):
    code = "SESSION_EXISTS"
    status_code = 400
    message = "Active exam session already exists"


class SessionNotFound(ExamHubError):
    code = "SESSION_NOT_FOUND"
    status_code = 404
    message = "No active exam session found"


class ResultsNotFound(ExamHubError):
    code = "RESULTS_NOT_FOUND"
    status_code = 404
    message = "No completed exam session found"
