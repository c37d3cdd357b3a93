"""
Exceptions
Error taxonomy shared by services, routes and socket handlers
"""


class SmartTryoutError(Exception):
    """Base class for every error raised by the application"""
    default_message = 'Something went wrong.'

    def __init__(self, message=None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message


class ValidationError(SmartTryoutError):
    """Bad form or request input"""
    default_message = 'Invalid input.'


class NotFoundError(SmartTryoutError):
    """Invalid access code, missing exam or attempt"""
    default_message = 'Not found.'


class PreconditionError(SmartTryoutError):
    """Exam not published, attempt already completed, wrong role"""
    default_message = 'This action is not available right now.'


class BackendError(SmartTryoutError):
    """A CRUD, procedure, storage or auth call to the backend failed"""
    default_message = 'The server could not complete the request.'


class PartialFailureError(SmartTryoutError):
    """A multi-step authoring flow stopped after applying only part of its steps"""

    def __init__(self, message=None, applied=0, cause=None):
        super().__init__(message)
        self.applied = applied
        self.cause = cause


class SessionStateError(SmartTryoutError):
    """Exam-room operation not allowed in the session's current state"""
    default_message = 'The exam session is not active.'
