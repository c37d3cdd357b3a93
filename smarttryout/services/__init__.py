"""
Services Package
"""
from smarttryout.services.exam_service import ExamService
from smarttryout.services.attempt_service import AttemptService
from smarttryout.services.notification_service import TeacherNotifier
from smarttryout.services.exam_session import (
    CountdownTimer,
    ExamSession,
    ExamSessionRegistry,
    SessionState,
)

__all__ = [
    'ExamService',
    'AttemptService',
    'TeacherNotifier',
    'CountdownTimer',
    'ExamSession',
    'ExamSessionRegistry',
    'SessionState',
]
