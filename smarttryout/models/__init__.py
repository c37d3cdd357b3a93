"""
Models Package
Tables of the local stand-in backend, keyed by the hosted table names
"""
from smarttryout.models.user import User, Profile
from smarttryout.models.school import School
from smarttryout.models.exam import Exam
from smarttryout.models.question import Question, Option
from smarttryout.models.attempt import Attempt, Answer

TABLES = {
    'profiles': Profile,
    'schools': School,
    'exams': Exam,
    'questions': Question,
    'options': Option,
    'exam_attempts': Attempt,
    'user_answers': Answer,
}

__all__ = [
    'User', 'Profile', 'School', 'Exam', 'Question', 'Option',
    'Attempt', 'Answer', 'TABLES',
]
