from .user import User, ROLES, STAFF_ROLES
from .password_reset_token import PasswordResetToken
from .student import Student
from .instructor import Instructor
from .course import Course, CourseStudent, CourseInstructor, COURSE_TYPE_LABELS
from .lesson import Lesson
from .absence import StudentAbsence
from .criteria import EvaluationSubject, EvaluationCriterion
from .evaluation import StudentEvaluation, EvaluationItemScore
from .external_test import ExternalTest, EXTERNAL_TEST_NAMES
from .student_skills import StudentSkills

__all__ = [
    "User",
    "ROLES",
    "STAFF_ROLES",
    "PasswordResetToken",
    "Student",
    "Instructor",
    "Course",
    "CourseStudent",
    "CourseInstructor",
    "COURSE_TYPE_LABELS",
    "Lesson",
    "StudentAbsence",
    "EvaluationSubject",
    "EvaluationCriterion",
    "StudentEvaluation",
    "EvaluationItemScore",
    "ExternalTest",
    "EXTERNAL_TEST_NAMES",
    "StudentSkills"
]
