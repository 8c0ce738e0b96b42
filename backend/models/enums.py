from enum import Enum

class UserRole(str, Enum):
    STUDENT = "student"
    TEACHER = "teacher"

class ClassRole(str, Enum):
    STUDENT = "student"
    INSTRUCTOR = "instructor"

class FinalScorePolicy(str, Enum):
    LAST_ATTEMPT = "last_attempt"
    HIGHEST_SCORE = "highest_score"

class ActivityDifficulty(str, Enum):
    BEGINNER = "Beginner"
    INTERMEDIATE = "Intermediate"
    ADVANCED = "Advanced"

class NotificationKind(str, Enum):
    ACTIVITY_STARTED = "activity_started"
    ACTIVITY_COMPLETED = "activity_completed"
    DEADLINE_CHANGED = "deadline_changed"
    DEADLINE_REMINDER = "deadline_reminder"
