from .enums import ClassRole, UserRole, FinalScorePolicy, ActivityDifficulty, NotificationKind
from .database.user_models import User, AuthSession
from .database.class_models import Class, ClassMembership
from .database.item_models import Item, TestCase
from .database.activity_models import Activity, ActivityItem
from .database.submission_models import ActivitySubmission, ActivityStudent
from .database.progress_models import ActivityProgress, ProgressOwner
from .database.notification_models import ActivityNotification

__all__ = [
    "ClassRole",
    "UserRole",
    "FinalScorePolicy",
    "ActivityDifficulty",
    "NotificationKind",
    "User",
    "AuthSession",
    "Class",
    "ClassMembership",
    "Item",
    "TestCase",
    "Activity",
    "ActivityItem",
    "ActivitySubmission",
    "ActivityStudent",
    "ActivityProgress",
    "ProgressOwner",
    "ActivityNotification",
]
