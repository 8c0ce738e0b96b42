from ..enums import ClassRole, UserRole, FinalScorePolicy, ActivityDifficulty, NotificationKind
from .user_models import User, AuthSession
from .class_models import Class, ClassMembership
from .item_models import Item, TestCase
from .activity_models import Activity, ActivityItem
from .submission_models import ActivitySubmission, ActivityStudent
from .progress_models import ActivityProgress, ProgressOwner
from .notification_models import ActivityNotification

# Export all models for backward compatibility
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
