from sqlmodel import Session as DBSession, select
from models.database.db_models import User, Activity, ClassMembership, ClassRole, UserRole
from services.errors import NotFound, Unauthorized
from typing import Set


# Check if user has specific role in a given class
def user_has_role_in_class(user: User, class_id: int, role: ClassRole, db: DBSession) -> bool:
    membership = db.exec(
        select(ClassMembership).where(
            ClassMembership.user_id == user.id,
            ClassMembership.class_id == class_id,
            ClassMembership.role == role,
            ClassMembership.is_active == True
        )
    ).first()
    return membership is not None


# Roster: students currently enrolled in a class
def get_enrolled_student_ids(class_id: int, db: DBSession) -> Set[int]:
    student_ids = db.exec(
        select(ClassMembership.user_id).where(
            ClassMembership.class_id == class_id,
            ClassMembership.role == ClassRole.STUDENT,
            ClassMembership.is_active == True
        )
    ).all()
    return set(student_ids)


def get_activity_or_404(activity_id: int, db: DBSession) -> Activity:
    activity = db.get(Activity, activity_id)
    if not activity:
        raise NotFound("Activity not found")
    return activity


# Check if user is the teacher who owns the activity
def user_owns_activity(user: User, activity: Activity) -> bool:
    return user.role == UserRole.TEACHER and activity.teacher_id == user.id


# Check if user is an enrolled student of the activity's class
def user_is_enrolled_student(user: User, activity: Activity, db: DBSession) -> bool:
    if user.role != UserRole.STUDENT:
        return False
    return user_has_role_in_class(user, activity.class_id, ClassRole.STUDENT, db)


def require_student_access(user: User, activity: Activity, db: DBSession):
    if user is None or user.role != UserRole.STUDENT:
        raise Unauthorized("Only students can perform this action")
    if not user_is_enrolled_student(user, activity, db):
        raise Unauthorized("You must be enrolled in this class to access this activity")


def require_activity_owner(user: User, activity: Activity):
    if user is None or not user_owns_activity(user, activity):
        raise Unauthorized("Only the teacher who owns this activity can perform this action")


# Students enrolled in the class or the owning teacher
def require_activity_access(user: User, activity: Activity, db: DBSession):
    if user is None:
        raise Unauthorized("Missing principal")
    if user_owns_activity(user, activity) or user_is_enrolled_student(user, activity, db):
        return
    raise Unauthorized("Access denied. You must be a member of this class to access this activity.")

