import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from db import Profile, User, UserRole
from schemas import AdminUserOut

logger = structlog.get_logger(__name__)


def lookup_emails(db: Session) -> dict[str, str]:
    """Map user id -> email from the auth users table."""
    return {user_id: email for user_id, email in db.query(User.id, User.email).all()}


def list_users(db: Session) -> list[AdminUserOut]:
    """All profiles, newest first, with emails where the auth lookup works."""
    profiles = db.query(Profile).order_by(Profile.created_at.desc()).all()
    users = [
        AdminUserOut(
            id=p.id,
            full_name=p.full_name,
            approval_status=p.approval_status,
            created_at=p.created_at,
        )
        for p in profiles
    ]

    try:
        emails = lookup_emails(db)
    except SQLAlchemyError as e:
        logger.warning("admin_email_lookup_failed", error=str(e))
        db.rollback()
        return users

    for user in users:
        user.email = emails.get(user.id)
    return users


def set_approval(db: Session, user_id: str, status: str, admin_id: str) -> Profile | None:
    """Write an admin decision. Returns None when the user has no profile."""
    if status not in ("approved", "rejected"):
        raise ValueError(f"invalid approval status: {status!r}")

    profile = db.query(Profile).filter(Profile.id == user_id).one_or_none()
    if not profile:
        return None

    previous = profile.approval_status
    profile.approval_status = status
    db.commit()
    db.refresh(profile)

    logger.info(
        "approval_status_changed",
        user_id=user_id,
        admin_id=admin_id,
        previous=previous,
        status=status,
    )
    return profile


def delete_user(db: Session, user_id: str, admin_id: str) -> bool:
    """Remove a user with their role and profile rows. False if no such user."""
    user = db.query(User).filter(User.id == user_id).one_or_none()
    if not user:
        return False

    try:
        db.query(UserRole).filter(UserRole.user_id == user_id).delete(synchronize_session=False)
        db.query(Profile).filter(Profile.id == user_id).delete(synchronize_session=False)
        db.delete(user)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise

    logger.info("user_deleted", user_id=user_id, admin_id=admin_id)
    return True
