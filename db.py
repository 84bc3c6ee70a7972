import uuid
from datetime import datetime
from typing import Generator

from sqlalchemy import Boolean, DateTime, ForeignKey, String, create_engine, false, func
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker
from sqlalchemy.pool import StaticPool

from config import DATABASE_URL

APPROVAL_STATUSES = ("pending", "approved", "rejected")
ROLES = ("admin", "user")


def _make_engine(url: str):
    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        # in-memory sqlite only lives as long as its one connection
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        return create_engine(url, **kwargs)
    return create_engine(url, pool_pre_ping=True)


engine = _make_engine(DATABASE_URL)
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)


def _new_id() -> str:
    return str(uuid.uuid4())


# --------------------
# DB Models
# --------------------
class Base(DeclarativeBase):
    pass


class User(Base):
    """Auth subsystem row: identity, login email and password hash."""

    __tablename__ = "users"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    email: Mapped[str] = mapped_column(String(320), unique=True, index=True)
    password_hash: Mapped[str] = mapped_column(String(255))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class Profile(Base):
    __tablename__ = "profiles"
    id: Mapped[str] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    full_name: Mapped[str | None] = mapped_column(String(200), nullable=True)

    # "pending" | "approved" | "rejected"
    approval_status: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        default="pending",
        server_default="pending",
    )

    # routes this user's Plaid calls to the sandbox environment
    is_test_user: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=false())

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )


class UserRole(Base):
    __tablename__ = "user_roles"
    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[str] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        unique=True,
        index=True,
        nullable=False,
    )
    role: Mapped[str] = mapped_column(String(16), nullable=False, default="user")  # "admin" | "user"


Base.metadata.create_all(bind=engine)


# --------------------
# Helpers / deps
# --------------------
def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def is_test_user(db: Session, user_id: str | None) -> bool:
    if not user_id:
        return False
    profile = db.query(Profile).filter(Profile.id == user_id).one_or_none()
    return bool(profile and profile.is_test_user)
