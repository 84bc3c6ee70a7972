from datetime import datetime, timedelta, timezone
from typing import Optional

import structlog
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy.orm import Session

from config import ACCESS_TOKEN_MINUTES, JWT_ALG, JWT_SECRET
from db import User, UserRole, get_db
from errors import FunctionError
from schemas import AuthSession

logger = structlog.get_logger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def create_access_token(user_id: str) -> str:
    exp = datetime.now(timezone.utc) + timedelta(minutes=ACCESS_TOKEN_MINUTES)
    payload = {"sub": user_id, "exp": exp}
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALG)


def decode_access_token(token: str) -> str:
    """Return the user id carried by ``token`` or raise 401."""
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALG])
    except JWTError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
    return user_id


def get_current_session(
    creds: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> AuthSession:
    if creds is None or not creds.credentials:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    token = creds.credentials
    return AuthSession(user_id=decode_access_token(token), access_token=token)


def get_function_session(
    creds: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> AuthSession:
    """Same as get_current_session, failing with the /functions error shape.

    The token's user must still exist, so a deleted account's token stops
    working straight away.
    """
    try:
        session = get_current_session(creds)
    except HTTPException as e:
        raise FunctionError(e.status_code, e.detail)
    if db.query(User.id).filter(User.id == session.user_id).first() is None:
        raise FunctionError(status.HTTP_401_UNAUTHORIZED, "User not found")
    return session


def get_current_user(
    session: AuthSession = Depends(get_current_session),
    db: Session = Depends(get_db),
) -> User:
    user = db.query(User).filter(User.id == session.user_id).first()
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
    return user


def get_role(db: Session, user_id: str) -> Optional[str]:
    row = db.query(UserRole).filter(UserRole.user_id == user_id).one_or_none()
    return row.role if row else None


def is_admin(db: Session, user_id: str) -> bool:
    return get_role(db, user_id) == "admin"


def require_admin(
    session: AuthSession = Depends(get_current_session),
    db: Session = Depends(get_db),
) -> AuthSession:
    # a missing role row and a non-admin role get the same answer
    if not is_admin(db, session.user_id):
        logger.warning("admin_access_denied", user_id=session.user_id)
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You do not have admin privileges")
    return session
