import structlog
import uvicorn
from fastapi import Depends, FastAPI, HTTPException, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

import admin
import plaid_proxy
from auth import (
    create_access_token,
    get_current_user,
    get_function_session,
    get_role,
    is_admin,
    pwd_context,
    require_admin,
)
from config import HOST, PORT
from db import Profile, User, UserRole, get_db, is_test_user
from errors import FunctionError, function_error_handler, validation_error_handler
from log import configure_logging
from plaid_proxy import PlaidClientFactory, get_plaid_client_factory, resolve_environment
from schemas import (
    AccessTokenOut,
    AdminUserOut,
    ApprovalIn,
    ApprovalOut,
    AuthSession,
    CreateLinkTokenIn,
    DeleteUserIn,
    DeleteUserOut,
    ExchangeTokenIn,
    FetchDataIn,
    FetchDataOut,
    LinkTokenOut,
    LoginIn,
    MeOut,
    RegisterIn,
    RoleOut,
    TokenOut,
)

configure_logging()
logger = structlog.get_logger(__name__)


# --------------------
# App
# --------------------
app = FastAPI(title="MoneyStack API")

# the functions are called straight from the browser on any origin
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_exception_handler(FunctionError, function_error_handler)
app.add_exception_handler(RequestValidationError, validation_error_handler)


@app.get("/")
def root():
    return {"name": "MoneyStack API", "ok": True}


@app.get("/health")
def health():
    return {"ok": True}


# --------------------
# Auth
# --------------------
@app.post("/auth/register")
def register(body: RegisterIn, db: Session = Depends(get_db)):
    email = body.email.lower().strip()

    if len(body.password) < 8:
        raise HTTPException(status_code=400, detail="Password must be at least 8 characters")

    user = User(email=email, password_hash=pwd_context.hash(body.password))
    db.add(user)
    try:
        db.flush()  # assigns user.id
        db.add(Profile(id=user.id, full_name=body.full_name, approval_status="pending"))
        db.add(UserRole(user_id=user.id, role="user"))
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=409, detail="Email already registered")

    logger.info("user_registered", user_id=user.id)
    return {"status": "registered"}


@app.post("/auth/login", response_model=TokenOut)
def login(body: LoginIn, db: Session = Depends(get_db)):
    email = body.email.lower().strip()
    user = db.query(User).filter(User.email == email).first()

    if not user or not pwd_context.verify(body.password, user.password_hash):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")

    return TokenOut(access_token=create_access_token(user.id))


@app.get("/me", response_model=MeOut)
def me(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    profile = db.query(Profile).filter(Profile.id == user.id).one_or_none()
    return MeOut(
        id=user.id,
        email=user.email,
        full_name=profile.full_name if profile else None,
        approval_status=profile.approval_status if profile else None,
        created_at=user.created_at,
    )


@app.get("/me/approval", response_model=ApprovalOut)
def my_approval(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    profile = db.query(Profile).filter(Profile.id == user.id).one_or_none()
    return ApprovalOut(approval_status=profile.approval_status if profile else None)


@app.get("/me/role", response_model=RoleOut)
def my_role(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    role = get_role(db, user.id)
    if role is None:
        raise HTTPException(status_code=404, detail="Role not found")
    return RoleOut(role=role)


# --------------------
# Admin
# --------------------
@app.get("/admin/users", response_model=list[AdminUserOut])
def admin_list_users(
    session: AuthSession = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return admin.list_users(db)


@app.patch("/admin/users/{user_id}/approval", response_model=AdminUserOut)
def admin_set_approval(
    user_id: str,
    body: ApprovalIn,
    session: AuthSession = Depends(require_admin),
    db: Session = Depends(get_db),
):
    profile = admin.set_approval(db, user_id, body.status, admin_id=session.user_id)
    if not profile:
        raise HTTPException(status_code=404, detail="User not found")
    return AdminUserOut(
        id=profile.id,
        full_name=profile.full_name,
        approval_status=profile.approval_status,
        created_at=profile.created_at,
    )


# --------------------
# Functions
# --------------------
@app.options("/functions/{name}", response_class=PlainTextResponse)
def function_options(name: str):
    # CORSMiddleware answers real preflights; a bare OPTIONS lands here
    return "ok"


@app.post("/functions/create-link-token", response_model=LinkTokenOut)
def create_link_token(
    body: CreateLinkTokenIn,
    session: AuthSession = Depends(get_function_session),
    db: Session = Depends(get_db),
    client_factory: PlaidClientFactory = Depends(get_plaid_client_factory),
):
    env = resolve_environment(is_test_user(db, body.user_id))
    logger.info("create_link_token_called", user_id=body.user_id, environment=env.name)
    try:
        link_token = plaid_proxy.create_link_token(
            env,
            body.user_id,
            access_token=body.access_token,
            client_factory=client_factory,
        )
    except FunctionError:
        raise
    except Exception as e:
        logger.exception("create_link_token_error", user_id=body.user_id)
        raise FunctionError(500, str(e) or "Unknown error")
    return LinkTokenOut(link_token=link_token)


@app.post("/functions/exchange-token", response_model=AccessTokenOut)
def exchange_token(
    body: ExchangeTokenIn,
    session: AuthSession = Depends(get_function_session),
    db: Session = Depends(get_db),
    client_factory: PlaidClientFactory = Depends(get_plaid_client_factory),
):
    user_id = body.user_id or session.user_id
    env = resolve_environment(is_test_user(db, user_id))
    logger.info("exchange_token_called", user_id=user_id, environment=env.name)
    try:
        access_token = plaid_proxy.exchange_public_token(env, body.public_token, client_factory=client_factory)
    except FunctionError:
        raise
    except Exception as e:
        logger.exception("exchange_token_error", user_id=user_id)
        raise FunctionError(500, str(e) or "Unknown error")
    return AccessTokenOut(access_token=access_token)


@app.post("/functions/fetch-data", response_model=FetchDataOut)
def fetch_data(
    body: FetchDataIn,
    session: AuthSession = Depends(get_function_session),
    db: Session = Depends(get_db),
    client_factory: PlaidClientFactory = Depends(get_plaid_client_factory),
):
    user_id = body.user_id or session.user_id
    env = resolve_environment(is_test_user(db, user_id))
    logger.info(
        "fetch_data_called",
        user_id=user_id,
        environment=env.name,
        days_back=body.days_back,
        max_transactions=body.max_transactions,
    )
    try:
        result = plaid_proxy.fetch_data(
            env,
            body.access_token,
            days_back=body.days_back,
            max_transactions=body.max_transactions,
            client_factory=client_factory,
        )
    except FunctionError:
        raise
    except Exception as e:
        logger.exception("fetch_data_error", user_id=user_id)
        raise FunctionError(500, str(e) or "Unknown error")

    if result.warning:
        logger.warning("fetch_data_partial", user_id=user_id, warning=result.warning)
    return result


@app.post("/functions/delete-user", response_model=DeleteUserOut)
def delete_user(
    body: DeleteUserIn,
    session: AuthSession = Depends(get_function_session),
    db: Session = Depends(get_db),
):
    if not is_admin(db, session.user_id):
        logger.warning("admin_access_denied", user_id=session.user_id, action="delete_user")
        raise FunctionError(403, "Admin privileges required")
    if not body.user_id:
        raise FunctionError(400, "userId is required")
    if body.user_id == session.user_id:
        raise FunctionError(400, "You cannot delete your own account")

    try:
        deleted = admin.delete_user(db, body.user_id, admin_id=session.user_id)
    except Exception as e:
        logger.exception("delete_user_error", user_id=body.user_id)
        raise FunctionError(500, str(e) or "Unknown error")
    if not deleted:
        raise FunctionError(404, "User not found")
    return DeleteUserOut(success=True)


def run():
    uvicorn.run(app, host=HOST, port=PORT)


if __name__ == "__main__":
    run()
