import os
from datetime import datetime, timedelta, timezone
from typing import Optional
from fastapi import Depends, Request, Response
from fastapi.security import OAuth2PasswordBearer
from sqlmodel import select
from sqlalchemy import delete as sqlalchemy_delete
from sqlalchemy.exc import IntegrityError
from passlib.context import CryptContext
from jose import JWTError, jwt
from pydantic import BaseModel
import secrets
import logging

from . import config
from .db import store_session
from .errors import (
    AlreadyAuthenticated,
    AuthFailure,
    DuplicateEmail,
    Forbidden,
    NotAuthenticated,
    ValidationError,
)
from .models import PASSWORD_MIN, Role, Session, User
from .utils import EMAIL_RE, as_utc, clean_text, normalize_email, now_utc

logger = logging.getLogger(__name__)

# config
# SECRET_KEY should be set in the environment in production. We fall back to a
# predictable value for local testing to avoid breaking tests when the env var
# is not supplied. Do NOT use the fallback in production.
SECRET_KEY = os.getenv("SECRET_KEY", "CHANGE_ME_IN_ENV_FOR_TESTS")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = 60 * 24
# a rendered form stays usable for as long as the session behind it
CSRF_TOKEN_EXPIRE_MINUTES = 60 * config.SESSION_TTL_HOURS
SESSION_COOKIE = "session_token"

# prefer a pure-Python, widely-available scheme for tests and portability;
# keep bcrypt as a fallback if available.
pwd_context = CryptContext(schemes=["pbkdf2_sha256", "bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token", auto_error=False)


class Identity(BaseModel):
    """Resolved caller identity, passed explicitly to every handler."""
    user_id: int
    role: str = Role.user.value
    display_name: str = ''

    @property
    def is_admin(self) -> bool:
        return self.role == Role.admin.value


def identity_for(user: User) -> Identity:
    return Identity(user_id=user.id, role=user.role, display_name=user.display_name)


# ---------------- credential store -----------------

def validate_registration(display_name, phone, email, raw_secret, role=None) -> dict[str, str]:
    errors: dict[str, str] = {}
    if not clean_text(display_name):
        errors['display_name'] = 'name is required'
    if not clean_text(phone):
        errors['phone'] = 'phone is required'
    norm = normalize_email(email)
    if not norm:
        errors['email'] = 'email is required'
    elif not EMAIL_RE.fullmatch(norm):
        errors['email'] = 'please enter a valid email address'
    if not raw_secret:
        errors['password'] = 'password is required'
    elif len(raw_secret) < PASSWORD_MIN:
        errors['password'] = f'password must be at least {PASSWORD_MIN} characters'
    if role not in (None, '', Role.user.value):
        errors['role'] = 'role cannot be chosen at registration'
    return errors


async def get_user_by_email(email: str) -> Optional[User]:
    async with store_session() as sess:
        q = await sess.exec(select(User).where(User.email == normalize_email(email)))
        return q.first()


async def get_user_by_id(user_id: int) -> Optional[User]:
    async with store_session() as sess:
        return await sess.get(User, user_id)


async def register(display_name: str, phone: str, email: str, raw_secret: str, role: str | None = None) -> User:
    """Create a regular user account.

    Raises ValidationError for missing/malformed fields and DuplicateEmail when
    the normalized email is already taken.
    """
    errors = validate_registration(display_name, phone, email, raw_secret, role)
    if errors:
        raise ValidationError(errors)
    norm = normalize_email(email)
    if await get_user_by_email(norm):
        raise DuplicateEmail()
    user = User(
        display_name=clean_text(display_name),
        phone=clean_text(phone),
        email=norm,
        password_hash=pwd_context.hash(raw_secret),
        role=Role.user.value,
    )
    async with store_session() as sess:
        sess.add(user)
        try:
            await sess.commit()
        except IntegrityError:
            # lost a race against a concurrent registration
            await sess.rollback()
            raise DuplicateEmail()
        await sess.refresh(user)
    logger.info('registered user id=%s', user.id)
    return user


async def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


async def verify_credentials(email: str, raw_secret: str) -> User:
    """Return the user for a valid email/password pair or raise AuthFailure.

    Unknown email and wrong password are indistinguishable to the caller.
    """
    user = await get_user_by_email(email or '')
    if not user:
        # keep timing close to the wrong-password path
        pwd_context.dummy_verify()
        raise AuthFailure()
    if not raw_secret or not await verify_password(raw_secret, user.password_hash):
        raise AuthFailure()
    return user


# ---------------- session gate -----------------

async def create_session_for_user(user: User, token: Optional[str] = None, expires_delta: Optional[timedelta] = None) -> str:
    """Create a server-side session and return the session token.

    If token is provided it will be used; otherwise a secure random token
    is generated. Expiry is absolute from creation.
    """
    sess_token = token or secrets.token_urlsafe(32)
    if expires_delta is None:
        expires_delta = timedelta(hours=config.SESSION_TTL_HOURS)
    expires_at = now_utc() + expires_delta
    async with store_session() as s:
        session_row = Session(
            session_token=sess_token,
            user_id=user.id,
            role=user.role,
            display_name=user.display_name,
            expires_at=expires_at,
        )
        s.add(session_row)
        await s.commit()
    return sess_token


async def resolve_session(session_token: str | None) -> Optional[Identity]:
    """Map a session token to an Identity; None means anonymous."""
    if not session_token:
        return None
    async with store_session() as s:
        q = await s.exec(select(Session).where(Session.session_token == session_token))
        sess_row = q.first()
        if not sess_row:
            return None
        expires_at = as_utc(sess_row.expires_at)
        if expires_at and expires_at <= now_utc():
            # expired: delete row and report anonymous
            await s.exec(sqlalchemy_delete(Session).where(Session.session_token == session_token))
            await s.commit()
            return None
        return Identity(user_id=sess_row.user_id, role=sess_row.role, display_name=sess_row.display_name)


async def delete_session(session_token: str | None) -> None:
    """Invalidate a session. Unknown or already-deleted tokens are a no-op."""
    if not session_token:
        return
    async with store_session() as s:
        await s.exec(sqlalchemy_delete(Session).where(Session.session_token == session_token))
        await s.commit()


def require_authenticated(identity: Optional[Identity]) -> Identity:
    if identity is None:
        raise NotAuthenticated()
    return identity


def require_guest(identity: Optional[Identity]) -> None:
    if identity is not None:
        raise AlreadyAuthenticated()


# ---------------- bearer tokens for API clients -----------------

def create_access_token(data: dict, expires_delta: Optional[timedelta] = None):
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    # RFC 7519 recommends NumericDate (seconds since epoch). Encode as int.
    to_encode.update({"exp": int(expire.timestamp())})
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


async def identity_from_access_token(token: str) -> Identity:
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
        sub = payload.get("sub")
        if sub is None or payload.get("type") == "csrf":
            raise NotAuthenticated('could not validate credentials')
        user_id = int(sub)
    except (JWTError, ValueError):
        raise NotAuthenticated('could not validate credentials')
    # role and name always come from the stored user, not from token claims
    user = await get_user_by_id(user_id)
    if user is None:
        raise NotAuthenticated('could not validate credentials')
    return identity_for(user)


# ---------------- csrf tokens for form posts -----------------

def create_csrf_token(user_id: int, expires_delta: Optional[timedelta] = None) -> str:
    to_encode = {"sub": str(user_id), "type": "csrf"}
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=CSRF_TOKEN_EXPIRE_MINUTES)
    to_encode.update({"exp": int(expire.timestamp())})
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def verify_csrf_token(token: str, user_id: int) -> bool:
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError as e:
        logger.info("csrf token rejected: %s", e)
        return False
    # an access token must not pass as a csrf token
    if payload.get("type") != "csrf":
        logger.info("csrf token rejected: wrong type")
        return False
    if payload.get("sub") != str(user_id):
        logger.info("csrf token rejected: issued to another user")
        return False
    return True


# ---------------- FastAPI dependencies -----------------

async def get_identity(request: Request, token: Optional[str] = Depends(oauth2_scheme)) -> Optional[Identity]:
    """Resolve the caller: session cookie first, then a bearer token.

    Returns None for anonymous callers.
    """
    identity = await resolve_session(request.cookies.get(SESSION_COOKIE))
    if identity is not None:
        return identity
    if token:
        return await identity_from_access_token(token)
    return None


async def require_login(identity: Optional[Identity] = Depends(get_identity)) -> Identity:
    """Dependency that enforces an authenticated caller."""
    return require_authenticated(identity)


async def require_guest_request(request: Request, token: Optional[str] = Depends(oauth2_scheme)) -> None:
    """Dependency that bars authenticated callers (login/register).

    Only a live session or a valid bearer token counts as logged in; a stale
    token leaves the caller a guest so they can sign in again.
    """
    identity = await resolve_session(request.cookies.get(SESSION_COOKIE))
    if identity is None and token:
        try:
            identity = await identity_from_access_token(token)
        except NotAuthenticated:
            identity = None
    require_guest(identity)


async def check_csrf(request: Request, identity: Identity) -> None:
    """Cookie-authenticated form posts must carry a ``_csrf`` token issued to
    the same user."""
    form = await request.form()
    token = form.get("_csrf")
    if not token or not verify_csrf_token(token, identity.user_id):
        raise Forbidden("invalid csrf token")


async def require_csrf(request: Request, identity: Identity = Depends(require_login)) -> Identity:
    await check_csrf(request, identity)
    return identity


def set_session_cookie(resp: Response, session_token: str) -> None:
    resp.set_cookie(
        SESSION_COOKIE, session_token,
        httponly=True, samesite='lax', secure=config.COOKIE_SECURE,
        max_age=config.SESSION_TTL_HOURS * 3600, path='/',
    )


def clear_session_cookie(resp: Response) -> None:
    # delete with the same attributes used when setting it so browsers drop it
    resp.delete_cookie(SESSION_COOKIE, path='/', samesite='lax', secure=config.COOKIE_SECURE)
