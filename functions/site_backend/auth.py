"""
Authentication against Firebase Auth, plus the admin login flow.

Password sign-in goes through the Identity Toolkit REST API (the Admin SDK
cannot check passwords); the resulting ID token is exchanged for a Firebase
session cookie which the site then verifies on every admin request.
"""

from __future__ import annotations

import logging
import secrets
import uuid
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Optional, Protocol

import requests
from firebase_admin import auth as firebase_auth

from shared.constants import MIN_PASSWORD_LENGTH
from shared.firebase_constants import USERS_COLLECTION
from shared.types import User
from site_backend.db import ContentDb
from site_backend.rate_limit import LoginRateLimiter

logger = logging.getLogger(__name__)

SIGN_IN_URL = (
    "https://identitytoolkit.googleapis.com/v1/accounts:signInWithPassword"
)
SIGN_IN_TIMEOUT_SECONDS = 10

# Identity Toolkit error messages -> Firebase client error codes.
IDENTITY_TOOLKIT_ERRORS = {
    "EMAIL_NOT_FOUND": "user-not-found",
    "INVALID_PASSWORD": "wrong-password",
    "INVALID_LOGIN_CREDENTIALS": "wrong-password",
    "INVALID_EMAIL": "invalid-email",
    "USER_DISABLED": "user-disabled",
    "TOO_MANY_ATTEMPTS_TRY_LATER": "too-many-requests",
    "QUOTA_EXCEEDED": "quota-exceeded",
}

LOGIN_ERROR_MESSAGES = {
    "quota-exceeded": "Service temporarily unavailable. Please try again later.",
    "too-many-requests": "Too many attempts. Please try again later.",
    "wrong-password": "Invalid email or password",
    "user-not-found": "Invalid email or password",
    "network-request-failed": "Network error. Please check your connection.",
}
DEFAULT_LOGIN_ERROR = "Failed to sign in"
NOT_ADMIN_ERROR = "Admin access required"

# Failures that count towards the login backoff.
RATE_LIMITED_ERRORS = frozenset(
    {"quota-exceeded", "too-many-requests", "wrong-password", "user-not-found"}
)


class AuthError(Exception):
    def __init__(self, code: str, message: str | None = None):
        super().__init__(message or code)
        self.code = code


@dataclass
class SignInResult:
    uid: str
    email: Optional[str]
    id_token: str


class AuthClient(Protocol):
    """Operations the site needs from the auth provider."""

    def sign_in(self, email: str, password: str) -> SignInResult:
        ...

    def create_session_cookie(self, id_token: str, expires_in: timedelta) -> str:
        ...

    def verify_session_cookie(self, session_cookie: str) -> Optional[dict]:
        ...

    def verify_id_token(self, id_token: str) -> Optional[dict]:
        ...

    def revoke_sessions(self, uid: str) -> None:
        ...

    def create_user(self, email: str, password: str) -> str:
        ...


@dataclass
class _InMemoryAccount:
    uid: str
    email: str
    password: str
    disabled: bool = False


@dataclass
class InMemoryAuthClient:
    """Test double for Firebase Auth."""

    accounts: dict = field(default_factory=dict)
    id_tokens: dict = field(default_factory=dict)
    sessions: dict = field(default_factory=dict)
    # When set, the next sign_in call fails with this error code.
    fail_next_with: Optional[str] = None

    def add_user(self, email: str, password: str, uid: str | None = None) -> str:
        account = _InMemoryAccount(
            uid=uid or uuid.uuid4().hex, email=email, password=password
        )
        self.accounts[email.lower()] = account
        return account.uid

    def _claims(self, uid: str) -> Optional[dict]:
        for account in self.accounts.values():
            if account.uid == uid and not account.disabled:
                return {"uid": account.uid, "email": account.email}
        return None

    def sign_in(self, email: str, password: str) -> SignInResult:
        if self.fail_next_with:
            code, self.fail_next_with = self.fail_next_with, None
            raise AuthError(code)
        account = self.accounts.get(email.lower())
        if account is None:
            raise AuthError("user-not-found")
        if account.disabled:
            raise AuthError("user-disabled")
        if account.password != password:
            raise AuthError("wrong-password")
        token = secrets.token_urlsafe(16)
        self.id_tokens[token] = account.uid
        return SignInResult(uid=account.uid, email=account.email, id_token=token)

    def create_session_cookie(self, id_token: str, expires_in: timedelta) -> str:
        uid = self.id_tokens.get(id_token)
        if uid is None:
            raise AuthError("invalid-id-token")
        cookie = secrets.token_urlsafe(24)
        self.sessions[cookie] = uid
        return cookie

    def verify_session_cookie(self, session_cookie: str) -> Optional[dict]:
        uid = self.sessions.get(session_cookie)
        return self._claims(uid) if uid else None

    def verify_id_token(self, id_token: str) -> Optional[dict]:
        uid = self.id_tokens.get(id_token)
        return self._claims(uid) if uid else None

    def revoke_sessions(self, uid: str) -> None:
        self.sessions = {
            cookie: owner for cookie, owner in self.sessions.items() if owner != uid
        }

    def create_user(self, email: str, password: str) -> str:
        if email.lower() in self.accounts:
            raise AuthError("email-already-in-use")
        return self.add_user(email, password)

    def reset(self) -> None:
        self.accounts.clear()
        self.id_tokens.clear()
        self.sessions.clear()
        self.fail_next_with = None


class FirebaseAuthClient:
    """
    Firebase Auth client. ``api_key`` is the project's Web API key and is only
    needed for password sign-in.
    """

    def __init__(self, api_key: Optional[str] = None, app=None):
        self.api_key = api_key
        self.app = app

    def sign_in(self, email: str, password: str) -> SignInResult:
        if not self.api_key:
            raise AuthError("configuration-not-found", "FIREBASE_API_KEY is not set")
        try:
            response = requests.post(
                SIGN_IN_URL,
                params={"key": self.api_key},
                json={
                    "email": email,
                    "password": password,
                    "returnSecureToken": True,
                },
                timeout=SIGN_IN_TIMEOUT_SECONDS,
            )
        except requests.RequestException as e:
            logger.warning("Sign-in request failed: %s", e)
            raise AuthError("network-request-failed") from e

        if response.status_code != 200:
            raise AuthError(_sign_in_error_code(response))
        body = response.json()
        return SignInResult(
            uid=body["localId"], email=body.get("email"), id_token=body["idToken"]
        )

    def create_session_cookie(self, id_token: str, expires_in: timedelta) -> str:
        return firebase_auth.create_session_cookie(
            id_token, expires_in=expires_in, app=self.app
        )

    def verify_session_cookie(self, session_cookie: str) -> Optional[dict]:
        try:
            return firebase_auth.verify_session_cookie(
                session_cookie, check_revoked=True, app=self.app
            )
        except (
            firebase_auth.InvalidSessionCookieError,
            firebase_auth.UserDisabledError,
        ) as e:
            logger.info("Rejected session cookie: %s", e)
            return None

    def verify_id_token(self, id_token: str) -> Optional[dict]:
        try:
            return firebase_auth.verify_id_token(
                id_token, check_revoked=True, app=self.app
            )
        except (
            firebase_auth.InvalidIdTokenError,
            firebase_auth.UserDisabledError,
        ) as e:
            logger.info("Rejected ID token: %s", e)
            return None

    def revoke_sessions(self, uid: str) -> None:
        firebase_auth.revoke_refresh_tokens(uid, app=self.app)

    def create_user(self, email: str, password: str) -> str:
        try:
            record = firebase_auth.create_user(
                email=email, password=password, app=self.app
            )
        except firebase_auth.EmailAlreadyExistsError as e:
            raise AuthError("email-already-in-use") from e
        return record.uid


def _sign_in_error_code(response: requests.Response) -> str:
    try:
        message = response.json()["error"]["message"]
    except (ValueError, KeyError, TypeError):
        return "internal-error"
    # Messages look like "TOO_MANY_ATTEMPTS_TRY_LATER : Access to this ...".
    key = message.split(":", 1)[0].strip()
    return IDENTITY_TOOLKIT_ERRORS.get(key, "internal-error")


def login_error_message(code: str) -> str:
    return LOGIN_ERROR_MESSAGES.get(code, DEFAULT_LOGIN_ERROR)


def user_from_claims(
    claims: dict, db: ContentDb, require_admin_flag: bool = False
) -> User:
    """
    Builds the current user from verified token claims.

    Every authenticated user is an admin unless ``require_admin_flag`` is set,
    in which case the user's ``users/{uid}`` document must say so.
    """
    uid = claims["uid"]
    email = claims.get("email")
    if not require_admin_flag:
        return User(id=uid, email=email, is_admin=True)
    profile = db.get_document(USERS_COLLECTION, uid)
    return User(id=uid, email=email, is_admin=bool(profile and profile.get("isAdmin")))


@dataclass
class LoginOutcome:
    success: bool
    session_cookie: Optional[str] = None
    user: Optional[User] = None
    error: Optional[str] = None
    status_code: int = 200
    remaining_seconds: int = 0


def attempt_login(
    auth_client: AuthClient,
    db: ContentDb,
    limiter: LoginRateLimiter,
    key: str,
    email: str,
    password: str,
    session_max_age: timedelta,
    require_admin_flag: bool = False,
) -> LoginOutcome:
    """
    Signs a user in, honouring the login backoff for ``key`` (the client).

    Returns a session cookie on success; on failure returns the message to
    show and records the failure when it counts towards the backoff. Users
    that are not admins under ``require_admin_flag`` get a 403 and no cookie.
    """
    status = limiter.check(key)
    if status.limited:
        return LoginOutcome(
            success=False,
            error=f"Too many attempts. Please wait {status.remaining_seconds} seconds.",
            status_code=429,
            remaining_seconds=status.remaining_seconds,
        )

    try:
        result = auth_client.sign_in(email, password)
        user = user_from_claims(
            {"uid": result.uid, "email": result.email}, db, require_admin_flag
        )
        if not user.is_admin:
            limiter.reset(key)
            logger.info("Rejected login for non-admin %s", result.uid)
            return LoginOutcome(success=False, error=NOT_ADMIN_ERROR, status_code=403)
        session_cookie = auth_client.create_session_cookie(
            result.id_token, expires_in=session_max_age
        )
    except AuthError as e:
        logger.info("Login failed for %s: %s", email, e.code)
        if e.code in RATE_LIMITED_ERRORS:
            record = limiter.record_failure(key)
            remaining = int(record.delay)
        else:
            remaining = 0
        status_code = 503 if e.code == "network-request-failed" else 401
        return LoginOutcome(
            success=False,
            error=login_error_message(e.code),
            status_code=status_code,
            remaining_seconds=remaining,
        )

    limiter.reset(key)
    return LoginOutcome(
        success=True,
        session_cookie=session_cookie,
        user=user,
    )


def admin_exists(db: ContentDb) -> bool:
    return bool(db.query_documents(USERS_COLLECTION, "isAdmin", "==", True, limit=1))


def create_admin_user(
    auth_client: AuthClient, db: ContentDb, email: str, password: str
) -> User:
    """Creates an Auth user and marks it as admin in the users collection."""
    email = (email or "").strip()
    if not email or "@" not in email:
        raise AuthError("invalid-email", "A valid email address is required.")
    if len(password or "") < MIN_PASSWORD_LENGTH:
        raise AuthError(
            "weak-password",
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters.",
        )

    uid = auth_client.create_user(email, password)
    db.set_document(USERS_COLLECTION, uid, {"email": email, "isAdmin": True})
    logger.info("Created admin user %s (%s)", email, uid)
    return User(id=uid, email=email, is_admin=True)
