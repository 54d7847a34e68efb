"""
auth/service.py -- Registration, login, session lifecycle and approval workflow.

AuthService is the single orchestration point between the password hasher,
the token service and the two stores. Route handlers and FastAPI dependencies
call it; they never combine tokens and sessions by hand.

Account state machine (User.status):
  none    -> pending   register() with approval gating (the default)
  none    -> approved  register() with require_approval=False
  pending -> approved  approve(), admins only

Authentication contract:
  resolve(token) = TokenService.verify(token) AND SessionStore.resolve(token).
  The signature check runs first and is pure CPU, so garbage tokens never
  reach the database. The session lookup is what makes logout effective: a
  token whose row was deleted fails here even though its signature is fine.

Error contract: every failure is one of the typed errors in auth/errors.py.
  InvalidCredentialsError covers both "no such email" and "wrong password"
  with the same message, and the unknown-email path still runs PBKDF2 against
  DUMMY_HASH so timing does not separate the two. PendingApprovalError is
  raised only after the password verified.

Layer rule: no imports from api/ or projects/.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth.errors import (
    AlreadyExistsError,
    ForbiddenError,
    InvalidCredentialsError,
    InvalidInputError,
    NotFoundError,
    PendingApprovalError,
    UnauthenticatedError,
)
from auth.models import STATUS_APPROVED, STATUS_PENDING, User
from auth.passwords import DUMMY_HASH, hash_password, validate_password_strength, verify_password
from auth.store import SessionStore, UserStore
from auth.tokens import TokenService

logger = logging.getLogger("issuetrack.auth")


@dataclass
class LoginResult:
    """A freshly issued token, its lifetime in seconds, and the owning user."""

    user: User
    token: str
    expires_in: int


@dataclass
class Registration:
    """Outcome of register(). token is None while the account awaits approval."""

    user: User
    token: str | None = None
    expires_in: int | None = None


class AuthService:
    """Orchestrates credentials, tokens and sessions.

    Usage:
        service = AuthService(user_store, session_store, TokenService(settings.secret_key))
        service.register("a@example.com", "Ann", "correct horse")
        result = service.login("a@example.com", "correct horse")
        user = service.resolve(result.token)
    """

    def __init__(
        self,
        users: UserStore,
        sessions: SessionStore,
        tokens: TokenService,
        require_approval: bool = True,
    ) -> None:
        self.users = users
        self.sessions = sessions
        self.tokens = tokens
        self.require_approval = require_approval

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(self, email: str, name: str, password: str) -> Registration:
        """Create an account.

        Raises InvalidInputError for a missing field or a weak password and
        AlreadyExistsError if the email is taken. In the approval-gated mode
        the account is created pending and no token is issued.
        """
        email = (email or "").strip()
        name = (name or "").strip()
        if not email or not name or not password:
            raise InvalidInputError("Email, name, and password are required.")

        check = validate_password_strength(password)
        if not check.valid:
            raise InvalidInputError(check.message)

        if self.users.get_by_email(email) is not None:
            raise AlreadyExistsError("User already exists.")

        status = STATUS_PENDING if self.require_approval else STATUS_APPROVED
        new_user = User(email=email, name=name, password_hash=hash_password(password), status=status)
        try:
            user_id = self.users.create_user(new_user)
        except IntegrityError as exc:
            # Concurrent registration of the same email won the race.
            raise AlreadyExistsError("User already exists.") from exc

        user = self.users.get_by_id(user_id)
        logger.info("Registered user id=%s status=%s", user_id, status)
        if user.is_approved:
            login = self._start_session(user, self.tokens.access_ttl)
            return Registration(user=user, token=login.token, expires_in=login.expires_in)
        return Registration(user=user)

    # ------------------------------------------------------------------
    # Login / logout / refresh
    # ------------------------------------------------------------------

    def login(self, email: str, password: str, remember: bool = False) -> LoginResult:
        """Verify credentials and open a session.

        remember=True issues the long-lived (refresh_ttl) variant; otherwise
        the token and session last access_ttl (1 hour). The email is trimmed
        exactly as register() trims it; the password is compared verbatim.
        """
        user = self.users.get_by_email((email or "").strip())
        if user is None or not user.password_hash:
            # Equalize timing -- do NOT return before running PBKDF2.
            verify_password(password, DUMMY_HASH)
            logger.info("Login failed: unknown account")
            raise InvalidCredentialsError()
        if not verify_password(password, user.password_hash):
            logger.info("Login failed: bad password for user id=%s", user.id)
            raise InvalidCredentialsError()
        if not user.is_approved:
            logger.info("Login refused: user id=%s is %s", user.id, user.status)
            raise PendingApprovalError()

        ttl = self.tokens.refresh_ttl if remember else self.tokens.access_ttl
        return self._start_session(user, ttl)

    def resolve(self, token: str | None) -> User | None:
        """Return the user a token belongs to, or None. Every authenticated route goes through here."""
        if not token:
            return None
        payload = self.tokens.verify(token)
        if payload is None:
            return None
        user = self.sessions.resolve(token)
        if user is None or user.id != payload.user_id:
            return None
        return user

    def logout(self, token: str | None) -> None:
        """Delete the session behind a token. Succeeds whether or not the token was valid."""
        if token:
            self.sessions.delete(token)

    def refresh(self, token: str | None) -> LoginResult:
        """Swap a live token for a brand-new one.

        The old session is deleted immediately -- this is a rotation, not a
        sliding window. The new token gets the standard access lifetime.
        """
        user = self.resolve(token)
        if user is None:
            raise UnauthenticatedError("Invalid or expired token.")
        result = self._start_session(user, self.tokens.access_ttl)
        self.sessions.delete(token)
        return result

    def _start_session(self, user: User, ttl: int) -> LoginResult:
        token = self.tokens.issue(user.id, user.email, ttl=ttl)
        self.sessions.create(user.id, token, ttl)
        return LoginResult(user=user, token=token, expires_in=ttl)

    # ------------------------------------------------------------------
    # Admin workflow
    # ------------------------------------------------------------------

    def approve(self, admin: User, target_user_id: int) -> User:
        """Move a pending account to approved. Idempotent for approved accounts."""
        if not admin.is_admin:
            raise ForbiddenError("Admin access required.")
        target = self.users.get_by_id(target_user_id)
        if target is None:
            raise NotFoundError("User not found.")
        if not target.is_approved:
            self.users.set_status(target_user_id, STATUS_APPROVED)
            logger.info("User id=%s approved by admin id=%s", target_user_id, admin.id)
        return self.users.get_by_id(target_user_id)

    def list_pending(self, admin: User) -> list[User]:
        if not admin.is_admin:
            raise ForbiddenError("Admin access required.")
        return self.users.list_by_status(STATUS_PENDING)

    def seed_admin(self, email: str, name: str, password: str) -> User | None:
        """First-run seeding from ADMIN_EMAIL/ADMIN_PASSWORD. Create-only.

        An account that already holds the email is never touched: promoting
        it would hand site admin to whoever registered that address first,
        and would approve it without an admin ever looking at it. Returns the
        admin, or None when the email belongs to someone who is not one.
        """
        existing = self.users.get_by_email(email)
        if existing is None:
            return self._create_admin(email, name, password)
        if existing.is_admin and existing.is_approved:
            return existing
        logger.warning(
            "ADMIN_EMAIL names existing account id=%s (status=%s, is_admin=%s); not promoting it. "
            "Use the create-admin CLI command to promote it deliberately.",
            existing.id,
            existing.status,
            existing.is_admin,
        )
        return None

    def ensure_admin(self, email: str, name: str, password: str) -> User:
        """Create an approved admin account, or promote and approve an existing one.

        Operator-only: backs the interactive create-admin CLI command. An
        existing account keeps its password.
        """
        existing = self.users.get_by_email(email)
        if existing is not None:
            if not existing.is_admin:
                self.users.set_admin(existing.id, True)
            if not existing.is_approved:
                self.users.set_status(existing.id, STATUS_APPROVED)
            logger.info("User id=%s promoted to admin", existing.id)
            return self.users.get_by_id(existing.id)
        return self._create_admin(email, name, password)

    def _create_admin(self, email: str, name: str, password: str) -> User:
        check = validate_password_strength(password)
        if not check.valid:
            raise InvalidInputError(check.message)
        user_id = self.users.create_user(
            User(
                email=email,
                name=name,
                password_hash=hash_password(password),
                status=STATUS_APPROVED,
                is_admin=True,
            )
        )
        logger.info("Bootstrap admin created (id=%s)", user_id)
        return self.users.get_by_id(user_id)

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def cleanup_expired_sessions(self) -> int:
        """Sweep expired sessions. Store failures are logged and swallowed.

        resolve() already rejects expired rows on its own, so a failed sweep
        only delays housekeeping; it must never break an auth decision.
        """
        try:
            removed = self.sessions.cleanup_expired()
        except SQLAlchemyError:
            logger.exception("Expired-session cleanup failed")
            return 0
        if removed:
            logger.info("Removed %d expired session(s)", removed)
        return removed
