"""
Registration, login with account lockout, and profile lookup.

Lock state lives on the user record: ``failed_login_attempts`` counts
consecutive failures; reaching ``MAX_LOGIN_ATTEMPTS`` sets ``account_locked``
and ``lock_until``. Every counter change is a compare-and-swap against the
attempt count read at the start of the attempt, retried if another request got
there first.
"""
import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Mapping

from security.password import hash_password, verify_password
from security.password_policy import is_valid_email, validate_password
from security.tokens import issue_token
from services.fields import text_field
from storage.base import UserRepository
from storage.records import UserRecord
from utils import timeutil
from utils.audit import log_event
from utils.errors import (
    AccountLocked,
    ConflictError,
    InvalidCredentials,
    NotFound,
    ValidationError,
)

logger = logging.getLogger(__name__)

CAS_RETRIES = 5
USERNAME_MAX_LEN = 50


def normalize_email(value: str) -> str:
    return text_field(value, "email").lower()


@dataclass(frozen=True)
class AuthResult:
    token: str
    user: UserRecord


class AuthService:
    def __init__(self, users: UserRepository, config: Mapping):
        self.users = users
        self.config = config

    @property
    def max_attempts(self) -> int:
        return int(self.config.get("MAX_LOGIN_ATTEMPTS", 5))

    @property
    def lockout(self) -> timedelta:
        return timedelta(minutes=int(self.config.get("LOCKOUT_MINUTES", 15)))

    def _token(self, user: UserRecord) -> str:
        return issue_token(
            user.id,
            user.email,
            self.config["JWT_SECRET"],
            self.config.get("JWT_ALGORITHM", "HS256"),
            int(self.config.get("JWT_EXPIRES_HOURS", 24)),
        )

    def _new_user_id(self) -> str:
        candidate = int(timeutil.now_utc().timestamp() * 1000)
        while self.users.get(str(candidate)) is not None:
            candidate += 1
        return str(candidate)

    def register(self, username: str, email: str, password: str) -> AuthResult:
        username = text_field(username, "username")
        email = normalize_email(email)
        password = text_field(password, "password", strip=False)

        if not username or not email or not password:
            raise ValidationError(
                "Username, email, and password are required", error="Missing required fields"
            )
        if not is_valid_email(email):
            raise ValidationError("Please provide a valid email address", error="Invalid email format")
        if len(username) > USERNAME_MAX_LEN:
            raise ValidationError(
                f"Username must be at most {USERNAME_MAX_LEN} characters", error="Invalid username"
            )
        valid, errors = validate_password(password)
        if not valid:
            raise ValidationError(
                "Password must be at least 8 characters long and contain uppercase, "
                "lowercase, number, and special character",
                error="Weak password",
                details=errors,
            )

        if self.users.get_by_email(email):
            log_event("REGISTER_FAIL_EMAIL_EXISTS", metadata={"email": email})
            raise ConflictError("A user with this email already exists", error="User already exists")

        password_hash = hash_password(password, int(self.config.get("BCRYPT_ROUNDS", 12)))
        for _ in range(CAS_RETRIES):
            user = UserRecord(
                id=self._new_user_id(),
                username=username,
                email=email,
                password_hash=password_hash,
                created_at=timeutil.now_utc(),
            )
            # insert refuses a taken email or a taken id; only the id case is retried
            if self.users.insert(user):
                break
            if self.users.get_by_email(email):
                raise ConflictError("A user with this email already exists", error="User already exists")
        else:
            raise ConflictError("Could not allocate a user id. Please retry.", error="Registration conflict")

        logger.info("New user registered: %s", email)
        log_event("REGISTER_SUCCESS", user_id=user.id)
        return AuthResult(self._token(user), user)

    def login(self, email: str, password: str) -> AuthResult:
        email = normalize_email(email)
        password = text_field(password, "password", strip=False)
        if not email or not password:
            raise ValidationError("Email and password are required", error="Missing credentials")
        if not is_valid_email(email):
            raise ValidationError("Please provide a valid email address", error="Invalid email format")

        for _ in range(CAS_RETRIES):
            user = self.users.get_by_email(email)
            if not user:
                logger.warning("Failed login attempt for non-existent user: %s", email)
                log_event("LOGIN_FAIL", metadata={"email": email, "reason": "unknown_user"})
                raise InvalidCredentials("Invalid email or password")

            now = timeutil.now_utc()
            if user.account_locked and user.lock_until and now < user.lock_until:
                log_event("LOGIN_LOCKED", user_id=user.id)
                raise AccountLocked(
                    "Account is temporarily locked due to too many failed attempts",
                    lockUntil=timeutil.to_iso(user.lock_until),
                )

            expected = {
                "failed_login_attempts": user.failed_login_attempts,
                "account_locked": user.account_locked,
            }
            # an expired lock starts a fresh run of attempts
            attempts = 0 if user.account_locked else user.failed_login_attempts

            if not verify_password(password, user.password_hash):
                attempts += 1
                changes = {"failed_login_attempts": attempts, "account_locked": False, "lock_until": None}
                locked_now = attempts >= self.max_attempts
                if locked_now:
                    changes.update(account_locked=True, lock_until=now + self.lockout)

                updated = self.users.cas_update(user.id, expected, changes)
                if updated is None:
                    continue

                logger.warning("Failed login attempt for user: %s, attempts: %s", email, attempts)
                log_event(
                    "LOGIN_FAIL",
                    user_id=user.id,
                    metadata={"fail_count": attempts, "locked_now": locked_now},
                )
                if locked_now:
                    logger.warning("Account locked for user: %s", email)
                    raise InvalidCredentials(
                        "Invalid email or password. Account locked due to too many failed attempts",
                        lockUntil=timeutil.to_iso(updated.lock_until),
                    )
                raise InvalidCredentials("Invalid email or password")

            updated = self.users.cas_update(user.id, expected, {
                "failed_login_attempts": 0,
                "account_locked": False,
                "lock_until": None,
                "last_login": now,
            })
            if updated is None:
                continue

            logger.info("Successful login for user: %s", email)
            log_event("LOGIN_SUCCESS", user_id=updated.id)
            return AuthResult(self._token(updated), updated)

        raise ConflictError("Login state changed concurrently. Please retry.", error="Login conflict")

    def get_profile(self, user_id: str) -> UserRecord:
        user = self.users.get(user_id)
        if not user:
            raise NotFound("User profile not found", error="User not found")
        return user

    def unlock_account(self, email: str) -> bool:
        user = self.users.get_by_email(normalize_email(email))
        if not user:
            return False
        self.users.cas_update(user.id, {}, {
            "failed_login_attempts": 0,
            "account_locked": False,
            "lock_until": None,
        })
        log_event("ACCOUNT_UNLOCK", user_id=user.id)
        return True
