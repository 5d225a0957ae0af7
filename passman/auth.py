"""
auth.py - Authentication state, session expiry and failed-attempt lockout

The SessionManager is the only owner of an open vault's CryptoContext.
Key material is reachable through crypto() and only while the state is
AUTHENTICATED; every transition out of that state wipes it.
"""
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Tuple, TypeVar

from . import config
from .crypto import CryptoContext
from .errors import AuthenticationFailed, CryptoError, InvalidInput, LockedOut

logger = logging.getLogger("passman.auth")

T = TypeVar("T")

SPECIAL_CHARACTERS = "!@#$%^&*()_+-=[]{}|;:,.<>?"


class SessionState(Enum):
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATED = "authenticated"
    LOCKED_OUT = "locked_out"


@dataclass
class AuthSession:
    """
    Timing and failure bookkeeping for one session.

    Times are readings of the manager's monotonic clock, in seconds.
    """

    created_at: float
    expires_at: float
    last_activity: float
    is_active: bool = True
    failed_attempts: int = 0

    @classmethod
    def start(cls, now: float, timeout: float, active: bool = True) -> "AuthSession":
        if timeout <= 0:
            raise InvalidInput("Session timeout must be positive")
        return cls(
            created_at=now,
            expires_at=now + timeout,
            last_activity=now,
            is_active=active,
        )

    def is_valid(self, now: float) -> bool:
        return self.is_active and now < self.expires_at

    def update_activity(self, now: float) -> None:
        self.last_activity = now

    def extend_timeout(self, timeout: float) -> None:
        """New deadline counts from the last observed activity, not from now."""
        if timeout <= 0:
            raise InvalidInput("Session timeout must be positive")
        self.expires_at = self.last_activity + timeout

    def record_failed_attempt(self) -> None:
        self.failed_attempts += 1

    def is_locked_out(self, max_attempts: int) -> bool:
        return self.failed_attempts >= max_attempts


class SessionManager:
    """Tracks whether the vault may be used, independent of its contents"""

    def __init__(
        self,
        max_failed_attempts: int = config.MAX_FAILED_ATTEMPTS,
        session_timeout: float = config.SESSION_TIMEOUT,
        lockout_duration: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            max_failed_attempts: Consecutive failures that trigger lockout
            session_timeout: Seconds an authenticated session lasts
            lockout_duration: Seconds after which a lockout clears itself
                (None: only logout()/reset() clears it)
            clock: Monotonic time source
        """
        if max_failed_attempts < 1:
            raise InvalidInput("max_failed_attempts must be at least 1")
        if session_timeout <= 0:
            raise InvalidInput("Session timeout must be positive")

        self.max_failed_attempts = max_failed_attempts
        self.session_timeout = session_timeout
        self.lockout_duration = lockout_duration
        self._clock = clock
        self._session: Optional[AuthSession] = None
        self._crypto: Optional[CryptoContext] = None
        self._locked_at: Optional[float] = None

    # State

    @property
    def state(self) -> SessionState:
        if self.is_locked_out():
            return SessionState.LOCKED_OUT
        if self.is_authenticated():
            return SessionState.AUTHENTICATED
        return SessionState.UNAUTHENTICATED

    def is_locked_out(self) -> bool:
        if self._session is None or not self._session.is_locked_out(self.max_failed_attempts):
            return False
        if (
            self.lockout_duration is not None
            and self._locked_at is not None
            and self._clock() >= self._locked_at + self.lockout_duration
        ):
            logger.info("Lockout period elapsed; failed-attempt counter cleared")
            self.reset()
            return False
        return True

    def is_authenticated(self) -> bool:
        """Active, unexpired session holding a key. Expiry is checked lazily."""
        return (
            self._session is not None
            and self._crypto is not None
            and self._session.is_valid(self._clock())
        )

    is_valid = is_authenticated

    @property
    def failed_attempts(self) -> int:
        return self._session.failed_attempts if self._session is not None else 0

    @property
    def session(self) -> Optional[AuthSession]:
        """The current session, only while authenticated."""
        return self._session if self.is_authenticated() else None

    # Transitions

    def authenticate(
        self,
        password: str,
        unlock: Callable[[str], Tuple[T, CryptoContext]],
    ) -> T:
        """
        Verify the master password by deriving the key and opening the vault.

        Args:
            password: The master password
            unlock: Derives the key and decrypts with it, returning
                (payload, context); raises CryptoError on a wrong password

        Returns:
            Whatever payload unlock produced (normally the decrypted vault)

        Raises:
            LockedOut: Too many failures; unlock is not called at all
            AuthenticationFailed: Wrong password or undecryptable vault
        """
        if self.is_locked_out():
            raise LockedOut("Too many failed attempts. Please try again later.")

        try:
            payload, context = unlock(password)
        except (CryptoError, AuthenticationFailed) as e:
            self._record_failure()
            if self.is_locked_out():
                raise LockedOut(
                    "Too many failed attempts. Further attempts are blocked."
                ) from e
            raise AuthenticationFailed("Invalid master password") from e

        self._wipe_key()
        now = self._clock()
        self._session = AuthSession.start(now, self.session_timeout)
        self._crypto = context
        self._locked_at = None
        logger.info("Authentication succeeded")
        return payload

    def _record_failure(self) -> None:
        # A failed attempt never leaves a previously open session usable
        self._wipe_key()
        if self._session is None:
            self._session = AuthSession.start(
                self._clock(), self.session_timeout, active=False
            )
        else:
            self._session.is_active = False
        self._session.record_failed_attempt()
        logger.warning(
            "Authentication failed (%d/%d)",
            self._session.failed_attempts,
            self.max_failed_attempts,
        )
        if self._session.is_locked_out(self.max_failed_attempts) and self._locked_at is None:
            self._locked_at = self._clock()
            logger.warning("Locked out after %d failed attempts", self._session.failed_attempts)

    def touch(self) -> None:
        """Record activity; does not move the deadline."""
        if self._session is not None and self._session.is_active:
            self._session.update_activity(self._clock())

    update_activity = touch

    def extend(self, timeout: float) -> None:
        """
        Recompute the deadline as last_activity + timeout.

        Raises:
            AuthenticationFailed: If there is no valid session to extend
            InvalidInput: If timeout is not positive
        """
        if not self.is_authenticated():
            raise AuthenticationFailed("Not authenticated")
        self._session.extend_timeout(timeout)

    def time_until_expiry(self) -> Optional[float]:
        if not self.is_authenticated():
            return None
        return self._session.expires_at - self._clock()

    def crypto(self) -> CryptoContext:
        """
        The open vault's crypto context.

        Raises:
            AuthenticationFailed: If not authenticated; an expired session's
                key is wiped on the way out
        """
        if not self.is_authenticated():
            if self._crypto is not None:
                logger.info("Session expired; wiping key")
                self._wipe_key()
                if self._session is not None:
                    self._session.is_active = False
            raise AuthenticationFailed("Not authenticated")
        return self._crypto

    def logout(self) -> None:
        """Discard the session and wipe any key material."""
        self._wipe_key()
        self._session = None
        self._locked_at = None

    reset = logout

    def _wipe_key(self) -> None:
        if self._crypto is not None:
            self._crypto.wipe()
            self._crypto = None

    def session_info(self) -> dict:
        """Summary for display; never includes key material."""
        remaining = self.time_until_expiry()
        return {
            "state": self.state.value,
            "failed_attempts": self.failed_attempts,
            "max_failed_attempts": self.max_failed_attempts,
            "seconds_until_expiry": int(remaining) if remaining is not None else None,
        }


class PasswordValidator:
    """Master-password policy"""

    def __init__(
        self,
        min_length: int = 8,
        max_length: int = 128,
        require_uppercase: bool = True,
        require_lowercase: bool = True,
        require_numbers: bool = True,
        require_special: bool = True,
    ):
        self.min_length = min_length
        self.max_length = max_length
        self.require_uppercase = require_uppercase
        self.require_lowercase = require_lowercase
        self.require_numbers = require_numbers
        self.require_special = require_special

    def validate(self, password: str) -> None:
        """Raise InvalidInput describing the first unmet requirement."""
        if len(password) < self.min_length:
            raise InvalidInput(f"Password must be at least {self.min_length} characters long")
        if len(password) > self.max_length:
            raise InvalidInput(f"Password must be no more than {self.max_length} characters long")
        if self.require_uppercase and not any(c.isupper() for c in password):
            raise InvalidInput("Password must contain at least one uppercase letter")
        if self.require_lowercase and not any(c.islower() for c in password):
            raise InvalidInput("Password must contain at least one lowercase letter")
        if self.require_numbers and not any(c.isdigit() for c in password):
            raise InvalidInput("Password must contain at least one number")
        if self.require_special and not any(c in SPECIAL_CHARACTERS for c in password):
            raise InvalidInput("Password must contain at least one special character")

    def is_valid(self, password: str) -> bool:
        try:
            self.validate(password)
        except InvalidInput:
            return False
        return True
