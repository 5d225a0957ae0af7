"""
Tests for session state, expiry and failed-attempt lockout.
"""
import pytest

from passman.auth import AuthSession, PasswordValidator, SessionManager, SessionState
from passman.errors import AuthenticationFailed, InvalidInput, LockedOut, VaultNotFound

from conftest import MASTER_PASSWORD


@pytest.fixture
def manager(clock):
    return SessionManager(max_failed_attempts=3, session_timeout=100, clock=clock)


class TestAuthenticate:

    def test_starts_unauthenticated(self, manager):
        assert manager.state is SessionState.UNAUTHENTICATED
        assert not manager.is_authenticated()
        assert manager.session is None
        with pytest.raises(AuthenticationFailed):
            manager.crypto()

    def test_success(self, manager, fake_unlock, clock):
        assert manager.authenticate(MASTER_PASSWORD, fake_unlock) == "document"
        assert manager.state is SessionState.AUTHENTICATED
        assert manager.crypto() is fake_unlock.contexts[0]
        assert manager.session.created_at == clock.now
        assert manager.session.expires_at == clock.now + 100
        assert manager.failed_attempts == 0

    def test_wrong_password(self, manager, fake_unlock):
        with pytest.raises(AuthenticationFailed):
            manager.authenticate("nope", fake_unlock)
        assert manager.failed_attempts == 1
        assert manager.state is SessionState.UNAUTHENTICATED
        with pytest.raises(AuthenticationFailed):
            manager.crypto()

    def test_failure_while_authenticated_wipes_key(self, manager, fake_unlock):
        manager.authenticate(MASTER_PASSWORD, fake_unlock)
        context = fake_unlock.contexts[0]
        with pytest.raises(AuthenticationFailed):
            manager.authenticate("nope", fake_unlock)
        assert context.is_wiped
        assert not manager.is_authenticated()

    def test_reauthenticate_replaces_key(self, manager, fake_unlock):
        manager.authenticate(MASTER_PASSWORD, fake_unlock)
        manager.authenticate(MASTER_PASSWORD, fake_unlock)
        first, second = fake_unlock.contexts
        assert first.is_wiped
        assert manager.crypto() is second

    def test_other_errors_are_not_counted(self, manager):
        def missing(password):
            raise VaultNotFound("no vault")

        with pytest.raises(VaultNotFound):
            manager.authenticate(MASTER_PASSWORD, missing)
        assert manager.failed_attempts == 0


class TestLockout:

    def test_lockout_after_max_failures(self, manager, fake_unlock):
        for attempt in range(1, 3):
            with pytest.raises(AuthenticationFailed):
                manager.authenticate("wrong", fake_unlock)
            assert manager.failed_attempts == attempt

        with pytest.raises(LockedOut):
            manager.authenticate("wrong", fake_unlock)
        assert manager.state is SessionState.LOCKED_OUT
        assert fake_unlock.calls == 3

        # Even the right password is refused, without trying to decrypt
        with pytest.raises(LockedOut):
            manager.authenticate(MASTER_PASSWORD, fake_unlock)
        assert fake_unlock.calls == 3
        assert not manager.is_authenticated()

    def test_locked_out_is_an_authentication_failure(self):
        assert issubclass(LockedOut, AuthenticationFailed)

    def test_counter_never_decreases_on_failure(self, clock, fake_unlock):
        manager = SessionManager(max_failed_attempts=10, session_timeout=100, clock=clock)
        seen = []
        for _ in range(5):
            with pytest.raises(AuthenticationFailed):
                manager.authenticate("wrong", fake_unlock)
            seen.append(manager.failed_attempts)
        assert seen == [1, 2, 3, 4, 5]

    def test_success_resets_counter(self, manager, fake_unlock):
        with pytest.raises(AuthenticationFailed):
            manager.authenticate("wrong", fake_unlock)
        manager.authenticate(MASTER_PASSWORD, fake_unlock)
        assert manager.failed_attempts == 0

    def test_logout_clears_lockout(self, manager, fake_unlock):
        for _ in range(3):
            with pytest.raises(AuthenticationFailed):
                manager.authenticate("wrong", fake_unlock)
        manager.logout()
        assert manager.state is SessionState.UNAUTHENTICATED
        assert manager.authenticate(MASTER_PASSWORD, fake_unlock) == "document"

    def test_lockout_duration_expires(self, clock, fake_unlock):
        manager = SessionManager(
            max_failed_attempts=2, session_timeout=100, lockout_duration=60, clock=clock
        )
        for _ in range(2):
            with pytest.raises(AuthenticationFailed):
                manager.authenticate("wrong", fake_unlock)

        clock.advance(59)
        assert manager.is_locked_out()
        clock.advance(1)
        assert not manager.is_locked_out()
        assert manager.failed_attempts == 0
        manager.authenticate(MASTER_PASSWORD, fake_unlock)
        assert manager.is_authenticated()


class TestExpiry:

    def test_expires_lazily(self, manager, fake_unlock, clock):
        manager.authenticate(MASTER_PASSWORD, fake_unlock)
        clock.advance(99)
        assert manager.is_authenticated()
        clock.advance(1)
        assert not manager.is_authenticated()
        assert manager.state is SessionState.UNAUTHENTICATED
        assert manager.time_until_expiry() is None

    def test_crypto_after_expiry_wipes_key(self, manager, fake_unlock, clock):
        manager.authenticate(MASTER_PASSWORD, fake_unlock)
        clock.advance(100)
        with pytest.raises(AuthenticationFailed):
            manager.crypto()
        assert fake_unlock.contexts[0].is_wiped

    def test_touch_does_not_extend(self, manager, fake_unlock, clock):
        manager.authenticate(MASTER_PASSWORD, fake_unlock)
        deadline = manager.session.expires_at
        clock.advance(50)
        manager.touch()
        assert manager.session.last_activity == clock.now
        assert manager.session.expires_at == deadline

    def test_extend_counts_from_last_activity(self, manager, fake_unlock, clock):
        start = clock.now
        manager.authenticate(MASTER_PASSWORD, fake_unlock)
        clock.advance(30)
        manager.touch()
        clock.advance(20)
        manager.extend(100)
        assert manager.session.expires_at == start + 130
        assert manager.time_until_expiry() == 80

    def test_extend_requires_session(self, manager):
        with pytest.raises(AuthenticationFailed):
            manager.extend(100)

    def test_extend_rejects_non_positive(self, manager, fake_unlock):
        manager.authenticate(MASTER_PASSWORD, fake_unlock)
        with pytest.raises(InvalidInput):
            manager.extend(0)

    @pytest.mark.parametrize("timeout", [0, -5])
    def test_invalid_timeout(self, clock, timeout):
        with pytest.raises(InvalidInput):
            SessionManager(session_timeout=timeout, clock=clock)
        with pytest.raises(InvalidInput):
            AuthSession.start(clock(), timeout)

    def test_logout_wipes_key(self, manager, fake_unlock):
        manager.authenticate(MASTER_PASSWORD, fake_unlock)
        manager.logout()
        assert fake_unlock.contexts[0].is_wiped
        assert manager.state is SessionState.UNAUTHENTICATED
        with pytest.raises(AuthenticationFailed):
            manager.crypto()

    def test_session_info_has_no_key(self, manager, fake_unlock):
        manager.authenticate(MASTER_PASSWORD, fake_unlock)
        info = manager.session_info()
        assert info == {
            "state": "authenticated",
            "failed_attempts": 0,
            "max_failed_attempts": 3,
            "seconds_until_expiry": 100,
        }


class TestPasswordValidator:

    @pytest.mark.parametrize("password", [
        "Short1!",
        "alllowercase1!",
        "ALLUPPERCASE1!",
        "NoDigitsHere!",
        "NoSpecials123",
        "A1!a" * 40,
    ])
    def test_rejects(self, password):
        validator = PasswordValidator()
        assert not validator.is_valid(password)
        with pytest.raises(InvalidInput):
            validator.validate(password)

    def test_accepts(self):
        assert PasswordValidator().is_valid(MASTER_PASSWORD)

    def test_relaxed_policy(self):
        validator = PasswordValidator(min_length=4, require_special=False, require_uppercase=False)
        assert validator.is_valid("abc1")
