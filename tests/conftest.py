import pytest

from passman.crypto import KEY_SIZE, SALT_SIZE, CryptoContext, Salt, SecureKey
from passman.errors import CryptoError

MASTER_PASSWORD = "CorrectHorse1!"


class FakeClock:
    """Monotonic clock the tests can move by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_context(fill: int = 7) -> CryptoContext:
    """A context built from fixed bytes, skipping Argon2."""
    return CryptoContext(SecureKey(bytes([fill]) * KEY_SIZE), Salt(bytes(SALT_SIZE)))


class FakeUnlock:
    """Stand-in for VaultStorage.unlock that counts how often it is called."""

    def __init__(self, correct: str = MASTER_PASSWORD, payload="document"):
        self.correct = correct
        self.payload = payload
        self.calls = 0
        self.contexts = []

    def __call__(self, password: str):
        self.calls += 1
        if password != self.correct:
            raise CryptoError("Decryption failed: authentication tag mismatch")
        context = make_context()
        self.contexts.append(context)
        return self.payload, context


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_unlock():
    return FakeUnlock()


@pytest.fixture
def vault_dir(tmp_path):
    """Vault directory isolated per test."""
    return tmp_path / "vaults"


@pytest.fixture
def passman_home(tmp_path, monkeypatch):
    """Point the per-user config root at a temporary directory."""
    home = tmp_path / "home"
    monkeypatch.setenv("PASSMAN_HOME", str(home))
    return home


@pytest.fixture(scope="module")
def context():
    """One real Argon2-derived context per test module."""
    ctx = CryptoContext.create(MASTER_PASSWORD)
    yield ctx
    ctx.wipe()
