import os as _os
import sys

import pytest

# Ensure project root is importable (so `import main`, `import cli` and `import examples...` work reliably)
_project_root = _os.path.dirname(_os.path.dirname(__file__))
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

from fsr import alerts, db, retry, service, targets  # noqa: E402
from fsr.errors import ReadError, WriteError  # noqa: E402
from fsr.settings import Settings  # noqa: E402


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    """Point every module at a throwaway sqlite DB and disable backoff sleeps, email and remotes."""
    s = Settings(
        db_path=str(tmp_path / "fsr.db"),
        backoff_base_s=0.0,
        call_timeout_s=0,
        enable_email=False,
        remote_url=None,
        rpc_url=None,
    )
    for mod in (alerts, db, retry, service, targets):
        monkeypatch.setattr(mod, "settings", s)
    db.init_db()
    return s


class FakeRemote:
    """Contract-like in-memory target.

    ``values`` maps read names to current values; ``set<Name>`` writes update
    ``<name>``; ``hasRole``/``grantRole`` work on ``roles``. ``read_errors`` /
    ``write_errors`` map an operation name to either a list of exceptions
    (raised one per call, in order) or a single exception (raised every call).
    """

    identity = "fake-target"

    def __init__(self, **values):
        self.values = dict(values)
        self.roles = {}
        self.reads = []
        self.writes = []
        self.read_errors = {}
        self.write_errors = {}

    @staticmethod
    def _maybe_fail(errors, name):
        err = errors.get(name)
        if isinstance(err, list):
            if err:
                raise err.pop(0)
        elif err is not None:
            raise err

    def read(self, op):
        self.reads.append((op.name, op.args))
        self._maybe_fail(self.read_errors, op.name)
        if op.name == "hasRole":
            role, account = op.args
            return account in self.roles.get(role, set())
        if op.name not in self.values:
            raise ReadError(f"unknown read {op.name}")
        return self.values[op.name]

    def write(self, op):
        self.writes.append((op.name, op.args))
        self._maybe_fail(self.write_errors, op.name)
        if op.name == "grantRole":
            role, account = op.args
            self.roles.setdefault(role, set()).add(account)
        elif op.name.startswith("set"):
            field = op.name[3].lower() + op.name[4:]
            self.values[field] = op.args[0]
        else:
            raise WriteError(f"unsupported write {op.name}")


@pytest.fixture
def make_remote():
    return FakeRemote


@pytest.fixture
def target_app():
    """The example HTTP target with clean state."""
    from examples.example_target import app as target_mod

    target_mod.TARGETS.clear()
    target_mod.APP_STATE.update(fail_writes=0, writes=0)
    yield target_mod
    target_mod.TARGETS.clear()


@pytest.fixture
def http_remote(target_app):
    from fastapi.testclient import TestClient

    from fsr.remotes import HttpRemote

    client = TestClient(target_app.app)
    return HttpRemote("http://testserver", "AtlasMine", client=client)
