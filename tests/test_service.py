import dataclasses

import pytest

from fsr import alerts, db, service
from fsr.errors import ConfigurationError, TargetBusy, WriteError
from fsr.model import DesiredState, FieldAssignment, Outcome
from fsr.retry import RetryPolicy
from fsr.runtime import RuntimeState
from fsr.values import Value


def _desired(*names, target="Vault"):
    return DesiredState(
        tuple(FieldAssignment.setter(n, Value.address("0x1"), read=n, write="set" + n.capitalize()) for n in names),
        target=target,
    )


def _policy():
    return RetryPolicy(max_retries=1, sleep=lambda s: None)


def test_run_is_persisted_with_events(make_remote):
    remote = make_remote(a="0x1", b="0x0")

    result, run_id = service.run_reconciliation(RuntimeState(), _desired("a", "b"), remote, policy=_policy())

    assert result.ok
    run = db.get_run(run_id)
    assert (run.target, run.unchanged, run.updated, run.failed, run.ok) == ("Vault", 1, 1, 0, 1)
    fields = db.list_run_fields(run_id)
    assert [(f.field, f.outcome) for f in fields] == [("a", "unchanged"), ("b", "updated")]
    assert fields[1].old_value == '"0x0"'

    messages = [e["message"] for e in reversed(db.latest_events(target="Vault"))]
    assert messages[0].startswith("Run started")
    assert messages[1] == "Unchanged: 0x1"
    assert messages[2] == "Updated: 0x0 -> 0x1"
    assert messages[3].startswith(f"Run {run_id} finished")


def test_failed_run_sends_alert(make_remote, monkeypatch, isolated_settings):
    sent = []
    monkeypatch.setattr(
        alerts,
        "settings",
        dataclasses.replace(
            isolated_settings,
            enable_email=True,
            smtp_user="ops",
            smtp_password="secret",
            email_from="fsr@example.com",
            email_to="ops@example.com",
        ),
    )
    monkeypatch.setattr(alerts, "deliver", lambda msg: sent.append(msg) or True)
    remote = make_remote(a="0x0")
    remote.write_errors["setA"] = WriteError("not owner")

    result, run_id = service.run_reconciliation(RuntimeState(), _desired("a"), remote, policy=_policy())

    assert [f.outcome for f in result.fields] == [Outcome.FAILED]
    assert db.get_run(run_id).failed == 1
    [msg] = sent
    assert "1 field(s) failed on Vault" in msg["Subject"]
    assert "not owner" in msg.get_payload()
    levels = {e["level"] for e in db.latest_events(target="Vault")}
    assert "ERROR" in levels


def test_busy_target_is_refused(make_remote):
    runtime = RuntimeState()
    remote = make_remote(a="0x0")

    with runtime.hold("Vault"):
        with pytest.raises(TargetBusy):
            service.run_reconciliation(runtime, _desired("a"), remote, policy=_policy())

    assert remote.reads == []
    # released again
    result, _ = service.run_reconciliation(runtime, _desired("a"), remote, policy=_policy())
    assert result.ok


def test_other_targets_are_independent(make_remote):
    runtime = RuntimeState()
    with runtime.hold("Vault"):
        result, _ = service.run_reconciliation(
            runtime, _desired("a", target="Mine"), make_remote(a="0x1"), policy=_policy()
        )
    assert result.ok


def test_configuration_error_before_lock(make_remote):
    runtime = RuntimeState()
    remote = make_remote(a="0x0")
    desired = DesiredState(_desired("a").assignments * 2, target="Vault")

    with pytest.raises(ConfigurationError):
        service.run_reconciliation(runtime, desired, remote, policy=_policy())
    assert runtime.list_active() == []
    assert db.list_runs() == []


def test_without_persistence(make_remote):
    result, run_id = service.run_reconciliation(
        RuntimeState(), _desired("a"), make_remote(a="0x0"), policy=_policy(), persist=False
    )
    assert result.ok
    assert run_id is None
    assert db.list_runs() == []


def test_cancel_request_reaches_running_reconciliation(make_remote):
    runtime = RuntimeState()

    class CancellingRemote(make_remote):
        def write(self, op):
            super().write(op)
            runtime.cancel("Vault")

    remote = CancellingRemote(a="0x0", b="0x0")
    result, run_id = service.run_reconciliation(runtime, _desired("a", "b"), remote, policy=_policy())

    assert result.cancelled
    assert [f.field_name for f in result.fields] == ["a"]
    assert db.get_run(run_id).cancelled == 1
    assert any("cancelled" in e["message"] for e in db.latest_events(target="Vault"))
