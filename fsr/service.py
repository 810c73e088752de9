from __future__ import annotations

import logging

from . import db
from .alerts import alert_on_failure
from .model import DesiredState, Outcome, ReconciliationResult
from .reconciler import reconcile
from .remotes import RemoteSystem, target_identity
from .retry import RetryPolicy
from .runtime import RuntimeState
from .settings import settings

LOGGER = logging.getLogger("fsr.service")

_EVENT_LEVEL = {Outcome.UNCHANGED: "INFO", Outcome.UPDATED: "INFO", Outcome.FAILED: "ERROR"}


def _event_message(f) -> str:
    if f.outcome is Outcome.UNCHANGED:
        return f"Unchanged: {f.new_value}"
    if f.outcome is Outcome.UPDATED:
        return f"Updated: {f.old_value} -> {f.new_value}"
    return f"Failed ({f.error_kind}, {f.attempts} write attempt(s)): {f.error}"


def run_reconciliation(
    runtime: RuntimeState,
    desired: DesiredState,
    remote: RemoteSystem,
    policy: RetryPolicy | None = None,
    call_timeout_s: float | None = None,
    persist: bool = True,
) -> tuple[ReconciliationResult, int | None]:
    """Reconcile one target while holding its advisory lock, then record the run.

    Returns (result, run_id); run_id is None when ``persist`` is False.
    Raises ConfigurationError for bad input and TargetBusy if the target is held.
    """
    desired.validate()
    ident = desired.target or target_identity(remote)
    policy = policy or RetryPolicy.from_settings()
    if call_timeout_s is None:
        call_timeout_s = settings.call_timeout_s or None

    with runtime.hold(ident) as active:
        if persist:
            db.log_event("INFO", f"Run started ({len(desired)} fields)", target=ident)
        result = reconcile(remote, desired, policy, call_timeout_s=call_timeout_s, cancel=active.cancel)

    run_id = None
    if persist:
        run_id = db.record_run(result).id
        for f in result.fields:
            db.log_event(_EVENT_LEVEL[f.outcome], _event_message(f), target=ident, field=f.field_name)
        if result.cancelled:
            db.log_event("WARN", f"Run cancelled after {len(result.fields)} of {len(desired)} fields", target=ident)
        db.log_event("INFO" if result.ok else "ERROR", f"Run {run_id} finished: {result.counts()}", target=ident)

    if alert_on_failure(result):
        LOGGER.info("failure alert sent for target=%s", ident)
    return result, run_id
