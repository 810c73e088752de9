from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from threading import Event
from typing import Any, Callable, Iterable, TypeVar

from .errors import ReadError, RemoteError, WriteError
from .model import DesiredState, FieldAssignment, FieldResult, OperationRef, Outcome, ReadRef, ReconciliationResult
from .remotes import RemoteSystem, target_identity
from .retry import RetryPolicy, call_with_retry
from .values import Value

LOGGER = logging.getLogger("fsr.reconciler")

T = TypeVar("T")


class CancelToken:
    """Set from any thread; the reconciler stops before the next field."""

    def __init__(self) -> None:
        self._ev = Event()

    def cancel(self) -> None:
        self._ev.set()

    @property
    def cancelled(self) -> bool:
        return self._ev.is_set()


class Reconciler:
    """Brings the fields of one remote system to their desired values.

    Fields are processed strictly in input order. Per field: read, compare,
    write only if different. A failing field is recorded and the run moves on.
    """

    def __init__(
        self,
        target: RemoteSystem,
        policy: RetryPolicy | None = None,
        call_timeout_s: float | None = None,
        cancel: CancelToken | None = None,
    ):
        self.target = target
        self.policy = policy or RetryPolicy()
        self.call_timeout_s = call_timeout_s if call_timeout_s and call_timeout_s > 0 else None
        self.cancel = cancel
        self._resolved: dict[tuple[str, str], Any] = {}

    def run(self, desired: DesiredState | Iterable[FieldAssignment]) -> ReconciliationResult:
        if not isinstance(desired, DesiredState):
            desired = DesiredState(tuple(desired))
        desired.validate()

        ident = desired.target or target_identity(self.target)
        result = ReconciliationResult(target=ident)
        self._resolved = {}
        LOGGER.info("reconcile start target=%s fields=%s", ident, len(desired))

        for assignment in desired:
            if self.cancel is not None and self.cancel.cancelled:
                LOGGER.warning(
                    "reconcile cancelled target=%s processed=%s remaining=%s",
                    ident,
                    len(result.fields),
                    len(desired) - len(result.fields),
                )
                result.close(cancelled=True)
                return result
            r = self._process(assignment)
            self._audit(ident, r)
            result.record(r)

        result.close()
        LOGGER.info("reconcile done target=%s %s", ident, " ".join(f"{k}={v}" for k, v in result.counts().items()))
        return result

    def _process(self, a: FieldAssignment) -> FieldResult:
        desired = a.desired_value
        try:
            read_op, write_op = self._resolve_operations(a)
            current = self._read(read_op, a)
        except RemoteError as e:
            return self._failed(a, e)

        if current == desired:
            return FieldResult(a.field_name, Outcome.UNCHANGED, old_value=current, new_value=desired)

        try:
            _, attempts = call_with_retry(
                lambda: self._call(lambda: self.target.write(write_op), WriteError),
                self.policy,
                what=f"write {a.field_name} via {write_op}",
            )
        except RemoteError as e:
            return self._failed(a, e, old=current)
        return FieldResult(a.field_name, Outcome.UPDATED, old_value=current, new_value=desired, attempts=attempts)

    def _read(self, op: OperationRef, a: FieldAssignment) -> Value:
        raw, _ = call_with_retry(
            lambda: self._call(lambda: self.target.read(op), ReadError),
            self.policy,
            retryable=self.policy.retry_reads,
            what=f"read {a.field_name} via {op}",
        )
        try:
            return Value.coerce(raw, a.desired_value.kind)
        except ValueError as e:
            raise ReadError(f"{op} returned {raw!r}: {e}") from e

    def _resolve_operations(self, a: FieldAssignment) -> tuple[OperationRef, OperationRef]:
        try:
            return self._resolve(a.read), self._resolve(a.write)
        except RemoteError:
            raise
        except Exception as e:
            raise ReadError(f"resolving arguments of {a.field_name}: {type(e).__name__}: {e}") from e

    def _resolve(self, op: OperationRef) -> OperationRef:
        """Replace ReadRef arguments with values read from the target, and Values with their data."""
        return OperationRef(op.name, tuple(self._resolve_arg(arg) for arg in op.args))

    def _resolve_arg(self, arg: Any) -> Any:
        if isinstance(arg, Value):
            return arg.data
        if not isinstance(arg, ReadRef):
            return arg
        op = self._resolve(OperationRef(arg.name, arg.args))
        # repr: resolved arguments may be lists or dicts
        key = (op.name, repr(op.args))
        if key not in self._resolved:
            raw, _ = call_with_retry(
                lambda: self._call(lambda: self.target.read(op), ReadError),
                self.policy,
                retryable=self.policy.retry_reads,
                what=f"read argument {op}",
            )
            self._resolved[key] = raw.data if isinstance(raw, Value) else raw
        return self._resolved[key]

    def _call(self, fn: Callable[[], T], err_cls: type[RemoteError]) -> T:
        """Run one remote call, turning timeouts and stray exceptions into ``err_cls``."""
        try:
            if self.call_timeout_s is None:
                return fn()
            pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="fsr-call")
            try:
                return pool.submit(fn).result(timeout=self.call_timeout_s)
            except FutureTimeout:
                raise err_cls(f"timed out after {self.call_timeout_s}s", transient=True) from None
            finally:
                pool.shutdown(wait=False)
        except RemoteError:
            raise
        except Exception as e:
            raise err_cls(f"{type(e).__name__}: {e}") from e

    def _failed(self, a: FieldAssignment, e: RemoteError, old: Value | None = None) -> FieldResult:
        return FieldResult(
            a.field_name,
            Outcome.FAILED,
            old_value=old,
            new_value=a.desired_value,
            error_kind=e.kind,
            error=str(e),
            attempts=e.attempts if isinstance(e, WriteError) else 0,
        )

    def _audit(self, target: str, r: FieldResult) -> None:
        if r.outcome is Outcome.UNCHANGED:
            LOGGER.info("field=%s target=%s unchanged value=%s", r.field_name, target, r.new_value)
        elif r.outcome is Outcome.UPDATED:
            LOGGER.info(
                "field=%s target=%s updated old=%s new=%s attempts=%s",
                r.field_name,
                target,
                r.old_value,
                r.new_value,
                r.attempts,
            )
        else:
            LOGGER.error(
                "field=%s target=%s failed kind=%s attempts=%s error=%s",
                r.field_name,
                target,
                r.error_kind,
                r.attempts,
                r.error,
            )


def reconcile(
    target: RemoteSystem,
    desired: DesiredState | Iterable[FieldAssignment],
    options: RetryPolicy | None = None,
    call_timeout_s: float | None = None,
    cancel: CancelToken | None = None,
) -> ReconciliationResult:
    """Converge ``target`` to ``desired``; see Reconciler."""
    return Reconciler(target, options, call_timeout_s=call_timeout_s, cancel=cancel).run(desired)
