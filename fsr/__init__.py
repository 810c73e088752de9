"""Field State Reconciler (FSR).

Brings named fields of a remote system (a deployed contract, an HTTP
service) to the values declared in a desired-state descriptor:
 - read each field, compare, write only when different
 - retry transport failures with exponential backoff
 - record every decision (unchanged / updated / failed) for audit

Fields are processed one at a time in descriptor order.
"""
from __future__ import annotations

from .errors import ConfigurationError, ReadError, WriteError
from .model import DesiredState, FieldAssignment, FieldResult, OperationRef, Outcome, ReadRef, ReconciliationResult
from .reconciler import CancelToken, Reconciler, reconcile
from .retry import RetryPolicy
from .values import Value, ValueKind

__all__ = [
    "CancelToken",
    "ConfigurationError",
    "DesiredState",
    "FieldAssignment",
    "FieldResult",
    "OperationRef",
    "Outcome",
    "ReadError",
    "ReadRef",
    "ReconciliationResult",
    "Reconciler",
    "RetryPolicy",
    "Value",
    "ValueKind",
    "WriteError",
    "reconcile",
]
