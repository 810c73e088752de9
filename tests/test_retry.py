import pytest

from fsr.errors import ReadError, WriteError
from fsr.retry import RetryPolicy, call_with_retry


def test_backoff_is_exponential_and_capped():
    p = RetryPolicy(base_delay_s=0.5, multiplier=2.0, max_delay_s=3.0)
    assert [p.delay(n) for n in range(1, 6)] == [0.5, 1.0, 2.0, 3.0, 3.0]


@pytest.mark.parametrize("kw", [{"max_retries": -1}, {"base_delay_s": -1}, {"multiplier": 0.5}])
def test_invalid_policy(kw):
    with pytest.raises(ValueError):
        RetryPolicy(**kw)


def test_from_settings_uses_overrides(isolated_settings):
    p = RetryPolicy.from_settings(max_retries=5, base_delay_s=None)
    assert p.max_retries == 5
    assert p.base_delay_s == isolated_settings.backoff_base_s
    assert p.multiplier == isolated_settings.backoff_multiplier


def test_rejection_is_not_retried():
    calls = []

    def fn():
        calls.append(1)
        raise WriteError("reverted")

    with pytest.raises(WriteError) as exc:
        call_with_retry(fn, RetryPolicy(max_retries=3, sleep=lambda s: None))
    assert len(calls) == 1
    assert exc.value.attempts == 1


def test_transient_retried_until_success():
    outcomes = [ReadError("down", transient=True), ReadError("down", transient=True), "ok"]

    def fn():
        o = outcomes.pop(0)
        if isinstance(o, Exception):
            raise o
        return o

    assert call_with_retry(fn, RetryPolicy(max_retries=2, sleep=lambda s: None)) == ("ok", 3)


def test_not_retryable_flag_disables_retries():
    calls = []

    def fn():
        calls.append(1)
        raise ReadError("down", transient=True)

    with pytest.raises(ReadError):
        call_with_retry(fn, RetryPolicy(max_retries=3, sleep=lambda s: None), retryable=False)
    assert len(calls) == 1
