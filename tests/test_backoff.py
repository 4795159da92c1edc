import pytest

from verifyflow.v1.infra.queues.backoff import compute_backoff_ms


def test_fixed_backoff_is_constant():
    backoff = {"type": "fixed", "delay_ms": 5000}

    assert [compute_backoff_ms(backoff, attempt) for attempt in (1, 2, 3)] == [5000] * 3


def test_exponential_backoff_doubles_per_attempt():
    backoff = {"type": "exponential", "delay_ms": 1000}

    assert [compute_backoff_ms(backoff, attempt) for attempt in (1, 2, 3, 4)] == [
        1000,
        2000,
        4000,
        8000,
    ]


def test_exponential_backoff_is_uncapped():
    backoff = {"type": "exponential", "delay_ms": 10000}

    assert compute_backoff_ms(backoff, 11) == 10000 * 1024


def test_zero_delay_means_immediate_retry():
    assert compute_backoff_ms({"type": "exponential", "delay_ms": 0}, 3) == 0
    assert compute_backoff_ms({}, 1) == 0


def test_unknown_backoff_type():
    with pytest.raises(ValueError, match="Unknown backoff type"):
        compute_backoff_ms({"type": "linear", "delay_ms": 100}, 1)
