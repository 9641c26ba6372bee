"""Tests for the Ok / Exhausted / Err outcome envelope."""

import pytest

from retryguard.core.errors import RetryExhausted
from retryguard.core.result import Err, Exhausted, Ok


class TestOk:
    def test_accessors(self):
        outcome = Ok(42)
        assert outcome.is_ok() and not outcome.is_err() and not outcome.is_exhausted()
        assert outcome.unwrap() == 42
        assert outcome.unwrap_or(0) == 42

    def test_map(self):
        assert Ok(2).map(lambda v: v * 10) == Ok(20)

    def test_to_dict(self):
        assert Ok("x").to_dict() == {"outcome": "ok", "value": "x"}


class TestExhausted:
    def test_unwrap_raises_retry_exhausted(self):
        """Unwrapping exhaustion raises the equivalent exception."""
        with pytest.raises(RetryExhausted) as exc_info:
            Exhausted(attempts=3, max_attempts=3).unwrap()
        assert exc_info.value.attempts == 3

    def test_unwrap_or_and_map(self):
        outcome = Exhausted(attempts=2, max_attempts=2)
        assert outcome.unwrap_or("fallback") == "fallback"
        assert outcome.map(lambda v: v + 1) is outcome
        assert outcome.is_exhausted()

    def test_to_dict(self):
        assert Exhausted(1, 3).to_dict() == {"outcome": "exhausted", "attempts": 1, "max_attempts": 3}


class TestErr:
    def test_unwrap_raises_contained(self):
        error = ValueError("boom")
        with pytest.raises(ValueError) as exc_info:
            Err(error).unwrap()
        assert exc_info.value is error

    def test_to_dict_plain_exception(self):
        assert Err(KeyError("k")).to_dict()["error"]["error_type"] == "KeyError"

    def test_to_dict_structured_error(self):
        data = Err(RetryExhausted(attempts=1, max_attempts=1)).to_dict()
        assert data["error"]["category"] == "LOCK"


class TestPatternMatching:
    """Outcomes are usable with structural pattern matching."""

    @pytest.mark.parametrize(
        "outcome, expected",
        [
            (Ok(1), "ok:1"),
            (Exhausted(3, 3), "exhausted:3"),
            (Err(ValueError("x")), "err:ValueError"),
        ],
    )
    def test_match(self, outcome, expected):
        match outcome:
            case Ok(value):
                label = f"ok:{value}"
            case Exhausted(attempts=attempts):
                label = f"exhausted:{attempts}"
            case Err(error):
                label = f"err:{type(error).__name__}"
        assert label == expected
