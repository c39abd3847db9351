import logging

import pytest

from devicemesh.concurrency.retry import MAX_RETRY_DELAY, RetryPolicy, backoff_delays, run_with_retry
from devicemesh.errors import CommandError, ConfigurationError


class TestRunWithRetry:
    """Tests for run_with_retry."""

    def test_success_on_first_attempt(self, no_sleep):
        """Test that a successful operation runs once and never sleeps."""
        call_count = 0

        def succeed():
            nonlocal call_count
            call_count += 1
            return "ok"

        assert run_with_retry(RetryPolicy(max_retries=3), succeed) == "ok"
        assert call_count == 1
        assert no_sleep == []

    def test_retries_until_success(self, no_sleep):
        """Test that transient failures are retried until the operation succeeds."""
        call_count = 0

        def fail_twice():
            nonlocal call_count
            call_count += 1
            if call_count < 3:
                raise CommandError("device busy", device_id="d1")
            return "ok"

        result = run_with_retry(RetryPolicy(max_retries=3, initial_delay=0.5), fail_twice)
        assert result == "ok"
        assert call_count == 3
        assert no_sleep == [0.5, 1.0]

    def test_permanent_failure_runs_max_retries_plus_one(self, no_sleep):
        """Test that a permanently failing operation is invoked max_retries + 1 times."""
        call_count = 0

        def always_fail():
            nonlocal call_count
            call_count += 1
            raise CommandError(f"attempt {call_count}")

        with pytest.raises(CommandError):
            run_with_retry(RetryPolicy(max_retries=3, initial_delay=1.0), always_fail)
        assert call_count == 4
        assert len(no_sleep) == 3

    def test_last_error_raised_unchanged(self, no_sleep):
        """Test that the error of the final attempt is the one raised."""
        errors = [CommandError("first"), CommandError("second"), CommandError("third")]
        raised = iter(errors)

        def fail():
            raise next(raised)

        with pytest.raises(CommandError) as exc_info:
            run_with_retry(RetryPolicy(max_retries=2), fail)
        assert exc_info.value is errors[-1]

    def test_zero_retries_makes_single_attempt(self, no_sleep):
        """Test that max_retries=0 runs the operation exactly once."""
        call_count = 0

        def fail():
            nonlocal call_count
            call_count += 1
            raise CommandError("boom")

        with pytest.raises(CommandError, match="boom"):
            run_with_retry(RetryPolicy(max_retries=0), fail)
        assert call_count == 1
        assert no_sleep == []

    def test_delays_double_and_cap(self, no_sleep):
        """Test that slept delays are 1, 2, 4, 8, then capped at 10 seconds."""

        def fail():
            raise CommandError("offline")

        with pytest.raises(CommandError):
            run_with_retry(RetryPolicy(max_retries=6, initial_delay=1.0), fail)
        assert no_sleep == [1.0, 2.0, 4.0, 8.0, 10.0, 10.0]

    def test_non_retryable_exception_raised_immediately(self, no_sleep):
        """Test that exceptions outside retryable_exceptions are not retried."""
        call_count = 0

        def fail():
            nonlocal call_count
            call_count += 1
            raise KeyError("not transient")

        policy = RetryPolicy(max_retries=5, retryable_exceptions=(CommandError,))
        with pytest.raises(KeyError):
            run_with_retry(policy, fail)
        assert call_count == 1
        assert no_sleep == []


class TestBackoffDelays:
    """Tests for the backoff schedule."""

    def test_schedule_length_matches_max_retries(self):
        """Test that one delay is produced per retry."""
        assert list(backoff_delays(RetryPolicy(max_retries=0))) == []
        assert len(list(backoff_delays(RetryPolicy(max_retries=4)))) == 4

    def test_schedule_values(self):
        """Test the documented doubling schedule with the default cap."""
        policy = RetryPolicy(max_retries=6, initial_delay=1.0)
        assert list(backoff_delays(policy)) == [1.0, 2.0, 4.0, 8.0, MAX_RETRY_DELAY, MAX_RETRY_DELAY]

    def test_initial_delay_above_cap_is_used_once(self):
        """Test that the first delay is the initial delay even when it exceeds the cap."""
        policy = RetryPolicy(max_retries=3, initial_delay=15.0)
        assert list(backoff_delays(policy)) == [15.0, 10.0, 10.0]

    def test_zero_initial_delay_never_sleeps(self, no_sleep):
        """Test that a zero initial delay stays zero."""

        def fail():
            raise CommandError("boom")

        with pytest.raises(CommandError):
            run_with_retry(RetryPolicy(max_retries=3, initial_delay=0.0), fail)
        assert no_sleep == [0.0, 0.0, 0.0]


class TestRetryPolicy:
    """Tests for RetryPolicy."""

    def test_defaults(self):
        """Test default policy values."""
        policy = RetryPolicy()
        assert policy.max_retries == 3
        assert policy.initial_delay == 1.0
        assert policy.max_delay == MAX_RETRY_DELAY

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"max_retries": -1},
            {"max_retries": 1.5},
            {"max_retries": True},
            {"initial_delay": -0.1},
            {"max_delay": -1.0},
        ],
    )
    def test_invalid_values_rejected(self, kwargs):
        """Test that out-of-range settings raise ConfigurationError."""
        with pytest.raises(ConfigurationError):
            RetryPolicy(**kwargs)

    def test_configuration_error_is_value_error(self):
        """Test that ConfigurationError can be caught as ValueError."""
        with pytest.raises(ValueError):
            RetryPolicy(max_retries=-1)

    def test_execute(self, no_sleep):
        """Test policy.execute runs the operation with retries."""
        attempts = []

        def flaky():
            attempts.append(1)
            if len(attempts) == 1:
                raise CommandError("once")
            return 42

        assert RetryPolicy(max_retries=1, initial_delay=0.2).execute(flaky) == 42
        assert no_sleep == [0.2]

    def test_as_decorator(self, no_sleep):
        """Test that the policy decorates a function and preserves its metadata."""
        attempts = []

        @RetryPolicy(max_retries=2, initial_delay=0.1)
        def read_model(device_id):
            """Read the model name."""
            attempts.append(device_id)
            if len(attempts) < 2:
                raise CommandError("transport reset", device_id=device_id)
            return f"{device_id}-model"

        assert read_model("d1") == "d1-model"
        assert attempts == ["d1", "d1"]
        assert read_model.__name__ == "read_model"
        assert read_model.__doc__ == "Read the model name."

    def test_repr(self):
        """Test repr shows the budget and delays."""
        assert repr(RetryPolicy(max_retries=2, initial_delay=0.5)) == (
            "RetryPolicy(max_retries=2, initial_delay=0.5, max_delay=10.0)"
        )


class TestRetryLogContext:
    """Tests for the structured fields on retry log records."""

    def test_context_fields_attached(self, no_sleep, caplog):
        """Test that caller context and retry counters reach the log records."""
        attempts = []

        def flaky():
            attempts.append(1)
            if len(attempts) < 3:
                raise CommandError("offline")
            return "ok"

        with caplog.at_level(logging.WARNING, logger="devicemesh.concurrency.retry"):
            run_with_retry(
                RetryPolicy(max_retries=3, initial_delay=1.0),
                flaky,
                context={"device_id": "d1", "command": "uptime"},
            )

        records = [r for r in caplog.records if r.name == "devicemesh.concurrency.retry"]
        assert [r.attempt for r in records] == [1, 2]
        assert [r.next_delay for r in records] == [1.0, 2.0]
        assert all(r.device_id == "d1" and r.command == "uptime" for r in records)

    def test_exhaustion_logged_as_error(self, no_sleep, caplog):
        """Test that running out of retries logs one error with the device."""

        def fail():
            raise CommandError("offline")

        with caplog.at_level(logging.WARNING, logger="devicemesh.concurrency.retry"):
            with pytest.raises(CommandError):
                run_with_retry(RetryPolicy(max_retries=1), fail, context={"device_id": "d2"})

        errors = [r for r in caplog.records if r.levelno == logging.ERROR]
        assert len(errors) == 1
        assert errors[0].device_id == "d2"
        assert errors[0].max_retries == 1
