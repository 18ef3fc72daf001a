"""Tests for formatting, validation, storage, timing, retry and auth helpers."""

import asyncio
import random
from datetime import timedelta

import pytest

from quizmaster.errors import ExternalServiceError
from quizmaster.utils.auth import (
    LoginAttemptTracker,
    create_access_token,
    decode_access_token,
    get_password_hash,
    verify_password,
)
from quizmaster.utils.formatting import (
    calculate_percentage,
    format_duration,
    format_number,
    format_timer,
    get_random_items,
    round_half_up,
    shuffle,
)
from quizmaster.utils.retry import is_transient, retry_async
from quizmaster.utils.storage import LocalStore
from quizmaster.utils.timing import Debouncer, Throttle
from quizmaster.utils.validation import (
    is_valid_email,
    password_strength,
    validate_email,
    validate_password,
    validate_registration,
    validate_username,
)


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class TestFormatting:
    def test_format_number(self):
        assert format_number(15420) == "15,420"
        assert format_number(999) == "999"
        assert format_number(1234567) == "1,234,567"

    @pytest.mark.parametrize(
        "seconds,expected",
        [(45, "45s"), (125, "2m 5s"), (3723, "1h 2m 3s"), (0, "0s"), (-5, "0s")],
    )
    def test_format_duration(self, seconds, expected):
        assert format_duration(seconds) == expected

    def test_format_timer(self):
        assert format_timer(300) == "05:00"
        assert format_timer(61) == "01:01"
        assert format_timer(0) == "00:00"

    def test_calculate_percentage(self):
        assert calculate_percentage(1, 3) == 33.3
        assert calculate_percentage(2, 3, decimals=2) == 66.67
        assert calculate_percentage(5, 0) == 0
        assert calculate_percentage(1, 16) == 6.3

    def test_round_half_up(self):
        assert round_half_up(6.25) == 6.3
        assert round_half_up(2.5, 0) == 3
        assert round_half_up(6.24) == 6.2
        assert round_half_up(177.125, 2) == 177.13

    def test_shuffle_returns_copy(self):
        items = list(range(20))
        shuffled = shuffle(items, random.Random(1))
        assert items == list(range(20))
        assert sorted(shuffled) == items

    def test_get_random_items(self):
        items = list(range(5))
        assert len(get_random_items(items, 3, random.Random(1))) == 3
        assert sorted(get_random_items(items, 10, random.Random(1))) == items


class TestValidation:
    def test_email(self):
        assert is_valid_email("player@example.com")
        assert not is_valid_email("player@example")
        assert validate_email("Player@Example.com") == []
        assert validate_email("not an email") == ["Please enter a valid email address"]
        assert validate_email("a" * 250 + "@example.com") == ["Email address is too long"]

    @pytest.mark.parametrize("username", ["ab", "a" * 20, "bad name", "admin"])
    def test_invalid_usernames(self, username):
        assert validate_username(username)

    def test_valid_username(self):
        assert validate_username("Quiz_Fan42") == []

    def test_password_rules(self):
        assert validate_password("Str0ng!Pass") == []
        errors = validate_password("short")
        assert "Password must be at least 8 characters long" in errors
        assert "Password must contain uppercase letters" in errors
        assert "This password is too common and weak" in validate_password("password")

    def test_password_strength(self):
        assert password_strength("abc")["strength"] == "weak"
        assert password_strength("abcdefgH")["strength"] == "fair"
        assert password_strength("abcdefgH1")["strength"] == "good"
        strong = password_strength("abcdefgH1!")
        assert strong["strength"] == "strong"
        assert strong["score"] == 5
        assert strong["feedback"] == []

    def test_registration_reports_failing_fields_only(self):
        errors = validate_registration("player@example.com", "weak", "ok_name")
        assert set(errors) == {"password"}
        assert validate_registration("player@example.com", "Str0ng!Pass", "ok_name") == {}


class TestLocalStore:
    def test_persists_to_disk(self, tmp_path):
        path = tmp_path / "store.json"
        store = LocalStore(path)
        store.set("quizmaster_theme", "dark")

        assert LocalStore(path).get("quizmaster_theme") == "dark"

    def test_remove_and_clear(self, local_store):
        local_store.set("a", 1)
        local_store.set("b", 2)
        local_store.remove("a")
        assert local_store.get("a") is None
        local_store.clear()
        assert local_store.get("b", "default") == "default"

    def test_history_most_recent_first(self, local_store):
        for i in range(3):
            local_store.append_history("results", "player-1", {"n": i})
        local_store.append_history("results", None, {"n": 99})

        assert [e["n"] for e in local_store.get_history("results", "player-1")] == [2, 1, 0]
        assert [e["n"] for e in local_store.get_history("results", None)] == [99]

    def test_corrupt_file_is_ignored(self, tmp_path):
        path = tmp_path / "store.json"
        path.write_text("{not json")
        store = LocalStore(path)
        assert store.get("anything") is None

    def test_write_failure_is_not_raised(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("")
        store = LocalStore(blocker / "store.json")
        assert store.set("key", "value") is False
        assert store.get("key") == "value"


class TestTiming:
    async def test_debouncer_runs_once(self):
        calls = []
        debounced = Debouncer(calls.append, 0.01)

        debounced(1)
        debounced(2)
        debounced(3)
        assert debounced.pending
        await asyncio.sleep(0.05)

        assert calls == [3]
        assert not debounced.pending

    async def test_debouncer_cancel(self):
        calls = []
        debounced = Debouncer(calls.append, 0.01)
        debounced(1)
        debounced.cancel()
        await asyncio.sleep(0.03)
        assert calls == []

    async def test_debouncer_awaits_coroutines(self):
        done = asyncio.Event()

        async def work():
            done.set()

        Debouncer(work, 0)()
        await asyncio.wait_for(done.wait(), timeout=1)

    def test_throttle(self):
        clock = FakeClock()
        throttle = Throttle(1.0, clock=clock)

        assert throttle.allow("x")
        assert not throttle.allow("x")
        assert throttle.allow("y")
        clock.now += 1.0
        assert throttle.allow("x")

    def test_throttle_forgets_expired_keys(self):
        clock = FakeClock()
        throttle = Throttle(1.0, clock=clock)
        for i in range(100):
            throttle.allow(i)

        clock.now += 1.0
        throttle.allow("fresh")

        assert len(throttle) == 1


class TestRetry:
    def test_is_transient(self):
        assert is_transient(ExternalServiceError("down"))
        assert is_transient(ExternalServiceError("down", status=503))
        assert not is_transient(ExternalServiceError("bad", status=404))
        assert not is_transient(ExternalServiceError("bad", transient=False))
        assert is_transient(ConnectionError())
        assert not is_transient(ValueError())

    async def test_retries_until_success(self):
        attempts = []

        async def flaky():
            attempts.append(1)
            if len(attempts) < 3:
                raise ConnectionError("reset")
            return "ok"

        assert await retry_async(flaky, max_retries=3, base_delay=0) == "ok"
        assert len(attempts) == 3

    async def test_gives_up_after_max_retries(self):
        attempts = []

        async def failing():
            attempts.append(1)
            raise ConnectionError("reset")

        with pytest.raises(ConnectionError):
            await retry_async(failing, max_retries=2, base_delay=0)
        assert len(attempts) == 3

    async def test_backoff_delays(self, monkeypatch):
        delays = []

        async def fake_sleep(delay):
            delays.append(delay)

        monkeypatch.setattr("quizmaster.utils.retry.asyncio.sleep", fake_sleep)

        async def failing():
            raise ConnectionError("reset")

        with pytest.raises(ConnectionError):
            await retry_async(failing, max_retries=3, base_delay=1.0)
        assert delays == [1.0, 2.0, 4.0]

    async def test_non_transient_not_retried(self):
        attempts = []

        async def invalid():
            attempts.append(1)
            raise ValueError("bad input")

        with pytest.raises(ValueError):
            await retry_async(invalid, base_delay=0)
        assert len(attempts) == 1


class TestAuth:
    def test_password_hashing(self):
        hashed = get_password_hash("Str0ng!Pass")
        assert hashed != "Str0ng!Pass"
        assert verify_password("Str0ng!Pass", hashed)
        assert not verify_password("wrong", hashed)

    def test_token_round_trip(self):
        token = create_access_token({"sub": "user-1"}, secret_key="secret")
        assert decode_access_token(token, "secret") == "user-1"
        assert decode_access_token(token, "other-secret") is None

    def test_expired_token(self):
        token = create_access_token({"sub": "user-1"}, expires_delta=timedelta(minutes=-1), secret_key="secret")
        assert decode_access_token(token, "secret") is None

    def test_login_lockout(self):
        clock = FakeClock()
        tracker = LoginAttemptTracker(max_attempts=3, window=60, clock=clock)

        for _ in range(3):
            assert not tracker.is_locked("a@example.com")
            tracker.record_failure("a@example.com")

        assert tracker.is_locked("a@example.com")
        assert not tracker.is_locked("b@example.com")
        clock.now += 61
        assert not tracker.is_locked("a@example.com")

    def test_login_reset(self):
        tracker = LoginAttemptTracker(max_attempts=1)
        tracker.record_failure("a@example.com")
        tracker.reset("a@example.com")
        assert not tracker.is_locked("a@example.com")

    def test_lookups_do_not_track_identifiers(self):
        tracker = LoginAttemptTracker()
        for i in range(1000):
            assert not tracker.is_locked(f"user{i}@example.com")
        assert len(tracker) == 0

    def test_expired_failures_are_forgotten(self):
        clock = FakeClock()
        tracker = LoginAttemptTracker(max_attempts=3, window=60, clock=clock)
        for i in range(50):
            tracker.record_failure(f"user{i}@example.com")

        clock.now += 61
        tracker.record_failure("late@example.com")

        assert len(tracker) == 1
