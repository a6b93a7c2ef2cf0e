"""
Tests unitaires AccountLocker
"""

from datetime import timedelta

import pytest

from gatekeeper.auth import AccountLocker, IAccountLocker
from gatekeeper.core import LockoutSettings


@pytest.fixture
def locker(clock):
    return AccountLocker(LockoutSettings(max_failures=3, duration_seconds=600), clock=clock)


class TestAccountLocker:
    def test_implements_interface(self, locker):
        assert isinstance(locker, IAccountLocker)

    def test_locks_at_threshold(self, locker, clock):
        assert locker.record_failure("u-1").locked is False
        assert locker.record_failure("u-1").locked is False

        status = locker.record_failure("u-1")

        assert status.locked is True
        assert status.failure_count == 3
        assert status.locked_until == clock.now + timedelta(seconds=600)
        assert locker.is_locked("u-1") is True
        assert locker.get_remaining_attempts("u-1") == 0

    def test_lock_expires(self, locker, clock):
        for _ in range(3):
            locker.record_failure("u-1")

        clock.advance(seconds=600)

        assert locker.is_locked("u-1") is False
        assert locker.get_remaining_attempts("u-1") == 3

    def test_success_resets_counter(self, locker):
        locker.record_failure("u-1")
        locker.record_failure("u-1")
        locker.record_success("u-1")

        assert locker.record_failure("u-1").failure_count == 1

    def test_old_failures_forgotten(self, locker, clock):
        locker.record_failure("u-1")
        locker.record_failure("u-1")
        clock.advance(seconds=601)

        status = locker.record_failure("u-1")

        assert status.locked is False
        assert status.failure_count == 1

    def test_failures_while_locked_do_not_extend(self, locker, clock):
        for _ in range(3):
            locker.record_failure("u-1")
        until = locker.get_status("u-1").locked_until

        clock.advance(seconds=60)
        locker.record_failure("u-1")

        assert locker.get_status("u-1").locked_until == until

    def test_manual_unlock(self, locker):
        for _ in range(3):
            locker.record_failure("u-1")

        assert locker.unlock("u-1") is True
        assert locker.unlock("u-1") is False
        assert locker.is_locked("u-1") is False

    def test_principals_isolated(self, locker):
        for _ in range(3):
            locker.record_failure("u-1")

        assert locker.is_locked("u-2") is False
        assert locker.get_status("u-2").failure_count == 0
