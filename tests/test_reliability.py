"""
Tests for bounded backoff and the host run lock.
"""

from pathlib import Path

import pytest

from devstack.core.engine.lock import default_lock_path, host_lock
from devstack.core.errors import RunLockedError
from devstack.core.reliability.backoff import backoff_delay, wait_until

from tests.conftest import FakeClock


class TestBackoff:

    def test_delay_grows_and_caps(self):
        assert 1.0 <= backoff_delay(1, 1.0, 8.0) <= 1.1
        assert 4.0 <= backoff_delay(3, 1.0, 8.0) <= 4.4
        assert 8.0 <= backoff_delay(10, 1.0, 8.0) <= 8.8

    def test_returns_when_predicate_holds(self):
        clock = FakeClock()
        answers = iter([False, False, True])
        assert wait_until(lambda: next(answers), 30, sleep=clock.sleep, clock=clock)
        assert len(clock.sleeps) == 2
        assert clock.sleeps[1] > clock.sleeps[0]

    def test_gives_up_at_deadline(self):
        clock = FakeClock()
        assert not wait_until(lambda: False, 10, sleep=clock.sleep, clock=clock)
        assert clock.now == pytest.approx(10)

    def test_checks_at_least_once(self):
        clock = FakeClock()
        assert wait_until(lambda: True, 0, sleep=clock.sleep, clock=clock)
        assert clock.sleeps == []


class TestHostLock:

    def test_exclusive(self, tmp_path: Path):
        path = tmp_path / "run.lock"
        with host_lock(path):
            with pytest.raises(RunLockedError) as exc:
                with host_lock(path):
                    pass
        assert exc.value.exit_code == 4
        assert exc.value.resource == str(path)

    def test_released_after_block(self, tmp_path: Path):
        path = tmp_path / "run.lock"
        with host_lock(path):
            pass
        with host_lock(path) as held:
            assert held == path

    def test_released_on_error(self, tmp_path: Path):
        path = tmp_path / "run.lock"
        with pytest.raises(ValueError):
            with host_lock(path):
                raise ValueError("boom")
        with host_lock(path):
            pass

    def test_unusable_lock_file(self, tmp_path: Path):
        path = tmp_path / "lockdir"
        path.mkdir()
        with pytest.raises(RunLockedError) as exc:
            with host_lock(path):
                pass
        assert exc.value.step == "acquire lock"
        assert exc.value.resource == str(path)
        assert "cannot open the lock file" in exc.value.message

    def test_env_override(self, tmp_path: Path):
        assert default_lock_path() == tmp_path / "devstack.lock"
