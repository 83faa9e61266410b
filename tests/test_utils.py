# tests/test_utils.py
"""Test utilities and helpers"""

from unittest.mock import Mock, patch

import pytest

from digquest_sync.utils import ensure_directory, retry_on_failure


class TestRetryOnFailure:
    """Test the retry decorator"""

    def test_returns_first_success(self):
        func = Mock(return_value="ok", __name__="fetch")
        assert retry_on_failure(max_attempts=3, delay=0)(func)() == "ok"
        func.assert_called_once()

    @patch("digquest_sync.utils.time.sleep")
    def test_retries_with_backoff(self, sleep):
        func = Mock(side_effect=[OSError("down"), OSError("down"), "ok"], __name__="fetch")

        assert retry_on_failure(max_attempts=3, delay=1.0, backoff=2.0)(func)() == "ok"

        assert func.call_count == 3
        assert [call.args[0] for call in sleep.call_args_list] == [1.0, 2.0]

    @patch("digquest_sync.utils.time.sleep")
    def test_reraises_after_last_attempt(self, sleep):
        func = Mock(side_effect=OSError("down"), __name__="fetch")

        with pytest.raises(OSError, match="down"):
            retry_on_failure(max_attempts=2, delay=0)(func)()
        assert func.call_count == 2

    def test_predicate_stops_retry(self):
        func = Mock(side_effect=ValueError("bad input"), __name__="fetch")
        decorated = retry_on_failure(max_attempts=5, delay=0,
                                     should_retry=lambda e: not isinstance(e, ValueError))(func)

        with pytest.raises(ValueError):
            decorated()
        func.assert_called_once()


class TestEnsureDirectory:
    """Test directory creation"""

    def test_creates_nested(self, temp_dir):
        target = temp_dir / "a" / "b"
        assert ensure_directory(target) == target
        assert target.is_dir()

    def test_existing_is_fine(self, temp_dir):
        assert ensure_directory(temp_dir) == temp_dir
