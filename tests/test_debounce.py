"""Tests for the search debounce rule."""

import os
import sys

import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from dashboard.debounce import elapsed_since, should_dispatch


@pytest.mark.parametrize(
    "buffer, last, elapsed, expected",
    [
        ("abc", None, 500, True),
        ("abc", None, 499, False),
        ("ab", None, 5000, False),
        ("abc", "abc", 5000, False),
        ("abcd", "abc", 600, True),
        ("", None, 5000, False),
    ],
)
def test_should_dispatch(buffer, last, elapsed, expected):
    assert should_dispatch(buffer, last, elapsed, quiet_ms=500, min_length=3) is expected


def test_custom_thresholds():
    assert should_dispatch("a", None, 100, quiet_ms=100, min_length=1)
    assert not should_dispatch("a", None, 99, quiet_ms=100, min_length=1)


def test_elapsed_since():
    assert elapsed_since(None, 10.0) == 0.0
    assert elapsed_since(1.0, 1.25) == pytest.approx(250.0)
    # clock skew never yields a negative delay
    assert elapsed_since(2.0, 1.0) == 0.0
