"""
Unit Tests for the Outcome type

Remote operations tell "definitely absent" apart from "tier unreachable".
"""

import pytest

from campus_cache.core.outcome import Outcome, OutcomeStatus


@pytest.mark.unit
class TestOutcome:
    def test_ok_with_value_is_hit(self):
        outcome = Outcome.ok("payload")

        assert outcome.status is OutcomeStatus.OK
        assert outcome.is_ok and outcome.is_hit
        assert outcome.value_or("default") == "payload"

    def test_ok_without_value_is_definite_miss(self):
        outcome = Outcome.ok(None)

        assert outcome.is_ok
        assert not outcome.is_hit
        assert outcome.value_or("default") == "default"

    def test_unavailable(self):
        outcome = Outcome.unavailable()

        assert outcome.is_unavailable
        assert not outcome.is_ok and not outcome.is_error
        assert outcome.value_or(0) == 0

    def test_fail_carries_error(self):
        outcome = Outcome.fail("ConnectionError: refused")

        assert outcome.is_error
        assert outcome.error == "ConnectionError: refused"
        assert not outcome.is_hit
