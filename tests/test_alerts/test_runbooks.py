"""Tests for runbook lookup."""

from __future__ import annotations

import pytest

from relayctl.alerts.runbooks import GENERAL_RUNBOOK, get_runbook
from relayctl.alerts.types import RuleType


class TestRunbooks:
    @pytest.mark.parametrize("rule_type", list(RuleType))
    def test_every_rule_type_has_a_runbook(self, rule_type: RuleType) -> None:
        runbook = get_runbook(rule_type)
        assert runbook.title != GENERAL_RUNBOOK.title
        assert runbook.steps

    def test_queue_growth(self) -> None:
        runbook = get_runbook("queue_growth")
        assert runbook.title == "Mail Queue Growth"
        assert any("mailq" in step for step in runbook.steps)

    def test_unknown_type_gets_general(self) -> None:
        assert get_runbook("service_check").title == "General Alert"

    def test_returns_copies(self) -> None:
        get_runbook("queue_growth").steps.clear()
        assert get_runbook("queue_growth").steps
