"""
Tests for the corrective regeneration loop.
"""

import asyncio
import pytest

from ..rule_schema import GenerationFailure, PreconditionError, ValidationSignal
from ..synthesis.corrective import CorrectiveLoop, compose_explanation
from .fakes import ScriptedOracle, tool_call_reply


PRIOR_RULES = [{"key": "DamageDice", "selector": "strike-damage", "dieSize": "1d6"}]
SIGNALS = [ValidationSignal(message="DamageDice rule element 1 failed validation: dieSize must be one of d4, d6")]


def fix_oracle(payload):
    return ScriptedOracle({"fixRuleElements": [tool_call_reply("fixRuleElements", payload)]})


def run_fix(oracle, subject, prior=PRIOR_RULES, signals=SIGNALS, explanation="Extra d6 on strikes."):
    return asyncio.run(CorrectiveLoop(oracle).review_and_fix(subject, prior, signals, explanation))


class TestCorrectiveLoop:
    """Tests for CorrectiveLoop.review_and_fix()."""

    def test_no_signals_is_a_precondition_error(self, subject):
        oracle = ScriptedOracle()

        with pytest.raises(PreconditionError):
            run_fix(oracle, subject, signals=[])

        assert oracle.calls == []

    def test_replacement_rules(self, subject):
        fixed = [{"key": "DamageDice", "selector": "strike-damage", "dieSize": "d6", "diceNumber": 1}]
        oracle = fix_oracle({"rules": fixed, "explanation": "dieSize takes a bare die face."})

        result = run_fix(oracle, subject)

        assert result.rules == fixed
        assert result.explanation == (
            "[Corrective review]\ndieSize takes a bare die face.\n\n"
            "[Original explanation]\nExtra d6 on strikes."
        )
        prompt = oracle.prompt_of("fixRuleElements")
        assert '"dieSize": "1d6"' in prompt
        assert "- DamageDice rule element 1 failed validation" in prompt
        assert "Extra d6 on strikes." in prompt

    @pytest.mark.parametrize("returned", [
        PRIOR_RULES,
        [{"dieSize": "1d6", "selector": "strike-damage", "key": "DamageDice"}],
    ])
    def test_unchanged_rules_are_a_failure(self, subject, returned):
        oracle = fix_oracle({"rules": returned, "explanation": "Looks fine to me."})

        with pytest.raises(GenerationFailure) as exc_info:
            run_fix(oracle, subject)

        assert exc_info.value.stage == "corrective"
        assert "unchanged" in str(exc_info.value)

    def test_invalid_replacement(self, subject):
        oracle = fix_oracle({"rules": [{"selector": "strike-damage"}], "explanation": "Dropped the key."})

        with pytest.raises(GenerationFailure) as exc_info:
            run_fix(oracle, subject)

        assert exc_info.value.stage == "corrective"

    def test_oracle_error(self, subject):
        oracle = ScriptedOracle({"fixRuleElements": [ConnectionError("refused")]})

        with pytest.raises(GenerationFailure) as exc_info:
            run_fix(oracle, subject)

        assert exc_info.value.stage == "corrective"
        assert isinstance(exc_info.value.__cause__, ConnectionError)

    def test_compose_explanation(self):
        assert compose_explanation("fix", "") == "[Corrective review]\nfix\n\n[Original explanation]\n"
