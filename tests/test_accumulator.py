"""
Tests for cumulative turn text.
"""

import pytest

from anywhere.realtime.accumulator import AccumulatorMode, TurnAccumulator, join_fragment


class TestJoinFragment:
    """Exactly one space at the join."""

    @pytest.mark.parametrize(
        "existing, fragment, expected",
        [
            ("", "Hello", "Hello"),
            ("Hello", "", "Hello"),
            ("Hello", "world", "Hello world"),
            ("Hello ", "world", "Hello world"),
            ("Hello", " world", "Hello world"),
            ("Hello\n", "world", "Hello\nworld"),
        ],
    )
    def test_join(self, existing, fragment, expected):
        assert join_fragment(existing, fragment) == expected


class TestTurnAccumulator:
    """Mode switching and accumulation."""

    def test_starts_idle(self):
        acc = TurnAccumulator()
        assert acc.mode is AccumulatorMode.IDLE
        assert acc.user_text == ""
        assert acc.agent_text == ""

    def test_agent_fragments_accumulate(self):
        acc = TurnAccumulator()

        assert acc.append_agent("Hello") == "Hello"
        assert acc.append_agent("world") == "Hello world"
        assert acc.receiving_agent_output is True

    def test_switch_to_user_clears_agent(self):
        acc = TurnAccumulator()
        acc.append_agent("The tower is 330 meters tall.")

        assert acc.append_user("wow") == "wow"
        assert acc.agent_text == ""
        assert acc.mode is AccumulatorMode.USER

    def test_switch_to_agent_clears_user(self):
        acc = TurnAccumulator()
        acc.append_user("what is")
        acc.append_user("that")

        assert acc.append_agent("That is") == "That is"
        assert acc.user_text == ""
        assert acc.mode is AccumulatorMode.AGENT

    def test_complete_turn_resets(self):
        acc = TurnAccumulator()
        acc.append_user("take me to Rome")
        acc.append_agent("Off we go")

        acc.complete_turn()

        assert acc.mode is AccumulatorMode.IDLE
        assert acc.user_text == ""
        assert acc.agent_text == ""
        assert acc.append_agent("Ciao") == "Ciao"
