"""
Turn Accumulator

Streamed text arrives in fragments from two speakers: the user's speech
transcription and the agent's output (text parts and speech
transcription). The accumulator builds both into cumulative strings for
the UI while tracking which speaker is currently active.

Modes:
    IDLE  -> no output in progress (start of session, after turn completion)
    USER  -> user transcript fragments are arriving
    AGENT -> agent output fragments are arriving

Switching speaker clears the side that went quiet, so the side that
becomes active always starts from an empty buffer and a previous
speaker's text never bleeds into the new one. Fragments from the same
speaker keep accumulating until the turn completes.
"""

from enum import Enum, auto


class AccumulatorMode(Enum):
    IDLE = auto()
    USER = auto()
    AGENT = auto()


def join_fragment(existing: str, fragment: str) -> str:
    """
    Append a streamed fragment with exactly one separating space.

    A space is inserted only if neither side already supplies whitespace
    at the join.
    """
    if not existing:
        return fragment
    if not fragment:
        return existing
    if existing[-1].isspace() or fragment[0].isspace():
        return existing + fragment
    return f"{existing} {fragment}"


class TurnAccumulator:
    """
    Cumulative user/agent text for the turn in progress.

    Usage:
        acc = TurnAccumulator()
        acc.append_user("what is")      # -> "what is"
        acc.append_user("that tower")   # -> "what is that tower"
        acc.append_agent("That is")     # switches to AGENT
        acc.complete_turn()             # both buffers empty, IDLE
    """

    def __init__(self) -> None:
        self._mode = AccumulatorMode.IDLE
        self._user_text = ""
        self._agent_text = ""

    @property
    def mode(self) -> AccumulatorMode:
        return self._mode

    @property
    def user_text(self) -> str:
        return self._user_text

    @property
    def agent_text(self) -> str:
        return self._agent_text

    @property
    def receiving_agent_output(self) -> bool:
        return self._mode is AccumulatorMode.AGENT

    def append_user(self, fragment: str) -> str:
        """Append a user transcript fragment; returns the cumulative transcript."""
        self._switch_to(AccumulatorMode.USER)
        self._user_text = join_fragment(self._user_text, fragment)
        return self._user_text

    def append_agent(self, fragment: str) -> str:
        """Append agent output; returns the cumulative agent text."""
        self._switch_to(AccumulatorMode.AGENT)
        self._agent_text = join_fragment(self._agent_text, fragment)
        return self._agent_text

    def complete_turn(self) -> None:
        """Close the turn: both buffers empty, mode back to IDLE."""
        self.reset()

    def reset(self) -> None:
        self._mode = AccumulatorMode.IDLE
        self._user_text = ""
        self._agent_text = ""

    def _switch_to(self, target: AccumulatorMode) -> None:
        current = self._mode
        if current is target:
            return

        # The outgoing side is cleared; the incoming side is already empty
        # because it was cleared when it last went quiet (or by reset()).
        if current is AccumulatorMode.USER:
            self._user_text = ""
        elif current is AccumulatorMode.AGENT:
            self._agent_text = ""

        self._mode = target
