from __future__ import annotations

import sys
from enum import Enum
from typing import TYPE_CHECKING, Callable, Iterable, Protocol, TextIO

from .errors import DecisionsExhaustedError

if TYPE_CHECKING:
    from .locator import InterfaceEstimate


class PassKind(str, Enum):
    COARSE = "coarse"
    FINE = "fine"


class Decision(str, Enum):
    REPEAT = "repeat"
    FINE_SCAN = "fine scan"
    EXIT = "exit"


def allowed_decisions(pass_kind: PassKind) -> tuple[Decision, ...]:
    if pass_kind is PassKind.COARSE:
        return (Decision.FINE_SCAN, Decision.REPEAT, Decision.EXIT)
    return (Decision.REPEAT, Decision.EXIT)


class DecisionSource(Protocol):
    """Reviews a completed pass and chooses what the search does next."""

    def decide(self, pass_kind: PassKind, estimate: "InterfaceEstimate") -> Decision:
        """Return REPEAT, FINE_SCAN (coarse passes only) or EXIT."""


class ScriptedDecisionSource:
    """Replays a fixed list of decisions, e.g. for unattended runs and tests."""

    def __init__(self, decisions: Iterable[Decision | str]) -> None:
        self._pending = [Decision(d) if isinstance(d, str) else d for d in decisions]
        self.seen: list[tuple[PassKind, "InterfaceEstimate"]] = []

    @property
    def remaining(self) -> int:
        return len(self._pending)

    def decide(self, pass_kind: PassKind, estimate: "InterfaceEstimate") -> Decision:
        self.seen.append((pass_kind, estimate))
        if not self._pending:
            raise DecisionsExhaustedError(
                f"Scripted decisions exhausted after {len(self.seen) - 1} pass(es)"
            )
        return self._pending.pop(0)


_ANSWER_KEYS = {
    "f": Decision.FINE_SCAN,
    "fine": Decision.FINE_SCAN,
    "fine scan": Decision.FINE_SCAN,
    "r": Decision.REPEAT,
    "repeat": Decision.REPEAT,
    "e": Decision.EXIT,
    "exit": Decision.EXIT,
}


class ConsoleDecisionSource:
    """Asks the operator on the terminal after every completed pass.

    An empty answer selects Exit. Answers that are not valid for the current
    pass are asked again.
    """

    def __init__(
        self,
        input_fn: Callable[[str], str] = input,
        stream: TextIO | None = None,
    ) -> None:
        self._input = input_fn
        self._stream = stream if stream is not None else sys.stderr

    def decide(self, pass_kind: PassKind, estimate: "InterfaceEstimate") -> Decision:
        allowed = allowed_decisions(pass_kind)
        print(
            f"{pass_kind.value} scan: interface at {estimate.offset_nm:+.0f} nm "
            f"(stage {estimate.position_nm:.0f} nm, exposure {estimate.exposure_ms:.3g} ms, "
            f"peak brightness {estimate.max_brightness:.0f})",
            file=self._stream,
        )
        labels = " / ".join(f"[{d.value[0]}]{d.value[1:]}" for d in allowed)
        while True:
            answer = self._input(f"Exit interface finder? {labels} (default exit): ").strip().lower()
            if not answer:
                return Decision.EXIT
            decision = _ANSWER_KEYS.get(answer)
            if decision in allowed:
                return decision
            print(f"Unrecognised answer {answer!r} for a {pass_kind.value} pass", file=self._stream)
