"""
State machine value objects.

``Workflow`` is a declared graph: states, the transitions between them
labelled with the action that fires them, and the terminal states.  It
describes what may happen; the lifecycle engine decides whether it does.
The test session graph itself is declared in ``session_workflow``.

Pure: no database, service or selector imports.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Transition:
    """
    ``action`` moves a session from ``from_state`` to ``to_state``.

    The flags record what else the transition does: take a campaign slot,
    give one back, or owe the tester money.  A transition whose two states
    are equal is bookkeeping on an unchanged status (ratings, purchase
    rejection, dispute resolution).
    """

    from_state: str
    to_state: str
    action: str
    reserves_slot: bool = False
    releases_slot: bool = False
    settles: bool = False


@dataclass(frozen=True)
class Workflow:
    name: str
    description: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        known = set(self.states)
        if self.initial_state not in known:
            raise ValueError(f"{self.name}: initial state {self.initial_state} is not declared")
        unknown_terminal = set(self.terminal_states) - known
        if unknown_terminal:
            raise ValueError(f"{self.name}: undeclared terminal state(s) {sorted(unknown_terminal)}")
        for t in self.transitions:
            if not {t.from_state, t.to_state} <= known:
                raise ValueError(
                    f"{self.name}: {t.action} {t.from_state}->{t.to_state} "
                    "uses an undeclared state"
                )

    def transitions_for(self, action: str) -> tuple[Transition, ...]:
        return tuple(t for t in self.transitions if t.action == action)

    def find(
        self, action: str, from_state: str, to_state: str | None = None
    ) -> Transition | None:
        """First edge for ``action`` out of ``from_state``, optionally into ``to_state``."""
        return next(
            (
                t
                for t in self.transitions_for(action)
                if t.from_state == from_state and to_state in (None, t.to_state)
            ),
            None,
        )

    def sources_for(self, action: str) -> tuple[str, ...]:
        """States ``action`` may fire from, in declaration order."""
        return tuple(dict.fromkeys(t.from_state for t in self.transitions_for(action)))
