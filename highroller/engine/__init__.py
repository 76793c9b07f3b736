"""
Host sessions for the highroller state machines.

This package provides async drivers that own the current snapshot of a state
machine, call the injected backend and dispatch each snapshot's effects.
"""

from highroller.engine.base import GameSession
from highroller.engine.blackjack import BlackjackSession
from highroller.engine.case_opening import CaseOpeningSession

__all__ = ["GameSession", "BlackjackSession", "CaseOpeningSession"]
