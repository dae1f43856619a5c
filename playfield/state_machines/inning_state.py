"""
Inning State Machine

State Flow:
not_started → in_progress → completed | declared
not_started | in_progress → forfeited

Terminal innings accept no further deliveries.
"""
from enum import Enum

from playfield.orm.innings import InningStatus
from playfield.state_machines.transition_table import TransitionTable, fan_in


class InningAction(Enum):
    START = "start"
    COMPLETE = "complete"
    DECLARE = "declare"
    FORFEIT = "forfeit"


INNING_TRANSITIONS = TransitionTable(
    "inning",
    InningStatus,
    {
        (InningStatus.NOT_STARTED, InningAction.START): InningStatus.IN_PROGRESS,
        (InningStatus.IN_PROGRESS, InningAction.COMPLETE): InningStatus.COMPLETED,
        (InningStatus.IN_PROGRESS, InningAction.DECLARE): InningStatus.DECLARED,
        **fan_in((InningStatus.NOT_STARTED, InningStatus.IN_PROGRESS), InningAction.FORFEIT, InningStatus.FORFEITED),
    },
)
