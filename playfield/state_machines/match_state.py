"""
Match State Machine

State Flow:
pending → upcoming → pre_toss → toss_done → live → completed

Side exits:
- upcoming ⇄ postponed
- any non-terminal state → cancelled
- live → abandoned / forfeited (administrative override)
"""
from enum import Enum

from playfield.orm.match import MatchStatus
from playfield.state_machines.transition_table import TransitionTable, fan_in


class MatchAction(Enum):
    CONFIRM = "confirm"
    OPEN_TOSS = "open_toss"
    RECORD_TOSS = "record_toss"
    START = "start"
    END = "end"
    POSTPONE = "postpone"
    REINSTATE = "reinstate"
    CANCEL = "cancel"
    ABANDON = "abandon"
    FORFEIT = "forfeit"


_CANCELLABLE = (
    MatchStatus.PENDING,
    MatchStatus.UPCOMING,
    MatchStatus.PRE_TOSS,
    MatchStatus.TOSS_DONE,
    MatchStatus.LIVE,
    MatchStatus.POSTPONED,
)

MATCH_TRANSITIONS = TransitionTable(
    "match",
    MatchStatus,
    {
        (MatchStatus.PENDING, MatchAction.CONFIRM): MatchStatus.UPCOMING,
        (MatchStatus.UPCOMING, MatchAction.OPEN_TOSS): MatchStatus.PRE_TOSS,
        **fan_in((MatchStatus.UPCOMING, MatchStatus.PRE_TOSS), MatchAction.RECORD_TOSS, MatchStatus.TOSS_DONE),
        **fan_in((MatchStatus.UPCOMING, MatchStatus.TOSS_DONE), MatchAction.START, MatchStatus.LIVE),
        (MatchStatus.LIVE, MatchAction.END): MatchStatus.COMPLETED,
        (MatchStatus.UPCOMING, MatchAction.POSTPONE): MatchStatus.POSTPONED,
        (MatchStatus.POSTPONED, MatchAction.REINSTATE): MatchStatus.UPCOMING,
        **fan_in(_CANCELLABLE, MatchAction.CANCEL, MatchStatus.CANCELLED),
        (MatchStatus.LIVE, MatchAction.ABANDON): MatchStatus.ABANDONED,
        (MatchStatus.LIVE, MatchAction.FORFEIT): MatchStatus.FORFEITED,
    },
)
