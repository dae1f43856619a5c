"""
Challenge State Machine

State Flow:
open | pending → accepted | rejected | expired | cancelled

All targets are terminal.
"""
from enum import Enum

from playfield.orm.challenge import ChallengeStatus
from playfield.state_machines.transition_table import TransitionTable, fan_in


class ChallengeAction(Enum):
    ACCEPT = "accept"
    REJECT = "reject"
    EXPIRE = "expire"
    CANCEL = "cancel"


_LIVE = (ChallengeStatus.OPEN, ChallengeStatus.PENDING)

CHALLENGE_TRANSITIONS = TransitionTable(
    "challenge",
    ChallengeStatus,
    {
        **fan_in(_LIVE, ChallengeAction.ACCEPT, ChallengeStatus.ACCEPTED),
        **fan_in(_LIVE, ChallengeAction.REJECT, ChallengeStatus.REJECTED),
        **fan_in(_LIVE, ChallengeAction.EXPIRE, ChallengeStatus.EXPIRED),
        **fan_in(_LIVE, ChallengeAction.CANCEL, ChallengeStatus.CANCELLED),
    },
)
