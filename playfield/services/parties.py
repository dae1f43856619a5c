"""
playfield/services/parties.py
Challenge participants as a tagged union.

A side of a challenge is either a team or a single user, never both. The
ORM keeps the two nullable column pairs; these helpers are the only code
that reads or writes them.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple, Union

from playfield.orm.challenge import Challenge


@dataclass(frozen=True)
class TeamParty:
    team_id: int

    kind = "team"


@dataclass(frozen=True)
class UserParty:
    user_id: int

    kind = "individual"


Party = Union[TeamParty, UserParty]


def party_columns(party: Optional[Party]) -> Tuple[Optional[int], Optional[int]]:
    """Return the (team_id, user_id) column pair for a party."""
    if party is None:
        return None, None
    if isinstance(party, TeamParty):
        return party.team_id, None
    return None, party.user_id


def _party_from_columns(team_id: Optional[int], user_id: Optional[int]) -> Optional[Party]:
    if team_id is not None:
        return TeamParty(team_id=team_id)
    if user_id is not None:
        return UserParty(user_id=user_id)
    return None


def sender_of(challenge: Challenge) -> Optional[Party]:
    return _party_from_columns(challenge.sender_team_id, challenge.sender_user_id)


def receiver_of(challenge: Challenge) -> Optional[Party]:
    return _party_from_columns(challenge.receiver_team_id, challenge.receiver_user_id)


def set_sender(challenge: Challenge, party: Party) -> None:
    challenge.sender_team_id, challenge.sender_user_id = party_columns(party)


def set_receiver(challenge: Challenge, party: Optional[Party]) -> None:
    challenge.receiver_team_id, challenge.receiver_user_id = party_columns(party)
