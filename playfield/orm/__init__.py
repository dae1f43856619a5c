from .base import Base, BaseModel

# Reference data
from .user import User, UserRole
from .reference import Sport, Venue, Team, TeamMember, TeamMemberRole

# Challenges + matches
from .challenge import Challenge, ChallengeType, ChallengeStatus
from .match import Match, MatchTeam, MatchPlayer, MatchStatus, TossDecision

# Scoring ledger + derived stats
from .innings import (
    Inning, BallDelivery, FallOfWicket,
    InningStatus, ExtraType, DismissalType
)
from .player_stats import PlayerMatchStat, PlayerOverallCricketStat

# Tournaments
from .tournament import Tournament, TournamentTeam, TournamentStatus, TournamentFormat
