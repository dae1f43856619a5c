from .transition_table import TransitionTable
from .challenge_state import CHALLENGE_TRANSITIONS, ChallengeAction
from .match_state import MATCH_TRANSITIONS, MatchAction
from .inning_state import INNING_TRANSITIONS, InningAction
