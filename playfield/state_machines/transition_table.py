"""
Transition Table

One explicit table per aggregate, keyed by (current state, action) and
resolving to the resulting state. Every status change in the service layer
goes through TransitionTable.resolve, so an unlisted pair is rejected the
same way everywhere and before anything is written.
"""
import logging
from enum import Enum
from typing import Dict, Iterable, List, Tuple, Type

from playfield.exceptions import InvalidStateError

logger = logging.getLogger(__name__)


class TransitionTable:
    """
    Server-side transition rules for one aggregate.

    Args:
        name: Aggregate name used in error messages
        state_enum: Enum of states; stored values are its .value strings
        transitions: {(from_state, action): to_state}
    """

    def __init__(
        self,
        name: str,
        state_enum: Type[Enum],
        transitions: Dict[Tuple[Enum, Enum], Enum],
    ):
        self.name = name
        self.state_enum = state_enum
        self._transitions = dict(transitions)

    def _coerce(self, state) -> Enum:
        if isinstance(state, self.state_enum):
            return state
        return self.state_enum(state)

    def can(self, current_state, action) -> bool:
        return (self._coerce(current_state), action) in self._transitions

    def resolve(self, current_state, action) -> Enum:
        """
        Return the state reached by applying action to current_state.

        Raises:
            InvalidStateError: If the pair is not in the table
        """
        state = self._coerce(current_state)
        target = self._transitions.get((state, action))
        if target is None:
            logger.warning(f"Rejected {self.name} transition: {state.value} -[{action.value}]->")
            raise InvalidStateError(
                f"Cannot {action.value} {self.name} in {state.value} status",
                current_state=state.value,
                action=action.value,
            )
        return target

    def allowed_actions(self, current_state) -> List[Enum]:
        state = self._coerce(current_state)
        return [action for (from_state, action) in self._transitions if from_state == state]

    def states_accepting(self, action) -> List[Enum]:
        return [from_state for (from_state, a) in self._transitions if a == action]

    def is_terminal(self, current_state) -> bool:
        return not self.allowed_actions(current_state)


def fan_in(sources: Iterable[Enum], action: Enum, target: Enum) -> Dict[Tuple[Enum, Enum], Enum]:
    """Build entries sending several source states to one target."""
    return {(source, action): target for source in sources}
