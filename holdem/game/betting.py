"""Betting actions and per-player action legality."""
from enum import Enum
from typing import TYPE_CHECKING

from holdem.game.errors import InvalidAction

if TYPE_CHECKING:
    from holdem.game.player import Player


class ActionType(str, Enum):
    """Player action types."""
    FOLD = "fold"
    CHECK = "check"
    CALL = "call"
    RAISE = "raise"
    ALL_IN = "allin"


_ALIASES = {
    "all_in": ActionType.ALL_IN,
    "all-in": ActionType.ALL_IN,
    "bet": ActionType.RAISE,
}


def parse_action_type(value: "str | ActionType") -> ActionType:
    """Turn a wire value into an ActionType.

    Args:
        value: Action name such as "call" or "allin" (case-insensitive).

    Returns:
        The matching ActionType.

    Raises:
        InvalidAction: If the name is unknown.
    """
    if isinstance(value, ActionType):
        return value
    name = str(value).strip().lower()
    if name in _ALIASES:
        return _ALIASES[name]
    try:
        return ActionType(name)
    except ValueError:
        raise InvalidAction(f"Unknown action: {value!r}") from None


def get_call_amount(player: "Player", current_max_bet: int) -> int:
    """Chips the player must add to call (capped by their stack)."""
    to_call = max(current_max_bet - player.current_bet, 0)
    return min(to_call, player.stack)


def get_valid_actions(player: "Player", current_max_bet: int) -> list[ActionType]:
    """Get valid actions for a player facing ``current_max_bet``.

    Args:
        player: The player to check.
        current_max_bet: Bet level every active player must match.

    Returns:
        List of valid action types (empty if the player cannot act).
    """
    if not player.is_active:
        return []

    actions = [ActionType.FOLD]

    if player.current_bet >= current_max_bet:
        actions.append(ActionType.CHECK)
    else:
        actions.append(ActionType.CALL)

    if player.stack + player.current_bet > current_max_bet:
        actions.append(ActionType.RAISE)

    if player.stack > 0:
        actions.append(ActionType.ALL_IN)

    return actions
