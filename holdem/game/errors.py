"""Game rule errors.

``GameError`` subclasses are precondition violations: they are raised before
any state is touched and are safe to report back to the caller.
``InvariantViolation`` means the engine itself is broken.
"""


class GameError(Exception):
    """A rejected request; table state is unchanged."""
    code = "GAME_ERROR"


class NotYourTurn(GameError):
    """Action submitted by a player who is not on the turn."""
    code = "NOT_YOUR_TURN"


class InvalidCheck(GameError):
    """Check attempted while a call is owed."""
    code = "INVALID_CHECK"


class InvalidRaise(GameError):
    """Raise without an amount, or not above the current bet."""
    code = "INVALID_RAISE"


class InsufficientChips(GameError):
    """Raise needs more chips than the player has behind."""
    code = "INSUFFICIENT_CHIPS"


class InvalidAction(GameError):
    """Unknown action type."""
    code = "INVALID_ACTION"


class NotEnoughPlayers(GameError):
    """Fewer than two players can be dealt in."""
    code = "NOT_ENOUGH_PLAYERS"


class GameInProgress(GameError):
    """Operation needs the table to be between hands."""
    code = "GAME_IN_PROGRESS"


class NoHandInProgress(GameError):
    """Action submitted while no betting round is open."""
    code = "NO_HAND_IN_PROGRESS"


class SeatUnavailable(GameError):
    """Seat is out of range or taken, or the player is already seated."""
    code = "SEAT_UNAVAILABLE"


class PlayerNotFound(GameError):
    """No seated player with that id."""
    code = "PLAYER_NOT_FOUND"


class InvariantViolation(RuntimeError):
    """Internal consistency failure (chip conservation, turn rotation)."""
    pass
