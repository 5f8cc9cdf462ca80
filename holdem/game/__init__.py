"""Game engine module."""
from .deck import Deck, Card, Suit, Rank
from .player import Player, PlayerStatus, LastAction
from .hand_eval import evaluate_hand, compare_hands, HandRank, HandResult
from .betting import ActionType, parse_action_type
from .pot import SidePot, build_side_pots, calculate_winnings, settle_showdown
from .table import Table, TableState
from .errors import GameError, InvariantViolation

__all__ = [
    "Deck",
    "Card",
    "Suit",
    "Rank",
    "Player",
    "PlayerStatus",
    "LastAction",
    "evaluate_hand",
    "compare_hands",
    "HandRank",
    "HandResult",
    "ActionType",
    "parse_action_type",
    "SidePot",
    "build_side_pots",
    "calculate_winnings",
    "settle_showdown",
    "Table",
    "TableState",
    "GameError",
    "InvariantViolation",
]
