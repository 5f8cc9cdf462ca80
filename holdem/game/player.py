"""Player model."""
from enum import Enum
from dataclasses import dataclass
from typing import Optional

from holdem.game.deck import Card
from holdem.game.betting import ActionType


class PlayerStatus(str, Enum):
    """Seat status within the current hand."""
    ACTIVE = "active"
    FOLDED = "folded"
    ALL_IN = "all_in"
    SITTING_OUT = "sitting_out"


@dataclass(frozen=True)
class LastAction:
    """Most recent action of a player in the current betting round."""
    type: ActionType
    amount: Optional[int] = None

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {"type": self.type.value, "amount": self.amount}


@dataclass
class Player:
    """A player seated at the poker table."""

    player_id: str
    name: str
    stack: int = 0
    seat: int = -1
    hole_cards: Optional[tuple[Card, Card]] = None
    status: PlayerStatus = PlayerStatus.ACTIVE
    current_bet: int = 0
    total_contributed: int = 0
    last_action: Optional[LastAction] = None
    is_sitting_out: bool = False
    is_leaving: bool = False

    def reset_for_new_hand(self) -> None:
        """Reset per-hand state; status is recomputed from stack and sit-out flag."""
        self.hole_cards = None
        self.current_bet = 0
        self.total_contributed = 0
        self.last_action = None
        if self.stack > 0 and not self.is_sitting_out and not self.is_leaving:
            self.status = PlayerStatus.ACTIVE
        else:
            self.status = PlayerStatus.SITTING_OUT

    def bet(self, amount: int) -> int:
        """Place a bet, going all-in if necessary.

        Args:
            amount: Amount to bet.

        Returns:
            Actual amount bet (may be less if all-in).
        """
        actual_bet = min(max(amount, 0), self.stack)
        self.stack -= actual_bet
        self.current_bet += actual_bet
        self.total_contributed += actual_bet

        if self.stack == 0:
            self.status = PlayerStatus.ALL_IN

        return actual_bet

    def fold(self) -> None:
        """Fold the hand. Chips already committed stay in the pot."""
        self.status = PlayerStatus.FOLDED
        self.hole_cards = None

    def receive_cards(self, cards: list[Card]) -> None:
        """Receive hole cards.

        Args:
            cards: Exactly two cards.
        """
        if len(cards) != 2:
            raise ValueError(f"Expected 2 hole cards, got {len(cards)}")
        self.hole_cards = (cards[0], cards[1])

    def collect_bet(self) -> int:
        """Sweep the current round's bet into the pot.

        Returns:
            Chips collected.
        """
        collected = self.current_bet
        self.current_bet = 0
        return collected

    def win_pot(self, amount: int) -> None:
        """Win chips from the pot.

        Args:
            amount: Amount won.
        """
        self.stack += amount

    @property
    def is_active(self) -> bool:
        """Still has decisions to make in this hand."""
        return self.status == PlayerStatus.ACTIVE

    @property
    def in_hand(self) -> bool:
        """Still contesting the pot (active or all-in)."""
        return self.status in (PlayerStatus.ACTIVE, PlayerStatus.ALL_IN)

    def to_dict(self, hide_cards: bool = True) -> dict:
        """Convert to dictionary for serialization.

        Args:
            hide_cards: If True, don't include hole cards.

        Returns:
            Player state dictionary.
        """
        data = {
            "player_id": self.player_id,
            "name": self.name,
            "seat": self.seat,
            "stack": self.stack,
            "status": self.status.value,
            "current_bet": self.current_bet,
            "total_contributed": self.total_contributed,
            "last_action": self.last_action.to_dict() if self.last_action else None,
            "is_sitting_out": self.is_sitting_out,
            "has_cards": self.hole_cards is not None,
            "hole_cards": None,
        }

        if not hide_cards and self.hole_cards is not None:
            data["hole_cards"] = [str(c) for c in self.hole_cards]

        return data

    def to_private_dict(self) -> dict:
        """Convert to dictionary including hole cards (for the player themselves)."""
        return self.to_dict(hide_cards=False)
