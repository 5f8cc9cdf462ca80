"""Card and deck implementation."""
import random
from enum import Enum
from dataclasses import dataclass
from typing import Optional


class Suit(str, Enum):
    """Card suits."""
    HEARTS = "h"
    DIAMONDS = "d"
    SPADES = "s"
    CLUBS = "c"

    def __str__(self) -> str:
        return self.value


class Rank(int, Enum):
    """Card ranks (2-14, where 14 is Ace)."""
    TWO = 2
    THREE = 3
    FOUR = 4
    FIVE = 5
    SIX = 6
    SEVEN = 7
    EIGHT = 8
    NINE = 9
    TEN = 10
    JACK = 11
    QUEEN = 12
    KING = 13
    ACE = 14

    @property
    def symbol(self) -> str:
        return _RANK_SYMBOLS[self]

    def __str__(self) -> str:
        return self.symbol


_RANK_SYMBOLS = {rank: str(rank.value) for rank in Rank if rank.value < 10}
_RANK_SYMBOLS.update({Rank.TEN: "T", Rank.JACK: "J", Rank.QUEEN: "Q", Rank.KING: "K", Rank.ACE: "A"})

# Accepted spellings when parsing, including "10" for ten
_SYMBOL_RANKS = {symbol: rank for rank, symbol in _RANK_SYMBOLS.items()}
_SYMBOL_RANKS["10"] = Rank.TEN


@dataclass(frozen=True)
class Card:
    """A playing card."""
    rank: Rank
    suit: Suit

    def __str__(self) -> str:
        return f"{self.rank}{self.suit}"

    def __repr__(self) -> str:
        return str(self)

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {"rank": self.rank.value, "suit": self.suit.value}

    @classmethod
    def from_dict(cls, data: dict) -> "Card":
        """Create from dictionary."""
        return cls(rank=Rank(data["rank"]), suit=Suit(data["suit"]))

    @classmethod
    def from_string(cls, s: str) -> "Card":
        """Parse card from string like 'Ah', 'Td', '10s', '2c'.

        Args:
            s: Card string (rank + suit).

        Returns:
            Card instance.

        Raises:
            ValueError: If the string is not a valid card.
        """
        rank = _SYMBOL_RANKS.get(s[:-1].upper())
        if rank is None:
            raise ValueError(f"Invalid card: {s!r}")
        return cls(rank=rank, suit=Suit(s[-1].lower()))


class Deck:
    """A standard 52-card deck.

    The top of the deck is the end of the internal list, so dealing is a pop.
    """

    def __init__(self, rng: Optional[random.Random] = None):
        """Initialize a fresh, unshuffled deck.

        Args:
            rng: Random source for shuffling (module-level random if omitted).
        """
        self._rng = rng or random.Random()
        self._cards: list[Card] = []
        self.reset()

    def reset(self) -> None:
        """Rebuild the full 52-card deck in suit/rank order."""
        self._cards = [
            Card(rank=rank, suit=suit)
            for suit in Suit
            for rank in Rank
        ]

    def shuffle(self) -> None:
        """Shuffle the deck (uniform random permutation)."""
        self._rng.shuffle(self._cards)

    def deal(self) -> Optional[Card]:
        """Deal the top card.

        Returns:
            The dealt card, or None if the deck is empty.
        """
        if not self._cards:
            return None
        return self._cards.pop()

    def burn(self) -> Optional[Card]:
        """Burn (discard) a card from the top of the deck.

        Returns:
            The burned card.
        """
        return self.deal()

    @property
    def cards(self) -> list[Card]:
        """Copy of the remaining cards, bottom first."""
        return list(self._cards)

    @property
    def remaining(self) -> int:
        """Number of cards remaining in the deck."""
        return len(self._cards)

    def __len__(self) -> int:
        return len(self._cards)
