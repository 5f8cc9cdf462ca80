"""Hand evaluation for Texas Hold'em."""
from enum import IntEnum
from typing import Optional, Sequence
from dataclasses import dataclass

from holdem.game.deck import Card, Rank, Suit


class HandRank(IntEnum):
    """Poker hand rankings (higher is better)."""
    HIGH_CARD = 1
    PAIR = 2
    TWO_PAIR = 3
    THREE_OF_A_KIND = 4
    STRAIGHT = 5
    FLUSH = 6
    FULL_HOUSE = 7
    FOUR_OF_A_KIND = 8
    STRAIGHT_FLUSH = 9
    ROYAL_FLUSH = 10


_RANK_NAMES = {
    2: "Two", 3: "Three", 4: "Four", 5: "Five", 6: "Six", 7: "Seven",
    8: "Eight", 9: "Nine", 10: "Ten", 11: "Jack", 12: "Queen", 13: "King", 14: "Ace",
}


def _name(rank: int) -> str:
    return _RANK_NAMES[int(rank)]


def _plural(rank: int) -> str:
    name = _name(rank)
    return name + "es" if name.endswith("x") else name + "s"


@dataclass
class HandResult:
    """Result of hand evaluation.

    ``cards`` holds the best five cards in significance order, which is also
    the order used to break ties between hands of the same category.
    """
    rank: HandRank
    cards: list[Card]
    description: str

    @property
    def values(self) -> tuple[int, ...]:
        """Tiebreaker values (card ranks, highest importance first)."""
        return tuple(c.rank.value for c in self.cards)

    def _key(self) -> tuple[int, tuple[int, ...]]:
        return (int(self.rank), self.values)

    def __lt__(self, other: "HandResult") -> bool:
        return self._key() < other._key()

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, HandResult):
            return False
        return self._key() == other._key()

    def __gt__(self, other: "HandResult") -> bool:
        return other < self

    def __le__(self, other: "HandResult") -> bool:
        return self == other or self < other

    def __ge__(self, other: "HandResult") -> bool:
        return self == other or self > other


NO_HAND = HandResult(rank=HandRank.HIGH_CARD, cards=[], description="No cards")


def _group_by_rank(cards: list[Card]) -> list[tuple[Rank, list[Card]]]:
    """Group cards by rank, highest rank first.

    Built by walking ranks from Ace down to Two so "the first group with N
    cards" is always the highest such rank.
    """
    groups: list[tuple[Rank, list[Card]]] = []
    for rank in sorted(Rank, reverse=True):
        group = [c for c in cards if c.rank == rank]
        if group:
            groups.append((rank, group))
    return groups


def _find_flush(cards: list[Card]) -> Optional[list[Card]]:
    """Return every card of the suit holding five or more, rank descending."""
    for suit in Suit:
        suited = [c for c in cards if c.suit == suit]
        if len(suited) >= 5:
            return suited
    return None


def _find_straight(cards: list[Card]) -> Optional[list[Card]]:
    """Find the highest straight in rank-descending cards.

    Returns:
        Five cards, top card first. The wheel is returned as 5-4-3-2-A.
    """
    unique: list[Card] = []
    for card in cards:
        if not unique or unique[-1].rank != card.rank:
            unique.append(card)

    if len(unique) < 5:
        return None

    for i in range(len(unique) - 4):
        window = unique[i:i + 5]
        if window[0].rank - window[4].rank == 4:
            return window

    # Ace plays low
    if unique[0].rank == Rank.ACE:
        low = [
            next((c for c in unique if c.rank == rank), None)
            for rank in (Rank.FIVE, Rank.FOUR, Rank.THREE, Rank.TWO)
        ]
        if all(card is not None for card in low):
            return low + [unique[0]]  # type: ignore[operator]

    return None


def _four_of_a_kind(cards: list[Card], groups: list[tuple[Rank, list[Card]]]) -> Optional[HandResult]:
    for rank, group in groups:
        if len(group) >= 4:
            kicker = next((c for c in cards if c.rank != rank), None)
            hand = group[:4] + ([kicker] if kicker else [])
            return HandResult(
                rank=HandRank.FOUR_OF_A_KIND,
                cards=hand,
                description=f"Four of a Kind, {_plural(rank)}",
            )
    return None


def _full_house(groups: list[tuple[Rank, list[Card]]]) -> Optional[HandResult]:
    trips: Optional[tuple[Rank, list[Card]]] = None
    pair: Optional[tuple[Rank, list[Card]]] = None

    for rank, group in groups:
        if len(group) >= 3:
            if trips is None:
                trips = (rank, group)
            elif pair is None:
                pair = (rank, group)  # a second set plays as the pair
        elif len(group) >= 2 and pair is None:
            pair = (rank, group)

    if trips is None or pair is None:
        return None

    return HandResult(
        rank=HandRank.FULL_HOUSE,
        cards=trips[1][:3] + pair[1][:2],
        description=f"Full House, {_plural(trips[0])} full of {_plural(pair[0])}",
    )


def _three_of_a_kind(cards: list[Card], groups: list[tuple[Rank, list[Card]]]) -> Optional[HandResult]:
    for rank, group in groups:
        if len(group) >= 3:
            kickers = [c for c in cards if c.rank != rank][:2]
            return HandResult(
                rank=HandRank.THREE_OF_A_KIND,
                cards=group[:3] + kickers,
                description=f"Three of a Kind, {_plural(rank)}",
            )
    return None


def _two_pair(cards: list[Card], groups: list[tuple[Rank, list[Card]]]) -> Optional[HandResult]:
    pairs = [(rank, group) for rank, group in groups if len(group) >= 2][:2]
    if len(pairs) < 2:
        return None

    (high, high_cards), (low, low_cards) = pairs
    kicker = next((c for c in cards if c.rank not in (high, low)), None)
    hand = high_cards[:2] + low_cards[:2] + ([kicker] if kicker else [])
    return HandResult(
        rank=HandRank.TWO_PAIR,
        cards=hand,
        description=f"Two Pair, {_plural(high)} and {_plural(low)}",
    )


def _pair(cards: list[Card], groups: list[tuple[Rank, list[Card]]]) -> Optional[HandResult]:
    for rank, group in groups:
        if len(group) >= 2:
            kickers = [c for c in cards if c.rank != rank][:3]
            return HandResult(
                rank=HandRank.PAIR,
                cards=group[:2] + kickers,
                description=f"Pair of {_plural(rank)}",
            )
    return None


def evaluate_hand(cards: Sequence[Card]) -> HandResult:
    """Evaluate the best 5-card hand from up to 7 cards.

    Hole cards and community cards are passed together. Fewer than five cards
    (a preflop view, for example) are ranked with the same rules over what is
    there.

    Args:
        cards: Cards to evaluate.

    Returns:
        Best possible HandResult, or NO_HAND for an empty input.
    """
    if not cards:
        return NO_HAND

    ordered = sorted(cards, key=lambda c: c.rank, reverse=True)

    flush = _find_flush(ordered)
    straight = _find_straight(ordered)

    # Straight flush must come from the flush suit alone
    if flush:
        straight_flush = _find_straight(flush)
        if straight_flush:
            if straight_flush[0].rank == Rank.ACE and straight_flush[1].rank == Rank.KING:
                return HandResult(
                    rank=HandRank.ROYAL_FLUSH,
                    cards=straight_flush,
                    description="Royal Flush",
                )
            return HandResult(
                rank=HandRank.STRAIGHT_FLUSH,
                cards=straight_flush,
                description=f"Straight Flush, {_name(straight_flush[0].rank)} high",
            )

    groups = _group_by_rank(ordered)

    four = _four_of_a_kind(ordered, groups)
    if four:
        return four

    full_house = _full_house(groups)
    if full_house:
        return full_house

    if flush:
        return HandResult(
            rank=HandRank.FLUSH,
            cards=flush[:5],
            description=f"Flush, {_name(flush[0].rank)} high",
        )

    if straight:
        return HandResult(
            rank=HandRank.STRAIGHT,
            cards=straight,
            description=f"Straight, {_name(straight[0].rank)} high",
        )

    for finder in (_three_of_a_kind, _two_pair, _pair):
        result = finder(ordered, groups)
        if result:
            return result

    return HandResult(
        rank=HandRank.HIGH_CARD,
        cards=ordered[:5],
        description=f"High Card, {_name(ordered[0].rank)}",
    )


def compare_hands(results: list[tuple[str, HandResult]]) -> list[list[str]]:
    """Compare multiple hands and return winners.

    Args:
        results: List of (player_id, HandResult) tuples.

    Returns:
        List of winner groups (ties are in the same group), best group first.
        Players inside a group keep their input order.
    """
    if not results:
        return []

    # Sort by hand strength descending (stable, so input order breaks ties)
    sorted_results = sorted(results, key=lambda x: x[1]._key(), reverse=True)

    winners: list[list[str]] = []
    current_group: list[str] = [sorted_results[0][0]]
    current_hand = sorted_results[0][1]

    for player_id, hand in sorted_results[1:]:
        if hand == current_hand:
            current_group.append(player_id)
        else:
            winners.append(current_group)
            current_group = [player_id]
            current_hand = hand

    winners.append(current_group)
    return winners
