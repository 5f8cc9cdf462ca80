"""Pot and side-pot settlement."""
from dataclasses import dataclass, field
from typing import Sequence

from holdem.game.deck import Card
from holdem.game.errors import InvariantViolation
from holdem.game.hand_eval import HandResult, evaluate_hand, compare_hands
from holdem.game.player import Player, PlayerStatus
from holdem.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class SidePot:
    """A pot or side pot."""
    amount: int
    eligible_players: list[str]  # player_ids that can win this pot, seat order

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "amount": self.amount,
            "eligible_players": self.eligible_players,
        }


@dataclass
class ShowdownResult:
    """Everything decided at showdown."""
    pots: list[SidePot]
    hands: dict[str, HandResult]
    winners_by_pot: dict[int, list[str]]
    winnings: dict[str, int] = field(default_factory=dict)

    @property
    def winner_ids(self) -> list[str]:
        """Every player who won at least one pot, in first-win order."""
        seen: list[str] = []
        for idx in sorted(self.winners_by_pot):
            for player_id in self.winners_by_pot[idx]:
                if player_id not in seen:
                    seen.append(player_id)
        return seen


def build_side_pots(players: Sequence[Player]) -> list[SidePot]:
    """Slice everything staked this hand into main and side pots.

    Each distinct contribution level opens a slice worth
    ``(level - previous_level) * contributors``. Folded players pay into the
    slices they reached but are never eligible. A slice where every
    contributor folded is merged into the closest lower pot.

    Args:
        players: Every player dealt into the hand, in seat order.

    Returns:
        Pots from the main pot upward.

    Raises:
        InvariantViolation: If chips are staked with nobody left to win them.
    """
    levels = sorted({p.total_contributed for p in players if p.total_contributed > 0})

    pots: list[SidePot] = []
    previous_level = 0

    for level in levels:
        contributors = [p for p in players if p.total_contributed >= level]
        amount = (level - previous_level) * len(contributors)
        eligible = [p.player_id for p in contributors if p.status != PlayerStatus.FOLDED]
        previous_level = level

        if eligible:
            pots.append(SidePot(amount=amount, eligible_players=eligible))
        elif pots:
            logger.warning(f"Slice at level {level} has no eligible player; merging {amount} into lower pot")
            pots[-1].amount += amount
        else:
            raise InvariantViolation(f"{amount} chips staked at level {level} with no eligible winner")

    logger.debug(f"Calculated {len(pots)} pots: {[p.amount for p in pots]}")
    return pots


def calculate_winnings(
    side_pots: list[SidePot],
    winners_by_pot: dict[int, list[str]]
) -> dict[str, int]:
    """Calculate how much each player wins.

    Each pot is split evenly; the odd chips all go to the first winner listed
    for that pot.

    Args:
        side_pots: List of side pots.
        winners_by_pot: Dict of pot_index -> list of winner player_ids.

    Returns:
        Dict of player_id -> amount won.
    """
    winnings: dict[str, int] = {}

    for pot_idx, pot in enumerate(side_pots):
        winners = winners_by_pot.get(pot_idx)
        if not winners:
            continue

        share = pot.amount // len(winners)
        remainder = pot.amount % len(winners)

        for winner in winners:
            winnings[winner] = winnings.get(winner, 0) + share
        winnings[winners[0]] += remainder

    return winnings


def settle_showdown(players: Sequence[Player], community_cards: Sequence[Card]) -> ShowdownResult:
    """Decide every pot at showdown. Does not move any chips.

    Args:
        players: Every player dealt into the hand, in seat order.
        community_cards: The board.

    Returns:
        Pots, evaluated hands, winners per pot and the total won per player.
    """
    pots = build_side_pots(players)

    hands: dict[str, HandResult] = {}
    for player in players:
        if player.in_hand and player.hole_cards is not None:
            hands[player.player_id] = evaluate_hand(list(player.hole_cards) + list(community_cards))

    winners_by_pot: dict[int, list[str]] = {}
    for pot_idx, pot in enumerate(pots):
        contenders = [(pid, hands[pid]) for pid in pot.eligible_players if pid in hands]
        if not contenders:
            raise InvariantViolation(f"Pot {pot_idx} ({pot.amount}) has no hand to award")
        winners_by_pot[pot_idx] = compare_hands(contenders)[0]

    return ShowdownResult(
        pots=pots,
        hands=hands,
        winners_by_pot=winners_by_pot,
        winnings=calculate_winnings(pots, winners_by_pot),
    )
