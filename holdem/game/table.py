"""Table state machine for Texas Hold'em."""
from enum import Enum
from typing import Optional, Callable, Any

from holdem.game.deck import Deck, Card
from holdem.game.player import Player, PlayerStatus, LastAction
from holdem.game.pot import settle_showdown
from holdem.game.betting import ActionType, parse_action_type, get_call_amount, get_valid_actions
from holdem.game.hand_eval import evaluate_hand
from holdem.game.errors import (
    GameInProgress,
    InsufficientChips,
    InvalidCheck,
    InvalidRaise,
    InvariantViolation,
    NoHandInProgress,
    NotEnoughPlayers,
    NotYourTurn,
    PlayerNotFound,
    SeatUnavailable,
)
from holdem.utils.logger import get_logger

logger = get_logger(__name__)


class TableState(str, Enum):
    """Table states."""
    WAITING = "waiting"          # Waiting for players
    PREFLOP = "preflop"          # Pre-flop betting
    FLOP = "flop"                # Flop betting
    TURN = "turn"                # Turn betting
    RIVER = "river"              # River betting
    SHOWDOWN = "showdown"        # Comparing hands
    FINISHED = "finished"        # Hand settled, next hand not started


BETTING_STATES = (TableState.PREFLOP, TableState.FLOP, TableState.TURN, TableState.RIVER)

# Streets dealt when leaving each betting state: next state, cards dealt
_NEXT_STREET = {
    TableState.PREFLOP: (TableState.FLOP, 3),
    TableState.FLOP: (TableState.TURN, 1),
    TableState.TURN: (TableState.RIVER, 1),
}

EventCallback = Callable[[str, dict], Any]


class Table:
    """A poker table running one hand of No-Limit Texas Hold'em at a time.

    Every public method runs to completion before returning; callers are
    expected to serialize access to a single table.
    """

    def __init__(
        self,
        table_id: str,
        min_bet: int = 20,
        min_players: int = 2,
        max_players: int = 10,
        deck: Optional[Deck] = None,
    ):
        """Initialize a poker table.

        Args:
            table_id: Unique table identifier.
            min_bet: Big blind; the small blind is half of it.
            min_players: Minimum eligible players to start a hand.
            max_players: Number of seats.
            deck: Deck to deal from (a fresh shuffled deck per hand if omitted).
        """
        self.table_id = table_id
        self.min_bet = min_bet
        self.min_players = max(min_players, 2)
        self.max_players = max_players

        self.state = TableState.WAITING
        self.players: dict[int, Player] = {}  # seat -> player
        self.deck = deck if deck is not None else Deck()
        self.community_cards: list[Card] = []

        self.current_pot: int = 0
        self.current_max_bet: int = 0
        self.dealer_seat: int = -1
        self.current_seat: int = -1
        self.hand_number: int = 0

        self.winners: list[Player] = []
        self.last_results: dict[str, int] = {}
        self.reveal_grants: set[str] = set()

        self._acted_count: int = 0
        self._starting_stacks: dict[str, int] = {}

        # Callback for broadcasting events
        self._event_callback: Optional[EventCallback] = None

    @property
    def small_blind(self) -> int:
        return self.min_bet // 2

    @property
    def big_blind(self) -> int:
        return self.min_bet

    def set_event_callback(self, callback: EventCallback) -> None:
        """Set callback for broadcasting events.

        Args:
            callback: Function(event_type, data), called synchronously.
        """
        self._event_callback = callback

    def _emit(self, event_type: str, data: dict) -> None:
        """Emit an event via callback."""
        if self._event_callback:
            self._event_callback(event_type, data)

    # Player management

    @property
    def hand_in_progress(self) -> bool:
        return self.state in BETTING_STATES or self.state == TableState.SHOWDOWN

    def add_player(self, player: Player) -> None:
        """Seat a player.

        Args:
            player: Player to add; ``player.seat`` must be free.

        Raises:
            GameInProgress: If a hand is being played.
            SeatUnavailable: If the seat is invalid or taken, or the player
                is already seated.
        """
        if self.hand_in_progress:
            raise GameInProgress("Cannot join while a hand is in progress")
        if player.seat < 0 or player.seat >= self.max_players:
            raise SeatUnavailable(f"Seat {player.seat} does not exist")
        if player.seat in self.players:
            raise SeatUnavailable(f"Seat {player.seat} is taken")
        if self.get_player_by_id(player.player_id):
            raise SeatUnavailable(f"{player.name} is already seated")

        player.status = PlayerStatus.SITTING_OUT
        player.hole_cards = None
        self.players[player.seat] = player
        logger.info(f"{player.name} joined table {self.table_id} at seat {player.seat}")

    def remove_player(self, player_id: str) -> Player:
        """Remove a player from the table.

        During a hand the player forfeits (folds) and the seat is freed when
        the hand ends.

        Args:
            player_id: Player to remove.

        Returns:
            The removed (or leaving) player.

        Raises:
            PlayerNotFound: If the player is not seated.
        """
        player = self.get_player_by_id(player_id)
        if player is None:
            raise PlayerNotFound(f"Player {player_id} is not seated")

        if not self.hand_in_progress:
            del self.players[player.seat]
            logger.info(f"{player.name} left table {self.table_id}")
            self._fall_back_if_short()
            return player

        player.is_leaving = True
        logger.info(f"{player.name} is leaving table {self.table_id} after hand #{self.hand_number}")

        if player.in_hand and self.state in BETTING_STATES:
            if self.current_seat == player.seat:
                self.handle_action(player_id, ActionType.FOLD)
            else:
                self._fold(player)
                self._emit_action(player)
                if len(self._players_in_hand()) == 1:
                    self._award_walkover()

        return player

    def set_sitting_out(self, player_id: str, sitting_out: bool) -> Player:
        """Sit a player out from the next hand on (or bring them back)."""
        player = self.get_player_by_id(player_id)
        if player is None:
            raise PlayerNotFound(f"Player {player_id} is not seated")
        player.is_sitting_out = sitting_out
        logger.info(f"{player.name} {'sits out' if sitting_out else 'is back'} at table {self.table_id}")
        return player

    def get_player_by_id(self, player_id: str) -> Optional[Player]:
        """Get player by ID.

        Args:
            player_id: Player's ID.

        Returns:
            Player if found.
        """
        for player in self.players.values():
            if player.player_id == player_id:
                return player
        return None

    def get_next_available_seat(self) -> Optional[int]:
        """Get the next available seat.

        Returns:
            Seat number or None if full.
        """
        for seat in range(self.max_players):
            if seat not in self.players:
                return seat
        return None

    def available_seats(self) -> list[int]:
        return [seat for seat in range(self.max_players) if seat not in self.players]

    def _seats_after(self, seat: int, inclusive: bool = False) -> list[int]:
        """Occupied seats in dealing order, starting after (or at) ``seat``."""
        seats = sorted(self.players.keys())
        head = [s for s in seats if s > seat or (inclusive and s == seat)]
        tail = [s for s in seats if s not in head]
        return head + tail

    def _players_in_hand(self) -> list[Player]:
        return [p for p in self._seated_in_order() if p.in_hand]

    def _active_players(self) -> list[Player]:
        return [p for p in self._seated_in_order() if p.is_active]

    def _seated_in_order(self) -> list[Player]:
        return [self.players[seat] for seat in sorted(self.players.keys())]

    def _eligible_seats(self) -> list[int]:
        return [
            seat for seat in sorted(self.players.keys())
            if self.players[seat].stack > 0
            and not self.players[seat].is_sitting_out
            and not self.players[seat].is_leaving
        ]

    # Game flow

    def can_start_hand(self) -> bool:
        """Check if a hand can be started."""
        return not self.hand_in_progress and len(self._eligible_seats()) >= self.min_players

    def start_hand(self) -> None:
        """Start a new hand: button, shuffle, hole cards, blinds.

        Raises:
            GameInProgress: If a hand is already being played.
            NotEnoughPlayers: If fewer than two players can be dealt in.
        """
        if self.hand_in_progress:
            raise GameInProgress("A hand is already in progress")

        eligible = self._eligible_seats()
        if len(eligible) < self.min_players:
            raise NotEnoughPlayers(f"Need {self.min_players} players with chips, have {len(eligible)}")

        self.hand_number += 1
        self._advance_dealer(eligible)

        # Reset for new hand
        self.deck.reset()
        self.deck.shuffle()
        self.community_cards = []
        self.current_pot = 0
        self.winners = []
        self.last_results = {}
        self.reveal_grants.clear()
        self._acted_count = 0

        for player in self.players.values():
            player.reset_for_new_hand()
        self._starting_stacks = {p.player_id: p.stack for p in self.players.values()}

        self._deal_hole_cards()
        self.state = TableState.PREFLOP
        first_to_act = self._post_blinds(eligible)

        logger.info(
            f"Started hand #{self.hand_number} on table {self.table_id}, "
            f"dealer seat {self.dealer_seat}"
        )
        self._emit("hand_started", {
            "hand_number": self.hand_number,
            "dealer_seat": self.dealer_seat,
            "small_blind": self.small_blind,
            "big_blind": self.big_blind,
        })

        active = self._first_active_from(first_to_act, inclusive=True)
        if active is None:
            logger.info(f"No player can act in hand #{self.hand_number}; running out the board")
            self._run_out()
            return
        self.current_seat = active

    def _advance_dealer(self, eligible: list[int]) -> None:
        """Move the button to the next eligible seat (first eligible on the first hand)."""
        if self.dealer_seat < 0:
            self.dealer_seat = eligible[0]
            return
        later = [seat for seat in eligible if seat > self.dealer_seat]
        self.dealer_seat = later[0] if later else eligible[0]

    def _deal_hole_cards(self) -> None:
        """Deal 2 hole cards to each player dealt in, one card per pass."""
        order = [self.players[s] for s in self._seats_after(self.dealer_seat) if self.players[s].is_active]
        dealt: dict[str, list[Card]] = {p.player_id: [] for p in order}
        for _ in range(2):
            for player in order:
                card = self.deck.deal()
                if card is None:
                    raise InvariantViolation("Deck ran out while dealing hole cards")
                dealt[player.player_id].append(card)
        for player in order:
            player.receive_cards(dealt[player.player_id])

    def _post_blinds(self, eligible: list[int]) -> int:
        """Post small and big blinds.

        Returns:
            The seat designated to act first preflop.
        """
        # Heads-up: dealer posts SB, other posts BB
        # Otherwise: player after dealer posts SB, next posts BB
        order = [s for s in self._seats_after(self.dealer_seat) if s in eligible]
        if len(eligible) == 2:
            sb_seat = self.dealer_seat
            bb_seat = order[0]
        else:
            sb_seat = order[0]
            bb_seat = order[1]

        sb_player = self.players[sb_seat]
        bb_player = self.players[bb_seat]
        sb_amount = sb_player.bet(min(sb_player.stack, self.small_blind))
        bb_amount = bb_player.bet(min(bb_player.stack, self.big_blind))
        self.current_max_bet = self.min_bet

        logger.info(f"Blinds posted: {sb_player.name}={sb_amount}, {bb_player.name}={bb_amount}")

        if len(eligible) == 2:
            return sb_seat
        after_bb = [s for s in self._seats_after(bb_seat) if s in eligible]
        return after_bb[0]

    def _first_active_from(self, seat: int, inclusive: bool = False) -> Optional[int]:
        for candidate in self._seats_after(seat, inclusive=inclusive):
            if self.players[candidate].is_active:
                return candidate
        return None

    @property
    def current_player(self) -> Optional[Player]:
        """The player on the turn, if a betting round is open."""
        if self.state not in BETTING_STATES:
            return None
        return self.players.get(self.current_seat)

    def handle_action(
        self,
        player_id: str,
        action: "ActionType | str",
        amount: Optional[int] = None,
    ) -> None:
        """Process a player's action.

        Args:
            player_id: Acting player's ID.
            action: fold, check, call, raise or allin.
            amount: For raises, the new total bet level for this round.

        Raises:
            NoHandInProgress: If no betting round is open.
            NotYourTurn: If the player is not on the turn.
            InvalidAction: If the action is unknown.
            InvalidCheck: If checking while a call is owed.
            InvalidRaise: If the raise has no amount or does not raise.
            InsufficientChips: If the raise needs more chips than the player has.
        """
        if self.state not in BETTING_STATES:
            raise NoHandInProgress("No betting round is open")

        player = self.current_player
        if player is None or player.player_id != player_id:
            raise NotYourTurn("It is not your turn")

        action_type = parse_action_type(action)

        if action_type == ActionType.CHECK and player.current_bet < self.current_max_bet:
            raise InvalidCheck(f"Cannot check, {self.current_max_bet - player.current_bet} to call")
        if action_type == ActionType.RAISE:
            if amount is None or amount <= self.current_max_bet:
                raise InvalidRaise(f"Raise must be above {self.current_max_bet}")
            if amount - player.current_bet > player.stack:
                raise InsufficientChips(f"Raise to {amount} needs {amount - player.current_bet}, have {player.stack}")

        if action_type == ActionType.FOLD:
            self._fold(player)
        elif action_type == ActionType.CHECK:
            amount = None
            self._acted_count += 1
        elif action_type == ActionType.CALL:
            amount = player.bet(get_call_amount(player, self.current_max_bet))
            self._acted_count += 1
        elif action_type == ActionType.RAISE:
            player.bet(amount - player.current_bet)
            self.current_max_bet = amount
            self._acted_count = 1
        elif action_type == ActionType.ALL_IN:
            amount = player.bet(player.stack)
            if player.current_bet > self.current_max_bet:
                self.current_max_bet = player.current_bet
                self._acted_count = 1
            else:
                self._acted_count += 1

        if action_type != ActionType.FOLD:
            player.last_action = LastAction(type=action_type, amount=amount)

        logger.info(f"{player.name} {action_type.value}" + (f" {amount}" if amount else ""))
        self._emit_action(player)

        if action_type == ActionType.FOLD and len(self._players_in_hand()) == 1:
            self._award_walkover()
            return

        if self._round_complete():
            self.next_stage()
        else:
            self._rotate_turn()

    def _fold(self, player: Player) -> None:
        player.fold()
        player.last_action = LastAction(type=ActionType.FOLD)

    def _emit_action(self, player: Player) -> None:
        self._emit("player_action", {
            "player_id": player.player_id,
            "name": player.name,
            "action": player.last_action.type.value,
            "amount": player.last_action.amount,
        })

    def _round_complete(self) -> bool:
        active = self._active_players()
        all_matched = all(p.current_bet == self.current_max_bet for p in active)
        return all_matched and self._acted_count >= len(active)

    def _rotate_turn(self) -> None:
        """Pass the turn to the next ACTIVE seat."""
        next_seat = self._first_active_from(self.current_seat)
        if next_seat is None:
            raise InvariantViolation(f"No active seat to take the turn on table {self.table_id}")
        self.current_seat = next_seat

    def _collect_bets(self) -> None:
        for player in self.players.values():
            self.current_pot += player.collect_bet()
            player.last_action = None
        self.current_max_bet = 0
        self._acted_count = 0

    def next_stage(self) -> None:
        """Close the betting round and deal the next street (or go to showdown)."""
        self._collect_bets()

        if self.state == TableState.RIVER:
            self._showdown()
            return

        if len(self._active_players()) < 2:
            self._run_out()
            return

        self.state, count = _NEXT_STREET[self.state]
        self._deal_community_cards(count)
        self.current_seat = self._first_active_from(self.dealer_seat)

        self._emit("state_changed", {
            "state": self.state.value,
            "community_cards": [str(c) for c in self.community_cards],
            "pot": self.current_pot,
        })

    def _deal_community_cards(self, count: int) -> None:
        """Burn one card, then deal ``count`` community cards."""
        self.deck.burn()
        cards = []
        for _ in range(count):
            card = self.deck.deal()
            if card is None:
                raise InvariantViolation("Deck ran out while dealing the board")
            cards.append(card)
        self.community_cards.extend(cards)
        logger.info(f"Dealt {count} community cards: {cards}")

    def _run_out(self) -> None:
        """Deal the remaining streets when no more betting is possible."""
        self._collect_bets()
        while self.state in _NEXT_STREET:
            self.state, count = _NEXT_STREET[self.state]
            self._deal_community_cards(count)
        self._showdown()

    def _showdown(self) -> None:
        """Compare hands and pay every pot."""
        self.state = TableState.SHOWDOWN
        self.current_seat = -1

        contenders = [p for p in self._seated_in_order() if p.player_id in self._starting_stacks]
        result = settle_showdown(contenders, self.community_cards)

        for player_id, amount in result.winnings.items():
            self.get_player_by_id(player_id).win_pot(amount)
        self.current_pot = 0
        self.winners = [self.get_player_by_id(pid) for pid in result.winner_ids]

        winner_info = [
            {
                "player_id": player.player_id,
                "name": player.name,
                "amount": result.winnings.get(player.player_id, 0),
                "hand": result.hands[player.player_id].description,
            }
            for player in self.winners
        ]
        logger.info(f"Hand #{self.hand_number} winners: {winner_info}")

        self._emit("hand_result", {
            "winners": winner_info,
            "pots": [pot.to_dict() for pot in result.pots],
            "pot_total": sum(pot.amount for pot in result.pots),
            "community_cards": [str(c) for c in self.community_cards],
            "shown_hands": {
                player_id: {
                    "cards": [str(c) for c in self.get_player_by_id(player_id).hole_cards],
                    "hand": hand.description,
                }
                for player_id, hand in result.hands.items()
            },
        })

        self._finish_hand()

    def _award_walkover(self) -> None:
        """Everyone else folded: the last player takes the pot unseen."""
        winner = self._players_in_hand()[0]
        self._collect_bets()
        amount = self.current_pot
        winner.win_pot(amount)
        self.current_pot = 0
        self.current_seat = -1
        self.winners = [winner]

        logger.info(f"Hand #{self.hand_number}: {winner.name} wins {amount}, others folded")
        self._emit("hand_result", {
            "winners": [{
                "player_id": winner.player_id,
                "name": winner.name,
                "amount": amount,
                "hand": "Others folded",
            }],
            "pots": [],
            "pot_total": amount,
            "community_cards": [str(c) for c in self.community_cards],
            "shown_hands": {},
        })

        self._finish_hand()

    def _finish_hand(self) -> None:
        """Verify conservation, record results, free leaving seats."""
        before = sum(self._starting_stacks.values())
        after = sum(p.stack for p in self.players.values() if p.player_id in self._starting_stacks)
        if before != after:
            raise InvariantViolation(
                f"Chip conservation broken on table {self.table_id}: {before} before, {after} after"
            )

        self.last_results = {
            p.player_id: p.stack - self._starting_stacks[p.player_id]
            for p in self.players.values()
            if p.player_id in self._starting_stacks
        }
        self.state = TableState.FINISHED
        logger.info(f"Hand #{self.hand_number} complete on table {self.table_id}")

        for seat, player in list(self.players.items()):
            if player.is_leaving:
                del self.players[seat]
                logger.info(f"{player.name} left table {self.table_id}")

        self._fall_back_if_short()

    def _fall_back_if_short(self) -> None:
        """Drop back to WAITING when fewer than two players remain seated.

        ``winners`` and ``last_results`` stay until the next hand starts.
        """
        if len(self.players) >= 2 or self.state == TableState.WAITING:
            return
        self.state = TableState.WAITING
        self.community_cards = []
        self.current_pot = 0
        self.current_max_bet = 0
        self.current_seat = -1
        for player in self.players.values():
            player.reset_for_new_hand()
        logger.info(f"Table {self.table_id} is waiting for players")

    # Derived values

    @property
    def total_pot(self) -> int:
        """Collected pot plus bets still in front of players."""
        return self.current_pot + sum(p.current_bet for p in self.players.values())

    def valid_actions(self, player: Player) -> list[ActionType]:
        """Actions the player may take now (empty when not on the turn)."""
        if self.current_player is not player:
            return []
        return get_valid_actions(player, self.current_max_bet)

    def call_amount(self, player: Player) -> int:
        return get_call_amount(player, self.current_max_bet)

    # Hand visibility

    def grant_reveal(self, viewer_id: str) -> None:
        """Let ``viewer_id`` see every hole card until the next hand starts.

        No client message grants a reveal; whoever embeds the table (an
        operator tool, a replay viewer) decides who holds one.
        """
        self.reveal_grants.add(viewer_id)

    def revoke_reveal(self, viewer_id: str) -> None:
        self.reveal_grants.discard(viewer_id)

    def _can_see_hand(self, player: Player, viewer_id: Optional[str]) -> bool:
        if viewer_id is not None and player.player_id == viewer_id:
            return True
        if self.state == TableState.SHOWDOWN:
            return True
        return (
            self.state in (TableState.WAITING, TableState.FINISHED)
            and viewer_id in self.reveal_grants
        )

    # State serialization

    def get_state_for_player(self, viewer_id: Optional[str]) -> dict:
        """Get table state from a player's perspective.

        Args:
            viewer_id: The player requesting state (spectator if not seated).

        Returns:
            State dictionary with appropriate visibility.
        """
        viewer = self.get_player_by_id(viewer_id) if viewer_id else None
        current = self.current_player

        players_data = []
        for player in self._seated_in_order():
            player_data = player.to_dict(hide_cards=not self._can_see_hand(player, viewer_id))
            player_data["is_you"] = viewer is player
            player_data["is_dealer"] = player.seat == self.dealer_seat
            player_data["is_current_turn"] = current is player
            players_data.append(player_data)

        valid_actions: list[str] = []
        call_amount = 0
        min_raise = 0
        current_hand = None

        if viewer is not None:
            if current is viewer:
                valid_actions = [a.value for a in self.valid_actions(viewer)]
                call_amount = self.call_amount(viewer)
                min_raise = self.current_max_bet + 1
            if viewer.hole_cards is not None:
                current_hand = evaluate_hand(list(viewer.hole_cards) + self.community_cards).description

        return {
            "table_id": self.table_id,
            "state": self.state.value,
            "hand_number": self.hand_number,
            "dealer_seat": self.dealer_seat,
            "small_blind": self.small_blind,
            "big_blind": self.big_blind,
            "pot": self.total_pot,
            "current_max_bet": self.current_max_bet,
            "max_players": self.max_players,
            "community_cards": [str(c) for c in self.community_cards],
            "players": players_data,
            "current_player": current.player_id if current else None,
            "valid_actions": valid_actions,
            "call_amount": call_amount,
            "min_raise": min_raise,
            "winners": [p.player_id for p in self.winners],
            "last_results": dict(self.last_results),
            "current_hand": current_hand,
            "available_seats": self.available_seats(),
            "is_spectator": viewer is None,
        }

    def summary(self) -> dict:
        """Short public description for table listings."""
        return {
            "table_id": self.table_id,
            "state": self.state.value,
            "players": len(self.players),
            "max_players": self.max_players,
            "hand_number": self.hand_number,
            "small_blind": self.small_blind,
            "big_blind": self.big_blind,
        }
