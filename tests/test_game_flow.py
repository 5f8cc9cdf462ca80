"""Tests for game flow and table state machine."""
import pytest
from holdem.game.deck import Card, Deck
from holdem.game.table import Table, TableState, BETTING_STATES
from holdem.game.player import Player, PlayerStatus
from holdem.game.betting import ActionType
from holdem.game.errors import (
    GameInProgress,
    InsufficientChips,
    InvalidAction,
    InvalidCheck,
    InvalidRaise,
    InvariantViolation,
    NoHandInProgress,
    NotEnoughPlayers,
    NotYourTurn,
    PlayerNotFound,
    SeatUnavailable,
)


class StackedDeck(Deck):
    """Deck that never shuffles and deals ``top`` first, left to right."""

    def __init__(self, top: str = ""):
        self._top = [Card.from_string(c) for c in top.split()]
        super().__init__()

    def reset(self) -> None:
        super().reset()
        rest = [c for c in self._cards if c not in self._top]
        self._cards = rest + list(reversed(self._top))

    def shuffle(self) -> None:
        pass


def make_player(player_id: str, stack: int = 1000, seat: int = None) -> Player:
    """Create a test player."""
    return Player(
        player_id=player_id,
        name=f"player_{player_id}",
        seat=seat if seat is not None else int(player_id),
        stack=stack,
    )


def make_table(*stacks: int, top: str = "", min_bet: int = 20) -> Table:
    """Create a table with players "0", "1", ... seated in order."""
    table = Table(table_id="test", min_bet=min_bet, deck=StackedDeck(top))
    for seat, stack in enumerate(stacks):
        table.add_player(make_player(str(seat), stack=stack, seat=seat))
    return table


def act(table: Table, action: str, amount: int = None) -> None:
    """Act for whoever is on the turn."""
    table.handle_action(table.current_player.player_id, action, amount)


def chips_in_play(table: Table) -> int:
    return sum(p.stack + p.current_bet for p in table.players.values()) + table.current_pot


def fold_around(table: Table) -> None:
    while table.state in BETTING_STATES:
        act(table, "fold")


class TestTableSetup:
    """Test table setup and player management."""

    def test_create_table(self):
        """Test creating a table."""
        table = Table(table_id="test", min_bet=20)

        assert table.table_id == "test"
        assert table.state == TableState.WAITING
        assert table.small_blind == 10
        assert table.big_blind == 20
        assert len(table.players) == 0

    def test_empty_deck_is_kept(self):
        """Test an injected deck is used even when it holds no cards."""
        deck = Deck()
        for _ in range(52):
            deck.deal()
        table = Table(table_id="test", deck=deck)

        assert table.deck is deck

    def test_add_player(self):
        """Test adding a player."""
        table = Table(table_id="test")
        player = make_player("1", seat=0)
        table.add_player(player)

        assert table.players[0] is player
        assert player.status == PlayerStatus.SITTING_OUT

    def test_add_player_duplicate_seat(self):
        """Test cannot add player to occupied seat."""
        table = Table(table_id="test")
        table.add_player(make_player("1", seat=0))

        with pytest.raises(SeatUnavailable):
            table.add_player(make_player("2", seat=0))

    def test_add_player_twice(self):
        """Test one player cannot take two seats."""
        table = Table(table_id="test")
        table.add_player(make_player("1", seat=0))

        with pytest.raises(SeatUnavailable):
            table.add_player(make_player("1", seat=1))

    def test_add_player_invalid_seat(self):
        """Test seats outside the table are rejected."""
        table = Table(table_id="test", max_players=3)

        with pytest.raises(SeatUnavailable):
            table.add_player(make_player("1", seat=3))
        with pytest.raises(SeatUnavailable):
            table.add_player(make_player("1", seat=-1))

    def test_add_player_during_hand(self):
        """Test nobody joins mid-hand."""
        table = make_table(1000, 1000)
        table.start_hand()

        with pytest.raises(GameInProgress):
            table.add_player(make_player("9", seat=5))

    def test_add_player_after_hand(self):
        """Test joining is allowed once the hand is finished."""
        table = make_table(1000, 1000)
        table.start_hand()
        fold_around(table)
        assert table.state == TableState.FINISHED

        table.add_player(make_player("9", seat=5))
        assert table.get_player_by_id("9") is not None

    def test_remove_player(self):
        """Test removing a player between hands."""
        table = make_table(1000, 1000, 1000)
        removed = table.remove_player("1")

        assert removed.player_id == "1"
        assert 1 not in table.players

    def test_remove_unknown_player(self):
        """Test removing someone who is not seated."""
        table = make_table(1000, 1000)

        with pytest.raises(PlayerNotFound):
            table.remove_player("nobody")

    def test_next_available_seat(self):
        """Test getting next available seat."""
        table = Table(table_id="test", max_players=3)
        table.add_player(make_player("1", seat=0))
        table.add_player(make_player("2", seat=2))

        assert table.get_next_available_seat() == 1
        assert table.available_seats() == [1]


class TestHandStart:
    """Test starting a hand."""

    def test_not_enough_players(self):
        """Test one player cannot start a hand."""
        table = make_table(1000)

        with pytest.raises(NotEnoughPlayers):
            table.start_hand()
        assert table.state == TableState.WAITING

    def test_broke_players_do_not_count(self):
        """Test players without chips are not eligible."""
        table = make_table(1000, 0)

        assert not table.can_start_hand()
        with pytest.raises(NotEnoughPlayers):
            table.start_hand()

    def test_sitting_out_players_do_not_count(self):
        """Test sitting out removes a player from the count."""
        table = make_table(1000, 1000)
        table.set_sitting_out("1", True)

        with pytest.raises(NotEnoughPlayers):
            table.start_hand()

    def test_start_hand_deals_cards(self):
        """Test two hole cards for each player."""
        table = make_table(1000, 1000, 1000)
        table.start_hand()

        assert table.state == TableState.PREFLOP
        assert table.hand_number == 1
        for player in table.players.values():
            assert player.hole_cards is not None
            assert len(player.hole_cards) == 2
        assert table.deck.remaining == 52 - 6

    def test_deal_order_starts_left_of_dealer(self):
        """Test one card per pass, starting after the button."""
        table = make_table(1000, 1000, 1000, top="Ah Kh Qh Jh Th 9h")
        table.start_hand()

        assert table.dealer_seat == 0
        assert table.players[1].hole_cards == (Card.from_string("Ah"), Card.from_string("Jh"))
        assert table.players[2].hole_cards == (Card.from_string("Kh"), Card.from_string("Th"))
        assert table.players[0].hole_cards == (Card.from_string("Qh"), Card.from_string("9h"))

    def test_start_hand_posts_blinds(self):
        """Test small and big blind with three players."""
        table = make_table(1000, 1000, 1000)
        table.start_hand()

        assert table.players[1].current_bet == 10
        assert table.players[2].current_bet == 20
        assert table.players[0].current_bet == 0
        assert table.current_max_bet == 20
        assert table.total_pot == 30

    def test_three_player_utg_acts_first_preflop(self):
        """Test the seat after the big blind acts first."""
        table = make_table(1000, 1000, 1000)
        table.start_hand()

        assert table.current_player.player_id == "0"

    def test_four_player_utg_acts_first_preflop(self):
        """Test UTG with four players."""
        table = make_table(1000, 1000, 1000, 1000)
        table.start_hand()

        assert table.current_player.player_id == "3"

    def test_heads_up_dealer_posts_small_blind(self):
        """Test heads-up blinds and first action."""
        table = make_table(1000, 1000)
        table.start_hand()

        assert table.dealer_seat == 0
        assert table.players[0].current_bet == 10
        assert table.players[1].current_bet == 20
        assert table.current_player.player_id == "0"

    def test_short_big_blind(self):
        """Test a short big blind posts what it has and the bet stays at the minimum."""
        table = make_table(1000, 1000, 15)
        table.start_hand()

        assert table.players[2].current_bet == 15
        assert table.players[2].status == PlayerStatus.ALL_IN
        assert table.current_max_bet == 20

    def test_start_hand_twice(self):
        """Test a hand cannot start over another."""
        table = make_table(1000, 1000)
        table.start_hand()

        with pytest.raises(GameInProgress):
            table.start_hand()

    def test_blinds_all_in_runs_out_board(self):
        """Test nobody left to act deals the board straight to showdown."""
        table = make_table(
            10, 20,
            top="Ah 2c Ad 3c 8c Kd Qs 9h 8d 4h 8h 6s",
        )
        table.start_hand()

        assert table.state == TableState.FINISHED
        assert len(table.community_cards) == 5
        assert table.players[1].stack == 30
        assert table.players[0].stack == 0
        assert [p.player_id for p in table.winners] == ["1"]


class TestButton:
    """Test dealer button movement."""

    def test_button_rotates(self):
        """Test the button moves one eligible seat per hand."""
        table = make_table(1000, 1000, 1000)
        dealers = []
        for _ in range(4):
            table.start_hand()
            dealers.append(table.dealer_seat)
            fold_around(table)

        assert dealers == [0, 1, 2, 0]

    def test_button_skips_sitting_out(self):
        """Test seats that sit out are passed over."""
        table = make_table(1000, 1000, 1000)
        table.start_hand()
        fold_around(table)

        table.set_sitting_out("1", True)
        table.start_hand()

        assert table.dealer_seat == 2
        assert table.players[1].status == PlayerStatus.SITTING_OUT
        assert table.players[1].hole_cards is None


class TestBettingRound:
    """Test betting and round completion."""

    def test_preflop_to_flop(self):
        """Test call, call, check moves to the flop with pot 60."""
        table = make_table(1000, 1000, 1000)
        table.start_hand()

        act(table, "call")
        act(table, "call")
        act(table, "check")

        assert table.state == TableState.FLOP
        assert len(table.community_cards) == 3
        assert table.current_pot == 60
        assert table.total_pot == 60
        assert table.current_max_bet == 0
        assert all(p.current_bet == 0 for p in table.players.values())
        assert all(p.last_action is None for p in table.players.values())

    def test_postflop_first_active_after_dealer(self):
        """Test the seat left of the button opens post-flop betting."""
        table = make_table(1000, 1000, 1000)
        table.start_hand()
        act(table, "call")
        act(table, "call")
        act(table, "check")

        assert table.current_player.player_id == "1"

    def test_heads_up_big_blind_gets_option(self):
        """Test the big blind may still act after the small blind calls."""
        table = make_table(1000, 1000)
        table.start_hand()

        act(table, "call")
        assert table.state == TableState.PREFLOP
        assert table.current_player.player_id == "1"

        act(table, "check")
        assert table.state == TableState.FLOP
        assert table.current_player.player_id == "1"

    def test_check_facing_bet_rejected(self):
        """Test InvalidCheck leaves the table untouched."""
        table = make_table(1000, 1000, 1000)
        table.start_hand()

        with pytest.raises(InvalidCheck):
            act(table, "check")
        assert table.current_player.player_id == "0"
        assert table.players[0].last_action is None
        assert table.players[0].stack == 1000

    def test_not_your_turn(self):
        """Test acting out of turn."""
        table = make_table(1000, 1000, 1000)
        table.start_hand()

        with pytest.raises(NotYourTurn):
            table.handle_action("1", "call")
        assert table.players[1].current_bet == 10

    def test_not_your_turn_checked_first(self):
        """Test turn order is checked before the action name."""
        table = make_table(1000, 1000, 1000)
        table.start_hand()

        with pytest.raises(NotYourTurn):
            table.handle_action("2", "dance")
        with pytest.raises(InvalidAction):
            table.handle_action("0", "dance")

    def test_raise_validation(self):
        """Test raise amounts."""
        table = make_table(1000, 1000, 1000)
        table.start_hand()

        with pytest.raises(InvalidRaise):
            act(table, "raise")
        with pytest.raises(InvalidRaise):
            act(table, "raise", 20)
        with pytest.raises(InsufficientChips):
            act(table, "raise", 1001)
        assert table.current_max_bet == 20

    def test_raise_reopens_action(self):
        """Test everyone must act again after a raise."""
        table = make_table(1000, 1000, 1000)
        table.start_hand()

        act(table, "call")
        act(table, "call")
        act(table, "raise", 60)
        assert table.state == TableState.PREFLOP
        assert table.current_max_bet == 60

        act(table, "call")
        act(table, "call")
        assert table.state == TableState.FLOP
        assert table.current_pot == 180

    def test_reraise_and_fold(self):
        """Test raise, re-raise, fold, call."""
        table = make_table(1000, 1000, 1000)
        table.start_hand()

        act(table, "raise", 60)
        act(table, "raise", 200)
        act(table, "fold")
        act(table, "call")

        assert table.state == TableState.FLOP
        assert table.current_pot == 420
        assert table.players[2].status == PlayerStatus.FOLDED

    def test_all_in_as_raise(self):
        """Test a shove above the bet becomes the new bet level."""
        table = make_table(100, 1000, 1000)
        table.start_hand()

        act(table, "allin")

        assert table.players[0].status == PlayerStatus.ALL_IN
        assert table.current_max_bet == 100
        assert table.players[0].last_action.type == ActionType.ALL_IN
        assert table.players[0].last_action.amount == 100

    def test_all_in_as_partial_call(self):
        """Test a shove below the bet is a call for less."""
        table = make_table(1000, 1000, 1000)
        table.start_hand()

        act(table, "raise", 500)
        table.players[1].stack = 50
        act(table, "allin")

        assert table.current_max_bet == 500
        assert table.players[1].current_bet == 60
        assert table.current_player.player_id == "2"

    def test_call_for_less_than_full(self):
        """Test calling with a short stack goes all-in."""
        table = make_table(1000, 1000, 1000)
        table.start_hand()

        act(table, "raise", 800)
        table.players[1].stack = 100
        act(table, "call")

        assert table.players[1].status == PlayerStatus.ALL_IN
        assert table.players[1].current_bet == 110

    def test_action_with_no_hand(self):
        """Test actions before the first hand."""
        table = make_table(1000, 1000)

        with pytest.raises(NoHandInProgress):
            table.handle_action("0", "call")

    def test_chips_conserved_during_hand(self):
        """Test stacks, bets and pot always add up."""
        table = make_table(1000, 1000, 1000)
        table.start_hand()
        total = chips_in_play(table)

        for action, amount in [("call", None), ("raise", 80), ("call", None), ("call", None)]:
            act(table, action, amount)
            assert chips_in_play(table) == total

        while table.state in BETTING_STATES:
            act(table, "check")
            assert chips_in_play(table) == total

        assert table.state == TableState.FINISHED
        assert sum(p.stack for p in table.players.values()) == 3000

    def test_check_down_to_showdown(self):
        """Test a full hand with no betting after the blinds."""
        table = make_table(1000, 1000, 1000)
        events = []
        table.set_event_callback(lambda event_type, data: events.append(event_type))
        table.start_hand()

        act(table, "call")
        act(table, "call")
        act(table, "check")
        for street in (TableState.FLOP, TableState.TURN, TableState.RIVER):
            assert table.state == street
            for _ in range(3):
                act(table, "check")

        assert table.state == TableState.FINISHED
        assert len(table.community_cards) == 5
        assert table.winners
        assert sum(table.last_results.values()) == 0
        assert events[0] == "hand_started"
        assert events.count("state_changed") == 3
        assert events[-1] == "hand_result"


class TestFoldToOne:
    """Test the walkover path."""

    def test_fold_ends_hand(self):
        """Test the last player standing takes the pot at once."""
        table = make_table(1000, 1000, 1000)
        table.start_hand()

        act(table, "raise", 60)
        act(table, "fold")
        act(table, "fold")

        assert table.state == TableState.FINISHED
        assert table.players[0].stack == 1030
        assert [p.player_id for p in table.winners] == ["0"]
        assert table.last_results == {"0": 30, "1": -10, "2": -20}
        assert table.total_pot == 0

    def test_no_actions_after_walkover(self):
        """Test nothing is accepted until the next hand starts."""
        table = make_table(1000, 1000, 1000)
        table.start_hand()
        fold_around(table)

        with pytest.raises(NoHandInProgress):
            table.handle_action("2", "check")

        table.start_hand()
        assert table.state == TableState.PREFLOP
        assert table.hand_number == 2

    def test_walkover_on_later_street(self):
        """Test folding on the flop collects the in-flight bets."""
        table = make_table(1000, 1000)
        table.start_hand()
        act(table, "call")
        act(table, "check")

        act(table, "raise", 100)
        act(table, "fold")

        assert table.state == TableState.FINISHED
        assert table.players[1].stack == 1020
        assert table.players[0].stack == 980


class TestSidePots:
    """Test all-in hands through the table."""

    def test_short_stack_all_in(self):
        """Test 100/500/500: the short stack only wins the main pot."""
        # Deal order b, c, a twice; then burn, flop, burn, turn, burn, river
        table = make_table(
            100, 500, 500,
            top="Kh Qh Ah Kd Qd Ad 8c 2c 7s 9h 8d 3d 8h 4s",
        )
        results = []
        table.set_event_callback(
            lambda event_type, data: results.append(data) if event_type == "hand_result" else None
        )
        table.start_hand()

        act(table, "allin")
        act(table, "call")
        act(table, "call")
        assert table.state == TableState.FLOP

        act(table, "raise", 200)
        act(table, "call")
        while table.state in BETTING_STATES:
            act(table, "check")

        assert table.state == TableState.FINISHED
        assert table.players[0].stack == 300
        assert table.players[1].stack == 600
        assert table.players[2].stack == 200
        assert sum(p.stack for p in table.players.values()) == 1100

        pots = results[0]["pots"]
        assert [p["amount"] for p in pots] == [300, 400]
        assert pots[0]["eligible_players"] == ["0", "1", "2"]
        assert pots[1]["eligible_players"] == ["1", "2"]

    def test_all_in_runs_out_board(self):
        """Test both players all-in preflop deals five cards."""
        table = make_table(1000, 1000)
        table.start_hand()

        act(table, "allin")
        act(table, "call")

        assert table.state == TableState.FINISHED
        assert len(table.community_cards) == 5
        assert sum(p.stack for p in table.players.values()) == 2000

    def test_one_player_left_with_chips(self):
        """Test betting stops when only one player can still act."""
        table = make_table(100, 1000)
        table.start_hand()

        act(table, "call")
        act(table, "raise", 300)
        act(table, "allin")

        assert table.state == TableState.FINISHED
        assert len(table.community_cards) == 5
        assert sum(p.stack for p in table.players.values()) == 1100


class TestLeaving:
    """Test players leaving during and between hands."""

    def test_leave_out_of_turn_folds(self):
        """Test a leaving player forfeits and keeps the seat until the hand ends."""
        table = make_table(1000, 1000, 1000)
        table.start_hand()

        table.remove_player("2")

        assert table.players[2].status == PlayerStatus.FOLDED
        assert table.state == TableState.PREFLOP
        assert table.current_player.player_id == "0"

        act(table, "call")
        act(table, "call")
        assert table.state == TableState.FLOP

        fold_around(table)
        assert 2 not in table.players
        assert table.state == TableState.FINISHED

    def test_leave_on_turn(self):
        """Test leaving on the turn passes the action."""
        table = make_table(1000, 1000, 1000)
        table.start_hand()

        table.remove_player("0")

        assert table.current_player.player_id == "1"

    def test_heads_up_leave_falls_back_to_waiting(self):
        """Test the hand ends and the table waits for players."""
        table = make_table(1000, 1000)
        table.start_hand()

        table.remove_player("1")

        assert table.state == TableState.WAITING
        assert list(table.players) == [0]
        assert table.players[0].stack == 1020
        assert table.community_cards == []
        assert [p.player_id for p in table.winners] == ["0"]
        assert table.last_results == {"0": 20, "1": -20}

        state = table.get_state_for_player("0")
        assert state["winners"] == ["0"]
        assert state["last_results"] == {"0": 20, "1": -20}

    def test_leave_between_hands_falls_back_to_waiting(self):
        """Test a finished table with one player left waits."""
        table = make_table(1000, 1000)
        table.start_hand()
        fold_around(table)

        table.remove_player("0")

        assert table.state == TableState.WAITING
        assert table.players[1].hole_cards is None


class TestStateView:
    """Test per-viewer state and hand visibility."""

    def test_own_cards_only(self):
        """Test a player sees only their own hole cards."""
        table = make_table(1000, 1000, 1000)
        table.start_hand()

        state = table.get_state_for_player("1")
        by_id = {p["player_id"]: p for p in state["players"]}

        assert by_id["1"]["hole_cards"] is not None
        assert by_id["0"]["hole_cards"] is None
        assert by_id["0"]["has_cards"] is True
        assert by_id["1"]["is_you"] is True
        assert by_id["0"]["is_dealer"] is True
        assert by_id["0"]["is_current_turn"] is True
        assert state["current_hand"] is not None
        assert state["is_spectator"] is False

    def test_spectator_sees_no_cards(self):
        """Test spectators see every hand masked."""
        table = make_table(1000, 1000)
        table.start_hand()

        state = table.get_state_for_player("watcher")

        assert state["is_spectator"] is True
        assert all(p["hole_cards"] is None for p in state["players"])
        assert state["valid_actions"] == []

    def test_turn_fields(self):
        """Test the player on the turn gets actions and amounts."""
        table = make_table(1000, 1000, 1000)
        table.start_hand()

        state = table.get_state_for_player("0")
        assert state["current_player"] == "0"
        assert state["valid_actions"] == ["fold", "call", "raise", "allin"]
        assert state["call_amount"] == 20
        assert state["min_raise"] == 21
        assert state["pot"] == 30

        other = table.get_state_for_player("1")
        assert other["valid_actions"] == []
        assert other["call_amount"] == 0

    def test_showdown_reveals_hands(self):
        """Test every hand is visible while the showdown is being settled."""
        table = make_table(1000, 1000)
        seen = []

        def on_event(event_type, data):
            if event_type == "hand_result":
                seen.append(table.get_state_for_player("watcher"))

        table.set_event_callback(on_event)
        table.start_hand()
        act(table, "call")
        while table.state in BETTING_STATES:
            act(table, "check")

        assert seen[0]["state"] == "showdown"
        assert all(p["hole_cards"] is not None for p in seen[0]["players"])

        finished = table.get_state_for_player("watcher")
        assert all(p["hole_cards"] is None for p in finished["players"])

    def test_reveal_grant(self):
        """Test a reveal grant applies only between hands."""
        table = make_table(1000, 1000)
        table.start_hand()
        table.grant_reveal("watcher")

        during = table.get_state_for_player("watcher")
        assert all(p["hole_cards"] is None for p in during["players"])

        act(table, "call")
        while table.state in BETTING_STATES:
            act(table, "check")

        table.grant_reveal("watcher")
        after = table.get_state_for_player("watcher")
        assert all(p["hole_cards"] is not None for p in after["players"])

        table.revoke_reveal("watcher")
        revoked = table.get_state_for_player("watcher")
        assert all(p["hole_cards"] is None for p in revoked["players"])

    def test_grants_cleared_by_new_hand(self):
        """Test grants do not survive into the next hand."""
        table = make_table(1000, 1000)
        table.grant_reveal("watcher")
        table.start_hand()

        assert table.reveal_grants == set()


class TestInvariants:
    """Test internal consistency checks."""

    def test_rotation_without_active_seat(self):
        """Test turn rotation with nobody able to act."""
        table = make_table(1000, 1000)
        table.start_hand()
        for player in table.players.values():
            player.status = PlayerStatus.ALL_IN

        with pytest.raises(InvariantViolation):
            table._rotate_turn()

    def test_conservation_checked_at_hand_end(self):
        """Test chips appearing from nowhere are detected."""
        table = make_table(1000, 1000)
        table.start_hand()
        table.players[0].stack += 5

        with pytest.raises(InvariantViolation):
            fold_around(table)
