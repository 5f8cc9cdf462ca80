"""Pydantic message schemas for WebSocket protocol."""
from typing import Annotated, Optional, Literal, Union
from pydantic import BaseModel, Field, TypeAdapter, ValidationError


# ============= Client -> Server Messages =============

class IdentifyMessage(BaseModel):
    """Introduce the connection with a display name."""
    type: Literal["identify"] = "identify"
    name: str = Field(min_length=1, max_length=32)
    player_id: Optional[str] = None  # Generated if not supplied


class JoinTableMessage(BaseModel):
    """Join a table."""
    type: Literal["join_table"] = "join_table"
    table_id: str
    seat: Optional[int] = None  # Watch as a spectator if not specified


class LeaveTableMessage(BaseModel):
    """Leave current table."""
    type: Literal["leave_table"] = "leave_table"


class SitOutMessage(BaseModel):
    """Sit out from the next hand on (or come back)."""
    type: Literal["sit_out"] = "sit_out"
    sitting_out: bool = True


class StartGameMessage(BaseModel):
    """Request to start a new hand."""
    type: Literal["start_game"] = "start_game"


class ActionMessage(BaseModel):
    """Game action (fold, check, call, raise, allin)."""
    type: Literal["action"] = "action"
    action: str
    amount: Optional[int] = None  # Total bet level for raises


class PingMessage(BaseModel):
    """Keep-alive ping from client."""
    type: Literal["ping"] = "ping"


# Union of all client messages, told apart by their "type" field
ClientMessage = Annotated[
    Union[
        IdentifyMessage,
        JoinTableMessage,
        LeaveTableMessage,
        SitOutMessage,
        StartGameMessage,
        ActionMessage,
        PingMessage,
    ],
    Field(discriminator="type"),
]

_client_messages = TypeAdapter(ClientMessage)


# ============= Server -> Client Messages =============

class ErrorMessage(BaseModel):
    """Error response."""
    type: Literal["error"] = "error"
    message: str
    code: Optional[str] = None


class WelcomeMessage(BaseModel):
    """Identification accepted."""
    type: Literal["welcome"] = "welcome"
    player_id: str
    name: str
    tables: list[dict] = []


class GameStateMessage(BaseModel):
    """Full game state update, personalized per viewer."""
    type: Literal["game_state"] = "game_state"
    table_id: str
    state: str
    hand_number: int
    dealer_seat: int
    small_blind: int
    big_blind: int
    pot: int
    current_max_bet: int
    max_players: int = 10
    community_cards: list[str]
    players: list[dict]
    current_player: Optional[str]
    valid_actions: list[str]
    call_amount: int
    min_raise: int
    winners: list[str] = []
    last_results: dict[str, int] = {}
    current_hand: Optional[str] = None
    available_seats: list[int] = []
    is_spectator: bool = False
    # Timer info
    turn_time_seconds: int = 30
    time_remaining: Optional[float] = None


class PlayerActionMessage(BaseModel):
    """Broadcast a player's action."""
    type: Literal["player_action"] = "player_action"
    player_id: str
    name: str
    action: str
    amount: Optional[int] = None


class HandStartedMessage(BaseModel):
    """A new hand was dealt."""
    type: Literal["hand_started"] = "hand_started"
    hand_number: int
    dealer_seat: int
    small_blind: int
    big_blind: int


class StateChangedMessage(BaseModel):
    """A new street was dealt."""
    type: Literal["state_changed"] = "state_changed"
    state: str
    community_cards: list[str]
    pot: int


class HandResultMessage(BaseModel):
    """Hand result announcement."""
    type: Literal["hand_result"] = "hand_result"
    winners: list[dict]  # {player_id, name, amount, hand}
    pots: list[dict] = []
    pot_total: int
    community_cards: list[str]
    shown_hands: dict[str, dict]  # player_id -> {cards, hand}


class PlayerJoinedMessage(BaseModel):
    """Player joined table."""
    type: Literal["player_joined"] = "player_joined"
    player_id: str
    name: str
    seat: int
    stack: int


class PlayerLeftMessage(BaseModel):
    """Player left table."""
    type: Literal["player_left"] = "player_left"
    player_id: str
    name: str


class LeftTableMessage(BaseModel):
    """Confirms the connection left its table."""
    type: Literal["left_table"] = "left_table"
    table_id: str


class PongMessage(BaseModel):
    """Keep-alive pong response."""
    type: Literal["pong"] = "pong"


# Union of all server messages
ServerMessage = Union[
    ErrorMessage,
    WelcomeMessage,
    GameStateMessage,
    PlayerActionMessage,
    HandStartedMessage,
    StateChangedMessage,
    HandResultMessage,
    PlayerJoinedMessage,
    PlayerLeftMessage,
    LeftTableMessage,
    PongMessage,
]


def parse_client_message(data: dict) -> ClientMessage:
    """Parse a client message from JSON dict.

    Args:
        data: Message data dictionary.

    Returns:
        Parsed client message.

    Raises:
        ValueError: If message type is unknown or invalid (pydantic's
            ValidationError is a ValueError).
    """
    try:
        return _client_messages.validate_python(data)
    except ValidationError as e:
        if any(err["type"] in ("union_tag_invalid", "union_tag_not_found") for err in e.errors()):
            raise ValueError(f"Unknown message type: {data.get('type')}") from None
        raise
