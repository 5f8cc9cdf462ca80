"""Message handlers for WebSocket protocol."""
import json
import uuid
from dataclasses import dataclass
from typing import Optional, Any, TYPE_CHECKING

from holdem.protocol.messages import (
    parse_client_message,
    IdentifyMessage,
    JoinTableMessage,
    LeaveTableMessage,
    SitOutMessage,
    StartGameMessage,
    ActionMessage,
    PingMessage,
    ErrorMessage,
    WelcomeMessage,
    LeftTableMessage,
    PlayerJoinedMessage,
    PongMessage,
)
from holdem.game.errors import GameError, InvariantViolation
from holdem.game.player import Player
from holdem.utils.logger import get_logger

if TYPE_CHECKING:
    from holdem.main import GameServer

logger = get_logger(__name__)


@dataclass
class ClientSession:
    """Identity a connection announced with ``identify``."""
    player_id: str
    name: str


class MessageHandler:
    """Handles incoming WebSocket messages."""

    def __init__(self, server: "GameServer"):
        """Initialize handler.

        Args:
            server: The game server instance.
        """
        self.server = server

    async def handle_message(
        self,
        websocket: Any,
        raw_message: str,
        session: Optional[ClientSession] = None,
    ) -> tuple[Optional[dict], Optional[ClientSession]]:
        """Handle an incoming message.

        Args:
            websocket: The WebSocket connection.
            raw_message: Raw JSON message string.
            session: The connection's identity (if it has identified).

        Returns:
            Tuple of (response dict or None, updated session or None).
        """
        try:
            data = json.loads(raw_message)
            if not isinstance(data, dict):
                raise ValueError("Message must be a JSON object")
            message = parse_client_message(data)
        except json.JSONDecodeError as e:
            return ErrorMessage(message=f"Invalid JSON: {e}", code="BAD_MESSAGE").model_dump(), session
        except ValueError as e:
            return ErrorMessage(message=str(e), code="BAD_MESSAGE").model_dump(), session

        # Handle ping (keep-alive)
        if isinstance(message, PingMessage):
            return PongMessage().model_dump(), session

        if isinstance(message, IdentifyMessage):
            return self._handle_identify(message, websocket, session)

        # All other messages require an identity
        if session is None:
            return ErrorMessage(
                message="Not identified. Send identify message first.",
                code="IDENTIFY_REQUIRED"
            ).model_dump(), None

        try:
            # Route to appropriate handler
            if isinstance(message, JoinTableMessage):
                return await self._handle_join_table(message, session), session

            if isinstance(message, LeaveTableMessage):
                return await self._handle_leave_table(session), session

            if isinstance(message, SitOutMessage):
                return await self._handle_sit_out(message, session), session

            if isinstance(message, StartGameMessage):
                return await self._handle_start_game(session), session

            if isinstance(message, ActionMessage):
                return await self._handle_action(message, session), session
        except GameError as e:
            return ErrorMessage(message=str(e), code=e.code).model_dump(), session
        except InvariantViolation:
            logger.exception(f"Engine failure while handling {message.type} from {session.name}")
            return ErrorMessage(message="Internal server error", code="INTERNAL_ERROR").model_dump(), session

        return ErrorMessage(message="Unhandled message type", code="BAD_MESSAGE").model_dump(), session

    def _handle_identify(
        self,
        message: IdentifyMessage,
        websocket: Any,
        session: Optional[ClientSession],
    ) -> tuple[dict, Optional[ClientSession]]:
        """Attach a display name (and player id) to the connection."""
        if session is not None:
            return ErrorMessage(
                message=f"Already identified as {session.name}",
                code="ALREADY_IDENTIFIED"
            ).model_dump(), session

        player_id = message.player_id or uuid.uuid4().hex
        if player_id in self.server.connections:
            return ErrorMessage(
                message="That player id is already connected",
                code="PLAYER_ID_IN_USE"
            ).model_dump(), None

        self.server.register_connection(player_id, websocket)
        logger.info(f"{message.name} identified as {player_id}")

        return WelcomeMessage(
            player_id=player_id,
            name=message.name,
            tables=self.server.get_tables_list(),
        ).model_dump(), ClientSession(player_id=player_id, name=message.name)

    async def _handle_join_table(self, message: JoinTableMessage, session: ClientSession) -> dict:
        """Handle joining a table.

        If seat is None, the connection watches as a spectator.
        If seat is specified, a player with the starting stack takes that seat.
        """
        table = self.server.tables.get(message.table_id)
        if not table:
            return ErrorMessage(
                message=f"Table '{message.table_id}' does not exist.",
                code="TABLE_NOT_FOUND"
            ).model_dump()

        current_table = self.server.get_player_table(session.player_id)
        if current_table and current_table != message.table_id:
            return ErrorMessage(
                message=f"Already at table '{current_table}'. Leave it first.",
                code="ALREADY_AT_TABLE"
            ).model_dump()

        # If no seat specified, join as spectator
        if message.seat is None:
            if not table.get_player_by_id(session.player_id):
                self.server.add_spectator(session.player_id, message.table_id)
                logger.info(f"{session.name} joined table {message.table_id} as spectator")
            self.server.user_tables[session.player_id] = message.table_id
            return self.server.state_message(table, session.player_id)

        async with self.server.table_lock(message.table_id):
            player = Player(
                player_id=session.player_id,
                name=session.name,
                stack=self.server.config.starting_stack,
                seat=message.seat,
            )
            table.add_player(player)

            self.server.remove_spectator(session.player_id, message.table_id)
            self.server.user_tables[session.player_id] = message.table_id

            await self.server.broadcast_to_table(
                message.table_id,
                PlayerJoinedMessage(
                    player_id=player.player_id,
                    name=player.name,
                    seat=player.seat,
                    stack=player.stack,
                ).model_dump(),
                exclude_user=session.player_id,
            )
            await self.server.publish(message.table_id, exclude_user=session.player_id)
            self.server.schedule_auto_start(message.table_id)

            return self.server.state_message(table, session.player_id)

    async def _handle_leave_table(self, session: ClientSession) -> dict:
        """Handle leaving a table (both players and spectators).

        A player in a hand forfeits it; the seat is freed when the hand ends.
        """
        table_id = self.server.get_player_table(session.player_id)
        if not table_id:
            return ErrorMessage(message="Not at a table", code="NOT_AT_TABLE").model_dump()

        await self.server.leave_table(session.player_id, session.name, table_id)
        return LeftTableMessage(table_id=table_id).model_dump()

    async def _handle_sit_out(self, message: SitOutMessage, session: ClientSession) -> dict:
        """Toggle sitting out from the next hand."""
        table_id = self.server.get_player_table(session.player_id)
        if not table_id:
            return ErrorMessage(message="Not at a table", code="NOT_AT_TABLE").model_dump()

        table = self.server.tables[table_id]
        async with self.server.table_lock(table_id):
            table.set_sitting_out(session.player_id, message.sitting_out)
            await self.server.publish(table_id, exclude_user=session.player_id)
            if not message.sitting_out:
                self.server.schedule_auto_start(table_id)
            return self.server.state_message(table, session.player_id)

    async def _handle_start_game(self, session: ClientSession) -> dict:
        """Handle start game request."""
        table_id = self.server.get_player_table(session.player_id)
        if not table_id:
            return ErrorMessage(message="Not at a table", code="NOT_AT_TABLE").model_dump()

        table = self.server.tables[table_id]
        async with self.server.table_lock(table_id):
            table.start_hand()
            logger.info(f"{session.name} started hand #{table.hand_number} on table {table_id}")
            await self.server.publish(table_id, exclude_user=session.player_id)
            return self.server.state_message(table, session.player_id)

    async def _handle_action(self, message: ActionMessage, session: ClientSession) -> dict:
        """Handle a game action."""
        table_id = self.server.get_player_table(session.player_id)
        if not table_id:
            return ErrorMessage(message="Not at a table", code="NOT_AT_TABLE").model_dump()

        table = self.server.tables[table_id]
        async with self.server.table_lock(table_id):
            table.handle_action(session.player_id, message.action, message.amount)
            await self.server.publish(table_id, exclude_user=session.player_id)
            return self.server.state_message(table, session.player_id)
