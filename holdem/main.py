"""Main FastAPI server with WebSocket support."""
import asyncio
import time
from typing import Optional
from contextlib import asynccontextmanager

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware

from holdem import __version__
from holdem.config import Config, config
from holdem.game.betting import ActionType
from holdem.game.errors import InvariantViolation
from holdem.game.table import Table
from holdem.protocol.handlers import MessageHandler, ClientSession
from holdem.protocol.messages import (
    GameStateMessage,
    HandResultMessage,
    HandStartedMessage,
    PlayerActionMessage,
    PlayerLeftMessage,
    StateChangedMessage,
)
from holdem.utils.logger import configure_logging, get_logger

logger = get_logger(__name__)

# Table events and the message each one is broadcast as
EVENT_MESSAGES = {
    "hand_started": HandStartedMessage,
    "player_action": PlayerActionMessage,
    "state_changed": StateChangedMessage,
    "hand_result": HandResultMessage,
}


# Global server state
class GameServer:
    """Main poker game server state."""

    def __init__(self, settings: Config = config):
        self.config = settings
        self.tables: dict[str, Table] = {}
        self.connections: dict[str, WebSocket] = {}  # player_id -> websocket
        self.user_tables: dict[str, str] = {}  # player_id -> table_id
        self.spectators: dict[str, set[str]] = {}  # table_id -> set of player_ids
        self.handler = MessageHandler(self)

        self._locks: dict[str, asyncio.Lock] = {}
        self._outbox: dict[str, list[dict]] = {}  # table_id -> events not yet broadcast
        self._turn_started: dict[str, float] = {}  # table_id -> monotonic time the turn began
        self._turn_owner: dict[str, tuple] = {}  # table_id -> (hand_number, state, seat) the clock runs for
        self._auto_start_tasks: dict[str, asyncio.Task] = {}
        self._timeout_task: Optional[asyncio.Task] = None

        self.create_table(settings.default_table_id)

    async def initialize(self):
        """Start background tasks."""
        self._timeout_task = asyncio.create_task(self._check_timeouts_loop())
        logger.info("Game server initialized")

    async def cleanup(self):
        """Stop background tasks."""
        tasks = list(self._auto_start_tasks.values())
        if self._timeout_task:
            tasks.append(self._timeout_task)

        for task in tasks:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        logger.info("Game server shutdown complete")

    def create_table(self, table_id: str) -> Table:
        """Create a table with the configured blinds and seat count."""
        if table_id in self.tables:
            raise ValueError(f"Table '{table_id}' already exists")

        table = Table(
            table_id=table_id,
            min_bet=self.config.min_bet,
            min_players=self.config.min_players,
            max_players=self.config.max_players,
        )
        self._setup_table_callbacks(table)
        self.tables[table_id] = table

        logger.info(f"Created table {table_id} (blinds: {table.small_blind}/{table.big_blind})")
        return table

    def _setup_table_callbacks(self, table: Table):
        """Queue table events; ``publish`` sends them once the call returns."""
        def event_callback(event_type: str, data: dict):
            message = EVENT_MESSAGES[event_type](**data)
            self._outbox.setdefault(table.table_id, []).append(message.model_dump())

        table.set_event_callback(event_callback)

    def table_lock(self, table_id: str) -> asyncio.Lock:
        """The lock serializing every call into one table."""
        if table_id not in self._locks:
            self._locks[table_id] = asyncio.Lock()
        return self._locks[table_id]

    # Turn timeouts

    async def _check_timeouts_loop(self):
        """Background task to check for turn timeouts."""
        while True:
            try:
                await asyncio.sleep(1)  # Check every second
                await self._check_all_table_timeouts()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Error in timeout checker: {e}")

    async def _check_all_table_timeouts(self):
        """Check all tables for timeout."""
        for table_id, table in list(self.tables.items()):
            await self._check_table_timeout(table_id, table)

    def time_remaining(self, table_id: str) -> Optional[float]:
        """Seconds left on the current turn, or None when no clock runs."""
        started = self._turn_started.get(table_id)
        if started is None or self.config.turn_time_seconds <= 0:
            return None
        return max(0.0, self.config.turn_time_seconds - (time.monotonic() - started))

    async def _check_table_timeout(self, table_id: str, table: Table):
        """Check if current player has timed out at a table."""
        remaining = self.time_remaining(table_id)
        if remaining is None or remaining > 0:
            return

        async with self.table_lock(table_id):
            current_player = table.current_player
            remaining = self.time_remaining(table_id)
            if current_player is None or remaining is None or remaining > 0:
                return

            logger.info(f"Player {current_player.name} timed out at table {table_id}")

            # Auto-action: check if possible, otherwise fold
            if ActionType.CHECK in table.valid_actions(current_player):
                action = ActionType.CHECK
                logger.info(f"Auto-check for {current_player.name}")
            else:
                action = ActionType.FOLD
                logger.info(f"Auto-fold for {current_player.name}")

            try:
                table.handle_action(current_player.player_id, action)
            except InvariantViolation:
                logger.exception(f"Engine failure on timeout at table {table_id}")
            await self.publish(table_id)

    def _reset_turn_clock(self, table: Table) -> None:
        """Start the clock when the turn moves; leave it running otherwise."""
        if table.current_player is None:
            self._turn_started.pop(table.table_id, None)
            self._turn_owner.pop(table.table_id, None)
            return

        owner = (table.hand_number, table.state, table.current_seat)
        if self._turn_owner.get(table.table_id) != owner:
            self._turn_owner[table.table_id] = owner
            self._turn_started[table.table_id] = time.monotonic()

    # Automatic next hand

    def schedule_auto_start(self, table_id: str) -> None:
        """Start the next hand after the configured delay, if one can start."""
        if self.config.auto_start_delay_seconds <= 0:
            return
        if table_id in self._auto_start_tasks or not self.tables[table_id].can_start_hand():
            return
        self._auto_start_tasks[table_id] = asyncio.create_task(self._auto_start_next_hand(table_id))

    async def _auto_start_next_hand(self, table_id: str):
        """Auto-start the next hand after a delay."""
        try:
            # Wait for players to see the results
            await asyncio.sleep(self.config.auto_start_delay_seconds)

            table = self.tables[table_id]
            async with self.table_lock(table_id):
                # Check if we can still start (table might have changed)
                if table.can_start_hand():
                    table.start_hand()
                    logger.info(f"Auto-started hand #{table.hand_number} on table {table_id}")
                    await self.publish(table_id)
        finally:
            self._auto_start_tasks.pop(table_id, None)

    # Connections and spectators

    def register_connection(self, player_id: str, websocket: WebSocket):
        """Register a player's WebSocket connection."""
        self.connections[player_id] = websocket

    def get_player_table(self, player_id: str) -> Optional[str]:
        """Get the table a player or spectator is at."""
        if player_id in self.user_tables:
            return self.user_tables[player_id]

        for table_id, table in self.tables.items():
            if table.get_player_by_id(player_id):
                self.user_tables[player_id] = table_id
                return table_id

        return None

    def add_spectator(self, player_id: str, table_id: str) -> None:
        """Add a spectator to a table."""
        if table_id not in self.spectators:
            self.spectators[table_id] = set()
        self.spectators[table_id].add(player_id)

    def remove_spectator(self, player_id: str, table_id: str) -> None:
        """Remove a spectator from a table."""
        if table_id in self.spectators:
            self.spectators[table_id].discard(player_id)

    def get_spectators(self, table_id: str) -> set[str]:
        """Get all spectators at a table."""
        return self.spectators.get(table_id, set())

    async def leave_table(self, player_id: str, name: str, table_id: str) -> None:
        """Take a player or spectator away from a table."""
        table = self.tables.get(table_id)
        if table and table.get_player_by_id(player_id):
            async with self.table_lock(table_id):
                table.remove_player(player_id)
                await self.broadcast_to_table(
                    table_id,
                    PlayerLeftMessage(player_id=player_id, name=name).model_dump(),
                    exclude_user=player_id,
                )
                await self.publish(table_id, exclude_user=player_id)

        self.remove_spectator(player_id, table_id)
        self.user_tables.pop(player_id, None)

    async def handle_disconnect(self, session: ClientSession):
        """Handle a closed connection: the player leaves their table."""
        self.connections.pop(session.player_id, None)

        table_id = self.get_player_table(session.player_id)
        if not table_id:
            return

        try:
            await self.leave_table(session.player_id, session.name, table_id)
        except InvariantViolation:
            logger.exception(f"Engine failure removing {session.name} from table {table_id}")
        logger.info(f"{session.name} disconnected from table {table_id}")

    # Broadcasting

    async def send_to_user(self, player_id: str, message: dict) -> bool:
        """Send a message to a specific player."""
        websocket = self.connections.get(player_id)
        if websocket:
            try:
                await websocket.send_json(message)
                return True
            except Exception as e:
                logger.error(f"Failed to send to {player_id}: {e}")
        return False

    async def broadcast_to_table(
        self,
        table_id: str,
        message: dict,
        exclude_user: Optional[str] = None
    ):
        """Broadcast a message to all players and spectators at a table."""
        table = self.tables.get(table_id)
        if not table:
            return

        recipients = [p.player_id for p in table.players.values()]
        recipients.extend(self.get_spectators(table_id))
        for player_id in recipients:
            if exclude_user and player_id == exclude_user:
                continue
            await self.send_to_user(player_id, message)

    def state_message(self, table: Table, viewer_id: Optional[str]) -> dict:
        """Game state as ``viewer_id`` may see it."""
        return GameStateMessage(
            **table.get_state_for_player(viewer_id),
            turn_time_seconds=self.config.turn_time_seconds,
            time_remaining=self.time_remaining(table.table_id),
        ).model_dump()

    async def broadcast_game_state(self, table_id: str, exclude_user: Optional[str] = None):
        """Send every player and spectator their own view of the table."""
        table = self.tables.get(table_id)
        if not table:
            return

        recipients = [p.player_id for p in table.players.values()]
        recipients.extend(self.get_spectators(table_id))
        for player_id in recipients:
            if exclude_user and player_id == exclude_user:
                continue
            await self.send_to_user(player_id, self.state_message(table, player_id))

    async def publish(self, table_id: str, exclude_user: Optional[str] = None):
        """Broadcast queued table events, then the new state, after a change."""
        table = self.tables[table_id]
        self._reset_turn_clock(table)

        events = self._outbox.pop(table_id, [])
        for event in events:
            await self.broadcast_to_table(table_id, event)

        await self.broadcast_game_state(table_id, exclude_user=exclude_user)

        if any(event["type"] == "hand_result" for event in events):
            self.schedule_auto_start(table_id)

    def get_tables_list(self) -> list[dict]:
        """Get list of tables formatted for clients."""
        return [table.summary() for table in self.tables.values()]


# Global server instance
server = GameServer()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    await server.initialize()
    yield
    await server.cleanup()


# Create FastAPI app
app = FastAPI(
    title="Hold'em Table Server",
    description="No-Limit Texas Hold'em table server over WebSocket",
    version=__version__,
    lifespan=lifespan,
)

# CORS middleware - allow local development
app.add_middleware(
    CORSMiddleware,
    allow_origin_regex=r"http://(localhost|127\.0\.0\.1)(:\d+)?",  # Allow any localhost port
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Health check
@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}


@app.get("/api/tables")
async def list_tables():
    """List active tables."""
    return {"tables": server.get_tables_list()}


# WebSocket endpoint
@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """WebSocket endpoint for game communication."""
    await websocket.accept()

    session: Optional[ClientSession] = None

    try:
        while True:
            data = await websocket.receive_text()
            response, session = await server.handler.handle_message(websocket, data, session)

            if response:
                await websocket.send_json(response)
    except WebSocketDisconnect:
        pass
    finally:
        if session:
            await server.handle_disconnect(session)


def run():
    """Run the server with uvicorn."""
    import uvicorn
    configure_logging(config.log_level)
    uvicorn.run(
        "holdem.main:app",
        host=config.host,
        port=config.port,
        log_level=config.log_level.lower(),
    )


# Entry point
if __name__ == "__main__":
    run()
