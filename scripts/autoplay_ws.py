#!/usr/bin/env python3
"""
Auto-play bots over direct WebSocket connections.

Usage:
    python scripts/autoplay_ws.py [--players 3] [--hands 10]

Start the server first (``holdem-server`` or ``python -m holdem.main``).
"""
import argparse
import asyncio
import json
import random

import httpx
import websockets

API_URL = "http://localhost:8765"
WS_URL = "ws://localhost:8765/ws"


class Bot:
    def __init__(self, name: str):
        self.name = name
        self.player_id = None
        self.ws = None
        self.game_state = None
        self.is_my_turn = False
        self.valid_actions = []
        self.hands_seen = 0

    async def connect(self) -> bool:
        """Connect to the WebSocket and identify."""
        self.ws = await websockets.connect(WS_URL)
        await self.send({"type": "identify", "name": self.name})

        data = await self.recv()
        if data and data.get("type") == "welcome":
            self.player_id = data["player_id"]
            print(f"  ✓ {self.name} connected as {self.player_id}")
            return True

        print(f"  ✗ {self.name} identify failed: {data}")
        return False

    async def send(self, message: dict):
        """Send a message."""
        await self.ws.send(json.dumps(message))

    async def recv(self, timeout: float = 5.0):
        """Receive a message with timeout."""
        try:
            msg = await asyncio.wait_for(self.ws.recv(), timeout)
            return json.loads(msg)
        except asyncio.TimeoutError:
            return None

    def update_state(self, msg: dict):
        """Update local state from message."""
        if msg.get("type") == "game_state":
            self.game_state = msg
            self.is_my_turn = msg.get("current_player") == self.player_id
            self.valid_actions = msg.get("valid_actions", [])
        elif msg.get("type") == "hand_result":
            self.hands_seen += 1

    async def play_action(self) -> bool:
        """Play an action if it's our turn."""
        if not self.is_my_turn or not self.valid_actions:
            return False

        # Simple strategy
        roll = random.random()
        amount = None

        if roll < 0.05 and "fold" in self.valid_actions:
            action = "fold"
        elif roll < 0.2 and "raise" in self.valid_actions:
            action = "raise"
            amount = self.game_state["current_max_bet"] + self.game_state["big_blind"]
        elif roll < 0.22 and "allin" in self.valid_actions:
            action = "allin"
        elif "check" in self.valid_actions:
            action = "check"
        elif "call" in self.valid_actions:
            action = "call"
        else:
            action = self.valid_actions[0]

        msg = {"type": "action", "action": action}
        if amount is not None:
            msg["amount"] = amount

        await self.send(msg)
        print(f"  {self.name}: {action.upper()}" + (f" to {amount}" if amount else ""))

        self.is_my_turn = False
        return True


async def process_messages(bot: Bot, timeout: float = 0.5):
    """Process all pending messages for a bot."""
    while True:
        msg = await bot.recv(timeout)
        if not msg:
            break
        bot.update_state(msg)

        msg_type = msg.get("type", "unknown")
        if msg_type == "error":
            print(f"  [{bot.name}] Error: {msg.get('code')}: {msg.get('message')}")
        elif msg_type == "hand_result" and bot is not None:
            for w in msg.get("winners", []):
                print(f"  🏆 {w.get('name')} wins {w.get('amount')} ({w.get('hand')})")


async def main(player_count: int, max_hands: int):
    print("=" * 50)
    print("Hold'em Auto-Play (WebSocket)")
    print("=" * 50)

    async with httpx.AsyncClient() as client:
        res = await client.get(f"{API_URL}/api/tables")
        res.raise_for_status()
        table_id = res.json()["tables"][0]["table_id"]
    print(f"\n--- Using table '{table_id}' ---")

    bots = [Bot(f"bot{i + 1}") for i in range(player_count)]

    print("\n--- WebSocket Connections ---")
    for bot in bots:
        if not await bot.connect():
            return

    print("\n--- Joining Table ---")
    for seat, bot in enumerate(bots):
        await bot.send({"type": "join_table", "table_id": table_id, "seat": seat})
        await asyncio.sleep(0.3)
        await process_messages(bot, 0.2)

    print("\n--- Starting Game ---")
    await bots[0].send({"type": "start_game"})

    print("\n--- Playing Hands ---")
    while bots[0].hands_seen < max_hands:
        for bot in bots:
            await process_messages(bot, 0.2)

        for bot in bots:
            if await bot.play_action():
                await asyncio.sleep(0.2)

        state = bots[0].game_state
        if state and state.get("state") == "waiting" and bots[0].hands_seen:
            print("  Not enough players with chips left")
            break

    print("\n" + "=" * 50)
    print(f"Completed {bots[0].hands_seen} hands!")
    print("=" * 50)

    if bots[0].game_state:
        for p in bots[0].game_state.get("players", []):
            print(f"  {p.get('name')}: {p.get('stack')}")

    for bot in bots:
        await bot.ws.close()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Run WebSocket bots against a table server")
    parser.add_argument("--players", type=int, default=3)
    parser.add_argument("--hands", type=int, default=10)
    args = parser.parse_args()
    asyncio.run(main(args.players, args.hands))
