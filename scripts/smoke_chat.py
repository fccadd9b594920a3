"""Manual smoke test against a running server.

Usage:
    python scripts/smoke_chat.py <token> <group_id>

The token must belong to a member of the group.
"""
import asyncio
import json
import sys

import websockets


async def smoke(token: str, group_id: int) -> None:
    async with websockets.connect(f"ws://localhost:3000/ws?token={token}") as ws:
        connected = await ws.recv()
        print(f"Connected: {connected}")

        await ws.send(json.dumps({"type": "join_group", "groupId": group_id}))
        print(f"Join: {await ws.recv()}")

        await ws.send(json.dumps({
            "type": "message",
            "groupId": group_id,
            "content": "Hello from Python!"
        }))

        # The sender receives its own message back through the broadcast
        msg = await ws.recv()
        print(f"Received: {msg}")


if __name__ == "__main__":
    asyncio.run(smoke(sys.argv[1], int(sys.argv[2])))
