"""Manual smoke test against a running server.

    python chat_smoke.py <group_id> <session_token> [ws://localhost:8000]
"""
import asyncio
import json
import sys

import websockets


async def smoke(group_id, token, base="ws://localhost:8000"):
    async with websockets.connect(f"{base}/ws/groups/{group_id}?token={token}") as ws:
        await ws.send(json.dumps({
            "type": "message",
            "content": "Hello from Python!"
        }))

        # Own message comes back as a broadcast
        msg = await ws.recv()
        print(f"Received: {msg}")


if __name__ == "__main__":
    asyncio.run(smoke(*sys.argv[1:4]))
