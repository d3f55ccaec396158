import asyncio
import json
import sys

import websockets


async def test():
    # Relay started with `watchsync-server` (default port 3001)
    url = sys.argv[1] if len(sys.argv) > 1 else "ws://localhost:3001/"
    async with websockets.connect(url) as ws:
        # Join a test room
        await ws.send(json.dumps({
            "event": "join_room",
            "data": {
                "roomId": "TEST123",
                "userId": "test-user-1",
                "userName": "Test User"
            }
        }))

        joined = await ws.recv()
        print(f"Joined: {joined}")

        # Ask for the room state
        await ws.send(json.dumps({"event": "get_room_info", "data": "TEST123"}))
        info = await ws.recv()
        print(f"Room info: {info}")


asyncio.run(test())
