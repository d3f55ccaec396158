"""End-to-end tests for the relay's WebSocket and HTTP endpoints."""


def join(ws, room_id, user_id, name=None):
    data = {"roomId": room_id, "userId": user_id}
    if name:
        data["userName"] = name
    ws.send_json({"event": "join_room", "data": data})
    return ws.receive_json()


class TestHealthAndStatus:
    def test_health(self, api_client):
        response = api_client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    def test_status_empty(self, api_client):
        response = api_client.get("/status")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "running"
        assert body["rooms"] == 0
        assert body["totalUsers"] == 0
        assert "timestamp" in body

    def test_status_counts_connected_users(self, api_client):
        with api_client.websocket_connect("/ws") as ws:
            join(ws, "R1", "alice")
            body = api_client.get("/status").json()
            assert body["rooms"] == 1
            assert body["totalUsers"] == 1


class TestWebSocketRelay:
    def test_join_on_root_path(self, api_client):
        with api_client.websocket_connect("/") as ws:
            message = join(ws, "ROOM1", "alice", "Alice")
            assert message["event"] == "room_joined"
            assert message["data"]["roomId"] == "ROOM1"
            assert message["data"]["participants"][0]["displayName"] == "Alice"

    def test_two_viewers_sync(self, api_client):
        with api_client.websocket_connect("/ws") as ws_a, api_client.websocket_connect("/ws") as ws_b:
            join(ws_a, "ROOM1", "alice")
            joined_b = join(ws_b, "ROOM1", "bob")
            assert len(joined_b["data"]["participants"]) == 2

            user_joined = ws_a.receive_json()
            assert user_joined["event"] == "user_joined"
            assert user_joined["data"]["participant"]["userId"] == "bob"
            assert user_joined["data"]["participantCount"] == 2

            ws_a.send_json({"event": "video_event", "data": {"type": "play", "currentTime": 42.0}})
            sync = ws_b.receive_json()
            assert sync["event"] == "sync_video"
            assert sync["data"]["type"] == "play"
            assert sync["data"]["currentTime"] == 42.0
            assert sync["data"]["userId"] == "alice"

            # Per-connection FIFO: had A been echoed its own event, it would
            # arrive before this reply.
            ws_a.send_json({"event": "get_room_info", "data": {"roomId": "ROOM1"}})
            info = ws_a.receive_json()
            assert info["event"] == "room_info"
            assert info["data"]["videoState"]["isPlaying"] is True
            assert info["data"]["videoState"]["currentTime"] == 42.0

    def test_disconnect_notifies_remaining_viewer(self, api_client):
        with api_client.websocket_connect("/ws") as ws_b:
            join(ws_b, "ROOM1", "bob")
            with api_client.websocket_connect("/ws") as ws_a:
                join(ws_a, "ROOM1", "alice")
                assert ws_b.receive_json()["event"] == "user_joined"

            left = ws_b.receive_json()
            assert left["event"] == "user_left"
            assert left["data"] == {"userId": "alice", "participantCount": 1}

        body = api_client.get("/status").json()
        assert body["rooms"] == 0
        assert body["totalUsers"] == 0

    def test_malformed_frame_gets_error(self, api_client):
        with api_client.websocket_connect("/ws") as ws:
            ws.send_text("this is not json")
            message = ws.receive_json()
            assert message["event"] == "error"
            assert message["data"]["message"] == "Invalid message format"

            # Socket stays open after an error.
            assert join(ws, "R1", "alice")["event"] == "room_joined"

    def test_unknown_event_gets_error(self, api_client):
        with api_client.websocket_connect("/ws") as ws:
            ws.send_json({"event": "teleport", "data": {}})
            assert ws.receive_json()["data"]["message"] == "Unknown event type"

    def test_video_event_before_join(self, api_client):
        with api_client.websocket_connect("/ws") as ws:
            ws.send_json({"event": "video_event", "data": {"type": "pause", "currentTime": 1}})
            assert ws.receive_json()["data"]["message"] == "Not in a room"


class TestRoomEndpoints:
    def test_list_rooms(self, api_client):
        assert api_client.get("/rooms").json() == {"rooms": []}
        with api_client.websocket_connect("/ws") as ws:
            join(ws, "R1", "alice")
            rooms = api_client.get("/rooms").json()["rooms"]
            assert len(rooms) == 1
            assert rooms[0]["id"] == "R1"
            assert rooms[0]["participantCount"] == 1
            assert rooms[0]["videoState"]["isPlaying"] is False

    def test_get_room(self, api_client):
        with api_client.websocket_connect("/ws") as ws:
            join(ws, "R1", "alice")
            body = api_client.get("/rooms/R1").json()
            assert body["roomId"] == "R1"
            assert body["participants"][0]["userId"] == "alice"

    def test_get_unknown_room(self, api_client):
        response = api_client.get("/rooms/nope")
        assert response.status_code == 404
        assert response.json()["detail"] == "Room not found"


class TestHttpVideoEvent:
    def test_video_event_is_broadcast(self, api_client):
        with api_client.websocket_connect("/ws") as ws:
            join(ws, "R1", "alice")
            response = api_client.post("/rooms/R1/video-event", json={
                "userId": "remote-user",
                "eventType": "seek",
                "eventData": {"currentTime": 300},
            })
            assert response.status_code == 200
            assert response.json() == {"success": True, "delivered": 1}

            sync = ws.receive_json()
            assert sync["event"] == "sync_video"
            assert sync["data"]["type"] == "seek"
            assert sync["data"]["currentTime"] == 300
            assert sync["data"]["userId"] == "remote-user"

        # Room is gone once its only socket left.
        assert api_client.get("/rooms/R1").status_code == 404

    def test_unknown_room(self, api_client):
        response = api_client.post("/rooms/nope/video-event", json={
            "userId": "u",
            "eventType": "play",
            "eventData": {"currentTime": 1},
        })
        assert response.status_code == 404

    def test_missing_current_time(self, api_client):
        with api_client.websocket_connect("/ws") as ws:
            join(ws, "R1", "alice")
            response = api_client.post("/rooms/R1/video-event", json={
                "userId": "u",
                "eventType": "play",
                "eventData": {},
            })
            assert response.status_code == 400

    def test_negative_current_time(self, api_client):
        with api_client.websocket_connect("/ws") as ws:
            join(ws, "R1", "alice")
            response = api_client.post("/rooms/R1/video-event", json={
                "userId": "u",
                "eventType": "play",
                "eventData": {"currentTime": -1},
            })
            assert response.status_code == 400

    def test_unknown_event_type(self, api_client):
        response = api_client.post("/rooms/R1/video-event", json={
            "userId": "u",
            "eventType": "rewind",
            "eventData": {"currentTime": 1},
        })
        assert response.status_code == 422
