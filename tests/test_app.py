import unittest

from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from app import create_app
from backend import InMemoryHistoryStore, InMemoryUserStore
from registry import RoomRegistry


class TestChatEndpoint(unittest.TestCase):
    """End-to-end tests through the WebSocket transport."""

    def setUp(self):
        self.registry = RoomRegistry()
        self.history_store = InMemoryHistoryStore()
        self.app = create_app(
            registry=self.registry,
            history_store=self.history_store,
            user_store=InMemoryUserStore(),
        )

    def receive_opening(self, ws):
        return [ws.receive_json() for _ in range(3)]

    def test_lobby_scenario(self):
        with TestClient(self.app) as client:
            with client.websocket_connect("/chat/A/lobby") as ws_a:
                opening = self.receive_opening(ws_a)
                self.assertEqual(opening[0], {"type": "system", "message": "Welcome A to lobby!"})
                self.assertEqual(self.registry.member_count("lobby"), 1)

                with client.websocket_connect("/chat/B/lobby") as ws_b:
                    self.receive_opening(ws_b)
                    self.assertEqual(ws_a.receive_json(), {"type": "join", "user": "B"})
                    self.assertEqual(ws_a.receive_json(), {"type": "users", "users": "A, B"})
                    self.assertEqual(self.registry.member_count("lobby"), 2)

                    ws_a.send_text("hi")
                    message_a = ws_a.receive_json()
                    message_b = ws_b.receive_json()
                    self.assertEqual((message_a["type"], message_a["user"], message_a["message"]), ("message", "A", "hi"))
                    self.assertEqual(message_a, message_b)

                    ws_b.close()
                    self.assertEqual(ws_a.receive_json(), {"type": "leave", "user": "B"})
                    self.assertEqual(ws_a.receive_json(), {"type": "users", "users": "A"})
                    self.assertEqual(self.registry.member_count("lobby"), 1)

    def test_escaped_message_on_the_wire(self):
        with TestClient(self.app) as client:
            with client.websocket_connect("/chat/A/x") as ws:
                self.receive_opening(ws)
                ws.send_text('he said "hi"')
                raw = ws.receive_text()
                self.assertIn('"message":"he said \\"hi\\""', raw)

    def test_transport_error_cleans_up_connection(self):
        with TestClient(self.app) as client:
            with client.websocket_connect("/chat/A/lobby") as ws_a:
                self.receive_opening(ws_a)
                with client.websocket_connect("/chat/B/lobby") as ws_b:
                    self.receive_opening(ws_b)
                    ws_a.receive_json()
                    ws_a.receive_json()

                    with self.assertLogs("session", level="ERROR") as logs:
                        # A binary frame makes receive_text fail on the server
                        ws_b.send_bytes(b"\x00\x01")
                        self.assertEqual(ws_a.receive_json(), {"type": "leave", "user": "B"})
                        self.assertEqual(ws_a.receive_json(), {"type": "users", "users": "A"})

                    self.assertTrue(any("Transport error" in line for line in logs.output))
                    self.assertEqual([m.username for m in self.registry.snapshot("lobby")], ["A"])

    def test_blank_username_is_rejected(self):
        with TestClient(self.app) as client:
            with client.websocket_connect("/chat/%20/lobby") as ws:
                with self.assertRaises(WebSocketDisconnect) as ctx:
                    ws.receive_text()
                self.assertEqual(ctx.exception.code, 1008)
        self.assertEqual(self.registry.rooms(), {})

    def test_room_api(self):
        with TestClient(self.app) as client:
            self.assertEqual(client.get("/health").json(), {"ok": True})
            self.assertEqual(client.get("/rooms/lobby").status_code, 404)

            with client.websocket_connect("/chat/A/lobby") as ws:
                self.receive_opening(ws)
                ws.send_text("hello")
                ws.receive_json()

                self.assertEqual(client.get("/rooms/").json(), [{"room_id": "lobby", "online_users_count": 1}])
                details = client.get("/rooms/lobby").json()
                self.assertEqual(details, {"room_id": "lobby", "online_users_count": 1, "online_users": ["A"]})

                history = client.get("/rooms/lobby/history").json()
                self.assertEqual([(h["username"], h["body"]) for h in history], [("A", "hello")])


if __name__ == "__main__":
    unittest.main()
