import os
import unittest
from unittest.mock import patch

import requests

from surveydraw.notifications.client import NotificationClient


class DummyResponse:
    def __init__(self, json_data=None, content: bytes = b"", status_error=None):
        self._json = json_data
        if json_data is not None and not content:
            import json as _json

            content = _json.dumps(json_data).encode()
        self.content = content
        self._status_error = status_error

    def json(self):
        return self._json

    def raise_for_status(self):
        if self._status_error is not None:
            raise self._status_error


class DummySession:
    def __init__(self, response: DummyResponse):
        self.response = response
        self.calls = []

    def request(self, method, url, headers=None, json=None, timeout=None):
        self.calls.append(
            {
                "method": method,
                "url": url,
                "headers": headers,
                "json": json,
                "timeout": timeout,
            }
        )
        return self.response


class TestNotificationClient(unittest.TestCase):
    @patch("surveydraw.notifications.client.load_dotenv")
    def test_requires_fqdn(self, _mock_load_dotenv):
        with patch.dict(os.environ, {}, clear=True):
            with self.assertRaises(ValueError):
                NotificationClient()

    @patch("surveydraw.notifications.client.load_dotenv")
    def test_reads_environment(self, _mock_load_dotenv):
        env = {"NOTIFY_BASE_FQDN": "notify.example.com", "NOTIFY_API_TOKEN": "tok"}
        with patch.dict(os.environ, env, clear=True):
            client = NotificationClient(session=DummySession(DummyResponse()))
        self.assertEqual(client.base_url, "https://notify.example.com")
        self.assertEqual(client.auth_headers["Authorization"], "Bearer tok")

    def test_send_win_notification_posts_payload(self):
        session = DummySession(DummyResponse(json_data={"queued": True}))
        client = NotificationClient(
            base_fqdn="notify.example.com", api_token="tok", session=session
        )

        result = client.send_win_notification(
            "winner@example.com", "EAP-AAAA-BBBB-CCCC", "Wellbeing Pulse"
        )

        self.assertEqual(result, {"queued": True})
        call = session.calls[0]
        self.assertEqual(call["method"], "POST")
        self.assertEqual(
            call["url"], "https://notify.example.com/api/v1/notifications/draw-winner"
        )
        self.assertEqual(call["headers"]["Authorization"], "Bearer tok")
        self.assertEqual(
            call["json"],
            {
                "email": "winner@example.com",
                "winner_token": "EAP-AAAA-BBBB-CCCC",
                "program_name": "Wellbeing Pulse",
            },
        )
        self.assertEqual(call["timeout"], 30)

    def test_empty_body_returns_none(self):
        session = DummySession(DummyResponse())
        client = NotificationClient(base_fqdn="notify.example.com", session=session)
        self.assertIsNone(client.send_win_notification("a@example.com", "EAP-1"))
        self.assertNotIn("Authorization", session.calls[0]["headers"])

    def test_http_error_propagates(self):
        error = requests.HTTPError("503 Service Unavailable")
        session = DummySession(DummyResponse(status_error=error))
        client = NotificationClient(base_fqdn="notify.example.com", session=session)
        with self.assertRaises(requests.HTTPError):
            client.send_win_notification("a@example.com", "EAP-1")


if __name__ == "__main__":
    unittest.main()
