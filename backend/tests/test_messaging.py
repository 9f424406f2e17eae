import unittest
from unittest.mock import MagicMock, patch

import requests

from subscription_engine.services.errors import TransportError
from subscription_engine.services.messaging import LoggingTransport, TwilioWhatsAppTransport


def _response(status_code, payload):
    resp = MagicMock()
    resp.status_code = status_code
    resp.json.return_value = payload
    return resp


class TestTwilioTransport(unittest.TestCase):
    def setUp(self):
        self.transport = TwilioWhatsAppTransport(account_sid="AC123", auth_token="secret", from_number="14155238886")

    @patch("requests.post")
    def test_send_returns_sid(self, post):
        post.return_value = _response(201, {"sid": "SM42", "status": "queued"})
        self.assertEqual(self.transport.send("+254712345678", "hello"), "SM42")
        _args, kwargs = post.call_args
        self.assertEqual(kwargs["data"]["From"], "whatsapp:+14155238886")
        self.assertEqual(kwargs["data"]["To"], "whatsapp:+254712345678")
        self.assertEqual(kwargs["auth"], ("AC123", "secret"))

    @patch("requests.post")
    def test_provider_error(self, post):
        post.return_value = _response(400, {"message": "not a valid WhatsApp number"})
        with self.assertRaises(TransportError) as ctx:
            self.transport.send("+254712345678", "hello")
        self.assertEqual(ctx.exception.code, "transport_rejected")
        self.assertIn("not a valid WhatsApp number", ctx.exception.message)

    @patch("requests.post", side_effect=requests.ConnectionError("dns failure"))
    def test_unreachable(self, _post):
        with self.assertRaises(TransportError) as ctx:
            self.transport.send("+254712345678", "hello")
        self.assertEqual(ctx.exception.code, "transport_unreachable")


class TestLoggingTransport(unittest.TestCase):
    def test_records_messages(self):
        transport = LoggingTransport()
        message_id = transport.send("+254712345678", "hi")
        self.assertTrue(message_id.startswith("log-"))
        self.assertEqual(transport.sent, [("+254712345678", "hi")])


if __name__ == "__main__":
    unittest.main()
