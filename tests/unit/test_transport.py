"""HttpxTransport のユニットテスト"""

import unittest
from unittest.mock import MagicMock
from urllib.parse import parse_qs

import httpx

from tokenkeeper.errors import ErrorCode, TransportException
from tokenkeeper.transport import HttpxTransport, TransportResponse


class TestHttpxTransport(unittest.TestCase):
    """httpx.MockTransport を用いた送受信のテスト"""

    def _transport(self, handler):
        client = httpx.Client(transport=httpx.MockTransport(handler))
        return HttpxTransport(http_client=client), client

    def test_posts_form_body(self):
        """フォームボディとヘッダーが送信されること"""
        seen = {}

        def handler(request):
            seen["method"] = request.method
            seen["content_type"] = request.headers["content-type"]
            seen["request_id"] = request.headers["client-request-id"]
            seen["form"] = parse_qs(request.content.decode("utf-8"))
            return httpx.Response(200, json={"access_token": "at"})

        transport, _ = self._transport(handler)
        response = transport.issue(
            "POST",
            "https://login.windows.net/common/oauth2/token",
            {"client-request-id": "corr-1"},
            {"grant_type": "client_credentials", "resource": "https://graph.windows.net"},
        )

        self.assertEqual(seen["method"], "POST")
        self.assertEqual(seen["content_type"], "application/x-www-form-urlencoded")
        self.assertEqual(seen["request_id"], "corr-1")
        self.assertEqual(seen["form"]["grant_type"], ["client_credentials"])
        self.assertIsInstance(response, TransportResponse)
        self.assertTrue(response.ok)
        self.assertIn("access_token", response.body)

    def test_non_2xx_is_returned(self):
        """2xx 以外の応答も例外にせず返すこと"""
        transport, _ = self._transport(lambda request: httpx.Response(400, text='{"error": "invalid_grant"}'))
        response = transport.issue("POST", "https://login.windows.net/common/oauth2/token", {})
        self.assertEqual(response.status_code, 400)
        self.assertFalse(response.ok)

    def test_network_failure_raises_transport_exception(self):
        """通信障害は TransportException に変換されること"""

        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        transport, _ = self._transport(handler)
        with self.assertRaises(TransportException) as ctx:
            transport.issue("GET", "https://login.windows.net/common/discovery/instance", {})
        self.assertEqual(ctx.exception.error.code, ErrorCode.TRANSPORT_FAILED.value)
        self.assertTrue(ctx.exception.error.recoverable)
        self.assertIsInstance(ctx.exception.__cause__, httpx.ConnectError)

    def test_provided_client_is_not_closed(self):
        """外部から渡したクライアントは close しないこと"""
        client = MagicMock(spec=httpx.Client)
        with HttpxTransport(http_client=client):
            pass
        client.close.assert_not_called()

    def test_owned_client_is_closed(self):
        """内部で生成したクライアントは close すること"""
        transport = HttpxTransport(timeout=5.0)
        transport.close()
        self.assertTrue(transport._client.is_closed)


if __name__ == "__main__":
    unittest.main()
