"""トークン応答の分類のユニットテスト"""

import json
import logging
import unittest

from tokenkeeper.errors import ErrorCode, TransportException
from tokenkeeper.token_response import (
    ErrorResponse,
    SuccessResponse,
    is_error,
    parse,
    to_integer,
)

from tests.fakes import NOW, make_id_token, success_body


class TestToInteger(unittest.TestCase):
    """整数変換のテスト"""

    def test_values(self):
        """数値・数字文字列・不正値の変換"""
        self.assertEqual(to_integer(3600), 3600)
        self.assertEqual(to_integer("3600"), 3600)
        self.assertEqual(to_integer(" 42abc"), 42)
        self.assertEqual(to_integer(59.9), 59)
        self.assertEqual(to_integer("abc"), 0)
        self.assertEqual(to_integer(None), 0)
        self.assertEqual(to_integer([1]), 0)


class TestParse(unittest.TestCase):
    """parse のテスト"""

    def test_none_body_is_empty_error(self):
        """ボディが無ければフィールドの無い ErrorResponse"""
        response = parse(None)
        self.assertIsInstance(response, ErrorResponse)
        self.assertIsNone(response.error)
        self.assertTrue(is_error(response))

    def test_null_or_blank_body_is_empty_error(self):
        """JSON の null や空白だけのボディもフィールドの無い ErrorResponse"""
        for raw in ("null", "", b"  \n"):
            with self.subTest(raw=raw):
                response = parse(raw)
                self.assertIsInstance(response, ErrorResponse)
                self.assertIsNone(response.error)

    def test_error_body(self):
        """error を含むボディは ErrorResponse"""
        body = {
            "error": "invalid_grant",
            "error_description": "AADSTS70002: refresh token expired",
            "error_codes": [70002, 50089],
            "timestamp": "2024-01-01 00:00:00Z",
            "trace_id": "trace",
            "correlation_id": "corr",
        }
        response = parse(json.dumps(body))
        self.assertIsInstance(response, ErrorResponse)
        self.assertEqual(response.error, "invalid_grant")
        self.assertEqual(response.error_codes, (70002, 50089))
        self.assertEqual(response.to_dict()["error_codes"], [70002, 50089])
        self.assertEqual(response.trace_id, "trace")

    def test_blank_error_is_success(self):
        """error が空文字列なら成功として扱うこと"""
        response = parse({"error": "", "access_token": "at"}, now=NOW)
        self.assertIsInstance(response, SuccessResponse)
        self.assertFalse(is_error(response))

    def test_success_body(self):
        """access_token を含むボディは SuccessResponse"""
        id_token = make_id_token(oid="oid-1", upn="alice@contoso.com")
        body = success_body(resource="https://graph.windows.net", id_token=id_token, scope="user_impersonation")
        response = parse(json.dumps(body).encode("utf-8"), now=NOW)

        self.assertIsInstance(response, SuccessResponse)
        self.assertEqual(response.access_token, "at-1")
        self.assertEqual(response.refresh_token, "rt-1")
        self.assertEqual(response.token_type, "Bearer")
        self.assertEqual(response.resource, "https://graph.windows.net")
        self.assertEqual(response.scope, "user_impersonation")
        self.assertEqual(response.user_id.unique_id, "oid-1")
        self.assertEqual(response.user_id.displayable_id, "alice@contoso.com")

    def test_expires_on_is_recomputed(self):
        """expires_on はサーバー値を無視して now + expires_in になること"""
        response = parse(success_body(expires_in="3599", expires_on="1"), now=NOW)
        self.assertEqual(response.expires_in, 3599)
        self.assertEqual(response.expires_on, int(NOW) + 3599)

    def test_non_numeric_expires_in(self):
        """expires_in が数値でなければ 0 として扱うこと"""
        response = parse(success_body(expires_in="soon"), now=NOW)
        self.assertEqual(response.expires_in, 0)
        self.assertEqual(response.expires_on, int(NOW))
        self.assertTrue(response.is_expired(now=NOW))

    def test_missing_id_token_logs_warning(self):
        """IDトークンが無ければ空の user_id と WARNING ログ"""
        with self.assertLogs("tokenkeeper.token_response", level=logging.WARNING) as logs:
            response = parse(success_body(), now=NOW)
        self.assertFalse(response.user_id)
        self.assertTrue(any("id_token_missing" in line for line in logs.output))

    def test_undecodable_id_token(self):
        """デコードできないIDトークンは空の user_id になること"""
        response = parse(success_body(id_token="garbage"), now=NOW)
        self.assertIsInstance(response, SuccessResponse)
        self.assertFalse(response.user_id)

    def test_tokens_are_not_logged(self):
        """トークンの平文がログに出ないこと"""
        with self.assertLogs("tokenkeeper.token_response", level=logging.DEBUG) as logs:
            parse(success_body(access_token="very-secret-access", refresh_token="very-secret-refresh"), now=NOW)
        joined = "\n".join(logs.output)
        self.assertNotIn("very-secret-access", joined)
        self.assertNotIn("very-secret-refresh", joined)

    def test_unrecognized_fields_are_ignored(self):
        """未知のフィールドは無視されること"""
        response = parse(success_body(ext_expires_in=7200, foci="1"), now=NOW)
        self.assertNotIn("foci", response.to_dict())

    def test_invalid_json_raises_transport_exception(self):
        """JSON として解釈できなければ TransportException"""
        with self.assertRaises(TransportException) as ctx:
            parse("<html>gateway error</html>")
        self.assertEqual(ctx.exception.error.code, ErrorCode.TRANSPORT_UNPARSEABLE_RESPONSE.value)

    def test_non_object_json_raises(self):
        """JSON オブジェクトでなければ TransportException"""
        with self.assertRaises(TransportException):
            parse("[1, 2, 3]")


class TestSuccessResponse(unittest.TestCase):
    """SuccessResponse のテスト"""

    def test_dict_round_trip_keeps_expires_on(self):
        """to_dict/from_dict で expires_on と user_id が保持されること"""
        original = parse(success_body(id_token=make_id_token(oid="o")), now=NOW)
        restored = SuccessResponse.from_dict(original.to_dict())
        self.assertEqual(restored, original)
        self.assertEqual(restored.expires_on, original.expires_on)

    def test_is_expired_with_buffer(self):
        """余裕秒数を含めて期限切れを判定すること"""
        response = parse(success_body(expires_in=600), now=NOW)
        self.assertFalse(response.is_expired(now=NOW))
        self.assertFalse(response.is_expired(now=NOW, buffer_seconds=300))
        self.assertTrue(response.is_expired(now=NOW, buffer_seconds=600))
        self.assertTrue(response.is_expired(now=NOW + 600))

    def test_repr_hides_tokens(self):
        """repr にトークンが含まれないこと"""
        response = parse(success_body(access_token="secret-at"), now=NOW)
        self.assertNotIn("secret-at", repr(response))


if __name__ == "__main__":
    unittest.main()
