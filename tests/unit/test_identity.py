"""UserIdentifier と IDトークンのデコードのユニットテスト"""

import unittest

from tokenkeeper.credentials.identity import (
    IdTokenDecodeError,
    UserIdentifier,
    decode_claims_unverified,
)

from tests.fakes import make_id_token


class TestDecodeClaimsUnverified(unittest.TestCase):
    """署名検証を行わないデコードのテスト"""

    def test_decodes_payload(self):
        """ペイロードのクレームが得られること"""
        token = make_id_token(oid="oid-1", upn="alice@contoso.com", exp=1)
        claims = decode_claims_unverified(token)
        self.assertEqual(claims["oid"], "oid-1")
        self.assertEqual(claims["upn"], "alice@contoso.com")

    def test_malformed_token_raises(self):
        """形式が不正ならデコードエラー"""
        with self.assertRaises(IdTokenDecodeError):
            decode_claims_unverified("not-a-jwt")

    def test_decode_error_is_value_error(self):
        """デコードエラーは ValueError として捕捉できること"""
        with self.assertRaises(ValueError):
            decode_claims_unverified("a.b.c")


class TestUserIdentifier(unittest.TestCase):
    """UserIdentifier のテスト"""

    def test_reexported_from_credentials_package(self):
        """credentials パッケージから同じクラスとして取り込めること"""
        from tokenkeeper import credentials

        self.assertIs(credentials.UserIdentifier, UserIdentifier)
        self.assertIn("UserIdentifier", credentials.__all__)

    def test_empty_identifier_is_falsy(self):
        """クレームを持たない識別子は偽であること"""
        self.assertFalse(UserIdentifier.empty())
        self.assertIsNone(UserIdentifier.empty().key)

    def test_none_values_are_dropped(self):
        """None のクレームは保持しないこと"""
        identifier = UserIdentifier({"oid": None, "upn": "alice@contoso.com"})
        self.assertEqual(dict(identifier), {"upn": "alice@contoso.com"})

    def test_unique_id_prefers_oid(self):
        """unique_id は oid を優先し、無ければ sub を使うこと"""
        self.assertEqual(UserIdentifier(oid="o", sub="s").unique_id, "o")
        self.assertEqual(UserIdentifier(sub="s").unique_id, "s")

    def test_displayable_id_order(self):
        """displayable_id は upn, email, unique_name の順で選ばれること"""
        self.assertEqual(UserIdentifier(email="e", upn="u").displayable_id, "u")
        self.assertEqual(UserIdentifier(unique_name="n", email="e").displayable_id, "e")
        self.assertEqual(UserIdentifier(unique_name="n").displayable_id, "n")

    def test_key_falls_back_to_displayable_id(self):
        """一意IDが無ければ表示用IDがキーになること"""
        self.assertEqual(UserIdentifier(oid="o", upn="u").key, "o")
        self.assertEqual(UserIdentifier(upn="u").key, "u")

    def test_equality_uses_key(self):
        """等価性と hash はキーで決まること"""
        first = UserIdentifier(oid="o", upn="u", name="Alice")
        second = UserIdentifier(oid="o")
        self.assertEqual(first, second)
        self.assertEqual(hash(first), hash(second))
        self.assertNotEqual(first, UserIdentifier(oid="other"))

    def test_matches_requires_all_queried_claims(self):
        """問い合わせの識別クレームがすべて一致した場合のみ一致すること"""
        cached = UserIdentifier(oid="o", upn="alice@contoso.com", name="Alice")
        self.assertTrue(cached.matches(UserIdentifier(upn="alice@contoso.com")))
        self.assertTrue(cached.matches(UserIdentifier(oid="o", upn="alice@contoso.com")))
        self.assertFalse(cached.matches(UserIdentifier(oid="o", upn="bob@contoso.com")))
        self.assertFalse(cached.matches(UserIdentifier(email="alice@contoso.com")))

    def test_matches_ignores_non_identity_claims(self):
        """識別クレームを持たない問い合わせは一致しないこと"""
        cached = UserIdentifier(oid="o", name="Alice")
        self.assertFalse(cached.matches(UserIdentifier(name="Alice")))
        self.assertFalse(cached.matches(UserIdentifier.empty()))
        self.assertFalse(cached.matches(None))

    def test_from_id_token(self):
        """IDトークンのクレームから生成されること"""
        identifier = UserIdentifier.from_id_token(make_id_token(oid="o", upn="u", tid="t"))
        self.assertEqual(identifier["tid"], "t")
        self.assertEqual(identifier.key, "o")

    def test_repr_shows_identity_claims_only(self):
        """repr には識別クレームのみを表示すること"""
        text = repr(UserIdentifier(oid="o", given_name="Alice"))
        self.assertIn("oid", text)
        self.assertNotIn("Alice", text)

    def test_has_no_network_grant(self):
        """ネットワークグラントを持たないこと"""
        grant = UserIdentifier(oid="o").serialize_for_grant()
        self.assertIsNone(grant.grant_type)
        self.assertEqual(grant.to_form(), {})


if __name__ == "__main__":
    unittest.main()
