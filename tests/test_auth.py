import os
import sys
import time
import unittest

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC = os.path.join(ROOT, "src")
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
if SRC not in sys.path:
    sys.path.insert(0, SRC)

from app.auth import AuthError, decode_token, hash_password, issue_token, verify_password


class TestPasswords(unittest.TestCase):
    def test_hash_and_verify(self) -> None:
        stored = hash_password("s3cret")
        self.assertTrue(stored.startswith("scrypt$"))
        self.assertTrue(verify_password("s3cret", stored))
        self.assertFalse(verify_password("wrong", stored))

    def test_hash_is_salted(self) -> None:
        self.assertNotEqual(hash_password("same"), hash_password("same"))

    def test_malformed_hash_never_verifies(self) -> None:
        self.assertFalse(verify_password("x", ""))
        self.assertFalse(verify_password("x", "bcrypt$abc$def"))
        self.assertFalse(verify_password("x", "scrypt$!!$!!"))


class TestTokens(unittest.TestCase):
    def test_round_trip(self) -> None:
        token = issue_token({"id": "u1", "email": "ada@example.com", "role": "admin"}, "secret", 60)
        claims = decode_token(token, "secret")
        self.assertEqual(claims["sub"], "u1")
        self.assertEqual(claims["role"], "admin")

    def test_expired_token(self) -> None:
        token = issue_token({"id": "u1"}, "secret", 60, now=time.time() - 3600)
        with self.assertRaises(AuthError) as ctx:
            decode_token(token, "secret")
        self.assertEqual(ctx.exception.code, "AUTH_INVALID_TOKEN")

    def test_wrong_secret(self) -> None:
        token = issue_token({"id": "u1"}, "secret", 60)
        with self.assertRaises(AuthError):
            decode_token(token, "other")

    def test_missing_secret(self) -> None:
        with self.assertRaises(AuthError) as ctx:
            issue_token({"id": "u1"}, "", 60)
        self.assertEqual(ctx.exception.status, 503)


if __name__ == "__main__":
    unittest.main()
