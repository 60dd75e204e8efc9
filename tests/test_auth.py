"""Bearer token parsing tests."""

import unittest

from fastapi.datastructures import Headers

from a2a_delegate.auth import bearer_token, extract_token, parse_bearer


class TestExtractToken(unittest.TestCase):
    """Tests for finding the Authorization header."""

    def test_any_casing(self):
        """Should find the header however its name is cased."""
        for name in ("Authorization", "authorization", "AUTHORIZATION", "AuThOrIzAtIoN"):
            with self.subTest(name=name):
                self.assertEqual(extract_token({name: "Bearer abc"}), "Bearer abc")

    def test_starlette_headers(self):
        headers = Headers(raw=[(b"authorization", b"Bearer abc")])
        self.assertEqual(extract_token(headers), "Bearer abc")

    def test_missing(self):
        self.assertIsNone(extract_token({"Content-Type": "application/json"}))


class TestParseBearer(unittest.TestCase):
    """Tests for reading the token out of the header value."""

    def test_valid(self):
        self.assertEqual(parse_bearer("Bearer abc"), "abc")
        self.assertEqual(parse_bearer("bearer abc"), "abc")

    def test_malformed(self):
        """Should reject anything but a single bearer token."""
        for value in (None, "", "Bearer", "Bearer ", "Token abc", "Bearer a b"):
            with self.subTest(value=value):
                self.assertIsNone(parse_bearer(value))

    def test_bearer_token(self):
        self.assertEqual(bearer_token({"AUTHORIZATION": "Bearer abc"}), "abc")


if __name__ == "__main__":
    unittest.main()
