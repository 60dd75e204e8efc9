"""Bearer token handling for inbound requests."""

from collections.abc import Mapping


def extract_token(headers: Mapping[str, str]) -> str | None:
    """Return the raw Authorization header value, whatever its casing."""
    value = headers.get("Authorization")
    if value is not None:
        return value
    for name, value in headers.items():
        if name.lower() == "authorization":
            return value
    return None


def parse_bearer(value: str | None) -> str | None:
    """Return the token from a ``Bearer <token>`` header, or None if malformed."""
    if not value:
        return None
    scheme, _, token = value.strip().partition(" ")
    token = token.strip()
    if scheme.lower() != "bearer" or not token or " " in token:
        return None
    return token


def bearer_token(headers: Mapping[str, str]) -> str | None:
    return parse_bearer(extract_token(headers))
