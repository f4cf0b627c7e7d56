import hashlib
import secrets


def generate_long_lived_token() -> str:
    """
    Generate an url-safe secret carrying 256 bits of entropy (43 characters).
    """
    return secrets.token_urlsafe(32)


def hash_long_lived_token(token: str) -> str:
    return hashlib.sha256(token.encode()).hexdigest()


def build_token_preview(token: str, length: int = 6) -> str:
    return f"{token[:length]}..."
