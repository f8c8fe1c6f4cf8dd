"""Password hashing and access token helpers."""
import secrets

import bcrypt

from config import BCRYPT_ROUNDS


def hash_password(password: str) -> str:
    """Hash a plain-text password with bcrypt."""
    hashed = bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=BCRYPT_ROUNDS))
    return hashed.decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Check a plain-text password against a stored bcrypt hash."""
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Stored value is not a bcrypt hash
        return False


def generate_access_token() -> str:
    """Opaque bearer token, stored on the user and revoked on logout."""
    return secrets.token_urlsafe(32)
