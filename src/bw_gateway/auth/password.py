"""Password hashing with the ``bcrypt`` library directly (>=4.0).

bcrypt only looks at the first 72 bytes of input; longer passwords are
rejected at the schema layer (max_length=72) rather than silently truncated.
"""

import bcrypt

_ENCODING = "utf-8"


def hash_password(plain: str) -> str:
    """Hash a plain-text password with bcrypt. Returns a utf-8 hash string."""
    return bcrypt.hashpw(plain.encode(_ENCODING), bcrypt.gensalt()).decode(_ENCODING)


def verify_password(plain: str, hashed: str) -> bool:
    """Verify a plain-text password against a bcrypt hash; malformed hashes never match."""
    try:
        return bcrypt.checkpw(plain.encode(_ENCODING), hashed.encode(_ENCODING))
    except ValueError:
        return False
