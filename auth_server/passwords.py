"""
bcrypt hashing for user passwords and client secrets. Plaintext is never stored.
"""
import bcrypt


def hash_password(password: str) -> str:
    # Bcrypt has a 72-byte limit
    raw = password.encode("utf-8")
    if len(raw) > 72:
        raw = raw[:72]
    return bcrypt.hashpw(raw, bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    raw = plain.encode("utf-8")
    if len(raw) > 72:
        raw = raw[:72]
    try:
        return bcrypt.checkpw(raw, hashed.encode("utf-8"))
    except ValueError:
        # Malformed stored hash
        return False
