"""
BankDash - Password Hashing Utilities

Password hashing using bcrypt.
Work factor is configurable but defaults to 12 (industry standard).

Security:
- Never log or expose plaintext passwords
- bcrypt includes salt automatically
- Supports hash upgrades on login
"""

import bcrypt


# Work factor for bcrypt (2^12 = 4096 iterations)
# Increase for higher security, decrease for faster tests
BCRYPT_WORK_FACTOR = 12


def hash_password(password: str, work_factor: int = BCRYPT_WORK_FACTOR) -> str:
    """
    Hash a password using bcrypt.

    Args:
        password: Plaintext password
        work_factor: bcrypt cost (log2 rounds)

    Returns:
        bcrypt hash string (includes salt and cost)

    Example:
        >>> hashed = hash_password("SecureP@ss123")
        >>> hashed.startswith("$2b$")
        True
    """
    password_bytes = password.encode("utf-8")
    salt = bcrypt.gensalt(rounds=work_factor)
    hashed = bcrypt.hashpw(password_bytes, salt)
    return hashed.decode("utf-8")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """
    Verify a password against a bcrypt hash.

    Uses constant-time comparison to prevent timing attacks.
    Never raises: a mismatch or an unreadable hash both return False.
    """
    try:
        password_bytes = plain_password.encode("utf-8")
        hashed_bytes = hashed_password.encode("utf-8")
        return bcrypt.checkpw(password_bytes, hashed_bytes)
    except (ValueError, TypeError, AttributeError):
        # Invalid hash format
        return False


def get_work_factor(hashed_password: str) -> int:
    """
    Read the cost out of a bcrypt hash ($2b$XX$...).

    Returns 0 when the string is not a bcrypt hash.
    """
    try:
        _, work_factor_str, _ = hashed_password.split("$")[1:4]
        return int(work_factor_str)
    except (ValueError, IndexError, AttributeError):
        return 0


def needs_rehash(hashed_password: str, target_work_factor: int = BCRYPT_WORK_FACTOR) -> bool:
    """
    Check if a password hash needs to be upgraded.

    Example:
        # After increasing BCRYPT_WORK_FACTOR from 10 to 12:
        >>> needs_rehash(old_hash)  # Generated with factor 10
        True
    """
    return get_work_factor(hashed_password) < target_work_factor
