"""
Identifier generation helpers for the application.

Provides consistent identifier generation across services.
"""
import time
import uuid


def generate_uuid() -> str:
    """
    Generate a new UUID string.

    Returns:
        str: A new UUID4 string
    """
    return str(uuid.uuid4())


def generate_timestamped_id(prefix: str) -> str:
    """
    Generate an identifier from the current time plus a random suffix.

    Returns:
        str: e.g. 'dl-1718031234567-3f9a1c2b7d4e'
    """
    return f"{prefix}-{int(time.time() * 1000)}-{uuid.uuid4().hex[:12]}"
