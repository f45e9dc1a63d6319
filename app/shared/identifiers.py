"""Short random identifiers for chats created without a caller-supplied id."""

import secrets
import string

ID_ALPHABET = string.digits + string.ascii_letters
ID_LENGTH = 7


def generate_id(length: int = ID_LENGTH) -> str:
    """Return a random alphanumeric id drawn from a CSPRNG."""
    return "".join(secrets.choice(ID_ALPHABET) for _ in range(length))
