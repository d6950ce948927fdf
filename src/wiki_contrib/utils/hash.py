"""Hashing helpers for anonymous identities.

Emails and client addresses are only ever stored or logged as one-way
digests. The digest of an email is stable across deployments so that
pull request labels can be linked back to the same address later.
"""

from __future__ import annotations

import hashlib
import secrets


def normalize_email(email: str) -> str:
    """Return the canonical form of an email address used for hashing."""
    return email.strip().lower()


def sha256_hexdigest(value: str) -> str:
    """Return the hexadecimal SHA-256 digest of a UTF-8 string."""
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def hash_email(email: str) -> str:
    """Return the identity hash of an email address."""
    return sha256_hexdigest(normalize_email(email))


def hash_client_address(address: str) -> str:
    """Return the identity hash of a client network address."""
    return sha256_hexdigest(address.strip())


def short_hash(digest: str, length: int = 8) -> str:
    """Return a truncated digest suitable for log lines."""
    return digest[:length]


def mask_email(email: str) -> str:
    """Return ``email`` with most of its local part replaced by asterisks.

    The first and last character of the local part stay visible and the
    number of asterisks is padded by a random one or two so the original
    length cannot be read off. Local parts of two characters or fewer keep
    only their first character.
    """
    local, sep, domain = email.strip().partition("@")
    if not sep or not local:
        return "***"
    padding = 1 + secrets.randbelow(2)
    if len(local) <= 2:
        return f"{local[0]}{'*' * (3 + padding)}@{domain}"
    hidden = min(len(local) - 2, 3) + padding
    return f"{local[0]}{'*' * hidden}{local[-1]}@{domain}"
