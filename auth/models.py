"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). MemoryCredentialStore
keeps these in its dicts; the SQL tables in auth/store.py have the same
columns.

Layer rule: no imports from api/, dna/, or core/.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Credential:
    """A stored username/password pair.

    Created on signup and never mutated or deleted afterwards. password is
    whatever the configured verifier compares against; no hashing policy is
    applied by the service itself.
    """

    username: str
    password: str
    created_at: str | None = None


@dataclass(frozen=True)
class Session:
    """The (username, token) pair representing an active login.

    At most one Session exists per username. A new login overwrites it and
    logout deletes it; there is no expiry.
    """

    username: str
    token: str
    created_at: str | None = None
