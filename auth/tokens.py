"""
auth/tokens.py -- Session token generation and credential verification.

Security design decisions:
  Tokens: opaque random strings, not JWTs. secrets.token_hex(16) gives 128
       bits of entropy from the OS CSPRNG, well above the 64-bit floor needed
       for tokens to be unguessable and collision-free over the lifetime of
       the store. A token means nothing on its own; it is only valid while
       the sessions table maps the username to it.

  Passwords: stored and compared as given. The comparison is pluggable
       (PasswordVerifier) so a hashing scheme can be dropped in without
       touching the stores. The default uses hmac.compare_digest so the
       comparison time does not depend on where the strings first differ.

Layer rule: no imports from api/, dna/, or core/.
"""

from __future__ import annotations

import hmac
import secrets
from collections.abc import Callable

# (supplied, stored) -> match
PasswordVerifier = Callable[[str, str], bool]

# () -> fresh opaque token
TokenGenerator = Callable[[], str]

TOKEN_BYTES = 16


def generate_token() -> str:
    """Return a fresh random token as 32 lowercase hex characters."""
    return secrets.token_hex(TOKEN_BYTES)


def plaintext_verifier(supplied: str, stored: str) -> bool:
    """Return True if the supplied password equals the stored one."""
    return hmac.compare_digest(supplied.encode("utf-8"), stored.encode("utf-8"))


def tokens_match(supplied: str, stored: str) -> bool:
    """Constant-time token comparison used by the in-memory store."""
    return plaintext_verifier(supplied, stored)
