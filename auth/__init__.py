"""
Credential resolution for mailbox providers.

Provides the CredentialResolver (stored account first, configured defaults
second), OAuth token helpers and 1Password secret references.
"""

from auth.credentials import CredentialResolver
from auth.onepassword import resolve_secret

__all__ = [
    "CredentialResolver",
    "resolve_secret",
]
