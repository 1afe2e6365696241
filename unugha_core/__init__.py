"""Supabase data access and error handling shared by the event pages."""

from .client import SupabaseClient
from .errors import LoginRequired, SupabaseError, error_message
from .session import AuthSessionStore, AuthState
from .storage import storage_url

__all__ = [
    "SupabaseClient",
    "LoginRequired",
    "SupabaseError",
    "error_message",
    "AuthSessionStore",
    "AuthState",
    "storage_url",
]
