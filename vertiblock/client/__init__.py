"""Dashboard-side session handling for the auth API."""

from vertiblock.client.auth_api import AuthApi
from vertiblock.client.auth_session import AuthSession, create_auth_session
from vertiblock.client.http_client import HttpClient
from vertiblock.client.session_store import SessionState, SessionStore
from vertiblock.client.storage import LocalStorage, TokenStorage

__all__ = [
    "AuthApi",
    "AuthSession",
    "HttpClient",
    "LocalStorage",
    "SessionState",
    "SessionStore",
    "TokenStorage",
    "create_auth_session",
]
