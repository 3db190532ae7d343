"""
Injected collaborators.

The app factory builds the auth provider and record store once and
stores them on the app; handlers fetch them per request.
"""

from dataclasses import dataclass

from flask import Flask, current_app

from ticketing.auth_service.provider import AuthProvider
from ticketing.database.record_store import RecordStore

EXTENSION_KEY = "ticketing"


@dataclass(frozen=True)
class Collaborators:
    auth_provider: AuthProvider
    record_store: RecordStore


def init_app(app: Flask, auth_provider: AuthProvider, record_store: RecordStore) -> None:
    app.extensions[EXTENSION_KEY] = Collaborators(auth_provider, record_store)


def get_auth_provider() -> AuthProvider:
    return current_app.extensions[EXTENSION_KEY].auth_provider


def get_record_store() -> RecordStore:
    return current_app.extensions[EXTENSION_KEY].record_store
