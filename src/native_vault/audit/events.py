"""Audit event type definitions."""

from enum import Enum


class EventType(str, Enum):
    """Audit event types."""

    # Credential events
    CRED_CREATE = "credential.create"
    CRED_READ = "credential.read"
    CRED_DELETE = "credential.delete"
    CRED_LIST = "credential.list"

    # Backend events
    BACKEND_PROBE = "backend.probe"
