from .http import FakeResponse, FakeSession, attach_session, sse
from .llm import FakeProvider, auth_error, server_error
from .storage import FakeRedis, ReversingSecretStore

__all__ = [
    "FakeProvider",
    "FakeRedis",
    "FakeResponse",
    "FakeSession",
    "ReversingSecretStore",
    "attach_session",
    "auth_error",
    "server_error",
    "sse",
]
