"""Error results for the OAuth services.

Validation failures are returned, not raised: every service operation returns
either its value or an OAuthError. Exceptions are reserved for backend faults
(StoreError), which endpoints log and convert to server_error or
temporarily_unavailable.
"""

from dataclasses import dataclass
from enum import Enum
from typing import TypeVar, Union

from fastapi.responses import JSONResponse


class ErrorKind(str, Enum):
    CLIENT = "client_error"
    GRANT = "grant_error"
    AUTH = "auth_error"
    TRANSIENT = "transient_error"
    NOT_FOUND = "not_found"
    PERMISSION = "permission_error"


class StoreError(Exception):
    """Raised by a backing store when an operation could not be completed."""


@dataclass(frozen=True)
class OAuthError:
    kind: ErrorKind
    error: str
    description: str
    status_code: int = 400

    def to_dict(self) -> dict:
        return {"error": self.error, "error_description": self.description}

    def to_response(self, headers: dict = None) -> JSONResponse:
        return JSONResponse(self.to_dict(), status_code=self.status_code, headers=headers)


T = TypeVar("T")
Result = Union[T, OAuthError]


def is_error(result) -> bool:
    return isinstance(result, OAuthError)


# ============== Protocol errors (RFC 6749 / 7591 / 7009) ==============

def invalid_request(description: str) -> OAuthError:
    return OAuthError(ErrorKind.CLIENT, "invalid_request", description)


def invalid_client_metadata(description: str) -> OAuthError:
    return OAuthError(ErrorKind.CLIENT, "invalid_client_metadata", description)


def invalid_grant(description: str) -> OAuthError:
    return OAuthError(ErrorKind.GRANT, "invalid_grant", description)


def unsupported_grant_type(description: str) -> OAuthError:
    return OAuthError(ErrorKind.GRANT, "unsupported_grant_type", description)


def invalid_token(description: str) -> OAuthError:
    return OAuthError(ErrorKind.AUTH, "invalid_token", description, status_code=401)


def server_error(description: str = "Internal server error") -> OAuthError:
    return OAuthError(ErrorKind.TRANSIENT, "server_error", description, status_code=500)


def temporarily_unavailable(description: str = "Service temporarily unavailable") -> OAuthError:
    return OAuthError(ErrorKind.TRANSIENT, "temporarily_unavailable", description, status_code=503)


# ============== Consent completion errors ==============

def unauthenticated(description: str) -> OAuthError:
    return OAuthError(ErrorKind.AUTH, "unauthenticated", description, status_code=401)


def invalid_argument(description: str) -> OAuthError:
    return OAuthError(ErrorKind.CLIENT, "invalid_argument", description)


def not_found(description: str) -> OAuthError:
    return OAuthError(ErrorKind.NOT_FOUND, "not_found", description, status_code=404)


def permission_denied(description: str) -> OAuthError:
    return OAuthError(ErrorKind.PERMISSION, "permission_denied", description, status_code=403)
