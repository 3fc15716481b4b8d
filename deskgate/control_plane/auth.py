"""Two-tier credential checks.

Client tier: ``Authorization: Bearer <token>`` matching the client token.
Host tier: ``X-OpenWork-Host-Token`` matching the host token; only the
operator on the desktop holds it.  The resulting ``Actor`` carries a sha256
of the presented credential, never the credential itself.
"""

from __future__ import annotations

import hashlib
import re
import secrets

from deskgate.control_plane.errors import ApiError
from deskgate.control_plane.models.audit import Actor
from deskgate.control_plane.models.enums import ActorType

HOST_TOKEN_HEADER = "X-OpenWork-Host-Token"
CLIENT_ID_HEADER = "X-OpenWork-Client-Id"
DIRECTORY_HEADER = "X-OpenCode-Directory"

_BEARER_RE = re.compile(r"^Bearer\s+(.+)$", re.IGNORECASE)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def generate_token() -> str:
    return secrets.token_urlsafe(24)


def _matches(presented: str | None, expected: str | None) -> bool:
    if not presented or not expected:
        return False
    return secrets.compare_digest(presented.encode("utf-8"), expected.encode("utf-8"))


def authenticate_client(authorization: str | None, client_id: str | None, token: str | None) -> Actor:
    """Validate a bearer header.  Raises ``401 unauthorized`` on mismatch."""
    match = _BEARER_RE.match(authorization or "")
    presented = match.group(1).strip() if match else None
    if not _matches(presented, token):
        raise ApiError(401, "unauthorized", "Invalid bearer token")
    return Actor(type=ActorType.REMOTE, client_id=client_id or None, token_hash=hash_token(presented))


def authenticate_host(host_token: str | None, expected: str | None) -> Actor:
    if not _matches(host_token, expected):
        raise ApiError(401, "unauthorized", "Invalid host token")
    return Actor(type=ActorType.HOST, token_hash=hash_token(host_token))
