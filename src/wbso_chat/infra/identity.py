"""Verificação de Firebase ID tokens (google-auth).

A verificação baixa e cacheia os certificados públicos do Firebase via
google.auth.transport.requests; como a chamada é bloqueante, roda em
worker thread.
"""

from __future__ import annotations

import logging
from typing import Any

import anyio
from google.auth import exceptions as google_auth_exceptions
from google.auth.transport import requests as google_requests
from google.oauth2 import id_token

from wbso_chat.domain.errors import AuthenticationError
from wbso_chat.domain.protocols.identity import Identity
from wbso_chat.observability.logging import get_logger

logger: logging.Logger = get_logger(__name__)


class FirebaseIdentityVerifier:
    """IdentityVerifier para ID tokens emitidos pelo Firebase Auth."""

    def __init__(self, project_id: str | None, request: Any | None = None) -> None:
        self._project_id = project_id
        self._request = request or google_requests.Request()

    def _verify_sync(self, token: str) -> Identity:
        try:
            claims = id_token.verify_firebase_token(
                token, self._request, audience=self._project_id
            )
        except (ValueError, google_auth_exceptions.GoogleAuthError) as exc:
            logger.warning(
                "ID token rejeitado",
                extra={"error_type": type(exc).__name__},
            )
            raise AuthenticationError(f"invalid id token: {exc}") from exc

        if not claims:
            raise AuthenticationError("empty id token claims")

        uid = claims.get("user_id") or claims.get("sub")
        if not uid:
            raise AuthenticationError("id token without subject")

        return Identity(uid=uid, email=claims.get("email"), claims=dict(claims))

    async def verify(self, token: str) -> Identity:
        if not token:
            raise AuthenticationError("missing id token")
        return await anyio.to_thread.run_sync(self._verify_sync, token)
