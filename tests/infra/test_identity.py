"""Testes da verificação de Firebase ID tokens."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest
from google.auth import exceptions as google_auth_exceptions

from wbso_chat.domain.errors import AuthenticationError
from wbso_chat.infra.identity import FirebaseIdentityVerifier

_VERIFY = "wbso_chat.infra.identity.id_token.verify_firebase_token"


class TestFirebaseIdentityVerifier:
    @pytest.mark.asyncio
    async def test_valid_token(self) -> None:
        request = MagicMock()
        verifier = FirebaseIdentityVerifier(project_id="wbso-prod", request=request)
        claims = {"user_id": "uid-123", "sub": "uid-123", "email": "founder@acme.nl"}

        with patch(_VERIFY, return_value=claims) as verify:
            identity = await verifier.verify("id-token")

        verify.assert_called_once_with("id-token", request, audience="wbso-prod")
        assert identity.uid == "uid-123"
        assert identity.email == "founder@acme.nl"
        assert identity.claims == claims

    @pytest.mark.asyncio
    async def test_subject_fallback(self) -> None:
        verifier = FirebaseIdentityVerifier(project_id="wbso-prod", request=MagicMock())

        with patch(_VERIFY, return_value={"sub": "uid-456"}):
            identity = await verifier.verify("id-token")

        assert identity.uid == "uid-456"
        assert identity.email is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error",
        [ValueError("Token expired"), google_auth_exceptions.TransportError("certs unavailable")],
    )
    async def test_rejected_token(self, error: Exception) -> None:
        verifier = FirebaseIdentityVerifier(project_id="wbso-prod", request=MagicMock())

        with patch(_VERIFY, side_effect=error):
            with pytest.raises(AuthenticationError) as exc_info:
                await verifier.verify("id-token")

        assert exc_info.value.status_code == 401
        assert "expired" not in exc_info.value.user_message

    @pytest.mark.asyncio
    async def test_claims_without_subject(self) -> None:
        verifier = FirebaseIdentityVerifier(project_id="wbso-prod", request=MagicMock())

        with patch(_VERIFY, return_value={"email": "x@example.com"}):
            with pytest.raises(AuthenticationError):
                await verifier.verify("id-token")

    @pytest.mark.asyncio
    async def test_empty_token(self) -> None:
        verifier = FirebaseIdentityVerifier(project_id="wbso-prod", request=MagicMock())

        with patch(_VERIFY) as verify:
            with pytest.raises(AuthenticationError):
                await verifier.verify("")
        verify.assert_not_called()
