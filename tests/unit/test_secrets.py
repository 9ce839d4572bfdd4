"""Testes unitários para infra/secrets.py.

Valida providers de secrets e factory function.
"""

from __future__ import annotations

import os
from unittest.mock import MagicMock, patch

import pytest
from google.api_core.exceptions import NotFound, PermissionDenied

from wbso_chat.infra.secrets import (
    EnvSecretProvider,
    SecretManagerProvider,
    create_secret_provider,
)


class TestEnvSecretProvider:
    """Testes para EnvSecretProvider."""

    def test_get_secret_returns_env_value(self) -> None:
        with patch.dict(os.environ, {"OPENAI_API_KEY": "sk-test"}):
            assert EnvSecretProvider().get_secret("OPENAI_API_KEY") == "sk-test"

    def test_get_secret_raises_when_absent(self) -> None:
        with (
            patch.dict(os.environ, {}, clear=True),
            pytest.raises(RuntimeError, match="ausente"),
        ):
            EnvSecretProvider().get_secret("OPENAI_API_KEY")

    def test_secret_exists(self) -> None:
        with patch.dict(os.environ, {"PRESENT_SECRET": "value"}, clear=True):
            provider = EnvSecretProvider()
            assert provider.secret_exists("PRESENT_SECRET") is True
            assert provider.secret_exists("ABSENT_SECRET") is False


class TestSecretManagerProvider:
    """Testes para SecretManagerProvider (client mockado)."""

    def test_project_from_environment(self) -> None:
        with patch.dict(os.environ, {"GOOGLE_CLOUD_PROJECT": "wbso-prod"}):
            assert SecretManagerProvider()._project_id == "wbso-prod"

    def test_get_secret(self) -> None:
        client = MagicMock()
        client.access_secret_version.return_value.payload.data = b"sk-live"
        provider = SecretManagerProvider(project_id="wbso-prod", client=client)

        assert provider.get_secret("OPENAI_API_KEY") == "sk-live"
        client.access_secret_version.assert_called_once_with(
            name="projects/wbso-prod/secrets/OPENAI_API_KEY/versions/latest"
        )

    def test_get_secret_failure(self) -> None:
        client = MagicMock()
        client.access_secret_version.side_effect = PermissionDenied("denied")
        provider = SecretManagerProvider(project_id="wbso-prod", client=client)

        with pytest.raises(RuntimeError, match="OPENAI_API_KEY"):
            provider.get_secret("OPENAI_API_KEY")

    def test_secret_exists(self) -> None:
        client = MagicMock()
        provider = SecretManagerProvider(project_id="wbso-prod", client=client)

        assert provider.secret_exists("INTERNAL_TASK_TOKEN") is True
        client.get_secret.assert_called_once_with(
            name="projects/wbso-prod/secrets/INTERNAL_TASK_TOKEN"
        )

    def test_secret_missing(self) -> None:
        client = MagicMock()
        client.get_secret.side_effect = NotFound("missing")
        provider = SecretManagerProvider(project_id="wbso-prod", client=client)

        assert provider.secret_exists("INTERNAL_TASK_TOKEN") is False

    def test_requires_project(self) -> None:
        with patch.dict(os.environ, {}, clear=True):
            provider = SecretManagerProvider(client=MagicMock())
            with pytest.raises(RuntimeError, match="GOOGLE_CLOUD_PROJECT"):
                provider.get_secret("OPENAI_API_KEY")


class TestCreateSecretProvider:
    def test_env_backend(self) -> None:
        assert isinstance(create_secret_provider("env"), EnvSecretProvider)

    def test_secret_manager_backend(self) -> None:
        provider = create_secret_provider("secret_manager", project_id="wbso-prod")
        assert isinstance(provider, SecretManagerProvider)

    def test_unknown_backend(self) -> None:
        with pytest.raises(ValueError):
            create_secret_provider("vault")
