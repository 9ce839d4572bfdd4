"""Leitura de segredos (variáveis de ambiente ou Google Secret Manager).

Regras:
- Nunca logar o valor de um secret
- RuntimeError quando o secret obrigatório não existe (fail-closed)
"""

from __future__ import annotations

import logging
import os
from typing import Any, Protocol

from google.api_core.exceptions import NotFound

from wbso_chat.observability.logging import get_logger

logger: logging.Logger = get_logger(__name__)


class SecretProvider(Protocol):
    """Porta para leitura de segredos."""

    def get_secret(self, name: str, version: str = "latest") -> str:
        """Obtém o valor do segredo."""

    def secret_exists(self, name: str) -> bool:
        """Verifica se um secret existe sem retornar seu valor."""


class EnvSecretProvider:
    """Provider de desenvolvimento: segredos vêm do ambiente (.env, CI)."""

    def get_secret(self, name: str, version: str = "latest") -> str:
        value = os.getenv(name)
        if not value:
            logger.warning(
                "Secret ausente no ambiente",
                extra={"secret_name": name, "provider": "env"},
            )
            raise RuntimeError(f"Secret {name} ausente no ambiente")
        return value

    def secret_exists(self, name: str) -> bool:
        return bool(os.getenv(name))


class SecretManagerProvider:
    """Provider para Google Cloud Secret Manager (staging/production).

    O cliente é criado sob demanda para que o import de
    google-cloud-secret-manager só aconteça fora de desenvolvimento.
    """

    def __init__(self, project_id: str | None = None, client: Any | None = None) -> None:
        self._project_id = project_id or os.getenv("GOOGLE_CLOUD_PROJECT")
        self._client = client

    def _get_client(self) -> Any:
        if self._client is None:
            from google.cloud import secretmanager

            self._client = secretmanager.SecretManagerServiceClient()
        return self._client

    def _secret_path(self, name: str) -> str:
        if not self._project_id:
            raise RuntimeError("GOOGLE_CLOUD_PROJECT não configurado para Secret Manager")
        return f"projects/{self._project_id}/secrets/{name}"

    def get_secret(self, name: str, version: str = "latest") -> str:
        path = f"{self._secret_path(name)}/versions/{version}"
        try:
            response = self._get_client().access_secret_version(name=path)
        except Exception as e:  # noqa: BLE001
            logger.error(
                "Falha ao acessar Secret Manager",
                extra={"secret_name": name, "error_type": type(e).__name__},
            )
            raise RuntimeError(f"Não foi possível ler o secret {name}") from e

        logger.info(
            "Secret lido do Secret Manager",
            extra={"secret_name": name, "version": version},
        )
        return response.payload.data.decode("utf-8")

    def secret_exists(self, name: str) -> bool:
        try:
            self._get_client().get_secret(name=self._secret_path(name))
        except NotFound:
            return False
        return True


def create_secret_provider(backend: str = "env", project_id: str | None = None) -> SecretProvider:
    """Factory do provider de secrets (env | secret_manager)."""
    if backend == "env":
        return EnvSecretProvider()
    if backend == "secret_manager":
        logger.info("Usando SecretManagerProvider", extra={"project_id": project_id})
        return SecretManagerProvider(project_id=project_id)
    raise ValueError(f"Backend de secrets não reconhecido: {backend}")
