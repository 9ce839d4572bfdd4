"""Portas (Protocols) para colaboradores externos."""

from wbso_chat.domain.protocols.identity import Identity, IdentityVerifier
from wbso_chat.domain.protocols.llm_provider import Completion, LLMProvider, ProviderMessage

__all__ = [
    "Completion",
    "Identity",
    "IdentityVerifier",
    "LLMProvider",
    "ProviderMessage",
]
