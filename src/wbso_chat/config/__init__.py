"""Configurações centralizadas do wbso_chat.

Uso típico:
    from wbso_chat.config import get_settings
"""

from wbso_chat.config.settings import Settings, get_settings

__all__ = ["Settings", "get_settings"]
