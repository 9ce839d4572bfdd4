"""wbso_chat — orquestração de conversas para aanvragen WBSO."""

__version__ = "0.1.0"
