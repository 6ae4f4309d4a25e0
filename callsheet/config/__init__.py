"""
Configuration files and loaders for contact extraction.
"""

from .loader import RoleVocabularyConfig, RoleVocabularyLoader, DEFAULT_ROLES_PATH

__all__ = ["RoleVocabularyConfig", "RoleVocabularyLoader", "DEFAULT_ROLES_PATH"]
