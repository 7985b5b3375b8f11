"""Configuration management for ai-config-sync."""

from .settings import AppSettings, SanitizeOptions, SanitizeRule, Scope, AGENTS, SCOPES
from .mapping import CategoryMapping, MappingConfig, MappingResolver, ResolvedTarget, SyncMode

__all__ = [
    "AppSettings", "SanitizeOptions", "SanitizeRule", "Scope", "AGENTS", "SCOPES",
    "CategoryMapping", "MappingConfig", "MappingResolver", "ResolvedTarget", "SyncMode",
]
