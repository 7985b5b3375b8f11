"""Application settings and workspace layout."""

import os
import re
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Union

import yaml
from pydantic import BaseModel, Field, field_validator

APP_DIR_NAME = ".ai-config-manager"
SOURCE_DIR_NAME = "source"
BACKUPS_DIR_NAME = "backups"
EXPORTS_DIR_NAME = "exports"
MAPPING_FILE_NAME = "mapping.json"
SETTINGS_FILE_NAME = "settings.yaml"
LOCK_FILE_NAME = ".workspace.lock"
INSTRUCTIONS_DIR_NAME = "instructions"


class Scope(str, Enum):
    """The four fixed file trees."""
    SOURCE = "source"
    CODEX = "codex"
    GEMINI = "gemini"
    CLAUDE = "claude"


# Fixed agent order used for previews and endpoint listings
AGENTS: List[str] = [Scope.CODEX.value, Scope.GEMINI.value, Scope.CLAUDE.value]
SCOPES: List[str] = [Scope.SOURCE.value] + AGENTS


class SanitizeRule(BaseModel):
    """A single redaction rule applied to exported content."""
    name: str
    pattern: str

    @field_validator('pattern')
    @classmethod
    def validate_pattern(cls, v):
        try:
            re.compile(v)
        except re.error as e:
            raise ValueError(f'invalid regular expression: {e}')
        return v


def default_sanitize_rules() -> List[SanitizeRule]:
    return [
        SanitizeRule(name="openai_key", pattern=r"sk-[A-Za-z0-9_\-]{16,}"),
        SanitizeRule(name="github_token", pattern=r"(?:ghp|gho|ghu|ghs|ghr)_[A-Za-z0-9]{20,}"),
        SanitizeRule(name="github_pat", pattern=r"github_pat_[A-Za-z0-9_]{20,}"),
        SanitizeRule(name="slack_token", pattern=r"xox[abprs]-[A-Za-z0-9\-]{10,}"),
        SanitizeRule(name="aws_access_key", pattern=r"AKIA[0-9A-Z]{16}"),
        SanitizeRule(name="bearer_token", pattern=r"(?i)(?<=bearer )[A-Za-z0-9\-._~+/]{16,}=*"),
        SanitizeRule(
            name="secret_assignment",
            pattern=(
                r"(?i)\b(?:[a-z0-9]+[_-])*(?:api[_-]?key|token|secret|password|passwd)\b"
                r"[\"']?\s*[:=]\s*[\"']?(?P<value>[^\s\"',}]{4,})"
            ),
        ),
    ]


class SanitizeOptions(BaseModel):
    """Share package sanitization options."""
    enabled_by_default: bool = True
    replacement: str = "[REDACTED]"
    rules: List[SanitizeRule] = Field(default_factory=default_sanitize_rules)


class AppSettings(BaseModel):
    """Main settings class."""
    home: Path = Field(default_factory=Path.home)
    app_dir_name: str = APP_DIR_NAME
    agent_dirs: Dict[str, str] = Field(default_factory=lambda: {
        Scope.CODEX.value: ".codex",
        Scope.GEMINI.value: ".gemini",
        Scope.CLAUDE.value: ".claude",
    })
    log_level: str = "INFO"
    log_file: Optional[Path] = None
    log_to_console: bool = False
    lock_timeout: float = Field(default=30.0, gt=0)
    export_dir: Optional[Path] = None
    sanitize: SanitizeOptions = Field(default_factory=SanitizeOptions)

    @field_validator('agent_dirs')
    @classmethod
    def validate_agent_dirs(cls, v):
        missing = [agent for agent in AGENTS if not v.get(agent)]
        if missing:
            raise ValueError(f'agent_dirs is missing entries for: {", ".join(missing)}')
        unknown = [agent for agent in v if agent not in AGENTS]
        if unknown:
            raise ValueError(f'agent_dirs has unknown agents: {", ".join(unknown)}')
        return v

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v):
        level = v.upper()
        if level not in ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'):
            raise ValueError(f'unsupported log level: {v}')
        return level

    # Workspace layout

    @property
    def app_root(self) -> Path:
        return self.home / self.app_dir_name

    @property
    def source_root(self) -> Path:
        return self.app_root / SOURCE_DIR_NAME

    @property
    def backups_root(self) -> Path:
        return self.app_root / BACKUPS_DIR_NAME

    @property
    def exports_root(self) -> Path:
        return self.export_dir or (self.app_root / EXPORTS_DIR_NAME)

    @property
    def mapping_path(self) -> Path:
        return self.app_root / MAPPING_FILE_NAME

    @property
    def lock_path(self) -> Path:
        return self.app_root / LOCK_FILE_NAME

    def agent_root(self, agent: str) -> Path:
        """Root directory of an agent scope."""
        return self.home / self.agent_dirs[agent]

    # Loading

    @classmethod
    def from_yaml(cls, settings_path: Union[str, Path], **overrides) -> "AppSettings":
        """Load settings from a YAML file."""
        settings_path = Path(settings_path)
        if not settings_path.exists():
            raise FileNotFoundError(f"Settings file not found: {settings_path}")

        with open(settings_path, 'r', encoding='utf-8') as f:
            settings_data = yaml.safe_load(f) or {}

        settings_data.update(overrides)
        return cls(**settings_data)

    def to_yaml(self, settings_path: Union[str, Path]) -> None:
        """Save settings to a YAML file."""
        settings_path = Path(settings_path)
        settings_path.parent.mkdir(parents=True, exist_ok=True)

        with open(settings_path, 'w', encoding='utf-8') as f:
            yaml.safe_dump(self.model_dump(mode='json', exclude_none=True), f,
                           default_flow_style=False, indent=2, sort_keys=False)

    @classmethod
    def from_env(cls) -> "AppSettings":
        """Build settings from environment variables."""
        values = {}
        if os.getenv('AI_CONFIG_SYNC_HOME'):
            values['home'] = Path(os.environ['AI_CONFIG_SYNC_HOME']).expanduser()
        if os.getenv('AI_CONFIG_SYNC_LOG_LEVEL'):
            values['log_level'] = os.environ['AI_CONFIG_SYNC_LOG_LEVEL']
        if os.getenv('AI_CONFIG_SYNC_LOG_FILE'):
            values['log_file'] = Path(os.environ['AI_CONFIG_SYNC_LOG_FILE']).expanduser()
        return cls(**values)

    @classmethod
    def load(cls, home: Optional[Union[str, Path]] = None,
             log_level: Optional[str] = None) -> "AppSettings":
        """Resolve settings from the environment and ``<app_root>/settings.yaml``.

        Explicit arguments win over the settings file, which wins over the
        environment.
        """
        base = cls.from_env()
        overrides = {}
        if home is not None:
            overrides['home'] = Path(home).expanduser()
        if log_level is not None:
            overrides['log_level'] = log_level

        resolved_home = overrides.get('home', base.home)
        settings_file = resolved_home / base.app_dir_name / SETTINGS_FILE_NAME
        if settings_file.exists():
            return cls.from_yaml(settings_file, home=resolved_home, **{
                k: v for k, v in overrides.items() if k != 'home'
            })

        return cls(**{**base.model_dump(), **overrides})
