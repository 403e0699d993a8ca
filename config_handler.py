"""
Configuration handler for YAML-based settings.

All settings live in one YAML file under a single well-known key:

    alt_text_settings:
      auto_generate_on_upload: true
      mode: title_only
      allowed_mimes: [image/jpeg, image/png]
      enable_logging: true
      batch_size: 20

Values are sanitized on every read and write, so callers always receive a
valid Config.
"""

import yaml
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Optional, Dict, Any, Tuple

from alt_text_generator import GenerationMode


OPTION_NAME = 'alt_text_settings'

SUPPORTED_MIME_TYPES = (
    'image/jpeg',
    'image/png',
    'image/gif',
    'image/webp',
    'image/avif',
    'image/svg+xml',
)

BATCH_SIZE_MIN = 5
BATCH_SIZE_MAX = 200

_TRUE_STRINGS = {'1', 'true', 'yes', 'on'}


@dataclass(frozen=True)
class Config:
    """Validated settings for one processing call."""
    auto_generate_on_upload: bool
    mode: GenerationMode
    allowed_mimes: Tuple[str, ...]
    enable_logging: bool
    batch_size: int

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to plain YAML-friendly values."""
        data = asdict(self)
        data['mode'] = self.mode.value
        data['allowed_mimes'] = list(self.allowed_mimes)
        return data


DEFAULTS: Dict[str, Any] = {
    'auto_generate_on_upload': True,
    'mode': GenerationMode.TITLE_ONLY.value,
    'allowed_mimes': list(SUPPORTED_MIME_TYPES),
    'enable_logging': True,
    'batch_size': 20,
}


def clamp_batch_size(value: Any) -> int:
    """Parse a batch size and clamp it into [BATCH_SIZE_MIN, BATCH_SIZE_MAX]."""
    if isinstance(value, bool):
        size = DEFAULTS['batch_size']
    else:
        try:
            size = int(value)
        except (TypeError, ValueError):
            size = DEFAULTS['batch_size']

    return max(BATCH_SIZE_MIN, min(BATCH_SIZE_MAX, size))


def _to_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in _TRUE_STRINGS
    return bool(value)


def _to_mode(value: Any) -> GenerationMode:
    try:
        return GenerationMode(value)
    except ValueError:
        return GenerationMode(DEFAULTS['mode'])


def _to_mimes(value: Any) -> Tuple[str, ...]:
    if isinstance(value, str):
        value = [value]
    requested = {str(m).strip().lower() for m in (value or [])}

    # Keep the supported order; an empty list would disable processing
    allowed = tuple(m for m in SUPPORTED_MIME_TYPES if m in requested)
    return allowed or SUPPORTED_MIME_TYPES


class ConfigStore:
    """Reads, sanitizes and persists settings in a YAML file."""

    def __init__(self, config_path: Path):
        """
        Initialize the store.

        Args:
            config_path: Path to the YAML settings file (created on save)
        """
        self.config_path = Path(config_path)

    @staticmethod
    def get_defaults() -> Dict[str, Any]:
        """Return a copy of the default settings."""
        defaults = dict(DEFAULTS)
        defaults['allowed_mimes'] = list(DEFAULTS['allowed_mimes'])
        return defaults

    @staticmethod
    def sanitize(raw: Optional[Dict[str, Any]]) -> Config:
        """
        Validate raw settings, filling in defaults for missing keys.

        Args:
            raw: Settings as submitted or stored (may be None or partial)

        Returns:
            A valid Config
        """
        data = ConfigStore.get_defaults()
        if raw:
            data.update({k: v for k, v in raw.items() if k in DEFAULTS})

        return Config(
            auto_generate_on_upload=_to_bool(data['auto_generate_on_upload']),
            mode=_to_mode(data['mode']),
            allowed_mimes=_to_mimes(data['allowed_mimes']),
            enable_logging=_to_bool(data['enable_logging']),
            batch_size=clamp_batch_size(data['batch_size']),
        )

    def _read_raw(self) -> Optional[Dict[str, Any]]:
        if not self.config_path.exists():
            return None

        with open(self.config_path, 'r') as f:
            document = yaml.safe_load(f) or {}

        if not isinstance(document, dict):
            raise ValueError(f"Settings file is not a mapping: {self.config_path}")

        record = document.get(OPTION_NAME)
        return record if isinstance(record, dict) else None

    def exists(self) -> bool:
        """Whether a settings record has been stored yet."""
        return self._read_raw() is not None

    def load(self) -> Config:
        """
        Load the stored settings.

        Returns:
            Sanitized Config (defaults if nothing is stored yet)

        Raises:
            yaml.YAMLError: If the settings file cannot be parsed
        """
        return self.sanitize(self._read_raw())

    def get(self, key: str) -> Any:
        """
        Get one setting value.

        Raises:
            KeyError: If the key is not a known setting
        """
        if key not in DEFAULTS:
            raise KeyError(f"Unknown setting: {key}")
        return getattr(self.load(), key)

    def save(self, raw: Dict[str, Any]) -> Config:
        """
        Sanitize and persist settings, merged over what is already stored.

        Args:
            raw: New values for some or all settings

        Returns:
            The Config that was written
        """
        merged = dict(self._read_raw() or {})
        merged.update(raw or {})
        config = self.sanitize(merged)

        self.config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.config_path, 'w') as f:
            yaml.safe_dump({OPTION_NAME: config.to_dict()}, f, sort_keys=False)

        return config

    def initialize(self) -> Config:
        """Write default settings if none exist; never overwrite stored ones."""
        if self.exists():
            return self.load()
        return self.save(self.get_defaults())

    def __repr__(self) -> str:
        return f"ConfigStore(config_path={self.config_path})"
