"""YAML configuration loader for the clinical note assistant."""

import copy
import os
import yaml
from pathlib import Path
from typing import Dict, Any, Optional
import logging

from ..exceptions import ConfigurationError
from ..models.transcription import TranscriptionOptions

logger = logging.getLogger(__name__)


DEFAULT_CONFIG: Dict[str, Any] = {
    "audio": {
        "sample_rate": 16000,
        "channels": 1,
        "chunk_interval_ms": 250,
        "device_index": None,
    },
    "transcription": {
        "url": "wss://api.deepgram.com/v1/listen",
        "api_key_env": "DEEPGRAM_API_KEY",
        "model": "nova-2",
        "punctuate": True,
        "interim_results": True,
        "language": None,
        "connect_timeout": 10.0,
    },
    "notes": {
        "base_url": "https://generativelanguage.googleapis.com/v1beta",
        "api_key_env": "GEMINI_API_KEY",
        "model": "gemini-2.5-flash",
        "auto_generate": False,
    },
    "logging": {
        "level": "INFO",
        "file_path": "data/logs/clinote.log",
        "console_output": True,
    },
}


class ClinicalNoteConfig:
    """Configuration loader: built-in defaults overlaid with an optional YAML file."""

    def __init__(self, config_path: Optional[str] = None):
        """Initialize configuration loader.

        Args:
            config_path: Path to YAML config file. If None, only the built-in
                        defaults and the environment are used.
        """
        self.config_file = Path(config_path) if config_path else None
        self.config = copy.deepcopy(DEFAULT_CONFIG)

        if self.config_file is None:
            logger.info("No configuration file given, using defaults")
            return

        if not self.config_file.exists():
            raise FileNotFoundError(f"Configuration file not found: {self.config_file}")

        logger.info(f"Loading configuration from: {self.config_file}")
        _deep_merge(self.config, self._load_config())

    def _load_config(self) -> Dict[str, Any]:
        """Load and parse YAML configuration file."""
        try:
            with open(self.config_file, 'r', encoding='utf-8') as f:
                config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in configuration file: {e}") from e

        if not config:
            raise ValueError("Configuration file is empty")
        if not isinstance(config, dict):
            raise ValueError("Configuration file must contain a mapping")

        self._resolve_paths(config)
        logger.info("Configuration loaded successfully")
        return config

    def _resolve_paths(self, config: Dict[str, Any]) -> None:
        """Resolve relative paths in configuration relative to config file location."""
        config_dir = self.config_file.parent

        if 'logging' in config and config['logging'].get('file_path'):
            log_path = config['logging']['file_path']
            if not os.path.isabs(log_path):
                config['logging']['file_path'] = str(config_dir / log_path)

    def get(self, key_path: str, default: Any = None) -> Any:
        """Get configuration value using dot notation (e.g., 'notes.model').

        Args:
            key_path: Dot-separated key path (e.g., 'transcription.model')
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        keys = key_path.split('.')
        value = self.config

        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default

        return value

    def set(self, key_path: str, value: Any) -> None:
        """Set configuration value using dot notation.

        Args:
            key_path: Dot-separated path to config value (e.g., 'notes.auto_generate')
            value: Value to set
        """
        keys = key_path.split('.')
        config_dict = self.config

        for key in keys[:-1]:
            if key not in config_dict:
                config_dict[key] = {}
            config_dict = config_dict[key]

        config_dict[keys[-1]] = value
        logger.debug(f"Configuration key '{key_path}' set to: {value}")

    def has_transcription_api_key(self) -> bool:
        return bool(self._read_secret('transcription.api_key_env'))

    def has_notes_api_key(self) -> bool:
        return bool(self._read_secret('notes.api_key_env'))

    def get_transcription_api_key(self) -> str:
        """Get the live transcription credential - raises if it is not set."""
        return self._require_secret('transcription.api_key_env')

    def get_notes_api_key(self) -> str:
        """Get the generative-text credential - raises if it is not set."""
        return self._require_secret('notes.api_key_env')

    def transcription_options(self) -> TranscriptionOptions:
        """Build the connection options sent to the transcription service."""
        return TranscriptionOptions(
            model=self.get('transcription.model', 'nova-2'),
            punctuate=bool(self.get('transcription.punctuate', True)),
            interim_results=bool(self.get('transcription.interim_results', True)),
            language=self.get('transcription.language'),
            sample_rate=int(self.get('audio.sample_rate', 16000)),
            channels=int(self.get('audio.channels', 1)),
        )

    def _read_secret(self, env_key_path: str) -> Optional[str]:
        env_name = self.get(env_key_path)
        if not env_name:
            return None
        value = os.environ.get(env_name, "").strip()
        return value or None

    def _require_secret(self, env_key_path: str) -> str:
        value = self._read_secret(env_key_path)
        if not value:
            raise ConfigurationError(
                f"Environment variable {self.get(env_key_path)} is not set"
            )
        return value


def _deep_merge(base: Dict[str, Any], overrides: Dict[str, Any]) -> None:
    """Merge overrides into base in place, descending into nested mappings."""
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
