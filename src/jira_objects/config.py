"""
Configuration module for Jira Objects

This module handles loading, validation and interactive creation of the
persisted settings file, and provides read-only access to the derived
session values (auth token, workspace id, log target).
"""

import base64
import getpass
import json
import logging
import os
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from colorama import Fore, Style
from dotenv import load_dotenv


DEFAULT_CONFIG_PATH = Path.home() / '.jira_objects' / 'config.json'
DEFAULT_API_BASE_URL = 'https://api.atlassian.com/jsm/assets/workspace'
DEFAULT_MAX_REFERENCE_DEPTH = 5

# 0 is effectively silent, 4 is full debug output
LOG_LEVELS = {
    0: logging.CRITICAL,
    1: logging.ERROR,
    2: logging.WARNING,
    3: logging.INFO,
    4: logging.DEBUG,
}

PLACEHOLDER_VALUES = [
    'YOUR_WORKSPACE_ID_HERE',
    'your.email@company.com:YOUR_ATLASSIAN_API_TOKEN_HERE',
]

ENV_OVERRIDES = {
    'workspace_id': 'ASSETS_WORKSPACE_ID',
    'auth_string': 'JIRA_AUTH_STRING',
    'log_file': 'JIRA_OBJECTS_LOG_FILE',
    'log_level': 'JIRA_OBJECTS_LOG_LEVEL',
}


class ConfigurationError(Exception):
    """Raised when there's an issue with the configuration."""
    pass


def default_config_path() -> Path:
    """Return the settings file location, honouring JIRA_OBJECTS_CONFIG."""
    env_path = os.getenv('JIRA_OBJECTS_CONFIG')
    if env_path:
        return Path(env_path).expanduser()
    return DEFAULT_CONFIG_PATH


def prompt_for_settings(input_func: Callable[[str], str] = input,
                        secret_func: Callable[[str], str] = getpass.getpass) -> Dict[str, Any]:
    """
    Ask the user for every persisted setting.

    Args:
        input_func: Callable used for visible prompts
        secret_func: Callable used for the credential prompt

    Returns:
        Settings dictionary ready to be written to disk
    """
    print(f"{Fore.CYAN}No configuration found. Let's create one.{Style.RESET_ALL}")

    workspace_id = input_func("Assets workspace ID: ").strip()
    auth_string = secret_func("Credential string (email:api_token): ").strip()
    log_file = input_func("Log file path (leave empty to disable file logging): ").strip()

    raw_level = input_func("Log level 0-4 [3]: ").strip() or '3'
    try:
        log_level = int(raw_level)
    except ValueError:
        raise ConfigurationError(f"Log level must be a number between 0 and 4, got '{raw_level}'")

    return {
        'log_file': log_file,
        'log_level': log_level,
        'workspace_id': workspace_id,
        'auth_string': auth_string,
    }


class Config:
    """Configuration management class."""

    def __init__(self, config_file: Optional[str] = None, env_file: Optional[str] = None,
                 interactive: bool = False,
                 input_func: Callable[[str], str] = input,
                 secret_func: Callable[[str], str] = getpass.getpass):
        """
        Initialize configuration from the settings file and environment.

        Args:
            config_file: Optional path to the JSON settings file
            env_file: Optional path to .env file. If None, searches in current directory.
            interactive: Create the settings file by prompting when it is missing
            input_func: Callable used for visible prompts
            secret_func: Callable used for the credential prompt
        """
        if env_file:
            load_dotenv(env_file)
        else:
            load_dotenv()

        self._path = Path(config_file).expanduser() if config_file else default_config_path()

        if self._path.exists():
            self._settings = self._read_settings()
        elif interactive:
            self._settings = prompt_for_settings(input_func, secret_func)
            self._validate_settings()
            self._write_settings()
        else:
            raise ConfigurationError(
                f"Configuration file not found: {self._path}\n"
                "Run 'jira-objects init' to create it."
            )

        self._apply_env_overrides()
        self._validate_settings()

    def _read_settings(self) -> Dict[str, Any]:
        """Read the JSON settings file."""
        try:
            with open(self._path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise ConfigurationError(f"Failed to read configuration file {self._path}: {e}")

        if not isinstance(data, dict):
            raise ConfigurationError(f"Configuration file {self._path} must contain a JSON object")
        return data

    def _write_settings(self) -> None:
        """Persist the settings file, readable by the current user only."""
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with open(self._path, 'w', encoding='utf-8') as f:
            json.dump(self._settings, f, indent=2)

        # Set secure permissions
        os.chmod(self._path, 0o600)

    def _apply_env_overrides(self) -> None:
        for key, env_var in ENV_OVERRIDES.items():
            value = os.getenv(env_var)
            if value:
                self._settings[key] = value

    def _validate_settings(self) -> None:
        """Validate that all required settings are present and sane."""
        missing = [key for key in ('workspace_id', 'auth_string') if not self._settings.get(key)]
        if missing:
            raise ConfigurationError(
                f"Missing required settings: {', '.join(missing)}\n"
                f"Please update {self._path} or set the matching environment variables."
            )

        placeholders = [key for key in ('workspace_id', 'auth_string')
                        if self._settings.get(key) in PLACEHOLDER_VALUES]
        if placeholders:
            raise ConfigurationError(
                f"Please update placeholder values for: {', '.join(placeholders)}\n"
                "These still contain example values and need to be replaced with actual credentials."
            )

        try:
            level = int(self._settings.get('log_level', 3))
        except (TypeError, ValueError):
            raise ConfigurationError(f"log_level must be an integer between 0 and 4, got {self._settings.get('log_level')!r}")
        if level not in LOG_LEVELS:
            raise ConfigurationError(f"log_level must be between 0 and 4, got {level}")

        try:
            depth = int(self._settings.get('max_reference_depth', DEFAULT_MAX_REFERENCE_DEPTH))
        except (TypeError, ValueError):
            raise ConfigurationError("max_reference_depth must be an integer")
        if depth < 0:
            raise ConfigurationError("max_reference_depth cannot be negative")

    @property
    def path(self) -> Path:
        """Get the settings file location."""
        return self._path

    @property
    def workspace_id(self) -> str:
        """Get the Assets workspace ID."""
        return str(self._settings['workspace_id'])

    @property
    def auth_string(self) -> str:
        """Get the raw credential string."""
        return str(self._settings['auth_string'])

    @property
    def auth_token(self) -> str:
        """Get the base64 encoded credential used for Basic authentication."""
        return base64.b64encode(self.auth_string.encode('utf-8')).decode('ascii')

    @property
    def log_file(self) -> str:
        """Get the log file path (empty string disables file logging)."""
        return str(self._settings.get('log_file') or '')

    @property
    def log_level(self) -> int:
        """Get the 0-4 log verbosity."""
        return int(self._settings.get('log_level', 3))

    @property
    def logging_level(self) -> int:
        """Get the log verbosity as a logging module level."""
        return LOG_LEVELS[self.log_level]

    @property
    def api_base_url(self) -> str:
        """Get the Assets API root, without the workspace segment."""
        return str(self._settings.get('api_base_url') or DEFAULT_API_BASE_URL).rstrip('/')

    @property
    def assets_base_url(self) -> str:
        """Get the full Assets API base URL for the workspace."""
        return f"{self.api_base_url}/{self.workspace_id}/v1"

    @property
    def max_reference_depth(self) -> int:
        """Get the maximum nesting depth for stub reference creation."""
        return int(self._settings.get('max_reference_depth', DEFAULT_MAX_REFERENCE_DEPTH))


def setup_logging(config: Config) -> logging.Logger:
    """
    Set up logging configuration based on config settings.

    Args:
        config: Loaded configuration

    Returns:
        Configured logger instance
    """
    log_format = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    date_format = '%Y-%m-%d %H:%M:%S'
    formatter = logging.Formatter(log_format, date_format)

    logger = logging.getLogger('jira_objects')
    logger.setLevel(config.logging_level)
    logger.handlers.clear()

    console_handler = logging.StreamHandler()
    console_handler.setLevel(config.logging_level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if config.log_file:
        log_dir = os.path.dirname(os.path.abspath(config.log_file))
        os.makedirs(log_dir, exist_ok=True)
        file_handler = logging.FileHandler(config.log_file, encoding='utf-8')
        file_handler.setLevel(config.logging_level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger
