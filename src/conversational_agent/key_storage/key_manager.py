"""API key retrieval from the environment and the OS keychain."""

import logging
import os
import re
from enum import Enum
from typing import Any

import keyring
from keyring.errors import KeyringError

from conversational_agent.errors import MissingAPIKeyError


class StorageMethod(Enum):
    """Available storage methods in priority order."""

    ENVIRONMENT = "environment"
    KEYCHAIN = "keychain"
    NOT_FOUND = "not_found"


class APIKeyValidator:
    """Validates key formats. Currently, only OpenAI keys are supported."""

    def __init__(self) -> None:
        self.pattern = re.compile(r"^sk-[a-zA-Z0-9_-]{20,}$")
        self.min_length = 23

    def is_valid_format(self, api_key: Any) -> bool:
        if not api_key or not isinstance(api_key, str):
            return False

        # Surrounding whitespace is an error, not something to strip
        if api_key != api_key.strip():
            return False

        if len(api_key) < self.min_length:
            return False

        return self.pattern.match(api_key) is not None

    def mask_api_key(self, api_key: str, show_chars: int = 4) -> str:
        """Mask API key for safe display in logs."""
        if not api_key or len(api_key) <= show_chars * 2:
            return "*" * 8
        return f"{api_key[:show_chars]}...{api_key[-show_chars:]}"


class APIKeyManager:
    """Resolves the decision backend API key.

    Priority order: environment variable → OS keychain
    """

    SERVICE_NAME = "conversational-agent"
    ACCOUNT_NAME = "api_key-key"
    ENV_VAR_API_KEY = "OPENAI_API_KEY"

    def __init__(self) -> None:
        self.logger = logging.getLogger(__name__)
        self.validator = APIKeyValidator()

    def get_api_key(self) -> tuple[str | None, StorageMethod]:
        """Retrieve API key using priority order: env → keychain.

        Returns:
            Tuple of (api_key, storage_method) where api_key is None if not found.
        """
        env_key = os.environ.get(self.ENV_VAR_API_KEY)
        if env_key:
            if self.validator.is_valid_format(env_key):
                self.logger.info("API key loaded from environment variable")
                return env_key, StorageMethod.ENVIRONMENT
            self.logger.warning("Invalid API key format found in environment variable")

        try:
            keychain_key = keyring.get_password(self.SERVICE_NAME, self.ACCOUNT_NAME)
            if keychain_key:
                if self.validator.is_valid_format(keychain_key):
                    self.logger.info("API key loaded from OS keychain")
                    return keychain_key, StorageMethod.KEYCHAIN
                self.logger.warning("Invalid API key format found in OS keychain")
        except KeyringError as e:
            self.logger.warning(f"Could not access OS keychain: {e}")
        except Exception as e:
            self.logger.error(f"Unexpected error accessing keychain: {e}")

        self.logger.info("No valid API key found in any storage location")
        return None, StorageMethod.NOT_FOUND

    def require_api_key(self) -> str:
        """Return the API key or raise MissingAPIKeyError."""
        api_key, _ = self.get_api_key()
        if not api_key:
            raise MissingAPIKeyError(
                f"No API key configured. Set {self.ENV_VAR_API_KEY} or store one "
                f"in the OS keychain under '{self.SERVICE_NAME}'."
            )
        return api_key

    def store_api_key(self, api_key: str) -> tuple[bool, str | None]:
        """Store API key in the OS keychain.

        Returns:
            Tuple of (success, error_message)
        """
        if not self.validator.is_valid_format(api_key):
            return False, "Invalid API key format"

        try:
            keyring.set_password(self.SERVICE_NAME, self.ACCOUNT_NAME, api_key)
            self.logger.info("API key stored in OS keychain")
            return True, None
        except KeyringError as e:
            return False, f"Keyring error: {e}"
        except Exception as e:
            return False, f"Unexpected error: {e}"
