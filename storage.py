"""
Saved credentials and login defaults.

Both files live in the per-user state directory (see config.PATHS) as
pretty-printed JSON with sorted keys, and are replaced atomically on save.
"""

import json
import logging
import os
from dataclasses import dataclass
from typing import Optional

from config import PATHS
from errors import InvalidInput, PrivateKeyNotFound
from utils import atomic_write

logger = logging.getLogger('testflight_manager')


@dataclass(frozen=True)
class Credentials:
    """App Store Connect API key; build with Credentials.create() to validate."""
    issuer_id: str
    key_id: str
    private_key_path: str

    @classmethod
    def create(cls, issuer_id: str, key_id: str, private_key_path: str) -> "Credentials":
        issuer_id = issuer_id.strip()
        key_id = key_id.strip()
        if not issuer_id:
            raise InvalidInput("The issuer ID cannot be empty.")
        if not key_id:
            raise InvalidInput("The key ID cannot be empty.")

        expanded = os.path.expanduser(private_key_path.strip())
        if not os.path.isfile(expanded):
            raise PrivateKeyNotFound(f"Private key not found at path: {private_key_path}")

        return cls(issuer_id, key_id, os.path.abspath(expanded))

    def read_private_key(self) -> str:
        try:
            with open(self.private_key_path, 'r', encoding='utf-8') as f:
                return f.read()
        except FileNotFoundError:
            raise PrivateKeyNotFound(f"Private key not found at path: {self.private_key_path}")

    def to_dict(self) -> dict:
        return {
            "issuerID": self.issuer_id,
            "keyID": self.key_id,
            "privateKeyPath": self.private_key_path,
        }


@dataclass
class LoginConfiguration:
    """Defaults used by `login` when a flag is omitted."""
    issuer_id: Optional[str] = None
    key_id: Optional[str] = None
    private_key_path: Optional[str] = None

    def to_dict(self) -> dict:
        values = {
            "issuerID": self.issuer_id,
            "keyID": self.key_id,
            "privateKeyPath": self.private_key_path,
        }
        return {key: value for key, value in values.items() if value is not None}


class JsonFileStore:
    """Load and atomically save one JSON object."""

    def __init__(self, path: str):
        self.path = path

    def _read(self) -> Optional[dict]:
        if not os.path.exists(self.path):
            return None
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise InvalidInput(f"Could not read {self.path}: {e}")
        if not isinstance(data, dict):
            raise InvalidInput(f"Could not read {self.path}: expected a JSON object")
        return data

    def _write(self, data: dict) -> str:
        atomic_write(self.path, json.dumps(data, indent=2, sort_keys=True) + "\n")
        logger.debug(f"Saved {self.path}")
        return self.path


class CredentialsStore(JsonFileStore):

    def __init__(self, path: Optional[str] = None):
        super().__init__(path or PATHS["credentials_file"])

    def load(self) -> Optional[Credentials]:
        data = self._read()
        if data is None:
            return None
        try:
            return Credentials(
                issuer_id=data["issuerID"],
                key_id=data["keyID"],
                private_key_path=data["privateKeyPath"],
            )
        except KeyError as e:
            raise InvalidInput(f"Could not read {self.path}: missing {e}")

    def save(self, credentials: Credentials) -> str:
        return self._write(credentials.to_dict())


class ConfigurationStore(JsonFileStore):

    def __init__(self, path: Optional[str] = None):
        super().__init__(path or PATHS["config_file"])

    def load(self) -> Optional[LoginConfiguration]:
        data = self._read()
        if data is None:
            return None
        return LoginConfiguration(
            issuer_id=data.get("issuerID"),
            key_id=data.get("keyID"),
            private_key_path=data.get("privateKeyPath"),
        )

    def save(self, configuration: LoginConfiguration) -> str:
        return self._write(configuration.to_dict())
