"""
Account commands: `login` saves verified API credentials, `config` stores
defaults that `login` falls back to.
"""

import asyncio
import logging
import os
from typing import Callable, Optional

import aiohttp
import jwt

from config import TEXT
from errors import ApiError, InvalidInput, VerificationFailed
from prompts import Console
from storage import ConfigurationStore, Credentials, CredentialsStore, LoginConfiguration


class AccountManager:
    """
    Credential setup for the CLI.

    Args:
        console: object with print() and prompt()
        credentials_store: where `login` saves credentials
        config_store: where `config` keeps login defaults
        client_factory: callable taking Credentials and returning an async
            context manager with a verify() coroutine
    """

    def __init__(
        self,
        console: Console,
        credentials_store: CredentialsStore,
        config_store: ConfigurationStore,
        client_factory: Callable,
    ):
        self.console = console
        self.credentials_store = credentials_store
        self.config_store = config_store
        self.client_factory = client_factory
        self.logger = logging.getLogger('testflight_manager')

    # -------------------------------------------------------------------------
    # login
    # -------------------------------------------------------------------------
    async def login(
        self,
        issuer_id: Optional[str] = None,
        key_id: Optional[str] = None,
        private_key_path: Optional[str] = None,
        skip_verification: bool = False,
    ) -> str:
        """
        Validate, optionally verify, and save credentials.

        Returns:
            Path of the saved credentials file
        """
        defaults = self.config_store.load() or LoginConfiguration()

        credentials = Credentials.create(
            issuer_id=self._resolve(issuer_id, defaults.issuer_id, "issuer ID", "--issuer-id"),
            key_id=self._resolve(key_id, defaults.key_id, "key ID", "--key-id"),
            private_key_path=self._resolve(
                private_key_path, defaults.private_key_path, "private key path", "--private-key-path"
            ),
        )

        if skip_verification:
            self.logger.info("Skipping credential verification")
        else:
            await self.verify(credentials)

        path = self.credentials_store.save(credentials)
        self.console.print(f"Login succeeded. Saved credentials to {path}.")
        return path

    @staticmethod
    def _resolve(cli_value: Optional[str], configured: Optional[str], field_name: str, flag: str) -> str:
        for value in (cli_value, configured):
            if value is not None and value.strip():
                return value.strip()
        raise InvalidInput(f"Missing {field_name}. " + TEXT["config_hint"].format(flag=flag))

    async def verify(self, credentials: Credentials) -> None:
        self.logger.info("Verifying credentials with App Store Connect...")
        try:
            async with self.client_factory(credentials) as client:
                await client.verify()
        except ApiError as e:
            raise VerificationFailed(e.describe()) from e
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise VerificationFailed(str(e) or type(e).__name__) from e
        except (jwt.PyJWTError, ValueError) as e:
            raise VerificationFailed(f"Could not sign a request with the private key: {e}") from e
        self.console.print("Verification succeeded.")

    # -------------------------------------------------------------------------
    # config
    # -------------------------------------------------------------------------
    def configure(self) -> str:
        """Prompt for login defaults; a blank answer keeps the current value."""
        configuration = self.config_store.load() or LoginConfiguration()

        self.console.print(
            "Configure default values used by the login command. "
            "Press return to keep the current value."
        )
        configuration.issuer_id = self._prompt_value("Issuer ID", configuration.issuer_id)
        configuration.key_id = self._prompt_value("Key ID", configuration.key_id)
        configuration.private_key_path = self._prompt_private_key_path(configuration.private_key_path)

        path = self.config_store.save(configuration)
        self.console.print(f"Saved configuration to {path}.")
        return path

    def _prompt_value(self, label: str, current: Optional[str]) -> Optional[str]:
        message = f"{label} [{current}]: " if current else f"{label}: "
        answer = self.console.prompt(message)
        if answer is None or not answer.strip():
            return current
        return answer.strip()

    def _prompt_private_key_path(self, current: Optional[str]) -> Optional[str]:
        while True:
            answer = self._prompt_value("Private key path", current)
            if answer is None or answer == current:
                return current

            expanded = os.path.expanduser(answer)
            if os.path.isfile(expanded):
                return os.path.abspath(expanded)

            self.console.print(f"No file found at {answer}. Please provide a valid path.")
