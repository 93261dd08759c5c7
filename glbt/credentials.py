"""Load and save the credentials used to reconnect to GitLab."""

from __future__ import annotations

import logging
import os
from pathlib import Path

import orjson
from pydantic import BaseModel, ConfigDict, Field, SecretStr, ValidationError, field_serializer

from glbt.gitlab_client import GitLabClient

LOGGER = logging.getLogger(__name__)

CREDENTIALS_FILE_MODE = 0o600


class StoredCredentials(BaseModel):
    """Server URL and token, serialized under the short keys ``u`` and ``t``."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    url: str = Field(alias="u")
    token: SecretStr = Field(alias="t")

    @field_serializer("token")
    def _reveal_token(self, token: SecretStr) -> str:
        return token.get_secret_value()

    @classmethod
    def from_client(cls, client: GitLabClient) -> StoredCredentials:
        """Capture the base URL and token a client was built with."""
        return cls(url=client.url, token=SecretStr(client.token))

    def connect(self, *, timeout: float | None = None) -> GitLabClient:
        """Rebuild a client from the stored pair."""
        return GitLabClient(self.url, self.token.get_secret_value(), timeout=timeout)


class CredentialStore:
    """Persist a single credential pair as a JSON document."""

    def __init__(self, path: Path) -> None:
        """Create a store backed by ``path``."""
        self._path = Path(path)

    @property
    def path(self) -> Path:
        """Location of the credentials file."""
        return self._path

    def load(self) -> StoredCredentials | None:
        """Return the stored credentials, or None when nothing usable is stored."""
        if not self._path.exists():
            return None
        try:
            payload = orjson.loads(self._path.read_bytes())
        except (OSError, orjson.JSONDecodeError) as error:
            LOGGER.warning("Ignoring unreadable credentials file %s: %s", self._path, error)
            return None
        if payload is None:
            return None
        try:
            return StoredCredentials.model_validate(payload)
        except ValidationError as error:
            LOGGER.warning("Ignoring invalid credentials file %s: %s", self._path, error)
            return None

    def save(self, credentials: StoredCredentials) -> None:
        """Write the credentials readable by the owner only, creating parent directories as needed."""
        self._path.parent.mkdir(parents=True, exist_ok=True)
        descriptor = os.open(self._path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, CREDENTIALS_FILE_MODE)
        with os.fdopen(descriptor, "wb") as handle:
            # An existing file keeps its old mode through O_CREAT.
            self._path.chmod(CREDENTIALS_FILE_MODE)
            handle.write(orjson.dumps(credentials.model_dump(by_alias=True)))
        LOGGER.debug("Saved credentials for %s to %s", credentials.url, self._path)

    def clear(self) -> bool:
        """Remove stored credentials and return whether anything was removed."""
        if not self._path.exists():
            return False
        self._path.unlink()
        return True
