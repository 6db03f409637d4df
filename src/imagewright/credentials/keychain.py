"""Keychains resolve a registry host to the credentials used against it."""

import base64
import logging
from abc import ABC, abstractmethod
from typing import Dict, Optional

from pydantic import BaseModel

from .match import registry_match

logger = logging.getLogger(__name__)


class AuthConfig(BaseModel):
    """One docker config ``auths`` entry."""

    username: str = ""
    password: str = ""
    auth: str = ""

    class Config:
        frozen = True

    @classmethod
    def basic(cls, username, password):
        return cls(username=username, password=password)

    def is_anonymous(self):
        return not (self.username or self.password or self.auth)

    def credentials(self):
        """Return ``(username, password)``, decoding ``auth`` when set."""
        if self.auth:
            decoded = base64.b64decode(self.auth).decode("utf-8")
            username, _, password = decoded.partition(":")
            return username, password
        return self.username, self.password


ANONYMOUS = AuthConfig()


class Keychain(ABC):
    @abstractmethod
    def resolve(self, registry) -> AuthConfig:
        """Credentials for ``registry``; ``ANONYMOUS`` when none apply."""


class AnonymousKeychain(Keychain):
    def resolve(self, registry):
        return ANONYMOUS


class DockerCreds(Keychain):
    """A docker config ``auths`` map used as a keychain."""

    def __init__(self, entries: Optional[Dict[str, AuthConfig]] = None):
        self.entries = dict(entries or {})

    def resolve(self, registry):
        for key, entry in self.entries.items():
            if not registry_match(registry, key):
                continue
            if entry.auth:
                return AuthConfig(auth=entry.auth)
            if entry.username:
                return AuthConfig.basic(entry.username, entry.password)
            raise ValueError(f'Unsupported entry in "auths" for "{registry}"')
        return ANONYMOUS

    def append(self, other):
        """Merge ``other`` in; keys already present win."""
        merged = dict(self.entries)
        for key, entry in other.entries.items():
            merged.setdefault(key, entry)
        return DockerCreds(merged)

    def __eq__(self, other):
        return isinstance(other, DockerCreds) and self.entries == other.entries

    def __len__(self):
        return len(self.entries)

    def __repr__(self):
        return f"DockerCreds({sorted(self.entries)})"


class MultiKeychain(Keychain):
    """First keychain to return non-anonymous credentials wins."""

    def __init__(self, *keychains):
        self.keychains = list(keychains)

    def resolve(self, registry):
        for keychain in self.keychains:
            auth = keychain.resolve(registry)
            if not auth.is_anonymous():
                return auth
        return ANONYMOUS
