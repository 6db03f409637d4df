"""Registry credential lookup for builders, stacks, stores and builds."""

from .cached import CachedKeychainFactory
from .factory import (
    KeychainFactory,
    KubeSecretFetcher,
    PullSecretKeychainProvider,
    SecretKeychainFactory,
    SecretRef,
)
from .keychain import ANONYMOUS, AnonymousKeychain, AuthConfig, DockerCreds, Keychain, MultiKeychain
from .match import registry_match
from .secrets import Secret, VolumeSecretKeychain, parse_mounted_annotated_secrets

__all__ = [
    "ANONYMOUS",
    "AnonymousKeychain",
    "AuthConfig",
    "CachedKeychainFactory",
    "DockerCreds",
    "Keychain",
    "KeychainFactory",
    "KubeSecretFetcher",
    "MultiKeychain",
    "PullSecretKeychainProvider",
    "Secret",
    "SecretKeychainFactory",
    "SecretRef",
    "VolumeSecretKeychain",
    "parse_mounted_annotated_secrets",
    "registry_match",
]
