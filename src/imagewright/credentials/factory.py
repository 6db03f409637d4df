"""Keychains for the service account identity a resource names."""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Tuple

import kubernetes

from imagewright.errors import NotFoundError
from imagewright.store.kube import translate_api_errors

from .keychain import DockerCreds, MultiKeychain
from .secrets import (
    SECRET_TYPE_DOCKER_CONFIG_JSON,
    SECRET_TYPE_DOCKERCFG,
    Secret,
    docker_creds_from_secrets,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SecretRef:
    """Identity whose secrets authenticate registry access.

    An empty namespace means the operator's own, cluster wide identity.
    """

    service_account: str = ""
    namespace: str = ""
    image_pull_secrets: Tuple[str, ...] = field(default_factory=tuple)

    def is_namespaced(self):
        return bool(self.namespace)

    def service_account_or_default(self):
        return self.service_account or "default"


class KeychainFactory(ABC):
    @abstractmethod
    def keychain_for_secret_ref(self, ref: SecretRef):
        """Return a ``Keychain`` for ``ref``."""


class KubeSecretFetcher:
    """Reads the secrets attached to a service account."""

    def __init__(self, core_api=None):
        self.core_api = core_api or kubernetes.client.CoreV1Api()

    def read_secret(self, name, namespace):
        with translate_api_errors("Secret", name, namespace):
            return Secret.from_kube(self.core_api.read_namespaced_secret(name, namespace))

    def secrets_for_service_account(self, service_account, namespace):
        with translate_api_errors("ServiceAccount", service_account, namespace):
            sa = self.core_api.read_namespaced_service_account(
                service_account, namespace
            )
        return [self.read_secret(ref.name, namespace) for ref in sa.secrets or []]

    def image_pull_secrets(self, service_account, namespace):
        with translate_api_errors("ServiceAccount", service_account, namespace):
            sa = self.core_api.read_namespaced_service_account(
                service_account, namespace
            )
        return [ref.name for ref in sa.image_pull_secrets or []]


class PullSecretKeychainProvider:
    """Keychain from the image pull secrets of a service account.

    With no namespace there is nothing to read and the keychain is empty.
    """

    def __init__(self, fetcher):
        self.fetcher = fetcher

    def keychain(self, namespace, service_account, image_pull_secrets):
        if not namespace:
            return DockerCreds()
        names = list(image_pull_secrets or [])
        try:
            names.extend(self.fetcher.image_pull_secrets(service_account, namespace))
        except NotFoundError:
            logger.debug(f"Service account {namespace}/{service_account} not found")

        secrets = []
        for name in names:
            try:
                secret = self.fetcher.read_secret(name, namespace)
            except NotFoundError:
                logger.warning(f"Image pull secret {namespace}/{name} not found")
                continue
            if secret.type in (SECRET_TYPE_DOCKER_CONFIG_JSON, SECRET_TYPE_DOCKERCFG):
                secrets.append(secret)
        return docker_creds_from_secrets(secrets)


class SecretKeychainFactory(KeychainFactory):
    """Service account secrets, then mounted secrets, then pull secrets."""

    def __init__(self, secret_fetcher, volume_keychain, cluster_keychain_provider=None):
        self.secret_fetcher = secret_fetcher
        self.volume_keychain = volume_keychain
        self.cluster_keychain_provider = cluster_keychain_provider

    def _service_account_keychain(self, ref):
        try:
            secrets = self.secret_fetcher.secrets_for_service_account(
                ref.service_account_or_default(), ref.namespace
            )
        except NotFoundError:
            return DockerCreds()
        return docker_creds_from_secrets(secrets)

    def keychain_for_secret_ref(self, ref):
        if not ref.is_namespaced():
            chain = [self.volume_keychain]
            if self.cluster_keychain_provider is not None:
                chain.append(self.cluster_keychain_provider.keychain(None, None, []))
            return MultiKeychain(*chain)

        chain = [self._service_account_keychain(ref), self.volume_keychain]
        if self.cluster_keychain_provider is not None:
            chain.append(
                self.cluster_keychain_provider.keychain(
                    ref.namespace,
                    ref.service_account_or_default(),
                    list(ref.image_pull_secrets),
                )
            )
        return MultiKeychain(*chain)
