"""Parsing registry credentials out of Kubernetes secrets and mounted files."""

import base64
import json
import logging
import os
from dataclasses import dataclass, field
from typing import Dict, List

from imagewright.models.core import API_GROUP

from .keychain import AuthConfig, DockerCreds, Keychain

logger = logging.getLogger(__name__)

DOCKER_SECRET_ANNOTATION = f"{API_GROUP}/docker"

SECRET_TYPE_BASIC_AUTH = "kubernetes.io/basic-auth"
SECRET_TYPE_DOCKER_CONFIG_JSON = "kubernetes.io/dockerconfigjson"
SECRET_TYPE_DOCKERCFG = "kubernetes.io/dockercfg"

BASIC_AUTH_USERNAME_KEY = "username"
BASIC_AUTH_PASSWORD_KEY = "password"
DOCKER_CONFIG_JSON_KEY = ".dockerconfigjson"
DOCKERCFG_KEY = ".dockercfg"


@dataclass
class Secret:
    """Decoded view of a core/v1 Secret."""

    name: str
    type: str = "Opaque"
    data: Dict[str, bytes] = field(default_factory=dict)
    annotations: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_kube(cls, secret):
        metadata = secret.metadata
        return cls(
            name=metadata.name,
            type=secret.type or "Opaque",
            data={k: base64.b64decode(v) for k, v in (secret.data or {}).items()},
            annotations=dict(metadata.annotations or {}),
        )

    def text(self, key):
        return self.data.get(key, b"").decode("utf-8")


def _entries(auths):
    return {
        registry: AuthConfig(
            username=entry.get("username", ""),
            password=entry.get("password", ""),
            auth=entry.get("auth", ""),
        )
        for registry, entry in (auths or {}).items()
    }


def parse_docker_config_json(content):
    """Parse ``{"auths": {...}}`` as found in ``.dockerconfigjson``."""
    return DockerCreds(_entries(json.loads(content).get("auths")))


def parse_dockercfg(content):
    """Parse the legacy ``.dockercfg`` map of registry to entry."""
    return DockerCreds(_entries(json.loads(content)))


def parse_docker_config_secret(secret):
    """Creds held by a dockerconfigjson or legacy dockercfg secret."""
    if secret.type == SECRET_TYPE_DOCKER_CONFIG_JSON:
        return parse_docker_config_json(secret.data[DOCKER_CONFIG_JSON_KEY])
    if secret.type == SECRET_TYPE_DOCKERCFG:
        return parse_dockercfg(secret.data[DOCKERCFG_KEY])
    raise ValueError(f"secret {secret.name} of type {secret.type} holds no docker config")


def docker_creds_from_secrets(secrets: List[Secret]):
    """Merge every usable secret; the first secret naming a registry wins."""
    creds = DockerCreds()
    for secret in secrets:
        if secret.type == SECRET_TYPE_BASIC_AUTH:
            registry = secret.annotations.get(DOCKER_SECRET_ANNOTATION)
            if not registry:
                continue
            found = DockerCreds(
                {
                    registry: AuthConfig.basic(
                        secret.text(BASIC_AUTH_USERNAME_KEY),
                        secret.text(BASIC_AUTH_PASSWORD_KEY),
                    )
                }
            )
        elif secret.type in (SECRET_TYPE_DOCKER_CONFIG_JSON, SECRET_TYPE_DOCKERCFG):
            found = parse_docker_config_secret(secret)
        else:
            continue
        logger.debug(f"Using registry credentials from secret {secret.name}")
        creds = creds.append(found)
    return creds


def read_basic_auth_secret(volume, secret_name):
    """Read ``username`` and ``password`` files of a mounted secret."""
    directory = os.path.join(volume, secret_name)
    with open(os.path.join(directory, BASIC_AUTH_USERNAME_KEY)) as f:
        username = f.read()
    with open(os.path.join(directory, BASIC_AUTH_PASSWORD_KEY)) as f:
        password = f.read()
    return AuthConfig.basic(username, password)


def parse_mounted_annotated_secrets(volume, secrets):
    """Build creds from ``secret=registry`` pairs of secrets under ``volume``."""
    entries = {}
    for arg in secrets:
        parts = arg.split("=")
        if len(parts) != 2:
            raise ValueError(f"could not parse docker secret argument {arg}")
        secret_name, registry = parts
        entries[registry] = read_basic_auth_secret(volume, secret_name)
    return DockerCreds(entries)


def parse_mounted_docker_config(directory):
    """Creds from ``.dockercfg`` and ``.dockerconfigjson`` files in ``directory``."""
    creds = DockerCreds()
    for filename, parse in (
        (DOCKERCFG_KEY, parse_dockercfg),
        (DOCKER_CONFIG_JSON_KEY, parse_docker_config_json),
    ):
        path = os.path.join(directory, filename)
        if not os.path.exists(path):
            continue
        with open(path) as f:
            creds = creds.append(parse(f.read()))
    return creds


class VolumeSecretKeychain(Keychain):
    """Credentials mounted into the operator's own pod."""

    def __init__(self, creds=None):
        self.creds = creds or DockerCreds()

    @classmethod
    def from_config(cls, config):
        creds = DockerCreds()
        if config.annotated_secrets:
            creds = creds.append(
                parse_mounted_annotated_secrets(
                    config.secret_volume_path, config.annotated_secrets
                )
            )
        if config.docker_config_path:
            creds = creds.append(parse_mounted_docker_config(config.docker_config_path))
        logger.info(f"Loaded {len(creds)} mounted registry credential(s)")
        return cls(creds)

    def resolve(self, registry):
        return self.creds.resolve(registry)
