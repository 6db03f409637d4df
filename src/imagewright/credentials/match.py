"""Matching registry hosts against docker config keys."""

DEFAULT_REGISTRY = "index.docker.io"
DEFAULT_AUTH_KEY = "https://index.docker.io/v1/"

# Docker config keys may be bare hosts, scheme prefixed, or carry an API
# version path.
REGISTRY_FORMATS = [
    "%s",
    "https://%s",
    "http://%s",
    "https://%s/v1/",
    "http://%s/v1/",
    "https://%s/v2/",
    "http://%s/v2/",
]


def registry_string(registry):
    if registry == DEFAULT_REGISTRY:
        return DEFAULT_AUTH_KEY
    return registry


def registry_match(registry, candidate):
    """Whether the config key ``candidate`` holds credentials for ``registry``."""
    host = registry_string(registry)
    return any(fmt % host == candidate for fmt in REGISTRY_FORMATS)
