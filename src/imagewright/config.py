"""Operator configuration loaded from the environment."""

import os
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class OperatorConfig(BaseModel):
    """Runtime settings for the operator and its controllers."""

    log_level: str = Field(default="INFO", description="Root logging level")
    worker_limit: int = Field(default=5, description="kopf handler worker limit")
    reconcile_workers: int = Field(
        default=2, description="Worker threads per controller"
    )
    resync_period: float = Field(
        default=36000.0, description="Seconds between full resyncs of a controller"
    )
    source_polling_frequency: float = Field(
        default=300.0, description="Seconds between polls of mutable sources"
    )
    reconcile_timeout: float = Field(
        default=300.0, description="Deadline in seconds for a single reconcile"
    )
    server_timeout: int = Field(default=60, description="kopf watch server timeout")
    liveness_endpoint: Optional[str] = Field(
        default=None, description="kopf liveness endpoint, e.g. http://0.0.0.0:8080/healthz"
    )
    manage_crds: bool = True
    generate_crd_files: bool = False
    secret_volume_path: str = "/var/build-secrets"
    annotated_secrets: List[str] = Field(
        default_factory=list,
        description="Mounted basic-auth secrets as 'secret=registry' pairs",
    )
    docker_config_path: Optional[str] = None
    collaborators: Optional[str] = Field(
        default=None, description="'module:factory' returning the collaborators"
    )

    @property
    def tracker_lease(self):
        """Lease for dependency registrations, three resync periods long."""
        return self.resync_period * 3

    @classmethod
    def from_env(cls, environ: Optional[Dict[str, str]] = None):
        """Build a config from environment variables."""
        env = os.environ if environ is None else environ

        def get(name, default=None):
            value = env.get(name)
            return default if value in (None, "") else value

        annotated = get("ANNOTATED_SECRETS", "")
        return cls(
            log_level=get("LOG_LEVEL", "INFO").upper(),
            worker_limit=int(get("WORKER_LIMIT", "5")),
            reconcile_workers=int(get("RECONCILE_WORKERS", "2")),
            resync_period=float(get("RESYNC_PERIOD", "36000")),
            source_polling_frequency=float(get("SOURCE_POLLING_FREQUENCY", "300")),
            reconcile_timeout=float(get("RECONCILE_TIMEOUT", "300")),
            server_timeout=int(get("SERVER_TIMEOUT", "60")),
            liveness_endpoint=get("LIVENESS_ENDPOINT"),
            manage_crds=get("MANAGE_CRDS", "true").lower() == "true",
            generate_crd_files=get("GENERATE_CRD_FILES", "false").lower() == "true",
            secret_volume_path=get("SECRET_VOLUME_PATH", "/var/build-secrets"),
            annotated_secrets=[s.strip() for s in annotated.split(",") if s.strip()],
            docker_config_path=get("DOCKER_CONFIG_PATH"),
            collaborators=get("COLLABORATORS"),
        )
