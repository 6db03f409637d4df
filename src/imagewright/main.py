import logging

import kopf
import kubernetes

from imagewright import operator
from imagewright.collaborators import load_collaborators
from imagewright.config import OperatorConfig
from imagewright.crd.generator import CRDManager
from imagewright.plugins.registry import PluginRegistry
from imagewright.store.kube import KubeResourceStore

config = OperatorConfig.from_env()

logging.basicConfig(
    level=getattr(logging, config.log_level, logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Global plugin registry instance
plugin_registry = None


def load_kube_config():
    try:
        kubernetes.config.load_incluster_config()
        logger.info("Loaded in-cluster Kubernetes config")
    except kubernetes.config.ConfigException:
        try:
            kubernetes.config.load_kube_config()
            logger.info("Loaded local Kubernetes config")
        except Exception as e:
            logger.warning(f"Could not load Kubernetes config: {e}")


def apply_crds():
    try:
        crd_manager = CRDManager()
        if config.generate_crd_files:
            logger.info("Generating CRD files and applying to cluster")
            crd_manager.generate_all_crds(force=True)
        else:
            logger.info("Applying CRDs in memory-only mode (no YAML files)")

        if crd_manager.apply_crds_to_cluster():
            logger.info("CRDs applied to cluster successfully")
        else:
            logger.warning("No CRDs were applied to cluster")
    except Exception as e:
        logger.error(f"Failed to apply CRDs to cluster: {e}")


@kopf.on.startup()
def startup_fn(settings: kopf.OperatorSettings, **kwargs):
    """Wire the store, collaborators and controllers, then start them."""
    global plugin_registry

    logger.info("imagewright operator is starting up...")
    load_kube_config()

    if config.manage_crds:
        apply_crds()

    if not config.collaborators:
        raise RuntimeError("COLLABORATORS must name a 'module:factory' provider")
    collaborators = load_collaborators(config.collaborators, config)

    context = operator.OperatorContext(
        config,
        KubeResourceStore(),
        collaborators,
        operator.build_keychain_factory(config, collaborators),
    )

    plugin_registry = PluginRegistry()
    if plugin_registry.discover_plugins() == 0:
        logger.error("No plugins discovered - operator will have no functionality")
        raise RuntimeError("No plugins available")

    init_results = plugin_registry.initialise_all_plugins(context)
    if not any(init_results.values()):
        logger.error("No plugins initialized successfully")
        raise RuntimeError("Plugin initialization failed")

    plugin_registry.register_all_handlers()
    operator.set_current(context)
    context.start()

    settings.batching.worker_limit = config.worker_limit
    settings.posting.enabled = False
    settings.watching.server_timeout = config.server_timeout

    logger.info(f"Initialised plugins: {list(init_results.keys())}")
    logger.info(f"Controllers: {sorted(context.controllers)}")
    logger.info("imagewright operator startup complete")


@kopf.on.cleanup()
def cleanup_fn(**kwargs):
    logger.info("imagewright operator is shutting down...")

    context = operator.current()
    if context is not None:
        context.stop()
        operator.set_current(None)
    if plugin_registry:
        plugin_registry.shutdown_all_plugins()

    logger.info("imagewright operator shutdown complete")


@kopf.on.probe(id="plugins")
def plugins_health(**kwargs):
    """Plugin health, served on the liveness endpoint when one is configured."""
    if plugin_registry is None:
        return {}
    return plugin_registry.get_plugins_health_status()

def main():
    # Watch handlers must be registered before kopf starts its watchers.
    from imagewright.handlers import events  # noqa: F401

    try:
        kopf.run(clusterwide=True, liveness_endpoint=config.liveness_endpoint)
    except KeyboardInterrupt:
        logger.info("Operator stopped by user")
    except Exception as e:
        logger.error(f"Operator failed: {e}")
        raise


if __name__ == "__main__":
    main()
