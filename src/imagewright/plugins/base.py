"""Base plugin architecture for the imagewright operator."""

from abc import ABC, abstractmethod
import logging

from imagewright.controller import Controller

logger = logging.getLogger(__name__)


class PluginBase(ABC):
    """A family of resources with the controllers that reconcile them."""

    def __init__(self):
        self._initialised = False
        self.context = None

    @property
    @abstractmethod
    def name(self):
        """Unique name for this plugin."""
        pass

    @property
    @abstractmethod
    def version(self):
        """Plugin version."""
        pass

    @property
    @abstractmethod
    def description(self):
        """Human-readable description of what this plugin does."""
        pass

    @property
    @abstractmethod
    def models(self):
        """Return list of resource models this plugin reconciles."""
        pass

    def initialise(self, context):
        """Build this plugin's controllers. Called once during operator startup.

        Returns:
            bool: True if initialisation successful, False otherwise
        """
        if self._initialised:
            logger.warning(f"Plugin {self.name} already initialised")
            return True

        try:
            logger.info(
                f"Initialising plugin: {self.name} v{self.version} ({self.description})"
            )
            self.context = context
            for model in self.models:
                if not model.crd_kind:
                    logger.warning(
                        f"Model {model.__name__} not properly decorated with @CRDRegistry.register"
                    )
            self._initialise_plugin(context)
            self._initialised = True
            logger.info(f"Plugin {self.name} initialised successfully")
            return True

        except Exception as e:
            logger.error(f"Failed to initialise plugin {self.name}: {e}")
            return False

    @abstractmethod
    def _initialise_plugin(self, context):
        """Create controllers and trackers."""
        pass

    def controller(self, name, reconciler, resource_class, queue=None):
        """Create a controller with the operator's worker and resync settings."""
        config = self.context.config
        return self.context.add_controller(
            Controller(
                name,
                reconciler,
                workers=config.reconcile_workers,
                reconcile_timeout=config.reconcile_timeout,
                resync_period=config.resync_period,
                list_keys=self.context.list_keys(resource_class),
                queue=queue,
            )
        )

    @abstractmethod
    def handle_event(self, resource, event_type):
        """Route an observed watch event to controllers and trackers."""
        pass

    def register_handlers(self):
        """Import the kopf watch handlers so their decorators run."""
        from imagewright.handlers import events  # noqa: F401

    def shutdown(self):
        """Cleanup plugin resources. Called during operator shutdown."""
        if not self._initialised:
            return

        logger.info(f"Shutting down plugin: {self.name}")
        self._initialised = False

    def get_health_status(self):
        return {
            "name": self.name,
            "version": self.version,
            "initialised": self._initialised,
            "models_count": len(self.models),
            "status": "healthy" if self._initialised else "not_initialised",
        }
