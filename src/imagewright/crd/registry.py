"""Registry of resource models, keyed by group/version/kind."""

import importlib
import logging
import pkgutil

logger = logging.getLogger(__name__)


class CRDRegistry:
    """Global registry for resource models with package discovery."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._models = {}
        return cls._instance

    @classmethod
    def register(cls, group, version, kind, plural=None, scope="Namespaced"):
        """Decorator registering a resource model.

        Args:
            group: API group (e.g., 'build.imagewright.io')
            version: API version (e.g., 'v1alpha1')
            kind: Kind name (e.g., 'Image')
            plural: Plural name (defaults to kind.lower() + 's')
            scope: 'Namespaced' or 'Cluster'
        """

        def decorator(model_class):
            if "spec" not in getattr(model_class, "model_fields", {}):
                raise ValueError(f"Resource model {model_class.__name__} has no spec")

            model_class.crd_group = group
            model_class.crd_version = version
            model_class.crd_kind = kind
            model_class.crd_plural = plural or f"{kind.lower()}s"
            model_class.crd_scope = scope

            key = f"{group}/{version}/{kind}"
            cls()._models[key] = {
                "model": model_class,
                "group": group,
                "version": version,
                "kind": kind,
                "plural": model_class.crd_plural,
                "scope": scope,
                "singular": kind.lower(),
            }

            logger.debug(f"Registered resource model: {key}")
            return model_class

        return decorator

    def discover_models(self, package_paths=None):
        """Import every module of the given packages so decorators run."""
        for package_path in package_paths or ["imagewright.models"]:
            package = importlib.import_module(package_path)
            for _, module_name, _ in pkgutil.iter_modules(package.__path__):
                importlib.import_module(f"{package_path}.{module_name}")
                logger.debug(f"Discovered models in {package_path}.{module_name}")

    def get_all_models(self):
        return self._models.copy()

    def get_model_by_key(self, group, version, kind):
        return self._models.get(f"{group}/{version}/{kind}")

    def get_model_by_kind(self, kind):
        """Resource class for ``kind``; kinds are unique within this operator."""
        for info in self._models.values():
            if info["kind"] == kind:
                return info["model"]
        raise KeyError(f"No resource model registered for kind {kind}")

    def get_models_by_group(self, group):
        return {
            key: info for key, info in self._models.items() if info["group"] == group
        }

    def validate_model_schema(self, model_class):
        """Whether the model's spec renders to an object schema."""
        try:
            spec_class = model_class.model_fields["spec"].annotation
            schema = spec_class.model_json_schema()
            return isinstance(schema.get("properties", {}), dict)
        except Exception as e:
            logger.error(f"Schema validation failed for {model_class.__name__}: {e}")
            return False
