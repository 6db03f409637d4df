"""CRD manifest generation from the registered resource models."""

import hashlib
import json
import logging
from pathlib import Path

import yaml

from .registry import CRDRegistry

logger = logging.getLogger(__name__)

PRESERVE_UNKNOWN = "x-kubernetes-preserve-unknown-fields"


class OpenAPIConverter:
    """Convert pydantic JSON schemas to structural OpenAPI v3 schemas."""

    @staticmethod
    def convert_schema(pydantic_schema):
        defs = pydantic_schema.get("$defs", {})
        return OpenAPIConverter._convert_property(pydantic_schema, defs)

    @staticmethod
    def _convert_property(prop_schema, defs):
        if "$ref" in prop_schema:
            def_name = prop_schema["$ref"].split("/")[-1]
            resolved = dict(defs.get(def_name, {}))
            for key in ("description", "default"):
                if key in prop_schema:
                    resolved[key] = prop_schema[key]
            return OpenAPIConverter._convert_property(resolved, defs)

        if len(prop_schema.get("allOf", [])) == 1:
            merged = {k: v for k, v in prop_schema.items() if k != "allOf"}
            merged.update(prop_schema["allOf"][0])
            return OpenAPIConverter._convert_property(merged, defs)

        # Optional[X] renders as anyOf [X, null]
        if "anyOf" in prop_schema:
            branches = [b for b in prop_schema["anyOf"] if b.get("type") != "null"]
            if len(branches) == 1:
                merged = dict(branches[0])
                if "description" in prop_schema:
                    merged["description"] = prop_schema["description"]
                converted = OpenAPIConverter._convert_property(merged, defs)
                converted["nullable"] = True
                return converted
            return {PRESERVE_UNKNOWN: True}

        prop_type = prop_schema.get("type")
        converted = {}
        if "description" in prop_schema:
            converted["description"] = prop_schema["description"]

        if prop_type == "array":
            converted["type"] = "array"
            converted["items"] = OpenAPIConverter._convert_property(
                prop_schema.get("items", {}), defs
            )
        elif prop_type == "object" or "properties" in prop_schema:
            converted["type"] = "object"
            if prop_schema.get("properties"):
                converted["properties"] = {
                    name: OpenAPIConverter._convert_property(sub, defs)
                    for name, sub in prop_schema["properties"].items()
                }
                if prop_schema.get("required"):
                    converted["required"] = prop_schema["required"]
            elif isinstance(prop_schema.get("additionalProperties"), dict):
                converted["additionalProperties"] = OpenAPIConverter._convert_property(
                    prop_schema["additionalProperties"], defs
                )
            else:
                converted[PRESERVE_UNKNOWN] = True
        elif prop_type:
            converted["type"] = prop_type
            for key in ("format", "enum"):
                if key in prop_schema:
                    converted[key] = prop_schema[key]
            if "default" in prop_schema and prop_schema["default"] is not None:
                converted["default"] = prop_schema["default"]
        else:
            converted[PRESERVE_UNKNOWN] = True

        return converted


class CRDManager:
    """Renders, writes and applies CRDs for every registered resource model."""

    def __init__(self, output_dir=None):
        self.output_dir = Path(output_dir or "crds/generated")
        self.registry = CRDRegistry()
        self.converter = OpenAPIConverter()

    def _models(self):
        self.registry.discover_models()
        return self.registry.get_all_models()

    def generate_crd_definition(self, model_info):
        """Build one CustomResourceDefinition manifest."""
        model_class = model_info["model"]
        spec_class = model_class.model_fields["spec"].annotation
        spec_schema = self.converter.convert_schema(spec_class.model_json_schema())
        singular = model_info["singular"]

        return {
            "apiVersion": "apiextensions.k8s.io/v1",
            "kind": "CustomResourceDefinition",
            "metadata": {"name": f"{model_info['plural']}.{model_info['group']}"},
            "spec": {
                "group": model_info["group"],
                "versions": [
                    {
                        "name": model_info["version"],
                        "served": True,
                        "storage": True,
                        "schema": {
                            "openAPIV3Schema": {
                                "type": "object",
                                "properties": {
                                    "spec": spec_schema,
                                    "status": {
                                        "type": "object",
                                        PRESERVE_UNKNOWN: True,
                                    },
                                },
                            }
                        },
                        "subresources": {"status": {}},
                        "additionalPrinterColumns": [
                            {
                                "name": "Ready",
                                "type": "string",
                                "jsonPath": '.status.conditions[?(@.type=="Ready")].status',
                            }
                        ],
                    }
                ],
                "scope": model_info["scope"],
                "names": {
                    "plural": model_info["plural"],
                    "singular": singular,
                    "kind": model_info["kind"],
                },
            },
        }

    def get_crds_as_dict(self):
        """All CRDs keyed by CRD name, rendered in memory."""
        crds = {}
        for model_info in self._models().values():
            crd_def = self.generate_crd_definition(model_info)
            crds[crd_def["metadata"]["name"]] = crd_def
        return crds

    def generate_all_crds(self, force=False):
        """Write CRD files and kustomization.yaml when the models changed.

        Returns:
            bool: True if files were written, False if nothing changed
        """
        self.output_dir.mkdir(parents=True, exist_ok=True)
        current_hash = self._calculate_models_hash()
        hash_file = self.output_dir / ".models_hash"

        if not force and hash_file.exists():
            if hash_file.read_text().strip() == current_hash:
                logger.info("Resource models unchanged, skipping CRD generation")
                return False

        crds = self.get_crds_as_dict()
        if not crds:
            logger.warning("No resource models found to generate")
            return False

        filenames = []
        for crd_name, crd_def in sorted(crds.items()):
            filename = f"{crd_name}.yaml"
            with open(self.output_dir / filename, "w") as f:
                yaml.dump(crd_def, f, default_flow_style=False, sort_keys=False)
            filenames.append(filename)
            logger.info(f"Generated CRD: {filename}")

        kustomization = {
            "apiVersion": "kustomize.config.k8s.io/v1beta1",
            "kind": "Kustomization",
            "resources": filenames,
        }
        with open(self.output_dir / "kustomization.yaml", "w") as f:
            yaml.dump(kustomization, f, default_flow_style=False)

        hash_file.write_text(current_hash)
        logger.info(f"Generated {len(filenames)} CRD files")
        return True

    def _calculate_models_hash(self):
        model_data = {
            key: self.generate_crd_definition(info)
            for key, info in sorted(self._models().items())
        }
        model_json = json.dumps(model_data, sort_keys=True)
        return hashlib.sha256(model_json.encode()).hexdigest()

    def apply_crds_to_cluster(self, api_client=None):
        """Create or replace every CRD on the cluster.

        Returns:
            int: number of CRDs applied
        """
        from kubernetes import client

        api = api_client or client.ApiextensionsV1Api()
        applied_count = 0
        for crd_name, crd_def in self.get_crds_as_dict().items():
            try:
                existing = api.read_custom_resource_definition(crd_name)
                crd_def["metadata"]["resourceVersion"] = (
                    existing.metadata.resource_version
                )
                api.replace_custom_resource_definition(name=crd_name, body=crd_def)
                logger.info(f"Updated CRD: {crd_name}")
            except client.exceptions.ApiException as e:
                if e.status != 404:
                    logger.error(f"Failed to apply CRD {crd_name}: {e}")
                    continue
                api.create_custom_resource_definition(body=crd_def)
                logger.info(f"Created CRD: {crd_name}")
            applied_count += 1

        logger.info(f"Applied {applied_count} CRDs to cluster")
        return applied_count

    def validate_generated_crds(self):
        """Check that every generated file is a well-formed CRD manifest."""
        if not self.output_dir.exists():
            logger.error("CRD output directory does not exist")
            return False

        crd_files = [
            f
            for f in self.output_dir.glob("*.yaml")
            if f.name != "kustomization.yaml"
        ]
        if not crd_files:
            logger.error("No CRD files found to validate")
            return False

        valid_count = 0
        for crd_file in crd_files:
            with open(crd_file, "r") as f:
                crd_def = yaml.safe_load(f)

            if not isinstance(crd_def, dict):
                logger.error(f"Invalid YAML in {crd_file}")
                continue
            if not all(k in crd_def for k in ("apiVersion", "kind", "metadata", "spec")):
                logger.error(f"Missing required fields in {crd_file}")
                continue
            if crd_def["kind"] != "CustomResourceDefinition":
                logger.error(f"Not a CRD: {crd_file}")
                continue
            valid_count += 1

        logger.info(f"Validated {valid_count}/{len(crd_files)} CRD files")
        return valid_count == len(crd_files)
