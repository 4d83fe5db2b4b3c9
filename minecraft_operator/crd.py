"""
CRD document generation from the pydantic spec models.

Pydantic emits JSON Schema with `$defs`/`$ref` and `anyOf: [..., null]`
for optionals; Kubernetes needs a structural schema, so references are
inlined and nullable unions collapsed into `nullable: true`.
"""
import copy

import yaml

from minecraft_operator.config import Settings, settings as default_settings
from minecraft_operator.models import MinecraftSpec

# Keys JSONSchemaProps does not accept
_DROPPED_KEYS = {"title", "examples", "$defs"}


def _structural(node, defs: dict):
    if isinstance(node, list):
        return [_structural(item, defs) for item in node]
    if not isinstance(node, dict):
        return node

    if "$ref" in node:
        target = defs[node["$ref"].rsplit("/", 1)[-1]]
        merged = {**copy.deepcopy(target), **{k: v for k, v in node.items() if k != "$ref"}}
        return _structural(merged, defs)

    if len(node.get("allOf", ())) == 1:
        rest = {k: v for k, v in node.items() if k != "allOf"}
        return _structural({**node["allOf"][0], **rest}, defs)

    if "anyOf" in node:
        branches = [b for b in node["anyOf"] if b.get("type") != "null"]
        if len(branches) == 1 and len(branches) < len(node["anyOf"]):
            rest = {k: v for k, v in node.items() if k != "anyOf"}
            merged = {**_structural(branches[0], defs), **_structural(rest, defs)}
            merged["nullable"] = True
            if merged.get("default", ...) is None:
                del merged["default"]
            return merged

    return {
        key: _structural(value, defs)
        for key, value in node.items()
        if key not in _DROPPED_KEYS
    }


# The claim template of a StatefulSet cannot change after creation
STORAGE_IMMUTABLE = {"rule": "self == oldSelf", "message": "storage is immutable"}


def spec_schema() -> dict:
    """openAPIV3Schema for `.spec`."""
    schema = MinecraftSpec.model_json_schema()
    structural = _structural(schema, schema.get("$defs", {}))
    structural["properties"]["storage"]["x-kubernetes-validations"] = [STORAGE_IMMUTABLE]
    return structural


def generate_crd(cfg: Settings = default_settings) -> dict:
    return {
        "apiVersion": "apiextensions.k8s.io/v1",
        "kind": "CustomResourceDefinition",
        "metadata": {"name": f"{cfg.CRD_PLURAL}.{cfg.CRD_GROUP}"},
        "spec": {
            "group": cfg.CRD_GROUP,
            "names": {
                "kind": cfg.CRD_KIND,
                "plural": cfg.CRD_PLURAL,
                "singular": cfg.CRD_KIND.lower(),
                "shortNames": [cfg.CRD_SHORTNAME],
            },
            "scope": "Namespaced",
            "versions": [{
                "name": cfg.CRD_VERSION,
                "served": True,
                "storage": True,
                "additionalPrinterColumns": [
                    {"name": "Image", "type": "string", "jsonPath": ".spec.image"},
                    {"name": "NodePort", "type": "boolean", "jsonPath": ".spec.nodePort"},
                    {"name": "Age", "type": "date", "jsonPath": ".metadata.creationTimestamp"},
                ],
                "schema": {
                    "openAPIV3Schema": {
                        "type": "object",
                        "description": "A Minecraft server instance",
                        "required": ["spec"],
                        "properties": {"spec": spec_schema()},
                    },
                },
            }],
        },
    }


def render_crd(cfg: Settings = default_settings) -> str:
    return yaml.safe_dump(generate_crd(cfg), sort_keys=False)
