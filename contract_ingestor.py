# contract_ingestor.py
"""
Contract Ingestor

Reads an OpenAPI-style description attached to a spec and reduces it to
per-operation contracts, requirement sets and schema hashes.
"""

import re
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

import yaml

from config import DEFAULTS, IngestConfig
from models import ContractSet, OperationContract, RequirementEntry, RequirementSet, SchemaComponent
from utils import content_hash, stable_serialize

REQUIREMENT_SET_KEY = re.compile(r"requirements$", re.IGNORECASE)
REQUIREMENT_KEY = re.compile(r"requirement$", re.IGNORECASE)
REF_KEY = "$ref"


def _is_mapping(value: Any) -> bool:
    return isinstance(value, dict)


def load_contract_document(text: str) -> Dict[str, Any]:
    """Parse YAML (or JSON) text; anything other than a mapping counts as empty."""
    doc = yaml.safe_load(text)
    return doc if _is_mapping(doc) else {}


class ContractIngestor:
    """Builds a ContractSet from a parsed API description."""

    def __init__(self, cfg: Optional[IngestConfig] = None):
        self.cfg = cfg or DEFAULTS.ingest

    # ---------- Public API ----------

    def parse(self, text: str) -> ContractSet:
        return self.extract(load_contract_document(text))

    def extract(self, doc: Dict[str, Any]) -> ContractSet:
        info = doc.get("info")
        version = info.get("version") if _is_mapping(info) else None
        return ContractSet(
            info_version=str(version) if version else "unspecified",
            requirement_sets=self._requirement_sets(doc),
            operations=self._operations(doc),
            schemas=self._schemas(doc),
        )

    # ---------- Sections ----------

    def _requirement_sets(self, doc: Dict[str, Any]) -> List[RequirementSet]:
        out: List[RequirementSet] = []
        for key, value in doc.items():
            key = str(key)
            if key.startswith("x-") and REQUIREMENT_SET_KEY.search(key) and _is_mapping(value):
                entries = [RequirementEntry(str(rid), str(desc)) for rid, desc in value.items()]
                out.append(RequirementSet(extension=key, entries=entries))
        return out

    def _operations(self, doc: Dict[str, Any]) -> List[OperationContract]:
        paths = doc.get("paths")
        if not _is_mapping(paths):
            return []

        ops: List[OperationContract] = []
        for path, item in paths.items():
            if not _is_mapping(item):
                continue
            for method in self.cfg.http_methods:
                op = item.get(method)
                if _is_mapping(op):
                    ops.append(self._operation(method, str(path), op))
        return ops

    def _operation(self, method: str, path: str, op: Dict[str, Any]) -> OperationContract:
        truncated = False

        body = op.get("requestBody")
        req_content = body.get("content") if _is_mapping(body) else None
        req_media, req_refs, hit = self._media_and_refs([req_content])
        truncated |= hit

        responses = op.get("responses")
        res_contents = responses.values() if _is_mapping(responses) else []
        res_media, res_refs, hit = self._media_and_refs(
            r.get("content") for r in res_contents if _is_mapping(r)
        )
        truncated |= hit

        contract = OperationContract(
            method=method.upper(),
            path=path,
            operation_id=self._operation_id(op),
            requirement_id=self._linked_requirement(op),
            request_media_types=req_media,
            request_schema_pointers=req_refs,
            response_media_types=res_media,
            response_schema_pointers=res_refs,
            schema_walk_truncated=truncated,
        )
        contract.contract_hash = content_hash(stable_serialize(contract.hashed_fields()))
        return contract

    def _schemas(self, doc: Dict[str, Any]) -> List[SchemaComponent]:
        components = doc.get("components")
        schemas = components.get("schemas") if _is_mapping(components) else None
        if not _is_mapping(schemas):
            return []
        return [
            SchemaComponent(
                name=str(name),
                json_pointer=f"#/components/schemas/{name}",
                key_constraints_hash=content_hash(stable_serialize(schema)),
            )
            for name, schema in schemas.items()
        ]

    # ---------- Helpers ----------

    @staticmethod
    def _operation_id(op: Dict[str, Any]) -> Optional[str]:
        # YAML turns `operationId: 123` into an int
        value = op.get("operationId")
        if value is None or value == "":
            return None
        return value if isinstance(value, str) else str(value)

    @staticmethod
    def _linked_requirement(op: Dict[str, Any]) -> Optional[str]:
        for key, value in op.items():
            key = str(key)
            if key.startswith("x-") and REQUIREMENT_KEY.search(key) and isinstance(value, str):
                return value
        return None

    def _media_and_refs(self, contents: Iterable[Any]) -> Tuple[List[str], List[str], bool]:
        """Union of media types and schema pointers over several content maps."""
        media: Set[str] = set()
        refs: Set[str] = set()
        truncated = False
        for content in contents:
            if not _is_mapping(content):
                continue
            for media_type, entry in content.items():
                media.add(str(media_type))
                if _is_mapping(entry):
                    truncated |= self.collect_schema_refs(entry.get("schema"), refs)
        return sorted(media), sorted(refs), truncated

    def collect_schema_refs(self, node: Any, out: Set[str], depth: int = 0) -> bool:
        """
        Add every string "$ref" found under node to out.
        Returns True when the walk stopped at the depth bound.
        """
        if node is None:
            return False
        if depth > self.cfg.schema_walk_depth:
            return isinstance(node, (list, dict))
        truncated = False
        if isinstance(node, list):
            for child in node:
                truncated |= self.collect_schema_refs(child, out, depth + 1)
            return truncated
        if not _is_mapping(node):
            return False
        ref = node.get(REF_KEY)
        if isinstance(ref, str):
            out.add(ref)
        for child in node.values():
            truncated |= self.collect_schema_refs(child, out, depth + 1)
        return truncated
