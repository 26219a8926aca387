# models.py
"""
Data structures for the cross-spec alignment pipeline.
Contains the records extracted per document and the alignment output built over them.
"""

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional


def _compact(d: Dict[str, Any]) -> Dict[str, Any]:
    """Drop keys whose value is None (tagged records only carry their own fields)."""
    return {k: v for k, v in d.items() if v is not None}


# ==========================
# Per-document records
# ==========================

@dataclass
class SectionMarker:
    """Opening tag of an id-bearing <section>, in document order."""
    offset: int
    section_id: str


@dataclass
class Term:
    term_text: str
    term_id: str
    anchor: str
    section_anchor: Optional[str]
    definition_excerpt_hash: Optional[str]
    definition_text_excerpt: str


@dataclass
class Clause:
    clause_id: str
    anchor: str
    kind: str                    # 'requirement', 'algorithm' or 'invariant'
    normative_keywords_used: List[str]
    text_excerpt_hash: str
    text_excerpt: str


@dataclass
class CrossReference:
    """Represents a reference to a peer specification found in the markup."""
    kind: str                    # 'href' or 'label'
    target_spec_id: str
    href: Optional[str]
    label: str


@dataclass
class RequirementEntry:
    requirement_id: str
    description: str


@dataclass
class RequirementSet:
    extension: str
    entries: List[RequirementEntry] = field(default_factory=list)


@dataclass
class OperationContract:
    method: str
    path: str
    operation_id: Optional[str]
    requirement_id: Optional[str]
    request_media_types: List[str]
    request_schema_pointers: List[str]
    response_media_types: List[str]
    response_schema_pointers: List[str]
    contract_hash: str = ""
    # set when the schema walk hit the depth bound and pointers may be missing
    schema_walk_truncated: bool = False

    def hashed_fields(self) -> Dict[str, Any]:
        return {
            "method": self.method,
            "path": self.path,
            "operation_id": self.operation_id,
            "requirement_id": self.requirement_id,
            "request_media_types": self.request_media_types,
            "request_schema_pointers": self.request_schema_pointers,
            "response_media_types": self.response_media_types,
            "response_schema_pointers": self.response_schema_pointers,
        }


@dataclass
class SchemaComponent:
    name: str
    json_pointer: str
    key_constraints_hash: str


@dataclass
class ContractSet:
    info_version: str
    requirement_sets: List[RequirementSet] = field(default_factory=list)
    operations: List[OperationContract] = field(default_factory=list)
    schemas: List[SchemaComponent] = field(default_factory=list)


@dataclass
class SpecFiles:
    index_html: Optional[str] = None
    openapi_yaml: Optional[str] = None
    agents_md: Optional[str] = None


@dataclass(frozen=True)
class SpecIndex:
    spec_id: str
    repo: str
    home_url: str
    commit_or_version: str
    files: SpecFiles
    terms: List[Term]
    clauses: List[Clause]
    term_references: List[str]
    requirement_references: List[str]
    cross_spec_references: List[CrossReference]
    openapi: Optional[ContractSet] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# ==========================
# Alignment output
# ==========================

@dataclass
class TermMember:
    spec_id: str
    term_text: str
    term_id: str
    anchor: str
    definition_hash: Optional[str]


@dataclass
class CanonicalTermCluster:
    canonical_term: str
    canonical_owner_spec_id: str
    canonical_anchor: str
    aliases: List[str]
    members: List[TermMember]


@dataclass
class ClauseMember:
    spec_id: str
    requirement_id: Optional[str]
    method: str
    path: str


@dataclass
class CanonicalClauseCluster:
    clause_concept: str
    canonical_owner_spec_id: str
    canonical_clause_id: str
    member_clause_ids: List[ClauseMember]


@dataclass
class Conflict:
    kind: str                    # term-definition-conflict | requirement-id-namespace-conflict | operation-contract-conflict
    member_specs: List[str]
    normalized_term: Optional[str] = None
    definition_hashes: Optional[List[str]] = None
    clause_concept: Optional[str] = None
    requirement_ids: Optional[List[str]] = None

    def to_dict(self) -> Dict[str, Any]:
        return _compact(asdict(self))


@dataclass
class Gap:
    type: str                    # undefined-term | unanchored-requirement-reference
    spec_id: str
    term_reference: Optional[str] = None
    requirement_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return _compact(asdict(self))


@dataclass
class MissingPeer:
    spec_id: str
    repo: str
    missing: str
    attempted_paths: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class CrossSpecMap:
    generated_at: str
    self_spec_id: str
    canonical_terms: List[CanonicalTermCluster] = field(default_factory=list)
    canonical_clauses: List[CanonicalClauseCluster] = field(default_factory=list)
    conflicts: List[Conflict] = field(default_factory=list)
    gaps: List[Gap] = field(default_factory=list)
    status: Optional[str] = None
    missing_peers: Optional[List[MissingPeer]] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "generated_at": self.generated_at,
            "self_spec_id": self.self_spec_id,
            "canonical_terms": [asdict(t) for t in self.canonical_terms],
            "canonical_clauses": [asdict(c) for c in self.canonical_clauses],
            "conflicts": [c.to_dict() for c in self.conflicts],
            "gaps": [g.to_dict() for g in self.gaps],
        }
        if self.status is not None:
            out["status"] = self.status
        if self.missing_peers is not None:
            out["missing_peers"] = [asdict(p) for p in self.missing_peers]
        return out
