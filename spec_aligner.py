# spec_aligner.py
"""
Spec Aligner

Clusters terms and API operations across Spec Indexes, picks a canonical owner
per cluster and reports conflicts (disagreeing members) and gaps (references
that resolve to nothing).
"""

from typing import List, Optional, Sequence, Set, Tuple

from config import DEFAULTS, AppConfig, SpecFamily
from models import (
    CanonicalClauseCluster,
    CanonicalTermCluster,
    ClauseMember,
    Conflict,
    CrossSpecMap,
    Gap,
    OperationContract,
    SpecIndex,
    Term,
    TermMember,
)
from utils import count_keyword_hits, group_by, normalize, sort_key_text, uniq, utc_now_iso

TermRow = Tuple[str, Term]                  # (spec_id, term)
OperationRow = Tuple[str, OperationContract]  # (spec_id, operation)


def operation_concept(op: OperationContract) -> str:
    return op.operation_id or f"{op.method} {op.path}"


class SpecAligner:
    """Builds the Cross-Spec Map for a self spec and its peers."""

    def __init__(self, cfg: Optional[AppConfig] = None, families: Optional[Sequence[SpecFamily]] = None):
        self.cfg = cfg or DEFAULTS
        self.families = tuple(families if families is not None else self.cfg.families)

    # ---------- Public API ----------

    def align(self, specs: List[SpecIndex], self_spec_id: str, generated_at: Optional[str] = None) -> CrossSpecMap:
        """specs holds the self index first, then every loaded peer."""
        conflicts: List[Conflict] = []
        terms = self.cluster_terms(specs, conflicts)
        clauses = self.cluster_operations(specs, conflicts)
        gaps = self.detect_gaps(specs)

        return CrossSpecMap(
            generated_at=generated_at or utc_now_iso(),
            self_spec_id=self_spec_id,
            canonical_terms=sorted(terms, key=lambda c: sort_key_text(c.canonical_term)),
            canonical_clauses=sorted(clauses, key=lambda c: sort_key_text(c.clause_concept)),
            conflicts=conflicts,
            gaps=gaps,
        )

    def cluster_terms(self, specs: List[SpecIndex], conflicts: List[Conflict]) -> List[CanonicalTermCluster]:
        rows: List[TermRow] = [(s.spec_id, t) for s in specs for t in s.terms]
        clusters: List[CanonicalTermCluster] = []

        for norm, members in group_by(rows, lambda r: normalize(r[1].term_text)).items():
            owner = self.choose_term_owner(members)
            canonical = next((t for sid, t in members if sid == owner), members[0][1])

            hashes = uniq(t.definition_excerpt_hash for _, t in members if t.definition_excerpt_hash)
            if len(hashes) > 1:
                conflicts.append(Conflict(
                    kind="term-definition-conflict",
                    member_specs=uniq(sid for sid, _ in members),
                    normalized_term=norm,
                    definition_hashes=hashes,
                ))

            clusters.append(CanonicalTermCluster(
                canonical_term=canonical.term_text,
                canonical_owner_spec_id=owner,
                canonical_anchor=canonical.anchor,
                aliases=uniq(t.term_text for _, t in members if t.term_text != canonical.term_text),
                members=[
                    TermMember(sid, t.term_text, t.term_id, t.anchor, t.definition_excerpt_hash)
                    for sid, t in members
                ],
            ))
        return clusters

    def choose_term_owner(self, members: List[TermRow]) -> str:
        """
        Score every family by how many of its keywords occur in the members'
        text and excerpts. The best family owns the term when it scored and
        one of the members belongs to it; otherwise the lowest spec id does.
        Ties keep family table order.
        """
        corpus = " ".join(f"{t.term_text} {t.definition_text_excerpt or ''}".lower() for _, t in members)
        member_specs = {sid for sid, _ in members}

        if self.families:
            # sorted() is stable, so equal scores keep table order
            ranked = sorted(self.families, key=lambda f: count_keyword_hits(corpus, f.keywords), reverse=True)
            best = ranked[0]
            if count_keyword_hits(corpus, best.keywords) > 0 and best.spec_id in member_specs:
                return best.spec_id
        return sorted(member_specs)[0]

    def cluster_operations(self, specs: List[SpecIndex], conflicts: List[Conflict]) -> List[CanonicalClauseCluster]:
        rows: List[OperationRow] = [
            (s.spec_id, op) for s in specs if s.openapi for op in s.openapi.operations
        ]
        clusters: List[CanonicalClauseCluster] = []

        for concept, members in group_by(rows, lambda r: operation_concept(r[1])).items():
            owner = self.choose_operation_owner(members)
            own = next((op for sid, op in members if sid == owner), members[0][1])
            specs_in = uniq(sid for sid, _ in members)

            if len(members) > 1:
                req_ids = uniq(op.requirement_id for _, op in members if op.requirement_id)
                if len(req_ids) > 1:
                    conflicts.append(Conflict(
                        kind="requirement-id-namespace-conflict",
                        member_specs=specs_in,
                        clause_concept=concept,
                        requirement_ids=req_ids,
                    ))
                if len({op.contract_hash for _, op in members}) > 1:
                    conflicts.append(Conflict(
                        kind="operation-contract-conflict",
                        member_specs=specs_in,
                        clause_concept=concept,
                    ))

            clusters.append(CanonicalClauseCluster(
                clause_concept=concept,
                canonical_owner_spec_id=owner,
                canonical_clause_id=own.requirement_id or "UNSPECIFIED",
                member_clause_ids=[
                    ClauseMember(sid, op.requirement_id, op.method, op.path) for sid, op in members
                ],
            ))
        return clusters

    def choose_operation_owner(self, members: List[OperationRow]) -> str:
        """A family whose path marker appears in any member path wins outright."""
        for family in self.families:
            if family.path_marker and any(family.path_marker in op.path for _, op in members):
                return family.spec_id
        return members[0][0]

    def detect_gaps(self, specs: List[SpecIndex]) -> List[Gap]:
        defined: Set[str] = {normalize(t.term_text) for s in specs for t in s.terms}
        gaps: List[Gap] = []
        for s in specs:
            # requirement anchoring is local to each document
            clause_ids = {c.clause_id for c in s.clauses}
            for ref in s.term_references:
                if normalize(ref) not in defined:
                    gaps.append(Gap(type="undefined-term", spec_id=s.spec_id, term_reference=ref))
            for req in s.requirement_references:
                if req not in clause_ids:
                    gaps.append(Gap(type="unanchored-requirement-reference", spec_id=s.spec_id, requirement_id=req))
        return gaps
