# utils.py
"""
Shared utility functions for the cross-spec alignment pipeline.
Consolidates text canonicalization, hashing, markup cleanup and report rendering.
"""

import hashlib
import html
import json
import re
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Hashable, Iterable, List, Optional, Sequence, TypeVar, TYPE_CHECKING

from pyuca import Collator

# Use TYPE_CHECKING to avoid circular imports at runtime
if TYPE_CHECKING:
    from models import CrossSpecMap, MissingPeer, SpecIndex

T = TypeVar("T")
K = TypeVar("K", bound=Hashable)

OUTPUT_FILES = (
    "spec-index.self.json",
    "spec-index.peers.json",
    "cross-spec-map.json",
    "alignment-report.md",
    "proposed-changes.patch",
)


# ==========================
# Text Canonicalization
# ==========================

_WS = re.compile(r"\s+")
_SEPARATORS = re.compile(r"[_\-]+")
_PUNCT = re.compile(r"[^\w\s]")


def canon(text: str) -> str:
    """Collapse whitespace runs to one space and trim."""
    return _WS.sub(" ", text).strip()


def normalize(text: str) -> str:
    """
    Lexical form used to match the same term across documents.

    Lower-cases, turns punctuation into spaces and drops a trailing "s" from
    tokens longer than 3 characters. Tokens ending in "ss" keep their ending,
    so normalizing twice gives the same result. Unlike stripping every trailing
    "s", "glass" therefore stays "glass" and does not cluster with "glas".
    """
    text = _SEPARATORS.sub(" ", text.lower())
    text = canon(_PUNCT.sub(" ", text))
    tokens = []
    for tok in text.split(" "):
        if len(tok) > 3 and tok.endswith("s") and not tok.endswith("ss"):
            tok = tok[:-1]
        tokens.append(tok)
    return " ".join(tokens)


def stable_serialize(value: Any) -> str:
    """
    Deterministic string form of a JSON-like value: object keys are sorted,
    list order is kept. Callers must not pass cyclic structures.
    """
    if isinstance(value, dict):
        items = sorted(((str(k), v) for k, v in value.items()), key=lambda kv: kv[0])
        return "{" + ",".join(f"{json.dumps(k, ensure_ascii=False)}:{stable_serialize(v)}" for k, v in items) + "}"
    if isinstance(value, (list, tuple)):
        return "[" + ",".join(stable_serialize(v) for v in value) + "]"
    # YAML can produce dates and other non-JSON scalars
    return json.dumps(value, ensure_ascii=False, default=str)


def content_hash(data: str) -> str:
    return hashlib.sha256(data.encode("utf-8")).hexdigest()


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


# ==========================
# Markup & String Utilities
# ==========================

_TAG = re.compile(r"<[^>]+>")


def clean_markup(fragment: str) -> str:
    """Strip tags, decode entities and collapse whitespace."""
    text = html.unescape(_TAG.sub(" ", fragment)).replace("\xa0", " ")
    return canon(text)


def slugify(text: str, fallback: str = "term") -> str:
    """Lower-case, keep letters/digits/space/hyphen, join words with hyphens."""
    text = re.sub(r"[^\w\s-]|_", "", (text or "").lower()).strip()
    return re.sub(r"\s+", "-", text) or fallback


def truncate(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[: limit - 3] + "..."


def uniq(items: Iterable[T]) -> List[T]:
    """Deduplicate, preserving first-seen order."""
    return list(dict.fromkeys(items))


def group_by(items: Iterable[T], key: Callable[[T], K]) -> Dict[K, List[T]]:
    """Group items by key; groups and members keep insertion order."""
    out: Dict[K, List[T]] = {}
    for item in items:
        out.setdefault(key(item), []).append(item)
    return out


_collator: Optional[Collator] = None


def sort_key_text(text: str):
    """
    Unicode collation key (accents and case are secondary to the base letters,
    lower case before upper case), with the raw text as the final tiebreak.
    """
    global _collator
    if _collator is None:
        # loads the default collation table once
        _collator = Collator()
    return (_collator.sort_key(text), text)


def count_keyword_hits(text: str, keywords: Iterable[str]) -> int:
    """Count how many of the keywords occur (case-insensitive) in text."""
    low = text.lower()
    return sum(1 for kw in keywords if kw.lower() in low)


# ==========================
# Table Rendering
# ==========================

def render_table_markdown(headers: Sequence[str], rows: Sequence[Sequence[Any]]) -> str:
    """Render headers and rows as a Markdown table; short rows are padded."""
    if not headers and not rows:
        return ""

    lines = []
    if headers:
        lines.append("| " + " | ".join(h or "" for h in headers) + " |")
        lines.append("| " + " | ".join(["---"] * len(headers)) + " |")

    for row in rows:
        if headers:
            data = list(row[:len(headers)]) + [""] * max(0, len(headers) - len(row))
        else:
            data = list(row)
        lines.append("| " + " | ".join(str(cell or "").replace("|", "\\|") for cell in data) + " |")

    return "\n".join(lines)


# ==========================
# Report Rendering
# ==========================

def render_alignment_report(
    self_index: "SpecIndex",
    peer_indexes: List["SpecIndex"],
    cross_map: "CrossSpecMap",
) -> str:
    """Human-readable summary of a completed alignment pass."""
    lines = ["# Alignment Report", ""]
    lines.append(f"Generated: {cross_map.generated_at}")
    lines.append(f"Self spec: {self_index.spec_id}")
    lines.append(f"Peer specs loaded: {', '.join(p.spec_id for p in peer_indexes) or 'none'}")
    lines.append("")
    lines += ["## What Changed", "- No in-place spec edits were applied.", ""]
    lines += ["## Duplicates Removed", "- None (analysis-only run).", ""]
    lines += ["## Cross-References Added", "- None (analysis-only run).", ""]

    shared = [
        t for t in cross_map.canonical_terms
        if len({m.spec_id for m in t.members}) > 1
    ]
    lines.append("## Shared Terms")
    if shared:
        rows = [
            [
                t.canonical_term,
                t.canonical_owner_spec_id,
                ", ".join(uniq(m.spec_id for m in t.members)),
                ", ".join(t.aliases) or "-",
            ]
            for t in shared
        ]
        lines.append(render_table_markdown(["Term", "Owner", "Specs", "Aliases"], rows))
    else:
        lines.append("- None.")
    lines.append("")

    lines.append("## Key Conflicts")
    if not cross_map.conflicts:
        lines.append("- None.")
    for c in cross_map.conflicts:
        lines.append(f"- {c.kind}: {json.dumps(c.to_dict(), ensure_ascii=False)}")

    lines += ["", "## Remaining Gaps (UNSPECIFIED/TODO)"]
    if not cross_map.gaps:
        lines.append("- None.")
    for g in cross_map.gaps:
        lines.append(f"- {g.type}: {json.dumps(g.to_dict(), ensure_ascii=False)}")

    lines += ["", "## Output Files"]
    lines += [f"- {name}" for name in OUTPUT_FILES]
    lines.append("")
    return "\n".join(lines)


def render_missing_report(missing_peers: List["MissingPeer"]) -> str:
    lines = ["# Alignment Report", "", "Status: FAILED (missing peer snapshots)", "", "## Missing Inputs"]
    for p in missing_peers:
        attempted = ", ".join(p.attempted_paths) or "none"
        lines.append(f"- {p.spec_id} ({p.repo}): {p.missing}. Attempted: {attempted}")
    lines += ["", "## Required Action", "- Provide local peer snapshots in `localSnapshotPaths` and rerun.", ""]
    return "\n".join(lines)


def format_run_summary(self_spec_id: str, peers: int, cross_map: "CrossSpecMap", out_dir: Optional[str]) -> str:
    return "\n".join([
        f"Self: {self_spec_id}",
        f"Peers indexed: {peers}",
        f"Term clusters: {len(cross_map.canonical_terms)}",
        f"Clause clusters: {len(cross_map.canonical_clauses)}",
        f"Conflicts: {len(cross_map.conflicts)}",
        f"Gaps: {len(cross_map.gaps)}",
        f"Artifacts: {out_dir}",
    ])
