from pathlib import Path
import argparse
import json
import subprocess
import sys
from typing import Any, Dict, List, Optional, Sequence, Tuple

from jsonschema import Draft202012Validator, ValidationError

from config import (
    DEFAULT_CONFIG,
    DEFAULT_OUTPUT_DIR,
    AlignmentConfig,
    ConfigError,
    PeerConfig,
    load_alignment_config,
)
from contract_ingestor import ContractIngestor
from models import CrossSpecMap, MissingPeer, SpecFiles, SpecIndex
from spec_aligner import SpecAligner
from spec_ingestor import SpecIndexIngestor
from utils import format_run_summary, render_alignment_report, render_missing_report, utc_now_iso

INDEX_HTML = "index.html"
OPENAPI_YAML = "openapi.yaml"
AGENTS_MD = "AGENTS.md"

_MEMBER_LIST = {"type": "array", "items": {"type": "string"}}

CROSS_SPEC_MAP_SCHEMA: Dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "object",
    "required": ["generated_at", "self_spec_id", "canonical_terms", "canonical_clauses", "conflicts", "gaps"],
    "properties": {
        "generated_at": {"type": "string"},
        "self_spec_id": {"type": "string", "minLength": 1},
        "canonical_terms": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["canonical_term", "canonical_owner_spec_id", "canonical_anchor", "aliases", "members"],
            },
        },
        "canonical_clauses": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["clause_concept", "canonical_owner_spec_id", "canonical_clause_id", "member_clause_ids"],
            },
        },
        "conflicts": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["kind", "member_specs"],
                "properties": {
                    "kind": {"enum": [
                        "term-definition-conflict",
                        "requirement-id-namespace-conflict",
                        "operation-contract-conflict",
                    ]},
                    "member_specs": _MEMBER_LIST,
                },
            },
        },
        "gaps": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["type", "spec_id"],
                "properties": {"type": {"enum": ["undefined-term", "unanchored-requirement-reference"]}},
            },
        },
        "status": {"const": "peer-snapshots-missing"},
        "missing_peers": {"type": "array"},
    },
}


# ---------- file discovery ----------

def resolve_self(root: Path) -> SpecFiles:
    index = root / INDEX_HTML
    if not index.is_file():
        raise ConfigError(f"Missing ./{INDEX_HTML} in {root}")
    openapi = root / OPENAPI_YAML
    agents = root / AGENTS_MD
    return SpecFiles(
        index_html=str(index),
        openapi_yaml=str(openapi) if openapi.is_file() else None,
        agents_md=str(agents) if agents.is_file() else None,
    )


def resolve_peer(peer: PeerConfig, root: Path) -> Tuple[SpecFiles, List[str]]:
    """
    Each localSnapshotPaths entry is a candidate file; a directory also
    contributes its index.html and openapi.yaml. First match per name wins.
    Returns the resolved files and the absolute paths that were declared.
    """
    declared: List[str] = []
    candidates: List[Path] = []
    for p in peer.local_snapshot_paths:
        abs_path = (root / p).resolve()
        declared.append(str(abs_path))
        candidates.append(abs_path)
        if abs_path.is_dir():
            candidates.append(abs_path / INDEX_HTML)
            candidates.append(abs_path / OPENAPI_YAML)

    files = SpecFiles()
    for c in candidates:
        if not c.is_file():
            continue
        name = c.name.lower()
        if name == INDEX_HTML and not files.index_html:
            files.index_html = str(c)
        if name == OPENAPI_YAML and not files.openapi_yaml:
            files.openapi_yaml = str(c)
    return files, declared


# ---------- version control ----------

def detect_revision(doc_path: str) -> Optional[str]:
    """HEAD of the git checkout holding doc_path, or None."""
    try:
        top = subprocess.check_output(
            ["git", "-C", str(Path(doc_path).parent), "rev-parse", "--show-toplevel"],
            text=True, stderr=subprocess.DEVNULL,
        ).strip()
        head = subprocess.check_output(
            ["git", "-C", top, "rev-parse", "HEAD"],
            text=True, stderr=subprocess.DEVNULL,
        ).strip()
    except (subprocess.CalledProcessError, OSError):
        return None
    return head or None


def build_patch(root: Path) -> str:
    try:
        patch = subprocess.check_output(
            ["git", "diff", "--", INDEX_HTML, OPENAPI_YAML],
            cwd=str(root), text=True, stderr=subprocess.DEVNULL,
        )
    except subprocess.CalledProcessError as e:
        patch = f"# Unable to generate git diff in this runtime ({e.returncode}).\n"
    except OSError as e:
        code = e.errno if e.errno is not None else "unknown"
        patch = f"# Unable to generate git diff in this runtime ({code}).\n"
    if not patch.strip():
        patch = "# No spec changes were applied by the alignment runner.\n"
    return patch


# ---------- artifacts ----------

def write_json(path: Path, data: Any) -> None:
    path.write_text(json.dumps(data, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")


def validate_artifact(schema: dict, data: dict, name: str) -> None:
    try:
        Draft202012Validator(schema).validate(data)
    except ValidationError as e:
        raise RuntimeError(f"{name} does not match its output schema: {e.message}") from e


def load_spec(
    ingestor: SpecIndexIngestor,
    contracts: ContractIngestor,
    spec_id: Optional[str],
    repo: Optional[str],
    home_url: Optional[str],
    files: SpecFiles,
) -> SpecIndex:
    markup = Path(files.index_html).read_text(encoding="utf-8")
    contract = None
    if files.openapi_yaml:
        contract = contracts.parse(Path(files.openapi_yaml).read_text(encoding="utf-8"))
        for op in contract.operations:
            if op.schema_walk_truncated:
                print(f"[WARN] {spec_id}: schema walk for {op.method} {op.path} hit the depth bound; pointers may be missing")
    return ingestor.build_index(
        spec_id, repo, home_url, markup,
        contract=contract,
        revision=detect_revision(files.index_html),
        files=files,
    )


def run_alignment(cfg: AlignmentConfig, root: Path, out_dir: Path) -> int:
    """
    Index self and peers, align them and write every artifact to out_dir.
    Returns the process exit status: 0 on a full pass, 1 when peers are missing.
    """
    out_dir.mkdir(parents=True, exist_ok=True)
    ingestor = SpecIndexIngestor(cfg.app)
    contracts = ContractIngestor(cfg.app.ingest)

    self_index = load_spec(
        ingestor, contracts, cfg.self_spec_id, cfg.self_repo, cfg.self_home_url, resolve_self(root),
    )

    peer_indexes: List[SpecIndex] = []
    missing: List[MissingPeer] = []
    for peer in cfg.peers:
        files, attempted = resolve_peer(peer, root)
        if not files.index_html:
            print(f"[WARN] peer {peer.spec_id or 'UNSPECIFIED'}: no {INDEX_HTML} in {attempted or 'no paths'}")
            missing.append(MissingPeer(
                spec_id=peer.spec_id or "UNSPECIFIED",
                repo=peer.repo or "UNSPECIFIED",
                missing=INDEX_HTML,
                attempted_paths=attempted,
            ))
            continue
        print(f"[INFO] indexing peer {peer.spec_id} from {files.index_html}")
        peer_indexes.append(load_spec(ingestor, contracts, peer.spec_id, peer.repo, peer.home_url, files))

    write_json(out_dir / "spec-index.self.json", self_index.to_dict())
    write_json(out_dir / "spec-index.peers.json", [p.to_dict() for p in peer_indexes])

    if missing:
        degraded = CrossSpecMap(
            generated_at=utc_now_iso(),
            self_spec_id=self_index.spec_id,
            status="peer-snapshots-missing",
            missing_peers=missing,
        )
        data = degraded.to_dict()
        validate_artifact(CROSS_SPEC_MAP_SCHEMA, data, "cross-spec-map")
        write_json(out_dir / "cross-spec-map.json", data)
        (out_dir / "alignment-report.md").write_text(render_missing_report(missing), encoding="utf-8")
        (out_dir / "proposed-changes.patch").write_text(build_patch(root), encoding="utf-8")
        return 1

    cross_map = SpecAligner(cfg.app).align([self_index, *peer_indexes], self_index.spec_id)
    data = cross_map.to_dict()
    validate_artifact(CROSS_SPEC_MAP_SCHEMA, data, "cross-spec-map")
    write_json(out_dir / "cross-spec-map.json", data)
    (out_dir / "alignment-report.md").write_text(
        render_alignment_report(self_index, peer_indexes, cross_map), encoding="utf-8",
    )
    (out_dir / "proposed-changes.patch").write_text(build_patch(root), encoding="utf-8")

    print(format_run_summary(self_index.spec_id, len(peer_indexes), cross_map, str(out_dir)))
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    ap = argparse.ArgumentParser(description="Align terms and requirements across a spec and its peers")
    ap.add_argument("--config", default=DEFAULT_CONFIG, help=f"Alignment config (default: {DEFAULT_CONFIG})")
    ap.add_argument("--output-dir", default=None, help=f"Artifact directory (default: config outputDir or {DEFAULT_OUTPUT_DIR})")
    ap.add_argument("--root", default=".", help="Directory holding the self spec (default: current directory)")
    args = ap.parse_args(argv)

    root = Path(args.root).resolve()
    try:
        cfg = load_alignment_config(root / args.config)
        out_dir = root / (args.output_dir or cfg.output_dir or DEFAULT_OUTPUT_DIR)
        return run_alignment(cfg, root, out_dir)
    except ConfigError as e:
        raise SystemExit(f"[ConfigError] {e}")


if __name__ == "__main__":
    sys.exit(main())
