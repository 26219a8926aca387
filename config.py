# config.py
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from jsonschema import Draft202012Validator, ValidationError


DEFAULT_CONFIG = "alignment.config.json"
DEFAULT_OUTPUT_DIR = ".alignment"


class ConfigError(RuntimeError):
    """Fatal configuration problem: missing identity values, self document, bad config file."""


@dataclass
class SpecFamily:
    spec_id: str
    # path segment on the peer host, e.g. https://z-base.github.io/gdis/
    href_slug: str
    # ownership vocabulary, matched lower-case against member text
    keywords: Tuple[str, ...] = ()
    # operation-path segment that wins clause ownership outright
    path_marker: Optional[str] = None


DEFAULT_FAMILIES: Tuple[SpecFamily, ...] = (
    SpecFamily(
        "GQSCD-CORE", "gqscd",
        ("device", "controller", "signature creation", "hardware", "attestation", "intent"),
    ),
    SpecFamily(
        "GDIS-CORE", "gdis",
        ("identity", "pid", "binding", "issuance", "attribute", "identification", "mrz"),
    ),
    SpecFamily(
        "GQTS-CORE", "gqts",
        ("event", "log", "replication", "scheme", "service descriptor", "gossip", "publication"),
        path_marker="/gqts/",
    ),
)


@dataclass
class IngestConfig:
    # Markup windows (characters)
    definition_lookahead: int = 1400
    clause_window_before: int = 120
    clause_window_after: int = 1200
    # Excerpt truncation
    definition_excerpt_len: int = 280
    clause_excerpt_len: int = 360
    # Contract parsing
    schema_walk_depth: int = 32
    http_methods: Tuple[str, ...] = ("get", "post", "put", "patch", "delete", "options", "head", "trace")
    # e.g. "https://z-base.github.io/gdis/#dfn-pid"
    peer_host_regex: str = r"https?://z-base\.github\.io/"


@dataclass
class AppConfig:
    ingest: IngestConfig = field(default_factory=IngestConfig)
    families: Tuple[SpecFamily, ...] = DEFAULT_FAMILIES


# Global defaults used across modules
DEFAULTS = AppConfig()


# ==========================
# Alignment config file
# ==========================

_IDENTITY = {"type": "string"}

ALIGNMENT_CONFIG_SCHEMA: Dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "object",
    "required": ["self"],
    "properties": {
        "self": {
            "type": "object",
            "required": ["specId", "repo", "homeUrl"],
            "properties": {
                "specId": {"type": "string", "minLength": 1},
                "repo": {"type": "string", "minLength": 1},
                "homeUrl": {"type": "string", "minLength": 1},
            },
        },
        "peers": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "specId": _IDENTITY,
                    "repo": _IDENTITY,
                    "homeUrl": _IDENTITY,
                    "localSnapshotPaths": {"type": "array", "items": {"type": "string"}},
                },
            },
        },
        "outputDir": {"type": "string"},
        "families": {
            "type": "array",
            "minItems": 1,
            "items": {
                "type": "object",
                "required": ["specId", "hrefSlug"],
                "properties": {
                    "specId": {"type": "string", "minLength": 1},
                    "hrefSlug": {"type": "string", "minLength": 1},
                    "keywords": {"type": "array", "items": {"type": "string"}},
                    "pathMarker": {"type": ["string", "null"]},
                },
            },
        },
    },
}


@dataclass
class PeerConfig:
    spec_id: Optional[str]
    repo: Optional[str]
    home_url: Optional[str]
    local_snapshot_paths: List[str] = field(default_factory=list)


@dataclass
class AlignmentConfig:
    self_spec_id: str
    self_repo: str
    self_home_url: str
    peers: List[PeerConfig] = field(default_factory=list)
    output_dir: Optional[str] = None
    app: AppConfig = field(default_factory=AppConfig)


def require(value: Optional[str], key: str) -> str:
    """Return value, or raise ConfigError when it is missing or empty."""
    if value is None or value == "":
        raise ConfigError(f"Missing config value: {key}")
    return value


def parse_alignment_config(raw: Dict[str, Any]) -> AlignmentConfig:
    try:
        Draft202012Validator(ALIGNMENT_CONFIG_SCHEMA).validate(raw)
    except ValidationError as e:
        where = "/".join(str(p) for p in e.absolute_path) or "<root>"
        raise ConfigError(f"Invalid alignment config at {where}: {e.message}") from e

    me = raw["self"]
    peers = [
        PeerConfig(
            spec_id=p.get("specId"),
            repo=p.get("repo"),
            home_url=p.get("homeUrl"),
            local_snapshot_paths=list(p.get("localSnapshotPaths") or []),
        )
        for p in raw.get("peers") or []
    ]

    app = AppConfig()
    if raw.get("families"):
        app.families = tuple(
            SpecFamily(
                spec_id=f["specId"],
                href_slug=f["hrefSlug"],
                keywords=tuple(k.lower() for k in f.get("keywords") or []),
                path_marker=f.get("pathMarker"),
            )
            for f in raw["families"]
        )

    return AlignmentConfig(
        self_spec_id=me["specId"],
        self_repo=me["repo"],
        self_home_url=me["homeUrl"],
        peers=peers,
        output_dir=raw.get("outputDir"),
        app=app,
    )


def load_alignment_config(path: Path) -> AlignmentConfig:
    if not path.is_file():
        raise ConfigError(f"Alignment config not found: {path}")
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ConfigError(f"Alignment config is not valid JSON ({path}): {e}") from e
    return parse_alignment_config(raw)
