"""End-to-end tests for the alignment driver (run.py) and config loading (config.py)."""

import json

import pytest

from config import ConfigError, PeerConfig, load_alignment_config, parse_alignment_config
from run import build_patch, main, resolve_peer


def read_json(path):
    return json.loads(path.read_text(encoding="utf-8"))


# ---------------------------------------------------------------------------
# Config loading
# ---------------------------------------------------------------------------

class TestConfig:

    def test_valid_config(self, workspace):
        cfg = load_alignment_config(workspace / "alignment.config.json")
        assert cfg.self_spec_id == "GQSCD-CORE"
        assert cfg.peers[0].local_snapshot_paths == ["peers/gdis"]
        assert [f.spec_id for f in cfg.app.families] == ["GQSCD-CORE", "GDIS-CORE", "GQTS-CORE"]

    def test_missing_self_identity(self):
        with pytest.raises(ConfigError, match="homeUrl"):
            parse_alignment_config({"self": {"specId": "A", "repo": "r"}})

    def test_empty_self_identity(self):
        with pytest.raises(ConfigError):
            parse_alignment_config({"self": {"specId": "", "repo": "r", "homeUrl": "u"}})

    def test_families_override(self):
        cfg = parse_alignment_config({
            "self": {"specId": "A", "repo": "r", "homeUrl": "u"},
            "families": [{"specId": "W-CORE", "hrefSlug": "w", "keywords": ["Widget"], "pathMarker": "/w/"}],
        })
        (family,) = cfg.app.families
        assert family.keywords == ("widget",)
        assert family.path_marker == "/w/"

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            load_alignment_config(tmp_path / "nope.json")

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text("{", encoding="utf-8")
        with pytest.raises(ConfigError, match="not valid JSON"):
            load_alignment_config(path)


# ---------------------------------------------------------------------------
# Peer discovery
# ---------------------------------------------------------------------------

class TestResolvePeer:

    def test_directory_candidates(self, workspace):
        files, attempted = resolve_peer(PeerConfig("GDIS-CORE", "r", "u", ["peers/gdis"]), workspace)
        assert files.index_html == str((workspace / "peers/gdis/index.html").resolve())
        assert files.openapi_yaml == str((workspace / "peers/gdis/openapi.yaml").resolve())
        assert attempted == [str((workspace / "peers/gdis").resolve())]

    def test_first_match_wins(self, workspace):
        other = workspace / "other"
        other.mkdir()
        (other / "index.html").write_text("<p></p>", encoding="utf-8")
        files, _ = resolve_peer(PeerConfig("X", "r", "u", ["other/index.html", "peers/gdis"]), workspace)
        assert files.index_html == str((other / "index.html").resolve())
        assert files.openapi_yaml.endswith("openapi.yaml")

    def test_nothing_found(self, tmp_path):
        files, attempted = resolve_peer(PeerConfig("X", "r", "u", ["missing"]), tmp_path)
        assert files.index_html is None
        assert attempted == [str((tmp_path / "missing").resolve())]


# ---------------------------------------------------------------------------
# Full runs
# ---------------------------------------------------------------------------

class TestRun:

    def test_successful_pass(self, workspace, capsys):
        assert main(["--root", str(workspace)]) == 0
        out = workspace / ".alignment"
        for name in ("spec-index.self.json", "spec-index.peers.json", "cross-spec-map.json",
                     "alignment-report.md", "proposed-changes.patch"):
            assert (out / name).is_file(), name

        self_index = read_json(out / "spec-index.self.json")
        assert self_index["spec_id"] == "GQSCD-CORE"
        assert self_index["commit_or_version"] == "1.2.0"
        assert self_index["files"]["agents_md"] is None
        assert [c["clause_id"] for c in self_index["clauses"]][-1] == "REQ-SELF-1"

        peers = read_json(out / "spec-index.peers.json")
        assert [p["spec_id"] for p in peers] == ["GDIS-CORE"]

        cross_map = read_json(out / "cross-spec-map.json")
        assert "status" not in cross_map
        (cluster,) = cross_map["canonical_terms"]
        assert cluster["canonical_owner_spec_id"] == "GQSCD-CORE"
        assert cluster["aliases"] == ["devices"]
        assert [c["kind"] for c in cross_map["conflicts"]] == ["operation-contract-conflict"]
        assert cross_map["gaps"] == []

        assert "Self: GQSCD-CORE" in capsys.readouterr().out
        assert (out / "proposed-changes.patch").read_text(encoding="utf-8").startswith("#")

    def test_output_dir_flag(self, workspace):
        assert main(["--root", str(workspace), "--output-dir", "artifacts"]) == 0
        assert (workspace / "artifacts" / "cross-spec-map.json").is_file()

    def test_missing_peer_degrades(self, workspace):
        cfg = read_json(workspace / "alignment.config.json")
        cfg["peers"].append({"specId": "GQTS-CORE", "repo": "z-base/gqts", "homeUrl": "https://z-base.github.io/gqts/",
                             "localSnapshotPaths": ["peers/gqts"]})
        (workspace / "alignment.config.json").write_text(json.dumps(cfg), encoding="utf-8")

        assert main(["--root", str(workspace)]) == 1
        out = workspace / ".alignment"
        cross_map = read_json(out / "cross-spec-map.json")
        assert cross_map["status"] == "peer-snapshots-missing"
        assert cross_map["canonical_terms"] == [] and cross_map["canonical_clauses"] == []
        assert cross_map["conflicts"] == [] and cross_map["gaps"] == []
        assert cross_map["missing_peers"] == [{
            "spec_id": "GQTS-CORE",
            "repo": "z-base/gqts",
            "missing": "index.html",
            "attempted_paths": [str((workspace / "peers/gqts").resolve())],
        }]
        report = (out / "alignment-report.md").read_text(encoding="utf-8")
        assert "Status: FAILED (missing peer snapshots)" in report
        # the peer that was found is still indexed
        assert [p["spec_id"] for p in read_json(out / "spec-index.peers.json")] == ["GDIS-CORE"]

    def test_missing_self_document_is_fatal(self, workspace):
        (workspace / "index.html").unlink()
        with pytest.raises(SystemExit, match="ConfigError"):
            main(["--root", str(workspace)])

    def test_missing_peer_identity_is_fatal(self, workspace):
        cfg = read_json(workspace / "alignment.config.json")
        del cfg["peers"][0]["repo"]
        (workspace / "alignment.config.json").write_text(json.dumps(cfg), encoding="utf-8")
        with pytest.raises(SystemExit, match="repo"):
            main(["--root", str(workspace)])

    def test_reruns_are_identical_apart_from_timestamp(self, workspace):
        main(["--root", str(workspace), "--output-dir", "one"])
        main(["--root", str(workspace), "--output-dir", "two"])
        one, two = workspace / "one", workspace / "two"

        for name in ("spec-index.self.json", "spec-index.peers.json", "proposed-changes.patch"):
            assert (one / name).read_bytes() == (two / name).read_bytes(), name

        map_one, map_two = read_json(one / "cross-spec-map.json"), read_json(two / "cross-spec-map.json")
        map_one.pop("generated_at")
        map_two.pop("generated_at")
        assert map_one == map_two

        strip = lambda p: [l for l in p.read_text(encoding="utf-8").splitlines() if not l.startswith("Generated:")]
        assert strip(one / "alignment-report.md") == strip(two / "alignment-report.md")


class TestPatch:

    def test_placeholder_outside_a_checkout(self, tmp_path):
        assert build_patch(tmp_path).startswith("# ")
