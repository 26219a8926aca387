"""Shared builders for alignment tests."""

import json
import textwrap

import pytest

from models import SpecFiles, SpecIndex


def make_index(spec_id, terms=(), clauses=(), term_refs=(), req_refs=(), openapi=None):
    return SpecIndex(
        spec_id=spec_id,
        repo=f"example/{spec_id.lower()}",
        home_url=f"https://example.test/{spec_id.lower()}/",
        commit_or_version="unspecified",
        files=SpecFiles(),
        terms=list(terms),
        clauses=list(clauses),
        term_references=list(term_refs),
        requirement_references=list(req_refs),
        cross_spec_references=[],
        openapi=openapi,
    )


def glossary_html(*entries, body=""):
    """index.html with a <dl> glossary of (term, definition) pairs plus extra body markup."""
    rows = "\n".join(
        f"<dt><dfn>{term}</dfn></dt>\n<dd>{definition}</dd>" for term, definition in entries
    )
    return textwrap.dedent(
        """\
        <html><body>
        <section id="terminology">
        <dl>
        {rows}
        </dl>
        </section>
        {body}
        </body></html>
        """
    ).format(rows=rows, body=body)


def openapi_yaml(operation_id, response_ref, path="/issue", requirement=None):
    lines = [
        "openapi: 3.1.0",
        "info:",
        "  title: Example",
        "  version: 1.2.0",
        "paths:",
        f"  {path}:",
        "    post:",
        f"      operationId: {operation_id}",
    ]
    if requirement:
        lines.append(f"      x-gidas-requirement: {requirement}")
    lines += [
        "      requestBody:",
        "        content:",
        "          application/json:",
        "            schema:",
        "              $ref: '#/components/schemas/IssueRequest'",
        "      responses:",
        "        '200':",
        "          content:",
        "            application/json:",
        "              schema:",
        f"                $ref: '{response_ref}'",
        "components:",
        "  schemas:",
        "    IssueRequest:",
        "      type: object",
    ]
    return "\n".join(lines) + "\n"


@pytest.fixture
def workspace(tmp_path):
    """A self spec with one peer snapshot on disk and a matching config."""
    (tmp_path / "index.html").write_text(
        glossary_html(
            ("Device", "A hardware unit that holds signing keys."),
            body='<p>Every [=device=] reports REQ-SELF-1.</p>'
                 '<p id="req-self-1">REQ-SELF-1: The device MUST attest.</p>',
        ),
        encoding="utf-8",
    )
    (tmp_path / "openapi.yaml").write_text(
        openapi_yaml("issueCredential", "#/components/schemas/IssueResponse"), encoding="utf-8",
    )
    peer = tmp_path / "peers" / "gdis"
    peer.mkdir(parents=True)
    (peer / "index.html").write_text(
        glossary_html(("devices", "A hardware unit that holds signing keys.")), encoding="utf-8",
    )
    (peer / "openapi.yaml").write_text(
        openapi_yaml("issueCredential", "#/components/schemas/Credential"), encoding="utf-8",
    )
    config = {
        "self": {"specId": "GQSCD-CORE", "repo": "z-base/gqscd", "homeUrl": "https://z-base.github.io/gqscd/"},
        "peers": [
            {
                "specId": "GDIS-CORE",
                "repo": "z-base/gdis",
                "homeUrl": "https://z-base.github.io/gdis/",
                "localSnapshotPaths": ["peers/gdis"],
            }
        ],
    }
    (tmp_path / "alignment.config.json").write_text(json.dumps(config), encoding="utf-8")
    return tmp_path
