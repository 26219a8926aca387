# spec_ingestor.py
"""
Spec Index Ingestor

Scans a spec's HTML markup and builds its Spec Index: defined terms, clauses,
term/requirement references and links to peer specifications.
"""

import re
from typing import Dict, List, Optional, Set

from config import DEFAULTS, AppConfig, require
from models import Clause, ContractSet, CrossReference, SectionMarker, SpecFiles, SpecIndex, Term
from utils import canon, clean_markup, content_hash, slugify, truncate, uniq

REQ_TOKEN = re.compile(r"\bREQ-[A-Z0-9](?:[A-Z0-9-]*[A-Z0-9])?\b")

# Longer phrases first so the reported order reads naturally
NORMATIVE_KEYWORDS = (
    "MUST NOT", "SHALL NOT", "SHOULD NOT", "MUST", "SHALL", "SHOULD",
    "RECOMMENDED", "REQUIRED", "OPTIONAL", "MAY",
)

SECTION_OPEN = re.compile(r"""<section\b[^>]*\bid=(["'])([^"']+)\1[^>]*>""", re.IGNORECASE)
DFN = re.compile(r"<dfn\b([^>]*)>(.*?)</dfn>", re.IGNORECASE | re.DOTALL)
DD_AFTER_DT = re.compile(r"^\s*</dt>\s*<dd>(.*?)</dd>", re.IGNORECASE | re.DOTALL)
ID_ATTR = re.compile(r"""\bid=(["'])([^"']+)\1""", re.IGNORECASE)
ATTR = re.compile(r"""([a-zA-Z_:-][a-zA-Z0-9_:-]*)\s*=\s*(?:"([^"]*)"|'([^']*)')""")
TERM_REF = re.compile(r"\[=([^=\]]+)=\]")
ALGORITHM_HINT = re.compile(r"algorithm", re.IGNORECASE)


def parse_attributes(src: str) -> Dict[str, str]:
    return {m.group(1): m.group(2) if m.group(2) is not None else (m.group(3) or "") for m in ATTR.finditer(src)}


def nearest_section(sections: List[SectionMarker], offset: int) -> Optional[str]:
    """Id of the last section opened at or before offset."""
    found = None
    for s in sections:
        if s.offset > offset:
            break
        found = s.section_id
    return found


def normative_keywords(text: str) -> List[str]:
    up = text.upper()
    return [kw for kw in NORMATIVE_KEYWORDS if re.search(r"\b" + kw + r"\b", up)]


def requirement_tokens(text: str) -> List[str]:
    return uniq(REQ_TOKEN.findall(text))


class SpecIndexIngestor:
    """Extracts a SpecIndex from one document's markup."""

    def __init__(self, cfg: Optional[AppConfig] = None):
        self.cfg = cfg or DEFAULTS
        self.ingest = self.cfg.ingest
        self.xref_patterns = self._build_xref_patterns()

    # ---------- Public API ----------

    def build_index(
        self,
        spec_id: Optional[str],
        repo: Optional[str],
        home_url: Optional[str],
        markup: str,
        *,
        contract: Optional[ContractSet] = None,
        revision: Optional[str] = None,
        files: Optional[SpecFiles] = None,
    ) -> SpecIndex:
        """
        Build the Spec Index for one document.

        Args:
            spec_id, repo, home_url: identity of the spec; all required
            markup: raw HTML of the document
            contract: parsed API contract attached to the document, if any
            revision: version-control revision of the document, if resolvable

        Returns:
            SpecIndex. commit_or_version falls back to the contract's
            declared version, then to "unspecified".
        """
        spec_id = require(spec_id, "specId")
        repo = require(repo, f"({spec_id}).repo")
        home_url = require(home_url, f"({spec_id}).homeUrl")

        version = revision or (contract.info_version if contract else None) or "unspecified"
        return SpecIndex(
            spec_id=spec_id,
            repo=repo,
            home_url=home_url,
            commit_or_version=version,
            files=files or SpecFiles(),
            terms=self.extract_terms(markup),
            clauses=self.extract_clauses(markup),
            term_references=self.extract_term_references(markup),
            requirement_references=requirement_tokens(markup),
            cross_spec_references=self.extract_cross_references(markup),
            openapi=contract,
        )

    def extract_sections(self, markup: str) -> List[SectionMarker]:
        return [SectionMarker(m.start(), m.group(2)) for m in SECTION_OPEN.finditer(markup)]

    def extract_terms(self, markup: str) -> List[Term]:
        sections = self.extract_sections(markup)
        terms: List[Term] = []
        issued: Set[str] = set()

        for m in DFN.finditer(markup):
            text = clean_markup(m.group(2))
            if not text:
                continue
            base_id = parse_attributes(m.group(1)).get("id") or slugify(text)

            # keep term_id unique within the index, including against explicit ids
            term_id, n = base_id, 1
            while term_id in issued:
                n += 1
                term_id = f"{base_id}-{n}"
            issued.add(term_id)

            after = markup[m.end(): m.end() + self.ingest.definition_lookahead]
            dd = DD_AFTER_DT.match(after)
            definition = clean_markup(dd.group(1)) if dd else ""
            section = nearest_section(sections, m.start())

            terms.append(Term(
                term_text=text,
                term_id=term_id,
                anchor=f"#{base_id}",
                section_anchor=f"#{section}" if section else None,
                definition_excerpt_hash=content_hash(canon(definition)) if definition else None,
                definition_text_excerpt=truncate(definition, self.ingest.definition_excerpt_len),
            ))
        return terms

    def extract_clauses(self, markup: str) -> List[Clause]:
        clauses: List[Clause] = []
        seen = set()

        for m in ID_ATTR.finditer(markup):
            element_id = m.group(2)
            at = m.start()
            window = markup[max(0, at - self.ingest.clause_window_before): at + self.ingest.clause_window_after]
            text = clean_markup(window)

            req = REQ_TOKEN.search(text)
            if not req and not element_id.lower().startswith("req-"):
                continue
            clause_id = req.group(0) if req else element_id.upper()

            # first occurrence wins; later duplicates are dropped
            key = (clause_id, element_id)
            if key in seen:
                continue
            seen.add(key)

            if req:
                kind = "requirement"
            elif ALGORITHM_HINT.search(element_id + text):
                kind = "algorithm"
            else:
                kind = "invariant"

            clauses.append(Clause(
                clause_id=clause_id,
                anchor=f"#{element_id}",
                kind=kind,
                normative_keywords_used=normative_keywords(text),
                text_excerpt_hash=content_hash(canon(text)),
                text_excerpt=truncate(text, self.ingest.clause_excerpt_len),
            ))
        return clauses

    def extract_term_references(self, markup: str) -> List[str]:
        return uniq(t for t in (clean_markup(m.group(1)) for m in TERM_REF.finditer(markup)) if t)

    def extract_cross_references(self, markup: str) -> List[CrossReference]:
        refs: List[CrossReference] = []
        href_pattern, label_pattern, by_slug = self.xref_patterns
        if href_pattern is None:
            return refs

        for m in href_pattern.finditer(markup):
            refs.append(CrossReference(
                kind="href",
                target_spec_id=by_slug[m.group(3).lower()],
                href=m.group(2),
                label=clean_markup(m.group(4)),
            ))
        for m in label_pattern.finditer(markup):
            refs.append(CrossReference(kind="label", target_spec_id=m.group(1), href=None, label=m.group(1)))
        return refs

    # ---------- Internals ----------

    def _build_xref_patterns(self):
        families = self.cfg.families
        if not families:
            return None, None, {}
        by_slug = {f.href_slug.lower(): f.spec_id for f in families}
        slugs = "|".join(re.escape(f.href_slug) for f in families)
        href = re.compile(
            r"""<a\b[^>]*href=(["'])((?:""" + self.ingest.peer_host_regex
            + r")(" + slugs + r""")/?[^"']*)\1[^>]*>(.*?)</a>""",
            re.IGNORECASE | re.DOTALL,
        )
        label = re.compile(r"\[(" + "|".join(re.escape(f.spec_id) for f in families) + r")\]")
        return href, label, by_slug


if __name__ == "__main__":
    import argparse, json, sys
    from pathlib import Path

    ap = argparse.ArgumentParser(description="Ingest one spec's HTML and print its Spec Index as JSON")
    ap.add_argument("html", help="Path to index.html")
    ap.add_argument("--spec-id", required=True)
    ap.add_argument("--repo", required=True)
    ap.add_argument("--home-url", required=True)
    args = ap.parse_args()

    ing = SpecIndexIngestor()
    index = ing.build_index(
        args.spec_id, args.repo, args.home_url,
        Path(args.html).read_text(encoding="utf-8"),
        files=SpecFiles(index_html=str(Path(args.html).resolve())),
    )
    sys.stdout.write(json.dumps(index.to_dict(), indent=2, ensure_ascii=False) + "\n")
