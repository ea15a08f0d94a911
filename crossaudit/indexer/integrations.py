"""Integrations Inventory Builder.

Pure pattern matching: records where each known provider shows up and
every environment variable referenced by code. Absence of a match says
nothing about absence of an integration.
"""

import re
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any

from crossaudit.scanner import SourceFile
from crossaudit.utils.helpers import LineIndex, snippet_at
from crossaudit.utils.logging import logger

SIGNATURES = (
    ("stripe", re.compile(r"""from\s+['"]stripe['"]|require\(\s*['"]stripe['"]\s*\)|new\s+Stripe\s*\(|\bstripe\.\w+\.\w+""")),
    ("easypost", re.compile(r"""@easypost/api|new\s+EasyPost(?:Client)?\s*\(|\beasypost\.\w+""", re.IGNORECASE)),
    ("resend", re.compile(r"""from\s+['"]resend['"]|new\s+Resend\s*\(|\bresend\.emails\.""")),
    ("sendgrid", re.compile(r"""@sendgrid/mail|\bsgMail\.send\s*\(""")),
    ("mailgun", re.compile(r"""mailgun(\.js)?['"]|\bmailgun\.messages""", re.IGNORECASE)),
    ("shopify", re.compile(r"""@shopify/|myshopify\.com""", re.IGNORECASE)),
    ("shippo", re.compile(r"""from\s+['"]shippo['"]|\bshippo\.\w+""", re.IGNORECASE)),
    ("shipengine", re.compile(r"""shipengine""", re.IGNORECASE)),
    ("calcom", re.compile(r"""cal\.com|\bcalcom\b""", re.IGNORECASE)),
    ("sanity", re.compile(r"""@sanity/client|\bcreateClient\s*\(|\bsanityClient\b""")),
    ("netlify-blobs", re.compile(r"""@netlify/blobs""")),
)

ENV_PATTERNS = (
    re.compile(r"\bprocess\.env\.([A-Z][A-Z0-9_]*)\b"),
    re.compile(r"""\bprocess\.env\[\s*['"]([A-Z][A-Z0-9_]*)['"]\s*\]"""),
    re.compile(r"\bimport\.meta\.env\.([A-Z][A-Z0-9_]*)\b"),
)


@dataclass(frozen=True)
class IntegrationHit:
    category: str
    file: str
    repo: str
    line_number: int
    snippet: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "category": self.category,
            "file": self.file,
            "repo": self.repo,
            "lineNumber": self.line_number,
            "snippet": self.snippet,
        }


@dataclass(frozen=True)
class EnvReference:
    key: str
    file: str
    repo: str
    line_number: int


@dataclass(frozen=True)
class IntegrationsInventory:
    hits: tuple[IntegrationHit, ...] = ()
    env_refs: tuple[EnvReference, ...] = field(default=())

    def env_key_usage(self, repo: str | None = None) -> dict[str, list[dict[str, Any]]]:
        usage: dict[str, list[dict[str, Any]]] = {}
        for ref in self.env_refs:
            if repo is not None and ref.repo != repo:
                continue
            usage.setdefault(ref.key, []).append(
                {"file": ref.file, "repo": ref.repo, "lineNumber": ref.line_number}
            )
        return dict(sorted(usage.items()))

    def referenced_keys(self, repo: str | None = None) -> list[str]:
        return sorted({r.key for r in self.env_refs if repo is None or r.repo == repo})

    def categories(self) -> list[str]:
        return sorted({h.category for h in self.hits})

    def to_dict(self) -> dict[str, Any]:
        by_category: dict[str, int] = {}
        for hit in self.hits:
            by_category[hit.category] = by_category.get(hit.category, 0) + 1
        return {
            "hits": [h.to_dict() for h in self.hits],
            "envKeys": self.env_key_usage(),
            "counts": {
                "hits": len(self.hits),
                "envKeys": len(self.referenced_keys()),
                "byCategory": dict(sorted(by_category.items())),
            },
        }


def scan_integrations(
    content: str, file_path: str, repo: str = "", snippet_chars: int = 200
) -> tuple[list[IntegrationHit], list[EnvReference]]:
    """First hit per category plus every env reference in one file."""
    lines = LineIndex(content)
    hits = []
    for category, pattern in SIGNATURES:
        match = pattern.search(content)
        if match:
            hits.append(
                IntegrationHit(
                    category=category,
                    file=file_path,
                    repo=repo,
                    line_number=lines.line_for(match.start()),
                    snippet=snippet_at(content, match.start(), snippet_chars),
                )
            )

    refs = set()
    for pattern in ENV_PATTERNS:
        for match in pattern.finditer(content):
            refs.add(EnvReference(match.group(1), file_path, repo, lines.line_for(match.start())))
    return hits, sorted(refs, key=lambda r: (r.line_number, r.key))


def build_integrations_inventory(
    files: list[SourceFile], max_workers: int = 8, snippet_chars: int = 200
) -> IntegrationsInventory:
    def process(source_file: SourceFile):
        return scan_integrations(source_file.read(), source_file.path, source_file.repo, snippet_chars)

    hits: list[IntegrationHit] = []
    refs: list[EnvReference] = []
    with ThreadPoolExecutor(max_workers=max(1, max_workers)) as executor:
        for file_hits, file_refs in executor.map(process, files):
            hits.extend(file_hits)
            refs.extend(file_refs)

    hits.sort(key=lambda h: (h.category, h.repo, h.file, h.line_number))
    refs = sorted(set(refs), key=lambda r: (r.key, r.repo, r.file, r.line_number))
    inventory = IntegrationsInventory(hits=tuple(hits), env_refs=tuple(refs))
    logger.info(
        f"Integrations inventory: {len(hits)} hits across {len(inventory.categories())} categories, "
        f"{len(inventory.referenced_keys())} env keys"
    )
    return inventory
