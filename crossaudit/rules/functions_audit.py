"""Serverless function inventory and usage classification.

Each function file is described (route, handler exports, HTTP methods, env
keys, external APIs, persistence) and then classified:

- IN_USE: a route call-site, an import, a schedule, or a provider contract
- SHOULD_BE_USED: a provider contract is configured but no handler exists
- BROKEN: no handler export, undeclared env key, missing dependency,
  plain-http access, or a queried field the schema does not declare
- OBSOLETE: nothing uses it and it has no schedule, env or webhook role
- DUPLICATE: same methods, external APIs and persistence as another function
"""

import json
import re
import tomllib
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import PurePosixPath
from typing import Any

from crossaudit.indexer.query_index import QueryIndex
from crossaudit.repos import RepoDescriptor
from crossaudit.rules.base import Classification, Evidence, Finding
from crossaudit.rules.webhook_handler import HANDLER_EXPORT_PATTERNS
from crossaudit.scanner import SourceFile
from crossaudit.utils.helpers import LineIndex, read_text, unique_sorted
from crossaudit.utils.logging import logger

RULE_NAME = "functions-audit"

HTTP_METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS", "HEAD")

BUILTIN_MODULES = frozenset({
    "assert", "buffer", "child_process", "cluster", "console", "constants", "crypto",
    "dgram", "dns", "domain", "events", "fs", "http", "https", "module", "net", "os",
    "path", "punycode", "process", "querystring", "readline", "repl", "stream",
    "string_decoder", "timers", "tls", "tty", "url", "util", "vm", "worker_threads", "zlib",
})

EXTERNAL_API_KEYWORDS = (
    ("stripe", re.compile(r"stripe", re.IGNORECASE)),
    ("easypost", re.compile(r"easypost", re.IGNORECASE)),
    ("resend", re.compile(r"resend", re.IGNORECASE)),
    ("sendgrid", re.compile(r"sendgrid", re.IGNORECASE)),
    ("mailgun", re.compile(r"mailgun", re.IGNORECASE)),
    ("shopify", re.compile(r"shopify", re.IGNORECASE)),
    ("shippo", re.compile(r"shippo", re.IGNORECASE)),
    ("calcom", re.compile(r"cal\.com|calcom", re.IGNORECASE)),
)

PERSISTENCE_KEYWORDS = (
    ("sanity", re.compile(r"@sanity/client|createClient\(|sanityClient", re.IGNORECASE)),
    ("prisma", re.compile(r"prisma", re.IGNORECASE)),
    ("mongodb", re.compile(r"mongodb|mongoose", re.IGNORECASE)),
    ("postgres", re.compile(r"\bpg\b|postgres", re.IGNORECASE)),
    ("mysql", re.compile(r"mysql", re.IGNORECASE)),
    ("supabase", re.compile(r"supabase", re.IGNORECASE)),
    ("firestore", re.compile(r"firestore|firebase", re.IGNORECASE)),
    ("redis", re.compile(r"redis", re.IGNORECASE)),
)


@dataclass(frozen=True)
class ProviderContract:
    name: str
    env_keys: tuple[str, ...]
    matches: Callable[["FunctionInfo"], bool]


def _webhook_for(api: str) -> Callable[["FunctionInfo"], bool]:
    return lambda fn: api in fn.external_apis and "webhook" in fn.name.lower()


CONTRACTS = (
    ProviderContract("stripe-webhook", ("STRIPE_WEBHOOK_SECRET", "STRIPE_WEBHOOK_SIGNING_SECRET"), _webhook_for("stripe")),
    ProviderContract("easypost-webhook", ("EASYPOST_WEBHOOK_SECRET", "EASYPOST_WEBHOOK_SIGNING_KEY"), _webhook_for("easypost")),
    ProviderContract("resend-webhook", ("RESEND_WEBHOOK_SECRET", "RESEND_SIGNING_SECRET"), _webhook_for("resend")),
    ProviderContract(
        "calcom-webhook",
        ("CALCOM_WEBHOOK_SECRET",),
        lambda fn: "calcom" in fn.name.lower() and "webhook" in fn.name.lower(),
    ),
)

ROUTE_REFERENCE = re.compile(
    r"(/\.netlify/functions/[A-Za-z0-9/_-]+|/netlify/functions/[A-Za-z0-9/_-]+|/api/[A-Za-z0-9/_-]+"
    r"|/functions/[A-Za-z0-9/_-]+|/server/[A-Za-z0-9/_-]+)"
)
IMPORT_FROM = re.compile(r"""from\s+['"]([^'"]+)['"]""")
IMPORT_ANY = re.compile(r"""import\s+[^'"]*['"]([^'"]+)['"]|require\(\s*['"]([^'"]+)['"]\s*\)""")
ENV_ACCESS = re.compile(r"(?:process\.env\.|import\.meta\.env\.)([A-Z0-9_]+)")
URL = re.compile(r"https?://[a-z0-9._:-]+", re.IGNORECASE)
PLAIN_HTTP = re.compile(r"http://[a-z0-9._:-]+", re.IGNORECASE)
LOCAL_HOSTS = re.compile(r"^http://(localhost|127\.0\.0\.1|0\.0\.0\.0)(:\d+)?$", re.IGNORECASE)
ALLOW_METHODS = re.compile(r"""Access-Control-Allow-Methods['"]?\s*:\s*['"]([^'"]+)['"]""", re.IGNORECASE)

# (marker, route prefix); first marker found in the path wins
ROUTE_MARKERS = (
    ("netlify/functions/", "/.netlify/functions/"),
    ("src/pages/api/", "/api/"),
    ("pages/api/", "/api/"),
    ("api/", "/api/"),
    ("functions/", "/functions/"),
    ("server/", "/server/"),
)


def _strip_ext(path: str) -> str:
    suffix = PurePosixPath(path).suffix
    return path[: -len(suffix)] if suffix else path


def infer_route(path: str) -> str | None:
    """Public route of a function file, e.g. ``/.netlify/functions/stripeWebhook``."""
    normalized = "/" + path.lstrip("/")
    for marker, prefix in ROUTE_MARKERS:
        idx = normalized.find("/" + marker)
        if idx != -1:
            rest = normalized[idx + len(marker) + 1 :]
            route = prefix + _strip_ext(rest)
            return route[: -len("/index")] if route.endswith("/index") else route
    return None


def extract_handler_names(content: str) -> list[str]:
    handlers = set()
    if any(p.search(content) for p in HANDLER_EXPORT_PATTERNS[:5]):
        handlers.add("handler")
    for method in HTTP_METHODS:
        if re.search(rf"export\s+(?:async\s+)?(?:const|function)\s+{method}\b", content):
            handlers.add(method)
    return sorted(handlers)


def extract_http_methods(content: str) -> list[str]:
    methods = {
        m for m in HTTP_METHODS
        if re.search(rf"export\s+(?:async\s+)?(?:const|function)\s+{m}\b", content)
    }
    allow = ALLOW_METHODS.search(content)
    if allow:
        methods.update(
            m.strip().upper() for m in allow.group(1).split(",") if m.strip().upper() in HTTP_METHODS
        )
    for method in HTTP_METHODS:
        if re.search(rf"""httpMethod\s*[!=]==?\s*['"]{method}['"]""", content):
            methods.add(method)
    return sorted(methods) or ["ANY"]


def extract_imports(content: str) -> list[str]:
    return unique_sorted(m.group(1) or m.group(2) for m in IMPORT_ANY.finditer(content))


def package_name(specifier: str) -> str | None:
    """npm package named by an import specifier; None for relative or node: imports."""
    if specifier.startswith((".", "/", "node:", "~", "#")):
        return None
    if specifier.startswith("@"):
        parts = specifier.split("/")
        return "/".join(parts[:2]) if len(parts) >= 2 else specifier
    return specifier.split("/")[0]


@dataclass
class FunctionInfo:
    file: str
    repo: str
    name: str
    route: str | None
    handler_names: list[str]
    http_methods: list[str]
    env_keys: list[str]
    external_apis: list[str]
    persistence: list[str]
    imports: list[str] = field(default_factory=list)
    env_evidence: list[Evidence] = field(default_factory=list)
    api_evidence: list[Evidence] = field(default_factory=list)

    @property
    def route_aliases(self) -> list[str]:
        if not self.route:
            return []
        return sorted({self.route, self.route.replace("/.netlify", "")})

    def fingerprint(self) -> str:
        return "|".join(
            (
                f"methods:{','.join(self.http_methods)}",
                f"external:{','.join(self.external_apis)}",
                f"persistence:{','.join(self.persistence)}",
            )
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "file": self.file,
            "repo": self.repo,
            "name": self.name,
            "route": self.route,
            "routeAliases": self.route_aliases,
            "handlerNames": self.handler_names,
            "httpMethods": self.http_methods,
            "envKeys": self.env_keys,
            "externalApis": self.external_apis,
            "persistence": self.persistence,
            "evidence": {
                "env": [e.to_dict() for e in self.env_evidence],
                "externalApis": [e.to_dict() for e in self.api_evidence],
            },
        }


def describe_function(source_file: SourceFile, content: str) -> FunctionInfo:
    lines = LineIndex(content)
    path = source_file.path

    env_evidence = [
        Evidence(type="env", detail=m.group(1), file=path, line_number=lines.line_for(m.start()))
        for m in ENV_ACCESS.finditer(content)
    ]
    apis = set()
    api_evidence = []
    for label, pattern in EXTERNAL_API_KEYWORDS:
        match = pattern.search(content)
        if match:
            apis.add(label)
            api_evidence.append(
                Evidence(type="externalApi", detail=label, file=path, line_number=lines.line_for(match.start()))
            )
    for match in URL.finditer(content):
        host = re.sub(r"^https?://", "", match.group(0), flags=re.IGNORECASE).split("/")[0]
        if host:
            apis.add(host.lower())
            api_evidence.append(
                Evidence(type="externalApi", detail=host.lower(), file=path, line_number=lines.line_for(match.start()))
            )

    return FunctionInfo(
        file=path,
        repo=source_file.repo,
        name=_strip_ext(PurePosixPath(path).name),
        route=infer_route(path),
        handler_names=extract_handler_names(content),
        http_methods=extract_http_methods(content),
        env_keys=unique_sorted(e.detail for e in env_evidence),
        external_apis=sorted(apis),
        persistence=sorted(label for label, p in PERSISTENCE_KEYWORDS if p.search(content)),
        imports=extract_imports(content),
        env_evidence=env_evidence,
        api_evidence=api_evidence,
    )


# ---------------------------------------------------------------------------
# Repository-level inputs
# ---------------------------------------------------------------------------


def load_dependencies(repo: RepoDescriptor) -> frozenset[str] | None:
    """Declared npm dependencies, or None when the repo has no package.json."""
    if not repo.ok:
        return None
    path = repo.path / "package.json"
    if not path.is_file():
        return None
    try:
        data = json.loads(read_text(path) or "{}")
    except json.JSONDecodeError as e:
        logger.warning(f"Invalid package.json in {repo.name}: {e}")
        return None
    deps: set[str] = set()
    for section in ("dependencies", "devDependencies", "peerDependencies", "optionalDependencies"):
        if isinstance(data.get(section), dict):
            deps.update(data[section])
    return frozenset(deps)


def load_schedules(repo: RepoDescriptor) -> dict[str, dict[str, Any]]:
    """Scheduled functions from ``netlify.toml``: name -> schedule evidence."""
    if not repo.ok:
        return {}
    path = repo.path / "netlify.toml"
    text = read_text(path) if path.is_file() else None
    if not text:
        return {}
    try:
        data = tomllib.loads(text)
    except tomllib.TOMLDecodeError as e:
        logger.warning(f"Invalid netlify.toml in {repo.name}: {e}")
        return {}

    functions = data.get("functions")
    if not isinstance(functions, dict):
        return {}
    lines = LineIndex(text)
    schedules = {}
    for name, settings in functions.items():
        if not isinstance(settings, dict) or not isinstance(settings.get("schedule"), str):
            continue
        schedules[name] = {
            "schedule": settings["schedule"],
            "file": "netlify.toml",
            "repo": repo.name,
            "lineNumber": lines.line_for(_function_key_offset(text, name)),
        }
    return schedules


def _function_key_offset(text: str, name: str) -> int:
    """Offset of the table header or inline key that names function ``name``."""
    match = re.search(rf"""(?<![\w-]){re.escape(name)}["']?\s*[\]=.]""", text)
    return match.start() if match else 0


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------


@dataclass
class FunctionsAudit:
    functions: list[FunctionInfo]
    in_use: list[Finding]
    should_be_used: list[Finding]
    broken: list[Finding]
    obsolete: list[Finding]
    duplicate: list[Finding]


def audit_functions(
    functions: list[FunctionInfo],
    code_contents: list[tuple[SourceFile, str]],
    declared_env: dict[str, list[dict[str, Any]]],
    process_env: frozenset[str],
    dependencies: dict[str, frozenset[str] | None],
    schedules: dict[str, dict[str, Any]],
    queries: QueryIndex,
    schema_fields: frozenset[str],
    function_contents: dict[tuple[str, str], str],
) -> FunctionsAudit:
    functions = sorted(functions, key=lambda fn: (fn.repo, fn.file))
    by_route = {}
    for fn in functions:
        for alias in fn.route_aliases:
            by_route[alias] = fn

    usage: dict[tuple[str, str], list[Evidence]] = {}

    def add_usage(fn: FunctionInfo, evidence: Evidence) -> None:
        usage.setdefault((fn.repo, fn.file), []).append(evidence)

    for source_file, content in code_contents:
        lines = LineIndex(content)
        for match in ROUTE_REFERENCE.finditer(content):
            route = match.group(1)
            if route.startswith("/netlify/functions/"):
                route = route.replace("/netlify", "/.netlify", 1)
            fn = by_route.get(route)
            if fn is None or (fn.repo, fn.file) == (source_file.repo, source_file.path):
                continue
            add_usage(fn, Evidence("callSite", match.group(1), source_file.path, lines.line_for(match.start())))

        for match in IMPORT_FROM.finditer(content):
            spec = match.group(1)
            for fn in functions:
                token = (fn.route or "").replace("/.netlify", "")
                if token and token in spec and (fn.repo, fn.file) != (source_file.repo, source_file.path):
                    add_usage(fn, Evidence("import", spec, source_file.path, lines.line_for(match.start())))

    for name, schedule in sorted(schedules.items()):
        for fn in functions:
            if fn.name == name:
                add_usage(fn, Evidence("schedule", schedule["schedule"], schedule["file"], schedule["lineNumber"]))

    def env_present(key: str) -> bool:
        return key in declared_env or key in process_env

    contract_matches: dict[tuple[str, str], list[str]] = {}
    should_be_used = []
    for contract in CONTRACTS:
        if not any(env_present(k) for k in contract.env_keys):
            continue
        matched = [fn for fn in functions if contract.matches(fn)]
        for fn in matched:
            contract_matches.setdefault((fn.repo, fn.file), []).append(contract.name)
        if matched:
            continue
        evidence = [
            Evidence("contract", f"{contract.name} env {key}", loc["file"], loc["lineNumber"])
            for key in contract.env_keys
            for loc in declared_env.get(key, [])
        ]
        should_be_used.append(
            Finding(
                classification=Classification.SHOULD_BE_USED,
                reason=f"Contract {contract.name} present with no handler wired",
                file=evidence[0].file if evidence else "",
                line_numbers=[e.line_number for e in evidence if e.line_number],
                evidence=evidence,
                rule=RULE_NAME,
            )
        )

    in_use, broken, obsolete = [], [], []
    groups: dict[str, list[FunctionInfo]] = {}
    for fn in functions:
        key = (fn.repo, fn.file)
        evidence = list(usage.get(key, []))
        contracts = contract_matches.get(key, [])
        for name in contracts:
            contract = next(c for c in CONTRACTS if c.name == name)
            for env_key in contract.env_keys:
                for loc in declared_env.get(env_key, []):
                    evidence.append(Evidence("contract", f"{name} env {env_key}", loc["file"], loc["lineNumber"]))
        if evidence:
            in_use.append(
                Finding(
                    classification=Classification.IN_USE,
                    reason="Integration contract requires handler" if contracts else "Static call-site detected",
                    file=fn.file,
                    repo=fn.repo,
                    line_numbers=unique_sorted(e.line_number for e in evidence),
                    evidence=evidence,
                    rule=RULE_NAME,
                )
            )

        reasons, broken_evidence = _broken_checks(
            fn, env_present, dependencies.get(fn.repo), queries, schema_fields,
            function_contents.get(key, ""),
        )
        if reasons:
            broken.append(
                Finding(
                    classification=Classification.BROKEN,
                    reason="; ".join(unique_sorted(reasons)),
                    file=fn.file,
                    repo=fn.repo,
                    line_numbers=unique_sorted(e.line_number for e in broken_evidence),
                    evidence=broken_evidence,
                    rule=RULE_NAME,
                )
            )

        is_webhook = "webhook" in fn.name.lower() or "webhook" in (fn.route or "").lower()
        scheduled = any(e.type == "schedule" for e in evidence)
        if not evidence and not scheduled and not fn.env_keys and not is_webhook:
            obsolete.append(
                Finding(
                    classification=Classification.OBSOLETE,
                    reason="No usage, contract requirement, schedule, webhook, or env dependency detected",
                    file=fn.file,
                    repo=fn.repo,
                    rule=RULE_NAME,
                )
            )

        groups.setdefault(fn.fingerprint(), []).append(fn)

    duplicate = []
    for fingerprint, members in sorted(groups.items()):
        if len(members) < 2:
            continue
        for fn in members:
            duplicate.append(
                Finding(
                    classification=Classification.DUPLICATE,
                    reason=f"Duplicate behavior fingerprint {fingerprint}",
                    file=fn.file,
                    repo=fn.repo,
                    evidence=[Evidence("fingerprint", fingerprint, fn.file)],
                    rule=RULE_NAME,
                    extra={"duplicates": [f"{m.repo}/{m.file}" for m in members if m is not fn]},
                )
            )

    def ordered(findings: list[Finding]) -> list[Finding]:
        return sorted(findings, key=lambda f: f.sort_key())

    return FunctionsAudit(
        functions=functions,
        in_use=ordered(in_use),
        should_be_used=ordered(should_be_used),
        broken=ordered(broken),
        obsolete=ordered(obsolete),
        duplicate=ordered(duplicate),
    )


def _broken_checks(
    fn: FunctionInfo,
    env_present: Callable[[str], bool],
    deps: frozenset[str] | None,
    queries: QueryIndex,
    schema_fields: frozenset[str],
    content: str,
) -> tuple[list[str], list[Evidence]]:
    reasons: list[str] = []
    evidence: list[Evidence] = []

    if not fn.handler_names:
        reasons.append("No handler export detected")
        evidence.append(Evidence("handler", "No handler export detected", fn.file, 1))

    for env in fn.env_evidence:
        if not env_present(env.detail):
            reasons.append(f"Missing env var {env.detail}")
            evidence.append(Evidence("env", f"Missing env var {env.detail}", fn.file, env.line_number))

    # without a package.json there is nothing to compare against
    if deps is not None:
        for spec in fn.imports:
            pkg = package_name(spec)
            if pkg and pkg not in BUILTIN_MODULES and pkg not in deps:
                reasons.append(f"Missing dependency {pkg}")
                evidence.append(Evidence("dependency", f"Missing dependency {pkg}", fn.file, 1))

    lines = LineIndex(content)
    for match in PLAIN_HTTP.finditer(content):
        if LOCAL_HOSTS.match(match.group(0)):
            continue
        reasons.append("Unsafe external API access (http://)")
        evidence.append(Evidence("unsafeExternalApi", match.group(0), fn.file, lines.line_for(match.start())))

    if schema_fields:
        for record in queries.queries:
            if (record.repo, record.file) != (fn.repo, fn.file):
                continue
            for name in record.fields:
                if name not in schema_fields and not name.startswith("_"):
                    reasons.append(f"Invalid schema field {name}")
                    evidence.append(Evidence("schemaField", f"Invalid schema field {name}", fn.file, record.line_number))

    return reasons, evidence
