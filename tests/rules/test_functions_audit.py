"""Tests for serverless function inventory and classification."""

import json
from pathlib import Path

import pytest

from crossaudit.indexer.query_index import QueryIndex, QueryRecord
from crossaudit.repos import RepoDescriptor
from crossaudit.rules.base import Classification
from crossaudit.rules.functions_audit import (
    audit_functions,
    describe_function,
    extract_handler_names,
    extract_http_methods,
    infer_route,
    load_dependencies,
    load_schedules,
    package_name,
)
from crossaudit.scanner import SourceFile


def source(path, repo="functions"):
    return SourceFile(
        repo=repo,
        repo_role="functions",
        path=path,
        abs_path=Path("/unused") / path,
        roles=frozenset({"code", "functions"}),
    )


def audit(
    functions,
    code=None,
    declared_env=None,
    process_env=frozenset(),
    dependencies=None,
    schedules=None,
    queries=None,
    schema_fields=frozenset(),
):
    infos = [describe_function(source(path), content) for path, content in functions.items()]
    return audit_functions(
        infos,
        [(source(path), content) for path, content in (code or {}).items()],
        declared_env or {},
        process_env,
        dependencies or {},
        schedules or {},
        queries or QueryIndex(),
        schema_fields,
        {("functions", path): content for path, content in functions.items()},
    )


HANDLER = "export const handler = async () => ({ statusCode: 200 })\n"


class TestDescribe:
    @pytest.mark.parametrize(
        "path,route",
        [
            ("netlify/functions/stripeWebhook.ts", "/.netlify/functions/stripeWebhook"),
            ("src/pages/api/orders/index.ts", "/api/orders"),
            ("api/health.js", "/api/health"),
            ("lib/util.ts", None),
        ],
    )
    def test_infer_route(self, path, route):
        assert infer_route(path) == route

    @pytest.mark.parametrize(
        "specifier,expected",
        [
            ("stripe", "stripe"),
            ("lodash/get", "lodash"),
            ("@sanity/client/stega", "@sanity/client"),
            ("./helpers", None),
            ("node:crypto", None),
        ],
    )
    def test_package_name(self, specifier, expected):
        assert package_name(specifier) == expected

    def test_http_methods(self):
        assert extract_http_methods("export async function GET() {}\nexport const POST = () => {}") == ["GET", "POST"]
        assert extract_http_methods("if (event.httpMethod !== 'POST') return") == ["POST"]
        assert extract_http_methods("headers: {'Access-Control-Allow-Methods': 'GET, OPTIONS'}") == ["GET", "OPTIONS"]
        assert extract_http_methods(HANDLER) == ["ANY"]

    def test_handler_names(self):
        assert extract_handler_names(HANDLER) == ["handler"]
        assert extract_handler_names("export async function GET() {}") == ["GET"]
        assert extract_handler_names("const x = 1") == []

    def test_describe_function(self):
        content = (
            "import Stripe from 'stripe'\n"
            "const secret = process.env.STRIPE_WEBHOOK_SECRET\n"
            "export const handler = async () => { await sanityClient.create({}) }\n"
        )
        info = describe_function(source("netlify/functions/stripeWebhook.ts"), content)

        assert info.name == "stripeWebhook"
        assert info.route_aliases == ["/.netlify/functions/stripeWebhook", "/functions/stripeWebhook"]
        assert info.env_keys == ["STRIPE_WEBHOOK_SECRET"]
        assert info.external_apis == ["stripe"]
        assert info.persistence == ["sanity"]
        assert info.imports == ["stripe"]
        assert info.to_dict()["evidence"]["env"][0]["lineNumber"] == 2


class TestClassification:
    def test_call_site_marks_in_use(self):
        result = audit(
            {"netlify/functions/sendEmail.ts": HANDLER},
            code={"src/checkout.ts": "await fetch('/.netlify/functions/sendEmail')"},
        )

        assert [f.file for f in result.in_use] == ["netlify/functions/sendEmail.ts"]
        assert result.in_use[0].reason == "Static call-site detected"
        assert result.in_use[0].evidence[0].file == "src/checkout.ts"
        assert result.obsolete == []

    def test_unreferenced_function_is_obsolete(self):
        result = audit({"netlify/functions/legacyReport.ts": HANDLER})

        assert result.in_use == []
        assert [f.classification for f in result.obsolete] == [Classification.OBSOLETE]

    def test_schedule_counts_as_usage(self):
        schedules = {"legacyReport": {"schedule": "@daily", "file": "netlify.toml", "repo": "functions", "lineNumber": 2}}
        result = audit({"netlify/functions/legacyReport.ts": HANDLER}, schedules=schedules)

        assert len(result.in_use) == 1
        assert result.in_use[0].evidence[0].type == "schedule"
        assert result.obsolete == []

    def test_broken_reasons(self):
        content = (
            "import Stripe from 'stripe'\n"
            "import { z } from 'zod'\n"
            "const key = process.env.MISSING_KEY\n"
            "fetch('http://api.example.com/x')\n"
            "fetch('http://localhost:8888/y')\n"
        )
        result = audit(
            {"netlify/functions/sync.ts": content},
            dependencies={"functions": frozenset({"stripe"})},
        )

        assert len(result.broken) == 1
        assert set(result.broken[0].reason.split("; ")) == {
            "No handler export detected",
            "Missing env var MISSING_KEY",
            "Missing dependency zod",
            "Unsafe external API access (http://)",
        }
        assert result.broken[0].line_numbers == [1, 3, 4]

    def test_dependencies_unchecked_without_package_json(self):
        content = HANDLER + "import { z } from 'zod'\n"
        result = audit({"netlify/functions/sync.ts": content}, dependencies={"functions": None})
        assert result.broken == []

    def test_declared_env_is_not_broken(self):
        content = HANDLER + "const key = process.env.API_KEY\n"
        result = audit({"netlify/functions/sync.ts": content}, process_env=frozenset({"API_KEY"}))
        assert result.broken == []

    def test_query_field_missing_from_schema(self):
        record = QueryRecord(
            file="netlify/functions/orders.ts",
            repo="functions",
            line_number=2,
            query_text="*[_type == 'order']{_id, totalAmount}",
            fields=("_id", "totalAmount"),
            parse_error=None,
            form="methodCall",
        )
        result = audit(
            {"netlify/functions/orders.ts": HANDLER},
            queries=QueryIndex(queries=(record,)),
            schema_fields=frozenset({"total"}),
        )

        assert result.broken[0].reason == "Invalid schema field totalAmount"
        assert result.broken[0].line_numbers == [2]

    def test_provider_contracts(self):
        result = audit(
            {"netlify/functions/stripeWebhook.ts": "import Stripe from 'stripe'\n" + HANDLER},
            declared_env={"STRIPE_WEBHOOK_SECRET": [{"file": "functions/.env", "lineNumber": 3}]},
            process_env=frozenset({"EASYPOST_WEBHOOK_SECRET"}),
        )

        assert result.in_use[0].reason == "Integration contract requires handler"
        assert result.in_use[0].evidence[0].detail == "stripe-webhook env STRIPE_WEBHOOK_SECRET"
        assert [f.reason for f in result.should_be_used] == [
            "Contract easypost-webhook present with no handler wired"
        ]
        assert result.obsolete == []

    def test_duplicate_fingerprints(self):
        content = "export const handler = async () => { await stripe.charges.list() }\n"
        result = audit({"netlify/functions/a.ts": content, "netlify/functions/b.ts": content})

        assert [f.file for f in result.duplicate] == ["netlify/functions/a.ts", "netlify/functions/b.ts"]
        assert result.duplicate[0].extra["duplicates"] == ["functions/netlify/functions/b.ts"]


class TestRepositoryInputs:
    @pytest.fixture
    def repo(self, tmp_path):
        return RepoDescriptor(name="functions", role="functions", path=tmp_path)

    def test_dependencies(self, repo, tmp_path):
        (tmp_path / "package.json").write_text(
            json.dumps({"dependencies": {"stripe": "^14"}, "devDependencies": {"vitest": "^1"}})
        )
        assert load_dependencies(repo) == frozenset({"stripe", "vitest"})

    def test_dependencies_absent_or_invalid(self, repo, tmp_path):
        assert load_dependencies(repo) is None
        (tmp_path / "package.json").write_text("{not json")
        assert load_dependencies(repo) is None

    def test_schedules(self, repo, tmp_path):
        (tmp_path / "netlify.toml").write_text('[functions."nightlySync"]\n  schedule = "@daily"\n')
        assert load_schedules(repo) == {
            "nightlySync": {"schedule": "@daily", "file": "netlify.toml", "repo": "functions", "lineNumber": 1}
        }

    def test_schedules_in_table_and_inline_forms(self, repo, tmp_path):
        (tmp_path / "netlify.toml").write_text(
            "[functions]\n"
            '  node_bundler = "esbuild"\n'
            '  "weeklyReport" = { schedule = "@weekly" }\n'
            "\n"
            '[functions."nightlySync"]\n'
            '  included_files = ["data/*.json"]\n'
            '  schedule = "@daily"\n'
            "\n"
            "[functions.uploader]\n"
            '  included_files = ["assets/*"]\n'
        )
        schedules = load_schedules(repo)

        assert sorted(schedules) == ["nightlySync", "weeklyReport"]
        assert schedules["weeklyReport"]["schedule"] == "@weekly"
        assert schedules["weeklyReport"]["lineNumber"] == 3
        assert schedules["nightlySync"]["schedule"] == "@daily"
        assert schedules["nightlySync"]["lineNumber"] == 5

    def test_invalid_toml_has_no_schedules(self, repo, tmp_path):
        (tmp_path / "netlify.toml").write_text('[functions."broken"\nschedule = "@daily"\n')
        assert load_schedules(repo) == {}
