"""End-to-end pipeline runs over synthetic repositories."""

import json
from dataclasses import replace

import pytest
from conftest import ORDER_SCHEMA, STRIPE_WEBHOOK

from crossaudit.pipeline import runner
from crossaudit.pipeline.structures import StepStatus
from crossaudit.repos import build_repo
from crossaudit.steps import webhook_drift_report
from crossaudit.utils.constants import SUMMARY_JSON, SUMMARY_MD, VERDICT_JSON
from crossaudit.utils.exit_codes import ExitCodes

ORDER_QUERY = "export const orders = () => client.fetch('*[_type == \"order\"]{_id, status, totalAmount}')\n"

UNGUARDED_WEBHOOK = STRIPE_WEBHOOK + "sanityClient.create({_type: 'order', status: 'paid'})\n"

ORDER_WITH_PAYMENT_ID = ORDER_SCHEMA.replace(
    "defineField({name: 'total', type: 'number'}),",
    "defineField({name: 'total', type: 'number'}),\n"
    "    defineField({name: 'stripePaymentIntentId', type: 'string'}),",
)


class FakeClient:
    def __init__(self, documents):
        self.documents = documents

    def sample_documents(self, type_name, limit):
        return self.documents.get(type_name, [])[:limit]


@pytest.fixture
def drift_repos(make_repo):
    studio = make_repo("studio", {"schemaTypes/order.ts": ORDER_SCHEMA})
    shop = make_repo("shop", {"src/queries.ts": ORDER_QUERY}, role="storefront")
    return studio, shop


@pytest.fixture
def webhook_repo(make_repo):
    return make_repo("fns", {"netlify/functions/stripeWebhook.ts": UNGUARDED_WEBHOOK}, role="functions")


class TestArtifacts:
    def test_step_files_summary_and_verdict(self, run_audit, drift_repos):
        report = run_audit(drift_repos)

        for name in runner.STEP_NAMES:
            data = json.loads((report.run_dir / f"{name}.json").read_text())
            assert data["step"] == name
            assert data["status"] in {"PASS", "WARN", "FAIL", "SKIPPED"}
            assert "generatedAt" in data
        assert (report.run_dir / SUMMARY_JSON).is_file()
        assert (report.run_dir / SUMMARY_MD).read_text().startswith("# Audit Summary")
        assert (report.run_dir / "crossaudit.log").is_file()

        verdict = json.loads((report.run_dir / VERDICT_JSON).read_text())
        assert verdict["status"] == report.verdict.status
        assert set(verdict["phasedEnforcement"]) == set(runner.STEP_NAMES)

    def test_run_dir_is_under_out_dir(self, run_audit, drift_repos, tmp_path):
        report = run_audit(drift_repos)

        assert report.run_dir.parent == tmp_path / "out"
        assert runner.latest_run_dir(tmp_path / "out") == report.run_dir
        run_dir, verdict = runner.load_latest_verdict(tmp_path / "out")
        assert run_dir == report.run_dir
        assert verdict["status"] == report.verdict.status

    def test_no_previous_run(self, tmp_path):
        assert runner.latest_run_dir(tmp_path / "nothing") is None
        assert runner.load_latest_verdict(tmp_path / "nothing") is None


class TestSchemaDrift:
    def test_missing_and_unused_fields(self, run_audit, drift_repos):
        report = run_audit(drift_repos)

        result = report.results["schema-vs-query"]
        assert result.status == StepStatus.WARN
        assert result.requires_enforcement
        assert result.payload["missingInSchema"] == ["totalAmount"]
        assert result.payload["unusedSchemaFields"] == ["total"]

    def test_advisory_phase_passes(self, run_audit, drift_repos):
        report = run_audit(drift_repos, command="ci")

        assert report.results["schema-vs-query"].phase == "WARN"
        assert report.verdict.status == "PASS"
        assert report.exit_code == ExitCodes.SUCCESS

    def test_blocking_phase_fails_ci(self, run_audit, drift_repos):
        report = run_audit(drift_repos, command="ci", enforcement={"phases": {"schema-vs-query": "BLOCK"}})

        assert report.verdict.status == "FAIL"
        assert "schema-vs-query requires enforcement (phase BLOCK)" in report.verdict.reasons
        assert report.exit_code == ExitCodes.VERDICT_FAIL


class TestWebhookGate:
    def test_unguarded_handler_fails_ci(self, run_audit, webhook_repo):
        report = run_audit([webhook_repo], command="ci")

        result = report.results["webhook-drift-report"]
        assert result.status == StepStatus.WARN
        assert result.requires_enforcement
        assert result.phase == "BLOCK"
        assert "webhook-drift-report requires enforcement (phase BLOCK)" in report.verdict.reasons
        assert report.exit_code == ExitCodes.VERDICT_FAIL

    def test_run_never_gates(self, run_audit, webhook_repo):
        report = run_audit([webhook_repo], command="run")

        assert report.verdict.status == "FAIL"
        assert report.exit_code == ExitCodes.SUCCESS

    def test_warn_phase_override(self, run_audit, webhook_repo):
        report = run_audit(
            [webhook_repo], command="ci", enforcement={"phases": {"webhook-drift-report": "WARN"}}
        )

        assert report.verdict.status == "PASS"
        assert report.exit_code == ExitCodes.SUCCESS

    def test_approval_is_stamped(self, run_audit, webhook_repo):
        report = run_audit(
            [webhook_repo],
            enforcement={"approved": ["webhook-drift-report", "api-contract-violations"]},
        )

        assert report.results["webhook-drift-report"].enforcement_approved
        assert not report.results["schema-vs-query"].enforcement_approved

        prompts = report.results["enforcement-prompts"].payload["prompts"]
        by_scope = {p["scope"]: p for p in prompts}
        assert by_scope["webhook-handlers"]["ready"] is True
        assert by_scope["environment-wiring"]["ready"] is False
        text = (report.run_dir / "codex-prompt-fns-webhook-handlers.txt").read_text()
        assert "webhook-drift-report.json: status=WARN" in text
        assert "enforcementApproved=true" in text


class TestScopedCommands:
    def test_unselected_steps_are_skipped(self, run_audit, drift_repos):
        report = run_audit(drift_repos, command="schema")

        skipped = report.results["webhook-drift-report"]
        assert skipped.status == StepStatus.SKIPPED
        assert skipped.reason == "Command schema skips webhook-drift-report"
        assert skipped.payload == webhook_drift_report.empty_payload()
        assert report.results["schema-vs-query"].status == StepStatus.WARN
        # artifacts exist for skipped steps too
        assert (report.run_dir / "webhook-drift-report.json").is_file()

    @pytest.mark.parametrize(
        "command,selected",
        [
            ("contracts", {"api-contract-violations", "enforcement-prompts"}),
            ("env", {"integrations-inventory", "env-resolution-matrix", "enforcement-prompts"}),
        ],
    )
    def test_selection(self, run_audit, drift_repos, command, selected):
        report = run_audit(drift_repos, command=command)

        not_skipped_by_command = {
            name for name, r in report.results.items() if r.reason != f"Command {command} skips {name}"
        }
        assert not_skipped_by_command == selected


class TestDegradedInputs:
    def test_missing_repository(self, run_audit, tmp_path):
        gone = build_repo({"name": "gone", "path": str(tmp_path / "gone")}, tmp_path)
        report = run_audit([gone], command="ci")

        assert report.verdict.integrity_errors == ()
        assert report.exit_code == ExitCodes.SUCCESS
        assert report.results["env-resolution-matrix"].payload["repos"]["gone"]["status"] == "MISSING_PATH"
        assert all(r.status in (StepStatus.PASS, StepStatus.SKIPPED) for r in report.results.values())

    def test_throwing_step_is_an_integrity_error(self, run_audit, drift_repos, monkeypatch):
        def boom(state):
            raise RuntimeError("boom")

        steps = tuple(
            replace(step, execute=boom) if step.name == "schema-vs-query" else step for step in runner.STEPS
        )
        monkeypatch.setattr(runner, "STEPS", steps)

        report = run_audit(drift_repos)

        result = report.results["schema-vs-query"]
        assert result.status == StepStatus.FAIL
        assert result.error == "RuntimeError: boom"
        assert report.verdict.integrity_errors == ("schema-vs-query: RuntimeError: boom",)
        assert report.exit_code == ExitCodes.INTEGRITY_ERROR
        # later steps still ran
        assert report.results["enforcement-prompts"].status == StepStatus.PASS
        data = json.loads((report.run_dir / "schema-vs-query.json").read_text())
        assert data["error"] == "RuntimeError: boom"


class TestRuntimeSampling:
    ENVIRON = {
        "SANITY_PROJECT_ID": "proj",
        "SANITY_DATASET": "production",
        "SANITY_API_TOKEN": "tok-do-not-leak",
    }

    def test_sampled_documents_feed_id_integrity(self, run_audit, make_repo):
        studio = make_repo(
            "studio",
            {
                "schemaTypes/order.ts": ORDER_WITH_PAYMENT_ID,
                "lib/stripe.ts": "export const key = process.env.STRIPE_SECRET_KEY\n",
                ".env": "STRIPE_SECRET_KEY=sk_live_do_not_leak\n",
            },
        )
        client = FakeClient(
            {
                "order": [
                    {"_id": "1", "status": "paid", "stripePaymentIntentId": "pi_1"},
                    {"_id": "2", "status": "paid", "stripePaymentIntentId": "pi_1"},
                ]
            }
        )

        report = run_audit([studio], environ=self.ENVIRON, client_factory=lambda creds: client)

        runtime = report.results["sanity-runtime-scan"]
        assert runtime.status == StepStatus.PASS
        assert runtime.payload["types"]["order"]["schemaFieldsNeverSeen"] == ["total"]

        ids = report.results["external-id-integrity"]
        assert ids.payload["duplicates"] == {"order.stripePaymentIntentId": {"pi_1": 2}}
        assert ids.requires_enforcement

        env = report.results["env-resolution-matrix"].payload["repos"]["studio"]
        assert env["resolution"] == {"STRIPE_SECRET_KEY": ".env"}

        for artifact in report.run_dir.iterdir():
            text = artifact.read_text(encoding="utf-8")
            assert "sk_live_do_not_leak" not in text
            assert "tok-do-not-leak" not in text

    def test_no_credentials_skips_sampling(self, run_audit, drift_repos):
        report = run_audit(drift_repos)

        runtime = report.results["sanity-runtime-scan"]
        assert runtime.status == StepStatus.SKIPPED
        assert runtime.reason.startswith("Missing document store credentials")
        assert report.results["external-id-integrity"].payload["runtime"]["sampled"] is False
