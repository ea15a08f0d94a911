"""Pytest configuration and fixtures."""
import copy
from pathlib import Path

import pytest

from crossaudit.config_runtime import DEFAULTS
from crossaudit.pipeline.runner import run_pipeline
from crossaudit.pipeline.structures import AuditContext
from crossaudit.repos import RepoDescriptor, build_repo

STRIPE_WEBHOOK = """
export default async function handler(req, res) {
  const signature = req.headers['stripe-signature']
  const event = stripe.webhooks.constructEvent(req.body, signature, secret)
  console.log(event.id, event.type)
}
"""

ORDER_SCHEMA = """
import {defineField, defineType} from 'sanity'

export default defineType({
  name: 'order',
  title: 'Order',
  type: 'document',
  fields: [
    defineField({name: 'status', type: 'string', validation: (Rule) => Rule.required()}),
    defineField({name: 'total', type: 'number'}),
  ],
})
"""


@pytest.fixture
def config():
    """Fresh copy of the built-in configuration."""
    cfg = copy.deepcopy(DEFAULTS)
    cfg["repos"] = []
    return cfg


@pytest.fixture
def make_repo(tmp_path):
    """Write a synthetic repository and return its descriptor.

    Usage:
        repo = make_repo("studio", {"schemaTypes/order.ts": "..."}, role="studio")
    """

    def _make(name: str, files: dict[str, str], role: str = "studio") -> RepoDescriptor:
        root = tmp_path / "repos" / name
        root.mkdir(parents=True, exist_ok=True)
        for rel_path, content in files.items():
            target = root / rel_path
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content, encoding="utf-8")
        return build_repo({"name": name, "path": str(root), "role": role}, tmp_path)

    return _make


@pytest.fixture
def run_audit(tmp_path, config):
    """Run the pipeline over descriptors with an empty process environment."""

    def _run(repos, command: str = "run", environ=None, client_factory=None, **overrides):
        cfg = copy.deepcopy(config)
        cfg["paths"]["out_dir"] = str(tmp_path / "out")
        for section, values in overrides.items():
            cfg[section].update(values)
        ctx = AuditContext(root=Path(tmp_path), command=command, config=cfg, repos=tuple(repos))
        return run_pipeline(
            ctx, environ={} if environ is None else environ, client_factory=client_factory
        )

    return _run
