"""Read-only sampling client for the document store's HTTP query API."""

import json
import urllib.error
import urllib.parse
import urllib.request
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from crossaudit.indexer.env_files import lookup_env_value
from crossaudit.repos import RepoDescriptor
from crossaudit.utils.constants import SANITY_DATASET_KEYS, SANITY_PROJECT_KEYS, SANITY_TOKEN_KEYS
from crossaudit.utils.logging import logger


class SampleUnavailable(Exception):
    """The store could not be sampled; carries a human-readable reason."""


@dataclass(frozen=True)
class SanityCredentials:
    project_id: str
    dataset: str
    token: str = field(repr=False)
    api_version: str = "2024-01-01"

    def query_url(self, query: str) -> str:
        version = self.api_version if self.api_version.startswith("v") else f"v{self.api_version}"
        encoded = urllib.parse.urlencode({"query": query})
        return (
            f"https://{self.project_id}.api.sanity.io/{version}/data/query/"
            f"{urllib.parse.quote(self.dataset)}?{encoded}"
        )


def resolve_credentials(
    repos: tuple[RepoDescriptor, ...],
    env_files: list[str],
    api_version: str,
    environ: Mapping[str, str] | None = None,
) -> tuple[SanityCredentials | None, list[str]]:
    """Credentials from the process environment, then repo env files.

    Returns ``(None, missing_groups)`` when any of project, dataset or token
    cannot be found.
    """
    found = {}
    missing = []
    for label, keys in (
        ("project", SANITY_PROJECT_KEYS),
        ("dataset", SANITY_DATASET_KEYS),
        ("token", SANITY_TOKEN_KEYS),
    ):
        hit = lookup_env_value(keys, repos, env_files, environ)
        if hit is None:
            missing.append("/".join(keys))
        else:
            found[label] = hit[1]

    if missing:
        return None, missing
    return (
        SanityCredentials(
            project_id=found["project"],
            dataset=found["dataset"],
            token=found["token"],
            api_version=api_version,
        ),
        [],
    )


class SanityClient:
    """Minimal GET-only query client. Never writes to the store."""

    def __init__(
        self,
        credentials: SanityCredentials,
        timeout: float = 15,
        opener: Callable[..., Any] | None = None,
    ):
        self.credentials = credentials
        self.timeout = timeout
        self._open = opener or urllib.request.urlopen

    def query(self, groq: str) -> Any:
        req = urllib.request.Request(
            self.credentials.query_url(groq),
            headers={
                "Authorization": f"Bearer {self.credentials.token}",
                "Accept": "application/json",
                "User-Agent": "crossaudit",
            },
        )
        try:
            with self._open(req, timeout=self.timeout) as response:
                payload = json.loads(response.read().decode("utf-8"))
        except urllib.error.HTTPError as e:
            raise SampleUnavailable(f"HTTP {e.code} from document store") from e
        except (urllib.error.URLError, TimeoutError, OSError) as e:
            raise SampleUnavailable(f"Document store unreachable: {e}") from e
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise SampleUnavailable(f"Invalid JSON from document store: {e}") from e

        if not isinstance(payload, dict) or "result" not in payload:
            raise SampleUnavailable("Unexpected response shape from document store")
        return payload["result"]

    def sample_documents(self, type_name: str, limit: int) -> list[dict[str, Any]]:
        safe_name = type_name.replace('"', "")
        result = self.query(f'*[_type == "{safe_name}"][0...{int(limit)}]')
        if not isinstance(result, list):
            raise SampleUnavailable(f"Expected a list of '{type_name}' documents")
        docs = [doc for doc in result if isinstance(doc, dict)]
        logger.debug(f"Sampled {len(docs)} '{type_name}' documents")
        return docs


@dataclass(frozen=True)
class RuntimeSample:
    """Sampled documents per type, or the reason sampling did not happen."""

    documents: Mapping[str, tuple[dict[str, Any], ...]] = field(default_factory=dict)
    reason: str | None = None

    @property
    def available(self) -> bool:
        return self.reason is None

    @classmethod
    def unavailable(cls, reason: str) -> "RuntimeSample":
        return cls(documents={}, reason=reason)
