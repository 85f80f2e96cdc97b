"""Remote repository retrieval over HTTP.

Remote identities are mapped onto raw-content URLs through a template with
``{host}``, ``{repository}``, ``{owner}``, ``{repo}``, ``{revision}`` and
``{path}`` placeholders. The default template targets GitHub.
"""

from __future__ import annotations

import posixpath

import httpx
import structlog

from kustograph.collector.base import ResourceNotFoundError, RetrievalError, Retriever
from kustograph.graph.models import KUSTOMIZATION_FILE_NAMES, NodeIdentity
from kustograph.models.config import DEFAULT_REMOTE_URL_TEMPLATE
from kustograph.observability.metrics import retrievals_total

_log = structlog.get_logger(component="collector.http")


class HttpRetriever(Retriever):
    """Fetches remote identities with httpx.

    Args:
        url_template: Raw-content URL template.
        timeout:      Per-request timeout in seconds. Defaults to 10.
        client:       Optional shared client; one is opened per fetch otherwise.
    """

    def __init__(
        self,
        url_template: str = DEFAULT_REMOTE_URL_TEMPLATE,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        if not url_template:
            raise ValueError("Remote url_template must not be empty")
        self._url_template = url_template
        self._timeout = timeout
        self._client = client

    @property
    def backend_name(self) -> str:
        return "http"

    def url_for(self, identity: NodeIdentity, path: str) -> str:
        """Render the URL of *path* inside the repository of *identity*."""
        repository = identity.repository or ""
        host, _, repo_path = repository.partition("/")
        owner, _, repo = repo_path.partition("/")
        return self._url_template.format(
            host=host,
            repository=repo_path,
            owner=owner,
            repo=repo,
            revision=identity.revision,
            path=path,
        )

    def _candidates(self, identity: NodeIdentity) -> list[str]:
        if identity.looks_like_file:
            return [identity.path]
        return [posixpath.join(identity.path, name) if identity.path else name for name in KUSTOMIZATION_FILE_NAMES]

    async def fetch(self, identity: NodeIdentity) -> bytes:
        if not identity.is_remote:
            raise RetrievalError(identity, "http retriever cannot fetch local identities")
        if self._client is not None:
            return await self._fetch_with(self._client, identity)
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            return await self._fetch_with(client, identity)

    async def _fetch_with(self, client: httpx.AsyncClient, identity: NodeIdentity) -> bytes:
        for path in self._candidates(identity):
            url = self.url_for(identity, path)
            try:
                response = await client.get(url)
            except httpx.TimeoutException as exc:
                retrievals_total.labels(backend=self.backend_name, outcome="error").inc()
                _log.warning("remote_request_timeout", url=url)
                raise RetrievalError(identity, f"timed out fetching {url}") from exc
            except httpx.HTTPError as exc:
                retrievals_total.labels(backend=self.backend_name, outcome="error").inc()
                _log.warning("remote_http_error", url=url, error=str(exc))
                raise RetrievalError(identity, f"request to {url} failed: {exc}") from exc

            if response.status_code == 404:
                _log.debug("remote_candidate_missing", url=url)
                continue
            if not response.is_success:
                retrievals_total.labels(backend=self.backend_name, outcome="error").inc()
                _log.warning("remote_non_2xx_response", url=url, status_code=response.status_code)
                raise RetrievalError(identity, f"{url} returned HTTP {response.status_code}")

            retrievals_total.labels(backend=self.backend_name, outcome="ok").inc()
            return response.content

        retrievals_total.labels(backend=self.backend_name, outcome="not_found").inc()
        raise ResourceNotFoundError(identity, "not found in remote repository")
