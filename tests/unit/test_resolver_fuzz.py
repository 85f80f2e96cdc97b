"""Property-based tests for reference resolution.

Uses hypothesis to check that:
 1. Resolution is deterministic for any input
 2. Any input either resolves or raises ReferenceSyntaxError
 3. Local results are absolute and fully normalized
"""

from __future__ import annotations

import posixpath

from hypothesis import given, settings
from hypothesis import strategies as st

from kustograph.graph.errors import ReferenceSyntaxError
from kustograph.graph.models import NodeIdentity
from kustograph.graph.resolver import ResolutionContext, resolve_reference

_CONTEXT = ResolutionContext(base=NodeIdentity.local("/repo/apps/overlays/prod"))

_segments = st.lists(
    st.sampled_from(["..", ".", "base", "dev", "deploy.yaml", "kustomization.yaml"]),
    min_size=1,
    max_size=8,
)


def _attempt(raw: str) -> NodeIdentity | None:
    try:
        return resolve_reference(raw, _CONTEXT)
    except ReferenceSyntaxError:
        return None


@settings(max_examples=300, deadline=None)
@given(raw=st.text(max_size=60))
def test_arbitrary_text_resolves_or_raises_syntax_error(raw: str) -> None:
    assert _attempt(raw) == _attempt(raw)


@settings(max_examples=300, deadline=None)
@given(segments=_segments)
def test_local_results_are_normalized(segments: list[str]) -> None:
    identity = resolve_reference("/".join(segments), _CONTEXT)
    assert identity.path.startswith("/")
    assert identity.path == posixpath.normpath(identity.path)


@settings(max_examples=200, deadline=None)
@given(segments=_segments)
def test_leading_dot_segment_is_irrelevant(segments: list[str]) -> None:
    raw = "/".join(segments)
    assert resolve_reference(f"./{raw}", _CONTEXT) == resolve_reference(raw, _CONTEXT)


@settings(max_examples=200, deadline=None)
@given(
    owner=st.from_regex(r"[a-z][a-z0-9-]{0,10}", fullmatch=True),
    repo=st.from_regex(r"[a-z][a-z0-9-]{0,10}", fullmatch=True),
    ref=st.from_regex(r"v[0-9]\.[0-9]", fullmatch=True),
)
def test_https_and_ssh_spellings_agree(owner: str, repo: str, ref: str) -> None:
    https = resolve_reference(f"https://github.com/{owner}/{repo}//deploy?ref={ref}", _CONTEXT)
    ssh = resolve_reference(f"git@github.com:{owner}/{repo}.git//deploy?ref={ref}", _CONTEXT)
    assert https == ssh
