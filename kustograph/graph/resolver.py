"""Reference resolution: raw declared strings to canonical node identities.

Resolution is pure. It never touches storage, so it can reject malformed
references but never reports missing targets; the node loader does that.

Supported remote forms (Kustomize remote targets)::

    https://github.com/org/repo//deploy/base?ref=v1.2.0
    git@github.com:org/repo.git//deploy/base?ref=main
    ssh://git@gitlab.com/org/repo.git//deploy?version=v2
    git::https://example.com/org/repo.git//deploy
    github.com/org/repo/deploy/base?ref=v1
"""

from __future__ import annotations

import posixpath
from dataclasses import dataclass
from urllib.parse import parse_qs, urlsplit

from kustograph.graph.errors import ReferenceSyntaxError
from kustograph.graph.models import (
    KUSTOMIZATION_FILE_NAMES,
    RESOURCE_FILE_SUFFIXES,
    EdgeType,
    NodeIdentity,
    NodeKind,
)
from kustograph.observability.logging import get_logger

_logger = get_logger("graph.resolver")

DEFAULT_REVISION = "HEAD"

_SCHEME_PREFIXES = ("https://", "http://", "ssh://")
_KNOWN_HOSTS = ("github.com", "gitlab.com", "bitbucket.org")
_REVISION_PARAMS = ("ref", "version")

_LEAF_KINDS = {
    EdgeType.PATCH: NodeKind.PATCH_FILE,
    EdgeType.GENERATOR: NodeKind.GENERATOR_SPEC,
}


@dataclass(frozen=True)
class ResolutionContext:
    """Everything a resolve call depends on.

    ``base`` is the directory identity relative references are joined to.
    """

    base: NodeIdentity
    default_revision: str = DEFAULT_REVISION


def is_remote_reference(raw: str) -> bool:
    """True when *raw* uses a remote-repository locator syntax."""
    lowered = raw.lower()
    if lowered.startswith(("git::", "git@")) or lowered.startswith(_SCHEME_PREFIXES):
        return True
    return any(lowered.startswith(f"{host}/") for host in _KNOWN_HOSTS)


def parent_identity(identity: NodeIdentity) -> NodeIdentity:
    """Identity of the directory containing *identity*."""
    if identity.is_remote:
        parent = posixpath.dirname(identity.path)
        return NodeIdentity.remote(identity.repository or "", identity.revision or "", parent)
    return NodeIdentity.local(posixpath.dirname(identity.path) or "/")


def context_base(identity: NodeIdentity) -> NodeIdentity:
    """Directory that references declared by *identity* are relative to."""
    if identity.looks_like_file:
        return parent_identity(identity)
    return identity


def classify(identity: NodeIdentity, reference_type: EdgeType) -> NodeKind:
    """Expected kind of the target of a *reference_type* reference.

    Base and Component references always name overlays. A Resource
    reference names an overlay unless its last segment is a manifest file.
    """
    if reference_type.is_backbone:
        return NodeKind.OVERLAY
    if reference_type is EdgeType.RESOURCE:
        return NodeKind.RESOURCE_FILE if identity.looks_like_file else NodeKind.OVERLAY
    return _LEAF_KINDS[reference_type]


def _validate_raw(raw: object) -> str:
    if not isinstance(raw, str):
        raise ReferenceSyntaxError(f"Reference must be a string, got {type(raw).__name__}")
    if not raw.strip():
        raise ReferenceSyntaxError("Reference is empty", raw_reference=raw)
    if "\n" in raw or "\r" in raw:
        raise ReferenceSyntaxError("Reference spans multiple lines", raw_reference=raw)
    return raw.strip()


def _collapse_kustomization_file(path: str) -> str:
    # a reference to a kustomization file means its directory
    if posixpath.basename(path) in KUSTOMIZATION_FILE_NAMES:
        return posixpath.dirname(path)
    return path


def _normalize_sub_path(sub_path: str, raw: str) -> str:
    if not sub_path:
        return ""
    if sub_path.startswith("/"):
        raise ReferenceSyntaxError("Absolute path inside a remote repository", raw_reference=raw)
    normalized = posixpath.normpath(sub_path)
    if normalized == ".":
        return ""
    if normalized == ".." or normalized.startswith("../"):
        raise ReferenceSyntaxError("Path escapes the repository root", raw_reference=raw)
    return _collapse_kustomization_file(normalized)


def _split_revision(locator: str, raw: str, default_revision: str) -> tuple[str, str]:
    base, _, query = locator.partition("?")
    revision = default_revision
    if query:
        params = parse_qs(query, keep_blank_values=True)
        for key in _REVISION_PARAMS:
            if key in params:
                revision = params[key][-1].strip()
                if not revision:
                    raise ReferenceSyntaxError(f"Empty '{key}' in remote reference", raw_reference=raw)
                break
    return base, revision


def _split_host(base: str, raw: str) -> tuple[str, str]:
    if base.lower().startswith("git@"):
        host, sep, rest = base[4:].partition(":")
        if not sep:
            raise ReferenceSyntaxError("SSH locator is missing ':' after the host", raw_reference=raw)
        return host.lower(), rest
    if base.lower().startswith(_SCHEME_PREFIXES):
        try:
            parts = urlsplit(base)
        except ValueError as exc:
            raise ReferenceSyntaxError(f"Invalid URL: {exc}", raw_reference=raw) from exc
        return (parts.hostname or "").lower(), parts.path
    host, _, rest = base.partition("/")
    return host.lower(), rest


def _split_repository(host: str, rest: str, raw: str) -> tuple[str, str]:
    rest = rest.lstrip("/")
    if "//" in rest:
        repo_part, sub_path = rest.split("//", 1)
    elif ".git/" in rest:
        idx = rest.index(".git/") + len(".git")
        repo_part, sub_path = rest[:idx], rest[idx + 1 :]
    elif rest.endswith(".git"):
        repo_part, sub_path = rest, ""
    elif host in _KNOWN_HOSTS:
        segments = rest.split("/")
        repo_part, sub_path = "/".join(segments[:2]), "/".join(segments[2:])
    else:
        raise ReferenceSyntaxError(
            "Cannot locate the repository root; separate the sub-path with '//'",
            raw_reference=raw,
        )
    repo_part = repo_part.strip("/").removesuffix(".git")
    segments = repo_part.split("/")
    if len(segments) < 2 or not all(segments):
        raise ReferenceSyntaxError("Remote repository must be <owner>/<repo>", raw_reference=raw)
    return repo_part, sub_path


def parse_remote(raw: str, default_revision: str = DEFAULT_REVISION) -> NodeIdentity:
    """Parse a remote locator into a canonical remote identity.

    The scheme, user info and ``.git`` suffix do not take part in the
    identity, so HTTPS and SSH spellings of the same repository collapse.
    """
    locator = raw.removeprefix("git::")
    base, revision = _split_revision(locator, raw, default_revision)
    host, rest = _split_host(base, raw)
    if not host:
        raise ReferenceSyntaxError("Remote reference has no host", raw_reference=raw)
    repo_part, sub_path = _split_repository(host, rest, raw)
    return NodeIdentity.remote(f"{host}/{repo_part}", revision, _normalize_sub_path(sub_path, raw))


def resolve_reference(raw: object, context: ResolutionContext) -> NodeIdentity:
    """Resolve *raw* under *context*. Same inputs always give the same identity."""
    reference = _validate_raw(raw)

    if is_remote_reference(reference):
        return parse_remote(reference, context.default_revision)

    base = context.base
    if base.is_remote:
        if reference.startswith("/"):
            raise ReferenceSyntaxError("Absolute path inside a remote repository", raw_reference=reference)
        joined = posixpath.join(base.path, reference) if base.path else reference
        sub_path = _normalize_sub_path(joined, reference)
        return NodeIdentity.remote(base.repository or "", base.revision or context.default_revision, sub_path)

    joined = posixpath.join(base.path, reference)
    return NodeIdentity.local(_collapse_kustomization_file(posixpath.normpath(joined)) or "/")


class ReferenceResolver:
    """Resolves references declared by a node against that node's location."""

    def __init__(self, default_revision: str = DEFAULT_REVISION) -> None:
        self._default_revision = default_revision

    @property
    def default_revision(self) -> str:
        return self._default_revision

    def context_for(self, identity: NodeIdentity) -> ResolutionContext:
        return ResolutionContext(base=context_base(identity), default_revision=self._default_revision)

    def resolve(self, raw: object, context_identity: NodeIdentity) -> NodeIdentity:
        """Resolve *raw* as declared by the node *context_identity*."""
        identity = resolve_reference(raw, self.context_for(context_identity))
        _logger.debug("reference_resolved", raw=raw, context=str(context_identity), identity=str(identity))
        return identity

    def root(self, location: str) -> NodeIdentity:
        """Identity for a build root given as an absolute path or remote locator."""
        if is_remote_reference(location):
            return parse_remote(_validate_raw(location), self._default_revision)
        if not location.startswith("/"):
            raise ReferenceSyntaxError("Build roots must be absolute paths", raw_reference=location)
        return NodeIdentity.local(_collapse_kustomization_file(posixpath.normpath(location)) or "/")

    @staticmethod
    def classify(identity: NodeIdentity, reference_type: EdgeType) -> NodeKind:
        return classify(identity, reference_type)


def is_resource_file_name(name: str) -> bool:
    """True for names the loader parses as YAML/JSON manifests."""
    return name.lower().endswith(RESOURCE_FILE_SUFFIXES)
