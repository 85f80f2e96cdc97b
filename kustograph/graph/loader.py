"""Node loading: identity to typed Node.

Retrieval and parsing are delegated to collaborators. The loader reads
only the well-known declaration fields of a kustomization document and
keeps references in declaration order (document key order, then list
order).
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from typing import Any

from kustograph.collector.base import MissingKustomizationError, ResourceNotFoundError, RetrievalError, Retriever
from kustograph.graph.errors import NodeMalformedError, NodeNotFoundError, ReferenceSyntaxError
from kustograph.graph.models import DeclaredReference, EdgeType, Node, NodeIdentity, NodeKind
from kustograph.graph.resolver import is_resource_file_name
from kustograph.observability.logging import get_logger
from kustograph.observability.metrics import nodes_loaded_total
from kustograph.parsing.yaml_parser import DocumentParseError, DocumentParser, YamlDocumentParser

_logger = get_logger("graph.loader")

# Each extractor yields raw references from one list item.
_Extractor = Callable[[NodeIdentity, str, object], Iterator[str]]


def _require_string(identity: NodeIdentity, field: str, item: object) -> str:
    if not isinstance(item, str):
        raise ReferenceSyntaxError(
            f"'{field}' entries must be strings, got {type(item).__name__}",
            raw_reference=repr(item),
            declared_by=identity,
        )
    return item


def _plain(identity: NodeIdentity, field: str, item: object) -> Iterator[str]:
    yield _require_string(identity, field, item)


def _inline_path(identity: NodeIdentity, field: str, item: object) -> Iterator[str]:
    if isinstance(item, str):
        yield item
        return
    if not isinstance(item, dict):
        raise NodeMalformedError(identity, f"'{field}' entries must be strings or mappings")
    if "path" in item:
        yield _require_string(identity, f"{field}.path", item["path"])
    else:
        # inline patch body, nothing to follow
        _logger.debug("inline_patch_skipped", node=str(identity), field=field)


def _strategic_merge(identity: NodeIdentity, field: str, item: object) -> Iterator[str]:
    if isinstance(item, str) and "\n" not in item:
        yield item
    else:
        _logger.debug("inline_patch_skipped", node=str(identity), field=field)


def _json6902(identity: NodeIdentity, field: str, item: object) -> Iterator[str]:
    if not isinstance(item, dict):
        raise NodeMalformedError(identity, f"'{field}' entries must be mappings")
    if "path" in item:
        yield _require_string(identity, f"{field}.path", item["path"])


def _generator_sources(identity: NodeIdentity, field: str, item: object) -> Iterator[str]:
    if not isinstance(item, dict):
        raise NodeMalformedError(identity, f"'{field}' entries must be mappings")
    for source in _as_list(identity, f"{field}.files", item.get("files")):
        source = _require_string(identity, f"{field}.files", source)
        # "key=path" names the key explicitly
        yield source.split("=", 1)[1] if "=" in source else source
    for source in _as_list(identity, f"{field}.envs", item.get("envs")):
        yield _require_string(identity, f"{field}.envs", source)
    if item.get("env") is not None:
        yield _require_string(identity, f"{field}.env", item["env"])


DECLARATION_FIELDS: dict[str, tuple[EdgeType, _Extractor]] = {
    "bases": (EdgeType.BASE, _plain),
    "resources": (EdgeType.RESOURCE, _plain),
    "components": (EdgeType.COMPONENT, _plain),
    "patches": (EdgeType.PATCH, _inline_path),
    "patchesStrategicMerge": (EdgeType.PATCH, _strategic_merge),
    "patchesJson6902": (EdgeType.PATCH, _json6902),
    "configMapGenerator": (EdgeType.GENERATOR, _generator_sources),
    "secretGenerator": (EdgeType.GENERATOR, _generator_sources),
    "generators": (EdgeType.GENERATOR, _plain),
}

_LEAF_KIND_BY_REFERENCE = {
    EdgeType.RESOURCE: NodeKind.RESOURCE_FILE,
    EdgeType.PATCH: NodeKind.PATCH_FILE,
    EdgeType.GENERATOR: NodeKind.GENERATOR_SPEC,
}


def _as_list(identity: NodeIdentity, field: str, value: object) -> list[object]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise NodeMalformedError(identity, f"'{field}' must be a list, got {type(value).__name__}")
    return value


def declares_references(document: dict[str, Any]) -> bool:
    """True when *document* has at least one declaration field."""
    return any(key in DECLARATION_FIELDS for key in document)


def extract_references(identity: NodeIdentity, document: dict[str, Any]) -> tuple[DeclaredReference, ...]:
    """Read every declared reference of *document* in declaration order."""
    references: list[DeclaredReference] = []
    for field, value in document.items():
        declaration = DECLARATION_FIELDS.get(field)
        if declaration is None:
            continue
        reference_type, extractor = declaration
        for item in _as_list(identity, field, value):
            for raw in extractor(identity, field, item):
                references.append(DeclaredReference(raw=raw, reference_type=reference_type, field=field))
    return tuple(references)


def leaf_kind_for(reference_type: EdgeType | None) -> NodeKind:
    """Kind of a non-overlay node, by the reference type that pulled it in."""
    if reference_type is None:
        return NodeKind.RESOURCE_FILE
    return _LEAF_KIND_BY_REFERENCE.get(reference_type, NodeKind.RESOURCE_FILE)


class NodeLoader:
    """Loads nodes through the retrieval and parsing collaborators.

    Args:
        retriever: Backend returning raw bytes for an identity.
        parser:    Document parser. Defaults to YAML.
    """

    def __init__(self, retriever: Retriever, parser: DocumentParser | None = None) -> None:
        self._retriever = retriever
        self._parser = parser or YamlDocumentParser()

    async def load(self, identity: NodeIdentity, expected_kind: NodeKind = NodeKind.OVERLAY) -> Node:
        """Load the node behind *identity*.

        *expected_kind* is the classification of the reference that
        discovered the node; build roots are overlays.

        Raises:
            NodeNotFoundError  -- retrieval failed.
            NodeMalformedError -- the content could not be parsed or has an invalid shape.
            ReferenceSyntaxError -- a declaration field holds a non-string reference.
        """
        try:
            raw = await self._retriever.fetch(identity)
        except MissingKustomizationError as exc:
            if expected_kind is not NodeKind.OVERLAY:
                raise NodeNotFoundError(identity, exc.reason) from exc
            if not exc.entries:
                raise NodeNotFoundError(identity, f"{exc.reason} and no resource files") from exc
            node = self._directory(identity, exc.entries)
        except ResourceNotFoundError as exc:
            raise NodeNotFoundError(identity, exc.reason) from exc
        except RetrievalError as exc:
            raise NodeNotFoundError(identity, f"unreachable: {exc.reason}") from exc
        else:
            if expected_kind is NodeKind.OVERLAY:
                node = self._overlay(identity, raw)
            else:
                node = self._leaf(identity, raw, expected_kind)

        nodes_loaded_total.labels(kind=node.kind.value).inc()
        _logger.debug(
            "node_loaded",
            node=str(identity),
            kind=node.kind.value,
            references=len(node.declared_references),
        )
        return node

    def _parse(self, identity: NodeIdentity, raw: bytes) -> list[dict[str, Any]]:
        try:
            return self._parser.parse(raw)
        except DocumentParseError as exc:
            raise NodeMalformedError(identity, exc.reason) from exc

    def _overlay(self, identity: NodeIdentity, raw: bytes) -> Node:
        documents = self._parse(identity, raw)
        if not documents:
            raise NodeMalformedError(identity, "kustomization file is empty")
        if len(documents) > 1:
            raise NodeMalformedError(identity, f"kustomization file holds {len(documents)} documents, expected 1")
        document = documents[0]
        return Node(
            identity=identity,
            kind=NodeKind.OVERLAY,
            declared_references=extract_references(identity, document),
            document=document,
        )

    def _directory(self, identity: NodeIdentity, entries: tuple[str, ...]) -> Node:
        # a plain directory stands for the resource files directly inside it
        _logger.debug("directory_expanded", node=str(identity), files=len(entries))
        return Node(
            identity=identity,
            kind=NodeKind.OVERLAY,
            declared_references=tuple(
                DeclaredReference(raw=name, reference_type=EdgeType.RESOURCE, field="resources") for name in entries
            ),
            document={"resources": list(entries)},
        )

    def _leaf(self, identity: NodeIdentity, raw: bytes, expected_kind: NodeKind) -> Node:
        if expected_kind is not NodeKind.RESOURCE_FILE or not is_resource_file_name(identity.name):
            # patch bodies and generator inputs stay opaque whatever their suffix
            return Node(identity=identity, kind=expected_kind, document=raw.decode("utf-8", errors="replace"))

        documents = self._parse(identity, raw)
        if len(documents) == 1 and declares_references(documents[0]):
            return Node(
                identity=identity,
                kind=NodeKind.OVERLAY,
                declared_references=extract_references(identity, documents[0]),
                document=documents[0],
            )
        return Node(identity=identity, kind=expected_kind, document=tuple(documents))
