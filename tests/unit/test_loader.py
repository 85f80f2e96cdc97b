"""Tests for NodeLoader: kind classification and reference extraction."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest
from prometheus_client import REGISTRY

from kustograph.collector.base import MissingKustomizationError, ResourceNotFoundError, RetrievalError
from kustograph.graph.errors import NodeMalformedError, NodeNotFoundError, ReferenceSyntaxError
from kustograph.graph.loader import NodeLoader, declares_references, extract_references, leaf_kind_for
from kustograph.graph.models import EdgeType, NodeIdentity, NodeKind

_OVERLAY = NodeIdentity.local("/repo/apps/prod")

_FULL_KUSTOMIZATION = b"""\
apiVersion: kustomize.config.k8s.io/v1beta1
kind: Kustomization
namespace: prod
resources:
- deployment.yaml
- ../shared
bases:
- ../base
patches:
- path: replicas.yaml
- patch: |-
    - op: replace
      path: /spec/replicas
      value: 3
  target:
    kind: Deployment
patchesStrategicMerge:
- memory.yaml
- |-
  apiVersion: apps/v1
  kind: Deployment
patchesJson6902:
- target:
    kind: Service
  path: service-port.yaml
configMapGenerator:
- name: app-config
  files:
  - app.properties
  - settings=config/settings.ini
  envs:
  - app.env
secretGenerator:
- name: creds
  env: creds.env
components:
- ../components/monitoring
generators:
- generator.yaml
"""


def _make_retriever(content: bytes | None = None, side_effect: Exception | None = None) -> MagicMock:
    retriever = MagicMock()
    retriever.fetch = AsyncMock(return_value=content, side_effect=side_effect)
    return retriever


# ---------------------------------------------------------------------------
# Reference extraction
# ---------------------------------------------------------------------------


class TestExtraction:
    async def test_references_follow_declaration_order(self) -> None:
        node = await NodeLoader(_make_retriever(_FULL_KUSTOMIZATION)).load(_OVERLAY)

        assert [(r.raw, r.reference_type, r.field) for r in node.declared_references] == [
            ("deployment.yaml", EdgeType.RESOURCE, "resources"),
            ("../shared", EdgeType.RESOURCE, "resources"),
            ("../base", EdgeType.BASE, "bases"),
            ("replicas.yaml", EdgeType.PATCH, "patches"),
            ("memory.yaml", EdgeType.PATCH, "patchesStrategicMerge"),
            ("service-port.yaml", EdgeType.PATCH, "patchesJson6902"),
            ("app.properties", EdgeType.GENERATOR, "configMapGenerator"),
            ("config/settings.ini", EdgeType.GENERATOR, "configMapGenerator"),
            ("app.env", EdgeType.GENERATOR, "configMapGenerator"),
            ("creds.env", EdgeType.GENERATOR, "secretGenerator"),
            ("../components/monitoring", EdgeType.COMPONENT, "components"),
            ("generator.yaml", EdgeType.GENERATOR, "generators"),
        ]

    async def test_overlay_keeps_document(self) -> None:
        node = await NodeLoader(_make_retriever(_FULL_KUSTOMIZATION)).load(_OVERLAY)
        assert node.kind is NodeKind.OVERLAY
        assert node.document["namespace"] == "prod"

    def test_null_field_is_empty(self) -> None:
        assert extract_references(_OVERLAY, {"resources": None}) == ()

    def test_non_list_field_is_malformed(self) -> None:
        with pytest.raises(NodeMalformedError):
            extract_references(_OVERLAY, {"resources": "deployment.yaml"})

    def test_non_string_item_is_syntax_error(self) -> None:
        with pytest.raises(ReferenceSyntaxError) as exc_info:
            extract_references(_OVERLAY, {"bases": [42]})
        assert exc_info.value.declared_by == _OVERLAY
        assert exc_info.value.raw_reference == "42"

    def test_generator_entry_must_be_mapping(self) -> None:
        with pytest.raises(NodeMalformedError):
            extract_references(_OVERLAY, {"configMapGenerator": ["app.env"]})

    def test_unknown_fields_are_ignored(self) -> None:
        assert extract_references(_OVERLAY, {"namePrefix": "prod-", "images": [{"name": "x"}]}) == ()

    def test_declares_references(self) -> None:
        assert declares_references({"kind": "Kustomization", "components": []}) is True
        assert declares_references({"kind": "ConfigMap", "data": {}}) is False


# ---------------------------------------------------------------------------
# Overlay documents
# ---------------------------------------------------------------------------


class TestOverlayDocuments:
    async def test_empty_kustomization_is_malformed(self) -> None:
        with pytest.raises(NodeMalformedError):
            await NodeLoader(_make_retriever(b"")).load(_OVERLAY)

    async def test_multiple_documents_are_malformed(self) -> None:
        content = b"resources:\n- a.yaml\n---\nresources:\n- b.yaml\n"
        with pytest.raises(NodeMalformedError):
            await NodeLoader(_make_retriever(content)).load(_OVERLAY)

    async def test_invalid_yaml_is_malformed(self) -> None:
        with pytest.raises(NodeMalformedError) as exc_info:
            await NodeLoader(_make_retriever(b"resources: [unclosed\n")).load(_OVERLAY)
        assert exc_info.value.identity == _OVERLAY

    async def test_scalar_document_is_malformed(self) -> None:
        with pytest.raises(NodeMalformedError):
            await NodeLoader(_make_retriever(b"just a string\n")).load(_OVERLAY)

    async def test_minimal_kustomization_is_an_overlay(self) -> None:
        node = await NodeLoader(_make_retriever(b"namespace: prod\n")).load(_OVERLAY)
        assert node.kind is NodeKind.OVERLAY
        assert node.declared_references == ()


# ---------------------------------------------------------------------------
# Leaf files
# ---------------------------------------------------------------------------


class TestLeafFiles:
    async def test_manifest_keeps_its_reference_kind(self) -> None:
        identity = NodeIdentity.local("/repo/apps/prod/deployment.yaml")
        content = b"apiVersion: apps/v1\nkind: Deployment\nmetadata:\n  name: web\n"
        node = await NodeLoader(_make_retriever(content)).load(identity, NodeKind.RESOURCE_FILE)
        assert node.kind is NodeKind.RESOURCE_FILE
        assert node.document == ({"apiVersion": "apps/v1", "kind": "Deployment", "metadata": {"name": "web"}},)

    async def test_patch_body_is_not_parsed(self) -> None:
        identity = NodeIdentity.local("/repo/apps/prod/ops.yaml")
        content = b"- op: replace\n  path: /spec/replicas\n  value: 3\n"
        node = await NodeLoader(_make_retriever(content)).load(identity, NodeKind.PATCH_FILE)
        assert node.kind is NodeKind.PATCH_FILE
        assert node.document == content.decode()

    async def test_multi_document_manifest(self) -> None:
        identity = NodeIdentity.local("/repo/apps/prod/all.yaml")
        content = b"kind: Service\n---\nkind: Deployment\n---\n"
        node = await NodeLoader(_make_retriever(content)).load(identity, NodeKind.RESOURCE_FILE)
        assert [doc["kind"] for doc in node.document] == ["Service", "Deployment"]

    async def test_generator_input_is_not_parsed(self) -> None:
        identity = NodeIdentity.local("/repo/apps/prod/app.env")
        node = await NodeLoader(_make_retriever(b"A=1\nB: [\n")).load(identity, NodeKind.GENERATOR_SPEC)
        assert node.kind is NodeKind.GENERATOR_SPEC
        assert node.document == "A=1\nB: [\n"

    @pytest.mark.parametrize(
        ("name", "content"),
        [
            ("values.yaml", b"resources:\n  limits:\n    cpu: 1\n"),
            ("data.yaml", b"resources:\n- name: cpu\n"),
            ("list.json", b"[1, 2, 3]\n"),
        ],
    )
    async def test_generator_input_with_manifest_suffix_stays_opaque(self, name: str, content: bytes) -> None:
        identity = NodeIdentity.local(f"/repo/apps/prod/{name}")
        node = await NodeLoader(_make_retriever(content)).load(identity, NodeKind.GENERATOR_SPEC)
        assert node.kind is NodeKind.GENERATOR_SPEC
        assert node.declared_references == ()
        assert node.document == content.decode()

    async def test_manifest_declaring_references_is_an_overlay(self) -> None:
        identity = NodeIdentity.local("/repo/apps/prod/extra.yaml")
        node = await NodeLoader(_make_retriever(b"resources:\n- cm.yaml\n")).load(identity, NodeKind.RESOURCE_FILE)
        assert node.kind is NodeKind.OVERLAY
        assert [r.raw for r in node.declared_references] == ["cm.yaml"]

    async def test_broken_manifest_is_malformed(self) -> None:
        identity = NodeIdentity.local("/repo/apps/prod/broken.yaml")
        with pytest.raises(NodeMalformedError):
            await NodeLoader(_make_retriever(b"key: [\n")).load(identity, NodeKind.RESOURCE_FILE)

    def test_leaf_kind_for(self) -> None:
        assert leaf_kind_for(EdgeType.PATCH) is NodeKind.PATCH_FILE
        assert leaf_kind_for(EdgeType.GENERATOR) is NodeKind.GENERATOR_SPEC
        assert leaf_kind_for(None) is NodeKind.RESOURCE_FILE


# ---------------------------------------------------------------------------
# Retrieval failures
# ---------------------------------------------------------------------------


class TestRetrievalFailures:
    async def test_missing_node(self) -> None:
        retriever = _make_retriever(side_effect=ResourceNotFoundError(_OVERLAY, "no such file or directory"))
        with pytest.raises(NodeNotFoundError) as exc_info:
            await NodeLoader(retriever).load(_OVERLAY)
        assert exc_info.value.identity == _OVERLAY
        assert "no such file or directory" in str(exc_info.value)

    async def test_unreachable_node(self) -> None:
        retriever = _make_retriever(side_effect=RetrievalError(_OVERLAY, "connection refused"))
        with pytest.raises(NodeNotFoundError) as exc_info:
            await NodeLoader(retriever).load(_OVERLAY)
        assert "unreachable" in str(exc_info.value)

    async def test_fetch_called_once_per_load(self) -> None:
        retriever = _make_retriever(b"resources: []\n")
        await NodeLoader(retriever).load(_OVERLAY)
        retriever.fetch.assert_awaited_once_with(_OVERLAY)


# ---------------------------------------------------------------------------
# Directories without a kustomization file
# ---------------------------------------------------------------------------


class TestPlainDirectories:
    async def test_directory_expands_into_its_resource_files(self) -> None:
        retriever = _make_retriever(side_effect=MissingKustomizationError(_OVERLAY, ("cm.yaml", "svc.json")))
        node = await NodeLoader(retriever).load(_OVERLAY)
        assert node.kind is NodeKind.OVERLAY
        assert [(r.raw, r.reference_type, r.field) for r in node.declared_references] == [
            ("cm.yaml", EdgeType.RESOURCE, "resources"),
            ("svc.json", EdgeType.RESOURCE, "resources"),
        ]

    async def test_empty_directory_is_not_found(self) -> None:
        retriever = _make_retriever(side_effect=MissingKustomizationError(_OVERLAY))
        with pytest.raises(NodeNotFoundError, match="no resource files"):
            await NodeLoader(retriever).load(_OVERLAY)

    async def test_directory_is_not_expanded_for_a_leaf(self) -> None:
        identity = NodeIdentity.local("/repo/apps/prod/patches")
        retriever = _make_retriever(side_effect=MissingKustomizationError(identity, ("cm.yaml",)))
        with pytest.raises(NodeNotFoundError, match="no kustomization file"):
            await NodeLoader(retriever).load(identity, NodeKind.PATCH_FILE)


def _loaded(kind: str) -> float:
    return REGISTRY.get_sample_value("kustograph_nodes_loaded_total", {"kind": kind}) or 0.0


async def test_loads_are_counted_by_kind() -> None:
    before = _loaded("patch_file")
    identity = NodeIdentity.local("/repo/apps/prod/patch.yaml")
    await NodeLoader(_make_retriever(b"kind: Deployment\n")).load(identity, NodeKind.PATCH_FILE)
    assert _loaded("patch_file") == before + 1
