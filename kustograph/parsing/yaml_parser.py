"""YAML/JSON document parsing backed by PyYAML."""

from __future__ import annotations

from typing import Any, Protocol

import yaml

from kustograph.graph.errors import KustographError
from kustograph.observability.logging import get_logger

_logger = get_logger("parsing.yaml")


class DocumentParseError(KustographError):
    """Raw content that is not a stream of key-value documents."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class DocumentParser(Protocol):
    """Parsing collaborator consumed by the node loader."""

    def parse(self, raw: bytes) -> list[dict[str, Any]]: ...


class YamlDocumentParser:
    """Parses multi-document YAML (JSON is a YAML subset).

    Empty documents (``---`` separators with no content) are skipped. Any
    document that is not a mapping makes the whole stream invalid.
    """

    def parse(self, raw: bytes) -> list[dict[str, Any]]:
        try:
            text = raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise DocumentParseError(f"content is not valid UTF-8: {exc}") from exc

        documents: list[dict[str, Any]] = []
        try:
            for index, doc in enumerate(yaml.safe_load_all(text)):
                if doc is None:
                    _logger.debug("empty_document_skipped", index=index)
                    continue
                if not isinstance(doc, dict):
                    raise DocumentParseError(f"document {index} is a {type(doc).__name__}, expected a mapping")
                documents.append(doc)
        except yaml.YAMLError as exc:
            raise DocumentParseError(f"invalid YAML: {exc}") from exc
        return documents
