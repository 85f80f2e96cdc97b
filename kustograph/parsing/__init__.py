"""Document parsing for kustograph.

Turns raw bytes handed over by a retriever into generic key-value
documents. The graph engine only reads well-known declaration fields from
the result.
"""

from kustograph.parsing.yaml_parser import DocumentParseError, DocumentParser, YamlDocumentParser

__all__ = [
    "DocumentParseError",
    "DocumentParser",
    "YamlDocumentParser",
]
