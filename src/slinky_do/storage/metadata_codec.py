"""Frontmatter encoding and decoding for vault documents.

On disk a metadata block is framed as::

    ---
    key: value
    ---

    body...

The mapping is YAML restricted to strings, numbers, booleans, lists and
nested mappings. Dates are kept as plain strings so that ``2024-01-15``
survives a round trip unchanged.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

import yaml

from slinky_do.exceptions import MalformedMetadataError
from slinky_do.models.schema import MetadataBlock, MetadataStatus, MetadataValue

logger = logging.getLogger(__name__)

DELIMITER = "---"


class _MetadataLoader(yaml.SafeLoader):
    """SafeLoader without implicit timestamp resolution."""


_MetadataLoader.yaml_implicit_resolvers = {
    first_char: [
        (tag, regexp)
        for tag, regexp in resolvers
        if tag != "tag:yaml.org,2002:timestamp"
    ]
    for first_char, resolvers in yaml.SafeLoader.yaml_implicit_resolvers.items()
}


@dataclass(frozen=True)
class DecodeResult:
    """Outcome of splitting a document into frontmatter and body.

    ``metadata`` is None unless ``status`` is PRESENT. For ABSENT and
    MALFORMED documents ``body`` is the whole document text.
    """

    status: MetadataStatus
    metadata: Optional[MetadataBlock]
    body: str
    error: Optional[str] = None


def normalize_value(value: Any, key_path: str = "") -> MetadataValue:
    """Check a parsed YAML value against the closed metadata value set.

    Null becomes an empty string; mapping keys are stringified.

    Raises:
        MalformedMetadataError: For any other type (sets, binary, timestamps)
    """
    if value is None:
        return ""
    if isinstance(value, (str, bool, int, float)):
        return value
    if isinstance(value, list):
        return [normalize_value(v, f"{key_path}[{i}]") for i, v in enumerate(value)]
    if isinstance(value, dict):
        return {
            str(k): normalize_value(v, f"{key_path}.{k}" if key_path else str(k))
            for k, v in value.items()
        }
    raise MalformedMetadataError(
        f"Unsupported value of type {type(value).__name__} at '{key_path or '<root>'}'"
    )


def parse_block(block: str) -> MetadataBlock:
    """Parse the text between the delimiters.

    Raises:
        MalformedMetadataError: If the YAML is invalid or not a mapping
    """
    try:
        data = yaml.load(block, Loader=_MetadataLoader)
    except yaml.YAMLError as e:
        raise MalformedMetadataError("Invalid YAML in metadata block", e) from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise MalformedMetadataError(
            f"Metadata block must be a mapping, got {type(data).__name__}"
        )
    return normalize_value(data)  # type: ignore[return-value]


def _split(text: str) -> Optional[Tuple[str, str]]:
    """Find the delimited region; returns (block, body) or None."""
    lines = text.split("\n")
    if lines[0].rstrip("\r") != DELIMITER:
        return None

    for index in range(1, len(lines)):
        if lines[index].rstrip("\r") == DELIMITER:
            block = "\n".join(lines[1:index])
            body = "\n".join(lines[index + 1:])
            # Drop the single blank separator line written by encode()
            if body.startswith("\r\n"):
                body = body[2:]
            elif body.startswith("\n"):
                body = body[1:]
            return block, body
    return None


def decode_document(text: str) -> DecodeResult:
    """Split a document and report whether its metadata is absent or malformed."""
    split = _split(text)
    if split is None:
        if text.split("\n", 1)[0].rstrip("\r") == DELIMITER:
            return DecodeResult(
                MetadataStatus.MALFORMED, None, text, "Missing closing delimiter"
            )
        return DecodeResult(MetadataStatus.ABSENT, None, text)

    block, body = split
    try:
        metadata = parse_block(block)
    except MalformedMetadataError as e:
        logger.debug("Ignoring malformed metadata block: %s", e)
        return DecodeResult(MetadataStatus.MALFORMED, None, text, e.message)
    return DecodeResult(MetadataStatus.PRESENT, metadata, body)


def decode(text: str) -> Optional[Tuple[MetadataBlock, str]]:
    """Split a document into (metadata, body).

    Returns None when there is no metadata block and also when the block is
    malformed; use ``decode_document`` to tell those apart. Never raises.
    """
    result = decode_document(text)
    if result.status is not MetadataStatus.PRESENT:
        return None
    return result.metadata, result.body  # type: ignore[return-value]


def dump_block(metadata: Dict[str, Any]) -> str:
    """Serialize a mapping with every key, sorted, in block style."""
    return yaml.dump(
        metadata,
        Dumper=yaml.SafeDumper,
        sort_keys=True,
        default_flow_style=False,
        allow_unicode=True,
        width=float("inf"),
    )


def encode(metadata: MetadataBlock, body: str) -> str:
    """Render frontmatter followed by one blank line and the body verbatim."""
    return f"{DELIMITER}\n{dump_block(metadata)}{DELIMITER}\n\n{body}"
