"""
Metadata codec.

Converts the opaque metadata payload between its wire form (a JSON string)
and its persisted form (a JSON object tree).
"""

import json
import math
from typing import Any, Dict


class CodecError(ValueError):
    """Raised when metadata cannot be decoded or encoded."""


def _reject_constant(name: str) -> Any:
    raise ValueError(f"non-standard JSON constant: {name}")


def _parse_finite_float(text: str) -> float:
    value = float(text)
    if not math.isfinite(value):
        raise ValueError(f"number out of range: {text}")
    return value


def decode_metadata(raw: str) -> Dict[str, Any]:
    """Parse a metadata string into a JSON object.

    Only an object is accepted at the top level; scalars and arrays are
    rejected. So is anything encode_metadata could not write back: the
    ``NaN``/``Infinity`` constants, numbers that overflow a float, strings
    that are not valid UTF-8 (lone surrogates), and nesting too deep to
    serialize.

    Args:
        raw: Encoded metadata as received on the wire

    Returns:
        Decoded metadata document

    Raises:
        CodecError: If raw is not valid JSON, not an object, or not
            re-encodable
    """
    if not isinstance(raw, (str, bytes, bytearray)):
        raise CodecError(f"metadata must be a string, got {type(raw).__name__}")

    try:
        document = json.loads(
            raw,
            parse_constant=_reject_constant,
            parse_float=_parse_finite_float,
        )
    except (ValueError, UnicodeDecodeError) as e:
        raise CodecError(f"metadata is not valid JSON: {e}") from e
    except RecursionError as e:
        raise CodecError("metadata is nested too deeply") from e

    if not isinstance(document, dict):
        raise CodecError(
            f"metadata must be a JSON object, got {type(document).__name__}"
        )

    try:
        encode_metadata(document).encode("utf-8")
    except UnicodeEncodeError as e:
        raise CodecError(f"metadata is not valid UTF-8 text: {e}") from e
    return document


def encode_metadata(document: Dict[str, Any]) -> str:
    """Serialize a metadata document back to its JSON string form.

    Total on every document produced by decode_metadata. Anything else that
    is not representable as strict JSON raises CodecError.
    """
    if not isinstance(document, dict):
        raise CodecError(
            f"metadata must be a JSON object, got {type(document).__name__}"
        )

    try:
        return json.dumps(document, ensure_ascii=False, allow_nan=False)
    except (TypeError, ValueError) as e:
        raise CodecError(f"metadata cannot be encoded: {e}") from e
    except RecursionError as e:
        raise CodecError("metadata is nested too deeply") from e
