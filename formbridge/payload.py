import json
import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple, Union
from urllib.parse import parse_qsl

from .errors import DecodeError
from .logs import LogSink, log_debug

NESTED_KEY = re.compile(r"^([^\[\]]+)\[([^\[\]]+)\]$")
DISPOSITION_NAME = re.compile(r'(?:^|[;\s])name="([^"]*)"', re.IGNORECASE)

Folded = Dict[str, Union[str, Dict[str, str]]]


@dataclass(frozen=True)
class DecodedPayload:
    fields: Dict[str, str] = field(default_factory=dict)
    options: Dict[str, str] = field(default_factory=dict)


def _media_type(content_type: str) -> str:
    return content_type.split(";", 1)[0].strip().lower()


def _stringify(value: object) -> Optional[str]:
    if value is None or isinstance(value, (dict, list)):
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _string_mapping(value: object) -> Dict[str, str]:
    if not isinstance(value, dict):
        return {}
    mapping = {}
    for key, item in value.items():
        text = _stringify(item)
        if text is not None:
            mapping[str(key)] = text
    return mapping


def fold_nested_keys(pairs: Iterable[Tuple[str, str]]) -> Folded:
    """Fold ``parent[child]`` keys into ``{parent: {child: value}}``."""
    folded: Folded = {}
    for key, value in pairs:
        match = NESTED_KEY.match(key)
        if match is None:
            folded[key] = value
            continue
        parent, child = match.group(1), match.group(2)
        nested = folded.get(parent)
        if not isinstance(nested, dict):
            nested = {}
            folded[parent] = nested
        nested[child] = value
    return folded


def _from_mapping(data: object) -> DecodedPayload:
    if not isinstance(data, dict):
        raise DecodeError("Payload must be an object")
    return DecodedPayload(
        fields=_string_mapping(data.get("fields")),
        options=_string_mapping(data.get("options")),
    )


def _decode_json(body: bytes) -> DecodedPayload:
    try:
        data = json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise DecodeError(f"Invalid JSON body: {exc}") from exc
    return _from_mapping(data)


def _decode_urlencoded(body: bytes) -> DecodedPayload:
    try:
        pairs = parse_qsl(body.decode("utf-8"), keep_blank_values=True, strict_parsing=False)
    except (UnicodeDecodeError, ValueError) as exc:
        raise DecodeError(f"Invalid URL-encoded body: {exc}") from exc
    return _from_mapping(fold_nested_keys(pairs))


def _part_value(lines: List[str], header_index: int) -> Optional[str]:
    blank_index = None
    for index in range(header_index + 1, len(lines)):
        if not lines[index].strip():
            blank_index = index
            break
    if blank_index is None:
        if header_index + 1 < len(lines) and lines[header_index + 1].strip():
            return lines[header_index + 1]
        return None
    for line in lines[blank_index + 1:]:
        if line.strip():
            return line
    return None


def parse_multipart(body: bytes) -> List[Tuple[str, str]]:
    """Extract ``(name, value)`` pairs from a simple multipart body.

    The boundary is read from the first line of the body. Each part
    contributes at most one value: the first non-empty line after the blank
    line that ends its headers. Parts without a name or a value are dropped.
    """
    text = body.decode("utf-8", errors="replace")
    lines = text.splitlines()
    if not lines:
        return []
    boundary = lines[0].strip()
    if not boundary.startswith("--") or len(boundary) <= 2:
        return []

    parts: List[List[str]] = []
    current: Optional[List[str]] = None
    for line in lines:
        stripped = line.strip()
        if stripped == boundary or stripped == f"{boundary}--":
            if current is not None:
                parts.append(current)
            current = [] if stripped == boundary else None
            continue
        if current is not None:
            current.append(line)
    if current is not None:
        parts.append(current)

    pairs = []
    for part in parts:
        header_index = next(
            (index for index, line in enumerate(part) if line.lower().startswith("content-disposition")),
            None,
        )
        if header_index is None:
            continue
        name_match = DISPOSITION_NAME.search(part[header_index])
        if name_match is None or not name_match.group(1):
            continue
        value = _part_value(part, header_index)
        if value is None:
            continue
        pairs.append((name_match.group(1), value))
    return pairs


def _decode_multipart(body: bytes) -> DecodedPayload:
    return _from_mapping(fold_nested_keys(parse_multipart(body)))


def decode_payload(body: bytes, content_type: str, logs: Optional[LogSink] = None) -> DecodedPayload:
    """Decode a submission body; undecodable bodies become an empty payload."""
    media_type = _media_type(content_type or "")
    log_debug(logs, f"Decoding {len(body)} byte body as '{media_type or '(none)'}'.")
    try:
        if media_type == "application/json" or media_type.endswith("+json"):
            return _decode_json(body)
        if media_type == "application/x-www-form-urlencoded":
            return _decode_urlencoded(body)
        if media_type == "multipart/form-data":
            return _decode_multipart(body)
    except DecodeError as exc:
        if logs is not None:
            logs.append(f"Payload could not be decoded, continuing with no fields: {exc}")
        return DecodedPayload()
    if logs is not None:
        logs.append(f"Unsupported content type '{media_type}', continuing with no fields.")
    return DecodedPayload()
