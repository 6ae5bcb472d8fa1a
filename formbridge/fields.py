import hashlib
import logging
from typing import Dict, Mapping, Optional

from .errors import ValidationError
from .logs import LogSink, log_debug
from .site_config import PropertyConfig, effective_config

HASH_TRANSFORMS = {"md5", "sha256"}


def hash_value(value: str, kind: str = "md5") -> str:
    normalized = value.strip().lower().encode("utf-8")
    if kind == "sha256":
        return hashlib.sha256(normalized).hexdigest()
    return hashlib.md5(normalized).hexdigest()


def missing_required_fields(fields: Mapping[str, str], config: PropertyConfig) -> list[str]:
    return [name for name in config.required_fields or () if name not in fields]


def process_fields(
    fields: Mapping[str, str],
    property_name: str,
    config: Optional[PropertyConfig],
    logs: Optional[LogSink] = None,
) -> Dict[str, str]:
    """Validate submitted fields and apply the property's filters and transforms.

    Raises ValidationError listing every required field that was not
    submitted. No remote call happens here.
    """
    policy = effective_config(property_name, config)
    missing = missing_required_fields(fields, policy)
    if missing:
        raise ValidationError(missing)

    processed = dict(fields)
    if policy.allowed_fields is not None:
        permitted = set(policy.allowed_fields) | set(policy.required_fields or ())
        dropped = [name for name in processed if name not in permitted]
        for name in dropped:
            del processed[name]
        if dropped:
            log_debug(logs, f"Dropped fields not in allowedFields: {', '.join(dropped)}.")

    for name, kind in policy.transforms.items():
        if name not in processed:
            continue
        kind = kind.strip().lower()
        if kind not in HASH_TRANSFORMS:
            if logs is not None:
                logs.append(f"Unknown transform '{kind}' for field '{name}'; value left unchanged.", logging.WARNING)
            continue
        processed[name] = hash_value(processed[name], kind)
        log_debug(logs, f"Applied {kind} transform to '{name}'.")
    return processed
