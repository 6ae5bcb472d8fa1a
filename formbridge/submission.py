import json
import re
import secrets
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Mapping, Optional, Tuple

from .fields import hash_value
from .site_config import PropertyConfig, RepositoryTarget
from .templates import RenderContext, iso_timestamp, render_body, render_template

TIMESTAMP_TOKEN = "{@timestamp}"
UNSAFE_REF_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


@dataclass(frozen=True)
class SubmissionRequest:
    target: RepositoryTarget
    property: str
    fields: Dict[str, str] = field(default_factory=dict)
    options: Dict[str, str] = field(default_factory=dict)

    @property
    def redirect(self) -> Optional[str]:
        return self.options.get("redirect") or None


@dataclass(frozen=True)
class PublishPlan:
    file_path: str
    file_content: bytes
    branch_name: str
    commit_message: str
    title: str
    body: str
    use_issue: bool = False
    labels: Tuple[str, ...] = ()
    assignees: Tuple[str, ...] = ()


def filesystem_timestamp(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")


def _slug(value: str) -> str:
    return UNSAFE_REF_CHARS.sub("-", value).strip("-.") or "entry"


def record_id(source_fields: Mapping[str, str]) -> str:
    email = source_fields.get("email")
    if email is None:
        return uuid.uuid4().hex
    return hash_value(email)


def build_record(processed: Mapping[str, str], source_fields: Mapping[str, str], now: datetime) -> Dict[str, str]:
    record = {"id": record_id(source_fields)}
    record.update(processed)
    record["date"] = iso_timestamp(now)
    return record


def serialize_record(record: Mapping[str, str]) -> bytes:
    return (json.dumps(record, indent=2, ensure_ascii=False) + "\n").encode("utf-8")


def build_file_path(property_name: str, config: PropertyConfig, context: RenderContext) -> str:
    directory = render_template(config.path_template or "", context).strip("/")
    timestamp = filesystem_timestamp(context.now)
    if config.filename_template:
        filename = render_template(config.filename_template.replace(TIMESTAMP_TOKEN, timestamp), context)
    else:
        filename = f"{_slug(property_name)}-{timestamp}-{secrets.token_hex(4)}"
    filename = filename.strip("/")
    if "." not in filename.rsplit("/", 1)[-1]:
        filename = f"{filename}.json"
    return f"{directory}/{filename}" if directory else filename


def build_branch_name(property_name: str, now: datetime) -> str:
    return f"{_slug(property_name)}-{int(now.timestamp() * 1000)}"


def build_publish_plan(
    request: SubmissionRequest,
    processed: Mapping[str, str],
    config: PropertyConfig,
    now: Optional[datetime] = None,
) -> PublishPlan:
    """Resolve everything the publisher needs without touching the remote."""
    now = now or datetime.now(timezone.utc)
    context = RenderContext(fields=dict(processed), property=request.property, options=dict(request.options), now=now)
    record = build_record(processed, request.fields, now)
    issue = config.issue_policy if config.use_issue else None
    body_template = config.body_template
    if issue is not None and issue.body_template is not None:
        body_template = issue.body_template
    return PublishPlan(
        file_path=build_file_path(request.property, config, context),
        file_content=serialize_record(record),
        branch_name=build_branch_name(request.property, now),
        commit_message=render_template(config.commit_message_template or f"Add {request.property} entry", context),
        title=render_template(config.title_template or f"New {request.property} entry", context),
        body=render_body(body_template, context),
        use_issue=issue is not None,
        labels=issue.labels if issue is not None else (),
        assignees=issue.assignees if issue is not None else (),
    )
