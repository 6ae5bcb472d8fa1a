import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Optional

PLACEHOLDER = re.compile(r"\{\{\s*(?:(fields|options)\.([\w.-]+)|(date))\s*\}\}")
CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])([A-Z])")
HIDDEN_BODY_FIELDS = {"email"}
ATTRIBUTION_FOOTER = "---\n*This entry was submitted through formbridge.*"


@dataclass(frozen=True)
class RenderContext:
    fields: Dict[str, str]
    property: str
    options: Dict[str, str] = field(default_factory=dict)
    now: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


def iso_timestamp(moment: datetime) -> str:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    moment = moment.astimezone(timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def render_template(template: str, context: RenderContext) -> str:
    def _substitute(match: re.Match) -> str:
        scope, name, date = match.groups()
        if date:
            return iso_timestamp(context.now)
        if scope == "fields":
            return context.fields.get(name, "")
        if name == "slug":
            return context.property
        return context.options.get(name, "")

    rendered = PLACEHOLDER.sub(_substitute, template)
    return rendered.replace("\\n", "\n")


def field_label(name: str) -> str:
    words = CAMEL_BOUNDARY.sub(r" \1", name).strip()
    if not words:
        return name
    return words[0].upper() + words[1:]


def default_body(context: RenderContext) -> str:
    lines = [
        f"- **{field_label(name)}:** {value}"
        for name, value in context.fields.items()
        if name not in HIDDEN_BODY_FIELDS
    ]
    return "\n".join(lines) + "\n\n" + ATTRIBUTION_FOOTER


def render_body(template: Optional[str], context: RenderContext) -> str:
    """Render a pull request or issue body, generating one when no template is set."""
    if template is None:
        return default_body(context)
    return render_template(template, context)
