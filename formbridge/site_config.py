from dataclasses import dataclass, field, replace
from typing import Dict, Mapping, Optional, Tuple

import yaml

from .errors import ConfigFetchError, RemoteOperationError
from .github import GitHubClient
from .logs import LogSink, log_debug


@dataclass(frozen=True)
class RepositoryTarget:
    owner: str
    repository: str
    branch: str

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repository}"


@dataclass(frozen=True)
class IssuePolicy:
    enabled: bool = False
    body_template: Optional[str] = None
    labels: Tuple[str, ...] = ()
    assignees: Tuple[str, ...] = ()


@dataclass(frozen=True)
class PropertyConfig:
    required_fields: Optional[Tuple[str, ...]] = None
    allowed_fields: Optional[Tuple[str, ...]] = None
    transforms: Dict[str, str] = field(default_factory=dict)
    path_template: Optional[str] = None
    filename_template: Optional[str] = None
    body_template: Optional[str] = None
    title_template: Optional[str] = None
    commit_message_template: Optional[str] = None
    issue_policy: Optional[IssuePolicy] = None

    @property
    def use_issue(self) -> bool:
        return self.issue_policy is not None and self.issue_policy.enabled

    def with_defaults(self, defaults: "PropertyConfig") -> "PropertyConfig":
        return replace(
            self,
            required_fields=self.required_fields if self.required_fields is not None else defaults.required_fields,
            allowed_fields=self.allowed_fields if self.allowed_fields is not None else defaults.allowed_fields,
            transforms=self.transforms or dict(defaults.transforms),
            path_template=self.path_template or defaults.path_template,
            filename_template=self.filename_template or defaults.filename_template,
            body_template=self.body_template or defaults.body_template,
            title_template=self.title_template or defaults.title_template,
            commit_message_template=self.commit_message_template or defaults.commit_message_template,
            issue_policy=self.issue_policy or defaults.issue_policy,
        )


TIMELINE_DEFAULTS = PropertyConfig(
    required_fields=("name", "email", "date", "title", "description"),
    path_template="_data/entries",
    title_template="New timeline entry: {{fields.title}}",
    commit_message_template="Add {{options.slug}} entry",
)

# Unknown properties share the timeline field and path defaults but keep
# property-generic titles and commit messages.
GENERIC_DEFAULTS = PropertyConfig(
    required_fields=TIMELINE_DEFAULTS.required_fields,
    path_template=TIMELINE_DEFAULTS.path_template,
)

BUILTIN_PROPERTIES: Dict[str, PropertyConfig] = {
    "timeline": TIMELINE_DEFAULTS,
}


def default_property_config(property_name: str) -> PropertyConfig:
    return BUILTIN_PROPERTIES.get(property_name, GENERIC_DEFAULTS)


def effective_config(property_name: str, config: Optional[PropertyConfig]) -> PropertyConfig:
    defaults = default_property_config(property_name)
    if config is None:
        return defaults
    return config.with_defaults(defaults)


def _string_tuple(value: object, key: str) -> Optional[Tuple[str, ...]]:
    if value is None:
        return None
    if isinstance(value, str):
        return (value,)
    if not isinstance(value, (list, tuple)):
        raise ConfigFetchError(f"'{key}' must be a list of strings")
    return tuple(str(item) for item in value)


def _optional_string(value: object, key: str) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (str, int, float)):
        raise ConfigFetchError(f"'{key}' must be a string")
    return str(value)


def _parse_issue_policy(value: object) -> Optional[IssuePolicy]:
    if value is None:
        return None
    if not isinstance(value, dict):
        raise ConfigFetchError("'githubIssue' must be a mapping")
    return IssuePolicy(
        enabled=value.get("enabled") is True,
        body_template=_optional_string(value.get("body"), "githubIssue.body"),
        labels=_string_tuple(value.get("labels"), "githubIssue.labels") or (),
        assignees=_string_tuple(value.get("assignees"), "githubIssue.assignees") or (),
    )


def parse_property_config(raw: Mapping[str, object]) -> PropertyConfig:
    transforms = raw.get("transforms") or {}
    if not isinstance(transforms, dict):
        raise ConfigFetchError("'transforms' must be a mapping of field name to transform")
    return PropertyConfig(
        required_fields=_string_tuple(raw.get("requiredFields"), "requiredFields"),
        allowed_fields=_string_tuple(raw.get("allowedFields"), "allowedFields"),
        transforms={str(name): str(kind) for name, kind in transforms.items()},
        path_template=_optional_string(raw.get("path"), "path"),
        filename_template=_optional_string(raw.get("filename"), "filename"),
        body_template=_optional_string(raw.get("pullRequestBody"), "pullRequestBody"),
        title_template=_optional_string(raw.get("title"), "title"),
        commit_message_template=_optional_string(raw.get("commitMessage"), "commitMessage"),
        issue_policy=_parse_issue_policy(raw.get("githubIssue")),
    )


def parse_site_config(document: bytes, property_name: str) -> PropertyConfig:
    try:
        data = yaml.safe_load(document.decode("utf-8"))
    except (UnicodeDecodeError, yaml.YAMLError) as exc:
        raise ConfigFetchError(f"Configuration document is not valid YAML: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigFetchError("Configuration document must be a mapping of property names")
    raw = data.get(property_name)
    if raw is None:
        raise ConfigFetchError(f"Configuration document has no entry for '{property_name}'")
    if not isinstance(raw, dict):
        raise ConfigFetchError(f"Configuration for '{property_name}' must be a mapping")
    return parse_property_config(raw)


class ConfigResolver:
    def __init__(self, client: GitHubClient, config_path: str) -> None:
        self.client = client
        self.config_path = config_path

    async def _fetch(self, target: RepositoryTarget) -> bytes:
        try:
            document = await self.client.get_file_content(
                target.owner, target.repository, self.config_path, target.branch
            )
        except RemoteOperationError as exc:
            raise ConfigFetchError(f"Unable to read {self.config_path}: {exc}") from exc
        if document is None:
            raise ConfigFetchError(f"{self.config_path} not found on {target.full_name}@{target.branch}")
        return document

    async def resolve(
        self,
        target: RepositoryTarget,
        property_name: str,
        logs: Optional[LogSink] = None,
    ) -> Optional[PropertyConfig]:
        """Return the property's configuration, or ``None`` to fall back to defaults."""
        log_debug(logs, f"Fetching {self.config_path} from {target.full_name}@{target.branch}.")
        try:
            document = await self._fetch(target)
            config = parse_site_config(document, property_name)
        except ConfigFetchError as exc:
            if logs is not None:
                logs.append(f"Using built-in defaults for '{property_name}': {exc}")
            return None
        log_debug(logs, f"Loaded configuration for '{property_name}'.")
        return config
