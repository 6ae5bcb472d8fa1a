import logging
import traceback
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Optional

from .errors import ConfigurationError, ValidationError
from .fields import process_fields
from .github import GitHubClient
from .logs import LogSink, log_debug
from .publisher import RepositoryPublisher
from .settings import Settings
from .site_config import ConfigResolver, effective_config
from .submission import SubmissionRequest, build_publish_plan


@dataclass
class PipelineResponse:
    status: int
    payload: Dict[str, object] = field(default_factory=dict)
    redirect: Optional[str] = None


class SubmissionPipeline:
    """Turn one decoded submission into a committed file plus a pull request or issue."""

    def __init__(self, settings: Settings, client: GitHubClient) -> None:
        self.settings = settings
        self.client = client
        self.resolver = ConfigResolver(client, settings.site_config_path)
        self.publisher = RepositoryPublisher(client)

    def _error(self, status: int, error: str, message: str, logs: LogSink, **extra: object) -> PipelineResponse:
        payload: Dict[str, object] = {"success": False, "error": error, "message": message}
        payload.update(extra)
        if self.settings.debug:
            payload["log"] = list(logs.entries)
        return PipelineResponse(status, payload)

    async def handle(self, request: SubmissionRequest, logs: LogSink) -> PipelineResponse:
        target = request.target
        log_debug(logs, f"Processing '{request.property}' submission for {target.full_name}@{target.branch}.")
        try:
            self.settings.require_github_token()
            config = await self.resolver.resolve(target, request.property, logs)
            policy = effective_config(request.property, config)
            processed = process_fields(request.fields, request.property, config, logs)
            plan = build_publish_plan(request, processed, policy, datetime.now(timezone.utc))
            log_debug(logs, f"Planned {plan.file_path} on branch '{plan.branch_name}'.")
            outcome = await self.publisher.publish(target, plan, logs)
        except ConfigurationError as exc:
            logs.append(f"ERROR: {exc}", logging.ERROR)
            return self._error(500, "CONFIGURATION_ERROR", str(exc), logs)
        except ValidationError as exc:
            logs.append(f"Rejected submission: {exc}")
            return self._error(400, "MISSING_REQUIRED_FIELDS", str(exc), logs, fields=exc.missing_fields)
        except Exception as exc:  # noqa: BLE001
            logs.append(f"ERROR: {exc}", logging.ERROR)
            logs.append(traceback.format_exc(), logging.DEBUG)
            return self._error(500, "INTERNAL_ERROR", str(exc), logs)

        if not outcome.success:
            return self._error(
                500,
                "GITHUB_API_ERROR",
                str(outcome.error),
                logs,
                step=outcome.failed_step,
                completed_steps=outcome.completed_steps,
            )

        resource = outcome.resource
        if request.redirect:
            log_debug(logs, f"Redirecting to {request.redirect}.")
            return PipelineResponse(302, redirect=request.redirect)
        label = "Issue" if resource.kind == "issue" else "Pull request"
        return PipelineResponse(
            200,
            {
                "success": True,
                "message": f"{label} #{resource.number} created",
                resource.kind: resource.as_dict(),
                "branch": plan.branch_name,
                "path": plan.file_path,
            },
        )
