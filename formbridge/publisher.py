import logging
from dataclasses import dataclass, field
from typing import List, Optional

from .errors import RemoteOperationError
from .github import CreatedResource, GitHubClient
from .logs import LogSink, log_debug
from .site_config import RepositoryTarget
from .submission import PublishPlan

STEP_READ_BASE_REF = "read_base_ref"
STEP_CREATE_BRANCH = "create_branch"
STEP_COMMIT_FILE = "commit_file"
STEP_CREATE_PULL_REQUEST = "create_pull_request"
STEP_CREATE_ISSUE = "create_issue"


@dataclass
class PublishOutcome:
    completed_steps: List[str] = field(default_factory=list)
    failed_step: Optional[str] = None
    error: Optional[RemoteOperationError] = None
    resource: Optional[CreatedResource] = None

    @property
    def success(self) -> bool:
        return self.failed_step is None and self.resource is not None

    @property
    def orphaned_branch(self) -> bool:
        return STEP_CREATE_BRANCH in self.completed_steps and not self.success


class RepositoryPublisher:
    def __init__(self, client: GitHubClient) -> None:
        self.client = client

    async def publish(
        self,
        target: RepositoryTarget,
        plan: PublishPlan,
        logs: Optional[LogSink] = None,
    ) -> PublishOutcome:
        """Run the plan's remote steps in order, stopping at the first failure.

        Nothing is rolled back: a branch created before a later failure stays
        on the remote and is reported through ``orphaned_branch``.
        """
        outcome = PublishOutcome()
        owner, repo = target.owner, target.repository
        step = STEP_READ_BASE_REF
        try:
            log_debug(logs, f"Reading head commit of {target.full_name}@{target.branch}.")
            base_sha = await self.client.get_branch_head_commit(owner, repo, target.branch)
            outcome.completed_steps.append(step)

            step = STEP_CREATE_BRANCH
            log_debug(logs, f"Creating branch '{plan.branch_name}' at {base_sha}.")
            await self.client.create_branch(owner, repo, plan.branch_name, base_sha)
            outcome.completed_steps.append(step)

            step = STEP_COMMIT_FILE
            log_debug(logs, f"Committing {plan.file_path} ({len(plan.file_content)} bytes).")
            await self.client.commit_file(
                owner, repo, plan.file_path, plan.file_content, plan.branch_name, plan.commit_message
            )
            outcome.completed_steps.append(step)

            if plan.use_issue:
                step = STEP_CREATE_ISSUE
                resource = await self.client.create_issue(
                    owner, repo, plan.title, plan.body, plan.labels, plan.assignees
                )
            else:
                step = STEP_CREATE_PULL_REQUEST
                resource = await self.client.create_pull_request(
                    owner, repo, plan.title, plan.body, plan.branch_name, target.branch
                )
            outcome.completed_steps.append(step)
            outcome.resource = resource
        except RemoteOperationError as exc:
            outcome.failed_step = step
            outcome.error = exc
            if logs is not None:
                logs.append(f"ERROR: step '{step}' failed: {exc}", logging.ERROR)
                if outcome.orphaned_branch:
                    logs.append(f"Branch '{plan.branch_name}' was left on {target.full_name}.", logging.WARNING)
            return outcome

        if logs is not None:
            logs.append(f"Created {resource.kind.replace('_', ' ')} #{resource.number} on {target.full_name}.")
        return outcome
