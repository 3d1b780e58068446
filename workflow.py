"""
Result reported back by the provisioning workflow.

The workflow itself (AWS resources, git repository, Jenkins pipeline) runs
elsewhere; this app only receives its outcome and relays it to Slack.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any


def _flag(value: Any) -> bool:
    """Form-encoded callers send "true"/"false" strings instead of JSON booleans."""
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return value is True


@dataclass(frozen=True)
class ProvisioningResult:
    git_repo_created: bool = False
    jenkins_pipeline_created: bool = False
    error: str = ""
    message: str = ""

    @property
    def succeeded(self) -> bool:
        return self.git_repo_created and self.jenkins_pipeline_created

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> ProvisioningResult:
        """Build from the workflow's wire keys. Missing flags count as not created."""
        return cls(
            git_repo_created=_flag(data.get("gitRepoCreated")),
            jenkins_pipeline_created=_flag(data.get("jenkinsPipelineCreated")),
            error=str(data.get("error") or ""),
            message=str(data.get("message") or ""),
        )
