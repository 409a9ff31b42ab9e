from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Generic, List, Literal, Optional, Tuple, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field


class ErrorKind(str, Enum):
    collection_degraded = "collection_degraded"
    transport_failure = "transport_failure"
    # Raised by the validator's first gate; covers "the model produced nothing".
    empty_response = "empty_response"
    no_changed_files = "no_changed_files"
    disallowed_path = "disallowed_path"
    patch_does_not_apply = "patch_does_not_apply"
    publish_failure = "publish_failure"
    pr_creation_failure = "pr_creation_failure"


T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T


@dataclass(frozen=True)
class Err:
    kind: ErrorKind
    reason: str
    details: Tuple[str, ...] = ()


Result = Union[Ok[T], Err]


class CommitSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    sha: str
    summary: str


class FailureContext(BaseModel):
    """
    Everything the model is told about one failing stage.
    """

    model_config = ConfigDict(frozen=True)

    stage_name: str
    message: str
    recent_commits: Tuple[CommitSummary, ...] = ()
    working_tree_status: str = ""
    build_log_tail: str = ""
    # Sub-steps that could not be collected (the matching field is left empty).
    degraded: Tuple[str, ...] = ()

    def render(self) -> str:
        commits = "\n".join(f"{c.sha} {c.summary}" for c in self.recent_commits) or "(none)"
        return "\n".join(
            [
                f"Stage: {self.stage_name}",
                f"Error: {self.message}",
                "",
                "Recent commits:",
                commits,
                "",
                "Working tree status:",
                self.working_tree_status or "(clean)",
                "",
                "Build log (tail):",
                self.build_log_tail or "(empty)",
            ]
        )


class RepositorySnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    paths: Tuple[str, ...]
    archive_b64: str


class Prompt(BaseModel):
    model_config = ConfigDict(frozen=True)

    text: str


class FileChangeKind(str, Enum):
    add = "add"
    update = "update"
    delete = "delete"
    rename = "rename"


class PatchFileChange(BaseModel):
    model_config = ConfigDict(frozen=True)

    path: str
    operation: FileChangeKind
    old_path: Optional[str] = None


class Patch(BaseModel):
    """
    A unified diff that has passed every validator gate.
    """

    model_config = ConfigDict(frozen=True)

    diff_text: str
    files: Tuple[PatchFileChange, ...]
    touched_paths: Tuple[str, ...]


class PublishedBranch(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    created: bool
    committed: bool


class PullRequestResult(BaseModel):
    mode: Literal["mock", "real"]
    pr_number: int
    pr_title: str
    pr_url: str
    branch_name: str


class RemediationOutcome(BaseModel):
    correlation_id: str
    stage_name: str
    build_id: str
    status: Literal["pr_created", "branch_pushed", "aborted"]
    error_kind: Optional[ErrorKind] = None
    reason: Optional[str] = None
    details: List[str] = Field(default_factory=list)
    touched_paths: List[str] = Field(default_factory=list)
    branch: Optional[str] = None
    pr: Optional[PullRequestResult] = None
