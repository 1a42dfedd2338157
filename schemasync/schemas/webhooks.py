"""Pydantic models for GitHub and GitLab push webhook payloads."""

from datetime import datetime

from pydantic import BaseModel, Field

GITHUB_EVENT_PUSH = "push"
GITHUB_EVENT_PING = "ping"
GITLAB_OBJECT_KIND_PUSH = "push"


class CommitAuthor(BaseModel):
    """Author information from a Git commit."""

    name: str = ""
    email: str = ""


class GitHubCommit(BaseModel):
    """A single commit within a GitHub push event.

    ``distinct`` is false when the commit was already pushed to another
    branch of the repository, i.e. it is superseded within this push.
    """

    id: str
    distinct: bool = True
    message: str = ""
    timestamp: datetime
    url: str = ""
    author: CommitAuthor = Field(default_factory=CommitAuthor)
    added: list[str] = Field(default_factory=list)
    modified: list[str] = Field(default_factory=list)
    removed: list[str] = Field(default_factory=list)

    @property
    def title(self) -> str:
        """Message title; Git separates title and body with a blank line."""
        return self.message.split("\n\n", 1)[0]


class GitHubRepository(BaseModel):
    """Repository metadata from the webhook payload."""

    id: int
    name: str = ""
    full_name: str
    html_url: str = ""


class GitHubSender(BaseModel):
    login: str = ""


class GitHubPushEvent(BaseModel):
    """GitHub push webhook event payload.

    Reference: https://docs.github.com/en/webhooks/webhook-events-and-payloads#push
    """

    ref: str
    before: str = ""
    after: str = ""
    repository: GitHubRepository
    sender: GitHubSender = Field(default_factory=GitHubSender)
    commits: list[GitHubCommit] = Field(default_factory=list)
    deleted: bool = False


class GitLabCommit(BaseModel):
    """A single commit within a GitLab push event.

    GitLab does not mark superseded commits, and ``timestamp`` is kept as
    delivered so an unparsable value only degrades deduplication.
    """

    id: str
    title: str = ""
    message: str = ""
    timestamp: str = ""
    url: str = ""
    author: CommitAuthor = Field(default_factory=CommitAuthor)
    added: list[str] = Field(default_factory=list)
    modified: list[str] = Field(default_factory=list)
    removed: list[str] = Field(default_factory=list)


class GitLabProject(BaseModel):
    id: int
    web_url: str = ""
    path_with_namespace: str = ""


class GitLabPushEvent(BaseModel):
    """GitLab push hook payload.

    Reference: https://docs.gitlab.com/ee/user/project/integrations/webhook_events.html#push-events
    """

    object_kind: str
    ref: str
    user_name: str = ""
    project: GitLabProject
    commits: list[GitLabCommit] = Field(default_factory=list)
