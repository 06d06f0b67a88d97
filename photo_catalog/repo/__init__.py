"""Git working-copy change detection."""

from .git_client import GitCommandError, GitRepository, authenticated_url, git_available
from .poller import ChangeDetector, register_jobs

__all__ = [
    "ChangeDetector",
    "GitCommandError",
    "GitRepository",
    "authenticated_url",
    "git_available",
    "register_jobs",
]
