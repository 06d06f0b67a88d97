from __future__ import annotations

import logging
import os
import shutil
import subprocess
from pathlib import Path
from typing import Optional
from urllib.parse import quote, urlsplit, urlunsplit

logger = logging.getLogger(__name__)

DEFAULT_GIT_TIMEOUT = 300


class GitCommandError(RuntimeError):
    """Raised when a git invocation fails or cannot be started."""


def git_available() -> bool:
    return shutil.which("git") is not None


def authenticated_url(url: str, username: str, token: str) -> str:
    """Embed credentials in an http(s) remote URL; other schemes are returned unchanged."""
    parts = urlsplit(url)
    if parts.scheme not in ("http", "https") or not parts.hostname:
        return url
    host = parts.hostname
    if parts.port:
        host = f"{host}:{parts.port}"
    netloc = f"{quote(username, safe='')}:{quote(token, safe='')}@{host}"
    return urlunsplit((parts.scheme, netloc, parts.path, parts.query, parts.fragment))


def _redact(text: str, secret: str) -> str:
    return text.replace(secret, "***") if secret else text


class GitRepository:
    """Thin wrapper over the git command line for one working copy."""

    def __init__(self, path: str | Path, *, timeout: float = DEFAULT_GIT_TIMEOUT) -> None:
        self.path = Path(path)
        self.timeout = timeout

    def _run(self, *args: str, check: bool = True, secret: str = "") -> subprocess.CompletedProcess:
        cmd = ["git", *args]
        env = dict(os.environ, GIT_TERMINAL_PROMPT="0")
        try:
            result = subprocess.run(
                cmd,
                cwd=str(self.path),
                stdin=subprocess.DEVNULL,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
                env=env,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as exc:
            raise GitCommandError(f"git {args[0]} timed out after {self.timeout:g} seconds") from exc
        except OSError as exc:
            raise GitCommandError(f"git could not be started: {exc}") from exc
        if check and result.returncode != 0:
            detail = _redact((result.stderr or result.stdout).strip(), secret)
            raise GitCommandError(f"git {args[0]} failed ({result.returncode}): {detail}")
        return result

    def pull(self, remote_url: str = "", username: str = "", token: str = "") -> None:
        """
        Bring the working copy up to date.

        With a remote URL the pull targets it directly, with credentials
        embedded when both username and token are set; otherwise the branch's
        configured upstream is used.
        """
        args = ["pull", "--no-rebase", "--no-edit"]
        if remote_url:
            target = remote_url
            if username and token:
                target = authenticated_url(remote_url, username, token)
            args.append(target)
        self._run(*args, secret=token)
        logger.debug("Git: pull completed in %s", self.path)

    def head_revision(self) -> Optional[str]:
        result = self._run("rev-parse", "--verify", "--quiet", "HEAD^{commit}", check=False)
        revision = result.stdout.strip()
        if result.returncode != 0 or not revision:
            return None
        return revision

    def list_files(self, revision: str) -> list[str]:
        """Every path tracked in the revision's tree, relative to the repository root."""
        output = self._run("ls-tree", "-r", "-z", "--name-only", revision).stdout
        return [entry for entry in output.split("\0") if entry]

    def diff_paths(self, old_revision: str, new_revision: str) -> list[str]:
        """New-side paths of every entry changed between two revisions; deletions are skipped."""
        output = self._run(
            "diff", "--name-status", "-z", "-M", "-C", old_revision, new_revision
        ).stdout
        tokens = [token for token in output.split("\0") if token]
        paths: list[str] = []
        index = 0
        while index < len(tokens):
            status = tokens[index]
            kind = status[:1]
            if kind in ("R", "C"):
                # old path, new path
                paths.append(tokens[index + 2])
                logger.debug("Git: %s %s -> %s", status, tokens[index + 1], tokens[index + 2])
                index += 3
                continue
            if kind != "D":
                paths.append(tokens[index + 1])
            index += 2
        return paths

    def last_author_email(self, relative_path: str) -> Optional[str]:
        """Author email of the last commit touching the path, or None."""
        result = self._run("log", "-1", "--format=%ae", "--", relative_path, check=False)
        email = result.stdout.strip()
        return email or None
