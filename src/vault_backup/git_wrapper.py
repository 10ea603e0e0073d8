import asyncio
import logging
import os
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from .constants import APP_NAME, STAGE_ALL_PATTERN
from .errors import OperationError

logger = logging.getLogger(APP_NAME)


@dataclass(frozen=True)
class FileStatus:
    """One entry of `git status --porcelain`.

    Attributes:
        path (str): The path relative to the repository root.
        index (str): The staged status letter (' ' if unchanged).
        working_dir (str): The unstaged status letter (' ' if unchanged).
    """

    path: str
    index: str = " "
    working_dir: str = " "


@dataclass
class PullResult:
    """The outcome of a pull.

    Attributes:
        files (list[str]): Paths changed by the pull.
    """

    files: list[str] = field(default_factory=list)

    @property
    def updated_file_count(self) -> int:
        return len(self.files)


@dataclass
class BranchSummary:
    """Local branches of the repository.

    Attributes:
        current (str): The checked-out branch.
        all (list[str]): Every local branch name.
    """

    current: str
    all: list[str] = field(default_factory=list)


class VersionControlClient(Protocol):
    """The operations the backup engine needs from a version control backend.

    Every method is a coroutine and raises `OperationError` on failure.
    """

    async def is_repo_root(self) -> bool: ...

    async def status(self) -> list[FileStatus]: ...

    async def add(self, pattern: str = STAGE_ALL_PATTERN) -> None: ...

    async def commit(self, message: str) -> None: ...

    async def push(self, remote: str, branch: str) -> None: ...

    async def pull(
        self, remote: str | None = None, branch: str | None = None
    ) -> PullResult: ...

    async def current_branch(self) -> str: ...

    async def list_branches(self) -> BranchSummary: ...

    async def checkout(self, branch: str) -> None: ...

    async def remotes(self) -> list[str]: ...

    async def remote_url(self, remote: str) -> str | None: ...


def parse_porcelain(output: str) -> list[FileStatus]:
    """Parses NUL-separated `git status --porcelain -z` output.

    Rename and copy entries are followed by their source path, which is skipped.

    Args:
        output (str): The raw command output.

    Returns:
        list[FileStatus]: One entry per changed path.
    """
    entries = output.split("\0")
    files = []
    i = 0
    while i < len(entries):
        entry = entries[i]
        i += 1
        if len(entry) < 4:
            continue
        index, working_dir, path = entry[0], entry[1], entry[3:]
        files.append(FileStatus(path=path, index=index, working_dir=working_dir))
        if index in ("R", "C"):
            i += 1
    return files


class GitRepo:
    """A wrapper around the Git command-line interface for a specific repository.

    Commands are executed with `subprocess` on a worker thread so that callers on
    the event loop only ever see awaitables. Any non-zero exit status is raised as
    `OperationError`.

    Attributes:
        path (Path): The file system path to the repository root.
    """

    def __init__(self, path: Path):
        """Initializes the GitRepo instance.

        Args:
            path (Path): The path to the working directory under version control.
        """
        self.path = path

    def _run(
        self,
        args: list[str],
        capture: bool = True,
        env: dict | None = None,
        strip: bool = True,
    ) -> str:
        """Executes a Git command within the repository context.

        Args:
            args (list[str]): A list of arguments to pass to the git command.
            capture (bool, optional):   Whether to capture and return stdout.
                                        Defaults to True.
            env (Optional[dict], optional): Environment variables to pass to the
                                            subprocess. Defaults to None.
            strip (bool, optional): Whether to strip surrounding whitespace from
                                    the output. Defaults to True.

        Returns:
            str:    The stdout of the command if capture is True,
                    otherwise an empty string.

        Raises:
            OperationError: If the git command returns a non-zero exit code or
                            git cannot be started.
        """
        try:
            res = subprocess.run(
                ["git", *args],
                cwd=self.path,
                capture_output=capture,
                text=True,
                check=True,
                env=env,
            )
        except subprocess.CalledProcessError as e:
            detail = (e.stderr or "").strip() or str(e)
            raise OperationError(f"Git error: {detail}") from e
        except OSError as e:
            raise OperationError(f"Git error: {e}") from e
        if not capture:
            return ""
        return res.stdout.strip() if strip else res.stdout

    async def _arun(self, args: list[str], **kwargs) -> str:
        return await asyncio.to_thread(self._run, args, **kwargs)

    async def is_repo_root(self) -> bool:
        """Checks that the working directory is the top level of a repository.

        Returns:
            bool: True if `path` is a repository root, False otherwise.
        """
        try:
            toplevel = await self._arun(["rev-parse", "--show-toplevel"])
        except OperationError as e:
            logger.debug(f"rev-parse --show-toplevel failed in {self.path}: {e}")
            return False
        return Path(toplevel).resolve() == self.path.resolve()

    async def status(self) -> list[FileStatus]:
        """Lists added, modified, deleted and untracked paths.

        Returns:
            list[FileStatus]: The change set of the working directory.
        """
        output = await self._arun(["status", "--porcelain", "-z"], strip=False)
        return parse_porcelain(output)

    async def add(self, pattern: str = STAGE_ALL_PATTERN) -> None:
        """Stages all changes (modified, deleted, and untracked files) matching a pathspec.

        Args:
            pattern (str, optional): The pathspec to stage. Defaults to the whole tree.
        """
        await self._arun(["add", "-A", "--", pattern], capture=False)

    async def commit(self, message: str) -> None:
        """Creates a new commit from the index.

        Args:
            message (str): The commit message.
        """
        await self._arun(["commit", "-m", message])

    async def push(self, remote: str, branch: str) -> None:
        """Pushes a branch to a remote without ever prompting for credentials.

        Args:
            remote (str): The remote name.
            branch (str): The branch to push.
        """
        env = os.environ.copy()
        env["GIT_SSH_COMMAND"] = "ssh -o BatchMode=yes"
        env["GIT_TERMINAL_PROMPT"] = "0"
        # capture=True suppresses verbose "Enumerating objects..." output.
        await self._arun(["push", remote, branch], env=env)

    async def pull(
        self, remote: str | None = None, branch: str | None = None
    ) -> PullResult:
        """Pulls from a remote and reports which files the pull changed.

        Args:
            remote (str | None, optional): The remote name; the upstream if None.
            branch (str | None, optional): The branch; the upstream branch if None.

        Returns:
            PullResult: The files that differ between HEAD before and after.
        """
        before = await self.rev_parse("HEAD")

        cmd = ["pull", "--no-edit"]
        if remote:
            cmd.append(remote)
            if branch:
                cmd.append(branch)
        env = os.environ.copy()
        env["GIT_SSH_COMMAND"] = "ssh -o BatchMode=yes"
        env["GIT_TERMINAL_PROMPT"] = "0"
        await self._arun(cmd, env=env)

        after = await self.rev_parse("HEAD")
        if not after or before == after:
            return PullResult()
        if not before:
            output = await self._arun(["ls-tree", "-r", "--name-only", after])
        else:
            output = await self._arun(["diff", "--name-only", before, after])
        return PullResult(files=output.splitlines() if output else [])

    async def rev_parse(self, rev: str) -> str | None:
        """Resolves a revision to a full SHA-1 hash.

        Args:
            rev (str): The revision to parse (e.g., 'HEAD').

        Returns:
            Optional[str]:  The full SHA-1 hash,
                            or None if the revision could not be resolved.
        """
        try:
            return await self._arun(["rev-parse", "--verify", "--quiet", rev])
        except OperationError as e:
            logger.debug(f"rev-parse failed for '{rev}': {e}")
            return None

    async def current_branch(self) -> str:
        """Retrieves the name of the currently checked-out branch.

        Returns:
            str: The name of the current branch (empty on a detached HEAD).
        """
        return await self._arun(["branch", "--show-current"])

    async def list_branches(self) -> BranchSummary:
        """Lists local branches.

        Returns:
            BranchSummary: The current branch and all local branch names.
        """
        output = await self._arun(["branch", "--format=%(refname:short)"])
        current = await self.current_branch()
        return BranchSummary(
            current=current, all=output.splitlines() if output else []
        )

    async def checkout(self, branch: str) -> None:
        """Checks out a branch.

        Args:
            branch (str): The target branch name.
        """
        await self._arun(["checkout", branch])

    async def remotes(self) -> list[str]:
        """Lists configured remote names.

        Returns:
            list[str]: Remote names in the order git reports them.
        """
        output = await self._arun(["remote"])
        return output.splitlines() if output else []

    async def remote_url(self, remote: str) -> str | None:
        """Retrieves the URL of a remote.

        Args:
            remote (str): The remote name.

        Returns:
            str | None: The URL, or None if the remote does not exist.
        """
        try:
            return await self._arun(["remote", "get-url", remote]) or None
        except OperationError as e:
            logger.debug(f"Could not resolve URL for remote '{remote}': {e}")
            return None
