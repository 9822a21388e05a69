"""Reconstruct git activity from the shell tool calls of a session.

Everything here works on text only: commit records, pushed ranges and the
GitHub repository are recovered by pattern matching the command strings
and outputs captured in ``bash`` tool parts. Nothing touches the
filesystem or the network, and unmatched input yields ``None`` or an empty
list rather than an exception.
"""

import re
from dataclasses import dataclass, field

GITHUB_BASE_URL = "https://github.com"

SHORT_HASH_LENGTH = 7

# https://github.com/owner/repo[.git]
HTTPS_REMOTE_PATTERN = re.compile(
    r"https?://github\.com/([^/]+)/([^/\s.]+)(?:\.git)?", re.IGNORECASE
)

# git@github.com:owner/repo[.git]
SSH_REMOTE_PATTERN = re.compile(r"git@github\.com:([^/]+)/([^/\s.]+)(?:\.git)?", re.IGNORECASE)

# github.com:owner/repo[.git] or github.com/owner/repo[.git] inside a larger
# line (push output). The leading [^@] keeps git@github.com URLs out.
SHORTHAND_REMOTE_PATTERN = re.compile(
    r"(?:^|[^@])github\.com[:/]([^/\s]+)/([^/\s.]+?)(?:\.git)?(?:\s|$)", re.IGNORECASE
)

OWNER_SLASH_NAME_PATTERN = re.compile(r"^([^/]+)/([^/]+)$")

# [branch hash] message  /  [branch (root-commit) hash] message
# groups: 1 = branch, 2 = hash (7-40 hex), 3 = message
COMMIT_OUTPUT_PATTERN = re.compile(
    r"\[([^\s\]]+)(?:\s+\([^)]+\))?\s+([a-f0-9]{7,40})\]\s+(.+)", re.IGNORECASE
)

# "To github.com:owner/repo.git" line of git push output
PUSH_REMOTE_PATTERN = re.compile(r"To\s+(\S*github\.com\S+)", re.IGNORECASE)

# abc1234..def5678  main -> main
# groups: 1 = from hash, 2 = to hash, 3 = local branch
PUSH_RANGE_PATTERN = re.compile(
    r"([a-f0-9]{7,40})\.\.([a-f0-9]{7,40})\s+(\S+)\s+->\s+\S+", re.IGNORECASE
)

#  * [new branch]      feature -> feature
PUSH_NEW_BRANCH_PATTERN = re.compile(r"\*\s+\[new branch\]\s+(\S+)\s+->\s+\S+", re.IGNORECASE)

# A real invocation starts a command: beginning of the string, a chain
# operator, a separator or a subshell, then optional VAR=value assignments.
COMMIT_COMMAND_PATTERN = re.compile(
    r"(?:^|&&|\|\||;|\n|\$\(|\()\s*(?:[A-Z_][A-Z0-9_]*=\S+\s+)*git\s+commit\b",
    re.IGNORECASE,
)

PUSH_COMMAND_PATTERN = re.compile(r"\bgit\s+push\b", re.IGNORECASE)

REMOTE_COMMAND_PATTERN = re.compile(r"\bgit\s+remote\b", re.IGNORECASE)

# origin  https://github.com/owner/repo.git (fetch)
REMOTE_ORIGIN_PATTERN = re.compile(r"origin\s+(\S+)\s+\((?:fetch|push)\)", re.IGNORECASE)

SHELL_TOOL_NAMES = ("bash", "shell")


@dataclass(frozen=True)
class RepositoryRef:
    """A GitHub repository identified by owner and name."""

    owner: str
    name: str

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"

    @property
    def base_url(self) -> str:
        return f"{GITHUB_BASE_URL}/{self.owner}/{self.name}"

    def commit_url(self, commit_hash: str) -> str:
        return f"{self.base_url}/commit/{commit_hash}"

    def to_dict(self) -> dict:
        return {
            "owner": self.owner,
            "name": self.name,
            "fullName": self.full_name,
            "baseUrl": self.base_url,
        }


@dataclass
class CommitRecord:
    """One commit recovered from ``git commit`` output.

    ``timestamp`` is Unix milliseconds taken from the tool call, never from
    the output text. ``url`` stays ``None`` until a repository is known.
    """

    short_hash: str
    message: str
    full_hash: str | None = None
    branch: str | None = None
    timestamp: float = 0
    url: str | None = None

    @property
    def link_hash(self) -> str:
        return self.full_hash or self.short_hash

    def to_dict(self) -> dict:
        return {
            "shortHash": self.short_hash,
            "fullHash": self.full_hash,
            "message": self.message,
            "branch": self.branch,
            "timestamp": self.timestamp,
            "url": self.url,
        }


@dataclass
class TimelineEntry:
    commit: CommitRecord
    after_prompt_number: int

    def to_dict(self) -> dict:
        return {"commit": self.commit.to_dict(), "afterPromptNumber": self.after_prompt_number}


@dataclass
class PushedRange:
    """A ref update line from ``git push``; ``to_hash`` is empty for new branches."""

    to_hash: str
    branch: str
    from_hash: str | None = None

    def to_dict(self) -> dict:
        return {"fromHash": self.from_hash, "toHash": self.to_hash, "branch": self.branch}


@dataclass
class PushResult:
    repo: RepositoryRef | None = None
    commits: list[PushedRange] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "repo": self.repo.to_dict() if self.repo is not None else None,
            "commits": [pushed.to_dict() for pushed in self.commits],
        }


@dataclass
class _TimelineState:
    """Accumulator for one ``extract_timeline`` pass."""

    known_repo: RepositoryRef | None = None
    prompt_number: int = 0
    entries: list[TimelineEntry] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Remote URLs
# ---------------------------------------------------------------------------


def parse_remote_url(url: str) -> RepositoryRef | None:
    """Parse a GitHub remote URL into a :class:`RepositoryRef`.

    Accepted shapes, tried in order:

    - ``https://github.com/owner/repo[.git]``
    - ``git@github.com:owner/repo[.git]``
    - ``github.com:owner/repo[.git]`` or ``github.com/owner/repo[.git]``
      anywhere in the string (as printed by ``git push``)

    Returns None for other hosts and for anything unrecognised.
    """
    if not isinstance(url, str) or not url:
        return None
    for pattern in (HTTPS_REMOTE_PATTERN, SSH_REMOTE_PATTERN, SHORTHAND_REMOTE_PATTERN):
        match = pattern.search(url)
        if match:
            return RepositoryRef(owner=match.group(1), name=match.group(2))
    return None


def parse_owner_slash_name(value: str) -> RepositoryRef | None:
    """Parse an explicit ``owner/name`` string, e.g. from ``--repo``."""
    if not isinstance(value, str):
        return None
    match = OWNER_SLASH_NAME_PATTERN.match(value.strip())
    if not match:
        return None
    return RepositoryRef(owner=match.group(1), name=match.group(2))


# ---------------------------------------------------------------------------
# Command output
# ---------------------------------------------------------------------------


def parse_commit_output(text: str) -> CommitRecord | None:
    """Extract the commit reported by ``git commit``.

    Only the first ``[branch hash] message`` line counts; the file-change
    summary that follows it is ignored. Returns None when there is no such
    line ("nothing to commit", hook failures, unrelated output).
    """
    if not isinstance(text, str) or not text:
        return None
    match = COMMIT_OUTPUT_PATTERN.search(text)
    if not match:
        return None
    branch, commit_hash, message = match.groups()
    commit_hash = commit_hash.lower()
    return CommitRecord(
        short_hash=commit_hash[:SHORT_HASH_LENGTH],
        full_hash=commit_hash if len(commit_hash) > SHORT_HASH_LENGTH else None,
        message=message.strip(),
        branch=branch,
    )


def parse_push_output(text: str) -> PushResult:
    """Extract the remote and the updated refs from ``git push`` output.

    Range lines (``abc1234..def5678  main -> main``) come first in the
    result, followed by new-branch lines, which carry no hash.
    """
    result = PushResult()
    if not isinstance(text, str) or not text:
        return result

    remote_match = PUSH_REMOTE_PATTERN.search(text)
    if remote_match:
        result.repo = parse_remote_url(remote_match.group(1))

    for match in PUSH_RANGE_PATTERN.finditer(text):
        result.commits.append(
            PushedRange(
                from_hash=match.group(1)[:SHORT_HASH_LENGTH],
                to_hash=match.group(2)[:SHORT_HASH_LENGTH],
                branch=match.group(3),
            )
        )

    for match in PUSH_NEW_BRANCH_PATTERN.finditer(text):
        result.commits.append(PushedRange(to_hash="", branch=match.group(1)))

    return result


# ---------------------------------------------------------------------------
# Command classification
# ---------------------------------------------------------------------------


def looks_like_commit_command(command: str) -> bool:
    """True for an actual ``git commit`` invocation.

    ``echo 'git commit'`` and similar mentions do not count: the command
    has to start at a command boundary, optionally after ``VAR=value``
    assignments.
    """
    if not isinstance(command, str):
        return False
    return COMMIT_COMMAND_PATTERN.search(command) is not None


def looks_like_push_command(command: str) -> bool:
    if not isinstance(command, str):
        return False
    return PUSH_COMMAND_PATTERN.search(command) is not None


# ---------------------------------------------------------------------------
# Message traversal
# ---------------------------------------------------------------------------


def _message_info(envelope) -> dict:
    if not isinstance(envelope, dict):
        return {}
    info = envelope.get("message")
    if not isinstance(info, dict):
        info = envelope.get("info")
    return info if isinstance(info, dict) else {}


def _message_parts(envelope) -> list:
    if not isinstance(envelope, dict):
        return []
    parts = envelope.get("parts")
    return parts if isinstance(parts, list) else []


def _tool_name_is_shell(tool_name) -> bool:
    if not isinstance(tool_name, str):
        return False
    return tool_name.lower() in SHELL_TOOL_NAMES


def _shell_call(part, message_created):
    """Return ``(command, output, timestamp)`` for a shell tool part, else None."""
    if not isinstance(part, dict):
        return None
    if part.get("type") != "tool" or not _tool_name_is_shell(part.get("tool")):
        return None

    state = part.get("state")
    if not isinstance(state, dict):
        state = {}
    tool_input = state.get("input")
    if not isinstance(tool_input, dict):
        tool_input = {}

    command = tool_input.get("command")
    if not isinstance(command, str):
        command = tool_input.get("cmd")
    if not isinstance(command, str):
        command = ""
    output = state.get("output")
    if not isinstance(output, str):
        output = ""

    times = state.get("time")
    if not isinstance(times, dict):
        times = {}
    timestamp = times.get("end")
    if timestamp is None:
        timestamp = times.get("start")
    if timestamp is None:
        timestamp = message_created
    if timestamp is None:
        timestamp = 0

    return command, output, timestamp


def iter_shell_calls(messages):
    """Yield ``(role, command, output, timestamp)`` for every shell call.

    User messages are yielded once with ``None`` in the other slots so that
    callers can count prompts in the same pass.
    """
    for envelope in messages or []:
        info = _message_info(envelope)
        role = info.get("role")
        if role == "user":
            yield role, None, None, None
        elif role == "assistant":
            times = info.get("time")
            created = times.get("created") if isinstance(times, dict) else None
            for part in _message_parts(envelope):
                call = _shell_call(part, created)
                if call is not None:
                    yield (role,) + call


# ---------------------------------------------------------------------------
# Timeline extraction
# ---------------------------------------------------------------------------


def _record_push(state: _TimelineState, output: str) -> None:
    if state.known_repo is not None:
        return
    pushed = parse_push_output(output)
    if pushed.repo is not None:
        state.known_repo = pushed.repo


def _record_commit(state: _TimelineState, output: str, timestamp) -> None:
    commit = parse_commit_output(output)
    if commit is None:
        return
    commit.timestamp = timestamp
    if state.known_repo is not None:
        commit.url = state.known_repo.commit_url(commit.link_hash)
    state.entries.append(TimelineEntry(commit=commit, after_prompt_number=state.prompt_number))


def _backfill_urls(state: _TimelineState) -> None:
    if state.known_repo is None:
        return
    for entry in state.entries:
        if entry.commit.url is None:
            entry.commit.url = state.known_repo.commit_url(entry.commit.link_hash)


def extract_timeline(messages, repo_override: RepositoryRef | None = None) -> list[TimelineEntry]:
    """Return the commits made in a session, in message order.

    Each entry records how many user prompts preceded the assistant turn
    that ran ``git commit``. The repository is ``repo_override`` when
    given, otherwise the first one revealed by a ``git push``; commits
    recorded before the push are linked in a final backfill pass.
    """
    state = _TimelineState(known_repo=repo_override)

    for role, command, output, timestamp in iter_shell_calls(messages):
        if role == "user":
            state.prompt_number += 1
            continue
        if looks_like_push_command(command):
            _record_push(state, output)
        if looks_like_commit_command(command):
            _record_commit(state, output, timestamp)

    _backfill_urls(state)
    return state.entries


def detect_repository(messages) -> RepositoryRef | None:
    """Find the GitHub repository a session talks to.

    Uses the first ``git push`` that names a GitHub remote, or the
    ``origin`` line of ``git remote -v`` output.
    """
    for role, command, output, _timestamp in iter_shell_calls(messages):
        if role != "assistant":
            continue
        if looks_like_push_command(command):
            repo = parse_push_output(output).repo
            if repo is not None:
                return repo
        if REMOTE_COMMAND_PATTERN.search(command) and "github.com" in output.lower():
            match = REMOTE_ORIGIN_PATTERN.search(output)
            if match:
                repo = parse_remote_url(match.group(1))
                if repo is not None:
                    return repo
    return None
