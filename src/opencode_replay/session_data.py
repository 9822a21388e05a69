"""Assemble per-session data shared by the HTML and Markdown output."""

import math
from dataclasses import dataclass, field

from .git_commits import CommitRecord, RepositoryRef, detect_repository, extract_timeline

PROMPTS_PER_PAGE = 5


@dataclass
class PromptEntry:
    """One user prompt and what followed it."""

    prompt_number: int
    message_id: str
    prompt_preview: str
    timestamp: float
    page_number: int
    tool_counts: dict[str, int] = field(default_factory=dict)
    commits: list[CommitRecord] = field(default_factory=list)


@dataclass
class SessionStats:
    message_count: int = 0
    page_count: int = 0
    total_tokens_input: int = 0
    total_tokens_output: int = 0
    total_cost: float = 0.0
    model: str | None = None


@dataclass
class SessionData:
    session: dict
    messages: list[dict]
    timeline: list[PromptEntry]
    stats: SessionStats
    project_name: str | None = None
    first_prompt: str | None = None
    repo: RepositoryRef | None = None
    early_commits: list[CommitRecord] = field(default_factory=list)

    @property
    def commits(self) -> list[CommitRecord]:
        """Every commit of the session, including ones made before the first prompt."""
        return self.early_commits + [commit for entry in self.timeline for commit in entry.commits]


def _info(envelope) -> dict:
    info = envelope.get("message") if isinstance(envelope, dict) else None
    if not isinstance(info, dict) and isinstance(envelope, dict):
        info = envelope.get("info")
    return info if isinstance(info, dict) else {}


def _parts(envelope) -> list:
    parts = envelope.get("parts") if isinstance(envelope, dict) else None
    return parts if isinstance(parts, list) else []


def _first_text(parts) -> str | None:
    for part in parts:
        if isinstance(part, dict) and part.get("type") == "text":
            text = part.get("text")
            if isinstance(text, str):
                return text
    return None


def get_first_prompt(messages) -> str | None:
    for envelope in messages:
        if _info(envelope).get("role") == "user":
            text = _first_text(_parts(envelope))
            if text is not None:
                return text
    return None


def count_tools(parts) -> dict[str, int]:
    counts: dict[str, int] = {}
    for part in parts:
        if isinstance(part, dict) and part.get("type") == "tool":
            name = part.get("tool") or "unknown"
            counts[name] = counts.get(name, 0) + 1
    return counts


def _page_for_prompt(prompt_number: int) -> int:
    return math.ceil(prompt_number / PROMPTS_PER_PAGE)


def group_commits_by_prompt(entries) -> dict[int, list[CommitRecord]]:
    commits_by_prompt: dict[int, list[CommitRecord]] = {}
    for entry in entries:
        commits_by_prompt.setdefault(entry.after_prompt_number, []).append(entry.commit)
    return commits_by_prompt


def build_prompt_timeline(
    messages, repo: RepositoryRef | None = None, *, commits_by_prompt=None
) -> list[PromptEntry]:
    """Build one :class:`PromptEntry` per user prompt with its commits attached.

    The repository used for commit links is ``repo`` when given, otherwise
    whatever :func:`detect_repository` finds in the transcript. Commits made
    before the first prompt (prompt 0) have no entry here.
    """
    messages = list(messages or [])
    if commits_by_prompt is None:
        if repo is None:
            repo = detect_repository(messages)
        commits_by_prompt = group_commits_by_prompt(extract_timeline(messages, repo))

    timeline = []
    prompt_number = 0
    for i, envelope in enumerate(messages):
        info = _info(envelope)
        if info.get("role") != "user":
            continue
        prompt_number += 1

        # Tool usage of the assistant turns answering this prompt
        tool_counts: dict[str, int] = {}
        for following in messages[i + 1 :]:
            if _info(following).get("role") == "user":
                break
            for name, count in count_tools(_parts(following)).items():
                tool_counts[name] = tool_counts.get(name, 0) + count

        times = info.get("time") if isinstance(info.get("time"), dict) else {}
        timeline.append(
            PromptEntry(
                prompt_number=prompt_number,
                message_id=info.get("id") or "",
                prompt_preview=_first_text(_parts(envelope)) or "",
                timestamp=times.get("created") or 0,
                page_number=_page_for_prompt(prompt_number),
                tool_counts=tool_counts,
                commits=commits_by_prompt.get(prompt_number, []),
            )
        )
    return timeline


def calculate_session_stats(messages) -> SessionStats:
    stats = SessionStats(message_count=len(messages))
    user_count = 0
    for envelope in messages:
        info = _info(envelope)
        role = info.get("role")
        if role == "user":
            user_count += 1
        elif role == "assistant":
            tokens = info.get("tokens")
            if isinstance(tokens, dict):
                stats.total_tokens_input += tokens.get("input") or 0
                stats.total_tokens_output += tokens.get("output") or 0
            stats.total_cost += info.get("cost") or 0
            if stats.model is None and info.get("modelID"):
                stats.model = info["modelID"]
    stats.page_count = _page_for_prompt(user_count) if user_count else 0
    return stats


def build_session_data(session, messages, project_name=None, repo=None) -> SessionData:
    messages = list(messages or [])
    if repo is None:
        repo = detect_repository(messages)
    commits_by_prompt = group_commits_by_prompt(extract_timeline(messages, repo))
    return SessionData(
        session=session or {},
        messages=messages,
        timeline=build_prompt_timeline(messages, repo, commits_by_prompt=commits_by_prompt),
        early_commits=commits_by_prompt.get(0, []),
        stats=calculate_session_stats(messages),
        project_name=project_name,
        first_prompt=get_first_prompt(messages),
        repo=repo,
    )
