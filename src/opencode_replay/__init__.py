"""Replay OpenCode sessions as HTML timelines with linked git commits."""

from .git_commits import (
    CommitRecord,
    PushedRange,
    PushResult,
    RepositoryRef,
    TimelineEntry,
    detect_repository,
    extract_timeline,
    looks_like_commit_command,
    looks_like_push_command,
    parse_commit_output,
    parse_owner_slash_name,
    parse_push_output,
    parse_remote_url,
)

__all__ = [
    "CommitRecord",
    "PushedRange",
    "PushResult",
    "RepositoryRef",
    "TimelineEntry",
    "detect_repository",
    "extract_timeline",
    "looks_like_commit_command",
    "looks_like_push_command",
    "parse_commit_output",
    "parse_owner_slash_name",
    "parse_push_output",
    "parse_remote_url",
]
