"""Render session data as an HTML timeline page or a Markdown summary."""

from datetime import datetime, timezone
from pathlib import Path
from urllib.parse import urlparse

from jinja2 import Environment, PackageLoader

from .session_data import SessionData

_jinja_env = Environment(
    loader=PackageLoader("opencode_replay", "templates"),
    autoescape=True,
)

_macros = _jinja_env.get_template("macros.html").module

PROMPT_PREVIEW_MAX_CHARS = 150

CSS = """
:root { --bg-color: #f5f5f5; --card-bg: #ffffff; --user-border: #1976d2; --commit-bg: #fff3e0; --commit-border: #ff9800; --commit-text: #5d4037; --text-color: #212121; --text-muted: #757575; }
* { box-sizing: border-box; }
body { font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; background: var(--bg-color); color: var(--text-color); margin: 0; padding: 16px; line-height: 1.6; }
.container { max-width: 800px; margin: 0 auto; }
h1 { font-size: 1.5rem; margin-bottom: 4px; }
.header-meta { color: var(--text-muted); font-size: 0.9rem; margin-bottom: 16px; }
.header-meta span { margin-right: 12px; }
.timeline-entry { display: flex; gap: 12px; margin-bottom: 12px; padding: 12px 16px; background: var(--card-bg); border-left: 4px solid var(--user-border); border-radius: 8px; box-shadow: 0 1px 2px rgba(0,0,0,0.05); }
.timeline-marker { font-weight: 600; color: var(--user-border); min-width: 24px; }
.timeline-content { flex: 1; min-width: 0; }
.timeline-content p { margin: 0; }
.prompt-link { color: inherit; text-decoration: none; white-space: pre-wrap; overflow-wrap: anywhere; }
.timeline-stats { color: var(--text-muted); font-size: 0.8rem; margin-top: 4px; }
.timeline-stats span { margin-right: 8px; }
.commit-card { margin: 8px 0; padding: 10px 14px; background: var(--commit-bg); border-left: 4px solid var(--commit-border); border-radius: 6px; }
.commit-header { font-size: 0.85rem; }
.commit-hash { font-family: monospace; color: #e65100; font-weight: 600; margin-right: 8px; text-decoration: none; }
.commit-branch { font-family: monospace; background: rgba(0,0,0,0.08); padding: 1px 4px; border-radius: 3px; margin-right: 8px; }
.commit-time { color: var(--text-muted); }
.commit-message { color: var(--commit-text); }
.early-commits { margin-bottom: 12px; }
.no-timeline { color: var(--text-muted); font-style: italic; }
@media (max-width: 600px) { body { padding: 8px; } .timeline-entry { padding: 10px; } }
"""


def get_template(name):
    """Get a Jinja2 template by name."""
    return _jinja_env.get_template(name)


def truncate(text: str, max_chars: int) -> str:
    if not text or len(text) <= max_chars:
        return text or ""
    return text[: max_chars - 3].rstrip() + "..."


def format_timestamp(ms) -> str:
    """Format Unix milliseconds as an ISO 8601 UTC string ("" when unset)."""
    if not ms:
        return ""
    try:
        dt = datetime.fromtimestamp(ms / 1000, tz=timezone.utc)
    except (OverflowError, OSError, ValueError, TypeError):
        return ""
    return dt.strftime("%Y-%m-%dT%H:%M:%SZ")


def is_safe_url(url) -> bool:
    if not isinstance(url, str) or not url:
        return False
    return urlparse(url).scheme in ("http", "https")


def format_tool_stats(tool_counts) -> list[str]:
    """Format tool counts as ``"3 bash"`` strings, most used first."""
    items = sorted(
        ((name, count) for name, count in tool_counts.items() if count > 0),
        key=lambda x: -x[1],
    )
    return [f"{count} {name}" for name, count in items]


def render_commit_card(commit):
    url = commit.url if is_safe_url(commit.url) else None
    return _macros.commit_card(
        commit.short_hash,
        commit.message,
        commit.branch,
        format_timestamp(commit.timestamp),
        url,
    )


def prompt_anchor(entry) -> str:
    return entry.message_id or f"prompt-{entry.prompt_number}"


def render_timeline_entry(entry):
    commits_html = "".join(render_commit_card(commit) for commit in entry.commits)
    return _macros.timeline_entry(
        entry.prompt_number,
        prompt_anchor(entry),
        truncate(entry.prompt_preview, PROMPT_PREVIEW_MAX_CHARS),
        format_tool_stats(entry.tool_counts),
        commits_html,
    )


def render_session_html(data: SessionData) -> str:
    session = data.session
    title = session.get("title") or "Untitled session"
    times = session.get("time") if isinstance(session.get("time"), dict) else {}
    template = get_template("session.html")
    return template.render(
        css=CSS,
        title=title,
        project_name=data.project_name,
        created=format_timestamp(times.get("created")),
        stats=data.stats,
        repo=data.repo,
        total_commits=len(data.commits),
        early_commits_html="".join(render_commit_card(commit) for commit in data.early_commits),
        timeline_html="".join(render_timeline_entry(entry) for entry in data.timeline),
    )


def write_session_html(data: SessionData, output_dir) -> Path:
    """Write ``index.html`` for one session and return its path."""
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    index_path = output_dir / "index.html"
    index_path.write_text(render_session_html(data), encoding="utf-8")
    return index_path


def _markdown_commit_line(commit) -> str:
    hash_text = f"[`{commit.short_hash}`]({commit.url})" if commit.url else f"`{commit.short_hash}`"
    branch = f" ({commit.branch})" if commit.branch else ""
    return f"- {hash_text}{branch} {commit.message}"


def render_commits_markdown(data: SessionData) -> str:
    """Summarise prompts that produced commits as a Markdown list."""
    title = data.session.get("title") or "Untitled session"
    lines = [f"# {title}", ""]
    if data.repo is not None:
        lines.extend([f"Repository: [{data.repo.full_name}]({data.repo.base_url})", ""])

    groups = []
    if data.early_commits:
        groups.append(("## Before the first prompt", data.early_commits))
    for entry in data.timeline:
        if entry.commits:
            preview = truncate(" ".join(entry.prompt_preview.split()), PROMPT_PREVIEW_MAX_CHARS)
            groups.append((f"## Prompt {entry.prompt_number}: {preview}", entry.commits))

    if not groups:
        lines.append("_No commits._")
        return "\n".join(lines) + "\n"

    for heading, commits in groups:
        lines.extend([heading, ""])
        lines.extend(_markdown_commit_line(commit) for commit in commits)
        lines.append("")
    return "\n".join(lines)
