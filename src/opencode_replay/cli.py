"""Command-line interface for opencode-replay."""

import json
import tempfile
import webbrowser
from datetime import datetime
from pathlib import Path

import click
from click_default_group import DefaultGroup
import httpx
import questionary

from .config import load_config, resolve_output_dir, resolve_repo_string, resolve_storage_path
from .git_commits import detect_repository, extract_timeline, parse_owner_slash_name
from .render import render_commits_markdown, write_session_html
from .session_data import build_session_data
from .storage import (
    StorageError,
    find_project_by_path,
    find_session,
    get_messages_with_parts,
    list_all_sessions,
    list_sessions,
    load_export_file,
)


def _load_cfg() -> dict:
    return load_config(project_root=Path.cwd())


def _parse_repo_option(value):
    """Turn a ``--repo`` value into a RepositoryRef, or None when unset."""
    if not value:
        return None
    repo = parse_owner_slash_name(value)
    if repo is None:
        raise click.BadParameter(f"Expected OWNER/NAME, got {value!r}", param_hint="'--repo'")
    return repo


def _project_display_name(project) -> str | None:
    if not isinstance(project, dict):
        return None
    if project.get("name"):
        return project["name"]
    worktree = project.get("worktree")
    if isinstance(worktree, str) and worktree:
        return Path(worktree).name or worktree
    return None


def _format_session_time(session) -> str:
    times = session.get("time") if isinstance(session.get("time"), dict) else {}
    ms = times.get("updated") or times.get("created")
    if not ms:
        return "????-??-?? ??:??"
    return datetime.fromtimestamp(ms / 1000).strftime("%Y-%m-%d %H:%M")


def is_url(path):
    """Check if a path is a URL (starts with http:// or https://)."""
    return path.startswith("http://") or path.startswith("https://")


def fetch_url_to_tempfile(url):
    """Fetch a session export from a URL and save it to a temporary file.

    Raises click.ClickException on network errors.
    """
    try:
        response = httpx.get(url, timeout=60.0, follow_redirects=True)
        response.raise_for_status()
    except httpx.RequestError as e:
        raise click.ClickException(f"Failed to fetch URL: {e}")
    except httpx.HTTPStatusError as e:
        raise click.ClickException(
            f"Failed to fetch URL: {e.response.status_code} {e.response.reason_phrase}"
        )

    url_name = Path(url.split("?")[0]).stem or "session"
    temp_file = Path(tempfile.gettempdir()) / f"opencode-url-{url_name}.json"
    temp_file.write_text(response.text, encoding="utf-8")
    return temp_file


def _load_export(path):
    try:
        session, messages = load_export_file(path)
    except StorageError as e:
        raise click.ClickException(str(e))
    return session or {"id": Path(path).stem}, messages


def load_source(source, storage_path):
    """Resolve SOURCE (URL, export file or stored session id).

    Returns ``(session, messages, project_name)``.
    """
    if is_url(source):
        click.echo(f"Fetching {source}...", err=True)
        session, messages = _load_export(fetch_url_to_tempfile(source))
        return session, messages, None

    path = Path(source)
    if path.suffix == ".json" or path.is_file():
        if not path.exists():
            raise click.ClickException(f"File not found: {source}")
        session, messages = _load_export(path)
        return session, messages, None

    found = find_session(storage_path, source)
    if found is None:
        raise click.ClickException(f"Session not found: {source} (storage: {storage_path})")
    project, session = found
    messages = get_messages_with_parts(storage_path, source)
    return session, messages, _project_display_name(project)


def _resolve_repo(repo, messages, *, quiet=False):
    """Return the explicit repo, else the detected one, reporting which on stderr."""
    if repo is not None:
        return repo
    repo = detect_repository(messages)
    if quiet:
        return repo
    if repo is not None:
        click.echo(f"Auto-detected GitHub repo: {repo.full_name}", err=True)
    else:
        click.echo(
            "Warning: Could not auto-detect GitHub repo. Commit links will be disabled.",
            err=True,
        )
    return repo


def generate_output(
    session, messages, output, *, project_name=None, repo=None, include_json=False, open_browser=False
):
    repo = _resolve_repo(repo, messages)
    data = build_session_data(session, messages, project_name=project_name, repo=repo)
    output = Path(output)
    index_path = write_session_html(data, output)
    click.echo(
        f"Generated {index_path.resolve()} "
        f"({len(data.timeline)} prompts, {len(data.commits)} commits)"
    )

    if include_json:
        json_dest = output / "session.json"
        json_dest.write_text(
            json.dumps({"info": session, "messages": messages}, indent=2, ensure_ascii=False),
            encoding="utf-8",
        )
        json_size_kb = json_dest.stat().st_size / 1024
        click.echo(f"JSON: {json_dest} ({json_size_kb:.1f} KB)")

    if open_browser:
        webbrowser.open(index_path.resolve().as_uri())
    return index_path


def _default_output(session_id) -> Path:
    return Path(tempfile.gettempdir()) / f"opencode-replay-{session_id or 'session'}"


@click.group(cls=DefaultGroup, default="local", default_if_no_args=True)
@click.version_option(None, "-v", "--version", package_name="opencode-replay")
def cli():
    """Replay OpenCode sessions as HTML timelines with linked git commits."""
    pass


@cli.command("local")
@click.option("-a", "--all", "all_projects", is_flag=True, help="Choose from sessions of every project.")
@click.option(
    "-o",
    "--output",
    type=click.Path(),
    help="Output directory. If not specified, writes to temp dir and opens in browser.",
)
@click.option(
    "--repo",
    help="GitHub repo (owner/name) for commit links. Auto-detected from git push output if not specified.",
)
@click.option("--storage", type=click.Path(), help="OpenCode storage directory.")
@click.option("--open", "open_browser", is_flag=True, help="Open the generated index.html in your browser.")
@click.option("--limit", default=10, help="Maximum number of sessions to show (default: 10)")
def local_cmd(all_projects, output, repo, storage, open_browser, limit):
    """Select a session from local OpenCode storage and render it."""
    cfg = _load_cfg()
    storage_path = resolve_storage_path(storage, cfg)
    repo_ref = _parse_repo_option(resolve_repo_string(repo, cfg))

    if not storage_path.exists():
        click.echo(f"Storage folder not found: {storage_path}")
        click.echo("No local OpenCode sessions available.")
        return

    if all_projects:
        candidates = list_all_sessions(storage_path)
    else:
        project = find_project_by_path(storage_path, Path.cwd())
        if project is None:
            click.echo(f"No OpenCode project found for {Path.cwd()}. Use --all to list every project.")
            return
        candidates = [(project, s) for s in list_sessions(storage_path, project.get("id") or "")]

    candidates = candidates[:limit]
    if not candidates:
        click.echo("No sessions found.")
        return

    choices = []
    for project, session in candidates:
        title = session.get("title") or "(untitled)"
        if len(title) > 50:
            title = title[:47] + "..."
        label = f"{_format_session_time(session)}  {title}"
        if all_projects:
            label += f"  [{_project_display_name(project) or '?'}]"
        choices.append(questionary.Choice(title=label, value=(project, session)))

    selected = questionary.select("Select a session to render:", choices=choices).ask()
    if selected is None:
        click.echo("No session selected.")
        return

    project, session = selected
    session_id = session.get("id")
    if not isinstance(session_id, str) or not session_id:
        raise click.ClickException("Selected session has no id; cannot load its messages.")
    auto_open = output is None
    output_dir = resolve_output_dir(output, cfg, _default_output(session_id))
    messages = get_messages_with_parts(storage_path, session_id)
    generate_output(
        session,
        messages,
        output_dir,
        project_name=_project_display_name(project),
        repo=repo_ref,
        open_browser=open_browser or auto_open,
    )


@cli.command("session")
@click.argument("session_id")
@click.option("-o", "--output", type=click.Path(), help="Output directory.")
@click.option(
    "--repo",
    help="GitHub repo (owner/name) for commit links. Auto-detected from git push output if not specified.",
)
@click.option("--storage", type=click.Path(), help="OpenCode storage directory.")
@click.option("--json", "include_json", is_flag=True, help="Also write the raw messages as session.json.")
@click.option("--open", "open_browser", is_flag=True, help="Open the generated index.html in your browser.")
def session_cmd(session_id, output, repo, storage, include_json, open_browser):
    """Render one stored session by id."""
    cfg = _load_cfg()
    storage_path = resolve_storage_path(storage, cfg)
    repo_ref = _parse_repo_option(resolve_repo_string(repo, cfg))

    found = find_session(storage_path, session_id)
    if found is None:
        raise click.ClickException(f"Session not found: {session_id} (storage: {storage_path})")
    project, session = found

    output_dir = resolve_output_dir(output, cfg, _default_output(session_id))
    generate_output(
        session,
        get_messages_with_parts(storage_path, session_id),
        output_dir,
        project_name=_project_display_name(project),
        repo=repo_ref,
        include_json=include_json,
        open_browser=open_browser,
    )
    click.echo(f"Output: {output_dir.resolve()}")


@cli.command("json")
@click.argument("json_file", type=click.Path())
@click.option("-o", "--output", type=click.Path(), help="Output directory.")
@click.option(
    "--repo",
    help="GitHub repo (owner/name) for commit links. Auto-detected from git push output if not specified.",
)
@click.option("--open", "open_browser", is_flag=True, help="Open the generated index.html in your browser.")
def json_cmd(json_file, output, repo, open_browser):
    """Render a session export file or URL."""
    cfg = _load_cfg()
    repo_ref = _parse_repo_option(resolve_repo_string(repo, cfg))

    if is_url(json_file):
        click.echo(f"Fetching {json_file}...")
        json_file_path = fetch_url_to_tempfile(json_file)
    else:
        json_file_path = Path(json_file)
        if not json_file_path.exists():
            raise click.ClickException(f"File not found: {json_file}")

    session, messages = _load_export(json_file_path)
    output_dir = resolve_output_dir(output, cfg, _default_output(session.get("id")))
    generate_output(session, messages, output_dir, repo=repo_ref, open_browser=open_browser)
    click.echo(f"Output: {output_dir.resolve()}")


@cli.command("commits")
@click.argument("source")
@click.option("--repo", help="GitHub repo (owner/name) for commit links.")
@click.option("--storage", type=click.Path(), help="OpenCode storage directory.")
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["text", "json", "markdown"], case_sensitive=False),
    default="text",
    show_default=True,
    help="Output format.",
)
def commits_cmd(source, repo, storage, output_format):
    """Print the git commits made during a session.

    SOURCE is a stored session id, an export file, or an export URL.
    """
    cfg = _load_cfg()
    storage_path = resolve_storage_path(storage, cfg)
    repo_ref = _parse_repo_option(resolve_repo_string(repo, cfg))

    session, messages, project_name = load_source(source, storage_path)
    output_format = output_format.lower()
    repo_ref = _resolve_repo(repo_ref, messages, quiet=output_format == "json")

    if output_format == "markdown":
        data = build_session_data(session, messages, project_name=project_name, repo=repo_ref)
        click.echo(render_commits_markdown(data), nl=False)
        return

    entries = extract_timeline(messages, repo_ref)
    if output_format == "json":
        click.echo(json.dumps([entry.to_dict() for entry in entries], indent=2))
        return

    if not entries:
        click.echo("No commits found.")
        return
    for entry in entries:
        commit = entry.commit
        line = f"[prompt {entry.after_prompt_number}] {commit.short_hash}"
        if commit.branch:
            line += f" ({commit.branch})"
        line += f" {commit.message}"
        if commit.url:
            line += f"  {commit.url}"
        click.echo(line)


@cli.command("repo")
@click.argument("source")
@click.option("--storage", type=click.Path(), help="OpenCode storage directory.")
@click.pass_context
def repo_cmd(ctx, source, storage):
    """Print the GitHub repository a session pushed to."""
    storage_path = resolve_storage_path(storage, _load_cfg())
    _session, messages, _project_name = load_source(source, storage_path)
    repo = detect_repository(messages)
    if repo is None:
        click.echo("No GitHub repository detected.", err=True)
        ctx.exit(1)
    click.echo(f"{repo.full_name}\t{repo.base_url}")


def main():
    cli()
