"""Tests for timeline extraction and repository detection over messages."""

from opencode_replay.git_commits import (
    RepositoryRef,
    detect_repository,
    extract_timeline,
)


def test_extract_commit_from_bash_output(user_message, assistant_message):
    messages = [
        user_message("msg_1", 1000),
        assistant_message("msg_2", 1001, [("git commit -m 'Add feature'", "[main abc1234] Add feature")]),
    ]

    entries = extract_timeline(messages)

    assert len(entries) == 1
    assert entries[0].after_prompt_number == 1
    assert entries[0].commit.short_hash == "abc1234"
    assert entries[0].commit.message == "Add feature"
    assert entries[0].commit.url is None


def test_commits_follow_their_prompts(user_message, assistant_message):
    messages = [
        user_message("msg_1", 1000),
        assistant_message("msg_2", 1001, [("git commit -m 'one'", "[main 1111111] one")]),
        user_message("msg_3", 2000),
        user_message("msg_4", 3000),
        assistant_message(
            "msg_5",
            3001,
            [
                ("git commit -m 'two'", "[main 2222222] two"),
                ("git commit -m 'three'", "[main 3333333] three"),
            ],
        ),
    ]

    entries = extract_timeline(messages)

    assert [(e.commit.short_hash, e.after_prompt_number) for e in entries] == [
        ("1111111", 1),
        ("2222222", 3),
        ("3333333", 3),
    ]


def test_commit_before_first_prompt_is_prompt_zero(assistant_message):
    messages = [assistant_message("msg_1", 500, [("git commit -m 'early'", "[main abcdef0] early")])]

    entries = extract_timeline(messages)

    assert entries[0].after_prompt_number == 0


def test_repo_override_sets_url_immediately(user_message, assistant_message):
    messages = [
        user_message("msg_1", 1000),
        assistant_message("msg_2", 1001, [("git commit -m 'x'", "[main abc1234def5678] x")]),
    ]

    entries = extract_timeline(messages, RepositoryRef(owner="sst", name="opencode"))

    assert entries[0].commit.url == "https://github.com/sst/opencode/commit/abc1234def5678"


def test_later_push_backfills_earlier_commit(commit_then_push_session):
    entries = extract_timeline(commit_then_push_session)

    assert len(entries) == 1
    assert entries[0].after_prompt_number == 1
    assert entries[0].commit.url == "https://github.com/owner/repo/commit/abc1234"


def test_override_wins_over_pushed_remote(commit_then_push_session):
    override = RepositoryRef(owner="fork", name="repo")

    entries = extract_timeline(commit_then_push_session, override)

    assert entries[0].commit.url == "https://github.com/fork/repo/commit/abc1234"


def test_first_detected_remote_wins(user_message, assistant_message):
    messages = [
        user_message("msg_1", 1000),
        assistant_message(
            "msg_2",
            1001,
            [
                ("git push", "To github.com:first/repo.git\n   1111111..2222222  main -> main"),
                ("git commit -m 'x'", "[main 3333333] x"),
                ("git push other", "To github.com:second/repo.git\n   2222222..3333333  main -> main"),
            ],
        ),
    ]

    entries = extract_timeline(messages)

    assert entries[0].commit.url == "https://github.com/first/repo/commit/3333333"


def test_timestamp_fallback_chain(user_message, assistant_message):
    messages = [
        user_message("msg_1", 1000),
        assistant_message(
            "msg_2",
            1500,
            [
                ("git commit -m 'a'", "[main aaaaaaa] a", {"start": 1600, "end": 1700}),
                ("git commit -m 'b'", "[main bbbbbbb] b", {"start": 1800}),
                ("git commit -m 'c'", "[main ccccccc] c"),
            ],
        ),
    ]

    entries = extract_timeline(messages)

    assert [e.commit.timestamp for e in entries] == [1700, 1800, 1500]


def test_ignores_non_shell_tools(user_message, assistant_message):
    messages = [
        user_message("msg_1", 1000),
        assistant_message(
            "msg_2",
            1001,
            [("git commit -m 'x'", "[main abc1234] This looks like commit output but is not")],
            tool="read",
        ),
    ]

    assert extract_timeline(messages) == []


def test_ignores_commit_output_without_commit_command(user_message, assistant_message):
    messages = [
        user_message("msg_1", 1000),
        assistant_message("msg_2", 1001, [("cat log.txt", "[main abc1234] old commit")]),
    ]

    assert extract_timeline(messages) == []


def test_malformed_parts_degrade_gracefully(user_message):
    messages = [
        user_message("msg_1", 1000),
        {
            "message": {"id": "msg_2", "role": "assistant"},
            "parts": [
                "not a part",
                {"type": "tool", "tool": "bash"},
                {"type": "tool", "tool": "bash", "state": {"input": None, "output": None}},
                {"type": "tool", "tool": "bash", "state": {"input": {"command": "git commit"}}},
                {"type": "text", "text": "[main abc1234] text part"},
            ],
        },
        {"message": {"role": "system"}},
        "garbage",
        None,
    ]

    assert extract_timeline(messages) == []


def test_export_envelopes_use_info_key():
    messages = [
        {"info": {"role": "user", "time": {"created": 1}}, "parts": []},
        {
            "info": {"role": "assistant", "time": {"created": 2}},
            "parts": [
                {
                    "type": "tool",
                    "tool": "bash",
                    "state": {"input": {"command": "git commit -m x"}, "output": "[dev 1234567] x"},
                }
            ],
        },
    ]

    entries = extract_timeline(messages)

    assert entries[0].commit.branch == "dev"
    assert entries[0].after_prompt_number == 1


def test_combined_commit_and_push_in_one_call(user_message, assistant_message):
    output = (
        "[main abc1234] Ship it\n 1 file changed\n"
        "To github.com:owner/repo.git\n   0000000..abc1234  main -> main\n"
    )
    messages = [
        user_message("msg_1", 1000),
        assistant_message("msg_2", 1001, [("git commit -am 'Ship it' && git push", output)]),
    ]

    entries = extract_timeline(messages)

    assert entries[0].commit.url == "https://github.com/owner/repo/commit/abc1234"


def test_extract_timeline_is_repeatable(commit_then_push_session):
    first = extract_timeline(commit_then_push_session)
    second = extract_timeline(commit_then_push_session)

    assert first == second
    assert first[0].commit is not second[0].commit


def test_timeline_entry_to_dict(commit_then_push_session):
    entry = extract_timeline(commit_then_push_session)[0]

    assert entry.to_dict() == {
        "commit": {
            "shortHash": "abc1234",
            "fullHash": None,
            "message": "Test",
            "branch": "main",
            "timestamp": 1001,
            "url": "https://github.com/owner/repo/commit/abc1234",
        },
        "afterPromptNumber": 1,
    }


def test_detect_repository_from_push(assistant_message):
    messages = [
        assistant_message(
            "msg_1",
            1,
            [("git push origin main", "To github.com:sst/opencode.git\n   abc..def  main -> main")],
        )
    ]

    assert detect_repository(messages).full_name == "sst/opencode"


def test_detect_repository_from_remote_listing(assistant_message):
    output = (
        "origin\thttps://github.com/owner/repo.git (fetch)\n"
        "origin\thttps://github.com/owner/repo.git (push)"
    )
    messages = [assistant_message("msg_1", 1, [("git remote -v", output)])]

    assert detect_repository(messages).full_name == "owner/repo"


def test_detect_repository_returns_first_signal(assistant_message):
    messages = [
        assistant_message("msg_1", 1, [("git remote -v", "origin\tgit@github.com:one/repo.git (fetch)")]),
        assistant_message("msg_2", 2, [("git push", "To github.com:two/repo.git")]),
    ]

    assert detect_repository(messages).full_name == "one/repo"


def test_detect_repository_none(assistant_message):
    messages = [assistant_message("msg_1", 1, [("git status", "On branch main\nnothing to commit")])]

    assert detect_repository(messages) is None
    assert detect_repository([]) is None


def test_detect_repository_ignores_non_github_or_non_origin_remotes(assistant_message):
    gitlab = "origin\thttps://gitlab.com/owner/repo.git (fetch)\norigin\thttps://gitlab.com/owner/repo.git (push)"
    upstream_only = "upstream\thttps://github.com/owner/repo.git (fetch)"

    for output in (gitlab, upstream_only):
        messages = [assistant_message("msg_1", 1, [("git remote -v", output)])]
        assert detect_repository(messages) is None, output
