import json

import pytest


def _user(message_id, created, text="test prompt"):
    return {
        "message": {
            "id": message_id,
            "sessionID": "ses_test",
            "role": "user",
            "time": {"created": created},
        },
        "parts": [{"id": f"prt_{message_id}_0", "type": "text", "text": text}],
    }


def _assistant(message_id, created, calls, *, tool="bash"):
    parts = []
    for i, call in enumerate(calls):
        state = {"status": "completed", "input": {"command": call[0]}, "output": call[1]}
        if len(call) > 2 and call[2] is not None:
            state["time"] = call[2]
        parts.append(
            {
                "id": f"prt_{message_id}_{i}",
                "type": "tool",
                "tool": tool,
                "callID": f"call_{message_id}_{i}",
                "state": state,
            }
        )
    return {
        "message": {
            "id": message_id,
            "sessionID": "ses_test",
            "role": "assistant",
            "time": {"created": created},
            "modelID": "test-model",
        },
        "parts": parts,
    }


@pytest.fixture
def user_message():
    """Build a user envelope: ``user_message("msg_1", 1000, "text")``."""
    return _user


@pytest.fixture
def assistant_message():
    """Build an assistant envelope from ``(command, output[, time])`` tuples."""
    return _assistant


@pytest.fixture
def commit_then_push_session():
    return [
        _user("msg_0001", 1000, "Add the feature"),
        _assistant("msg_0002", 1001, [("git commit -m 'Test'", "[main abc1234] Test\n 1 file changed")]),
        _user("msg_0003", 2000, "Push it"),
        _assistant(
            "msg_0004",
            2001,
            [
                (
                    "git push origin main",
                    "To github.com:owner/repo.git\n   0000000..abc1234  main -> main",
                )
            ],
        ),
    ]


def _write_json(path, obj):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(obj), encoding="utf-8")


@pytest.fixture
def storage_tree(tmp_path, commit_then_push_session):
    """An OpenCode storage directory holding one project with one session."""
    root = tmp_path / "storage"
    _write_json(
        root / "project" / "prj_1.json",
        {"id": "prj_1", "worktree": str(tmp_path / "work"), "time": {"created": 1, "updated": 5}},
    )
    _write_json(
        root / "session" / "prj_1" / "ses_test.json",
        {
            "id": "ses_test",
            "projectID": "prj_1",
            "title": "Feature work",
            "time": {"created": 1000, "updated": 3000},
        },
    )
    for envelope in commit_then_push_session:
        message = envelope["message"]
        _write_json(root / "message" / "ses_test" / f"{message['id']}.json", message)
        for part in envelope["parts"]:
            _write_json(root / "part" / message["id"] / f"{part['id']}.json", part)
    return root
