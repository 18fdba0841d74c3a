from __future__ import annotations

import json

import pytest

from changeforge import cli
from changeforge.config import Settings
from changeforge.errors import ValidationError
from changeforge.factory import build_orchestrator


API_URL = "https://api.github.test"
OWNER = "octo"
REPO = "docs-site"


@pytest.fixture
def cli_env(monkeypatch, tmp_path, fake_github):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("GITHUB_TOKEN", "ghp_clitoken")
    monkeypatch.setenv("GITHUB_OWNER", OWNER)
    monkeypatch.setenv("GITHUB_API_URL", API_URL)
    monkeypatch.setenv("MERGE_POLL_INTERVAL_SECONDS", "0")
    monkeypatch.setattr(
        cli,
        "build_orchestrator",
        lambda settings: build_orchestrator(settings, transport=fake_github.transport, sleep=lambda _s: None),
    )
    return tmp_path


def test_parse_run_args():
    args = cli.parse_args(["run", "--objective", "Docs", "--auto-merge", "--strict-dependencies"])
    assert args.command == "run"
    assert args.auto_merge is True
    assert args.enable_pages is False
    assert args.strict_dependencies is True


def test_apply_overrides():
    settings = Settings(github_token="t", github_owner="o", _env_file=None)
    args = cli.parse_args(["serve", "--host", "127.0.0.1", "--port", "8080"])
    updated = cli.apply_overrides(settings, args)
    assert updated.host == "127.0.0.1"
    assert updated.port == 8080
    assert updated.github_token == "t"


def test_load_tasks_accepts_list_or_object(tmp_path):
    listed = tmp_path / "list.json"
    listed.write_text(json.dumps([{"id": "a", "description": "A"}]), encoding="utf-8")
    wrapped = tmp_path / "wrapped.json"
    wrapped.write_text(json.dumps({"tasks": [{"id": "b", "description": "B", "dependencies": ["a"]}]}))
    assert [task.id for task in cli.load_tasks(str(listed))] == ["a"]
    assert cli.load_tasks(str(wrapped))[0].dependencies == ["a"]


def test_load_tasks_rejects_scalar(tmp_path):
    path = tmp_path / "bad.json"
    path.write_text('"nope"', encoding="utf-8")
    with pytest.raises(ValidationError):
        cli.load_tasks(str(path))


def test_run_with_tasks_file_prints_report(cli_env, fake_github, capsys):
    tasks = cli_env / "tasks.json"
    tasks.write_text(json.dumps([{"id": "task-1", "description": "Add homepage"}]), encoding="utf-8")
    code = cli.main(["run", "--objective", "Docs Site", "--tasks", str(tasks), "--enable-pages"])
    assert code == 0
    report = json.loads(capsys.readouterr().out)
    assert report["repo"] == REPO
    assert report["tasks"][0]["status"] == "pr_opened"
    assert REPO in fake_github.pages


def test_run_reports_errors_with_exit_code(cli_env, fake_github, capsys):
    tasks = cli_env / "tasks.json"
    tasks.write_text(
        json.dumps(
            [
                {"id": "a", "description": "A", "dependencies": ["b"]},
                {"id": "b", "description": "B", "dependencies": ["a"]},
            ]
        ),
        encoding="utf-8",
    )
    code = cli.main(["run", "--objective", "Docs Site", "--tasks", str(tasks)])
    assert code == 2
    assert "cycle" in capsys.readouterr().err
    assert fake_github.calls == []


def test_missing_credentials_exit_code(monkeypatch, tmp_path, capsys):
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("GITHUB_TOKEN", raising=False)
    monkeypatch.delenv("GITHUB_OWNER", raising=False)
    assert cli.main(["run", "--objective", "Docs"]) == 2
    assert "GITHUB_TOKEN" in capsys.readouterr().err
