"""Tests for the memsync command-line interface."""

import argparse
import json
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from memsync.cli.__main__ import build_parser, default_container_tag, main
from memsync.cli.commands import cmd_add, cmd_auth, cmd_list, cmd_search, cmd_status, cmd_sync
from memsync.config import MemsyncConfig
from memsync.protocols import AuthorizationTimeoutError
from memsync.types import PullOutcome


@pytest.fixture
def cli_env(tmp_path, monkeypatch):
    """Isolated data dir with no GitHub credentials."""
    monkeypatch.setenv("MEMSYNC_DATA_DIR", str(tmp_path))
    monkeypatch.delenv("MEMSYNC_GITHUB_TOKEN", raising=False)
    monkeypatch.setattr("memsync.github.credentials.shutil.which", lambda _: None)
    return tmp_path


def _args(**kwargs):
    defaults = {"tag": "proj", "json": False}
    defaults.update(kwargs)
    return argparse.Namespace(**defaults)


class TestParser:
    def test_default_container_tag(self, tmp_path):
        project = tmp_path / "My Project!"
        project.mkdir()
        assert default_container_tag(project) == "my-project"

    def test_default_container_tag_fallback(self):
        assert default_container_tag(Path("/")) == "default"

    def test_subcommands(self):
        parser = build_parser()
        args = parser.parse_args(["--tag", "t", "sync", "push", "--profile"])
        assert (args.command, args.sync_action, args.profile, args.tag) == ("sync", "push", True, "t")
        assert parser.parse_args(["search", "query", "--all"]).all is True

    def test_command_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])


class TestMemoryCommands:
    """cmd_add, cmd_search and cmd_list against a real client."""

    def test_add_search_list(self, client, capsys):
        assert cmd_add(_args(content=["remember", "the", "parser"]), client) == 0
        assert "Memory saved to project: proj" in capsys.readouterr().out

        assert cmd_search(_args(query="parser", limit=10, all=False), client) == 0
        assert "remember the parser" in capsys.readouterr().out

        assert cmd_list(_args(limit=20), client) == 0
        out = capsys.readouterr().out
        assert "○" in out
        assert "remember the parser" in out

    def test_add_metadata(self, client):
        cmd_add(_args(content=["note"]), client)
        memory = client.list_memories("proj")["memories"][0]
        assert memory["metadata"]["type"] == "manual"
        assert memory["metadata"]["project"] == "proj"

    def test_add_empty(self, client, capsys):
        assert cmd_add(_args(content=["  "]), client) == 1
        assert "No content provided" in capsys.readouterr().out

    def test_search_no_results(self, client, capsys):
        assert cmd_search(_args(query="nothing", limit=10, all=True), client) == 0
        assert "No memories matching 'nothing'" in capsys.readouterr().out

    def test_list_json(self, client, capsys):
        client.add_memory("x", "proj")
        cmd_list(_args(limit=5, json=True), client)
        assert json.loads(capsys.readouterr().out)[0]["content"] == "x"


class TestSyncAndStatusCommands:
    def test_sync_push(self, client, capsys):
        client.add_memory("x", "proj")
        assert cmd_sync(_args(sync_action="push", profile=False), client) == 0
        assert "Synced 1 memories" in capsys.readouterr().out

    def test_sync_pull_not_authenticated(self, client, fake_credentials, capsys):
        fake_credentials.token = None
        assert cmd_sync(_args(sync_action="pull", profile=False), client) == 1
        out = capsys.readouterr().out
        assert "Sync failed: Not authenticated" in out
        assert "gh auth login" in out

    @pytest.mark.parametrize("action", ["push", "pull"])
    def test_sync_json_output_is_pure_json(self, client, action, capsys):
        client.add_memory("x", "proj")
        cmd_sync(_args(sync_action=action, profile=False, json=True), client)
        assert json.loads(capsys.readouterr().out)["success"] is True

    def test_sync_pull_conflict_lists_files(self, client, fake_sync, capsys):
        fake_sync.pull_outcome = PullOutcome(
            success=False,
            error="Merge conflict in 1 file(s): memories/proj/2024-03/07-a.json",
            conflict=True,
            conflicted_paths=["memories/proj/2024-03/07-a.json"],
        )
        assert cmd_sync(_args(sync_action="pull", profile=False), client) == 1
        out = capsys.readouterr().out
        assert "merge was aborted" in out
        assert "    memories/proj/2024-03/07-a.json" in out
        assert "Resolve the conflicted files in the checkout" not in out

    def test_status(self, client, capsys):
        client.add_memory("x", "proj")
        assert cmd_status(_args(), client) == 0
        out = capsys.readouterr().out
        assert "Total memories: 1" in out
        assert "Pending sync: 1" in out
        assert "Authenticated" in out

    def test_status_json(self, client, capsys):
        cmd_status(_args(json=True), client)
        assert json.loads(capsys.readouterr().out)["pending"] == 0


class TestAuthCommand:
    def _client(self, credentials):
        client = MagicMock()
        client.credentials = credentials
        return client

    def test_login_saves_token(self, tmp_path, capsys):
        credentials = MagicMock()
        config = MemsyncConfig(data_dir=tmp_path)
        with patch("memsync.cli.commands.auth.DeviceFlow") as flow_cls:
            code = cmd_auth(_args(auth_action="login"), self._client(credentials), config)

        assert code == 0
        flow_cls.assert_called_once_with(config.client_id, web_url=config.web_url)
        credentials.device_login.assert_called_once()
        assert "Authenticated" in capsys.readouterr().out

    def test_login_timeout(self, tmp_path, capsys):
        credentials = MagicMock()
        credentials.device_login.side_effect = AuthorizationTimeoutError("too slow")
        with patch("memsync.cli.commands.auth.DeviceFlow"):
            code = cmd_auth(
                _args(auth_action="login"), self._client(credentials), MemsyncConfig(data_dir=tmp_path)
            )
        assert code == 1
        assert "Timed out" in capsys.readouterr().out

    def test_status_and_logout(self, tmp_path, capsys):
        credentials = MagicMock()
        credentials.token_source.return_value = "token_file"
        credentials.clear_token.return_value = True
        config = MemsyncConfig(data_dir=tmp_path)

        assert cmd_auth(_args(auth_action="status"), self._client(credentials), config) == 0
        assert "Authenticated via token_file" in capsys.readouterr().out
        assert cmd_auth(_args(auth_action="logout"), self._client(credentials), config) == 0
        assert "Removed" in capsys.readouterr().out


class TestMain:
    """End-to-end through main() with an isolated data directory."""

    def test_add_then_list(self, cli_env, capsys):
        assert main(["--tag", "demo", "add", "hello", "world"]) == 0
        assert main(["--tag", "demo", "--json", "list"]) == 0
        out = capsys.readouterr().out
        listed = json.loads(out[out.index("[") :])
        assert [m["content"] for m in listed] == ["hello world"]
        assert (cli_env / "memories.db").exists()

    def test_sync_without_credentials(self, cli_env, capsys):
        main(["--tag", "demo", "add", "pending item"])
        assert main(["--tag", "demo", "sync", "push"]) == 1
        assert "Not authenticated" in capsys.readouterr().out

    def test_auth_status_without_credentials(self, cli_env):
        assert main(["auth", "status"]) == 1
