"""
Tests for the dictionary and history commands.
"""

from unittest.mock import patch

import pytest
from click.testing import CliRunner

from voice_keyboard import __version__
from voice_keyboard.main import cli
from voice_keyboard.storage.store import TranscriptStore


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "cli.db"


@pytest.fixture
def run(db_path):
    runner = CliRunner(env={"COLUMNS": "200", "VOICE_KEYBOARD_TRANSCRIBER": "auto"})

    def invoke(*args):
        return runner.invoke(cli, ["--db", str(db_path), "--user", "alice", *args], obj={})

    return invoke


def test_version():
    result = CliRunner().invoke(cli, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_invalid_transcriber_env(db_path):
    runner = CliRunner(env={"VOICE_KEYBOARD_TRANSCRIBER": "siri"})
    result = runner.invoke(cli, ["--db", str(db_path), "dictionary", "list"], obj={})

    assert result.exit_code == 1
    assert "VOICE_KEYBOARD_TRANSCRIBER" in result.output


class TestDictionaryCommands:

    def test_add_and_list(self, run, db_path):
        result = run("dictionary", "add", "Kubernetes", "--spelling", "K8s")
        assert result.exit_code == 0, result.output
        assert "Added Kubernetes" in result.output

        entries = TranscriptStore(db_path).list_entries("alice")
        assert [(e.word, e.spelling) for e in entries] == [("Kubernetes", "K8s")]

        result = run("dictionary", "list")
        assert result.exit_code == 0
        assert "Kubernetes" in result.output
        assert "K8s" in result.output

    def test_list_empty(self, run):
        result = run("dictionary", "list")
        assert result.exit_code == 0
        assert "dictionary is empty" in result.output

    def test_add_blank_word(self, run):
        result = run("dictionary", "add", "  ")
        assert result.exit_code == 1
        assert "Word is required" in result.output

    def test_update(self, run, db_path):
        entry = TranscriptStore(db_path).add_entry("alice", "kubernetes")

        result = run("dictionary", "update", entry.id, "Kubernetes", "-s", "K8s")

        assert result.exit_code == 0, result.output
        updated = TranscriptStore(db_path).get_entry("alice", entry.id)
        assert updated.word == "Kubernetes"
        assert updated.spelling == "K8s"

    def test_update_missing(self, run):
        result = run("dictionary", "update", "missing-id", "word")
        assert result.exit_code == 1
        assert "not found" in result.output

    def test_remove(self, run, db_path):
        entry = TranscriptStore(db_path).add_entry("alice", "Kubernetes")

        assert run("dictionary", "remove", entry.id).exit_code == 0
        assert TranscriptStore(db_path).list_entries("alice") == []
        assert run("dictionary", "remove", entry.id).exit_code == 1

    def test_entries_are_per_user(self, run, db_path):
        TranscriptStore(db_path).add_entry("bob", "Terraform")

        result = run("dictionary", "list")

        assert "Terraform" not in result.output


class TestHistoryCommands:

    def test_list_paginates(self, run, db_path):
        store = TranscriptStore(db_path)
        for text in ("first note", "second note", "third note"):
            store.save_transcription("alice", text, 5)

        result = run("history", "list", "--page-size", "2")
        assert result.exit_code == 0, result.output
        assert "page 1 of 2" in result.output
        assert "third note" in result.output
        assert "first note" not in result.output

        result = run("history", "list", "--page", "2", "--page-size", "2")
        assert "first note" in result.output
        assert "third note" not in result.output

    def test_list_empty(self, run):
        result = run("history", "list")
        assert result.exit_code == 0
        assert "No transcriptions yet" in result.output

    def test_show(self, run, db_path):
        record = TranscriptStore(db_path).save_transcription("alice", "Ship it today.", 65)

        result = run("history", "show", record.id)

        assert result.exit_code == 0
        assert "Ship it today." in result.output
        assert "1:05" in result.output

    def test_show_missing(self, run):
        result = run("history", "show", "missing-id")
        assert result.exit_code == 1
        assert "Transcription not found" in result.output

    def test_delete(self, run, db_path):
        record = TranscriptStore(db_path).save_transcription("alice", "bye", 1)

        assert run("history", "delete", record.id).exit_code == 0
        assert TranscriptStore(db_path).count_transcriptions("alice") == 0
        assert run("history", "delete", record.id).exit_code == 1

    def test_copy(self, run, db_path):
        record = TranscriptStore(db_path).save_transcription("alice", "Copy me.", 2)

        with patch("voice_keyboard.main.pyperclip.copy") as mock_copy:
            result = run("history", "copy", record.id)

        assert result.exit_code == 0
        mock_copy.assert_called_once_with("Copy me.")

    def test_export(self, run, db_path, tmp_path):
        record = TranscriptStore(db_path).save_transcription("alice", "Export me.", 2)
        out_dir = tmp_path / "exports"

        result = run("history", "export", record.id, "--output", str(out_dir))

        assert result.exit_code == 0, result.output
        files = list(out_dir.glob("transcription-*.txt"))
        assert len(files) == 1
        assert files[0].read_text(encoding="utf-8").rstrip().endswith("Export me.")

    def test_other_users_history_hidden(self, run, db_path):
        record = TranscriptStore(db_path).save_transcription("bob", "bob's note", 1)

        assert run("history", "show", record.id).exit_code == 1
