"""Unit tests for the translation dispatcher."""

import os
import stat
from unittest.mock import Mock, patch

import pytest

from conftest import RecordingTranslator, scenario_csv
from scenario_sync import dispatcher
from scenario_sync.completion import CompletionIndex
from scenario_sync.dispatcher import (
    DestinationClaims,
    Failed,
    Skipped,
    SkipReason,
    Translated,
    dispatch,
    write_atomic,
)
from scenario_sync.errors import RemoteFetchError
from scenario_sync.orchestrator import RunPolicy
from scenario_sync.sources import KIND_FRAMES, CandidateUnit


def folder_unit(json_url="http://x/b.json", locator="src/b.csv"):
    return CandidateUnit(locator=locator, raw_content=scenario_csv(json_url))


class TestSkipDecisions:

    def test_index_hit_skips_without_transform_or_write(self, dest_dir, translation_config):
        translate = Mock()
        index = CompletionIndex({"http://x/a.json": "a.csv"})

        outcome = dispatch(folder_unit("http://x/a.json"), translation_config,
                           RunPolicy(dest_folder=dest_dir), index, translate)

        assert outcome == Skipped("src/b.csv", SkipReason.ALREADY_TRANSLATED)
        translate.assert_not_called()
        assert not dest_dir.exists()

    def test_index_hit_skips_even_with_overwrite(self, dest_dir, translation_config):
        translate = Mock()
        policy = RunPolicy(dest_folder=dest_dir, skip_existing=False)
        outcome = dispatch(folder_unit("http://x/a.json"), translation_config, policy,
                           CompletionIndex({"http://x/a.json": "a.csv"}), translate)
        assert outcome.reason == SkipReason.ALREADY_TRANSLATED

    def test_existing_destination_skips(self, dest_dir, translation_config):
        dest_dir.mkdir()
        (dest_dir / "b.csv").write_text("old", encoding="utf-8")
        translate = Mock()

        outcome = dispatch(folder_unit(), translation_config, RunPolicy(dest_folder=dest_dir),
                           CompletionIndex(), translate)

        assert outcome.reason == SkipReason.DESTINATION_EXISTS
        translate.assert_not_called()
        assert (dest_dir / "b.csv").read_text(encoding="utf-8") == "old"

    def test_overwrite_translates_over_existing_destination(self, dest_dir, translation_config):
        dest_dir.mkdir()
        (dest_dir / "b.csv").write_text("old", encoding="utf-8")
        translate = RecordingTranslator()

        outcome = dispatch(folder_unit(), translation_config,
                           RunPolicy(dest_folder=dest_dir, skip_existing=False),
                           CompletionIndex(), translate)

        assert isinstance(outcome, Translated)
        assert "TRANSLATED" in (dest_dir / "b.csv").read_text(encoding="utf-8")

    def test_remote_unit_skips_without_fetching(self, dest_dir, translation_config):
        dest_dir.mkdir()
        (dest_dir / "c.csv").write_text("old", encoding="utf-8")
        loader = Mock()
        unit = CandidateUnit("json/c.json", identity_key="c.json",
                             content_kind=KIND_FRAMES, loader=loader)

        outcome = dispatch(unit, translation_config, RunPolicy(dest_folder=dest_dir),
                           CompletionIndex(), Mock())

        assert outcome.reason == SkipReason.DESTINATION_EXISTS
        loader.assert_not_called()

    def test_duplicate_destination_in_one_run(self, dest_dir, translation_config):
        translate = RecordingTranslator()
        claims = DestinationClaims()
        policy = RunPolicy(dest_folder=dest_dir)

        first = dispatch(folder_unit(locator="a/b.csv"), translation_config, policy,
                         CompletionIndex(), translate, claims)
        second = dispatch(folder_unit(locator="c/b.csv"), translation_config,
                          RunPolicy(dest_folder=dest_dir, skip_existing=False),
                          CompletionIndex(), translate, claims)

        assert isinstance(first, Translated)
        assert second == Skipped("c/b.csv", SkipReason.DUPLICATE)
        assert len(translate.calls) == 1


class TestTranslation:

    def test_translates_and_writes_destination(self, dest_dir, translation_config):
        translate = RecordingTranslator()

        outcome = dispatch(folder_unit(), translation_config, RunPolicy(dest_folder=dest_dir),
                           CompletionIndex(), translate)

        assert outcome == Translated("src/b.csv", dest_dir / "b.csv")
        assert len(translate.calls) == 1
        written = (dest_dir / "b.csv").read_text(encoding="utf-8")
        assert written == translate(scenario_csv("http://x/b.json"), translation_config)

    def test_rerun_is_idempotent(self, dest_dir, translation_config):
        translate = RecordingTranslator()
        policy = RunPolicy(dest_folder=dest_dir)

        dispatch(folder_unit(), translation_config, policy, CompletionIndex(), translate)
        again = dispatch(folder_unit(), translation_config, policy, CompletionIndex(), translate)

        assert again.reason == SkipReason.DESTINATION_EXISTS
        assert len(translate.calls) == 1

    def test_remote_frames_are_converted_to_csv(self, dest_dir, translation_config):
        frames = [{"id": "1", "charcter1_name": "Lyria", "detail": "Hello"}]
        unit = CandidateUnit("json/c.json", identity_key="c.json",
                             content_kind=KIND_FRAMES, loader=lambda: frames)
        translate = RecordingTranslator()

        outcome = dispatch(unit, translation_config, RunPolicy(dest_folder=dest_dir),
                           CompletionIndex(), translate)

        assert outcome == Translated("json/c.json", dest_dir / "c.csv")
        assert translate.calls[0].startswith("id,name,text,trans\n1,Lyria,Hello,")
        assert "info,c.json" in translate.calls[0]

    def test_config_is_passed_through_unchanged(self, dest_dir, translation_config):
        translate = Mock(return_value="out")
        dispatch(folder_unit(), translation_config, RunPolicy(dest_folder=dest_dir),
                 CompletionIndex(), translate)
        assert translate.call_args[0][1] is translation_config


class TestFailures:

    def test_malformed_content_fails_unit(self, dest_dir, translation_config):
        unit = CandidateUnit("src/bad.csv", raw_content="id,name,text,trans\n1,a,b,\n")
        translate = Mock()

        outcome = dispatch(unit, translation_config, RunPolicy(dest_folder=dest_dir),
                           CompletionIndex(), translate)

        assert isinstance(outcome, Failed)
        assert outcome.error_kind == "malformed"
        assert outcome.locator == "src/bad.csv"
        translate.assert_not_called()

    def test_translation_error_fails_unit_and_writes_nothing(self, dest_dir, translation_config):
        translate = RecordingTranslator(fail_on="Hello")

        outcome = dispatch(folder_unit(), translation_config, RunPolicy(dest_folder=dest_dir),
                           CompletionIndex(), translate)

        assert outcome.error_kind == "translation"
        assert not (dest_dir / "b.csv").exists()

    def test_unexpected_transform_error_is_contained(self, dest_dir, translation_config):
        translate = Mock(side_effect=RuntimeError("boom"))

        outcome = dispatch(folder_unit(), translation_config, RunPolicy(dest_folder=dest_dir),
                           CompletionIndex(), translate)

        assert outcome == Failed("src/b.csv", "RuntimeError", "boom")

    def test_asset_fetch_error_fails_unit(self, dest_dir, translation_config):
        def loader():
            raise RemoteFetchError("HTTP error 404", url="http://a/json/c.json", http_status=404)

        unit = CandidateUnit("json/c.json", identity_key="c.json",
                             content_kind=KIND_FRAMES, loader=loader)

        outcome = dispatch(unit, translation_config, RunPolicy(dest_folder=dest_dir),
                           CompletionIndex(), Mock())

        assert outcome.error_kind == "remote"

    def test_unreadable_folder_file_fails_unit(self, dest_dir, translation_config):
        def loader():
            raise OSError("permission denied")

        unit = CandidateUnit("src/locked.csv", loader=loader)
        outcome = dispatch(unit, translation_config, RunPolicy(dest_folder=dest_dir),
                           CompletionIndex(), Mock())
        assert outcome.error_kind == "io"

    def test_write_error_fails_unit(self, dest_dir, translation_config):
        with patch("scenario_sync.dispatcher.write_atomic", side_effect=OSError("disk full")):
            outcome = dispatch(folder_unit(), translation_config, RunPolicy(dest_folder=dest_dir),
                               CompletionIndex(), RecordingTranslator())
        assert outcome.error_kind == "write"


class TestWriteAtomic:

    def test_writes_and_creates_parents(self, tmp_path):
        target = tmp_path / "a" / "b.csv"
        write_atomic(target, "hello\n")
        assert target.read_text(encoding="utf-8") == "hello\n"
        assert list(target.parent.iterdir()) == [target]

    def test_failed_write_leaves_no_file(self, tmp_path):
        target = tmp_path / "b.csv"
        with patch("scenario_sync.dispatcher.os.replace", side_effect=OSError("nope")):
            with pytest.raises(OSError):
                write_atomic(target, "hello")
        assert list(tmp_path.iterdir()) == []

    @pytest.mark.skipif(os.name != "posix", reason="POSIX permission bits")
    def test_output_mode_follows_umask(self, tmp_path, monkeypatch):
        monkeypatch.setattr(dispatcher, "FILE_MODE", 0o644)
        target = tmp_path / "b.csv"
        write_atomic(target, "x")
        assert stat.S_IMODE(os.stat(target).st_mode) == 0o644

    @pytest.mark.skipif(os.name != "posix", reason="POSIX permission bits")
    def test_default_mode_matches_plain_open(self, tmp_path):
        plain = tmp_path / "plain.csv"
        plain.write_text("x", encoding="utf-8")
        target = tmp_path / "b.csv"
        write_atomic(target, "x")
        assert stat.S_IMODE(os.stat(target).st_mode) == stat.S_IMODE(os.stat(plain).st_mode)
