"""Tests for the command-line interface."""

import json
from pathlib import Path

import pytest

from conftest import FakeEncoder
from waveframe import cli


class TestParser:
    def test_render_defaults(self):
        args = cli.build_parser().parse_args(["render", "song.wav"])
        assert args.style == "Equalizer"
        assert args.preset == "Synthwave"
        assert args.quality == "medium"
        assert not args.transparent
        assert not args.realtime

    def test_default_output_path(self):
        assert cli.default_output_path(Path("music/track.mp3")) == Path("music/track-waveform.webm")

    def test_config_file_overrides_flags(self, tmp_path):
        path = tmp_path / "settings.json"
        path.write_text(json.dumps({"style": "Circle", "colorPreset": "Sky", "quality": "high"}))
        args = cli.build_parser().parse_args(
            ["render", "song.wav", "-s", "Line", "-p", "Ocean", "-c", str(path)]
        )
        config, quality = cli._resolve_settings(args)
        assert config.style.value == "Circle"
        assert config.color_preset.name == "Sky"
        assert quality == "high"

    def test_string_transparency_in_config_file(self, tmp_path):
        path = tmp_path / "settings.json"
        path.write_text(json.dumps({"transparent": "false"}))
        args = cli.build_parser().parse_args(["render", "song.wav", "-c", str(path)])
        with pytest.raises(ValueError):
            cli._resolve_settings(args)

    def test_bad_quality_in_config_file(self, tmp_path):
        path = tmp_path / "settings.json"
        path.write_text(json.dumps({"quality": "ultra"}))
        args = cli.build_parser().parse_args(["render", "song.wav", "-c", str(path)])
        with pytest.raises(ValueError):
            cli._resolve_settings(args)


class TestProgressBar:
    def test_non_tty_prints_lines(self, capsys):
        for i in range(21):
            cli._progress_bar(i, 20)
        out = capsys.readouterr().out
        assert "100.0%  frame 20/20" in out


class TestCommands:
    def test_presets(self, capsys):
        assert cli.main(["presets"]) == 0
        out = capsys.readouterr().out
        assert "Reflected Line" in out
        assert "Fuchsia" in out

    def test_missing_audio(self, tmp_path, capsys):
        assert cli.main(["render", str(tmp_path / "nope.wav")]) == 1
        assert "not found" in capsys.readouterr().err

    def test_unknown_style(self, temp_audio_file, capsys):
        assert cli.main(["render", str(temp_audio_file), "-s", "Spiral"]) == 1
        assert "Unknown render style" in capsys.readouterr().err

    def test_render_writes_artifact(self, temp_audio_file, tmp_path, monkeypatch, capsys):
        monkeypatch.setattr(cli, "FFmpegEncoder", lambda **kwargs: FakeEncoder())
        output = tmp_path / "out.webm"

        assert cli.main(["render", str(temp_audio_file), "-o", str(output), "-s", "Bottom Bars"]) == 0

        assert output.read_bytes().startswith(b"\x1a\x45\xdf\xa3")
        out = capsys.readouterr().out
        assert "Rendering 60 frames" in out
        assert "Done!" in out

    def test_render_failure_reports_reason(self, temp_audio_file, tmp_path, monkeypatch, capsys):
        monkeypatch.setattr(cli, "FFmpegEncoder", lambda **kwargs: FakeEncoder(supports_alpha=False))
        output = tmp_path / "out.webm"

        assert cli.main(["render", str(temp_audio_file), "-o", str(output), "--transparent"]) == 1

        assert not output.exists()
        assert "unsupported" in capsys.readouterr().err
