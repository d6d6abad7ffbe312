import json
import subprocess
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from stockmedia import media_utils, routes_transcription
from stockmedia.config import Settings
from stockmedia.main import app
from stockmedia.media_utils import CommandError, convert_to_wav
from stockmedia.transcribe import WhisperTranscriber, combine_tokens, format_captions
from stockmedia.transcribe import whisper_client
from stockmedia.transcribe.captions import TimedCaption


def word(text, start, end):
    return {"text": text, "offsets": {"from": start, "to": end}}


# ---------- captions ----------

def test_words_far_apart_become_separate_captions():
    items = [word(" Hello", 1000, 1400), word(" world", 1400, 1900)]
    captions = combine_tokens(items, combine_within_ms=200)
    assert [(c.text, c.start_sec) for c in captions] == [("Hello", 1.0), ("world", 1.4)]


def test_short_words_and_fragments_are_merged():
    items = [word(" a", 0, 100), word(" cat", 100, 450), word("'s", 450, 500), word(" tail", 500, 900)]
    captions = combine_tokens(items, combine_within_ms=200)
    assert [c.text for c in captions] == ["a cat's", "tail"]
    assert captions[1].start_sec == 0.5


def test_format_is_relative_to_first_caption():
    captions = [TimedCaption("one", 1.0), TimedCaption("two", 1.5), TimedCaption("three", 3.0)]

    result = format_captions(captions)

    assert result["captions"] == [
        {"text": "one", "startMs": 0, "endMs": 500},
        {"text": "two", "startMs": 500, "endMs": 2000},
        {"text": "three", "startMs": 2000, "endMs": 3000},
    ]
    assert result["durationInSeconds"] == 5.0
    assert result["durationInFrames"] == 150


def test_format_empty_transcription():
    assert format_captions([]) == {"captions": [], "durationInSeconds": 0, "durationInFrames": 0}


# ---------- ffmpeg ----------

def test_convert_to_wav_builds_16k_mono_command(tmp_path, monkeypatch):
    src = tmp_path / "in.mp3"
    src.write_bytes(b"id3")
    seen = {}

    def fake_check_output(cmd, **kwargs):
        seen["cmd"] = cmd
        Path(cmd[-1]).write_bytes(b"RIFF")
        return b""

    monkeypatch.setattr(media_utils.subprocess, "check_output", fake_check_output)

    out = convert_to_wav(src)

    assert out == tmp_path / "in.wav"
    assert seen["cmd"][seen["cmd"].index("-ar") + 1] == "16000"
    assert seen["cmd"][seen["cmd"].index("-ac") + 1] == "1"


def test_convert_to_wav_failure_raises_command_error(tmp_path, monkeypatch):
    def fake_check_output(cmd, **kwargs):
        raise subprocess.CalledProcessError(1, cmd, output=b"Invalid data found when processing input")

    monkeypatch.setattr(media_utils.subprocess, "check_output", fake_check_output)

    with pytest.raises(CommandError, match="Invalid data"):
        convert_to_wav(tmp_path / "in.mp3")


def test_convert_to_wav_failure_removes_partial_output(tmp_path, monkeypatch):
    def write_then_fail(cmd, **kwargs):
        Path(cmd[-1]).write_bytes(b"RIFF partial")
        raise subprocess.TimeoutExpired(cmd, 300)

    monkeypatch.setattr(media_utils.subprocess, "check_output", write_then_fail)

    with pytest.raises(CommandError, match="timed out"):
        convert_to_wav(tmp_path / "in.mp3")
    assert not (tmp_path / "in.wav").exists()


def test_download_failure_raises_command_error(tmp_path, monkeypatch):
    def refuse(*args, **kwargs):
        raise media_utils.requests.ConnectionError("connection refused")

    monkeypatch.setattr(media_utils.requests, "get", refuse)
    target = tmp_path / "a.mp3"

    with pytest.raises(CommandError, match="ConnectionError"):
        media_utils.download_audio("https://cdn/voice.mp3", target)
    assert not target.exists()


class DiskFullResponse:
    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def raise_for_status(self):
        pass

    def iter_content(self, chunk_size):
        yield b"id3"
        raise OSError(28, "No space left on device")


def test_download_write_error_removes_partial_file(tmp_path, monkeypatch):
    monkeypatch.setattr(media_utils.requests, "get", lambda *a, **kw: DiskFullResponse())
    target = tmp_path / "a.mp3"

    with pytest.raises(CommandError, match="No space left"):
        media_utils.download_audio("https://cdn/voice.mp3", target)
    assert not target.exists()


# ---------- whisper.cpp ----------

@pytest.fixture
def whisper(tmp_path):
    (tmp_path / "main").write_bytes(b"")
    (tmp_path / "models").mkdir()
    (tmp_path / "models" / "ggml-tiny.en.bin").write_bytes(b"ggml")
    settings = Settings(whisper_dir=tmp_path, whisper_model="tiny.en", tmp_dir=tmp_path / "tmp")
    return WhisperTranscriber(settings)


def test_whisper_reads_json_output_and_cleans_it_up(whisper, tmp_path, monkeypatch):
    items = [word(" Hello", 0, 400)]
    written = {}

    def fake_check_output(cmd, **kwargs):
        prefix = cmd[cmd.index("--output-file") + 1]
        written["path"] = Path(prefix + ".json")
        written["path"].write_text(json.dumps({"transcription": items}))
        return b""

    monkeypatch.setattr(whisper_client.subprocess, "check_output", fake_check_output)

    assert whisper.transcribe(tmp_path / "in.wav") == items
    assert not written["path"].exists()


def test_whisper_command_requests_word_level_json(whisper, tmp_path):
    cmd = whisper.command(tmp_path / "in.wav", tmp_path / "out")
    assert "--output-json-full" in cmd
    assert cmd[cmd.index("--max-len") + 1] == "1"
    assert cmd[cmd.index("-m") + 1].endswith("ggml-tiny.en.bin")


def test_whisper_missing_binary(tmp_path):
    transcriber = WhisperTranscriber(Settings(whisper_dir=tmp_path / "nowhere"))
    assert not transcriber.is_ready()
    with pytest.raises(CommandError, match="install whisper.cpp 1.5.5"):
        transcriber.transcribe(tmp_path / "in.wav")


# ---------- endpoint ----------

class FakeTranscriber:
    def __init__(self, items=None, error=None):
        self.items = items or []
        self.error = error

    def transcribe(self, wav):
        if self.error:
            raise self.error
        return self.items


@pytest.fixture
def pipeline(tmp_path, monkeypatch):
    files = {"audio": tmp_path / "a.mp3", "wav": tmp_path / "a.wav"}

    def fake_download(url):
        files["audio"].write_bytes(b"id3")
        return files["audio"]

    def fake_convert(src):
        files["wav"].write_bytes(b"RIFF")
        return files["wav"]

    monkeypatch.setattr(routes_transcription, "download_audio", fake_download)
    monkeypatch.setattr(routes_transcription, "convert_to_wav", fake_convert)
    yield files
    app.dependency_overrides.clear()


def test_transcription_endpoint_returns_captions_and_cleans_up(pipeline):
    items = [word(" Hello", 0, 400), word(" there", 400, 800)]
    app.dependency_overrides[routes_transcription.get_transcriber] = lambda: FakeTranscriber(items)

    res = TestClient(app).post("/transcription", json={"audioUrl": "https://cdn/voice.mp3"})

    assert res.status_code == 200
    body = res.json()
    assert [c["text"] for c in body["captions"]] == ["Hello", "there"]
    assert body["captions"][0] == {"text": "Hello", "startMs": 0, "endMs": 400}
    assert body["durationInSeconds"] == pytest.approx(2.4)
    assert not pipeline["audio"].exists()
    assert not pipeline["wav"].exists()


def test_transcription_failure_is_bad_gateway(pipeline):
    failing = FakeTranscriber(error=CommandError("whisper.cpp failed"))
    app.dependency_overrides[routes_transcription.get_transcriber] = lambda: failing

    res = TestClient(app).post("/transcription", json={"audioUrl": "https://cdn/voice.mp3"})

    assert res.status_code == 502
    assert not pipeline["audio"].exists()


def test_failed_conversion_leaves_no_temp_files(tmp_path, monkeypatch):
    audio = tmp_path / "a.mp3"

    def fake_download(url):
        audio.write_bytes(b"id3")
        return audio

    def write_then_fail(cmd, **kwargs):
        Path(cmd[-1]).write_bytes(b"RIFF partial")
        raise subprocess.CalledProcessError(1, cmd, output=b"Invalid data found when processing input")

    monkeypatch.setattr(routes_transcription, "download_audio", fake_download)
    monkeypatch.setattr(media_utils.subprocess, "check_output", write_then_fail)
    app.dependency_overrides[routes_transcription.get_transcriber] = lambda: FakeTranscriber()
    try:
        res = TestClient(app).post("/transcription", json={"audioUrl": "https://cdn/voice.mp3"})
    finally:
        app.dependency_overrides.clear()

    assert res.status_code == 502
    assert list(tmp_path.iterdir()) == []
