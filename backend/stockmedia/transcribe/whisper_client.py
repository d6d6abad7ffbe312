import json
import os
import shlex
import subprocess
from pathlib import Path
from typing import Any, Dict, List, Optional

import requests

from ..config import Settings, get_settings
from ..media_utils import CommandError, safe_unlink, tmp_path

MODEL_URL = "https://huggingface.co/ggerganov/whisper.cpp/resolve/main/ggml-{name}.bin"
WHISPER_VERSION = "1.5.5"


def install_hint(whisper_dir: Path) -> str:
    return (
        f"install whisper.cpp {WHISPER_VERSION}: git clone --branch v{WHISPER_VERSION} "
        f"https://github.com/ggerganov/whisper.cpp {whisper_dir} && make -C {whisper_dir}"
    )


# Byte sizes of published ggml models; a file of any other size is a partial
# download. Models not listed are accepted as long as the file exists.
MODEL_SIZES = {
    "medium.en": 1533774781,
}


class WhisperTranscriber:
    def __init__(self, settings: Optional[Settings] = None):
        settings = settings or get_settings()
        self.binary = settings.whisper_executable
        self.model_name = settings.whisper_model
        self.model_path = settings.whisper_model_path
        self.tmp_dir = settings.tmp_dir

    def is_ready(self) -> bool:
        return self.binary.exists() and self._model_ok()

    def _model_ok(self) -> bool:
        if not self.model_path.exists():
            return False
        expected = MODEL_SIZES.get(self.model_name)
        return expected is None or self.model_path.stat().st_size == expected

    def ensure_model(self, timeout: int = 60) -> Path:
        """Download the ggml model unless a complete copy is already on disk."""
        if self._model_ok():
            return self.model_path

        if self.model_path.exists():
            print(f"[whisper] model {self.model_path} has the wrong size, redownloading", flush=True)
            safe_unlink(self.model_path)
        else:
            print(f"[whisper] model {self.model_path} not found, downloading", flush=True)

        self.model_path.parent.mkdir(parents=True, exist_ok=True)
        partial = self.model_path.with_suffix(".part")
        url = MODEL_URL.format(name=self.model_name)
        try:
            with requests.get(url, timeout=timeout, stream=True) as r:
                r.raise_for_status()
                with open(partial, "wb") as f:
                    for chunk in r.iter_content(chunk_size=1 << 20):
                        if chunk:
                            f.write(chunk)
        except requests.RequestException as e:
            safe_unlink(partial)
            raise CommandError(f"Model download failed: {type(e).__name__}: {e}")

        os.replace(partial, self.model_path)
        print(f"[whisper] model ready ({self.model_path.stat().st_size} bytes)", flush=True)
        return self.model_path

    def command(self, wav_path: Path, output_prefix: Path) -> List[str]:
        return [
            str(self.binary),
            "-m", str(self.model_path),
            "-f", str(wav_path),
            "--output-json-full",
            "--output-file", str(output_prefix),
            "--max-len", "1",
            "--split-on-word",
        ]

    def transcribe(self, wav_path: Path, timeout: int = 900) -> List[Dict[str, Any]]:
        """Run whisper.cpp on a 16 kHz mono wav and return its `transcription` items."""
        if not self.binary.exists():
            raise CommandError(f"whisper.cpp binary not found: {self.binary}; {install_hint(self.binary.parent)}")
        self.ensure_model()

        output_prefix = tmp_path("", self.tmp_dir)
        json_path = output_prefix.with_name(output_prefix.name + ".json")
        cmd = self.command(wav_path, output_prefix)
        print("[whisper]", " ".join(shlex.quote(x) for x in cmd), flush=True)

        try:
            subprocess.check_output(cmd, stderr=subprocess.STDOUT, timeout=timeout)
            with open(json_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except subprocess.CalledProcessError as e:
            tail = e.output[-800:].decode(errors="ignore") if isinstance(e.output, (bytes, bytearray)) else str(e)
            raise CommandError(f"whisper.cpp failed:\n{tail}")
        except subprocess.TimeoutExpired:
            raise CommandError("whisper.cpp timed out")
        except (OSError, json.JSONDecodeError) as e:
            raise CommandError(f"whisper.cpp output unreadable: {e}")
        finally:
            safe_unlink(json_path)

        items = data.get("transcription") if isinstance(data, dict) else None
        if not isinstance(items, list):
            raise CommandError("whisper.cpp output has no transcription list")
        print(f"[whisper] {len(items)} items", flush=True)
        return items
