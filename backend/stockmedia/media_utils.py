# backend/stockmedia/media_utils.py
import shlex, subprocess, uuid
from pathlib import Path
from typing import Optional

import requests

from .config import get_settings


class CommandError(RuntimeError):
    pass


def tmp_path(suffix: str, tmp_dir: Optional[Path] = None) -> Path:
    """Unique path under TMP_DIR; the directory is created on demand."""
    tmp_dir = tmp_dir or get_settings().tmp_dir
    tmp_dir.mkdir(parents=True, exist_ok=True)
    return tmp_dir / f"{uuid.uuid4().hex}{suffix}"


def download_audio(audio_url: str, output_path: Optional[Path] = None, timeout: int = 60) -> Path:
    """Stream `audio_url` to a local file."""
    output_path = output_path or tmp_path(".mp3")
    print(f"[download] {audio_url[:140]} -> {output_path}", flush=True)
    try:
        with requests.get(audio_url, timeout=timeout, stream=True) as r:
            r.raise_for_status()
            with open(output_path, "wb") as f:
                for chunk in r.iter_content(chunk_size=8192):
                    if chunk:
                        f.write(chunk)
    except (requests.RequestException, OSError) as e:
        safe_unlink(output_path)
        raise CommandError(f"Audio download failed: {type(e).__name__}: {e}")
    return output_path


def convert_to_wav(src: Path, dst: Optional[Path] = None, timeout: int = 300) -> Path:
    """16 kHz mono wav, the input format whisper.cpp expects."""
    dst = dst or src.with_suffix(".wav")
    cmd = [
        get_settings().ffmpeg_bin,
        "-y", "-nostdin", "-loglevel", "error",
        "-i", str(src),
        "-ar", "16000",
        "-ac", "1",
        str(dst),
    ]
    print("[ffmpeg]", " ".join(shlex.quote(x) for x in cmd), flush=True)
    try:
        subprocess.check_output(cmd, stderr=subprocess.STDOUT, timeout=timeout)
    except subprocess.CalledProcessError as e:
        tail = e.output[-800:].decode(errors="ignore") if isinstance(e.output, (bytes, bytearray)) else str(e)
        safe_unlink(dst)
        raise CommandError(f"ffmpeg conversion failed:\n{tail}")
    except subprocess.TimeoutExpired:
        safe_unlink(dst)
        raise CommandError("ffmpeg conversion timed out")
    except FileNotFoundError:
        safe_unlink(dst)
        raise CommandError(f"ffmpeg not found: {cmd[0]}")

    if not dst.exists() or dst.stat().st_size == 0:
        safe_unlink(dst)
        raise CommandError("ffmpeg produced no output")
    return dst


def safe_unlink(p: Optional[Path]) -> None:
    if p is None:
        return
    try:
        p.unlink(missing_ok=True)
    except OSError as e:
        print(f"[cleanup][WARN] could not delete {p}: {e}", flush=True)
