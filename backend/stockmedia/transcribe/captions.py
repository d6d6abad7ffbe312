"""
Turn whisper.cpp word-level output into timed captions.

whisper.cpp (with --max-len 1 --split-on-word) emits one item per word or
word fragment:

    {"text": " Hello", "offsets": {"from": 0, "to": 420}, ...}

Fragments without a leading space continue the previous word. Words that
start less than `combine_within_ms` after the current caption started are
merged into it.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List

FPS = 30


@dataclass
class TimedCaption:
    text: str
    start_sec: float


def combine_tokens(transcription: Iterable[Dict[str, Any]], combine_within_ms: int = 200) -> List[TimedCaption]:
    captions: List[TimedCaption] = []
    text = ""
    start_ms = end_ms = 0

    for item in transcription:
        piece = item.get("text") or ""
        offsets = item.get("offsets") or {}
        item_from = int(offsets.get("from", 0))
        item_to = int(offsets.get("to", item_from))

        if piece.startswith(" ") and text and end_ms - start_ms > combine_within_ms:
            captions.append(TimedCaption(text=text, start_sec=start_ms / 1000))
            text = ""

        if not text:
            start_ms = item_from
        text = (text + piece).lstrip()
        end_ms = item_to

    if text:
        captions.append(TimedCaption(text=text, start_sec=start_ms / 1000))
    return captions


def format_captions(captions: List[TimedCaption], fps: int = FPS) -> Dict[str, Any]:
    """Millisecond captions relative to the first one, plus total duration."""
    if not captions:
        return {"captions": [], "durationInSeconds": 0, "durationInFrames": 0}

    first = captions[0].start_sec
    duration = captions[-1].start_sec + 2

    out = []
    for i, caption in enumerate(captions):
        start_ms = round((caption.start_sec - first) * 1000)
        if i + 1 < len(captions):
            end_ms = round((captions[i + 1].start_sec - first) * 1000)
        else:
            end_ms = round((caption.start_sec - first + 1) * 1000)
        out.append({"text": caption.text, "startMs": start_ms, "endMs": end_ms})

    return {
        "captions": out,
        "durationInSeconds": duration,
        "durationInFrames": math.ceil(duration * fps),
    }
