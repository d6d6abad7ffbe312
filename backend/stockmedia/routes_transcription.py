from fastapi import APIRouter, Depends, HTTPException

from .media_utils import CommandError, convert_to_wav, download_audio, safe_unlink
from .schemas import TranscribeRequest, TranscribeResponse
from .transcribe import WhisperTranscriber, combine_tokens, format_captions

router = APIRouter(prefix="/transcription", tags=["transcription"])

COMBINE_WITHIN_MS = 200


def get_transcriber() -> WhisperTranscriber:
    return WhisperTranscriber()


@router.post("", response_model=TranscribeResponse)
def transcribe_audio(payload: TranscribeRequest, transcriber: WhisperTranscriber = Depends(get_transcriber)):
    """
    Download -> ffmpeg (16 kHz mono wav) -> whisper.cpp -> timed captions.
    """
    print(f"[transcribe] start url={payload.audioUrl[:140]}", flush=True)

    audio = wav = None
    try:
        audio = download_audio(payload.audioUrl)
        wav = convert_to_wav(audio)
        items = transcriber.transcribe(wav)
    except CommandError as e:
        print(f"[transcribe][ERROR] {e}", flush=True)
        raise HTTPException(502, f"Transcription error: {e}")
    finally:
        safe_unlink(audio)
        safe_unlink(wav)
        print("[transcribe] temp files cleaned", flush=True)

    captions = combine_tokens(items, combine_within_ms=COMBINE_WITHIN_MS)
    result = format_captions(captions)
    print(f"[transcribe] {len(result['captions'])} captions, {result['durationInSeconds']}s", flush=True)
    return result
