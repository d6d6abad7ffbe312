from .captions import combine_tokens, format_captions
from .whisper_client import WhisperTranscriber

__all__ = ["WhisperTranscriber", "combine_tokens", "format_captions"]
