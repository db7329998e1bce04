from typing import Iterable, Optional

from src.constants.config import TRANSCRIPTION_SEPARATOR


def aggregate_transcription(texts: Iterable[Optional[str]]) -> str:
    """Join page texts (already in page order), skipping empty ones.

    Pure: the same page texts always give the same transcription, so
    re-running the text step after a retry is safe.
    """
    return TRANSCRIPTION_SEPARATOR.join(text for text in texts if text)
