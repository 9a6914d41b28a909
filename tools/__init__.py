from .elevenlabs_tools import (
    elevenlabs_get_conversation,
    elevenlabs_get_conversation_audio,
    elevenlabs_get_signed_url,
    download_audio,
)
from .velma_tools import velma_transcribe
from .rewrite_tools import submit_improvement_context

__all__ = [
    "elevenlabs_get_conversation", "elevenlabs_get_conversation_audio",
    "elevenlabs_get_signed_url", "download_audio",
    "velma_transcribe",
    "submit_improvement_context",
]
