"""Call event, diarization and analysis schemas."""
from typing import List, Literal, Optional, get_args
from pydantic import BaseModel


CallOutcome = Literal["converted", "no_close", "callback", "hung_up", "unknown"]
EngagementTrend = Literal["rising", "falling", "flat"]

CALL_OUTCOMES = get_args(CallOutcome)
ENGAGEMENT_TRENDS = get_args(EngagementTrend)


class CallEvent(BaseModel):
    """Canonical shape of any provider notification about one conversation."""

    external_conversation_id: str
    transcript: Optional[str] = None
    outcome: Optional[CallOutcome] = None
    main_objection: Optional[str] = None
    interest_level: Optional[str] = None
    audio_bytes: Optional[bytes] = None
    audio_url: Optional[str] = None
    status: Optional[str] = None  # provider conversation status, e.g. "done"

    def merge_fields(self) -> dict:
        """Present, non-empty call fields, ready for a coalesce-forward merge."""
        fields = {
            "transcript": self.transcript,
            "outcome": self.outcome,
            "main_objection": self.main_objection,
            "interest_level": self.interest_level,
        }
        return {k: v for k, v in fields.items() if v}


class Utterance(BaseModel):
    speaker_id: int
    start_ms: int
    duration_ms: int = 0
    text: str = ""
    emotion: Optional[str] = None


class ProspectEmotion(BaseModel):
    timestamp_seconds: int
    emotion: str
    intensity: float


class DeceptionFlag(BaseModel):
    timestamp_seconds: int
    type: str
    description: str


class KeyMoment(BaseModel):
    timestamp_seconds: int
    label: str
    description: str


class CallAnalysisOutput(BaseModel):
    """Scorer output. Empty lists are None: "no signal" rather than "nothing found"."""

    engagement_score: Optional[float] = None
    engagement_trend: Optional[EngagementTrend] = None
    prospect_emotions: Optional[List[ProspectEmotion]] = None
    agent_tone: Optional[str] = None
    deception_flags: Optional[List[DeceptionFlag]] = None
    key_moments: Optional[List[KeyMoment]] = None


class TriggerResult(BaseModel):
    triggered: bool
    calls_since_last: int
    threshold: int
    reason: Optional[Literal["below_threshold", "paused", "already_triggered"]] = None
