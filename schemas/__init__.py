from .call import (
    CALL_OUTCOMES,
    ENGAGEMENT_TRENDS,
    CallOutcome,
    EngagementTrend,
    CallEvent,
    Utterance,
    ProspectEmotion,
    DeceptionFlag,
    KeyMoment,
    CallAnalysisOutput,
    TriggerResult,
)
from .playbook import (
    PlaybookCreate,
    ImprovementLogCreate,
    SaveTranscriptRequest,
)

__all__ = [
    "CALL_OUTCOMES", "ENGAGEMENT_TRENDS",
    "CallOutcome", "EngagementTrend", "CallEvent", "Utterance",
    "ProspectEmotion", "DeceptionFlag", "KeyMoment", "CallAnalysisOutput",
    "TriggerResult",
    "PlaybookCreate", "ImprovementLogCreate", "SaveTranscriptRequest",
]
