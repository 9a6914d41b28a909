"""Emotion and engagement scoring over diarized, emotion-tagged utterances.

Input is the utterance list returned by the diarization provider; output is
the CallAnalysisOutput stored against the call. Pure: no I/O, and empty or
untagged input yields null fields rather than an error.

Speaker roles come from a RoleResolver. The default resolver assumes the
agent is the speaker with the lowest numeric id, which is a convention of
the diarization provider rather than a verified role label.
"""
import math
from collections import Counter
from typing import Iterable, Optional, Protocol, Sequence

from schemas.call import (
    CallAnalysisOutput,
    DeceptionFlag,
    KeyMoment,
    ProspectEmotion,
    Utterance,
)

NEUTRAL_EMOTION = "Neutral"

ENGAGED_EMOTIONS = frozenset({
    "Happy",
    "Amused",
    "Excited",
    "Proud",
    "Affectionate",
    "Interested",
    "Hopeful",
    "Confident",
    "Relieved",
})

DISENGAGED_EMOTIONS = frozenset({
    "Bored",
    "Tired",
    "Disgusted",
    "Disappointed",
    "Contemptuous",
})

KEY_MOMENT_EMOTIONS = frozenset({
    "Frustrated",
    "Angry",
    "Interested",
    "Excited",
    "Hopeful",
    "Confused",
    "Anxious",
    "Stressed",
    "Afraid",
    "Concerned",
    "Surprised",
})

# Timeline intensity tiers.
STRONG_EMOTIONS = KEY_MOMENT_EMOTIONS
STRONG_INTENSITY = 0.8
POLAR_INTENSITY = 0.6
DEFAULT_INTENSITY = 0.5

TREND_MIN_UTTERANCES = 4
TREND_DELTA = 0.15

DECEPTION_TEXT_CHARS = 80
KEY_MOMENT_TEXT_CHARS = 120


class RoleResolver(Protocol):
    def agent_speaker(self, utterances: Sequence[Utterance]) -> Optional[int]:
        """Return the agent's speaker id, or None when every speaker is a prospect."""
        ...


class LowestSpeakerIdResolver:
    """Agent = lowest speaker id when at least two speakers were detected."""

    def agent_speaker(self, utterances: Sequence[Utterance]) -> Optional[int]:
        speakers = {u.speaker_id for u in utterances}
        if len(speakers) < 2:
            return None
        return min(speakers)


def _timestamp_seconds(start_ms: int) -> int:
    # Half-up: 2500 ms -> 3 s.
    return int(math.floor(start_ms / 1000 + 0.5))


def _net_engagement(utterances: Sequence[Utterance]) -> float:
    """(engaged - disengaged) / total, in [-1, 1]."""
    engaged = sum(1 for u in utterances if u.emotion in ENGAGED_EMOTIONS)
    disengaged = sum(1 for u in utterances if u.emotion in DISENGAGED_EMOTIONS)
    return (engaged - disengaged) / len(utterances)


def engagement_score(tagged: Sequence[Utterance]) -> Optional[float]:
    if not tagged:
        return None
    return max(0.0, min(1.0, (_net_engagement(tagged) + 1) / 2))


def classify_trend(delta: float) -> str:
    if delta > TREND_DELTA:
        return "rising"
    if delta < -TREND_DELTA:
        return "falling"
    return "flat"


def engagement_trend(tagged: Sequence[Utterance]) -> Optional[str]:
    if len(tagged) < TREND_MIN_UTTERANCES:
        return None
    half = len(tagged) // 2
    delta = _net_engagement(tagged[half:]) - _net_engagement(tagged[:half])
    return classify_trend(delta)


def emotion_intensity(emotion: str) -> float:
    if emotion in STRONG_EMOTIONS:
        return STRONG_INTENSITY
    if emotion in ENGAGED_EMOTIONS or emotion in DISENGAGED_EMOTIONS:
        return POLAR_INTENSITY
    return DEFAULT_INTENSITY


def dominant_emotion(utterances: Iterable[Utterance]) -> Optional[str]:
    """Most frequent emotion label; ties go to the label seen first."""
    counts = Counter(u.emotion for u in utterances if u.emotion)
    if not counts:
        return None
    return counts.most_common(1)[0][0]


def score_utterances(
    utterances: Sequence[Utterance],
    resolver: Optional[RoleResolver] = None,
) -> CallAnalysisOutput:
    resolver = resolver or LowestSpeakerIdResolver()
    agent = resolver.agent_speaker(utterances)

    if agent is None:
        prospect = list(utterances)
        agent_utterances: list[Utterance] = []
    else:
        prospect = [u for u in utterances if u.speaker_id != agent]
        agent_utterances = [u for u in utterances if u.speaker_id == agent]

    tagged = [u for u in prospect if u.emotion]

    timeline = [
        ProspectEmotion(
            timestamp_seconds=_timestamp_seconds(u.start_ms),
            emotion=u.emotion,
            intensity=emotion_intensity(u.emotion),
        )
        for u in tagged
        if u.emotion != NEUTRAL_EMOTION
    ]

    flags = [
        DeceptionFlag(
            timestamp_seconds=_timestamp_seconds(u.start_ms),
            type="disengaged_tone",
            description=(
                f'Prospect sounds {u.emotion.lower()}: '
                f'"{u.text[:DECEPTION_TEXT_CHARS]}"'
            ),
        )
        for u in tagged
        if u.emotion in DISENGAGED_EMOTIONS
    ]

    moments = [
        KeyMoment(
            timestamp_seconds=_timestamp_seconds(u.start_ms),
            label=u.emotion,
            description=f'"{u.text[:KEY_MOMENT_TEXT_CHARS]}"',
        )
        for u in tagged
        if u.emotion in KEY_MOMENT_EMOTIONS
    ]

    return CallAnalysisOutput(
        engagement_score=engagement_score(tagged),
        engagement_trend=engagement_trend(tagged),
        prospect_emotions=timeline or None,
        agent_tone=dominant_emotion(agent_utterances),
        deception_flags=flags or None,
        key_moments=moments or None,
    )
