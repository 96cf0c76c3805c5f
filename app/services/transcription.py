import logging
from dataclasses import dataclass, field
from typing import Protocol

from app.schemas.job import AISummaryJobPayload, AISummaryJobResult, TranscriptionJobPayload, TranscriptionJobResult

logger = logging.getLogger(__name__)

MAX_WORDS_PER_SEGMENT = 15
AI_SUMMARY_UNSUPPORTED = "AI summary jobs are not supported yet"


@dataclass(slots=True)
class TranscriptWord:
    text: str
    start: float
    end: float
    type: str = "word"


@dataclass(slots=True)
class TranscriptSegment:
    start: float
    end: float
    text: str
    words: list[TranscriptWord] = field(default_factory=list)


@dataclass(slots=True)
class Transcript:
    text: str
    language: str
    language_probability: float
    segments: list[TranscriptSegment]

    @property
    def duration(self) -> float:
        return self.segments[-1].end if self.segments else 0.0

    @property
    def word_count(self) -> int:
        return sum(1 for segment in self.segments for word in segment.words if word.type == "word")


class TranscriptionProvider(Protocol):
    def transcribe(self, payload: TranscriptionJobPayload) -> Transcript: ...


def group_words_into_segments(words: list[TranscriptWord], max_words: int = MAX_WORDS_PER_SEGMENT) -> list[TranscriptSegment]:
    """Chunk timed words into segments; audio events always stand alone."""
    segments: list[TranscriptSegment] = []
    current: TranscriptSegment | None = None
    for word in words:
        if word.type == "audio_event":
            segments.append(TranscriptSegment(start=word.start, end=word.end, text=word.text, words=[word]))
            current = None
            continue
        if current is None or len(current.words) >= max_words:
            current = TranscriptSegment(start=word.start, end=word.end, text=word.text, words=[word])
            segments.append(current)
            continue
        current.text = f"{current.text} {word.text}"
        current.end = word.end
        current.words.append(word)
    return segments


class MockTranscriptionProvider:
    """Deterministic stand-in used until a speech-to-text vendor is configured."""

    SENTENCE = "This is a mock transcription. The quick brown fox jumps over the lazy dog."

    def transcribe(self, payload: TranscriptionJobPayload) -> Transcript:
        words = []
        cursor = 0.0
        for token in self.SENTENCE.split():
            words.append(TranscriptWord(text=token, start=round(cursor, 3), end=round(cursor + 0.4, 3)))
            cursor += 0.45
        logger.info("mock_transcription_used", extra={"file_id": payload.file_id})
        return Transcript(
            text=self.SENTENCE,
            language=payload.options.language or "en",
            language_probability=0.99,
            segments=group_words_into_segments(words),
        )


def run_transcription(payload: TranscriptionJobPayload, provider: TranscriptionProvider) -> TranscriptionJobResult:
    transcript = provider.transcribe(payload)
    return TranscriptionJobResult(
        success=True,
        transcription_id=payload.transcription_id,
        duration=transcript.duration,
        word_count=transcript.word_count,
    )


def run_ai_summary(payload: AISummaryJobPayload) -> AISummaryJobResult:
    return AISummaryJobResult(success=False, error=AI_SUMMARY_UNSUPPORTED)
