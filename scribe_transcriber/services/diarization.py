"""
Speaker diarization: groups provider tokens into speaker turns and renders
the labeled transcript handed to note generation.
"""

from typing import Dict, Iterable, List, Optional, Sequence

from scribe_transcriber.config import settings
from scribe_transcriber.models.transcript import Token, Transcript, TranscriptSegment

# Tokens without a speaker index (diarization disabled) are grouped under this index
UNATTRIBUTED_SPEAKER = "0"


def segment(tokens: Iterable[Token]) -> List[TranscriptSegment]:
    """
    Groups an ordered token stream into contiguous single-speaker segments.

    Tokens must arrive in temporal order; they are not re-sorted. Tokens with
    empty text are skipped and never open or extend a segment. Token texts are
    concatenated as-is, the provider includes the spacing.
    """
    segments: List[TranscriptSegment] = []
    current_speaker: Optional[str] = None
    current_text = ""
    current_start = 0.0
    current_end = 0.0

    def flush():
        if current_speaker is not None and current_text.strip():
            segments.append(
                TranscriptSegment(
                    speaker=current_speaker,
                    start_seconds=current_start,
                    end_seconds=current_end,
                    text=current_text.strip(),
                )
            )

    for token in tokens:
        if not token.text:
            continue
        speaker = token.speaker if token.speaker is not None else UNATTRIBUTED_SPEAKER
        start = token.start_ms / 1000
        end = start + token.duration_ms / 1000

        if current_speaker is not None and speaker == current_speaker:
            current_text += token.text
            current_end = end
            continue

        flush()
        current_speaker = speaker
        current_text = token.text
        current_start = start
        current_end = end

    flush()
    return segments


class SpeakerLabeler:
    """
    Maps provider speaker indices to display labels.

    Without an explicit map, the first distinct speakers in the recording get
    the role labels in order (Doctor, then Patient) and everyone after that
    gets the generic label. An explicit map pins labels to provider indices
    instead; indices it does not list get the generic label.
    """

    def __init__(
        self,
        role_labels: Optional[Sequence[str]] = None,
        label_map: Optional[Dict[str, str]] = None,
        generic_label: Optional[str] = None,
    ):
        self.role_labels = list(settings.speaker_role_labels if role_labels is None else role_labels)
        self.label_map = dict(settings.speaker_label_map if label_map is None else label_map)
        self.generic_label = generic_label or settings.speaker_generic_label

    def assign(self, segments: Sequence[TranscriptSegment]) -> Dict[str, str]:
        """Returns the label for every speaker index occurring in segments."""
        labels: Dict[str, str] = {}
        for seg in segments:
            if seg.speaker in labels:
                continue
            if self.label_map:
                labels[seg.speaker] = self.label_map.get(seg.speaker) or self._generic(seg.speaker)
            elif len(labels) < len(self.role_labels):
                labels[seg.speaker] = self.role_labels[len(labels)]
            else:
                labels[seg.speaker] = self._generic(seg.speaker)
        return labels

    def apply(self, segments: Sequence[TranscriptSegment]) -> List[TranscriptSegment]:
        labels = self.assign(segments)
        return [seg.model_copy(update={"speaker_label": labels[seg.speaker]}) for seg in segments]

    def _generic(self, speaker: str) -> str:
        return self.generic_label.format(speaker=speaker)


def render_full_text(segments: Sequence[TranscriptSegment]) -> str:
    """Renders labeled segments as "[label] text" blocks separated by a blank line."""
    return "\n\n".join(
        f"[{seg.speaker_label or seg.speaker}] {seg.text}" for seg in segments
    )


class DiarizationSegmenter:
    """Turns provider tokens into a labeled Transcript."""

    def __init__(self, labeler: Optional[SpeakerLabeler] = None):
        self.labeler = labeler or SpeakerLabeler()

    def segment(self, tokens: Iterable[Token]) -> List[TranscriptSegment]:
        return segment(tokens)

    def build_transcript(self, tokens: Sequence[Token]) -> Transcript:
        if not tokens:
            return Transcript.empty()
        labeled = self.labeler.apply(segment(tokens))
        return Transcript(
            segments=labeled,
            full_text=render_full_text(labeled),
            token_count=len(tokens),
        )
