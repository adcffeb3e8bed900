import pytest

from scribe_transcriber.models.transcript import Token, Transcript
from scribe_transcriber.services.diarization import (
    DiarizationSegmenter,
    SpeakerLabeler,
    render_full_text,
    segment,
)

from conftest import make_tokens


class TestSegment:
    """Grouping of the token stream into speaker turns."""

    def test_empty_input(self):
        assert segment([]) == []
        assert render_full_text([]) == ""

    def test_single_speaker_is_one_segment(self):
        tokens = make_tokens(
            {"text": " The", "speaker": 1, "start_ms": 0, "duration_ms": 100},
            {"text": " pain", "speaker": 1, "start_ms": 100, "duration_ms": 200},
            {"text": " started", "speaker": 1, "start_ms": 300, "duration_ms": 250},
            {"text": " yesterday. ", "speaker": 1, "start_ms": 550, "duration_ms": 450},
        )

        segments = segment(tokens)

        assert len(segments) == 1
        assert segments[0].text == "".join(t.text for t in tokens).strip()
        assert segments[0].start_seconds == pytest.approx(0.0)
        assert segments[0].end_seconds == pytest.approx(1.0)

    def test_example_conversation(self, example_tokens):
        segments = segment(example_tokens)

        assert [(s.speaker, s.text) for s in segments] == [("1", "Hello there"), ("2", "Hi")]
        assert segments[0].start_seconds == pytest.approx(0.0)
        assert segments[0].end_seconds == pytest.approx(0.9)
        assert segments[1].start_seconds == pytest.approx(1.0)
        assert segments[1].end_seconds == pytest.approx(1.3)

    def test_segments_match_speaker_runs(self):
        tokens = make_tokens(
            {"text": "How", "speaker": 1, "start_ms": 0, "duration_ms": 10},
            {"text": " are you?", "speaker": 1, "start_ms": 10, "duration_ms": 10},
            {"text": "Fine", "speaker": 2, "start_ms": 20, "duration_ms": 10},
            {"text": "", "speaker": 1, "start_ms": 30, "duration_ms": 10},
            {"text": ", thanks.", "speaker": 2, "start_ms": 40, "duration_ms": 10},
            {"text": "Good", "speaker": 1, "start_ms": 50, "duration_ms": 10},
            {"text": "", "speaker": 2, "start_ms": 60, "duration_ms": 10},
            {"text": " to hear.", "speaker": 1, "start_ms": 70, "duration_ms": 10},
        )

        segments = segment(tokens)

        assert [(s.speaker, s.text) for s in segments] == [
            ("1", "How are you?"),
            ("2", "Fine, thanks."),
            ("1", "Good to hear."),
        ]

    def test_empty_tokens_never_open_a_segment(self):
        tokens = make_tokens(
            {"text": "", "speaker": 3, "start_ms": 0, "duration_ms": 100},
            {"text": None, "speaker": 4, "start_ms": 100, "duration_ms": 100},
            {"text": "Hi", "speaker": 1, "start_ms": 200, "duration_ms": 100},
        )

        segments = segment(tokens)

        assert len(segments) == 1
        assert segments[0].speaker == "1"
        assert segments[0].start_seconds == pytest.approx(0.2)

    def test_whitespace_only_turn_is_dropped(self):
        tokens = make_tokens(
            {"text": "Okay.", "speaker": 1, "start_ms": 0, "duration_ms": 100},
            {"text": " ", "speaker": 2, "start_ms": 100, "duration_ms": 50},
            {"text": "Next", "speaker": 1, "start_ms": 150, "duration_ms": 100},
        )

        assert [s.text for s in segment(tokens)] == ["Okay.", "Next"]

    def test_missing_speaker_is_grouped_as_unattributed(self):
        tokens = make_tokens(
            {"text": "No", "start_ms": 0, "duration_ms": 100},
            {"text": " diarization", "start_ms": 100, "duration_ms": 100},
        )

        segments = segment(tokens)

        assert len(segments) == 1
        assert segments[0].speaker == "0"


class TestSpeakerLabeler:

    def test_first_two_speakers_get_roles(self, example_tokens):
        labeled = SpeakerLabeler(role_labels=["Doctor", "Patient"], label_map={}).apply(segment(example_tokens))

        assert [s.speaker_label for s in labeled] == ["Doctor", "Patient"]

    def test_roles_follow_order_of_appearance(self):
        tokens = make_tokens(
            {"text": "I", "speaker": 2, "start_ms": 0, "duration_ms": 10},
            {"text": "You", "speaker": 1, "start_ms": 10, "duration_ms": 10},
        )

        labeled = SpeakerLabeler(role_labels=["Doctor", "Patient"], label_map={}).apply(segment(tokens))

        assert [(s.speaker, s.speaker_label) for s in labeled] == [("2", "Doctor"), ("1", "Patient")]

    def test_additional_speakers_get_generic_label(self):
        tokens = make_tokens(
            {"text": "A", "speaker": 1, "start_ms": 0, "duration_ms": 10},
            {"text": "B", "speaker": 2, "start_ms": 10, "duration_ms": 10},
            {"text": "C", "speaker": 3, "start_ms": 20, "duration_ms": 10},
            {"text": "D", "speaker": 1, "start_ms": 30, "duration_ms": 10},
        )

        labeled = SpeakerLabeler(
            role_labels=["Doctor", "Patient"], label_map={}, generic_label="Speaker {speaker}"
        ).apply(segment(tokens))

        assert [s.speaker_label for s in labeled] == ["Doctor", "Patient", "Speaker 3", "Doctor"]

    def test_explicit_map_pins_labels_to_indices(self):
        tokens = make_tokens(
            {"text": "A", "speaker": 1, "start_ms": 0, "duration_ms": 10},
            {"text": "B", "speaker": 0, "start_ms": 10, "duration_ms": 10},
            {"text": "C", "speaker": 2, "start_ms": 20, "duration_ms": 10},
        )

        labeler = SpeakerLabeler(label_map={"0": "Doctor", "1": "Patient"}, generic_label="Speaker {speaker}")

        assert [s.speaker_label for s in labeler.apply(segment(tokens))] == ["Patient", "Doctor", "Speaker 2"]


class TestDiarizationSegmenter:

    def test_build_transcript(self, example_tokens):
        segmenter = DiarizationSegmenter(SpeakerLabeler(role_labels=["Doctor", "Patient"], label_map={}))

        transcript = segmenter.build_transcript(example_tokens)

        assert transcript.full_text == "[Doctor] Hello there\n\n[Patient] Hi"
        assert transcript.token_count == 3
        assert len(transcript.segments) == 2

    def test_build_transcript_without_tokens(self):
        assert DiarizationSegmenter().build_transcript([]) == Transcript.empty()

    def test_token_accepts_integer_speaker(self):
        assert Token.model_validate({"text": "x", "speaker": 2}).speaker == "2"
