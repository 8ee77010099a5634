"""Voice preference and utterance bookkeeping."""

from aidohealth.voice.interfaces import Voice
from aidohealth.voice.synthesis import UtteranceTracker, is_english, select_voice


class TestSelectVoice:

    def test_prefers_quality_english_voice(self):
        voices = [Voice("Alex", "en-US"), Voice("Microsoft Aria Online (Natural)", "en-US")]

        assert select_voice(voices).name == "Microsoft Aria Online (Natural)"

    def test_falls_back_to_first_english_voice(self):
        voices = [Voice("Amelie", "fr-CA"), Voice("Daniel", "en-GB"), Voice("Alex", "en-US")]

        assert select_voice(voices).name == "Daniel"

    def test_quality_voice_in_other_language_ignored(self):
        voices = [Voice("Google Deutsch", "de-DE"), Voice("Alex", "en-US")]

        assert select_voice(voices).name == "Alex"

    def test_no_english_voice(self):
        assert select_voice([Voice("Amelie", "fr-CA")]) is None
        assert select_voice([]) is None

    def test_language_tag_accepted(self):
        assert is_english(Voice("Daniel", "en-GB"), "en-US") is True
        assert is_english(Voice("Amelie", "fr-CA"), "en-US") is False


class TestUtteranceTracker:

    def test_ids_increase(self):
        tracker = UtteranceTracker()

        first = tracker.next_request("a", 1.0, 1.0, None)
        second = tracker.next_request("b", 1.2, 0.9, None)

        assert second.utterance_id == first.utterance_id + 1
        assert tracker.current_id == second.utterance_id
        assert (second.rate, second.pitch) == (1.2, 0.9)

    def test_stale_events_ignored(self):
        tracker = UtteranceTracker()
        old = tracker.next_request("old", 1.0, 1.0, None).utterance_id
        new = tracker.next_request("new", 1.0, 1.0, None).utterance_id

        assert tracker.started(old) is False
        assert tracker.speaking is False
        assert tracker.started(new) is True
        assert tracker.finished(old) is False
        assert tracker.speaking is True
        assert tracker.finished(new) is True
        assert tracker.speaking is False
        assert tracker.current_id is None

    def test_cancelled(self):
        tracker = UtteranceTracker()
        request = tracker.next_request("hi", 1.0, 1.0, None)
        tracker.started(request.utterance_id)

        tracker.cancelled()

        assert tracker.speaking is False
        assert tracker.started(request.utterance_id) is False
