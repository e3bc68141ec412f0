"""
Tests for wake phrase, closing phrase and confirmation matching.
"""

import pytest


class TestPhraseMatcher:
    """Tests for PhraseMatcher."""

    def _matcher(self, **kwargs):
        from hey_llama.assistant.phrases import PhraseMatcher

        return PhraseMatcher(**kwargs)

    def test_extract_after_wake_phrase(self):
        matcher = self._matcher()
        assert matcher.extract_command("Hey Llama, turn off the lights") == "turn off the lights"
        assert matcher.extract_command("hey llama what time is it") == "what time is it"

    def test_wake_phrase_alone_has_no_command(self):
        matcher = self._matcher()
        assert matcher.extract_command("Hey Llama") is None
        assert matcher.extract_command("Hey Llama, ") is None

    def test_wake_phrase_after_filler(self):
        matcher = self._matcher()
        assert matcher.extract_command("please, llama, add milk") == "add milk"
        assert matcher.extract_command("um okay hey lama: set a timer") == "set a timer"

    def test_no_wake_phrase(self):
        matcher = self._matcher()
        assert matcher.extract_command("turn off the lights") is None
        assert not matcher.contains_wake_word("turn off the lights")
        assert matcher.contains_wake_word("HEY LLAMA stop")

    def test_custom_wake_phrase(self):
        matcher = self._matcher(wake_phrase="Computer", variants=[])
        assert matcher.variants == ("computer",)
        assert matcher.extract_command("computer, lights on") == "lights on"
        assert matcher.extract_command("hey llama lights on") is None

    def test_earliest_variant_wins(self):
        matcher = self._matcher()
        assert matcher.extract_command("Hey, Llama what's up") == "what's up"

    @pytest.mark.parametrize("text", ["Thanks!", "thank you", "ok that's all", "Goodbye.", "cancel"])
    def test_closing_phrases(self, text):
        assert self._matcher().is_closing_phrase(text)

    @pytest.mark.parametrize("text", ["", "   ", "turn off the lights", "thanksgiving plans"])
    def test_not_closing_phrases(self, text):
        assert not self._matcher().is_closing_phrase(text)

    def test_custom_closing_phrases(self):
        matcher = self._matcher(closing_phrases=["over and out"])
        assert matcher.is_closing_phrase("Over and out!")
        assert not matcher.is_closing_phrase("thanks")


class TestNormalizeText:
    def test_normalize(self):
        from hey_llama.assistant.phrases import normalize_text

        assert normalize_text("  That's   ALL, folks! ") == "thats all folks"


class TestConfirmationReply:
    """Tests for classify_confirmation_reply."""

    @pytest.mark.parametrize("text", ["Yes", "yes please", "Sure.", "okay", "do it", "go ahead"])
    def test_confirm(self, text):
        from hey_llama.assistant.phrases import ConfirmationReply, classify_confirmation_reply

        assert classify_confirmation_reply(text) == ConfirmationReply.CONFIRM

    @pytest.mark.parametrize("text", ["No", "no thanks", "nope", "don't", "do not"])
    def test_deny(self, text):
        from hey_llama.assistant.phrases import ConfirmationReply, classify_confirmation_reply

        assert classify_confirmation_reply(text) == ConfirmationReply.DENY

    @pytest.mark.parametrize("text", ["cancel", "never mind", "Nevermind!"])
    def test_cancel(self, text):
        from hey_llama.assistant.phrases import ConfirmationReply, classify_confirmation_reply

        assert classify_confirmation_reply(text) == ConfirmationReply.CANCEL

    @pytest.mark.parametrize("text", ["", "please", "maybe later", "yes but only the first one"])
    def test_unknown(self, text):
        from hey_llama.assistant.phrases import ConfirmationReply, classify_confirmation_reply

        assert classify_confirmation_reply(text) == ConfirmationReply.UNKNOWN
