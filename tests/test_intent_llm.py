"""LLM intent extractor with a stubbed OpenAI client."""

import json
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from aidohealth.ai.intent_llm import LLMIntentExtractor, build_intent_extractor
from aidohealth.voice.config import IntentExtractorKind, VoiceConfig
from aidohealth.voice.intents import RegexIntentExtractor


def fake_client(content=None, error=None):
    client = MagicMock()
    if error is not None:
        client.chat.completions.create.side_effect = error
    else:
        message = SimpleNamespace(content=content)
        client.chat.completions.create.return_value = SimpleNamespace(choices=[SimpleNamespace(message=message)])
    return client


class TestLLMIntentExtractor:

    def test_email_from_model(self):
        client = fake_client(json.dumps({"email": "jane@example.com"}))
        extractor = LLMIntentExtractor(client=client, model="gpt-4o-mini")

        assert extractor.login_email("login with jane at example dot com") == "jane@example.com"
        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "gpt-4o-mini"
        assert kwargs["response_format"] == {"type": "json_object"}
        assert kwargs["messages"][-1]["content"] == "login with jane at example dot com"

    def test_api_failure_falls_back_to_regex(self):
        extractor = LLMIntentExtractor(client=fake_client(error=RuntimeError("rate limited")))

        assert extractor.login_email("login with drsmith") == "drsmith"

    def test_unparseable_reply_falls_back_to_regex(self):
        extractor = LLMIntentExtractor(client=fake_client("not json"))

        assert extractor.login_email("login with drsmith") == "drsmith"

    def test_null_email_falls_back_to_regex(self):
        extractor = LLMIntentExtractor(client=fake_client(json.dumps({"email": None})))

        assert extractor.login_email("login with") is None

    def test_password_never_sent_to_model(self):
        client = fake_client(json.dumps({"email": "x"}))
        extractor = LLMIntentExtractor(client=client)

        assert extractor.password("my password is hunter2") == "hunter2"
        client.chat.completions.create.assert_not_called()

    @pytest.mark.asyncio
    async def test_prepared_email_used_by_dispatch(self):
        client = fake_client(json.dumps({"email": "jane@example.com"}))
        extractor = LLMIntentExtractor(client=client)

        await extractor.prepare("login with jane at example dot com")

        assert extractor.login_email("login with jane at example dot com") == "jane@example.com"
        assert client.chat.completions.create.call_count == 1

    @pytest.mark.asyncio
    async def test_prepare_skips_other_segments(self):
        client = fake_client(json.dumps({"email": "x"}))
        extractor = LLMIntentExtractor(client=client)

        await extractor.prepare("open profile")

        client.chat.completions.create.assert_not_called()

    @pytest.mark.asyncio
    async def test_prepared_answer_only_for_same_text(self):
        client = fake_client(json.dumps({"email": "jane@example.com"}))
        extractor = LLMIntentExtractor(client=client)
        await extractor.prepare("login with jane at example dot com")

        extractor.login_email("login with someone else")

        assert client.chat.completions.create.call_count == 2


class TestBuildIntentExtractor:

    def test_regex_by_default(self):
        assert isinstance(build_intent_extractor(VoiceConfig()), RegexIntentExtractor)

    def test_llm_without_key_falls_back(self):
        config = VoiceConfig(intent_extractor=IntentExtractorKind.LLM, openai_api_key="")

        assert isinstance(build_intent_extractor(config), RegexIntentExtractor)

    def test_llm_with_key(self):
        config = VoiceConfig(intent_extractor=IntentExtractorKind.LLM, openai_api_key="sk-test",
                             openai_model="gpt-4o")

        extractor = build_intent_extractor(config)

        assert isinstance(extractor, LLMIntentExtractor)
        assert extractor.model == "gpt-4o"
