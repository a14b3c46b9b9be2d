"""
Result parsing and responder request assembly.
"""
import pytest

from heartmend.session import (
    ChatMessage, Sender, AnxietyLevel, build_responder_request, normalize_anxiety,
    parse_recommendation, parse_adaptation, parse_reply
)
from heartmend.session.testing import make_test_profile


class TestParsers:

    def test_recommendation(self):
        result = parse_recommendation({
            "identifiedTherapeuticNeeds": ["Self-esteem", " Trust "],
            "recommendations": "Journaling and gradual social re-engagement.",
        })
        assert result.identified_therapeutic_needs == ["Self-esteem", "Trust"]
        assert result.recommendations.startswith("Journaling")

    def test_recommendation_needs_default_to_empty(self):
        assert parse_recommendation({"recommendations": "Rest."}).identified_therapeutic_needs == []

    @pytest.mark.parametrize("data", [
        {"identifiedTherapeuticNeeds": []},
        {"recommendations": "  "},
        {"recommendations": "ok", "identifiedTherapeuticNeeds": "CBT"},
        {"recommendations": "ok", "identifiedTherapeuticNeeds": [1, 2]},
    ])
    def test_recommendation_rejects_malformed(self, data):
        with pytest.raises(ValueError):
            parse_recommendation(data)

    def test_adaptation(self):
        assert parse_adaptation({"adaptedLanguage": "Warm and direct."}).adapted_language == "Warm and direct."
        with pytest.raises(ValueError):
            parse_adaptation({"style": "Warm"})

    def test_reply(self):
        reply = parse_reply({
            "response": "That sounds painful.",
            "updatedRapportLevel": 2,
            "detectedSentiment": "sad",
        })
        assert reply.response == "That sounds painful."
        assert reply.updated_rapport_level == 2
        assert reply.detected_sentiment == "sad"

    def test_reply_rapport_is_not_clamped(self):
        assert parse_reply({"response": "Hi", "updatedRapportLevel": 12}).updated_rapport_level == 12
        assert parse_reply({"response": "Hi", "updatedRapportLevel": 3.0}).updated_rapport_level == 3

    def test_reply_blank_sentiment_is_none(self):
        assert parse_reply({"response": "Hi", "updatedRapportLevel": 0, "detectedSentiment": " "}) \
            .detected_sentiment is None

    @pytest.mark.parametrize("rapport", [None, "3", True, 2.5])
    def test_reply_rejects_bad_rapport(self, rapport):
        with pytest.raises(ValueError):
            parse_reply({"response": "Hi", "updatedRapportLevel": rapport})

    def test_reply_rejects_missing_text(self):
        with pytest.raises(ValueError):
            parse_reply({"updatedRapportLevel": 1})


class TestResponderRequest:

    def test_medium_anxiety_is_sent_as_high(self):
        assert normalize_anxiety(AnxietyLevel.MEDIUM) == AnxietyLevel.HIGH
        assert normalize_anxiety(AnxietyLevel.LOW) == AnxietyLevel.LOW

        request = build_responder_request(make_test_profile(anxiety_level="Medium"), "hi", 0, [])
        assert request.anxiety_level == "High"

    def test_profile_fields_are_copied(self):
        profile = make_test_profile()
        request = build_responder_request(profile, "I can't sleep", 3, [])
        assert request.age == 30
        assert request.gender_identity == "Female"
        assert request.breakup_type == "Divorce"
        assert request.background == profile.background
        assert request.current_message == "I can't sleep"
        assert request.rapport_level == 3
        assert request.recent_history == []

    def test_history_is_last_four_messages(self):
        messages = [ChatMessage(Sender.AI if i % 2 == 0 else Sender.USER, f"m{i}") for i in range(7)]
        request = build_responder_request(make_test_profile(), "now", 1, messages)

        assert [h["text"] for h in request.recent_history] == ["m3", "m4", "m5", "m6"]
        assert [h["role"] for h in request.recent_history] == ["user", "assistant", "user", "assistant"]
