"""
Session orchestrator: stages, turn cycle, cancellation and stale-result fencing.
"""
from unittest.mock import Mock

import pytest

from heartmend.infrastructure.audio.speech import AuthorizationError, ProviderError
from heartmend.session import (
    SessionStage, TurnState, Sender, VoiceGender, EmpatheticReply, EventType, GenerationError
)
from heartmend.session.prompts import FALLBACK_REPLY, RELAXATION_SCRIPT
from heartmend.session.testing import (
    DeferredExecutor, MockAdaptationRequester, MockPlayerFactory, MockRecommendationRequester,
    MockResponder, MockSpeechService, build_test_session, make_test_profile
)


class TestProfileSubmission:
    """Profile submit -> parallel startup requests -> chatting."""

    def test_submit_yields_single_greeting_and_chatting(self, session, profile, speech):
        assert session.submit_profile(profile)

        messages = session.messages
        assert len(messages) == 1
        assert messages[0].sender == Sender.AI
        assert session.rapport_level == 0
        assert session.stage == SessionStage.CHATTING
        assert speech.calls == [(messages[0].text, VoiceGender.FEMALE)]

    def test_greeting_combines_both_results(self, session, profile):
        session.submit_profile(profile)
        greeting = session.messages[0].text

        assert greeting.startswith("Thank you for sharing.")
        assert "**Recommendations:**\nConsider grief-focused CBT" in greeting
        assert "**Our Approach:**\nGentle, validating language" in greeting
        assert greeting.endswith("Feel free to share what's on your mind to begin our conversation.")

    def test_adaptation_receives_background_as_context(self, profile):
        adaptation = MockAdaptationRequester()
        orchestrator = build_test_session(adaptation=adaptation)
        orchestrator.submit_profile(profile)
        assert adaptation.calls == [(profile, profile.background)]

    def test_greeting_is_spoken_then_turn_returns_to_idle(self, session, profile, player_factory):
        session.submit_profile(profile)
        assert session.turn_state == TurnState.SPEAKING
        assert session.is_ai_turn_active

        player_factory.last.finish()
        assert session.turn_state == TurnState.IDLE
        assert not session.is_ai_turn_active

    def test_scenario_medium_anxiety_divorce(self):
        profile = make_test_profile(age=30, gender_identity="Female", anxiety_level="Medium",
                                    breakup_type="Divorce")
        orchestrator = build_test_session()
        assert orchestrator.submit_profile(profile)
        ai_messages = [m for m in orchestrator.messages if m.sender == Sender.AI]
        assert len(ai_messages) == 1
        assert orchestrator.rapport_level == 0
        assert orchestrator.stage == SessionStage.CHATTING

    @pytest.mark.parametrize("failing", ["recommendation", "adaptation"])
    def test_either_request_failing_keeps_collecting_profile(self, profile, failing):
        error = GenerationError("flow", "boom")
        orchestrator = build_test_session(
            recommendation=MockRecommendationRequester(error=error if failing == "recommendation" else None),
            adaptation=MockAdaptationRequester(error=error if failing == "adaptation" else None),
        )

        assert not orchestrator.submit_profile(profile)
        assert orchestrator.stage == SessionStage.COLLECTING_PROFILE
        assert orchestrator.messages == ()
        assert orchestrator.notifications[-1].description == "Could not process your profile. Please try again."

    def test_profile_can_be_resubmitted_after_failure(self, profile):
        recommendation = MockRecommendationRequester(error=GenerationError("flow", "down"))
        orchestrator = build_test_session(recommendation=recommendation)
        assert not orchestrator.submit_profile(profile)

        recommendation.error = None
        assert orchestrator.submit_profile(profile)
        assert orchestrator.stage == SessionStage.CHATTING

    def test_second_submit_is_ignored(self, chatting_session, profile):
        assert not chatting_session.submit_profile(profile)
        assert len(chatting_session.messages) == 1

    def test_text_only_mode_skips_speech(self, profile):
        speech = MockSpeechService()
        orchestrator = build_test_session(speech=speech, use_tts=False)
        orchestrator.submit_profile(profile)
        assert orchestrator.turn_state == TurnState.IDLE
        assert speech.calls == []


class TestChatTurns:
    """User message -> responder -> speech -> playback."""

    def test_successful_reply_updates_rapport_and_speaks(self, chatting_session, player_factory, speech):
        chatting_session.responder.replies.append(
            EmpatheticReply(response="That sounds painful.", updated_rapport_level=2, detected_sentiment="sad")
        )

        assert chatting_session.send_message("I miss her")

        user, ai = chatting_session.messages[-2:]
        assert (user.sender, user.text) == (Sender.USER, "I miss her")
        assert (ai.sender, ai.text, ai.detected_sentiment) == (Sender.AI, "That sounds painful.", "sad")
        assert chatting_session.rapport_level == 2
        assert chatting_session.turn_state == TurnState.SPEAKING
        assert speech.calls[-1] == ("That sounds painful.", VoiceGender.FEMALE)
        assert len(player_factory.players) == 2

    def test_rapport_is_stored_unclamped(self, chatting_session):
        chatting_session.responder.replies.append(EmpatheticReply("Okay.", updated_rapport_level=9))
        chatting_session.send_message("hello")
        assert chatting_session.rapport_level == 9
        assert chatting_session.session_context().rapport == "9/5"

    def test_responder_failure_appends_one_fallback(self, chatting_session, speech):
        chatting_session.responder.replies.append(GenerationError("empathetic_response", "timeout"))
        before = len(chatting_session.messages)
        speech_calls = len(speech.calls)

        assert chatting_session.send_message("are you there?")

        added = chatting_session.messages[before:]
        assert [m.sender for m in added] == [Sender.USER, Sender.AI]
        assert added[1].text == FALLBACK_REPLY
        assert chatting_session.rapport_level == 0
        assert chatting_session.turn_state == TurnState.IDLE
        assert chatting_session.notifications[-1].description == "Could not get AI response."
        assert len(speech.calls) == speech_calls

    def test_blank_message_is_rejected(self, chatting_session):
        assert not chatting_session.send_message("   ")
        assert len(chatting_session.messages) == 1

    def test_message_before_chatting_is_rejected(self, session):
        assert not session.send_message("hi")
        assert session.messages == ()

    def test_history_sends_last_four_prior_messages(self, profile):
        responder = MockResponder()
        orchestrator = build_test_session(responder=responder, use_tts=False)
        orchestrator.submit_profile(profile)
        for i in range(5):
            orchestrator.send_message(f"message {i}")

        # greeting + 4 complete turns before the fifth message = 9 prior messages
        prior = orchestrator.messages[:-2]
        assert len(prior) == 9
        sent = responder.requests[-1].recent_history
        assert len(sent) == 4
        assert [h["text"] for h in sent] == [m.text for m in prior[-4:]]
        assert [h["role"] for h in sent] == ["user", "assistant", "user", "assistant"]

    @pytest.mark.parametrize("level, expected", [("Low", "Low"), ("Medium", "High"), ("High", "High")])
    def test_anxiety_is_normalised_for_responder(self, level, expected):
        responder = MockResponder()
        orchestrator = build_test_session(responder=responder, use_tts=False)
        orchestrator.submit_profile(make_test_profile(anxiety_level=level))
        orchestrator.send_message("hello")
        assert responder.requests[0].anxiety_level == expected
        assert orchestrator.profile.anxiety_level.value == level


class TestCancellation:
    """New input, voice changes and relaxation cut off AI speech."""

    def test_new_message_stops_playback_before_request(self, session, profile, player_factory):
        session.submit_profile(profile)
        greeting_player = player_factory.last
        assert session.turn_state == TurnState.SPEAKING

        stopped_when_called = []

        def respond(request):
            stopped_when_called.append(greeting_player.stopped)
            return EmpatheticReply("I'm listening.", updated_rapport_level=1)

        session.responder.respond = Mock(side_effect=respond)
        assert session.send_message("wait")
        assert stopped_when_called == [True]

    def test_late_finish_from_replaced_player_is_ignored(self, session, profile, player_factory):
        session.submit_profile(profile)
        greeting_player = player_factory.last
        session.send_message("next")
        assert session.turn_state == TurnState.SPEAKING

        greeting_player.finish()
        assert session.turn_state == TurnState.SPEAKING

        player_factory.last.finish()
        assert session.turn_state == TurnState.IDLE

    def test_message_rejected_while_reply_pending(self, profile):
        executor = DeferredExecutor(defer=False)
        orchestrator = build_test_session(executor=executor, use_tts=False)
        orchestrator.submit_profile(profile)

        executor.defer = True
        assert orchestrator.send_message("first")
        assert orchestrator.turn_state == TurnState.AWAITING_AI_TEXT
        assert not orchestrator.send_message("second")

        executor.run_pending()
        assert orchestrator.turn_state == TurnState.IDLE
        assert [m.text for m in orchestrator.messages if m.sender == Sender.USER] == ["first"]

    def test_stale_speech_result_is_discarded(self, profile):
        executor = DeferredExecutor(defer=False)
        players = MockPlayerFactory()
        orchestrator = build_test_session(executor=executor, player_factory=players)
        orchestrator.submit_profile(profile)
        players.last.finish()

        executor.defer = True
        orchestrator.send_message("first")
        executor.run_next()  # reply for "first"; its synthesis is now queued
        assert orchestrator.turn_state == TurnState.AWAITING_SPEECH

        orchestrator.send_message("second")
        executor.run_next()  # stale synthesis for "first"
        assert len(players.players) == 1

        executor.run_pending()  # reply and synthesis for "second"
        assert len(players.players) == 2
        assert orchestrator.turn_state == TurnState.SPEAKING

    def test_set_voice_stops_speech_and_applies_next_turn(self, session, profile, player_factory, speech):
        session.submit_profile(profile)
        session.set_voice(VoiceGender.MALE)

        assert player_factory.last.stopped
        assert session.turn_state == TurnState.IDLE
        session.send_message("hello")
        assert speech.calls[-1][1] == VoiceGender.MALE

    def test_volume_and_rate_are_clamped_and_used(self, chatting_session, player_factory):
        assert chatting_session.set_volume(1.5) == 1.0
        assert chatting_session.set_playback_rate(3) == 2.0
        assert chatting_session.set_playback_rate(0.1) == 0.5
        chatting_session.set_playback_rate(1.25)

        chatting_session.send_message("hello")
        assert player_factory.last.volume == 1.0
        assert player_factory.last.rate == 1.25


class TestSpeechFailures:

    def test_authorization_error_notifies_and_returns_to_idle(self, chatting_session, player_factory, speech):
        speech.error = AuthorizationError("ElevenLabs API Authorization (401) Error.")
        players_before = len(player_factory.players)

        chatting_session.send_message("hello")

        assert chatting_session.turn_state == TurnState.IDLE
        assert len(player_factory.players) == players_before
        assert chatting_session.notifications[-1].title == "Speech Error"
        assert chatting_session.messages[-1].sender == Sender.AI

    def test_playback_error_returns_to_idle(self, chatting_session, player_factory):
        chatting_session.send_message("hello")
        player_factory.last.finish(returncode=1)

        assert chatting_session.turn_state == TurnState.IDLE
        assert chatting_session.notifications[-1].title == "Playback Error"


class TestRelaxationExercise:

    def test_toggle_starts_and_stops(self, chatting_session, speech, player_factory):
        assert chatting_session.toggle_relaxation_exercise()
        assert speech.calls[-1] == (RELAXATION_SCRIPT, VoiceGender.FEMALE)
        assert chatting_session.is_relaxation_playing
        assert chatting_session.turn_state == TurnState.SPEAKING

        assert not chatting_session.toggle_relaxation_exercise()
        assert player_factory.last.stopped
        assert not chatting_session.is_relaxation_playing
        assert chatting_session.turn_state == TurnState.IDLE

    def test_finishing_clears_relaxation(self, chatting_session, player_factory):
        chatting_session.toggle_relaxation_exercise()
        player_factory.last.finish()
        assert not chatting_session.is_relaxation_playing
        assert chatting_session.turn_state == TurnState.IDLE

    def test_relaxation_replaces_ai_speech(self, session, profile, player_factory):
        session.submit_profile(profile)
        greeting_player = player_factory.last
        assert session.toggle_relaxation_exercise()
        assert greeting_player.stopped
        assert len(player_factory.players) == 2

    def test_unavailable_in_text_only_mode(self, profile):
        orchestrator = build_test_session(use_tts=False)
        orchestrator.submit_profile(profile)
        assert not orchestrator.toggle_relaxation_exercise()
        assert orchestrator.notifications[-1].title == "Relaxation Exercise"

    def test_synthesis_failure_notifies(self, chatting_session, speech):
        speech.error = ProviderError("ElevenLabs API error 500")
        assert chatting_session.toggle_relaxation_exercise()
        assert chatting_session.turn_state == TurnState.IDLE
        assert chatting_session.notifications[-1].description == "Could not start the relaxation exercise."


class TestSessionContext:

    def test_none_before_profile(self, session):
        assert session.session_context() is None

    def test_context_summary(self, profile):
        long_text = "x" * 250
        orchestrator = build_test_session(
            recommendation=MockRecommendationRequester(),
            use_tts=False,
        )
        orchestrator.recommendation_requester.result.recommendations = long_text
        orchestrator.submit_profile(profile)

        context = orchestrator.session_context()
        assert context.profile_summary == "Age 30, Female, Anxiety: Medium."
        assert context.focus == "x" * 100
        assert context.style.startswith("Gentle, validating")
        assert context.rapport == "0/5"
        assert context.identified_needs == ["CBT", "Grief Counselling"]
        assert context.lines()[-1] == "AI Rapport Level: 0/5"


class TestEvents:

    def test_metrics_follow_the_session(self, chatting_session):
        chatting_session.send_message("hello")
        metrics = chatting_session.metrics.get_metrics()
        assert metrics["profiles_submitted"] == 1
        assert metrics["sessions_ready"] == 1
        assert metrics["user_messages"] == 1
        assert metrics["ai_messages"] == 2
        assert metrics["speech_played"] == 2

    def test_turn_state_events_trace_the_cycle(self, chatting_session):
        seen = []
        chatting_session.event_bus.subscribe(
            EventType.TURN_STATE_CHANGED, lambda e: seen.append(e.data["current"])
        )
        chatting_session.send_message("hello")
        assert seen == ["awaiting_ai_text", "awaiting_speech", "speaking"]
