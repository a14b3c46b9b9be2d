"""
Service classes for the therapy session.

Each requester wraps one prompt + JSON contract against the LLM. Any failure
along the way (transport, auth, bad JSON, missing fields) surfaces as a
``GenerationError`` naming the flow, so callers handle exactly one type.
"""
import time
import logging
from typing import Any, Callable, Dict, Optional, TypeVar

from .schemas import (
    UserProfile, ResponderRequest, VoiceGender,
    TherapyRecommendation, AdaptedLanguageStyle, EmpatheticReply,
    parse_recommendation, parse_adaptation, parse_reply
)
from .prompts import TherapyPrompts
from ..infrastructure.audio.speech import ElevenLabsClient
from ..config import RECOMMENDATION_TEMPERATURE, RESPONSE_TEMPERATURE

logger = logging.getLogger("services")

T = TypeVar("T")


class GenerationError(RuntimeError):
    """An AI text generation flow failed."""

    def __init__(self, flow: str, detail: str):
        super().__init__(f"{flow} failed: {detail}")
        self.flow = flow


def _run_flow(llm_client, flow: str, prompt: str, temperature: float,
              parse: Callable[[Dict[str, Any]], T]) -> T:
    started = time.time()
    try:
        data = llm_client.generate_json(prompt, temperature=temperature)
        result = parse(data)
    except Exception as e:
        logger.error("%s failed after %.1fs: %s", flow, time.time() - started, e)
        raise GenerationError(flow, str(e)) from e
    logger.info("%s completed in %.1fs", flow, time.time() - started)
    return result


class RecommendationRequester:
    """Identifies therapeutic needs and writes initial recommendations."""

    def __init__(self, llm_client, temperature: float = RECOMMENDATION_TEMPERATURE):
        self.llm_client = llm_client
        self.temperature = temperature

    def personalize(self, profile: UserProfile) -> TherapyRecommendation:
        prompt = TherapyPrompts.recommendation_prompt(profile)
        return _run_flow(self.llm_client, "personalize_recommendations", prompt,
                         self.temperature, parse_recommendation)


class AdaptationRequester:
    """Describes the language and techniques adapted to the user."""

    def __init__(self, llm_client, temperature: float = RECOMMENDATION_TEMPERATURE):
        self.llm_client = llm_client
        self.temperature = temperature

    def adapt(self, profile: UserProfile, additional_context: Optional[str] = None) -> AdaptedLanguageStyle:
        prompt = TherapyPrompts.adaptation_prompt(profile, additional_context)
        return _run_flow(self.llm_client, "adapt_language", prompt,
                         self.temperature, parse_adaptation)


class ConversationalResponder:
    """Produces the next therapist reply and an updated rapport level."""

    def __init__(self, llm_client, temperature: float = RESPONSE_TEMPERATURE):
        self.llm_client = llm_client
        self.temperature = temperature

    def respond(self, request: ResponderRequest) -> EmpatheticReply:
        """
        Generate a reply for the current user message.

        Raises:
            GenerationError: If the reply could not be produced
        """
        logger.debug("Responder request: rapport=%d history=%d anxiety=%s",
                     request.rapport_level, len(request.recent_history), request.anxiety_level)
        prompt = TherapyPrompts.empathetic_response_prompt(request)
        return _run_flow(self.llm_client, "empathetic_response", prompt,
                         self.temperature, parse_reply)


class SpeechService:
    """Turns AI text into an audio data URI."""

    def __init__(self, client: Optional[ElevenLabsClient] = None):
        self.client = client or ElevenLabsClient()

    def synthesize(self, text: str, voice: VoiceGender) -> str:
        """
        Raises:
            SpeechSynthesisError: Any provider, credential or transport failure
        """
        started = time.time()
        payload = self.client.synthesize(text, voice.value)
        logger.info("Synthesized %d chars with %s voice in %.1fs",
                    len(text), voice.value, time.time() - started)
        return payload
