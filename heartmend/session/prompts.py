"""
Therapy prompt templates and fixed session texts.

This module contains all the prompt templates used throughout the session,
keeping them separate from the business logic for easier maintenance and editing.
"""
import json
from typing import Dict, Any, Optional

from .schemas import UserProfile, ResponderRequest


class TherapyPrompts:
    """Collection of all therapy-related prompts."""

    @staticmethod
    def recommendation_prompt(profile: UserProfile) -> str:
        """Identify therapeutic needs and write personalised recommendations."""
        return f"""
You are an AI therapist. Your task is to:
1. Analyse the user's profile below, especially their background, age, anxiety level and breakup type.
2. Identify the therapeutic approaches (such as CBT, IPT, Grief Counselling, or others if more appropriate) that would help most.
3. Based on those needs and the profile, write empathetic, contextually relevant and actionable recommendations.
Use British English with medical terms where appropriate.

User Profile:
{PromptFormatter.format_profile(profile)}
Background: {profile.background}

Return JSON:
{{"identifiedTherapeuticNeeds": ["<approach>", ...], "recommendations": "<text>"}}
        """.strip()

    @staticmethod
    def adaptation_prompt(profile: UserProfile, additional_context: Optional[str] = None) -> str:
        """Describe the therapeutic style and language adapted to this user."""
        context_line = f"\nBackground/Context: {additional_context}" if additional_context else ""
        return f"""
Based on the user's information, infer the therapeutic approaches (like CBT, IPT, Grief Counselling) that suit their situation.
Then adapt your language and techniques to give relevant, hyper-personalised support. Use British English and medical terms where appropriate.

User Information:
{PromptFormatter.format_profile(profile)}{context_line}

Describe the therapeutic style and language you will use with this user.

Return JSON:
{{"adaptedLanguage": "<text>"}}
        """.strip()

    @staticmethod
    def empathetic_response_prompt(request: ResponderRequest) -> str:
        """Next therapist turn, with an updated rapport level and sentiment tag."""
        return f"""
You are a warm, empathetic AI therapist supporting someone through a breakup.
Use British English. Keep replies to a few sentences and end with a gentle, open question when appropriate.

User Profile:
- Age: {request.age}
- Gender Identity: {request.gender_identity}
- Ethnicity: {request.ethnicity}
- Vulnerability Score: {request.vulnerability_score}
- Anxiety Level: {request.anxiety_level}
- Breakup Type: {request.breakup_type}
- Background: {request.background}

Current rapport level: {request.rapport_level} (0 = none yet, 5 = strong)
RecentHistory: {json.dumps(request.recent_history, ensure_ascii=False)}
CurrentMessage: {json.dumps(request.current_message, ensure_ascii=False)}

Raise the rapport level when the user opens up or responds warmly, lower it when they withdraw.

Return JSON:
{{"response": "<your reply>", "updatedRapportLevel": <integer>, "detectedSentiment": "<one word or null>"}}
        """.strip()


class PromptFormatter:
    """Helper class for formatting prompt inputs."""

    @staticmethod
    def format_profile(profile: UserProfile) -> str:
        return "\n".join(f"{label}: {value}" for label, value in profile.prompt_fields().items())

    @staticmethod
    def compose_greeting(recommendations: str, adapted_language: str) -> str:
        """First AI message, built from both startup results."""
        return (
            "Thank you for sharing. Based on your information, here are some initial "
            "thoughts and how we might proceed:\n\n"
            f"**Recommendations:**\n{recommendations}\n\n"
            f"**Our Approach:**\n{adapted_language}\n\n"
            "Feel free to share what's on your mind to begin our conversation."
        )


FALLBACK_REPLY = (
    "I'm having a little trouble connecting right now. "
    "Please try sending your message again in a moment."
)

RELAXATION_SCRIPT = (
    "Let's take a moment to relax together. "
    "Find a comfortable position and gently close your eyes if you'd like. "
    "Breathe in slowly through your nose for four counts. One, two, three, four. "
    "Hold that breath softly for four counts. One, two, three, four. "
    "Now breathe out through your mouth for six counts, letting your shoulders drop. "
    "Let's do that twice more. In, two, three, four. Hold, two, three, four. "
    "And out, slowly, all the way. "
    "Once more. In, two, three, four. Hold, two, three, four. And out. "
    "Notice the ground beneath you and the air around you. "
    "Whatever you are feeling right now is allowed. "
    "When you are ready, open your eyes and come back to our conversation."
)

# Notification texts: (title, description)
NOTIFICATIONS: Dict[str, Any] = {
    "profile_ready": ("Profile processed", "Personalized therapy session ready."),
    "profile_failed": ("Error", "Could not process your profile. Please try again."),
    "reply_failed": ("Error", "Could not get AI response."),
    "speech_failed": ("Speech Error", "Could not generate speech for the AI response."),
    "playback_failed": ("Playback Error", "Could not play the AI response audio."),
    "relaxation_failed": ("Relaxation Exercise", "Could not start the relaxation exercise."),
    "relaxation_text_only": ("Relaxation Exercise", "Audio is turned off, so the exercise cannot be played."),
}
