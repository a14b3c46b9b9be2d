"""
Vertex AI REST client for Gemini text generation.
"""
import json
import logging
from typing import Optional, Dict, Any, List

import requests
import google.auth
import google.auth.transport.requests
from google.oauth2 import service_account

from ...config import VERTEX_LOCATION, MODEL_NAME, LLM_TIMEOUT, MAX_OUTPUT_TOKENS

logger = logging.getLogger("llm_client")

_SCOPES = ["https://www.googleapis.com/auth/cloud-platform"]


class VertexRestClient:
    """REST-based client for Vertex AI Gemini models."""

    def __init__(self,
                 project: str,
                 location: str = VERTEX_LOCATION,
                 model: str = MODEL_NAME,
                 credentials_json: Optional[str] = None,
                 timeout: int = LLM_TIMEOUT,
                 session: Optional[requests.Session] = None):
        self.project = project
        self.location = location
        self.model = model
        self.credentials_json = credentials_json
        self.timeout = timeout
        self.base_url = f"https://{self.location}-aiplatform.googleapis.com/v1"
        self.model_resource = f"projects/{self.project}/locations/{self.location}/publishers/google/models/{self.model}"
        self._session = session or requests.Session()
        self._credentials = None

    def _access_token(self) -> str:
        """Return a valid OAuth token, refreshing credentials when expired."""
        if self._credentials is None:
            if self.credentials_json:
                self._credentials = service_account.Credentials.from_service_account_file(
                    self.credentials_json, scopes=_SCOPES,
                )
            else:
                self._credentials, _ = google.auth.default(scopes=_SCOPES)

        if not self._credentials.valid:
            self._credentials.refresh(google.auth.transport.requests.Request())
        return self._credentials.token

    def generate_content(
        self,
        prompt_text: str,
        temperature: float = 0.0,
        max_output_tokens: int = MAX_OUTPUT_TOKENS,
        response_mime_type: Optional[str] = None,
        stop_sequences: Optional[List[str]] = None,
    ) -> str:
        """Generate content using the Vertex AI REST API."""
        url = f"{self.base_url}/{self.model_resource}:generateContent"

        generation_config: Dict[str, Any] = {
            "temperature": float(temperature),
            "maxOutputTokens": int(max_output_tokens),
        }
        if response_mime_type:
            generation_config["responseMimeType"] = response_mime_type
        if stop_sequences:
            generation_config["stopSequences"] = list(stop_sequences)

        body = {
            "contents": [{"role": "user", "parts": [{"text": prompt_text}]}],
            "generationConfig": generation_config,
        }
        headers = {
            "Authorization": f"Bearer {self._access_token()}",
            "Content-Type": "application/json",
        }

        resp = self._session.post(url, headers=headers, json=body, timeout=self.timeout)
        if resp.status_code >= 400:
            raise RuntimeError(f"Vertex REST error {resp.status_code}: {resp.text}")

        return parse_response_text(resp.json())

    def generate_json(self, prompt: str, temperature: float = 0.0) -> Dict[str, Any]:
        """
        Generate a JSON object from the model.

        Raises:
            RuntimeError: If the HTTP request fails
            ValueError: If the model output holds no JSON object
        """
        text = self.generate_content(
            prompt.strip() + "\n\nRespond ONLY with a minified JSON object.",
            temperature=temperature,
            response_mime_type="application/json",
        )
        logger.debug("Raw LLM output: %r", text)
        return extract_json_object(text)


def parse_response_text(resp_json: Dict[str, Any]) -> str:
    """
    Pull the generated text out of a generateContent response.

    Raises:
        ValueError: If the response carries no text (e.g. blocked by safety filters)
    """
    for candidate in resp_json.get("candidates", []):
        content = candidate.get("content") or {}
        texts = [p["text"] for p in content.get("parts", [])
                 if isinstance(p, dict) and isinstance(p.get("text"), str)]
        if texts:
            return "".join(texts)

    feedback = resp_json.get("promptFeedback", {})
    reason = feedback.get("blockReason") or "no candidates"
    raise ValueError(f"Vertex response contained no text ({reason})")


def extract_json_object(text: str) -> Dict[str, Any]:
    """Parse a JSON object, tolerating code fences or prose around it."""
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        start = text.find("{")
        end = text.rfind("}")
        if start == -1 or end <= start:
            raise ValueError(f"No JSON found in LLM response: {text!r}")
        try:
            parsed = json.loads(text[start:end + 1])
        except json.JSONDecodeError as e:
            raise ValueError(f"Could not extract valid JSON from LLM response: {e}")

    if not isinstance(parsed, dict):
        raise ValueError(f"Expected a JSON object, got {type(parsed).__name__}")
    return parsed
