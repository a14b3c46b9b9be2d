"""LLM client for Gemini on Vertex AI."""

from .client import VertexRestClient, extract_json_object, parse_response_text

__all__ = ["VertexRestClient", "extract_json_object", "parse_response_text"]
