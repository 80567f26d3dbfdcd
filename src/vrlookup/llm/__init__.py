"""Recognition provider abstraction.

Supports ``gemini`` (Google Generative AI / Vertex AI) and ``ollama``
(local vision models) through a unified interface.
"""

from vrlookup.llm.base import LLMProvider, LLMResult
from vrlookup.llm.factory import create_llm_provider
from vrlookup.llm.recognizer import LLMRecognizer, TextRecognizer

__all__ = ["LLMProvider", "LLMRecognizer", "LLMResult", "TextRecognizer", "create_llm_provider"]
