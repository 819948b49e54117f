"""Chat-model access: prompt builders and the async client."""

from auditor.llm.client import LLMClient, build_chat_model
from auditor.llm.prompts import build_batch_messages, build_synthesis_messages, clean_analysis_text

__all__ = [
    "LLMClient",
    "build_batch_messages",
    "build_chat_model",
    "build_synthesis_messages",
    "clean_analysis_text",
]
