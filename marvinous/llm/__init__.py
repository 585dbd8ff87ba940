"""
LLM — prompt assembly and the Ollama generation client.
"""

from marvinous.llm.ollama import OllamaClient, RetryPolicy
from marvinous.llm.prompt import build_daily_prompt, build_prompt

__all__ = ["OllamaClient", "RetryPolicy", "build_prompt", "build_daily_prompt"]
