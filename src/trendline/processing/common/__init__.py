"""Shared LLM plumbing."""

from trendline.processing.common.llm import create_model, create_text_agent

__all__ = ["create_model", "create_text_agent"]
