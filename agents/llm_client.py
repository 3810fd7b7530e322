"""
LLM Client: thin wrapper over the OpenAI SDK.

Reasoning models (o-series, gpt-5) go through the Responses API so their
encrypted reasoning items can be carried into later phases. Everything else
uses Chat Completions. Model ids of the form "vendor/model" are routed to
OpenRouter, which speaks the same Chat Completions protocol.
"""

import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from config import OPENROUTER_BASE_URL
from utils.errors import ConfigurationError, LLMOperationError
from utils.error_manager import ErrorManager
from utils.logger import get_logger

logger = get_logger("llm_client")

REASONING_MODEL_PREFIXES = ("o1", "o3", "o4", "gpt-5")

# Text models selectable per story, served through OpenRouter
OPENROUTER_MODELS: List[Dict[str, Any]] = [
    {"id": "deepseek/deepseek-chat-v3-0324", "name": "DeepSeek Chat v3", "description": "Advanced reasoning and coding model", "max_tokens": 32768},
    {"id": "meta-llama/llama-4-maverick", "name": "Llama 4 Maverick", "description": "Llama 4 variant with improved reasoning", "max_tokens": 32768},
    {"id": "qwen/qwen3-235b-a22b", "name": "Qwen 3 235B", "description": "Large scale Chinese-English model", "max_tokens": 32768},
    {"id": "qwen/qwq-32b", "name": "QwQ 32B", "description": "Question-answering specialized model", "max_tokens": 32768},
    {"id": "google/gemini-2.0-flash-exp", "name": "Gemini 2.0 Flash Experimental", "description": "Experimental Gemini model", "max_tokens": 1000000},
    {"id": "meta-llama/llama-4-scout", "name": "Llama 4 Scout", "description": "Optimized for exploration and discovery tasks", "max_tokens": 32768},
    {"id": "nvidia/llama-3.1-nemotron-ultra-253b-v1", "name": "Nemotron Ultra 253B", "description": "Ultra-large language model", "max_tokens": 32768},
    {"id": "mistralai/mistral-small-3.1-24b-instruct", "name": "Mistral Small 3.1", "description": "Efficient instruction-following model", "max_tokens": 32768},
    {"id": "moonshotai/kimi-vl-a3b-thinking", "name": "Kimi VL Thinking", "description": "Vision-language model with reasoning", "max_tokens": 32768},
]


@dataclass
class LLMResult:
    text: str
    model: str
    usage: Dict[str, int] = field(default_factory=dict)
    reasoning_items: List[Dict[str, Any]] = field(default_factory=list)
    reasoning_summary: Optional[str] = None


def is_reasoning_model(model: str) -> bool:
    return model.startswith(REASONING_MODEL_PREFIXES)


def is_openrouter_model(model: str) -> bool:
    return "/" in model


class LLMClient:
    """
    Calls OpenAI (or OpenRouter) and normalizes the response into LLMResult.
    """

    def __init__(self, api_key: str = None, openrouter_api_key: str = None, timeout: float = 600.0):
        self.api_key = api_key or os.getenv("OPENAI_API_KEY")
        self.openrouter_api_key = openrouter_api_key or os.getenv("OPENROUTER_API_KEY")
        self.timeout = timeout
        self._client = None
        self._openrouter_client = None

    @property
    def client(self):
        """Lazy initialization of the OpenAI client."""
        if self._client is None:
            if not self.api_key:
                raise ConfigurationError("OPENAI_API_KEY is not set")
            from openai import OpenAI
            self._client = OpenAI(api_key=self.api_key, timeout=self.timeout)
        return self._client

    @property
    def openrouter_client(self):
        if self._openrouter_client is None:
            if not self.openrouter_api_key:
                raise ConfigurationError("OPENROUTER_API_KEY is not set")
            from openai import OpenAI
            self._openrouter_client = OpenAI(
                api_key=self.openrouter_api_key,
                base_url=OPENROUTER_BASE_URL,
                timeout=self.timeout,
            )
        return self._openrouter_client

    @property
    def available(self) -> bool:
        return bool(self.api_key or self.openrouter_api_key)

    def complete_json(
        self,
        system_prompt: str,
        user_prompt: str,
        model: str,
        max_tokens: int = 4000,
        reasoning_effort: Optional[str] = None,
        context: Optional[List[Dict[str, Any]]] = None,
    ) -> LLMResult:
        """
        Ask the model for a JSON document.

        Args:
            system_prompt: Role/format instructions
            user_prompt: Task prompt
            model: Model id ("o3", "gpt-4o-mini", "deepseek/deepseek-chat-v3-0324", ...)
            max_tokens: Output token cap
            reasoning_effort: "low" / "medium" / "high" for reasoning models
            context: Prior reasoning items prepended to the input (Responses API only)

        Returns:
            LLMResult

        Raises:
            LLMOperationError: the call failed or the model returned no text
        """
        try:
            if is_openrouter_model(model):
                result = self._call_chat(self.openrouter_client, system_prompt, user_prompt, model, max_tokens)
            elif is_reasoning_model(model):
                result = self._call_responses(
                    system_prompt, user_prompt, model, max_tokens, reasoning_effort or "medium", context or []
                )
            else:
                result = self._call_chat(self.client, system_prompt, user_prompt, model, max_tokens)
        except ConfigurationError:
            raise
        except Exception as e:
            ErrorManager.log_error(
                "LLMClient",
                f"{model} call failed",
                f"{type(e).__name__}: {e}",
                severity="critical",
            )
            raise LLMOperationError(f"{model} call failed: {e}") from e

        if not result.text:
            raise LLMOperationError(f"No content in {model} response")

        logger.info(
            f"{model} response: {len(result.text)} chars, "
            f"in={result.usage.get('input', 0):,} out={result.usage.get('output', 0):,} "
            f"reasoning={result.usage.get('reasoning', 0):,}"
        )
        return result

    def _call_responses(
        self,
        system_prompt: str,
        user_prompt: str,
        model: str,
        max_tokens: int,
        reasoning_effort: str,
        context: List[Dict[str, Any]],
    ) -> LLMResult:
        logger.debug(f"Calling Responses API (model: {model}, effort: {reasoning_effort}, context: {len(context)})")
        response = self.client.responses.create(
            model=model,
            input=[
                *context,
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            reasoning={"effort": reasoning_effort, "summary": "auto"},
            store=False,
            include=["reasoning.encrypted_content"],
            max_output_tokens=max_tokens,
        )

        reasoning_items = []
        reasoning_summary = None
        for item in response.output:
            if item.type != "reasoning":
                continue
            reasoning_items.append(item.model_dump(exclude_none=True))
            if reasoning_summary is None and item.summary:
                reasoning_summary = item.summary[0].text

        usage = {}
        if response.usage:
            # output_tokens includes reasoning; keep them apart so reasoning is billed once
            reasoning_tokens = getattr(response.usage.output_tokens_details, "reasoning_tokens", 0) or 0
            usage = {
                "input": response.usage.input_tokens or 0,
                "output": max((response.usage.output_tokens or 0) - reasoning_tokens, 0),
                "reasoning": reasoning_tokens,
                "cached": getattr(response.usage.input_tokens_details, "cached_tokens", 0) or 0,
            }

        return LLMResult(
            text=(response.output_text or "").strip(),
            model=model,
            usage=usage,
            reasoning_items=reasoning_items,
            reasoning_summary=reasoning_summary,
        )

    def _call_chat(self, client, system_prompt: str, user_prompt: str, model: str, max_tokens: int) -> LLMResult:
        logger.debug(f"Calling Chat Completions (model: {model})")
        response = client.chat.completions.create(
            model=model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            response_format={"type": "json_object"},
            max_completion_tokens=max_tokens,
        )

        usage = {}
        if response.usage:
            usage = {
                "input": response.usage.prompt_tokens or 0,
                "output": response.usage.completion_tokens or 0,
                "reasoning": 0,
                "cached": 0,
            }

        return LLMResult(
            text=(response.choices[0].message.content or "").strip(),
            model=model,
            usage=usage,
        )
