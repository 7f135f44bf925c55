"""
Language model collaborator backed by Amazon Bedrock.

``generate`` returns the reply text and a confidence hint parsed from the
model output. ``generate_with_timeout`` races any model against a time bound
and is the only cancellation point in the system.
"""

from __future__ import annotations

import json
import re
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from typing import Dict, Optional

import boto3
from botocore.config import Config

from models.jobs import GenerationResult
from utils.error_handling import UpstreamTimeoutError
from utils.logging_config import get_logger

logger = get_logger(__name__)

_CONFIDENCE_PATTERN = re.compile(r"CONFIDENCE:\s*([01](?:\.\d+)?)", re.IGNORECASE)

# Shared pool so an abandoned call does not block the caller's return.
_executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="llm")


class BedrockLanguageModel:
    """Anthropic model on Bedrock via the messages API."""

    def __init__(
        self,
        model_id: str = "anthropic.claude-3-haiku-20240307-v1:0",
        region: str = "eu-west-2",
        max_tokens: int = 500,
    ) -> None:
        self.model_id = model_id
        self.max_tokens = max_tokens
        self.client = boto3.client(
            "bedrock-runtime",
            region_name=region,
            config=Config(read_timeout=10, connect_timeout=2, retries={"max_attempts": 1}),
        )

    def generate(
        self,
        prompt: str,
        context: Optional[Dict[str, str]] = None,
        timeout: float = 5.0,
    ) -> GenerationResult:
        """Call Bedrock and parse the trailing ``CONFIDENCE: x`` line."""
        response = self.client.invoke_model(
            modelId=self.model_id,
            contentType="application/json",
            accept="application/json",
            body=json.dumps(
                {
                    "anthropic_version": "bedrock-2023-05-31",
                    "system": self._system_prompt(context or {}),
                    "messages": [{"role": "user", "content": [{"type": "text", "text": prompt}]}],
                    "max_tokens": self.max_tokens,
                    "temperature": 0.3,
                }
            ),
        )
        payload = json.loads(response["body"].read())
        text = payload["content"][0]["text"]
        return parse_generation(text)

    def _system_prompt(self, context: Dict[str, str]) -> str:
        """Concise, empathetic support tone with a machine-readable confidence line."""
        context_lines = "\n".join(f"- {key}: {value}" for key, value in context.items())
        return (
            "You are a concise, empathetic customer support assistant. "
            "After your reply, add a final line 'CONFIDENCE: <0-1>' stating how "
            "confident you are that the reply resolves the customer's need.\n"
            f"Context:\n{context_lines or 'none'}"
        )


def parse_generation(text: str) -> GenerationResult:
    """Split the confidence line off the model output."""
    match = _CONFIDENCE_PATTERN.search(text)
    confidence = 0.5
    if match:
        confidence = max(0.0, min(1.0, float(match.group(1))))
        text = _CONFIDENCE_PATTERN.sub("", text)
    return GenerationResult(text=text.strip(), confidence_hint=confidence)


def generate_with_timeout(
    model,
    prompt: str,
    context: Optional[Dict[str, str]] = None,
    timeout: float = 5.0,
) -> GenerationResult:
    """Run ``model.generate`` with a hard time bound.

    Raises UpstreamTimeoutError when the bound expires; other model errors
    propagate unchanged.
    """
    future = _executor.submit(model.generate, prompt, context, timeout)
    try:
        return future.result(timeout=timeout)
    except FutureTimeout:
        future.cancel()
        logger.warning("Language model timed out", extra={"timeout_seconds": timeout})
        raise UpstreamTimeoutError(f"Language model exceeded {timeout}s")
