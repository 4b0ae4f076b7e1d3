"""
Amazon Bedrock text provider.

Wraps ``bedrock-runtime.invoke_model`` behind the TextProvider contract.
Haiku is the default model to keep per-ticket cost low.
"""

from __future__ import annotations

import json
import os
from typing import Any, Optional

import boto3
from botocore.exceptions import NoCredentialsError, PartialCredentialsError

from services.text_provider import TextProvider
from utils.error_handling import ConfigurationError, ProviderError
from utils.logging_config import get_logger

logger = get_logger(__name__)

SYSTEM_PROMPT = (
    "You are a helpful customer support agent. Provide professional, "
    "empathetic, and solution-focused responses."
)


class BedrockTextProvider(TextProvider):
    """Anthropic messages API on Bedrock."""

    name = "bedrock"

    def __init__(
        self,
        model_id: Optional[str] = None,
        region: Optional[str] = None,
        client: Any = None,
    ):
        self.model_id = model_id or os.environ.get("MODEL_ID", "")
        if not self.model_id:
            raise ConfigurationError("MODEL_ID is required for the Bedrock provider")
        resolved_region = (
            region
            or os.environ.get("BEDROCK_REGION")
            or os.environ.get("AWS_REGION")
            or "eu-west-2"
        )
        self.client = client or boto3.client("bedrock-runtime", region_name=resolved_region)

    def complete(self, prompt: str, max_tokens: int, temperature: float) -> str:
        try:
            response = self.client.invoke_model(
                modelId=self.model_id,
                contentType="application/json",
                accept="application/json",
                body=json.dumps(
                    {
                        "anthropic_version": "bedrock-2023-05-31",
                        "system": SYSTEM_PROMPT,
                        "messages": [
                            {"role": "user", "content": [{"type": "text", "text": prompt}]}
                        ],
                        "max_tokens": max_tokens,
                        "temperature": temperature,
                    }
                ),
            )
            payload = json.loads(response["body"].read())
        except (NoCredentialsError, PartialCredentialsError) as exc:
            raise ConfigurationError(f"AWS credentials unavailable for Bedrock: {exc}") from exc
        except Exception as exc:
            logger.warning("Bedrock invocation failed", extra={"error": str(exc)})
            raise ProviderError(f"Bedrock invocation failed: {exc}", provider=self.name) from exc

        text = _extract_text(payload)
        if not text:
            raise ProviderError("Bedrock returned an empty completion", provider=self.name)
        logger.info(
            "Bedrock completion",
            extra={"model_id": self.model_id, "output_chars": len(text)},
        )
        return text


def _extract_text(payload: dict) -> str:
    """Anthropic models return ``content``; Nova-style models wrap it in ``output``."""
    content = payload.get("content")
    if content is None:
        content = payload.get("output", {}).get("message", {}).get("content") or payload.get(
            "output", {}
        ).get("content", [])
    parts = [part.get("text", "") for part in content or [] if isinstance(part, dict)]
    return "".join(parts).strip()
