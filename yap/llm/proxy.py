"""
Stateless forwarder from the chat assistant to a local Ollama runtime.
"""

from datetime import datetime
from typing import Any

import requests
import structlog

logger = structlog.get_logger(__name__)


class LLMConnectionError(RuntimeError):
    """Ollama is unreachable or answered with an error."""


class LLMTimeoutError(RuntimeError):
    """Ollama did not answer within the configured timeout."""


class OllamaClient:
    """Thin HTTP client for the Ollama chat and tags endpoints."""

    def __init__(
        self,
        base_url: str = "http://localhost:11434",
        default_model: str = "llama3",
        timeout: float = 120.0,
        session: requests.Session | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.default_model = default_model
        self.timeout = timeout
        self.session = session or requests.Session()

        logger.info("Ollama client initialized", base_url=self.base_url, model=default_model)

    def chat(
        self,
        message: str,
        history: list[dict[str, str]] | None = None,
        model: str | None = None,
        temperature: float | None = None,
    ) -> dict[str, Any]:
        """Send one user turn (plus prior turns) and return the assistant reply.

        Returns:
            {"response", "model", "timestamp"}

        Raises:
            LLMTimeoutError: Ollama took longer than the timeout
            LLMConnectionError: Ollama is unreachable or returned an error
        """
        model = model or self.default_model
        body: dict[str, Any] = {
            "model": model,
            "messages": [*(history or []), {"role": "user", "content": message}],
            "stream": False,
        }
        if temperature is not None:
            body["options"] = {"temperature": temperature}

        try:
            response = self.session.post(
                f"{self.base_url}/api/chat", json=body, timeout=self.timeout
            )
            response.raise_for_status()
            data = response.json()
        except requests.exceptions.Timeout as err:
            logger.warning("Ollama chat timed out", model=model, timeout=self.timeout)
            raise LLMTimeoutError(f"Ollama request timeout after {self.timeout:g}s") from err
        except requests.exceptions.RequestException as err:
            logger.error("Ollama chat failed", model=model, error=str(err))
            raise LLMConnectionError(f"Cannot connect to Ollama: {err}") from err

        content = (data.get("message") or {}).get("content", "")
        logger.info("Ollama chat completed", model=model, output_chars=len(content))
        return {
            "response": content,
            "model": model,
            "timestamp": datetime.now().isoformat(),
        }

    def list_models(self) -> list[str]:
        """Names of the models installed in the local runtime."""
        try:
            response = self.session.get(f"{self.base_url}/api/tags", timeout=10)
            response.raise_for_status()
            data = response.json()
        except requests.exceptions.RequestException as err:
            logger.warning("Ollama model listing failed", error=str(err))
            raise LLMConnectionError(f"Cannot list models: {err}") from err

        return [model["name"] for model in data.get("models", []) if model.get("name")]


# Global client instance (initialized once at startup)
_ollama_client: OllamaClient | None = None


def get_ollama_client() -> OllamaClient:
    if _ollama_client is None:
        raise RuntimeError("Ollama client not initialized. Call initialize_ollama_client() first.")
    return _ollama_client


def initialize_ollama_client(base_url: str, default_model: str, timeout: float) -> OllamaClient:
    global _ollama_client
    _ollama_client = OllamaClient(base_url, default_model, timeout)
    return _ollama_client


def reset_ollama_client() -> None:
    """Reset the global client (for testing)."""
    global _ollama_client
    _ollama_client = None
