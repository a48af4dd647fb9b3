"""Unified LLM client via LiteLLM with Ollama auto-pull support."""

from __future__ import annotations

from aisubs.core.config import TranslatorConfig
from aisubs.core.errors import ProviderError, UpstreamError
from aisubs.utils.console import console


class TransientBackendError(UpstreamError):
    """Rate limit, timeout or temporary outage; the request is worth retrying."""


def _extract_ollama_model(model: str) -> str | None:
    """Extract the Ollama model name from a LiteLLM model string.

    Returns None if the model is not an Ollama model.
    E.g. "ollama_chat/qwen3:8b" -> "qwen3:8b"
    """
    for prefix in ("ollama_chat/", "ollama/"):
        if model.startswith(prefix):
            return model[len(prefix) :]
    return None


def ensure_ollama_model(model: str) -> None:
    """Pull the Ollama model if not already available locally.

    No-op if the model is not an Ollama model or if ollama package
    is not installed.
    """
    model_name = _extract_ollama_model(model)
    if model_name is None:
        return

    try:
        import ollama
    except ImportError:
        return

    try:
        available = {m.model for m in ollama.list().models}
    except Exception:
        return

    if model_name in available:
        return

    # Ollama stores models as "name:tag" — check if the exact base matches with :latest
    if ":" not in model_name and f"{model_name}:latest" in available:
        return

    console.print(f"[bold]Pulling Ollama model:[/bold] {model_name}")
    try:
        ollama.pull(model_name)
        console.print(f"[green]Model ready:[/green] {model_name}")
    except Exception as e:
        console.print(f"[yellow]Failed to pull model {model_name}:[/yellow] {e}")


def complete(
    messages: list[dict[str, str]],
    config: TranslatorConfig,
    timeout: float | None = None,
    **kwargs: object,
) -> str:
    """Send a chat completion request via LiteLLM.

    Args:
        messages: Chat messages in OpenAI format.
        config: Translator configuration (provider, model, credentials).
        timeout: Request timeout in seconds; defaults to ``config.timeout``.
        **kwargs: Additional kwargs passed to litellm.completion.

    Returns:
        The assistant's response text.

    Raises:
        TransientBackendError: on rate limits, timeouts and outages.
        UpstreamError: on any other backend failure (auth, bad request).
        ProviderError: if the backend returns no text.
    """
    try:
        import litellm
    except ImportError:
        raise ImportError("LiteLLM is not installed. Install with: pip install litellm")

    model = config.litellm_model
    transient = (
        litellm.RateLimitError,
        litellm.Timeout,
        litellm.APIConnectionError,
        litellm.ServiceUnavailableError,
        litellm.InternalServerError,
    )

    try:
        response = litellm.completion(
            model=model,
            messages=messages,
            api_key=config.api_key,
            api_base=config.api_base,
            temperature=config.temperature,
            max_tokens=config.max_tokens,
            timeout=timeout if timeout is not None else config.timeout,
            **kwargs,
        )
    except transient as e:
        raise TransientBackendError(f"{model}: {type(e).__name__}: {e}") from e
    except Exception as e:
        raise UpstreamError(f"{model}: {type(e).__name__}: {e}") from e

    content = response.choices[0].message.content
    if not content or not content.strip():
        raise ProviderError(f"{model}: empty completion")
    return content
