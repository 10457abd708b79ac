"""Async HTTP clients for the Ollama and Gemini APIs.

The clients only speak HTTP and log; they raise ``httpx.HTTPError`` subclasses
unchanged, and ``ValueError`` when a reply body is not a JSON object. Retry
and error classification live in the embedding and generation adapters.
"""
from typing import Any, Dict, List, Optional

import httpx
import structlog

from studyforge import config

logger = structlog.get_logger()


class OllamaClient:
    """Async client for interacting with Ollama API."""

    def __init__(
        self,
        base_url: str = None,
        timeout: float = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize Ollama client.

        Args:
            base_url: Ollama API base URL (defaults to config.OLLAMA_BASE_URL)
            timeout: Request timeout in seconds (defaults to config.PROVIDER_TIMEOUT)
            transport: Optional httpx transport, used by tests
        """
        self.base_url = (base_url or config.OLLAMA_BASE_URL).rstrip("/")
        self.timeout = timeout or config.PROVIDER_TIMEOUT
        self._transport = transport

    def _client(self, timeout: float = None) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=timeout or self.timeout, transport=self._transport
        )

    async def chat(
        self,
        messages: List[Dict[str, str]],
        model: str = None,
        json_output: bool = False,
        temperature: Optional[float] = None,
    ) -> Dict:
        """Send a non-streaming chat completion request to Ollama.

        Args:
            messages: List of message dicts with 'role' and 'content'
            model: Model to use (defaults to config.CHAT_MODEL)
            json_output: Ask Ollama to constrain the reply to JSON
            temperature: Sampling temperature (0.0-2.0)

        Returns:
            Response dict with 'message' containing 'content'

        Raises:
            httpx.HTTPError: On API errors
        """
        model = model or config.CHAT_MODEL

        payload: Dict[str, Any] = {
            "model": model,
            "messages": messages,
            "stream": False,
        }
        if json_output:
            payload["format"] = "json"
        if temperature is not None:
            payload["options"] = {"temperature": temperature}

        try:
            async with self._client() as client:
                logger.info(
                    "ollama_chat_request",
                    model=model,
                    message_count=len(messages),
                    json_output=json_output,
                )

                response = await client.post(f"{self.base_url}/api/chat", json=payload)
                response.raise_for_status()
                data = _json_object(response)

                logger.info(
                    "ollama_chat_response",
                    model=model,
                    response_bytes=len(response.content),
                )
                return data

        except httpx.ConnectError as e:
            logger.error("ollama_connection_error", error=str(e), base_url=self.base_url)
            raise
        except httpx.HTTPError as e:
            logger.error(
                "ollama_http_error",
                error=str(e),
                status_code=_status_code(e),
            )
            raise

    async def embeddings(self, prompt: str, model: str = None) -> Dict:
        """Generate an embedding for a text prompt.

        Args:
            prompt: Text to embed
            model: Model to use (defaults to config.EMBEDDING_MODEL)

        Returns:
            Response dict with 'embedding' list

        Raises:
            httpx.HTTPError: On API errors
        """
        model = model or config.EMBEDDING_MODEL
        payload = {"model": model, "prompt": prompt}

        try:
            async with self._client() as client:
                logger.debug(
                    "ollama_embedding_request",
                    model=model,
                    prompt_length=len(prompt),
                )

                response = await client.post(
                    f"{self.base_url}/api/embeddings", json=payload
                )
                response.raise_for_status()
                data = _json_object(response)

                logger.debug(
                    "ollama_embedding_response",
                    model=model,
                    response_bytes=len(response.content),
                )
                return data

        except httpx.HTTPError as e:
            logger.warning(
                "ollama_embedding_error", error=str(e), status_code=_status_code(e)
            )
            raise

    async def list_models(self) -> List[str]:
        """List all available Ollama models.

        Raises:
            httpx.HTTPError: On API errors
        """
        try:
            async with self._client(timeout=5.0) as client:
                response = await client.get(f"{self.base_url}/api/tags")
                response.raise_for_status()
                data = _json_object(response)
                return [m["name"] for m in data.get("models", [])]
        except httpx.HTTPError as e:
            logger.error("ollama_list_models_error", error=str(e))
            raise


class GeminiClient:
    """Async client for the Gemini REST API (generativelanguage v1beta)."""

    def __init__(
        self,
        api_key: str = None,
        base_url: str = None,
        timeout: float = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key or config.GEMINI_API_KEY
        self.base_url = (base_url or config.GEMINI_BASE_URL).rstrip("/")
        self.timeout = timeout or config.PROVIDER_TIMEOUT
        self._transport = transport

    def _client(self, timeout: float = None) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=timeout or self.timeout,
            transport=self._transport,
            headers={"x-goog-api-key": self.api_key or ""},
        )

    async def embed_content(self, text: str, model: str = None) -> Dict:
        """Embed a single text.

        Returns:
            Response dict shaped ``{"embedding": {"values": [...]}}``
        """
        model = model or config.GEMINI_EMBEDDING_MODEL
        payload = {
            "model": f"models/{model}",
            "content": {"parts": [{"text": text}]},
        }

        try:
            async with self._client() as client:
                response = await client.post(
                    f"{self.base_url}/models/{model}:embedContent", json=payload
                )
                response.raise_for_status()
                return _json_object(response)
        except httpx.HTTPError as e:
            logger.warning(
                "gemini_embedding_error", error=str(e), status_code=_status_code(e)
            )
            raise

    async def generate_content(
        self,
        prompt: str,
        system: Optional[str] = None,
        model: str = None,
        json_output: bool = False,
        temperature: float = 0.3,
    ) -> Dict:
        """Run a single-turn generation request."""
        model = model or config.GEMINI_CHAT_MODEL
        generation_config: Dict[str, Any] = {"temperature": temperature}
        if json_output:
            generation_config["responseMimeType"] = "application/json"

        payload: Dict[str, Any] = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": generation_config,
        }
        if system:
            payload["systemInstruction"] = {"parts": [{"text": system}]}

        try:
            async with self._client() as client:
                logger.info("gemini_generate_request", model=model, json_output=json_output)
                response = await client.post(
                    f"{self.base_url}/models/{model}:generateContent", json=payload
                )
                response.raise_for_status()
                return _json_object(response)
        except httpx.HTTPError as e:
            logger.error(
                "gemini_http_error", error=str(e), status_code=_status_code(e)
            )
            raise

    async def list_models(self) -> List[str]:
        try:
            async with self._client(timeout=5.0) as client:
                response = await client.get(f"{self.base_url}/models")
                response.raise_for_status()
                data = _json_object(response)
                return [
                    m["name"].removeprefix("models/") for m in data.get("models", [])
                ]
        except httpx.HTTPError as e:
            logger.error("gemini_list_models_error", error=str(e))
            raise


def _status_code(error: httpx.HTTPError) -> Optional[int]:
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code
    return None


def _json_object(response: httpx.Response) -> Dict[str, Any]:
    """Decode a reply body that must be a JSON object.

    Raises:
        ValueError: If the body is not JSON (``JSONDecodeError``) or not an object
    """
    data = response.json()
    if not isinstance(data, dict):
        raise ValueError(
            f"Expected a JSON object from {response.request.url}, "
            f"got {type(data).__name__}"
        )
    return data
