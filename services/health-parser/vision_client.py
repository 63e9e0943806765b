"""Clients for the vision-language inference backends.

Two variants share one capability set: a local Ollama server (official
``ollama`` async client) and any OpenAI-compatible chat-completions API
(plain httpx). Both take backend-neutral messages from ``prompts`` and
return the raw model text; JSON recovery and retries live in the
extractor.
"""

import logging
from abc import ABC, abstractmethod

import httpx
import ollama

from config import settings
from errors import BackendUnavailable, ModelNotFound
from models import ModelInfo

logger = logging.getLogger(__name__)


class VisionServiceUnavailable(Exception):
    """Backend is temporarily unavailable (retryable: 429/503, connection error)."""


class VisionServiceError(Exception):
    """Backend returned a non-retryable error (400, 401, 500 from a remote API)."""


def _strip_data_url(image: str) -> str:
    """Ollama wants raw base64, not a data URL."""
    return image.split(",", 1)[1] if image.startswith("data:") else image


class VisionClient(ABC):
    name: str = ""
    api_key_required: bool = False
    api_url_required: bool = False
    # Local, GPU-bound servers get one request at a time
    resource_constrained: bool = False

    @property
    def enabled(self) -> bool:
        return True

    @abstractmethod
    async def models(self, api_url: str | None = None, api_key: str = "") -> list[ModelInfo]:
        """Models the backend can serve for vision extraction."""

    @abstractmethod
    async def health_check(
        self,
        model: str,
        api_url: str | None = None,
        api_key: str = "",
        timeout: float | None = None,
    ) -> None:
        """Raise BackendUnavailable or ModelNotFound unless the model is ready."""

    @abstractmethod
    async def chat(
        self,
        model: str,
        messages: list[dict],
        api_key: str = "",
        api_url: str | None = None,
    ) -> str:
        """Run one JSON-constrained completion and return the raw text."""

    async def close(self) -> None:
        """Release pooled connections."""


class OllamaVisionClient(VisionClient):
    name = "Ollama"
    resource_constrained = True

    def __init__(
        self,
        base_url: str | None = None,
        temperature: float | None = None,
        local: bool | None = None,
    ):
        self._base_url = (base_url or settings.OLLAMA_URL).rstrip("/")
        self._temperature = temperature if temperature is not None else settings.INFERENCE_TEMPERATURE
        self._local = local if local is not None else settings.is_local
        # one pooled client per (host, timeout), closed on shutdown
        self._clients: dict[tuple[str, float | None], ollama.AsyncClient] = {}

    @property
    def enabled(self) -> bool:
        # In-process inference only exists in the local deployment
        return self._local

    def _client_for(self, api_url: str | None, timeout: float | None = None) -> ollama.AsyncClient:
        key = (api_url or self._base_url, timeout)
        client = self._clients.get(key)
        if client is None:
            client = self._clients[key] = ollama.AsyncClient(host=key[0], timeout=timeout)
        return client

    async def close(self) -> None:
        clients, self._clients = list(self._clients.values()), {}
        for client in clients:
            await client.close()

    async def _list_names(self, client: ollama.AsyncClient) -> list[str]:
        resp = await client.list()
        return [m.get("model") or m.get("name") for m in resp["models"]]

    async def models(self, api_url: str | None = None, api_key: str = "") -> list[ModelInfo]:
        client = self._client_for(api_url)
        try:
            names = await self._list_names(client)
        except (ConnectionError, httpx.HTTPError, ollama.ResponseError) as e:
            logger.warning("[Ollama] cannot list models at %s: %s", api_url or self._base_url, e)
            return []

        catalog = []
        for name in names:
            try:
                info = await client.show(name)
            except ollama.ResponseError as e:
                logger.debug("[Ollama] show %s failed: %s", name, e)
                continue
            if "vision" in (info.get("capabilities") or []):
                catalog.append(ModelInfo(id=name, name=name))
        return catalog

    async def health_check(
        self,
        model: str,
        api_url: str | None = None,
        api_key: str = "",
        timeout: float | None = None,
    ) -> None:
        url = api_url or self._base_url
        timeout = timeout if timeout is not None else settings.HEALTH_CHECK_TIMEOUT_SECONDS
        try:
            names = await self._list_names(self._client_for(url, timeout))
        except (ConnectionError, httpx.HTTPError, ollama.ResponseError) as e:
            logger.error("[Ollama] health check failed at %s: %s", url, e)
            raise BackendUnavailable(
                f"Ollama server is not reachable at {url}. Make sure it is running.",
                backend=self.name,
                api_url=url,
            ) from e

        if not _has_model(names, model):
            raise ModelNotFound(
                f"Model {model} is not installed. Run: ollama pull {model}",
                backend=self.name,
                api_url=url,
                model=model,
            )

    async def chat(
        self,
        model: str,
        messages: list[dict],
        api_key: str = "",
        api_url: str | None = None,
    ) -> str:
        payload = []
        for msg in messages:
            out = {"role": msg["role"], "content": msg["content"]}
            if msg.get("image"):
                out["images"] = [_strip_data_url(msg["image"])]
            payload.append(out)

        try:
            resp = await self._client_for(api_url).chat(
                model=model,
                messages=payload,
                format="json",
                options={"temperature": self._temperature, "num_predict": -1},
            )
        except (ConnectionError, httpx.ConnectError, httpx.ConnectTimeout) as e:
            logger.warning("[Ollama] connection failed: %s", e)
            raise VisionServiceUnavailable(f"Cannot connect to Ollama: {e}") from e
        except httpx.TimeoutException as e:
            raise TimeoutError(f"Ollama read timeout: {e}") from e
        except httpx.TransportError as e:
            logger.warning("[Ollama] transport error: %s", e)
            raise VisionServiceUnavailable(f"Ollama transport error: {e}") from e
        except ollama.ResponseError as e:
            if e.status_code == 404:
                raise ModelNotFound(
                    f"Model {model} is not installed. Run: ollama pull {model}",
                    backend=self.name,
                    api_url=api_url or self._base_url,
                    model=model,
                ) from e
            if e.status_code >= 500 or e.status_code == 429:
                logger.warning("[Ollama] returned %d: %s", e.status_code, e.error)
                raise VisionServiceUnavailable(e.error) from e
            logger.error("[Ollama] error %d: %s", e.status_code, e.error)
            raise VisionServiceError(e.error) from e

        return resp["message"]["content"] or ""


class OpenAIVisionClient(VisionClient):
    name = "OpenAI"
    api_key_required = True

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        temperature: float | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._base_url = (base_url or settings.OPENAI_API_URL).rstrip("/")
        self._api_key = api_key if api_key is not None else settings.OPENAI_API_KEY
        self._temperature = temperature if temperature is not None else settings.INFERENCE_TEMPERATURE
        self._timeout = timeout if timeout is not None else settings.INFERENCE_TIMEOUT_SECONDS
        self._transport = transport

    def _client(self, api_url: str | None, api_key: str, timeout: float) -> httpx.AsyncClient:
        headers = {}
        key = api_key or self._api_key
        if key:
            headers["Authorization"] = f"Bearer {key}"
        return httpx.AsyncClient(
            base_url=(api_url or self._base_url).rstrip("/"),
            headers=headers,
            timeout=httpx.Timeout(timeout, connect=10.0),
            transport=self._transport,
        )

    async def _list_ids(self, api_url: str | None, api_key: str, timeout: float) -> list[str]:
        async with self._client(api_url, api_key, timeout) as client:
            resp = await client.get("/models")
        resp.raise_for_status()
        return [m["id"] for m in resp.json().get("data", [])]

    async def models(self, api_url: str | None = None, api_key: str = "") -> list[ModelInfo]:
        try:
            ids = await self._list_ids(api_url, api_key, settings.HEALTH_CHECK_TIMEOUT_SECONDS)
        except httpx.HTTPError as e:
            logger.warning("[OpenAI] cannot list models: %s", e)
            return []
        return [ModelInfo(id=i, name=i) for i in ids]

    async def health_check(
        self,
        model: str,
        api_url: str | None = None,
        api_key: str = "",
        timeout: float | None = None,
    ) -> None:
        url = api_url or self._base_url
        timeout = timeout if timeout is not None else settings.HEALTH_CHECK_TIMEOUT_SECONDS
        try:
            ids = await self._list_ids(api_url, api_key, timeout)
        except httpx.HTTPError as e:
            logger.error("[OpenAI] health check failed at %s: %s", url, e)
            raise BackendUnavailable(
                f"Vision API is not reachable at {url}: {e}",
                backend=self.name,
                api_url=url,
            ) from e

        if model not in ids:
            raise ModelNotFound(
                f"Model {model} is not available at {url}",
                backend=self.name,
                api_url=url,
                model=model,
            )

    async def chat(
        self,
        model: str,
        messages: list[dict],
        api_key: str = "",
        api_url: str | None = None,
    ) -> str:
        payload = {
            "model": model,
            "messages": [_to_openai_message(m) for m in messages],
            "temperature": self._temperature,
            "response_format": {"type": "json_object"},
        }

        try:
            async with self._client(api_url, api_key, self._timeout) as client:
                resp = await client.post("/chat/completions", json=payload)
        except (httpx.ConnectError, httpx.ConnectTimeout) as e:
            logger.warning("[OpenAI] connection failed: %s", e)
            raise VisionServiceUnavailable(f"Cannot connect to vision API: {e}") from e
        except httpx.TimeoutException as e:
            raise TimeoutError(f"Vision API read timeout: {e}") from e
        except httpx.HTTPError as e:
            logger.error("[OpenAI] HTTP error: %s", e)
            raise VisionServiceError(f"Vision API HTTP error: {e}") from e

        if resp.status_code in (429, 503):
            logger.warning("[OpenAI] returned %d", resp.status_code)
            raise VisionServiceUnavailable(f"Vision API returned HTTP {resp.status_code}")

        if resp.status_code != 200:
            logger.error("[OpenAI] error %d: %s", resp.status_code, resp.text[:200])
            raise VisionServiceError(f"Vision API returned HTTP {resp.status_code}")

        return resp.json()["choices"][0]["message"]["content"] or ""


def _to_openai_message(msg: dict) -> dict:
    if not msg.get("image"):
        return {"role": msg["role"], "content": msg["content"]}
    parts = []
    if msg["content"]:
        parts.append({"type": "text", "text": msg["content"]})
    parts.append({"type": "image_url", "image_url": {"url": msg["image"]}})
    return {"role": msg["role"], "content": parts}


def _has_model(names: list[str], model: str) -> bool:
    # "llama3.2-vision" matches the "llama3.2-vision:latest" tag
    wanted = model if ":" in model else f"{model}:latest"
    return any(n in (model, wanted) for n in names)
