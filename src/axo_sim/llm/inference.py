from __future__ import annotations

import asyncio
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any

import aiohttp
import requests

from axo_sim.config.settings import LLMSettings


class InferenceAdapter:
    """Text generation through OpenRouter (aiohttp) or a local Ollama (requests).

    Embeddings always go to Ollama.
    """

    _request_semaphore = threading.Semaphore(3)
    # Ollama calls are blocking; they run here so the event loop stays free
    _thread_pool = ThreadPoolExecutor(max_workers=10, thread_name_prefix="ollama")

    def __init__(self, settings: LLMSettings) -> None:
        self._settings = settings
        self._logger = logging.getLogger("axo_sim.llm")

    # ------------------------------------------------------------------
    # Ollama
    # ------------------------------------------------------------------

    def _post_with_retry(self, endpoint: str, payload: dict[str, Any]) -> dict[str, Any]:
        url = f"{self._settings.ollama_host}{endpoint}"
        attempts = self._settings.max_retries + 1
        last_error: Exception | None = None
        for attempt in range(1, attempts + 1):
            try:
                with self._request_semaphore:
                    response = requests.post(
                        url, json=payload, timeout=self._settings.timeout_seconds
                    )
                    response.raise_for_status()
                    return response.json()
            except (requests.exceptions.ReadTimeout, requests.exceptions.ConnectionError) as exc:
                last_error = exc
                if attempt >= attempts:
                    break
                self._logger.warning(
                    "Ollama request retrying endpoint=%s attempt=%d/%d error=%s",
                    endpoint,
                    attempt,
                    attempts,
                    exc.__class__.__name__,
                )
                time.sleep(self._settings.retry_backoff_seconds * attempt)
        raise RuntimeError(f"Ollama request failed for {endpoint}") from last_error

    def _sync_generate_timed(self, prompt: str, timeout_s: float) -> tuple[str, float]:
        url = f"{self._settings.ollama_host}/api/generate"
        payload = {
            "model": self._settings.ollama_model,
            "prompt": prompt,
            "stream": False,
            "options": {
                "temperature": self._settings.temperature,
                "num_predict": self._settings.max_tokens,
            },
        }
        t0 = time.perf_counter()
        req_timeout = timeout_s if timeout_s and timeout_s > 0 else None
        self._logger.debug(
            "OLLAMA request model=%s prompt_len=%d", self._settings.ollama_model, len(prompt)
        )
        try:
            resp = requests.post(url, json=payload, timeout=req_timeout)
            resp.raise_for_status()
            data = resp.json()
        except requests.exceptions.Timeout as exc:
            self._logger.warning("OLLAMA timeout after %.0fs", time.perf_counter() - t0)
            raise RuntimeError("LLM timeout") from exc
        except requests.exceptions.RequestException as exc:
            self._logger.warning(
                "OLLAMA request error after %.0fs: %s", time.perf_counter() - t0, exc
            )
            raise RuntimeError("LLM request error") from exc

        latency_ms = (time.perf_counter() - t0) * 1000.0
        text = str(data.get("response", "")).strip()
        self._logger.debug("OLLAMA response latency=%.0fms tokens~%d", latency_ms, len(text) // 4)
        return text, latency_ms

    # ------------------------------------------------------------------
    # OpenRouter
    # ------------------------------------------------------------------

    async def _openrouter_generate(
        self, prompt: str, timeout_s: float, session: aiohttp.ClientSession
    ) -> tuple[str, float]:
        url = f"{self._settings.openrouter_base_url}/chat/completions"
        headers = {
            "Authorization": f"Bearer {self._settings.openrouter_api_key}",
            "Content-Type": "application/json",
            "X-Title": "axo-sim",
        }
        payload = {
            "model": self._settings.openrouter_model,
            "messages": [{"role": "user", "content": prompt}],
            "max_tokens": self._settings.max_tokens,
            "temperature": self._settings.temperature,
        }
        attempts = self._settings.max_retries + 1
        last_error: Exception | None = None
        t0 = time.perf_counter()
        for attempt in range(1, attempts + 1):
            try:
                async with session.post(
                    url,
                    json=payload,
                    headers=headers,
                    timeout=aiohttp.ClientTimeout(total=timeout_s),
                ) as resp:
                    if resp.status >= 400:
                        body = await resp.text()
                        raise RuntimeError(f"OpenRouter error {resp.status}: {body[:200]}")
                    data = await resp.json()
                choices = data.get("choices") or [{}]
                text = str((choices[0].get("message") or {}).get("content") or "").strip()
                latency_ms = (time.perf_counter() - t0) * 1000.0
                self._logger.debug(
                    "OPENROUTER response model=%s latency=%.0fms",
                    data.get("model", self._settings.openrouter_model),
                    latency_ms,
                )
                return text, latency_ms
            except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
                last_error = exc
                if attempt >= attempts:
                    break
                self._logger.warning(
                    "OpenRouter request retrying attempt=%d/%d error=%s",
                    attempt,
                    attempts,
                    exc.__class__.__name__,
                )
                await asyncio.sleep(self._settings.retry_backoff_seconds * attempt)
        raise RuntimeError("OpenRouter request failed") from last_error

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def async_generate(
        self,
        prompt: str,
        timeout_s: float | None = None,
        semaphore: asyncio.Semaphore | None = None,
        session: aiohttp.ClientSession | None = None,
    ) -> tuple[str, float]:
        """Returns (response_text, latency_ms). Raises RuntimeError on failure."""
        effective_timeout = (
            timeout_s if timeout_s is not None else float(self._settings.timeout_seconds)
        )

        async def _run() -> tuple[str, float]:
            if self._settings.provider == "openrouter":
                if session is not None:
                    return await self._openrouter_generate(prompt, effective_timeout, session)
                async with aiohttp.ClientSession() as own_session:
                    return await self._openrouter_generate(
                        prompt, effective_timeout, own_session
                    )
            loop = asyncio.get_running_loop()
            return await loop.run_in_executor(
                self._thread_pool, self._sync_generate_timed, prompt, effective_timeout
            )

        if semaphore is not None:
            async with semaphore:
                return await _run()
        return await _run()

    def embed(self, text: str) -> list[float]:
        payload = self._post_with_retry(
            "/api/embeddings",
            {"model": self._settings.embedding_model, "prompt": text},
        )
        return payload.get("embedding", [])
