#!/usr/bin/env python3
import base64
from typing import Any, Dict, List, Optional

import aiohttp

from .exceptions import LLMError


def _b64(image: bytes) -> str:
    return base64.b64encode(image).decode("utf-8")


class SimpleOllama:
    """Minimal async Ollama client (text and vision models)"""
    def __init__(self, base_url: str, model: str, num_predict: int, temperature: float, timeout: int = 300):
        self.base_url = base_url.rstrip('/')
        self.model = model
        self.timeout = timeout
        self.options = {
            "num_predict": num_predict,
            "temperature": temperature,
        }

    async def _generate(self, payload: Dict[str, Any]) -> Dict[str, str]:
        timeout_obj = aiohttp.ClientTimeout(total=self.timeout)
        async with aiohttp.ClientSession(timeout=timeout_obj) as session:
            async with session.post(f"{self.base_url}/api/generate", json=payload) as resp:
                if resp.status != 200:
                    error_text = await resp.text()
                    raise LLMError(f"Ollama error {resp.status}: {error_text}")
                data = await resp.json()
        text = data.get("response", "") if isinstance(data, dict) else str(data)
        return {"text": text}

    async def ainvoke(self, prompt: str) -> Dict[str, str]:
        payload = {
            "model": self.model,
            "prompt": prompt,
            "stream": False,
            "options": self.options,
        }
        return await self._generate(payload)

    async def ainvoke_with_image(self, prompt: str, image: bytes) -> Dict[str, str]:
        """
        Invoke LLM with a PNG image (vision/multimodal).
        Requires vision-capable model (e.g., llava, qwen2.5vl).
        """
        payload = {
            "model": self.model,
            "prompt": prompt,
            "images": [_b64(image)],
            "stream": False,
            "options": self.options,
        }
        return await self._generate(payload)


class OpenAICompatibleClient:
    """
    OpenAI-compatible async client.
    Works with OpenAI, Groq, DeepSeek and other OpenAI-compatible APIs.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.openai.com/v1",
        model: str = "gpt-4o-mini",
        temperature: float = 0.3,
        max_tokens: int = 1000,
        timeout: int = 120,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout = timeout

    async def _complete(self, content: Any) -> Dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        payload = {
            "model": self.model,
            "messages": [{"role": "user", "content": content}],
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }

        timeout_obj = aiohttp.ClientTimeout(total=self.timeout)
        async with aiohttp.ClientSession(timeout=timeout_obj) as session:
            async with session.post(
                f"{self.base_url}/chat/completions",
                headers=headers,
                json=payload
            ) as resp:
                if resp.status != 200:
                    error_text = await resp.text()
                    raise LLMError(f"API error {resp.status}: {error_text}")
                data = await resp.json()

        text = data.get("choices", [{}])[0].get("message", {}).get("content", "")
        return {"text": text or ""}

    async def ainvoke(self, prompt: str) -> Dict[str, str]:
        """Async invoke the LLM"""
        return await self._complete(prompt)

    async def ainvoke_with_image(self, prompt: str, image: bytes) -> Dict[str, str]:
        """Async invoke with a PNG screenshot attached as a data URL"""
        content: List[Dict[str, Any]] = [
            {"type": "text", "text": prompt},
            {"type": "image_url", "image_url": {"url": f"data:image/png;base64,{_b64(image)}"}},
        ]
        return await self._complete(content)


async def invoke_text(llm, prompt: str, image: Optional[bytes] = None) -> str:
    """Call an LLM client and return the plain response text."""
    if image is not None and hasattr(llm, "ainvoke_with_image"):
        result = await llm.ainvoke_with_image(prompt, image)
    else:
        result = await llm.ainvoke(prompt)
    if isinstance(result, dict):
        return str(result.get("text", ""))
    return str(result)
