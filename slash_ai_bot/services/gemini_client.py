from __future__ import annotations

import json
from typing import Any, Dict, List

import aiohttp

from ..errors import GenerationError
from ..prompts.dialogue import build_generation_messages


class GeminiClient:
    def __init__(
        self,
        api_key: str,
        model: str,
        timeout_seconds: int,
        temperature: float,
        max_output_tokens: int,
        base_url: str = "https://generativelanguage.googleapis.com",
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self.temperature = temperature
        self.max_output_tokens: int | None = int(max_output_tokens) if int(max_output_tokens) > 0 else None
        self._session: aiohttp.ClientSession | None = None

    async def start(self) -> None:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()

    def _endpoint(self) -> str:
        return f"{self.base_url}/v1beta/models/{self.model}:generateContent"

    @staticmethod
    def _map_messages(messages: List[Dict[str, str]]) -> Dict[str, Any]:
        system_lines: List[str] = []
        contents: List[Dict[str, Any]] = []

        for message in messages:
            role = str(message.get("role", "")).strip().lower()
            content = str(message.get("content", "")).strip()
            if not content:
                continue
            if role == "system":
                system_lines.append(content)
                continue
            mapped_role = "model" if role == "assistant" else "user"
            contents.append({"role": mapped_role, "parts": [{"text": content}]})

        payload: Dict[str, Any] = {"contents": contents}
        if system_lines:
            payload["systemInstruction"] = {
                "parts": [{"text": "\n\n".join(system_lines)}],
            }
        return payload

    async def _request(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        if self._session is None or self._session.closed:
            await self.start()
        assert self._session is not None

        headers = {"x-goog-api-key": self.api_key}
        async with self._session.post(self._endpoint(), json=payload, headers=headers) as response:
            text = await response.text()
            if response.status != 200:
                raise GenerationError(f"Gemini error {response.status}: {text[:500]}")
        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise GenerationError("Gemini returned malformed JSON") from exc

    @staticmethod
    def _extract_text(data: Dict[str, Any]) -> str:
        candidates = data.get("candidates") or []
        if not candidates:
            prompt_feedback = data.get("promptFeedback") or {}
            block_reason = prompt_feedback.get("blockReason")
            if block_reason:
                raise GenerationError(f"Gemini blocked response: {block_reason}")
            raise GenerationError("Gemini returned no candidates")

        first = candidates[0]
        content = first.get("content") or {}
        parts = content.get("parts") or []
        chunks: List[str] = []

        for part in parts:
            text = part.get("text")
            if isinstance(text, str) and text.strip():
                chunks.append(text.strip())

        joined = "\n".join(chunks).strip()
        if joined:
            return joined

        finish_reason = first.get("finishReason")
        if finish_reason:
            raise GenerationError(f"Gemini empty response (finishReason={finish_reason})")
        raise GenerationError("Gemini empty response")

    async def chat(
        self,
        messages: List[Dict[str, str]],
        temperature: float | None = None,
        max_output_tokens: int | None = None,
    ) -> str:
        payload = self._map_messages(messages)
        generation_config: Dict[str, Any] = {
            "temperature": self.temperature if temperature is None else temperature,
        }
        selected_tokens = self.max_output_tokens if max_output_tokens is None else max_output_tokens
        if selected_tokens is not None and int(selected_tokens) > 0:
            generation_config["maxOutputTokens"] = int(selected_tokens)
        payload["generationConfig"] = generation_config
        data = await self._request(payload)
        return self._extract_text(data)

    async def generate(
        self,
        prompt: str,
        history: List[Dict[str, str]],
        personality: str | None = None,
        length: str | None = None,
    ) -> str:
        messages = build_generation_messages(prompt, history, personality=personality, length=length)
        return await self.chat(messages)
