"""
OpenAI-compatible tone backend.

Talks to any chat-completions endpoint (OpenAI, OpenRouter, local
gateways). Requests time out after 15s and are attempted up to 3 times:
HTTP 429 backs off 0.5s * attempt^2, network errors back off 1s * attempt.
"""

import asyncio
import json
import logging
import time
from typing import Any, Awaitable, Callable

import httpx

from biztone.errors import RemoteServiceError
from biztone.llm.base import Decision, DecisionAction, ToneBackend

logger = logging.getLogger(__name__)

CONVERT_SYSTEM_PROMPT = """너는 한국 직장 문화에 익숙한 '비즈니스 커뮤니케이션 전문가'다.
역할: 입력된 문장을 정중하고 전문적인 비즈니스 톤으로 변환한다.

규칙:
- 감정적 표현을 중립적이고 객관적으로 변경
- 명령형을 정중한 요청형으로 변경
- 비속어나 부적절한 표현을 적절한 비즈니스 용어로 대체
- 한국어 존댓말과 비즈니스 매너를 반영
- 원문의 핵심 의미는 유지하되 톤만 개선

중요: 변환된 문장만 출력하고, 설명은 절대 포함하지 마세요."""

CONVERT_USER_PROMPT = """다음 문장을 비즈니스 톤으로 변환하되, 변환된 문장만 출력하세요:

{text}

변환된 문장:"""

DECIDE_SYSTEM_PROMPT = """너는 한국 직장 문화에 익숙한 '비즈니스 커뮤니케이션 가드'다.
역할: 입력 문장이 '그대로 보내도 안전한지' 또는 '비즈니스 톤으로 변환해야 하는지'를 결정한다.
출력은 반드시 JSON 한 줄로만 한다."""

DECIDE_USER_PROMPT = """다음 문장을 평가해라.
- 안전 판단 기준 예시: 비속어/모욕/공격/비난, 과도한 명령/책임전가, 과격한 감정 표현 등.
- 안전하면 action:"send", 아니면 action:"convert".
- 출력 형식: {{"action": "send" 또는 "convert", "label": "적절함" 또는 "부적절함", "rationale": "1줄 이유", "converted_text": "변환된 텍스트"}}
- convert일 때만 converted_text에 정중하고 간결(한국 비즈니스 톤, ~150자)하게 변환한 결과를 넣어라.
- rationale은 1줄 한국어로 아주 간단히.

문장: {text}"""


class OpenAIToneBackend(ToneBackend):
    """Chat-completions tone backend with retry and backoff."""

    def __init__(
        self,
        api_key: str | None,
        model_name: str = "gpt-4o-mini",
        base_url: str = "https://api.openai.com/v1",
        timeout: float = 15.0,
        max_retries: int = 3,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        **kwargs: Any
    ):
        """Initialize the backend.

        Args:
            api_key: Bearer token. Requests fail fast without one.
            model_name: Chat model to use.
            base_url: API root, without the /chat/completions suffix.
            timeout: Per-request timeout in seconds.
            max_retries: Total attempts per request.
            transport: Optional httpx transport (tests use MockTransport).
            sleep: Coroutine used for backoff delays.
        """
        super().__init__(model_name, **kwargs)
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self._sleep = sleep
        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self._client = httpx.AsyncClient(timeout=timeout, headers=headers, transport=transport)

    async def convert(self, text: str) -> str:
        payload = {
            "model": self.model_name,
            "temperature": 0.3,
            "max_tokens": 200,
            "messages": [
                {"role": "system", "content": CONVERT_SYSTEM_PROMPT},
                {"role": "user", "content": CONVERT_USER_PROMPT.format(text=text)},
            ],
        }
        content = await self._complete(payload, operation="convert")
        return content.strip() or text

    async def decide(self, text: str) -> Decision:
        payload = {
            "model": self.model_name,
            "temperature": 0.0,
            "max_tokens": 150,
            "response_format": {"type": "json_object"},
            "messages": [
                {"role": "system", "content": DECIDE_SYSTEM_PROMPT},
                {"role": "user", "content": DECIDE_USER_PROMPT.format(text=text)},
            ],
        }
        content = await self._complete(payload, operation="decide")
        return self._parse_decision(content)

    def _parse_decision(self, content: str) -> Decision:
        try:
            parsed = json.loads(content or "{}")
        except json.JSONDecodeError as e:
            raise RemoteServiceError(f"Decision is not valid JSON: {e}") from e
        if not isinstance(parsed, dict):
            raise RemoteServiceError("Decision is not a JSON object")

        try:
            action = DecisionAction(parsed.get("action"))
        except ValueError:
            raise RemoteServiceError(f"Unknown decision action: {parsed.get('action')!r}")

        converted = (parsed.get("converted_text") or "").strip() or None
        if action == DecisionAction.CONVERT and not converted:
            raise RemoteServiceError("Convert decision without converted text")

        return Decision(
            action=action,
            converted_text=converted if action == DecisionAction.CONVERT else None,
            label=str(parsed.get("label") or ""),
            rationale=str(parsed.get("rationale") or ""),
        )

    async def _complete(self, payload: dict[str, Any], operation: str) -> str:
        """POST a chat completion and return the first message content."""
        if not self.api_key:
            raise RemoteServiceError("API key is not configured")

        start_time = time.time()
        response = await self._post_with_retry(payload, operation)

        if not response.is_success:
            raise RemoteServiceError(
                f"{operation} failed ({response.status_code}): {response.text[:200]}",
                status_code=response.status_code,
            )

        try:
            result = response.json()
            content = result["choices"][0]["message"]["content"] or ""
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise RemoteServiceError(f"{operation} returned a malformed body: {e}") from e

        logger.debug(f"{operation} completed in {(time.time() - start_time) * 1000:.0f}ms")
        return content

    async def _post_with_retry(self, payload: dict[str, Any], operation: str) -> httpx.Response:
        url = f"{self.base_url}/chat/completions"
        for attempt in range(1, self.max_retries + 1):
            try:
                response = await self._client.post(url, json=payload)
            except httpx.TimeoutException as e:
                raise RemoteServiceError(f"{operation} timed out after {self.timeout}s") from e
            except httpx.TransportError as e:
                if attempt == self.max_retries:
                    raise RemoteServiceError(f"{operation} failed: {e}") from e
                logger.warning(f"{operation} network error (attempt {attempt}): {e}")
                await self._sleep(1.0 * attempt)
                continue

            if response.status_code != 429 or attempt == self.max_retries:
                return response

            logger.warning(f"{operation} rate limited (attempt {attempt})")
            await self._sleep(0.5 * attempt * attempt)

        raise RemoteServiceError(f"{operation} failed after {self.max_retries} attempts")

    async def health_check(self) -> bool:
        """Check if the models endpoint is accessible."""
        if not self.api_key:
            return False
        try:
            response = await self._client.get(f"{self.base_url}/models")
            return response.status_code == 200
        except httpx.HTTPError:
            return False

    async def shutdown(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

    def get_info(self) -> dict[str, Any]:
        return {
            "backend": "openai",
            "model_name": self.model_name,
            "base_url": self.base_url,
            "configured": bool(self.api_key),
        }
