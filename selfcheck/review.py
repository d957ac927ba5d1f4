import json
import logging
from typing import Any, Dict, List, Optional, Protocol

import httpx
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from selfcheck.errors import ReviewError
from selfcheck.models import ReviewOutcome, ReviewRequest

logger = logging.getLogger(__name__)

DEFAULT_REJECTION = "Proof was rejected by AI review"

SYSTEM_PROMPT = (
    "You review proof of completion submitted for a bounty task. "
    "Judge only whether the proof satisfies the task description and the reviewer instructions. "
    'Reply with a JSON object: {"approved": true or false, "reviewComment": "..."}. '
    "When approving, reviewComment is a short factual summary of what the proof demonstrates. "
    "When rejecting, reviewComment tells the submitter what is missing or wrong."
)


class ReviewEvaluator(Protocol):
    async def evaluate(self, request: ReviewRequest) -> ReviewOutcome:
        ...


def build_messages(request: ReviewRequest) -> List[Dict[str, str]]:
    sections = [
        f"Task description:\n{request.task_description or '(none)'}",
        f"Accepted proof types: {', '.join(request.proof_types) if request.proof_types else '(any)'}",
    ]
    if request.review_prompt:
        sections.append(f"Reviewer instructions:\n{request.review_prompt}")
    sections.append(f"Submitted proof (JSON):\n{json.dumps(request.proof_data, ensure_ascii=False, indent=2)}")
    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": "\n\n".join(sections)},
    ]


def parse_review(content: Any) -> ReviewOutcome:
    try:
        data = json.loads(content)
    except (TypeError, json.JSONDecodeError) as exc:
        raise ReviewError(f"AI review returned non-JSON content: {exc}") from exc
    if not isinstance(data, dict):
        raise ReviewError("AI review returned a non-object answer")

    approved = data.get("approved")
    if not isinstance(approved, bool):
        raise ReviewError("AI review answer has no boolean 'approved'")
    comment = data.get("reviewComment")
    if comment is not None and not isinstance(comment, str):
        comment = json.dumps(comment, ensure_ascii=False)

    if approved:
        # Approved comments are signed and must not be empty
        if not comment or not comment.strip():
            raise ReviewError("AI review approved without a reviewComment")
        return ReviewOutcome(approved=True, result_payload=comment)
    return ReviewOutcome(approved=False, result_payload=comment or DEFAULT_REJECTION)


class LLMReviewEvaluator:
    """Reviews proof through an OpenAI-compatible chat-completions endpoint."""

    def __init__(
        self,
        api_key: Optional[str],
        base_url: str = "https://api.openai.com/v1",
        model: str = "gpt-4o-mini",
        request_timeout: float = 20.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._api_key = api_key
        self._url = f"{base_url.rstrip('/')}/chat/completions"
        self._model = model
        self._request_timeout = request_timeout
        self._transport = transport

    async def evaluate(self, request: ReviewRequest) -> ReviewOutcome:
        if not self._api_key:
            raise ReviewError("AI review requested but AI_REVIEW_API_KEY is not configured")
        logger.info("Starting AI review", extra={"model": self._model, "proof_types": request.proof_types})
        content = await self._complete(build_messages(request))
        outcome = parse_review(content)
        logger.info("AI review finished", extra={"approved": outcome.approved})
        return outcome

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=8),
        retry=retry_if_exception_type(httpx.HTTPError),
        reraise=True
    )
    async def _complete(self, messages: List[Dict[str, str]]) -> str:
        headers = {"Authorization": f"Bearer {self._api_key}"}
        json_payload = {
            "model": self._model,
            "messages": messages,
            "temperature": 0,
            "response_format": {"type": "json_object"},
        }
        async with httpx.AsyncClient(transport=self._transport) as client:
            response = await client.post(self._url, json=json_payload, headers=headers, timeout=self._request_timeout)
            response.raise_for_status()
        data = response.json()
        try:
            return data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as exc:
            raise ReviewError("AI review response has no message content") from exc
