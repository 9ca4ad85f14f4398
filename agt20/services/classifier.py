"""
Blessing classifier backed by an OpenAI-compatible chat completions endpoint.

The verdict is advisory: an unreachable or unconfigured model yields UNAVAILABLE,
which the rate guard treats as a pass.
"""

from enum import Enum
from typing import Iterable, List, Dict, Optional

import httpx
import structlog

from agt20.config import settings

logger = structlog.get_logger()

SYSTEM_PROMPT = (
    "You are a validator that checks if a message is a genuine New Year blessing or greeting.\n"
    "Valid blessings include: wishes for prosperity, health, happiness, luck, success, family harmony, etc.\n"
    "They can be in any language (English, Chinese, etc.).\n"
    "Invalid: random text, insults, spam, unrelated content.\n"
    'Respond with ONLY "VALID" or "INVALID" - nothing else.'
)


class BlessingVerdict(Enum):
    VALID = "valid"
    INVALID = "invalid"
    UNAVAILABLE = "unavailable"

    @property
    def allows_mint(self) -> bool:
        # fail open: only a confirmed INVALID blocks a mint
        return self is not BlessingVerdict.INVALID


def requires_blessing(ticker: str, gated_tokens: Iterable[str] = None) -> bool:
    tokens = settings.BLESSING_REQUIRED_TOKENS if gated_tokens is None else gated_tokens
    return ticker.upper() in {t.upper() for t in tokens}


def interpret_answer(answer: Optional[str]) -> BlessingVerdict:
    if answer is None or not answer.strip():
        return BlessingVerdict.UNAVAILABLE
    normalized = answer.strip().upper()
    if "VALID" in normalized and "INVALID" not in normalized:
        return BlessingVerdict.VALID
    return BlessingVerdict.INVALID


class BlessingClassifier:
    """Ask the model whether free text is a New Year blessing"""

    def __init__(
        self,
        api_key: Optional[str] = None,
        api_url: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.Client] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.NVIDIA_API_KEY
        self.api_url = api_url or settings.NVIDIA_API_URL
        self.model = model or settings.CLASSIFIER_MODEL
        self.client = client or httpx.Client(
            timeout=httpx.Timeout(timeout or settings.CLASSIFIER_TIMEOUT, connect=5.0)
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    def classify(self, blessing: str) -> BlessingVerdict:
        messages = [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": f'Is this a valid New Year blessing?\n\n"{blessing}"'},
        ]
        answer = self._complete(messages)
        verdict = interpret_answer(answer)
        logger.info("Blessing classified", verdict=verdict.value, blessing=blessing[:80])
        return verdict

    def _complete(self, messages: List[Dict[str, str]]) -> Optional[str]:
        if not self.is_configured:
            logger.info("NVIDIA_API_KEY not configured, skipping blessing verification")
            return None

        try:
            response = self.client.post(
                self.api_url,
                headers={
                    "Content-Type": "application/json",
                    "Authorization": f"Bearer {self.api_key}",
                },
                json={
                    "model": self.model,
                    "messages": messages,
                    "max_tokens": 100,
                    "temperature": 0.1,
                },
            )
        except httpx.RequestError as e:
            logger.error("Classifier request failed", error=str(e))
            return None

        if response.status_code != 200:
            logger.error("Classifier returned non-200 status", status=response.status_code)
            return None

        try:
            data = response.json()
            return data["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            logger.error("Failed to read classifier response", error=str(e))
            return None
