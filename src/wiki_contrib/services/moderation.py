"""Content moderation for anonymous submissions.

The hosted OpenAI moderation endpoint is the primary classifier. Whenever it
is unavailable (no key, transport error, bad status or unparseable body) the
local :class:`DenylistClassifier` answers instead, so moderation never
silently passes content through unchecked.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any, Final

import httpx

from wiki_contrib.core.settings import settings

logger = logging.getLogger(__name__)

METHOD_PRIMARY: Final[str] = "primary"
METHOD_FALLBACK: Final[str] = "fallback"

# Common look-alike substitutions folded back to letters before matching.
_LEET_TABLE = str.maketrans(
    {
        "0": "o",
        "1": "i",
        "3": "e",
        "4": "a",
        "@": "a",
        "5": "s",
        "$": "s",
        "7": "t",
        "8": "b",
    }
)

DEFAULT_DENYLIST: Final[tuple[str, ...]] = (
    "arsehole",
    "asshole",
    "bastard",
    "bitch",
    "bollocks",
    "bullshit",
    "cock",
    "cocksucker",
    "cunt",
    "dickhead",
    "fag",
    "faggot",
    "fuck",
    "fucker",
    "fucking",
    "jackass",
    "kike",
    "motherfucker",
    "nigga",
    "nigger",
    "prick",
    "pussy",
    "retard",
    "shit",
    "shithead",
    "slut",
    "spic",
    "twat",
    "wanker",
    "whore",
)


@dataclass(frozen=True)
class ModerationVerdict:
    """Classification outcome for one piece of text."""

    flagged: bool
    method: str
    categories: dict[str, bool] = field(default_factory=dict)


def normalize_for_matching(text: str) -> str:
    """Lowercase ``text`` and undo simple leetspeak substitutions."""
    return text.lower().translate(_LEET_TABLE)


class DenylistClassifier:
    """Whole-word phrase matcher over a fixed denylist.

    Matching is case-insensitive and runs on leetspeak-normalized text.
    Word boundaries keep innocent words such as "class" or "Scunthorpe"
    from matching; a short plural/verb suffix is still allowed.
    """

    def __init__(self, words: Iterable[str] = DEFAULT_DENYLIST) -> None:
        terms = sorted({normalize_for_matching(word.strip()) for word in words if word.strip()})
        if terms:
            alternation = "|".join(re.escape(term).replace(r"\ ", r"\s+") for term in terms)
            self._pattern: re.Pattern[str] | None = re.compile(
                rf"\b(?:{alternation})(?:s|es|ed|er|ers|ing)?\b"
            )
        else:
            self._pattern = None

    def matches(self, text: str) -> bool:
        if self._pattern is None or not text:
            return False
        return self._pattern.search(normalize_for_matching(text)) is not None

    def classify(self, text: str) -> ModerationVerdict:
        flagged = self.matches(text)
        categories = {"profanity": True} if flagged else {}
        return ModerationVerdict(flagged=flagged, method=METHOD_FALLBACK, categories=categories)


class ModerationUnavailable(RuntimeError):
    """The primary classifier could not produce a verdict."""


class ContentModerator:
    """Classify text with the hosted endpoint, falling back to the denylist."""

    def __init__(
        self,
        api_key: str | None,
        *,
        http_client: httpx.AsyncClient | None = None,
        endpoint: str | None = None,
        model: str | None = None,
        timeout_seconds: float | None = None,
        fallback: DenylistClassifier | None = None,
    ) -> None:
        self._api_key = api_key
        self._http = http_client
        self._endpoint = endpoint or settings.openai_moderation_url
        self._model = model or settings.openai_moderation_model
        self._timeout = httpx.Timeout(
            timeout_seconds if timeout_seconds is not None else settings.http_timeout_seconds
        )
        self._fallback = fallback or DenylistClassifier()

    @property
    def primary_enabled(self) -> bool:
        return bool(self._api_key and self._api_key.strip())

    async def _post(self, payload: dict[str, Any]) -> httpx.Response:
        headers = {"Authorization": f"Bearer {self._api_key}"}
        if self._http is not None:
            return await self._http.post(
                self._endpoint, json=payload, headers=headers, timeout=self._timeout
            )
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            return await client.post(self._endpoint, json=payload, headers=headers)

    async def _classify_primary(self, text: str) -> ModerationVerdict:
        try:
            response = await self._post({"input": text, "model": self._model})
        except httpx.HTTPError as exc:
            raise ModerationUnavailable(f"request failed: {type(exc).__name__}") from exc

        if not response.is_success:
            raise ModerationUnavailable(f"endpoint responded with {response.status_code}")

        try:
            result = response.json()["results"][0]
            flagged = result["flagged"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise ModerationUnavailable("unparseable moderation response") from exc
        if not isinstance(flagged, bool):
            raise ModerationUnavailable("moderation response has no boolean verdict")

        raw_categories = result.get("categories") or {}
        categories = {
            str(name): bool(value)
            for name, value in raw_categories.items()
            if isinstance(value, bool)
        } if isinstance(raw_categories, dict) else {}
        return ModerationVerdict(flagged=flagged, method=METHOD_PRIMARY, categories=categories)

    async def classify(self, text: str) -> ModerationVerdict:
        """Return the moderation verdict for ``text``."""
        if self.primary_enabled:
            try:
                return await self._classify_primary(text)
            except ModerationUnavailable as exc:
                logger.warning("Moderation endpoint unavailable (%s); using denylist", exc)
        else:
            logger.debug("No moderation API key configured; using denylist")
        return self._fallback.classify(text)
