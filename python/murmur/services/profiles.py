"""Profile collaborator.

Supplies display data (name, username, avatar, verification) for the
participant summaries attached to conversations and messages. Profiles are
owned by the user service; this module only reads them.

Implementations:
- HttpProfileDirectory: GET {base_url}/users/{user_id} via a shared httpx.Client
- StaticProfileDirectory: id-only summaries, used when no directory is configured

Lookups are best-effort: a failed, missing or malformed profile degrades to
an id-only summary and is logged. Messaging never fails because a profile is
missing.

HttpProfileDirectory issues one synchronous request per distinct id, so
listing conversations costs one round trip per peer. Ids are sent as a
single escaped path segment; ids that would resolve to another path
("." and "..") are never sent.
"""

from collections.abc import Iterable
from typing import Any, Protocol
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from murmur.logging import get_logger
from murmur.schemas.conversation import UserSummary

logger = get_logger(__name__)

# Path segments that URL normalization would collapse into a different resource
_DOT_SEGMENTS = {".", ".."}


def _profile_payload(body: Any) -> dict[str, Any]:
    """Unwrap an optional {"data": ...} envelope; anything but an object is rejected."""
    if isinstance(body, dict) and "data" in body:
        body = body["data"]
    if not isinstance(body, dict):
        raise ValueError(f"profile body is {type(body).__name__}, not an object")
    return body


class ProfileDirectory(Protocol):
    """Protocol for batch profile lookups."""

    def lookup(self, user_ids: Iterable[str]) -> dict[str, UserSummary]:
        """Return a summary for every requested id (id-only when unknown)."""
        ...


class StaticProfileDirectory:
    """Directory that knows only ids, plus any profiles registered up front."""

    def __init__(self, profiles: dict[str, UserSummary] | None = None):
        self._profiles = dict(profiles or {})

    def lookup(self, user_ids: Iterable[str]) -> dict[str, UserSummary]:
        return {
            user_id: self._profiles.get(user_id, UserSummary(id=user_id))
            for user_id in dict.fromkeys(user_ids)
        }


class HttpProfileDirectory:
    """Directory backed by the user service's HTTP API.

    Expects `GET /users/{id}` to answer with either the profile object or a
    `{"data": {...}}` envelope containing id, name, username, avatar and
    is_verified.
    """

    def __init__(self, client: httpx.Client, base_url: str):
        self._client = client
        self._base_url = base_url.rstrip("/")

    def _profile_url(self, user_id: str) -> str:
        return f"{self._base_url}/users/{quote(user_id, safe='')}"

    def _fetch(self, user_id: str) -> UserSummary:
        if user_id in _DOT_SEGMENTS:
            logger.warning("profile_lookup_failed", profile_user_id=user_id, error="unsafe id")
            return UserSummary(id=user_id)

        try:
            response = self._client.get(self._profile_url(user_id))
        except httpx.HTTPError as e:
            logger.warning("profile_lookup_failed", profile_user_id=user_id, error=str(e))
            return UserSummary(id=user_id)

        if response.status_code != 200:
            logger.warning(
                "profile_lookup_failed",
                profile_user_id=user_id,
                status_code=response.status_code,
            )
            return UserSummary(id=user_id)

        try:
            payload = _profile_payload(response.json())
        except ValueError as e:
            logger.warning("profile_lookup_failed", profile_user_id=user_id, error=str(e))
            return UserSummary(id=user_id)

        try:
            return UserSummary(
                id=user_id,
                name=payload.get("name"),
                username=payload.get("username"),
                avatar=payload.get("avatar"),
                is_verified=bool(payload.get("is_verified", False)),
            )
        except ValidationError as e:
            logger.warning("profile_lookup_failed", profile_user_id=user_id, error=str(e))
            return UserSummary(id=user_id)

    def lookup(self, user_ids: Iterable[str]) -> dict[str, UserSummary]:
        return {user_id: self._fetch(user_id) for user_id in dict.fromkeys(user_ids)}
