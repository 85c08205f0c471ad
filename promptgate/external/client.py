"""Client for the third-party text moderation service.

Makes a single attempt per call with a hard request timeout.  Every failure
(transport error, timeout, non-2xx status, malformed body) is raised as
:class:`~promptgate.errors.ExternalServiceFailure`; the audit orchestrator
decides to fail open.  When no endpoint is configured the client is
disabled and never flags anything.
"""

from __future__ import annotations

import time
from typing import Optional

import httpx
from pydantic import BaseModel, Field, ValidationError

from promptgate.errors import ExternalServiceFailure
from promptgate.moderation.models import Classification

DEFAULT_TIMEOUT_SECONDS = 2.0
DEFAULT_POLICY_ID = "generation-prompts"
FALLBACK_CATEGORY = "external moderation"


# ---------------------------------------------------------------------------
# Wire models
# ---------------------------------------------------------------------------


class CategoryScore(BaseModel):
    label: str
    score: float = 0.0
    flagged: bool = True


class ModerationResponse(BaseModel):
    flagged: bool
    categories: list[CategoryScore] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class ExternalModerationClient:
    """Thin wrapper around the moderation endpoint.

    Parameters
    ----------
    url : str
        Full URL of the classification endpoint.  Empty disables the client.
    api_key : str
        Sent as a bearer token when set.
    policy_id : str
        Policy identifier passed to the service with each request.
    timeout : float
        Request timeout in seconds; keep it below the caller's audit budget.
    transport : httpx.BaseTransport | None
        Optional transport override (tests use ``httpx.MockTransport``).
    """

    def __init__(
        self,
        url: str = "",
        api_key: str = "",
        policy_id: str = DEFAULT_POLICY_ID,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.url = url
        self.policy_id = policy_id
        self.timeout = timeout
        self._configured = bool(url)
        self.last_latency_ms = 0

        headers = {"Accept": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self._client = httpx.Client(
            timeout=httpx.Timeout(timeout),
            headers=headers,
            transport=transport,
        )

    # -- properties ----------------------------------------------------------

    @property
    def configured(self) -> bool:
        """Return *True* if an endpoint is configured."""
        return self._configured

    # -- public API ----------------------------------------------------------

    def classify(self, text: str) -> Classification:
        """Classify *text*.  Raises :class:`ExternalServiceFailure` on any error."""
        if not self._configured:
            return Classification(flagged=False)

        start = time.monotonic()
        try:
            resp = self._client.post(self.url, json={"input": text, "policy": self.policy_id})
            resp.raise_for_status()
            body = ModerationResponse.model_validate(resp.json())
        except httpx.TimeoutException as exc:
            raise ExternalServiceFailure(
                f"moderation service timed out after {self.timeout}s"
            ) from exc
        except httpx.HTTPStatusError as exc:
            raise ExternalServiceFailure(
                f"moderation service error: {exc.response.status_code}"
            ) from exc
        except httpx.RequestError as exc:
            raise ExternalServiceFailure(f"failed to reach moderation service: {exc}") from exc
        except (ValueError, ValidationError) as exc:
            # resp.json() raises ValueError on a non-JSON body
            raise ExternalServiceFailure(f"malformed moderation response: {exc}") from exc
        finally:
            self.last_latency_ms = int((time.monotonic() - start) * 1000)

        scores = {c.label: c.score for c in body.categories}
        if not body.flagged:
            return Classification(flagged=False, scores=scores)

        labels = [c.label for c in body.categories if c.flagged] or [FALLBACK_CATEGORY]
        return Classification(flagged=True, categories=labels, scores=scores)

    def close(self) -> None:
        self._client.close()
