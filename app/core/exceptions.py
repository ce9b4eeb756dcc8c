"""SmartLink core exceptions."""


class SmartLinkError(Exception):
    """Base exception for SmartLink core errors."""


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------

class ResolutionError(SmartLinkError):
    """Base exception for anything that stops a source URL from resolving."""


class InvalidSourceUrl(ResolutionError):
    """The source URL is malformed or not on a supported music service."""

    def __init__(self, url: str, allowed_domains: tuple[str, ...]) -> None:
        self.url = url
        self.allowed_domains = allowed_domains
        super().__init__(
            "Invalid source URL. Use a link from one of: " + ", ".join(allowed_domains)
        )


class RateLimited(ResolutionError):
    """The local outbound limiter refused the call. Retry after the stated delay."""

    def __init__(self, retry_after_seconds: int) -> None:
        self.retry_after_seconds = retry_after_seconds
        super().__init__(f"Odesli rate limit reached, retry in {retry_after_seconds}s")


class UpstreamNotFound(ResolutionError):
    """Odesli has no data for this URL."""

    def __init__(self, url: str) -> None:
        self.url = url
        super().__init__("This track was not found on the resolution service")


class UpstreamRateLimited(ResolutionError):
    """Odesli answered 429."""

    def __init__(self, retry_after: float | None = None) -> None:
        self.retry_after = retry_after
        msg = "Odesli rate limit exceeded"
        if retry_after is not None:
            msg += f" (retry-after: {retry_after}s)"
        super().__init__(msg)


class UpstreamError(ResolutionError):
    """Odesli failed: unexpected status, transport error, or unreadable body.

    ``status_code`` is ``None`` when no HTTP response was received.
    """

    def __init__(self, status_code: int | None, detail: str = "") -> None:
        self.status_code = status_code
        self.detail = detail
        label = f"HTTP {status_code}" if status_code is not None else "no response"
        super().__init__(f"Odesli error: {label}" + (f" ({detail})" if detail else ""))


class ResolutionTimeout(ResolutionError):
    """Odesli did not answer within the configured timeout."""

    def __init__(self, timeout_seconds: float) -> None:
        self.timeout_seconds = timeout_seconds
        super().__init__(f"Odesli did not respond within {timeout_seconds:g}s")


# ---------------------------------------------------------------------------
# SmartLink store
# ---------------------------------------------------------------------------

class QuotaExceeded(SmartLinkError):
    def __init__(self, plan: str, limit: int) -> None:
        self.plan = plan
        self.limit = limit
        if plan == "free":
            msg = f"Free plan limit reached ({limit} SmartLinks max). Upgrade to Pro!"
        else:
            msg = f"SmartLink limit reached ({limit} on the {plan} plan)"
        super().__init__(msg)


class SlugSpaceExhausted(SmartLinkError):
    """No unique slug found within the attempt budget. Operators should look at this."""

    def __init__(self, attempts: int) -> None:
        self.attempts = attempts
        super().__init__(f"Could not generate a unique slug after {attempts} attempts")


class SmartLinkNotFound(SmartLinkError):
    def __init__(self, key: int | str) -> None:
        self.key = key
        super().__init__(f"SmartLink not found: {key}")


class OwnerNotFound(SmartLinkError):
    def __init__(self, owner_id: int) -> None:
        self.owner_id = owner_id
        super().__init__(f"User not found: {owner_id}")


class InvalidSmartLinkData(SmartLinkError):
    """Submitted SmartLink fields are unusable (e.g. no title after resolution)."""
