from dataclasses import dataclass


@dataclass(frozen=True)
class NormalizedProviderError:
    provider: str
    error_code: str
    category: str
    retryable: bool
    suggested_action: str


def describe_provider_error(
    *,
    provider: str,
    error_code: str | None,
    message: str,
    trace_id: str | None = None,
) -> str:
    """Single-line error text persisted on a destination row."""
    code = (error_code or "unknown_error").strip()
    text = (message or "").strip() or "no message"
    described = f"{provider.strip().lower()} error [{code}]: {text}"
    if trace_id:
        described = f"{described} (trace_id={trace_id})"
    return described


def map_provider_error(*, provider: str, error_code: str | None, message: str) -> NormalizedProviderError:
    normalized_provider = provider.strip().lower()
    code = (error_code or "unknown_error").strip().lower()
    text = (message or "").lower()

    if any(token in code for token in ("auth", "token", "scope", "invalid_grant", "190")) or "unauthorized" in text:
        return NormalizedProviderError(
            provider=normalized_provider,
            error_code=code,
            category="auth",
            retryable=False,
            suggested_action="Reconnect the integration and refresh credentials",
        )
    if any(token in code for token in ("rate", "throttle", "too_many_requests")) or "rate limit" in text:
        return NormalizedProviderError(
            provider=normalized_provider,
            error_code=code,
            category="rate_limit",
            retryable=True,
            suggested_action="Wait for cooldown and retry with backoff",
        )
    if any(token in code for token in ("content", "policy", "rejected", "media", "invalid_param")):
        return NormalizedProviderError(
            provider=normalized_provider,
            error_code=code,
            category="content_rejected",
            retryable=False,
            suggested_action="Adjust content or media to platform policy and retry",
        )
    if any(token in code for token in ("server", "timeout", "unavailable", "network", "internal")):
        return NormalizedProviderError(
            provider=normalized_provider,
            error_code=code,
            category="server_error",
            retryable=True,
            suggested_action="Retry later; provider instability detected",
        )

    return NormalizedProviderError(
        provider=normalized_provider,
        error_code=code,
        category="server_error",
        retryable=True,
        suggested_action="Retry later and inspect provider diagnostics",
    )
