from __future__ import annotations


class TermsCheckError(Exception):
    """Base class for everything the engine raises on purpose."""


class NetworkFailure(TermsCheckError):
    """A single candidate URL could not be fetched or parsed."""

    def __init__(self, url: str, reason: str):
        super().__init__(f"{url}: {reason}")
        self.url = url
        self.reason = reason


class TimeoutExceeded(TermsCheckError):
    pass


class DiscoveryUnavailable(TermsCheckError):
    """The discovery collaborator could not be reached for this page."""


class MissingCredential(TermsCheckError):
    def __init__(self, message: str = "Missing API key"):
        super().__init__(message)


class JudgmentFailure(TermsCheckError):
    """The judgment provider call itself failed (transport, HTTP status, SDK error)."""


class MalformedJudgmentResponse(TermsCheckError):
    """The judgment provider answered, but not with a usable analysis."""
