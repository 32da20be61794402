"""Webhook error taxonomy.

AuthenticationFailed and MalformedPayload reach the HTTP boundary as 400s.
UnresolvedReference and CollaboratorUnavailable never do: the delivery is
logged, dropped and acknowledged so the provider's queue is never blocked.
"""


class WebhookError(Exception):
    """Base exception for webhook processing."""
    pass


class AuthenticationFailed(WebhookError):
    """Missing, stale or forged Stripe-Signature."""
    pass


class MalformedPayload(WebhookError):
    """Body is not a decodable Stripe event."""
    pass


class UnresolvedReference(WebhookError):
    """Unknown plan, unknown company or missing payer email."""

    def __init__(self, reason: str, message: str):
        super().__init__(message)
        self.reason = reason


class CollaboratorUnavailable(WebhookError):
    """A Stripe lookup or a database call failed."""

    def __init__(self, collaborator: str, message: str):
        super().__init__(f"{collaborator}: {message}")
        self.collaborator = collaborator
