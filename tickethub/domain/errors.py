class TicketHubError(Exception):
    """Base class for errors raised by the ticket services."""


class NotFoundError(TicketHubError):
    def __init__(self, entity: str, key):
        super().__init__(f"{entity} not found: {key}")
        self.entity = entity
        self.key = key


class InvalidRequestError(TicketHubError):
    """Malformed input, rejected before anything is written."""


class UpstreamApiError(TicketHubError):
    """A provider answered with a non-success status."""

    def __init__(self, provider: str, context: str, status_code: int, reason: str, body: str = ""):
        super().__init__(f"{provider} API error ({context}): {status_code} {reason} - {body[:500]}")
        self.provider = provider
        self.context = context
        self.status_code = status_code
        self.reason = reason
        self.body = body
