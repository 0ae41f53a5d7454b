"""Error types shared across semantic assembly."""


class ProviderFailure(Exception):
    """The LLM collaborator did not return usable data."""


class InvalidInput(ValueError):
    """Input rejected before any state change (e.g. an empty question)."""
