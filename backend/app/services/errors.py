"""Error types raised by the recommendation services."""


class RecommendationError(Exception):
    """Base class for caller-visible recommendation errors."""


class NotFoundError(RecommendationError):
    """A referenced user or business does not exist."""


class InvalidInputError(RecommendationError, ValueError):
    """Malformed input rejected before any data access."""
