"""Exception types raised by the StudyBot services."""


class StudyBotError(Exception):
    """Base class for StudyBot failures."""


class RetrievalError(StudyBotError):
    """The embedding or vector search service could not answer."""


class GenerationError(StudyBotError):
    """The completion service failed or returned an unusable response."""


class QuotaExceededError(GenerationError):
    """The completion account has run out of quota."""


class RateLimitedError(GenerationError):
    """The completion service is throttling requests."""


class PromptNotFoundError(StudyBotError, LookupError):
    """No system prompt exists with the requested id."""


class ActivePromptDeletionError(StudyBotError):
    """The active system prompt cannot be deleted."""
