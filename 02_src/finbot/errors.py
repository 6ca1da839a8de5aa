"""Exception hierarchy for dialogue and storage failures."""


class FinbotError(Exception):
    """Base class for all finance bot errors."""


class ClassificationError(FinbotError):
    """Upstream intent extraction failed or returned an unusable structure."""


class SlotValidationError(FinbotError):
    """A provided slot value failed its type or range check."""

    def __init__(self, field: str, prompt: str):
        super().__init__(f"Invalid value for '{field}'")
        self.field = field
        self.prompt = prompt


class PersistenceError(FinbotError):
    """The record store rejected a write."""


class InternalStateError(FinbotError):
    """The conversation state is structurally inconsistent."""


class DisambiguationMismatch(FinbotError):
    """A receipt selection did not resolve to one of the candidates."""

    def __init__(self, prompt: str):
        super().__init__(prompt)
        self.prompt = prompt
