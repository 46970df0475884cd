class FormwireError(Exception):
    """Base error for formwire."""


class PayloadIOError(FormwireError):
    """Raised when a part's payload cannot be opened or read."""


class InvalidContentType(FormwireError, ValueError):
    """Raised when a caller-supplied MIME type cannot be parsed."""


class PartConsumedError(FormwireError, RuntimeError):
    """Raised when a part or form is rendered after it has been consumed."""
