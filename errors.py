"""Exception types raised by the sequence engine."""


class SeqError(Exception):
    """Base class for all sequence engine errors."""
    pass


class InvalidArgumentError(SeqError, TypeError):
    """Raised when an operator receives a non-callable function argument."""
    pass


class InvalidProducerError(SeqError, TypeError):
    """Raised when a sequencer returns something other than a batch or None."""
    pass


class EmptyReductionError(SeqError, TypeError):
    """Raised by reduce() without a seed on an empty sequence."""
    pass
