"""Exceptions raised by the threshold differential expression tests."""


class GLMTreatError(ValueError):
    """Base class for exceptions in glmtreat."""
    pass

class InvalidContrast(GLMTreatError):
    """Raised when a contrast does not match the fitted design."""
    pass

class InvalidThreshold(GLMTreatError):
    """Raised when a fold-change or FDR threshold is out of range."""
    pass

class EmptyInput(GLMTreatError):
    """Raised when an operation receives no genes."""
    pass

class InconsistentGeneSet(GLMTreatError):
    """Raised when gene identifiers disagree between inputs."""
    pass
