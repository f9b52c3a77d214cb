"""
Exception taxonomy for the oracle.

Every failure is all-or-nothing: the entry point that raised leaves no
partial state behind. Exceptions carry a short machine-readable reason plus
keyword context so callers can branch on them programmatically.
"""


class ValidationError(Exception):
    """Raised when validation fails."""

    def __init__(self, reason: str, **context):
        self.reason = reason
        self.context = context
        if context:
            details = ", ".join(f"{k}={v!r}" for k, v in context.items())
            super().__init__(f"{reason} ({details})")
        else:
            super().__init__(reason)


class ConfigValidation(ValidationError):
    """Bad creation parameters or malformed call arguments."""
    pass


class InsufficientBond(ConfigValidation):
    """Creation bond below the minimum unit or not above the settler reward."""
    pass


class StateConflict(ValidationError):
    """Operation attempted in the wrong lifecycle state."""
    pass


class TimingViolation(ValidationError):
    """Outside the required window, or a second report within one tick."""
    pass


class IntegrityMismatch(ValidationError):
    """Integrity hash or expected amount does not match stored state."""
    pass


class BoundsViolation(ValidationError):
    """Escalation amount or price-band rule violated."""
    pass


class TransferFailure(ValidationError):
    """A balance move could not be completed."""
    pass


class GasProvisioningFailure(ValidationError):
    """Not enough execution budget left."""
    pass


class AccessDenied(ValidationError):
    """Caller is not allowed to perform a privileged operation."""
    pass
