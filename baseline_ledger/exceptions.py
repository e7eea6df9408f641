"""
Typed Exception Hierarchy for the Baseline Ledger.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the ledger (the milestone-lock workflow, the variation-approval
workflow, the repair job) must tell a caller mistake apart from a data
problem without parsing messages.  Every exception therefore has:
  1. A TYPED class (catch by type, not message)
  2. A CODE class attribute (machine-readable, API-safe)
  3. Structured DATA attributes (not just a message string)

Example:
    try:
        writer.record_amendment(variation_milestone, variation)
    except VariationNotAppliedError as e:
        api_response(code=e.code, variation=e.variation_id, status=e.status)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    BaselineLedgerError (base)
    |
    +-- PreconditionViolationError
    |   +-- MissingSignatureError
    |   +-- VariationNotAppliedError
    |   +-- VariationNotApprovedError
    |   +-- VariationMilestoneMismatchError
    |   +-- InvalidSignerRoleError
    |
    +-- NotFoundError
    |   +-- MilestoneNotFoundError
    |   +-- VariationNotFoundError
    |
    +-- ConcurrencyError
    |   +-- VersionAllocationConflictError
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError

===============================================================================
WHAT IS NOT AN EXCEPTION
===============================================================================

Category            | Handling
--------------------|---------------------------------------------------------
Unreconstructable   | Reported as UnreconstructableMilestone in BackfillResult
                    | and logged at WARNING; the milestone is left untouched.
Constraint conflict | IntegrityError inside a SAVEPOINT is absorbed; the
                    | already-present row is returned instead.
Renumber skip       | Rows already at their rank are counted as unchanged.
"""


class BaselineLedgerError(Exception):
    """
    Base exception for all baseline ledger errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "BASELINE_LEDGER_ERROR"


# Precondition violations (reported to the caller, never retried)


class PreconditionViolationError(BaselineLedgerError):
    """A ledger write was invoked without the required milestone/variation state."""

    code: str = "PRECONDITION_VIOLATION"


class MissingSignatureError(PreconditionViolationError):
    """The milestone lacks one or both baseline signatures."""

    code: str = "MISSING_SIGNATURE"

    def __init__(self, milestone_id: str, missing: tuple[str, ...]):
        self.milestone_id = milestone_id
        self.missing = missing
        super().__init__(
            f"Milestone {milestone_id} is missing baseline signature(s): "
            f"{', '.join(missing)}"
        )


class VariationNotAppliedError(PreconditionViolationError):
    """Amendments may only be recorded for applied variations."""

    code: str = "VARIATION_NOT_APPLIED"

    def __init__(self, variation_id: str, status: str):
        self.variation_id = variation_id
        self.status = status
        super().__init__(
            f"Variation {variation_id} has status '{status}', expected 'applied'"
        )


class VariationNotApprovedError(PreconditionViolationError):
    """Only approved variations may be applied to baselines."""

    code: str = "VARIATION_NOT_APPROVED"

    def __init__(self, variation_id: str, status: str):
        self.variation_id = variation_id
        self.status = status
        super().__init__(
            f"Variation {variation_id} has status '{status}', "
            "must be approved before applying"
        )


class VariationMilestoneMismatchError(PreconditionViolationError):
    """The VariationMilestone does not belong to the given variation or has no milestone."""

    code: str = "VARIATION_MILESTONE_MISMATCH"

    def __init__(self, variation_milestone_id: str, variation_id: str, reason: str):
        self.variation_milestone_id = variation_milestone_id
        self.variation_id = variation_id
        self.reason = reason
        super().__init__(
            f"VariationMilestone {variation_milestone_id} cannot be recorded "
            f"for variation {variation_id}: {reason}"
        )


class InvalidSignerRoleError(PreconditionViolationError):
    """Baseline signer role must be 'supplier' or 'customer'."""

    code: str = "INVALID_SIGNER_ROLE"

    def __init__(self, role: str):
        self.role = role
        super().__init__(
            f"Invalid signer role '{role}'. Must be 'supplier' or 'customer'."
        )


# Lookup failures


class NotFoundError(BaselineLedgerError):
    """Base exception for missing collaborator records."""

    code: str = "NOT_FOUND"


class MilestoneNotFoundError(NotFoundError):
    """Milestone does not exist or is soft-deleted."""

    code: str = "MILESTONE_NOT_FOUND"

    def __init__(self, milestone_id: str):
        self.milestone_id = milestone_id
        super().__init__(f"Milestone not found: {milestone_id}")


class VariationNotFoundError(NotFoundError):
    """Variation does not exist or is soft-deleted."""

    code: str = "VARIATION_NOT_FOUND"

    def __init__(self, variation_id: str):
        self.variation_id = variation_id
        super().__init__(f"Variation not found: {variation_id}")


# Immutability


class ImmutabilityError(BaselineLedgerError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """
    Attempted to modify or delete a write-once ledger row.

    Only the `version` column of a BaselineVersion may change after insert,
    and only through the renumbering pass.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


# Concurrency


class ConcurrencyError(BaselineLedgerError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class VersionAllocationConflictError(ConcurrencyError):
    """
    Concurrent amendments kept claiming the same provisional version.

    Raised only after the writer's bounded retries are exhausted.  The
    enclosing transaction can be retried wholesale.
    """

    code: str = "VERSION_ALLOCATION_CONFLICT"

    def __init__(self, milestone_id: str, attempts: int):
        self.milestone_id = milestone_id
        self.attempts = attempts
        super().__init__(
            f"Could not allocate a ledger version for milestone {milestone_id} "
            f"after {attempts} attempts"
        )
