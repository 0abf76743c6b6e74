"""
Typed Exception Hierarchy for the Budget Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Money errors must be handled precisely. Callers (the API layer, the
performance-ingestion pipeline) map these to responses and retry decisions
by TYPE and CODE, never by parsing messages.

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (amounts, ids, states)

Example - RIGHT way:
    try:
        service.process_spend(campaign_id, amount, "impressions", key)
    except DailyCapExceededError as e:
        defer_until_tomorrow(e.campaign_id, e.attempted)
    except ConcurrencyConflictError as e:
        requeue(event)  # e.retryable is True

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from BudgetKernelError:

    BudgetKernelError (base)
    |
    +-- ValidationError
    |   +-- AccountAlreadyExistsError
    |   +-- IdempotencyKeyReuseError
    |
    +-- FundsError
    |   +-- InsufficientFundsError
    |   +-- OverReleaseError
    |
    +-- BudgetError
    |   +-- BudgetExceededError
    |   +-- DailyCapExceededError
    |
    +-- InvalidStateError
    |
    +-- NotFoundError
    |   +-- AccountNotFoundError
    |   +-- CampaignNotFoundError
    |
    +-- ConcurrencyConflictError
    |
    +-- ImmutabilityViolationError
    |
    +-- StorageError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Validation      | VALIDATION_ERROR            | Non-positive amount, malformed input
                | ACCOUNT_ALREADY_EXISTS      | open_account for an existing user
                | IDEMPOTENCY_KEY_REUSE       | Same key, different request
----------------|-----------------------------|-----------------------------------------
Funds           | INSUFFICIENT_FUNDS          | hold/withdraw/transfer > available
                | OVER_RELEASE                | release/convert > held
----------------|-----------------------------|-----------------------------------------
Budget          | BUDGET_EXCEEDED             | spend > remaining total budget
                | DAILY_CAP_EXCEEDED          | spend > remaining daily cap
----------------|-----------------------------|-----------------------------------------
State           | INVALID_STATE               | Operation illegal for lifecycle state
----------------|-----------------------------|-----------------------------------------
Lookup          | ACCOUNT_NOT_FOUND           | No account for user
                | CAMPAIGN_NOT_FOUND          | No budget for campaign
----------------|-----------------------------|-----------------------------------------
Concurrency     | CONCURRENCY_CONFLICT        | Lost optimistic race (retryable)
----------------|-----------------------------|-----------------------------------------
Immutability    | IMMUTABILITY_VIOLATION      | UPDATE/DELETE of a ledger entry
----------------|-----------------------------|-----------------------------------------
Storage         | STORAGE_ERROR               | Unexpected database failure

===============================================================================
HANDLING PATTERNS
===============================================================================

1. Validation and business errors propagate to the caller unmodified.
2. ConcurrencyConflictError is retried by TransactionRunner a bounded
   number of times; when it surfaces, ``retryable`` is True.
3. StorageError wraps the original SQLAlchemy error (``__cause__``) with
   the operation name and the account/campaign ids involved.

===============================================================================
"""

from decimal import Decimal


class BudgetKernelError(Exception):
    """
    Base exception for all budget kernel errors.

    All subclasses must have a `code` class attribute for
    machine-readable error identification.
    """

    code: str = "BUDGET_KERNEL_ERROR"
    retryable: bool = False


# Validation exceptions


class ValidationError(BudgetKernelError):
    """Input is malformed or violates a field rule."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class AccountAlreadyExistsError(ValidationError):
    """An account already exists for this user."""

    code: str = "ACCOUNT_ALREADY_EXISTS"

    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(f"Account already exists for user {user_id}", "user_id")


class IdempotencyKeyReuseError(ValidationError):
    """
    Idempotency key was already used for a different request.

    Keys are bound to exactly one (operation, request payload) pair.
    """

    code: str = "IDEMPOTENCY_KEY_REUSE"

    def __init__(self, idempotency_key: str, operation: str, original_operation: str):
        self.idempotency_key = idempotency_key
        self.operation = operation
        self.original_operation = original_operation
        super().__init__(
            f"Idempotency key {idempotency_key!r} was already used for a "
            f"different {original_operation} request (now: {operation})",
            "idempotency_key",
        )


# Funds exceptions


class FundsError(BudgetKernelError):
    """Base exception for account funds errors."""

    code: str = "FUNDS_ERROR"


class InsufficientFundsError(FundsError):
    """Requested amount exceeds the available balance."""

    code: str = "INSUFFICIENT_FUNDS"

    def __init__(self, user_id: str, required: Decimal, available: Decimal):
        self.user_id = user_id
        self.required = required
        self.available = available
        super().__init__(
            f"Insufficient funds for user {user_id}: "
            f"required {required}, available {available}"
        )


class OverReleaseError(FundsError):
    """Requested amount exceeds the funds on hold."""

    code: str = "OVER_RELEASE"

    def __init__(self, user_id: str, requested: Decimal, held: Decimal):
        self.user_id = user_id
        self.requested = requested
        self.held = held
        super().__init__(
            f"Cannot release {requested} for user {user_id}: only {held} on hold"
        )


# Budget exceptions


class BudgetError(BudgetKernelError):
    """Base exception for campaign budget errors."""

    code: str = "BUDGET_ERROR"


class BudgetExceededError(BudgetError):
    """Spend would push budget_spent above budget_total."""

    code: str = "BUDGET_EXCEEDED"

    def __init__(
        self,
        campaign_id: str,
        budget_total: Decimal,
        budget_spent: Decimal,
        attempted: Decimal,
    ):
        self.campaign_id = campaign_id
        self.budget_total = budget_total
        self.budget_spent = budget_spent
        self.attempted = attempted
        super().__init__(
            f"Campaign {campaign_id} budget exceeded: total {budget_total}, "
            f"spent {budget_spent}, attempted {attempted}"
        )


class DailyCapExceededError(BudgetError):
    """Spend would push today's spend above budget_daily."""

    code: str = "DAILY_CAP_EXCEEDED"

    def __init__(
        self,
        campaign_id: str,
        daily_limit: Decimal,
        today_spent: Decimal,
        attempted: Decimal,
    ):
        self.campaign_id = campaign_id
        self.daily_limit = daily_limit
        self.today_spent = today_spent
        self.attempted = attempted
        super().__init__(
            f"Campaign {campaign_id} daily cap reached: limit {daily_limit}, "
            f"spent today {today_spent}, attempted {attempted}"
        )


# Lifecycle exceptions


class InvalidStateError(BudgetKernelError):
    """Operation is not legal for the entity's current state."""

    code: str = "INVALID_STATE"

    def __init__(
        self,
        message: str,
        current_state: str | None = None,
        requested: str | None = None,
    ):
        self.current_state = current_state
        self.requested = requested
        super().__init__(message)


# Lookup exceptions


class NotFoundError(BudgetKernelError):
    """Base exception for missing entities."""

    code: str = "NOT_FOUND"


class AccountNotFoundError(NotFoundError):
    """No account exists for the user."""

    code: str = "ACCOUNT_NOT_FOUND"

    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(f"Account not found for user {user_id}")


class CampaignNotFoundError(NotFoundError):
    """No budget record exists for the campaign."""

    code: str = "CAMPAIGN_NOT_FOUND"

    def __init__(self, campaign_id: str):
        self.campaign_id = campaign_id
        super().__init__(f"Campaign budget not found: {campaign_id}")


# Concurrency exceptions


class ConcurrencyConflictError(BudgetKernelError):
    """
    A concurrent writer changed the row between read and write.

    Retried internally by TransactionRunner; surfaces to callers only
    after the retry budget is exhausted.
    """

    code: str = "CONCURRENCY_CONFLICT"
    retryable: bool = True

    def __init__(self, entity: str, entity_id: str, attempts: int | None = None):
        self.entity = entity
        self.entity_id = entity_id
        self.attempts = attempts
        suffix = f" after {attempts} attempts" if attempts else ""
        super().__init__(
            f"Concurrent modification of {entity} {entity_id}{suffix}"
        )


# Immutability exceptions


class ImmutabilityViolationError(BudgetKernelError):
    """Attempt to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Cannot modify {entity_type} {entity_id}: {reason}"
        )


# Storage exceptions


class StorageError(BudgetKernelError):
    """
    Unexpected database failure, wrapped with operation context.

    The original exception is chained as ``__cause__``.
    """

    code: str = "STORAGE_ERROR"

    def __init__(self, operation: str, context: dict[str, str], detail: str):
        self.operation = operation
        self.context = context
        self.detail = detail
        ids = ", ".join(f"{k}={v}" for k, v in sorted(context.items()))
        super().__init__(f"Storage failure during {operation} ({ids}): {detail}")
