"""
Typed Exception Hierarchy for the Sourcing Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the sourcing services (request handlers, operator scripts,
schedulers) must react to failures without parsing message strings:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (not just a message string)

Example - WRONG way to handle errors:
    try:
        service.approve_requisition(actor, pr_id)
    except Exception as e:
        if "not in submitted" in str(e):  # FRAGILE - message might change
            ...

Example - RIGHT way (what this module enables):
    try:
        service.approve_requisition(actor, pr_id)
    except StateTransitionError as e:
        api_response(code=e.code, state=e.current_state, action=e.action)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    SourcingError (base)
    |
    +-- ValidationError
    +-- StateTransitionError
    +-- ConflictError
    +-- NotFoundError
    +-- AuthorizationError
    +-- ReconciliationPartialFailure
    +-- MailDeliveryError
    +-- ExtractionError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Code                            | When Raised
--------------------------------|---------------------------------------------
VALIDATION_ERROR                | Malformed input (empty items, past date,
                                | missing rejection reason, quantity <= 0)
INVALID_STATE_TRANSITION        | Action not permitted from current state
CONFLICT                        | Unique document number / key collision
NOT_FOUND                       | Entity missing or outside company scope
NOT_AUTHORIZED                  | Actor lacks the permission for an action
RECONCILIATION_PARTIAL_FAILURE  | One or more dedup groups failed to clean up
MAIL_DELIVERY_FAILED            | Mail collaborator could not send a message
EXTRACTION_FAILED               | Quotation extractor could not read a message

===============================================================================
HANDLING PATTERNS
===============================================================================

1. VALIDATION and STATE errors are client errors; never retry them.

2. CONFLICT means the whole transaction lost a race.  Retry the entire
   operation, never just the number allocation:

    for attempt in range(3):
        try:
            return service.create_requisition(actor, ...)
        except ConflictError:
            continue

3. RECONCILIATION_PARTIAL_FAILURE is informational.  The sweep is
   idempotent; re-run it once the failing groups are understood.
"""


class SourcingError(Exception):
    """
    Base exception for all sourcing errors.

    All subclasses must have a `code` class attribute for
    machine-readable error identification.
    """

    code: str = "SOURCING_ERROR"


class ValidationError(SourcingError):
    """Input failed validation; ``field`` names the violated field."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid {field}: {reason}")


class StateTransitionError(SourcingError):
    """
    An action was attempted from a state that does not permit it.

    The engine performs no mutation before raising this error.
    """

    code: str = "INVALID_STATE_TRANSITION"

    def __init__(
        self,
        entity_type: str,
        entity_id: str,
        current_state: str,
        action: str,
        reason: str | None = None,
    ):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.current_state = current_state
        self.action = action
        self.reason = reason
        message = (
            f"Cannot {action} {entity_type} {entity_id} "
            f"in state '{current_state}'"
        )
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class ConflictError(SourcingError):
    """
    A write collided with a unique key (document number, canonical key).

    Callers retry the whole transaction.
    """

    code: str = "CONFLICT"

    def __init__(self, resource: str, key: str):
        self.resource = resource
        self.key = key
        super().__init__(f"Conflict on {resource}: {key}")


class NotFoundError(SourcingError):
    """Entity does not exist or is outside the caller's company scope."""

    code: str = "NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} not found: {entity_id}")


class AuthorizationError(SourcingError):
    """Actor is not allowed to perform the requested action."""

    code: str = "NOT_AUTHORIZED"

    def __init__(self, actor_id: str, permission: str, reason: str):
        self.actor_id = actor_id
        self.permission = permission
        self.reason = reason
        super().__init__(
            f"Actor {actor_id} not authorized for '{permission}': {reason}"
        )


class ReconciliationPartialFailure(SourcingError):
    """
    One or more duplicate groups failed to clean up during a sweep.

    ``failures`` is a tuple of (group_key, error_message) pairs.  The
    groups that succeeded remain committed.
    """

    code: str = "RECONCILIATION_PARTIAL_FAILURE"

    def __init__(self, failures: tuple[tuple[str, str], ...]):
        self.failures = failures
        super().__init__(
            f"Dedup sweep failed for {len(failures)} group(s)"
        )


class MailDeliveryError(SourcingError):
    """The mail collaborator could not deliver a message."""

    code: str = "MAIL_DELIVERY_FAILED"

    def __init__(self, recipient: str, reason: str):
        self.recipient = recipient
        self.reason = reason
        super().__init__(f"Mail to {recipient} failed: {reason}")


class ExtractionError(SourcingError):
    """A quotation extractor could not interpret an inbound message."""

    code: str = "EXTRACTION_FAILED"

    def __init__(self, external_message_id: str, reason: str):
        self.external_message_id = external_message_id
        self.reason = reason
        super().__init__(
            f"Extraction failed for message {external_message_id}: {reason}"
        )
