"""
Typed exception hierarchy for the lifecycle kernel.

Every error the kernel raises is a subclass of ``LifecycleKernelError``
with a class-level ``code`` (machine-readable, API-safe) and the context
of the failure stored as attributes, so callers catch by type and read
structured data rather than parsing messages.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    LifecycleKernelError (base)
    |
    +-- NotFoundError
    |   +-- DocumentNotFoundError
    |   +-- OrderNotFoundError
    |   +-- ProductNotFoundError
    |   +-- ArchiveNotFoundError
    |   +-- ReturnRequestNotFoundError
    |
    +-- ConflictError
    |   +-- OptimisticLockError
    |   +-- RestoreInProgressError
    |   +-- DuplicateOrderError
    |   +-- DocumentExistsError
    |   +-- ReturnAlreadyResolvedError
    |   +-- ReturnAlreadyRequestedError
    |
    +-- ValidationError
    |   +-- InvalidLineItemError
    |   +-- InvalidTransitionError
    |   +-- InvalidStockError
    |   +-- MissingProductReferenceError
    |   +-- ReservedFieldError
    |   +-- UnknownEntityTypeError
    |
    +-- PartialFailureError
    |
    +-- AuthorizationError
    |   +-- ActorNotAuthorizedError
    |
    +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Not found       | DOCUMENT_NOT_FOUND          | No document at (collection, doc_id)
                | ORDER_NOT_FOUND             | Order not in the expected partition
                | PRODUCT_NOT_FOUND           | Stock adjustment on a missing product
                | ARCHIVE_NOT_FOUND           | Nothing archived for the given key
                | RETURN_REQUEST_NOT_FOUND    | Unknown return/refund request
----------------|-----------------------------|-----------------------------------------
Conflict        | OPTIMISTIC_LOCK_CONFLICT    | Version token moved under us (retried)
                | RESTORE_IN_PROGRESS         | Entity already in the Restoring state
                | DUPLICATE_ORDER             | orderId already live in a partition
                | DOCUMENT_EXISTS             | Insert over an existing document
                | RETURN_ALREADY_RESOLVED     | Approve/disapprove a resolved request
                | RETURN_ALREADY_REQUESTED    | Second Pending request for one order
----------------|-----------------------------|-----------------------------------------
Validation      | INVALID_LINE_ITEM           | Line item missing product/size/quantity
                | INVALID_TRANSITION          | State machine has no such edge
                | INVALID_STOCK               | Unknown size or negative result
                | MISSING_PRODUCT_REFERENCE   | Restoration under the "fail" policy
                | RESERVED_FIELD              | Payload uses archive-only metadata keys
                | UNKNOWN_ENTITY_TYPE         | Archive of an unsupported entity type
----------------|-----------------------------|-----------------------------------------
Bulk            | PARTIAL_FAILURE             | Some bulk items failed
----------------|-----------------------------|-----------------------------------------
Authorization   | ACTOR_NOT_AUTHORIZED        | Admin-only operation by a non-admin
----------------|-----------------------------|-----------------------------------------
Immutability    | IMMUTABILITY_VIOLATION      | UPDATE on an activity log entry

Middleware can treat categories differently: ``ConflictError`` maps to
HTTP 409, ``NotFoundError`` to 404, ``ValidationError`` to 422.
"""

from typing import Any


class LifecycleKernelError(Exception):
    """
    Base exception for all lifecycle kernel errors.

    All subclasses carry a ``code`` class attribute for machine-readable
    error identification.
    """

    code: str = "LIFECYCLE_KERNEL_ERROR"


# Not-found exceptions


class NotFoundError(LifecycleKernelError):
    """Base exception for a missing source document."""

    code: str = "NOT_FOUND"


class DocumentNotFoundError(NotFoundError):
    """No document exists at the given partition and document id."""

    code: str = "DOCUMENT_NOT_FOUND"

    def __init__(self, collection: str, doc_id: str):
        self.collection = collection
        self.doc_id = doc_id
        super().__init__(f"Document not found: {collection}/{doc_id}")


class OrderNotFoundError(NotFoundError):
    """Order is not in the partition the transition expects."""

    code: str = "ORDER_NOT_FOUND"

    def __init__(self, order_id: str, expected_partition: str | None = None):
        self.order_id = order_id
        self.expected_partition = expected_partition
        if expected_partition:
            msg = f"Order {order_id} not found in partition '{expected_partition}'"
        else:
            msg = f"Order {order_id} not found in any lifecycle partition"
        super().__init__(msg)


class ProductNotFoundError(NotFoundError):
    """Product referenced by a stock adjustment does not exist."""

    code: str = "PRODUCT_NOT_FOUND"

    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__(f"Product not found: {product_id}")


class ArchiveNotFoundError(NotFoundError):
    """Nothing is archived under the given token or entity key."""

    code: str = "ARCHIVE_NOT_FOUND"

    def __init__(self, key: str, reason: str = "no archive record"):
        self.key = key
        self.reason = reason
        super().__init__(f"Archive not found for {key}: {reason}")


class ReturnRequestNotFoundError(NotFoundError):
    """Return/refund request does not exist."""

    code: str = "RETURN_REQUEST_NOT_FOUND"

    def __init__(self, request_id: str):
        self.request_id = request_id
        super().__init__(f"Return request not found: {request_id}")


# Conflict exceptions


class ConflictError(LifecycleKernelError):
    """Base exception for concurrent or duplicate operations on one entity."""

    code: str = "CONFLICT"


class OptimisticLockError(ConflictError):
    """Version token changed between read and write."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"Optimistic lock conflict on {entity_type} {entity_id}: "
            "entity was modified by another transaction"
        )


class RestoreInProgressError(ConflictError):
    """Another restore of the same entity is in the Restoring state."""

    code: str = "RESTORE_IN_PROGRESS"

    def __init__(self, entity_key: str):
        self.entity_key = entity_key
        super().__init__(f"Restore already in progress for {entity_key}")


class DuplicateOrderError(ConflictError):
    """The orderId is already live in a lifecycle partition."""

    code: str = "DUPLICATE_ORDER"

    def __init__(self, order_id: str, partition: str):
        self.order_id = order_id
        self.partition = partition
        super().__init__(
            f"Order {order_id} already exists in partition '{partition}'"
        )


class DocumentExistsError(ConflictError):
    """Insert targeted an occupied (collection, doc_id) slot."""

    code: str = "DOCUMENT_EXISTS"

    def __init__(self, collection: str, doc_id: str):
        self.collection = collection
        self.doc_id = doc_id
        super().__init__(f"Document already exists: {collection}/{doc_id}")


class ReturnAlreadyResolvedError(ConflictError):
    """Return request already left the Pending state."""

    code: str = "RETURN_ALREADY_RESOLVED"

    def __init__(self, request_id: str, status: str):
        self.request_id = request_id
        self.status = status
        super().__init__(
            f"Return request {request_id} is already {status}"
        )


class ReturnAlreadyRequestedError(ConflictError):
    """A Pending return request already exists for the order."""

    code: str = "RETURN_ALREADY_REQUESTED"

    def __init__(self, order_id: str, request_id: str):
        self.order_id = order_id
        self.request_id = request_id
        super().__init__(
            f"Order {order_id} already has pending return request {request_id}"
        )


# Validation exceptions


class ValidationError(LifecycleKernelError):
    """Base exception for malformed input or business-rule violations."""

    code: str = "VALIDATION_ERROR"


class InvalidLineItemError(ValidationError):
    """Line item is malformed or does not belong to the order."""

    code: str = "INVALID_LINE_ITEM"

    def __init__(self, reason: str, item: Any = None):
        self.reason = reason
        self.item = item
        super().__init__(f"Invalid line item: {reason}")


class InvalidTransitionError(ValidationError):
    """Requested transition is not an edge of the workflow."""

    code: str = "INVALID_TRANSITION"

    def __init__(self, workflow: str, from_state: str, action: str):
        self.workflow = workflow
        self.from_state = from_state
        self.action = action
        super().__init__(
            f"Workflow '{workflow}' has no '{action}' transition from '{from_state}'"
        )


class InvalidStockError(ValidationError):
    """Stock adjustment names an unknown size or would go negative."""

    code: str = "INVALID_STOCK"

    def __init__(self, product_id: str, size: str, reason: str):
        self.product_id = product_id
        self.size = size
        self.reason = reason
        super().__init__(f"Invalid stock adjustment for {product_id}/{size}: {reason}")


class MissingProductReferenceError(ValidationError):
    """Stock restoration references a missing product under the fail policy."""

    code: str = "MISSING_PRODUCT_REFERENCE"

    def __init__(self, order_id: str, product_id: str | None):
        self.order_id = order_id
        self.product_id = product_id
        super().__init__(
            f"Order {order_id} references missing product {product_id!r}"
        )


class ReservedFieldError(ValidationError):
    """Payload uses a key reserved for archive metadata."""

    code: str = "RESERVED_FIELD"

    def __init__(self, collection: str, doc_id: str, fields: list[str]):
        self.collection = collection
        self.doc_id = doc_id
        self.fields = fields
        super().__init__(
            f"Document {collection}/{doc_id} uses reserved archive fields: "
            f"{', '.join(sorted(fields))}"
        )


class UnknownEntityTypeError(ValidationError):
    """Archive requested for an entity type with no archive partition."""

    code: str = "UNKNOWN_ENTITY_TYPE"

    def __init__(self, entity_type: str):
        self.entity_type = entity_type
        super().__init__(f"Unknown archivable entity type: {entity_type}")


# Bulk exceptions


class PartialFailureError(LifecycleKernelError):
    """
    Bulk operation where some items succeeded and some did not.

    ``outcomes`` holds every per-item result, never a single pass/fail.
    """

    code: str = "PARTIAL_FAILURE"

    def __init__(self, operation: str, outcomes: list[Any]):
        self.operation = operation
        self.outcomes = outcomes
        failed = [o for o in outcomes if not getattr(o, "success", False)]
        self.failed_count = len(failed)
        self.succeeded_count = len(outcomes) - len(failed)
        super().__init__(
            f"{operation}: {self.failed_count} of {len(outcomes)} item(s) failed"
        )


# Authorization exceptions


class AuthorizationError(LifecycleKernelError):
    """Base exception for actor permission errors."""

    code: str = "AUTHORIZATION_ERROR"


class ActorNotAuthorizedError(AuthorizationError):
    """Actor role is not allowed to perform the operation."""

    code: str = "ACTOR_NOT_AUTHORIZED"

    def __init__(self, actor_email: str, role: str, operation: str):
        self.actor_email = actor_email
        self.role = role
        self.operation = operation
        super().__init__(
            f"Actor {actor_email} with role '{role}' may not {operation}"
        )


# Immutability exceptions


class ImmutabilityViolationError(LifecycleKernelError):
    """Attempted to modify an immutable record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
