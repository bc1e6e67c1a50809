"""
Exception hierarchy for the CCM instruction store and resolvers.

All errors are local, recoverable conditions that the transport layer
translates for its callers. Persistence failures (SQLAlchemyError) are not
wrapped and propagate unchanged.
"""


class RepositoryError(Exception):
    """Base exception for CCM instruction errors."""
    pass


class NotFoundError(RepositoryError):
    """Raised when a requested object does not exist."""
    pass


class ScopeNotFoundError(NotFoundError):
    """Raised when a scope id is unknown to the hierarchy."""

    def __init__(self, level, scope_id):
        self.level = level
        self.scope_id = scope_id
        super().__init__(f"Scope not found: {getattr(level, 'value', level)} {scope_id}")


class InstructionNotFoundError(NotFoundError):
    """Raised when an instruction id is missing or no longer current."""

    def __init__(self, instruction_id):
        self.instruction_id = instruction_id
        super().__init__(f"CCM instruction not found: {instruction_id}")


class CarNotPlacedError(NotFoundError):
    """Raised when a car (or a hierarchy path) has no customer placement."""

    def __init__(self, car_number=None):
        self.car_number = car_number
        if car_number:
            message = f"Car has no active hierarchy placement: {car_number}"
        else:
            message = "Hierarchy path has no customer"
        super().__init__(message)


class InvalidScopeTypeError(RepositoryError, ValueError):
    """Raised for a scope level outside customer/master_lease/rider/amendment."""

    def __init__(self, value):
        self.value = value
        super().__init__(f"Invalid scope type: {value!r}")


class DuplicateInstructionError(RepositoryError):
    """Raised when a scope already has a current CCM instruction."""
    pass


class DuplicateSectionError(RepositoryError):
    """Raised when a commodity section already exists on an instruction."""
    pass
