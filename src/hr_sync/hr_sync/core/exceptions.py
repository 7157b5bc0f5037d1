class DomainError(Exception):
    """Base exception for business rule violations."""


class ValidationError(DomainError):
    """Raised when input data is invalid or violates domain rules."""


class RecordNotFoundError(DomainError):
    """Raised when an identity is unknown to a view or has been deleted."""


class IdentityMigrationError(DomainError):
    """Raised when a temporary identity cannot be swapped for its final one."""

    def __init__(self, temporary_id, final_id):
        super().__init__(f"temporary identity {temporary_id!r} not found while migrating to {final_id!r}")
        self.temporary_id = temporary_id
        self.final_id = final_id


class DataSourceError(Exception):
    """Raised by a remote data source when a query, mutation or upload fails."""


class MutationRejectedError(DataSourceError):
    """Raised when the store refuses a mutation (validation, conflict, permission)."""
