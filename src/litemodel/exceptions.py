"""
Exception classes for model persistence.
"""
import sqlalchemy as sa


class DatabaseError(Exception):
    """Base class for all litemodel errors.
    """


class ConnectionFailure(DatabaseError):
    """Error establishing or maintaining database connection.
    """


class NotInitializedError(ConnectionFailure):
    """The database handle was used before `initialize()` succeeded.
    """


class QueryError(DatabaseError):
    """Error in query construction or execution.
    """


class ValidationError(DatabaseError):
    """Error in input validation.
    """


class MissingIdentifierError(ValidationError):
    """An update or delete was requested for a model without an id.
    """


class TypeConversionError(DatabaseError, TypeError):
    """A coercion helper received a value kind it does not handle.

    This signals a programming error: the caller should know which Python
    type the driver returns for the column.
    """


class ModelContractError(DatabaseError, TypeError):
    """A model type does not satisfy the model contract.

    Raised for types without a table name, duplicate or malformed column
    tags, and field types the serializer cannot render.
    """


DbConnectionError = (
    sa.exc.OperationalError,
    sa.exc.InterfaceError,
    ConnectionFailure,
    )

IntegrityError = (
    sa.exc.IntegrityError,
    )

ProgrammingError = (
    sa.exc.ProgrammingError,
    QueryError,
    )

OperationalError = (
    sa.exc.OperationalError,
    )
