"""
Exceptions for recordql.
"""


class DatabaseException(Exception):
    """
    The base class for ALL exceptions.

    Catch this if you wish to catch any custom exception raised inside the lib.
    """


class ConfigurationError(DatabaseException):
    """
    Raised when a model or a database interface is misconfigured (missing table name, missing
    primary key name, no database bound, unknown alias).

    This is raised at construction time and is never retried.
    """


class AssociationConfigError(ConfigurationError):
    """
    Raised when an association declaration references a target that is not a model.
    """


class QueryExecutionError(DatabaseException):
    """
    Raised when the database fails to execute a query.
    """

    def __init__(self, message: str, code: str = None):
        super().__init__(message)

        #: The engine-defined error code for this failure, if any.
        self.code = code


class MissingTableError(QueryExecutionError):
    """
    Raised when a query references a table that does not exist.
    """

    #: The SQLSTATE code for "base table or view not found".
    CODE = "42S02"

    def __init__(self, message: str, code: str = CODE):
        super().__init__(message, code)


class IntegrityError(QueryExecutionError):
    """
    Raised when a column's integrity is not preserved (e.g. null or unique violations).
    """


class ViewModelError(DatabaseException):
    """
    Raised when a single row projection is requested on something that is not a single row.
    """


class UnsafeDeleteError(DatabaseException):
    """
    Raised when a delete has no primary key, no conditions, and was not explicitly allowed to
    delete every row in the table.
    """
