"""Core request-to-SQL engine for sqld.

Components (leaf to root):
    dialect        per-engine placeholder, quoting and schema rules
    request        path + query string -> DecomposedRequest
    query_builder  DecomposedRequest (+ payload) -> parameterized Statement
    raw            raw SQL classification and execution
    materializer   positional driver rows -> column-name mappings
    serializer     rows / ExecResult / errors -> JSON or delimited text
    handlers       per-verb orchestration on top of a backend
"""

from .dialect import DialectPolicy, parse_engine, resolve_dialect
from .exceptions import (
    BadRequest,
    ConfigurationError,
    InternalError,
    MethodNotAllowed,
    NotFound,
    ServiceUnavailable,
    SqlConnectionError,
    SqldError,
    SqlError,
    SqlQueryError,
    SqlTimeoutError,
)
from .handlers import QueryHandler
from .materializer import materialize, normalize_value
from .models import ExecResult, Row
from .query_builder import QueryBuilder, Statement
from .raw import QueryType, RawQueryExecutor, detect_query_type
from .request import CONTROL_KEYS, DecomposedRequest, decompose
from .serializer import OutputFormat, negotiate, render, render_error

__all__ = [
    # Dialect policy
    "DialectPolicy",
    "parse_engine",
    "resolve_dialect",
    # Errors
    "SqldError",
    "BadRequest",
    "NotFound",
    "MethodNotAllowed",
    "InternalError",
    "ServiceUnavailable",
    "ConfigurationError",
    "SqlError",
    "SqlConnectionError",
    "SqlQueryError",
    "SqlTimeoutError",
    # Request decomposition and query building
    "CONTROL_KEYS",
    "DecomposedRequest",
    "decompose",
    "QueryBuilder",
    "Statement",
    # Execution
    "QueryHandler",
    "QueryType",
    "RawQueryExecutor",
    "detect_query_type",
    "materialize",
    "normalize_value",
    # Results and rendering
    "ExecResult",
    "Row",
    "OutputFormat",
    "negotiate",
    "render",
    "render_error",
]
