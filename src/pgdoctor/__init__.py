"""pgdoctor - Read-only health checks for PostgreSQL."""

__version__ = "0.3.0"
__license__ = "MIT"

# Exception hierarchy (import first so other modules can use it)
from pgdoctor.exceptions import (
    PgDoctorError,
    QueryError,
    CheckError,
    CheckTimeoutError,
    ConfigurationError,
    GatewayConnectionError,
)

from pgdoctor.check import (
    Category,
    Checker,
    CheckMetadata,
    Finding,
    InstanceMetadata,
    Report,
    Severity,
    Table,
    TableRow,
    max_severity,
)
from pgdoctor.config import Config, get_config, reset_config
from pgdoctor.registry import ALL_CHECKS, CheckPackage, all_checks
from pgdoctor.runner import all_filters, run, should_run_check, validate_filters

__all__ = [
    # Version
    "__version__",
    # Exceptions
    "PgDoctorError",
    "QueryError",
    "CheckError",
    "CheckTimeoutError",
    "ConfigurationError",
    "GatewayConnectionError",
    # Model
    "Category",
    "CheckMetadata",
    "Finding",
    "InstanceMetadata",
    "Report",
    "Severity",
    "Table",
    "TableRow",
    "max_severity",
    # Checks
    "Checker",
    "CheckPackage",
    "ALL_CHECKS",
    "all_checks",
    # Running
    "all_filters",
    "run",
    "should_run_check",
    "validate_filters",
    # Config
    "Config",
    "get_config",
    "reset_config",
]
