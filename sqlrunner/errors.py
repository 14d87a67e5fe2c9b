# sqlrunner/errors.py
"""
Error taxonomy for a query run.

Each class maps to one phase of the run; the CLI turns them into exit codes.
"""


class SqlRunnerError(Exception):
    """Base class for every error raised by sqlrunner."""


class InputError(SqlRunnerError):
    """Bad or missing parameters. Raised before any external call is made."""


class ProvisioningError(SqlRunnerError):
    """The temporary firewall rule could not be created."""


class ExecutionError(SqlRunnerError):
    """The SQL statement could not be executed."""


class CleanupError(SqlRunnerError):
    """The temporary firewall rule could not be removed."""


class FirewallError(SqlRunnerError):
    """A firewall-management call failed (ARM error, az CLI failure)."""
