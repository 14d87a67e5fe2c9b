# sqlrunner/execution/runner.py
"""
Runs one statement, bracketed by an optional temporary firewall rule.

START -> [PROVISION] -> EXECUTE -> [CLEANUP] -> END
"""

import logging
import time
from contextlib import contextmanager
from typing import Any, Callable, Iterator, List, Optional

from sqlrunner.errors import CleanupError, ExecutionError, ProvisioningError, SqlRunnerError
from sqlrunner.execution.request import ExecutionRequest
from sqlrunner.execution.substitution import substitute_variables
from sqlrunner.management.db_utils import ResultSet, describe

logger = logging.getLogger(__name__)


@contextmanager
def temporary_firewall_rule(
    request: ExecutionRequest,
    firewall: Any,
    sleep: Optional[Callable[[float], None]] = None,
) -> Iterator[Optional[str]]:
    """Opens a firewall exception for the request's IP for the duration of the block.

    Yields the rule name, or None when no firewall IP was requested. The rule is
    removed on exit (success or failure) only if remove_firewall_after is set.
    A failed removal is logged and never replaces the block's own outcome.

    Raises:
        ProvisioningError: If the rule cannot be created; the block does not run.
    """
    if not request.wants_firewall:
        yield None
        return

    server = request.server_name
    try:
        rule_name = firewall.create_rule(request.resource_group, server, request.firewall_ip)
    except Exception as e:
        raise ProvisioningError(f"Could not create firewall rule for {request.firewall_ip} on '{server}': {e}") from e

    logger.info(f"Firewall rule '{rule_name}' created for {request.firewall_ip}.")
    if request.propagation_delay > 0:
        logger.info(f"Waiting {request.propagation_delay:g}s for the rule to propagate...")
        (sleep or time.sleep)(request.propagation_delay)

    try:
        yield rule_name
    finally:
        if request.remove_firewall_after:
            try:
                remove_rule(request, firewall, rule_name)
            except CleanupError as e:
                logger.error(str(e))
        else:
            logger.info(f"Firewall rule '{rule_name}' left in place (--remove-firewall-after not set).")


def remove_rule(request: ExecutionRequest, firewall: Any, rule_name: str) -> None:
    """Deletes the rule, wrapping any failure in CleanupError."""
    try:
        firewall.delete_rule(request.resource_group, request.server_name, rule_name)
    except Exception as e:
        raise CleanupError(f"Failed to remove firewall rule '{rule_name}': {e}") from e
    logger.info(f"Firewall rule '{rule_name}' removed.")


def prepare_statement(request: ExecutionRequest) -> str:
    """Reads the statement source and applies variable substitution."""
    statement = request.read_statement()
    return substitute_variables(statement, request.variables)


def execute_statement(request: ExecutionRequest, sql_client: Any, statement: str) -> List[ResultSet]:
    """Sends the statement to the SQL client.

    Raises:
        ExecutionError: On any failure reported by the client.
    """
    try:
        results = sql_client.execute(request, statement)
    except SqlRunnerError:
        raise
    except Exception as e:
        raise ExecutionError(f"Statement failed: {e}") from e
    results = list(results or [])
    logger.info(f"Statement completed: {describe(results)}.")
    return results


def run(
    request: ExecutionRequest,
    sql_client: Any,
    firewall: Any = None,
    sleep: Optional[Callable[[float], None]] = None,
) -> List[ResultSet]:
    """Main workflow: provision (optional), execute, clean up (optional).

    Args:
        request: Validated execution request.
        sql_client: Object with execute(request, statement) -> List[ResultSet].
        firewall: Object with create_rule/delete_rule; only used when the
            request carries a firewall IP.
        sleep: Blocking wait used for the propagation delay.

    Returns:
        Result sets returned by the statement.
    """
    # Read the script before touching the firewall so a bad file leaves nothing behind.
    statement = prepare_statement(request)

    if request.wants_firewall and firewall is None:
        raise ProvisioningError("A firewall IP was given but no firewall manager is configured.")

    with temporary_firewall_rule(request, firewall, sleep=sleep):
        return execute_statement(request, sql_client, statement)
