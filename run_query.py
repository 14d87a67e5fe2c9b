# run_query.py
""" Command-line entry point: run one SQL statement against an Azure database """


import argparse
import logging
import sys
from typing import List, Optional

from sqlrunner import config
from sqlrunner.errors import ExecutionError, InputError, ProvisioningError
from sqlrunner.execution.request import build_request
from sqlrunner.execution.runner import run
from sqlrunner.delivery.renderer import render_result_sets
from sqlrunner.management.db_utils import get_sql_client
from sqlrunner.management.firewall import get_current_ip, get_firewall_manager

logger = logging.getLogger('sqlrunner')

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_INPUT_ERROR = 2


def setup_logging(verbose: bool = False) -> None:
    """Sends log output to stderr so stdout only carries result rows."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=config.LOG_FORMAT,
        stream=sys.stderr,
    )
    # The Azure SDK is very chatty at INFO.
    logging.getLogger('azure').setLevel(logging.DEBUG if verbose else logging.WARNING)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Execute a SQL statement against an Azure database, optionally opening a temporary firewall rule.",
        formatter_class=argparse.RawTextHelpFormatter
    )

    # --- Connection ---
    conn = parser.add_argument_group('connection')
    conn.add_argument('--server', type=str, default=config.env_default('SQL_SERVER'), help='Server name or FQDN (env: SQL_SERVER)')
    conn.add_argument('--database', type=str, default=config.env_default('SQL_DATABASE'), help='Database name (env: SQL_DATABASE)')
    conn.add_argument('--login', type=str, default=config.env_default('SQL_LOGIN'), help='Login name (env: SQL_LOGIN)')
    conn.add_argument('--password', type=str, default=config.env_default('SQL_PASSWORD'), help='Password (env: SQL_PASSWORD)')
    conn.add_argument('--engine', choices=config.ENGINES, default=config.ENGINE_SQLSERVER, help='Database engine (default: %(default)s)')
    conn.add_argument('--port', type=int, help='TCP port (default: 1433 for sqlserver, 5432 for postgres)')
    conn.add_argument('--driver', type=str, default=config.ODBC_DRIVER, help='ODBC driver for sqlserver (default: %(default)s)')
    conn.add_argument('--connect-timeout', type=int, default=config.CONNECT_TIMEOUT, help='Login timeout in seconds (default: %(default)s)')
    conn.add_argument('--query-timeout', type=int, default=config.QUERY_TIMEOUT, help='Query timeout in seconds, 0 for none (default: %(default)s)')

    # --- Statement ---
    stmt = parser.add_argument_group('statement')
    stmt.add_argument('--query-mode', choices=config.QUERY_MODES, default=config.QUERY_MODE_INLINE, help='Where the statement comes from (default: %(default)s)')
    stmt.add_argument('--inline-query', type=str, help='Statement text, for --query-mode inline')
    stmt.add_argument('--script-path', type=str, help='Path to a .sql file, for --query-mode file')
    stmt.add_argument('--variables', nargs='*', default=[], metavar='NAME=VALUE', help='Values for $(NAME) placeholders in the statement')

    # --- Firewall ---
    fw = parser.add_argument_group('firewall')
    fw.add_argument('--firewall-ip', type=str, help="IP address to allow before running, or 'auto' to detect it")
    fw.add_argument('--resource-group', type=str, help='Resource group of the server (required with --firewall-ip)')
    fw.add_argument('--subscription-id', type=str, default=config.env_default('AZURE_SUBSCRIPTION_ID'), help='Azure subscription (env: AZURE_SUBSCRIPTION_ID)')
    fw.add_argument('--remove-firewall-after', action='store_true', help='Delete the temporary rule when done')
    fw.add_argument('--propagation-delay', type=float, default=config.PROPAGATION_DELAY_SECONDS, help='Seconds to wait after creating the rule (default: %(default)s)')

    # --- Output ---
    parser.add_argument('--output-format', choices=config.OUTPUT_FORMATS, default='table', help='Result format (default: %(default)s)')
    parser.add_argument('-v', '--verbose', action='store_true', help='Debug logging')

    return parser


def main(argv: Optional[List[str]] = None, sql_client=None, firewall=None) -> int:
    """Main entry point for the query runner.

    Returns:
        Process exit code.
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.verbose)

    try:
        request = build_request(args, resolve_public_ip=get_current_ip)
    except InputError as e:
        logger.error(f"Invalid input: {e}")
        return EXIT_INPUT_ERROR

    if sql_client is None:
        sql_client = get_sql_client(request.engine, args.driver)
    if firewall is None and request.wants_firewall:
        firewall = get_firewall_manager(request.engine, request.subscription_id)

    try:
        results = run(request, sql_client, firewall)
    except InputError as e:
        logger.error(f"Invalid input: {e}")
        return EXIT_INPUT_ERROR
    except ProvisioningError as e:
        logger.error(f"Provisioning failed: {e}")
        logger.debug("Traceback:", exc_info=True)
        return EXIT_FAILURE
    except ExecutionError as e:
        logger.error(f"Execution failed: {e}")
        logger.debug("Traceback:", exc_info=True)
        return EXIT_FAILURE

    try:
        output = render_result_sets(results, args.output_format)
    except Exception as e:
        # The statement already ran; say so rather than leaving only a traceback.
        logger.error(f"Statement succeeded but its results could not be formatted as {args.output_format}: {e}")
        logger.debug("Traceback:", exc_info=True)
        return EXIT_FAILURE

    if output:
        print(output)
    else:
        logger.info("Statement returned no rows.")
    return EXIT_OK


if __name__ == '__main__':
    sys.exit(main())
