# sqlrunner/execution/request.py
"""
The execution request: one immutable value assembled from parsed CLI input.
All validation happens here, before any external capability is touched.
"""

import ipaddress
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

from sqlrunner import config
from sqlrunner.errors import InputError
from sqlrunner.execution.substitution import parse_variables

logger = logging.getLogger(__name__)

AUTO_IP: str = "auto"


@dataclass(frozen=True)
class ExecutionRequest:
    server: str
    database: str
    login: str
    password: str = field(repr=False)
    query_mode: str = config.QUERY_MODE_INLINE
    inline_query: Optional[str] = None
    script_path: Optional[str] = None
    variables: Dict[str, str] = field(default_factory=dict)
    firewall_ip: Optional[str] = None
    resource_group: Optional[str] = None
    remove_firewall_after: bool = False
    engine: str = config.ENGINE_SQLSERVER
    subscription_id: Optional[str] = None
    port: Optional[int] = None
    propagation_delay: float = config.PROPAGATION_DELAY_SECONDS
    query_timeout: int = config.QUERY_TIMEOUT
    connect_timeout: int = config.CONNECT_TIMEOUT

    def _bare_server(self) -> str:
        # Accept the 'tcp:host,port' form users copy from the Azure portal.
        name = self.server.strip()
        if name.lower().startswith('tcp:'):
            name = name[4:]
        return name.split(',')[0]

    @property
    def host(self) -> str:
        """Fully qualified host name used for the database connection."""
        name = self._bare_server()
        if '.' in name:
            return name
        return name + config.HOST_SUFFIXES[self.engine]

    @property
    def server_name(self) -> str:
        """Azure resource name of the server, as used by the firewall API."""
        suffix = config.HOST_SUFFIXES[self.engine]
        name = self._bare_server()
        if name.lower().endswith(suffix):
            return name[:-len(suffix)]
        return name.split('.')[0]

    @property
    def wants_firewall(self) -> bool:
        return bool(self.firewall_ip)

    def read_statement(self) -> str:
        """Returns the raw statement text: the inline query, or the script file verbatim.

        Raises:
            InputError: If the script file cannot be read.
        """
        if self.query_mode == config.QUERY_MODE_INLINE:
            return self.inline_query
        try:
            with open(self.script_path, 'r', encoding=config.SCRIPT_ENCODING, newline='') as f:
                return f.read()
        except (OSError, UnicodeDecodeError) as e:
            raise InputError(f"Could not read script file '{self.script_path}': {e}") from e


def _require(value: Optional[str], flag: str) -> str:
    if value is None or not str(value).strip():
        raise InputError(f"Missing required parameter {flag}.")
    return value


def _port_from_server(server: str) -> Optional[int]:
    """Returns the port of a 'host,port' server string, or None."""
    if ',' not in server:
        return None
    value = server.rsplit(',', 1)[1].strip()
    if not value.isdigit():
        raise InputError(f"Invalid port '{value}' in --server.")
    return int(value)


def _validate_ip(value: str) -> str:
    try:
        return str(ipaddress.ip_address(value.strip()))
    except ValueError as e:
        raise InputError(f"Invalid firewall IP address '{value}'.") from e


def build_request(args: Any, resolve_public_ip: Optional[Callable[[], str]] = None) -> ExecutionRequest:
    """Validates parsed arguments and builds the execution request.

    Args:
        args: argparse namespace (or any object with the same attributes).
        resolve_public_ip: Called to detect the caller's public IP when
            --firewall-ip is 'auto'. Only invoked after every other check passed.

    Returns:
        The immutable request.

    Raises:
        InputError: On any invalid or missing parameter.
    """
    server = _require(args.server, '--server')
    database = _require(args.database, '--database')
    login = _require(args.login, '--login')
    password = _require(args.password, '--password')

    engine = getattr(args, 'engine', None) or config.ENGINE_SQLSERVER
    if engine not in config.ENGINES:
        raise InputError(f"Unknown engine '{engine}'.")

    query_mode = args.query_mode or config.QUERY_MODE_INLINE
    inline_query = None
    script_path = None
    if query_mode == config.QUERY_MODE_INLINE:
        inline_query = _require(args.inline_query, '--inline-query (required when --query-mode is inline)')
    elif query_mode == config.QUERY_MODE_FILE:
        script_path = _require(args.script_path, '--script-path (required when --query-mode is file)')
        if not os.path.isfile(script_path):
            raise InputError(f"Script file '{script_path}' does not exist.")
    else:
        raise InputError(f"Unknown query mode '{query_mode}'.")

    variables = parse_variables(getattr(args, 'variables', None) or [])

    firewall_ip = (args.firewall_ip or '').strip() or None
    resource_group = (args.resource_group or '').strip() or None
    subscription_id = getattr(args, 'subscription_id', None)
    if firewall_ip:
        if not resource_group:
            raise InputError("--resource-group is required when --firewall-ip is given.")
        if firewall_ip.lower() != AUTO_IP:
            firewall_ip = _validate_ip(firewall_ip)
        if engine == config.ENGINE_SQLSERVER and not subscription_id:
            raise InputError("--subscription-id (or AZURE_SUBSCRIPTION_ID) is required to manage Azure SQL firewall rules.")
    elif args.remove_firewall_after:
        logger.warning("--remove-firewall-after has no effect without --firewall-ip.")

    propagation_delay = getattr(args, 'propagation_delay', None)
    if propagation_delay is None:
        propagation_delay = config.PROPAGATION_DELAY_SECONDS
    query_timeout = getattr(args, 'query_timeout', None)
    if query_timeout is None:
        query_timeout = config.QUERY_TIMEOUT
    connect_timeout = getattr(args, 'connect_timeout', None)
    if connect_timeout is None:
        connect_timeout = config.CONNECT_TIMEOUT
    if propagation_delay < 0 or query_timeout < 0 or connect_timeout < 0:
        raise InputError("Delays and timeouts must not be negative.")

    port = getattr(args, 'port', None)
    server_port = _port_from_server(server)
    if server_port is not None:
        if port is not None and port != server_port:
            raise InputError(f"--server names port {server_port} but --port is {port}.")
        port = server_port
    if port is not None and port <= 0:
        raise InputError(f"Invalid port {port}.")

    # Last step: everything else is valid, so an outbound lookup is acceptable now.
    if firewall_ip and firewall_ip.lower() == AUTO_IP:
        if resolve_public_ip is None:
            raise InputError("--firewall-ip auto requires public IP detection.")
        try:
            firewall_ip = _validate_ip(resolve_public_ip())
        except InputError:
            raise
        except Exception as e:
            raise InputError(f"Could not detect public IP address: {e}") from e
        logger.info(f"Detected public IP address {firewall_ip}.")

    return ExecutionRequest(
        server=server.strip(),
        database=database.strip(),
        login=login,
        password=password,
        query_mode=query_mode,
        inline_query=inline_query,
        script_path=script_path,
        variables=variables,
        firewall_ip=firewall_ip,
        resource_group=resource_group,
        remove_firewall_after=bool(args.remove_firewall_after),
        engine=engine,
        subscription_id=subscription_id,
        port=port,
        propagation_delay=propagation_delay,
        query_timeout=query_timeout,
        connect_timeout=connect_timeout,
    )
