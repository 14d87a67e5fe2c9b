# sqlrunner/management/firewall.py
"""
Temporary firewall rules for Azure database servers.

Azure SQL servers are managed through the Azure SDK (azure-mgmt-sql).
PostgreSQL flexible servers are managed through the Azure CLI ('az login' once).
"""

import json
import logging
import os
import shutil
import subprocess
from datetime import datetime
from typing import List, Optional

import requests
from azure.core.exceptions import AzureError
from azure.identity import DefaultAzureCredential
from azure.mgmt.sql import SqlManagementClient
from azure.mgmt.sql.models import FirewallRule

from sqlrunner import config
from sqlrunner.errors import FirewallError

logger = logging.getLogger(__name__)

WINDOWS_AZ_CMD = r"C:\Program Files\Microsoft SDKs\Azure\CLI2\wbin\az.cmd"


def generate_rule_name(now: Optional[datetime] = None) -> str:
    """Builds a rule name that is unique per invocation (timestamp down to microseconds)."""
    now = now or datetime.now()
    return f"{config.RULE_NAME_PREFIX}-{now.strftime('%Y%m%d%H%M%S%f')}"


def get_current_ip() -> str:
    """Get current public IP address.

    Raises:
        requests.RequestException: If the echo service cannot be reached.
    """
    response = requests.get(config.PUBLIC_IP_URL, timeout=config.PUBLIC_IP_TIMEOUT)
    response.raise_for_status()
    return response.text.strip()


class SqlServerFirewall:
    """Creates and deletes Azure SQL server firewall rules via Azure Resource Manager."""

    def __init__(self, subscription_id: str, credential=None, client: Optional[SqlManagementClient] = None):
        self.subscription_id = subscription_id
        self._credential = credential
        self._client = client

    @property
    def client(self) -> SqlManagementClient:
        """Lazy-load SQL Management client."""
        if self._client is None:
            if self._credential is None:
                self._credential = DefaultAzureCredential()
            self._client = SqlManagementClient(
                credential=self._credential,
                subscription_id=self.subscription_id
            )
        return self._client

    def create_rule(self, resource_group: str, server: str, ip_address: str) -> str:
        """Allows a single IP on the server.

        Args:
            resource_group: Resource group holding the server.
            server: Server resource name (not the FQDN).
            ip_address: Address to allow (start = end).

        Returns:
            Name of the created rule.

        Raises:
            FirewallError: If the ARM call fails.
        """
        rule_name = generate_rule_name()
        logger.info(f"Creating firewall rule '{rule_name}' for {ip_address} on server '{server}'...")
        try:
            self.client.firewall_rules.create_or_update(
                resource_group,
                server,
                rule_name,
                FirewallRule(start_ip_address=ip_address, end_ip_address=ip_address),
            )
        except AzureError as e:
            raise FirewallError(f"Failed to create firewall rule '{rule_name}': {e}") from e
        return rule_name

    def delete_rule(self, resource_group: str, server: str, rule_name: str) -> None:
        """Deletes the named rule.

        Raises:
            FirewallError: If the ARM call fails.
        """
        logger.info(f"Deleting firewall rule '{rule_name}' on server '{server}'...")
        try:
            self.client.firewall_rules.delete(resource_group, server, rule_name)
        except AzureError as e:
            raise FirewallError(f"Failed to delete firewall rule '{rule_name}': {e}") from e


def find_az_command() -> str:
    """Locates the az executable (handles the Windows .cmd install).

    Raises:
        FirewallError: If the Azure CLI is not installed.
    """
    az_cmd = shutil.which('az')
    if az_cmd:
        return az_cmd
    # Try common Windows installation path
    if os.path.exists(WINDOWS_AZ_CMD):
        return WINDOWS_AZ_CMD
    raise FirewallError(
        "Azure CLI (az) not found. Install it first: "
        "https://docs.microsoft.com/cli/azure/install-azure-cli"
    )


class PostgresFirewall:
    """Creates and deletes PostgreSQL flexible server firewall rules via the Azure CLI."""

    def __init__(self, subscription_id: Optional[str] = None, az_cmd: Optional[str] = None):
        self.subscription_id = subscription_id
        self._az_cmd = az_cmd

    @property
    def az_cmd(self) -> str:
        if self._az_cmd is None:
            self._az_cmd = find_az_command()
        return self._az_cmd

    def _run(self, args: List[str]) -> subprocess.CompletedProcess:
        cmd = [self.az_cmd, 'postgres', 'flexible-server', 'firewall-rule'] + args
        if self.subscription_id:
            cmd += ['--subscription', self.subscription_id]
        logger.debug(f"Running: {' '.join(cmd)}")
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, timeout=config.AZ_CLI_TIMEOUT)
        except (OSError, subprocess.TimeoutExpired) as e:
            raise FirewallError(f"Azure CLI call failed: {e}") from e
        if result.returncode != 0:
            raise FirewallError(f"Azure CLI exited with code {result.returncode}: {result.stderr.strip()}")
        return result

    def create_rule(self, resource_group: str, server: str, ip_address: str) -> str:
        rule_name = generate_rule_name()
        logger.info(f"Creating firewall rule '{rule_name}' for {ip_address} on server '{server}'...")
        result = self._run([
            'create',
            '--resource-group', resource_group,
            '--name', server,
            '--rule-name', rule_name,
            '--start-ip-address', ip_address,
            '--end-ip-address', ip_address,
        ])
        if result.stdout.strip():
            try:
                rule_info = json.loads(result.stdout)
                rule_name = rule_info.get('name', rule_name)
            except json.JSONDecodeError:
                logger.debug("Azure CLI returned non-JSON output for rule creation.")
        return rule_name

    def delete_rule(self, resource_group: str, server: str, rule_name: str) -> None:
        logger.info(f"Deleting firewall rule '{rule_name}' on server '{server}'...")
        self._run([
            'delete',
            '--resource-group', resource_group,
            '--name', server,
            '--rule-name', rule_name,
            '--yes',
        ])


def get_firewall_manager(engine: str, subscription_id: Optional[str] = None):
    """Returns the firewall manager for the given engine."""
    if engine == config.ENGINE_POSTGRES:
        return PostgresFirewall(subscription_id)
    return SqlServerFirewall(subscription_id)
