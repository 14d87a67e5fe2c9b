# sqlrunner/config.py
"""
Runtime defaults for the query runner.
Secrets and connection defaults are read from the environment (or the project .env).
"""

import os
from typing import Dict, Optional
from dotenv import load_dotenv

# Determine the project root and load the .env file from there
PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
load_dotenv(os.path.join(PROJECT_ROOT, '.env'))

# --- ENGINES ---
ENGINE_SQLSERVER: str = "sqlserver"
ENGINE_POSTGRES: str = "postgres"
ENGINES = (ENGINE_SQLSERVER, ENGINE_POSTGRES)

# Azure host suffixes, used to expand short server names and to recover the
# ARM server name from an FQDN.
HOST_SUFFIXES: Dict[str, str] = {
    ENGINE_SQLSERVER: ".database.windows.net",
    ENGINE_POSTGRES: ".postgres.database.azure.com",
}

DEFAULT_PORTS: Dict[str, int] = {
    ENGINE_SQLSERVER: 1433,
    ENGINE_POSTGRES: 5432,
}

ODBC_DRIVER: str = "ODBC Driver 18 for SQL Server"

# --- STATEMENT SOURCE ---
QUERY_MODE_INLINE: str = "inline"
QUERY_MODE_FILE: str = "file"
QUERY_MODES = (QUERY_MODE_INLINE, QUERY_MODE_FILE)

SCRIPT_ENCODING: str = "utf-8-sig"

# --- FIREWALL ---
# Azure applies new firewall rules asynchronously; this is a best-effort wait.
PROPAGATION_DELAY_SECONDS: float = 10
RULE_NAME_PREFIX: str = "sqlrunner"
PUBLIC_IP_URL: str = "https://api.ipify.org"
PUBLIC_IP_TIMEOUT: int = 5
AZ_CLI_TIMEOUT: int = 120

# --- TIMEOUTS (seconds) ---
CONNECT_TIMEOUT: int = 30
QUERY_TIMEOUT: int = 0  # 0 = no limit

# --- OUTPUT ---
OUTPUT_FORMATS = ("table", "csv", "json")

# --- LOGGING ---
LOG_FORMAT: str = '%(asctime)s - %(levelname)s - %(message)s'


def env_default(name: str) -> Optional[str]:
    """Returns an environment value, treating blank strings as unset."""
    value = os.getenv(name)
    return value if value else None
