"""Shared fixtures for sqlrunner tests."""

import argparse
from unittest.mock import MagicMock

import pytest

from sqlrunner.execution.request import ExecutionRequest
from sqlrunner.management.db_utils import ResultSet


def make_args(**overrides) -> argparse.Namespace:
    """Namespace shaped like the CLI's parsed arguments, valid by default."""
    values = dict(
        server="contoso-sql",
        database="appdb",
        login="runner",
        password="s3cret!",
        engine="sqlserver",
        port=None,
        query_mode="inline",
        inline_query="SELECT 1 AS one",
        script_path=None,
        variables=[],
        firewall_ip=None,
        resource_group=None,
        subscription_id="00000000-0000-0000-0000-000000000000",
        remove_firewall_after=False,
        propagation_delay=10,
        query_timeout=0,
        connect_timeout=30,
    )
    values.update(overrides)
    return argparse.Namespace(**values)


def make_request(**overrides) -> ExecutionRequest:
    values = dict(
        server="contoso-sql",
        database="appdb",
        login="runner",
        password="s3cret!",
        inline_query="SELECT 1 AS one",
        subscription_id="00000000-0000-0000-0000-000000000000",
    )
    values.update(overrides)
    return ExecutionRequest(**values)


@pytest.fixture
def sql_client():
    client = MagicMock(name="sql_client")
    client.execute.return_value = [ResultSet(columns=["one"], rows=[(1,)], rows_affected=1)]
    return client


@pytest.fixture
def firewall():
    manager = MagicMock(name="firewall")
    manager.create_rule.return_value = "sqlrunner-20260101120000000000"
    return manager


@pytest.fixture
def no_sleep():
    return MagicMock(name="sleep")
