"""Tests for request validation and assembly."""

import dataclasses
from unittest.mock import MagicMock

import pytest

from sqlrunner.errors import InputError
from sqlrunner.execution.request import build_request

from conftest import make_args, make_request


class TestRequiredFields:
    """Tests for fail-fast validation of required parameters."""

    @pytest.mark.parametrize("field", ["server", "database", "login", "password"])
    def test_missing_field_rejected(self, field):
        """Test each required connection field."""
        with pytest.raises(InputError):
            build_request(make_args(**{field: None}))

    @pytest.mark.parametrize("field", ["server", "database", "login", "password"])
    def test_blank_field_rejected(self, field):
        with pytest.raises(InputError):
            build_request(make_args(**{field: "   "}))

    def test_valid_args_build_request(self):
        request = build_request(make_args())
        assert request.server == "contoso-sql"
        assert request.inline_query == "SELECT 1 AS one"
        assert request.remove_firewall_after is False


class TestStatementSource:
    """Tests for inline/file statement selection."""

    def test_inline_mode_requires_query(self):
        with pytest.raises(InputError):
            build_request(make_args(inline_query=None))

    def test_file_mode_requires_existing_path(self, tmp_path):
        """Test a missing script file is rejected."""
        with pytest.raises(InputError):
            build_request(make_args(query_mode="file", script_path=str(tmp_path / "missing.sql")))

    def test_missing_file_fails_like_missing_literal(self, tmp_path):
        """Test both bad statement sources raise the same error type."""
        with pytest.raises(InputError) as missing_file:
            build_request(make_args(query_mode="file", script_path=str(tmp_path / "nope.sql")))
        with pytest.raises(InputError) as missing_literal:
            build_request(make_args(inline_query=""))
        assert type(missing_file.value) is type(missing_literal.value)

    def test_directory_is_not_a_script(self, tmp_path):
        with pytest.raises(InputError):
            build_request(make_args(query_mode="file", script_path=str(tmp_path)))

    def test_file_mode_ignores_inline_query(self, tmp_path):
        script = tmp_path / "q.sql"
        script.write_text("SELECT 2", encoding="utf-8")
        request = build_request(make_args(query_mode="file", script_path=str(script)))
        assert request.inline_query is None
        assert request.read_statement() == "SELECT 2"

    def test_script_read_verbatim_without_bom(self, tmp_path):
        """Test the UTF-8 BOM written by SSMS is dropped and nothing else changes."""
        script = tmp_path / "bom.sql"
        script.write_bytes("\ufeffSELECT 'é'\r\nGO\r\n".encode("utf-8"))
        request = make_request(query_mode="file", inline_query=None, script_path=str(script))
        assert request.read_statement() == "SELECT 'é'\r\nGO\r\n"

    def test_unknown_mode_rejected(self):
        with pytest.raises(InputError):
            build_request(make_args(query_mode="stdin"))


class TestFirewallParameters:
    """Tests for firewall IP / resource group coupling."""

    def test_ip_without_resource_group_rejected(self):
        with pytest.raises(InputError):
            build_request(make_args(firewall_ip="203.0.113.7"))

    def test_resource_group_without_ip_allowed(self):
        request = build_request(make_args(resource_group="rg-data"))
        assert request.wants_firewall is False

    def test_invalid_ip_rejected(self):
        with pytest.raises(InputError):
            build_request(make_args(firewall_ip="203.0.113.999", resource_group="rg-data"))

    def test_valid_ip_accepted(self):
        request = build_request(make_args(firewall_ip=" 203.0.113.7 ", resource_group="rg-data"))
        assert request.firewall_ip == "203.0.113.7"
        assert request.wants_firewall is True

    def test_sqlserver_firewall_needs_subscription(self):
        with pytest.raises(InputError):
            build_request(make_args(firewall_ip="203.0.113.7", resource_group="rg-data", subscription_id=None))

    def test_postgres_firewall_uses_cli_default_subscription(self):
        request = build_request(make_args(
            engine="postgres", firewall_ip="203.0.113.7", resource_group="rg-data", subscription_id=None,
        ))
        assert request.subscription_id is None

    def test_auto_ip_resolved_after_validation(self):
        """Test 'auto' is looked up and validated."""
        resolver = MagicMock(return_value="198.51.100.20\n")
        request = build_request(make_args(firewall_ip="auto", resource_group="rg-data"), resolve_public_ip=resolver)
        assert request.firewall_ip == "198.51.100.20"
        resolver.assert_called_once_with()

    def test_auto_ip_not_resolved_when_input_invalid(self):
        """Test no lookup happens if another parameter is bad."""
        resolver = MagicMock(return_value="198.51.100.20")
        with pytest.raises(InputError):
            build_request(make_args(firewall_ip="auto", resource_group="rg-data", database=None), resolve_public_ip=resolver)
        resolver.assert_not_called()

    def test_auto_ip_lookup_failure_is_input_error(self):
        resolver = MagicMock(side_effect=OSError("network down"))
        with pytest.raises(InputError):
            build_request(make_args(firewall_ip="auto", resource_group="rg-data"), resolve_public_ip=resolver)


class TestOptions:
    """Tests for variables, timeouts and ports."""

    def test_variables_parsed(self):
        request = build_request(make_args(variables=["UserName=JohnDoe"]))
        assert request.variables == {"UserName": "JohnDoe"}

    def test_duplicate_variables_rejected(self):
        with pytest.raises(InputError):
            build_request(make_args(variables=["A=1", "A=2"]))

    def test_negative_delay_rejected(self):
        with pytest.raises(InputError):
            build_request(make_args(propagation_delay=-1))

    def test_invalid_port_rejected(self):
        with pytest.raises(InputError):
            build_request(make_args(port=0))

    def test_missing_optional_values_use_defaults(self):
        request = build_request(make_args(propagation_delay=None, query_timeout=None, connect_timeout=None))
        assert request.propagation_delay == 10
        assert request.query_timeout == 0
        assert request.connect_timeout == 30


class TestExecutionRequest:
    """Tests for the request value itself."""

    def test_request_is_immutable(self):
        request = make_request()
        with pytest.raises(dataclasses.FrozenInstanceError):
            request.server = "other"

    def test_password_hidden_from_repr(self):
        assert "s3cret!" not in repr(make_request())

    def test_short_name_expanded_to_fqdn(self):
        assert make_request().host == "contoso-sql.database.windows.net"
        assert make_request(engine="postgres").host == "contoso-sql.postgres.database.azure.com"

    def test_fqdn_kept_for_connection(self):
        request = make_request(server="contoso-sql.database.windows.net")
        assert request.host == "contoso-sql.database.windows.net"

    def test_server_name_from_fqdn(self):
        """Test the ARM resource name is recovered from an FQDN."""
        assert make_request(server="Contoso-SQL.database.windows.net").server_name == "Contoso-SQL"
        assert make_request(server="tcp:contoso-sql.database.windows.net,1433").server_name == "contoso-sql"
        assert make_request(server="pg-01.postgres.database.azure.com", engine="postgres").server_name == "pg-01"

    def test_portal_connection_form_normalised(self):
        request = build_request(make_args(server="tcp:contoso-sql.database.windows.net,1500"))
        assert request.host == "contoso-sql.database.windows.net"
        assert request.port == 1500

    def test_server_port_matching_flag_accepted(self):
        request = build_request(make_args(server="contoso-sql.database.windows.net,1500", port=1500))
        assert request.port == 1500

    def test_server_port_conflicting_with_flag_rejected(self):
        with pytest.raises(InputError):
            build_request(make_args(server="contoso-sql.database.windows.net,1500", port=1433))

    def test_non_numeric_server_port_rejected(self):
        with pytest.raises(InputError):
            build_request(make_args(server="contoso-sql.database.windows.net,abc"))
