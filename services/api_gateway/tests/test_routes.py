"""Tests for the route table."""

from services.api_gateway.app.routing import RouteTable


class TestRouteTable:
    """Tests for prefix matching."""

    def test_explicit_route_strips_prefix(self):
        """Test the matched prefix is removed from the downstream path."""
        table = RouteTable({"/api/licensing": "licensingservice"})

        match = table.match("/api/licensing/v1/organizations/o-1/licenses")

        assert match.service_id == "licensingservice"
        assert match.prefix == "/api/licensing"
        assert match.downstream_path == "/v1/organizations/o-1/licenses"

    def test_longest_prefix_wins(self):
        """Test the most specific route is chosen."""
        table = RouteTable(
            {"/api": "organizationservice", "/api/licensing/": "LicensingService"}
        )

        assert table.match("/api/licensing/x").service_id == "licensingservice"
        assert table.match("/api/other").service_id == "organizationservice"

    def test_prefix_matches_on_segment_boundary(self):
        """Test a prefix does not match a longer segment."""
        table = RouteTable({"/api/licensing": "licensingservice"})

        assert table.match("/api/licensingfoo") is None

    def test_exact_prefix_routes_to_root(self):
        """Test the prefix alone maps to the service root."""
        table = RouteTable({"/api/licensing": "licensingservice"})

        assert table.match("/api/licensing").downstream_path == "/"

    def test_keep_prefix(self):
        """Test the full path is forwarded when stripping is disabled."""
        table = RouteTable({"/api/licensing": "licensingservice"}, strip_prefix=False)

        assert table.match("/api/licensing/v1").downstream_path == "/api/licensing/v1"

    def test_discovery_route(self):
        """Test the first segment names the service when no explicit route matches."""
        table = RouteTable({}, discovery_routes=True)

        match = table.match("/OrganizationService/v1/organizations/o-1")

        assert match.service_id == "organizationservice"
        assert match.downstream_path == "/v1/organizations/o-1"

    def test_no_match(self):
        """Test unmatched paths return None without discovery routes."""
        table = RouteTable({"/api/licensing": "licensingservice"})

        assert table.match("/") is None
        assert table.match("/unknown/path") is None

    def test_service_ids(self):
        """Test explicit routes list their services once."""
        table = RouteTable({"/a": "licensingservice", "/b": "licensingservice", "/c": "org"})

        assert table.service_ids() == ["licensingservice", "org"]
