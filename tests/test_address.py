import pytest

from eventpool.address import normalize_address


class TestNormalizeAddress:
    """Unit tests for dial target normalization."""

    @pytest.mark.parametrize("address", ["n:9090", "localhost:50051", "10.0.0.1:1", ""])
    def test_strips_http_prefix(self, address: str):
        assert normalize_address("http://" + address) == address

    @pytest.mark.parametrize("address", [
        "n:9090",
        "https://n:9090",
        "grpc://n:9090",
        "HTTP://n:9090",
        " http://n:9090",
    ])
    def test_leaves_other_addresses_unchanged(self, address: str):
        assert normalize_address(address) == address

    def test_strips_only_one_prefix(self):
        assert normalize_address("http://http://n:9090") == "http://n:9090"

    def test_bare_scheme_normalizes_to_empty(self):
        assert normalize_address("http://") == ""
