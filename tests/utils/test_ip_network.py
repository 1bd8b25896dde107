"""Tests for address helpers: containment, list parsing and clustering."""

from warden.utils.ip_network import (
    cluster_network,
    ip_in_list,
    ip_in_network,
    is_public_ip,
    is_valid_ip,
    parse_ip_list,
    single_address_network,
    split_network,
)


class TestIpInNetwork:
    def test_ipv4_inside_network(self):
        assert ip_in_network("192.168.1.5", "192.168.1.0/24") is True

    def test_ipv4_outside_network(self):
        assert ip_in_network("192.168.2.5", "192.168.1.0/24") is False

    def test_bare_entry_is_exact_match(self):
        assert ip_in_network("10.0.0.1", "10.0.0.1") is True
        assert ip_in_network("10.0.0.2", "10.0.0.1") is False

    def test_ipv6_network(self):
        assert ip_in_network("2001:db8::1", "2001:db8::/64") is True
        assert ip_in_network("2001:db8:0:1::1", "2001:db8::/64") is False

    def test_prefix_zero_matches_everything_in_family(self):
        assert ip_in_network("8.8.8.8", "0.0.0.0/0") is True
        assert ip_in_network("2001:db8::1", "0.0.0.0/0") is False

    def test_full_prefix_matches_only_that_address(self):
        assert ip_in_network("203.0.113.7", "203.0.113.7/32") is True
        assert ip_in_network("203.0.113.8", "203.0.113.7/32") is False

    def test_non_octet_prefix(self):
        assert ip_in_network("10.0.0.130", "10.0.0.128/25") is True
        assert ip_in_network("10.0.0.127", "10.0.0.128/25") is False

    def test_family_mismatch_is_false(self):
        assert ip_in_network("192.168.1.5", "2001:db8::/32") is False

    def test_malformed_entries_are_false(self):
        assert ip_in_network("192.168.1.5", "192.168.1.0/33") is False
        assert ip_in_network("192.168.1.5", "192.168.1.0/abc") is False
        assert ip_in_network("not-an-ip", "192.168.1.0/24") is False

    def test_split_network_rejects_bare_address(self):
        assert split_network("192.168.1.1") is None


class TestIpLists:
    def test_parse_skips_blank_and_comment_lines(self):
        text = "# office\n203.0.113.5\n\n   \n10.0.0.0/8\n#192.0.2.1\n"
        assert parse_ip_list(text) == ["203.0.113.5", "10.0.0.0/8"]

    def test_parse_empty(self):
        assert parse_ip_list("") == []
        assert parse_ip_list(None) == []

    def test_ip_in_list_mixed_entries(self):
        entries = ["203.0.113.5", "10.0.0.0/8"]
        assert ip_in_list("203.0.113.5", entries) is True
        assert ip_in_list("10.20.30.40", entries) is True
        assert ip_in_list("203.0.113.6", entries) is False


class TestAddressClassification:
    def test_is_valid_ip(self):
        assert is_valid_ip("198.51.100.1") is True
        assert is_valid_ip("::1") is True
        assert is_valid_ip("999.1.1.1") is False

    def test_is_public_ip(self):
        assert is_public_ip("8.8.8.8") is True
        assert is_public_ip("192.168.1.1") is False
        assert is_public_ip("127.0.0.1") is False
        assert is_public_ip("garbage") is False


class TestClustering:
    def test_ipv4_cluster(self):
        assert cluster_network("203.0.113.77") == "203.0.113.0/24"

    def test_ipv6_cluster(self):
        assert cluster_network("2001:db8:1:2:3::9") == "2001:db8:1:2::/64"

    def test_single_address_networks(self):
        assert single_address_network("203.0.113.77") == "203.0.113.77/32"
        assert single_address_network("2001:db8::9") == "2001:db8::9/128"

    def test_invalid_address(self):
        assert cluster_network("nope") is None
        assert single_address_network("nope") is None
