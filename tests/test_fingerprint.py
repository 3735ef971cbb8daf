"""Tests for client IP extraction and fingerprint derivation."""

import hashlib

from deferlink.core.fingerprint import (
    FINGERPRINT_LENGTH,
    generate_fingerprint,
    generate_ip_fingerprint,
    get_client_ip,
)


class TestGetClientIp:
    def test_forwarded_for_first_entry_wins(self):
        headers = {"x-forwarded-for": "203.0.113.7, 10.0.0.1, 172.16.0.9"}
        assert get_client_ip(headers, "10.0.0.254") == "203.0.113.7"

    def test_forwarded_for_is_trimmed(self):
        headers = {"x-forwarded-for": "   198.51.100.4  ,10.0.0.1"}
        assert get_client_ip(headers) == "198.51.100.4"

    def test_private_first_hop_is_not_skipped(self):
        headers = {"x-forwarded-for": "10.1.2.3, 203.0.113.7"}
        assert get_client_ip(headers) == "10.1.2.3"

    def test_falls_back_to_peer(self):
        assert get_client_ip({}, "192.0.2.10") == "192.0.2.10"

    def test_empty_forwarded_header_falls_back_to_peer(self):
        assert get_client_ip({"x-forwarded-for": ""}, "192.0.2.10") == "192.0.2.10"

    def test_unknown_sentinel(self):
        assert get_client_ip({}) == "unknown"
        assert get_client_ip({}, None) == "unknown"


class TestFingerprints:
    def test_ip_fingerprint_is_truncated_sha256(self):
        expected = hashlib.sha256(b"203.0.113.7").hexdigest()[:32]
        assert generate_ip_fingerprint("203.0.113.7") == expected
        assert len(expected) == FINGERPRINT_LENGTH

    def test_ip_fingerprint_is_deterministic(self):
        assert generate_ip_fingerprint("203.0.113.7") == generate_ip_fingerprint("203.0.113.7")

    def test_different_ips_differ(self):
        assert generate_ip_fingerprint("203.0.113.7") != generate_ip_fingerprint("203.0.113.8")

    def test_ua_variant_joins_with_pipe(self):
        expected = hashlib.sha256(b"203.0.113.7|Mozilla/5.0").hexdigest()[:32]
        assert generate_fingerprint("203.0.113.7", "Mozilla/5.0") == expected

    def test_browser_and_app_user_agents_break_ua_variant(self):
        ip = "203.0.113.7"
        browser = generate_fingerprint(ip, "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) Safari/604.1")
        app = generate_fingerprint(ip, "ExampleApp/1.0 CFNetwork/1474 Darwin/23.0.0")
        assert browser != app
        # The IP-only variant is what matching relies on
        assert generate_ip_fingerprint(ip) == generate_ip_fingerprint(ip)
