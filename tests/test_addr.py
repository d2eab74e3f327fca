"""Tests for cabal address and endpoint parsing."""

from __future__ import annotations

from cabin.addr import from_hex, parse_host_port, to_hex


class TestHex:
    def test_round_pairs(self) -> None:
        assert from_hex("ab12") == b"\xab\x12"
        assert to_hex(b"\xab\x12") == "ab12"

    def test_uppercase(self) -> None:
        assert from_hex("AB") == b"\xab"

    def test_odd_trailing_digit_is_a_nibble(self) -> None:
        assert from_hex("abc") == b"\xab\x0c"

    def test_rejects_non_hex(self) -> None:
        assert from_hex("") is None
        assert from_hex("zz") is None
        assert from_hex(" a") is None
        assert from_hex("+1") is None


class TestHostPort:
    def test_host_and_port(self) -> None:
        assert parse_host_port("example.org:3000") == ("example.org", 3000)

    def test_bare_port_needs_default_host(self) -> None:
        assert parse_host_port("3000") is None
        assert parse_host_port("3000", default_host="0.0.0.0") == ("0.0.0.0", 3000)
        assert parse_host_port(":3000", default_host="0.0.0.0") == ("0.0.0.0", 3000)

    def test_ipv6_brackets(self) -> None:
        assert parse_host_port("[::1]:3000") == ("::1", 3000)

    def test_bad_ports(self) -> None:
        assert parse_host_port("host:") is None
        assert parse_host_port("host:abc") is None
        assert parse_host_port("host:70000") is None
