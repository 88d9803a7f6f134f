import ipaddress

import pytest

from utils.allowlist import Allowlist, CidrBlock


def ip(value):
    return ipaddress.ip_address(value)


def test_parse_sorts_entries_by_kind():
    allowlist = Allowlist.parse(" API.Example.com , *.corp.example.com, 10.20.0.0/16, 10.1.2.3 ,, ")

    assert allowlist.hostnames == frozenset({"api.example.com"})
    assert allowlist.wildcard_suffixes == (".corp.example.com",)
    assert [block.prefix for block in allowlist.cidrs] == [16, 32]


def test_parse_skips_invalid_cidr():
    allowlist = Allowlist.parse("10.0.0.0/33,192.168.1.0/24")

    assert len(allowlist.cidrs) == 1
    assert allowlist.matches_ip(ip("192.168.1.77"))


def test_empty_input():
    assert Allowlist.parse("").is_empty
    assert Allowlist.parse(None).is_empty
    assert Allowlist().is_empty


def test_exact_hostname_is_case_insensitive():
    allowlist = Allowlist.parse("status.example.com")

    assert allowlist.matches_hostname("STATUS.example.com")
    assert allowlist.matches_hostname("status.example.com.")
    assert not allowlist.matches_hostname("other.example.com")


def test_wildcard_matches_subdomains_only():
    allowlist = Allowlist.parse("*.corp.example.com")

    assert allowlist.matches_hostname("db.corp.example.com")
    assert allowlist.matches_hostname("a.b.corp.example.com")
    assert not allowlist.matches_hostname("corp.example.com")
    assert not allowlist.matches_hostname("evilcorp.example.com")


def test_cidr_block_bitwise_match():
    block = CidrBlock.parse("172.16.0.0/12")

    assert block.contains(ip("172.31.255.255"))
    assert not block.contains(ip("172.32.0.1"))
    assert not block.contains(ip("::1"))


def test_cidr_block_normalizes_host_bits():
    block = CidrBlock.parse("10.1.2.3/8")

    assert block.base == int(ip("10.0.0.0"))
    assert block.contains(ip("10.200.0.1"))


def test_ipv6_cidr():
    allowlist = Allowlist.parse("fd00:1234::/32")

    assert allowlist.matches_ip(ip("fd00:1234::5"))
    assert not allowlist.matches_ip(ip("fd00:1235::5"))


def test_ipv4_mapped_address_matches_ipv4_entry():
    allowlist = Allowlist.parse("127.0.0.0/8")

    assert allowlist.matches_ip(ip("::ffff:127.0.0.1"))


@pytest.mark.parametrize("raw, expected", [
    ("169.254.169.254", True),
    ("169.254.169.254/32", True),
    ("169.254.0.0/16", False),
    ("0.0.0.0/0", False),
])
def test_explicitly_lists_requires_single_address(raw, expected):
    allowlist = Allowlist.parse(raw)

    assert allowlist.explicitly_lists(ip("169.254.169.254")) is expected
