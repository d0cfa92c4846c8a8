"""Domain and IP address validation.

Domains are normalized to lowercase without a trailing dot before they are
checked, so "Example.TEST." and "example.test" are the same domain
everywhere in domainguard.
"""

import ipaddress
import logging
import re

from domainguard.exceptions import ValidationError

logger = logging.getLogger(__name__)

# One or more labels followed by an alphabetic TLD of at least two characters
DOMAIN_PATTERN = re.compile(
    r"^([a-z0-9]([a-z0-9\-]{0,61}[a-z0-9])?\.)+[a-z]{2,}$"
)
MAX_DOMAIN_LENGTH = 253

IPV4_PATTERN = re.compile(r"^[0-9]{1,3}\.[0-9]{1,3}\.[0-9]{1,3}\.[0-9]{1,3}$")
IPV6_CHARS = re.compile(r"^[0-9a-fA-F:.]+$")


def normalize_domain(raw: str) -> str:
    """Lowercase a domain and drop surrounding whitespace and one trailing dot."""
    domain = raw.strip().lower()
    if domain.endswith("."):
        domain = domain[:-1]
    return domain


def is_valid_domain(domain: str) -> bool:
    """Check a (normalized) domain against the hostname grammar."""
    if not domain or len(domain) > MAX_DOMAIN_LENGTH:
        return False
    return DOMAIN_PATTERN.fullmatch(domain) is not None


def validate_domain(raw: str) -> str:
    """Normalize and validate a domain.

    Args:
        raw: Domain as entered by the user

    Returns:
        The normalized domain

    Raises:
        ValidationError: If the domain is malformed
    """
    domain = normalize_domain(raw or "")
    if not is_valid_domain(domain):
        logger.debug(f"Domain validation failed for: {raw!r}")
        raise ValidationError(
            code="invalid_domain",
            message=f"Invalid domain format: {raw}",
            details={"domain": raw},
        )
    return domain


def is_valid_ipv4(ip: str) -> bool:
    """Exactly four dot-separated decimal octets, each 0-255."""
    if not IPV4_PATTERN.fullmatch(ip):
        return False
    return all(int(octet) <= 255 for octet in ip.split("."))


def is_valid_ipv6(ip: str) -> bool:
    """Eight colon-separated groups, optionally compressed with a single '::'."""
    if not ip or ":" not in ip or not IPV6_CHARS.fullmatch(ip):
        return False
    if ip.count("::") > 1:
        return False
    try:
        ipaddress.IPv6Address(ip)
    except ValueError:
        return False
    return True


def is_valid_ip(ip: str) -> bool:
    """Check whether a string is an IPv4 or IPv6 literal."""
    return is_valid_ipv4(ip) or is_valid_ipv6(ip)


def validate_ip(raw: str) -> str:
    """Validate an IP literal.

    Raises:
        ValidationError: If the string is neither IPv4 nor IPv6
    """
    ip = (raw or "").strip()
    if not is_valid_ip(ip):
        raise ValidationError(
            code="invalid_ip",
            message=f"Invalid IP address: {raw}",
            details={"ip": raw},
        )
    return ip


def domain_matches(candidate: str, blocked: str) -> bool:
    """True if candidate equals blocked or is a subdomain of it."""
    return candidate == blocked or candidate.endswith("." + blocked)
