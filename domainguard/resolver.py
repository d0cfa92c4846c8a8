"""Domain and address resolution for domainguard.

Forward resolution turns a domain into the IP set that must be blocked.
Two methods are tried, because they fail in different situations:

1. System resolver (getaddrinfo) - honours /etc/hosts and NSS, returns
   every A/AAAA address
2. nslookup subprocess - queries the DNS server directly, returns a single
   address; still works when NSS is misconfigured or a hosts entry shadows
   the real record

Reverse resolution (PTR) is used by the access monitor, behind a TTL cache
so that each alert does not cost a network round-trip.
"""

import asyncio
import logging
import socket
import threading
import time
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from cachetools import TTLCache

from domainguard.exceptions import ResolutionError
from domainguard.validation import domain_matches, is_valid_ip, normalize_domain

logger = logging.getLogger(__name__)

ForwardLookup = Callable[[str], Awaitable[list[str]]]
ReverseLookup = Callable[[str], str]

LOOPBACK_ADDRESSES = {"127.0.0.1", "::1"}

DEFAULT_REVERSE_CACHE_TTL = 3600  # 1 hour
DEFAULT_REVERSE_CACHE_SIZE = 10000


@dataclass
class ResolverConfig:
    """Configuration for domain resolution."""

    # Command used for the fallback lookup
    nslookup_command: str = "nslookup"

    # DNS server passed to nslookup (None = system default)
    dns_server: Optional[str] = None

    # Upper bound for the nslookup subprocess (seconds)
    command_timeout: float = 10.0


async def system_lookup(domain: str) -> list[str]:
    """Resolve a domain through the system resolver (getaddrinfo).

    Returns:
        Every distinct address in resolver order
    """
    loop = asyncio.get_running_loop()
    infos = await loop.getaddrinfo(domain, None, type=socket.SOCK_STREAM)

    addresses: list[str] = []
    for _family, _type, _proto, _canon, sockaddr in infos:
        ip = str(sockaddr[0])
        if ip not in addresses:
            addresses.append(ip)
    return addresses


def parse_nslookup_output(output: str) -> list[str]:
    """Extract answer addresses from nslookup output.

    The first Address line(s) describe the DNS server itself and are
    skipped; answers only start after a "Name:" line. Handles both the
    Unix format ("Address: 1.2.3.4") and the Windows format where several
    addresses follow an "Addresses:" label on indented lines.
    """
    addresses: list[str] = []
    in_answer = False
    in_address_block = False

    for raw_line in output.splitlines():
        line = raw_line.strip()
        if not line:
            in_address_block = False
            continue

        if line.startswith("Name:"):
            in_answer = True
            in_address_block = False
            continue

        if not in_answer:
            continue

        if line.startswith(("Address:", "Addresses:")):
            in_address_block = True
            line = line.split(":", 1)[1].strip()
        elif not (in_address_block and raw_line[:1].isspace()):
            in_address_block = False
            continue

        for token in line.split():
            # Strip "#53" port suffixes some nslookup builds print
            candidate = token.split("#", 1)[0]
            if candidate in LOOPBACK_ADDRESSES:
                continue
            if is_valid_ip(candidate) and candidate not in addresses:
                addresses.append(candidate)

    return addresses


def system_reverse_lookup(ip: str) -> str:
    """PTR lookup through the system resolver.

    Raises:
        socket.herror, socket.gaierror: If no name could be found
    """
    hostname, _, _ = socket.gethostbyaddr(ip)
    return hostname


class DomainResolver:
    """Resolves domains to IP sets and IPs back to domains.

    Usage:
        resolver = DomainResolver()
        ips = await resolver.resolve("example.test")  # ["93.184.216.34"]
    """

    def __init__(
        self,
        config: Optional[ResolverConfig] = None,
        primary: Optional[ForwardLookup] = None,
        fallback: Optional[ForwardLookup] = None,
        reverse: Optional[ReverseLookup] = None,
    ) -> None:
        self.config = config or ResolverConfig()
        self._primary = primary or system_lookup
        self._fallback = fallback or self.nslookup
        self._reverse = reverse or system_reverse_lookup

    async def resolve(self, domain: str) -> list[str]:
        """Resolve a domain to the addresses that must be blocked.

        Args:
            domain: Normalized domain name

        Returns:
            Non-empty list of IP literals, primary-method order preserved

        Raises:
            ResolutionError: If both methods produced no usable address
        """
        logger.debug(f"Resolving {domain} via system resolver")
        try:
            addresses = [ip for ip in await self._primary(domain) if is_valid_ip(ip)]
            primary_error = "no addresses returned" if not addresses else ""
        except (OSError, asyncio.TimeoutError) as e:
            addresses = []
            primary_error = str(e) or e.__class__.__name__

        if addresses:
            logger.debug(f"Resolved {domain} → {', '.join(addresses)}")
            return addresses

        logger.info(f"Primary resolution failed for {domain}: {primary_error}. Trying nslookup")
        try:
            fallback = [ip for ip in await self._fallback(domain) if is_valid_ip(ip)]
            fallback_error = "no addresses returned" if not fallback else ""
        except (OSError, asyncio.TimeoutError) as e:
            fallback = []
            fallback_error = str(e) or e.__class__.__name__

        if fallback:
            # Fallback is a single-address method
            logger.debug(f"nslookup resolved {domain} → {fallback[0]}")
            return fallback[:1]

        message = (
            f"Failed to resolve {domain}: primary (system resolver): {primary_error}, "
            f"fallback (nslookup): {fallback_error}"
        )
        logger.warning(message)
        raise ResolutionError(
            code="resolution_failed",
            message=message,
            details={"domain": domain, "primary": primary_error, "fallback": fallback_error},
        )

    async def nslookup(self, domain: str) -> list[str]:
        """Resolve a domain by running nslookup.

        Raises:
            OSError: If the command cannot be started or exits with an error
            asyncio.TimeoutError: If the command exceeds the configured timeout
        """
        args = [self.config.nslookup_command, domain]
        if self.config.dns_server:
            args.append(self.config.dns_server)

        proc = await asyncio.create_subprocess_exec(
            *args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
        )
        try:
            stdout, _ = await asyncio.wait_for(
                proc.communicate(), timeout=self.config.command_timeout
            )
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            raise

        output = stdout.decode("utf-8", errors="replace")
        addresses = parse_nslookup_output(output)
        if not addresses and proc.returncode != 0:
            raise OSError(f"nslookup exited with code {proc.returncode}")
        return addresses

    async def reverse_resolve(self, ip: str) -> str:
        """Resolve an IP to its PTR name.

        Returns:
            Normalized domain name

        Raises:
            ResolutionError: If no PTR record could be found
        """
        loop = asyncio.get_running_loop()
        try:
            hostname = await loop.run_in_executor(None, self._reverse, ip)
        except (socket.herror, socket.gaierror, OSError) as e:
            logger.debug(f"No PTR record for {ip}: {e}")
            raise ResolutionError(
                code="reverse_lookup_failed",
                message=f"Reverse lookup failed for {ip}: {e}",
                details={"ip": ip},
            ) from e

        return normalize_domain(hostname)


class LookupStatus(str, Enum):
    """Outcome of matching an observed IP against the blocked set."""

    BLOCKED = "blocked"
    NOT_BLOCKED = "not_blocked"  # Known owner, not blocked
    UNKNOWN = "unknown"  # Reverse lookup failed


@dataclass(frozen=True)
class LookupResult:
    status: LookupStatus
    domain: Optional[str] = None  # Blocked domain that matched, or the PTR name

    @property
    def blocked(self) -> bool:
        return self.status is LookupStatus.BLOCKED


@dataclass(frozen=True)
class ReverseLookupEntry:
    ip: str
    domain: str
    resolved_at: float


def match_blocked(name: str, blocked: Iterable[str]) -> Optional[str]:
    """Return the blocked domain that name equals or falls under, if any."""
    for domain in blocked:
        if domain_matches(name, domain):
            return domain
    return None


class ReverseLookupCache:
    """IP → owning domain cache with a fixed TTL.

    Successful lookups are cached whether or not the domain is blocked, so
    unrelated traffic does not trigger a PTR query per alert. Failed lookups
    are not cached and will be retried on the next alert for that IP.
    """

    def __init__(
        self,
        resolver: DomainResolver,
        ttl: float = DEFAULT_REVERSE_CACHE_TTL,
        maxsize: int = DEFAULT_REVERSE_CACHE_SIZE,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.resolver = resolver
        self.ttl = ttl
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: TTLCache[str, ReverseLookupEntry] = TTLCache(
            maxsize=maxsize, ttl=ttl, timer=clock
        )

    def get(self, ip: str) -> Optional[ReverseLookupEntry]:
        """Return the cached entry for ip, or None if absent or expired."""
        with self._lock:
            return self._entries.get(ip)

    async def lookup_or_resolve(self, ip: str, blocked: Iterable[str]) -> LookupResult:
        """Match an observed IP against the blocked domains.

        Args:
            ip: Destination IP seen in an alert
            blocked: Current blocked-domain set

        Returns:
            LookupResult with BLOCKED (and the matching blocked domain),
            NOT_BLOCKED (and the PTR name) or UNKNOWN
        """
        entry = self.get(ip)

        if entry is None:
            try:
                name = await self.resolver.reverse_resolve(ip)
            except ResolutionError:
                return LookupResult(LookupStatus.UNKNOWN)

            entry = ReverseLookupEntry(ip=ip, domain=name, resolved_at=self._clock())
            with self._lock:
                self._entries[ip] = entry
            logger.debug(f"Cached reverse lookup {ip} → {name}")

        matched = match_blocked(entry.domain, blocked)
        if matched is not None:
            return LookupResult(LookupStatus.BLOCKED, matched)
        return LookupResult(LookupStatus.NOT_BLOCKED, entry.domain)

    def sweep(self) -> int:
        """Drop expired entries. Returns the number removed."""
        with self._lock:
            removed = len(self._entries.expire())
        if removed:
            logger.debug(f"Reverse lookup cache sweep removed {removed} entries")
        return removed

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            self._entries.expire()
            return len(self._entries)
