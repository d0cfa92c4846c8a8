"""Firewall rule compilation.

Turns a domain and its resolved IP set into directional block rules with
deterministic identifiers, and renders those rules into a script for the
host firewall. Compilation is a pure transform; only running the script
(see executor.py) can fail.

Rule identifiers:
    Block-Domain-<domain>-Out / -In          one IP
    Block-Domain-<domain>-Out-<n> / -In-<n>  several IPs, n is 1-based
    Block-Domain-<domain>                    legacy outbound-only rule

Unblock cannot know which IPs were used at block time, so it regenerates
the unsuffixed identifiers, a bounded range of suffixed ones and the legacy
name, and deletes whatever exists. Rules created outside that range are
left behind; the rule index kept by the store narrows that gap for rules
created by this version.
"""

import logging
import platform
import re
from dataclasses import dataclass, field
from typing import Iterable, Optional

from domainguard.models import Direction, RuleDescriptor
from domainguard.validation import is_valid_ipv6

logger = logging.getLogger(__name__)

RULE_PREFIX = "Block-Domain"
DEFAULT_MAX_ORDINAL = 20

BACKEND_NETSH = "netsh"
BACKEND_IPTABLES = "iptables"
BACKENDS = (BACKEND_NETSH, BACKEND_IPTABLES)

REMOVED_PATTERN = re.compile(r"Removed (\d+) rules")

DIRECTION_LABELS = {
    Direction.OUTBOUND: "Out",
    Direction.INBOUND: "In",
}


def default_backend() -> str:
    """netsh on Windows, iptables everywhere else."""
    return BACKEND_NETSH if platform.system() == "Windows" else BACKEND_IPTABLES


def legacy_rule_id(domain: str) -> str:
    return f"{RULE_PREFIX}-{domain}"


def rule_id(domain: str, direction: Direction, ordinal: Optional[int] = None) -> str:
    """Build the identifier for one rule.

    Args:
        domain: Normalized domain
        direction: Inbound or outbound
        ordinal: 1-based position in the IP set, None when the set has one IP
    """
    base = f"{RULE_PREFIX}-{domain}-{DIRECTION_LABELS[direction]}"
    if ordinal is None:
        return base
    return f"{base}-{ordinal}"


def dedupe(items: Iterable[str]) -> list[str]:
    """Remove duplicates, keeping first occurrence order."""
    seen: set[str] = set()
    result = []
    for item in items:
        if item not in seen:
            seen.add(item)
            result.append(item)
    return result


@dataclass(frozen=True)
class RuleScript:
    """A rendered command batch, ready for the executor."""

    backend: str
    action: str  # "block" or "unblock"
    domain: str
    text: str
    rule_ids: tuple[str, ...] = field(default_factory=tuple)

    @property
    def suffix(self) -> str:
        """File extension the executor should use."""
        return ".ps1" if self.backend == BACKEND_NETSH else ".sh"


def count_removed(output: str) -> Optional[int]:
    """Read the "Removed <n> rules" marker printed by unblock scripts.

    Returns:
        Number of rules removed, or None if the marker is missing
    """
    match = REMOVED_PATTERN.search(output or "")
    if match is None:
        return None
    return int(match.group(1))


class RuleCompiler:
    """Compiles block/unblock requests into rule descriptors and scripts."""

    def __init__(
        self,
        backend: Optional[str] = None,
        max_ordinal: int = DEFAULT_MAX_ORDINAL,
    ) -> None:
        backend = backend or default_backend()
        if backend not in BACKENDS:
            raise ValueError(f"Unknown firewall backend: {backend}")
        self.backend = backend
        self.max_ordinal = max_ordinal

    def compile_block(self, domain: str, ips: Iterable[str]) -> list[RuleDescriptor]:
        """Emit one outbound and one inbound rule per distinct IP."""
        addresses = dedupe(ips)
        single = len(addresses) == 1

        descriptors = []
        for ordinal, ip in enumerate(addresses, start=1):
            suffix = None if single else ordinal
            for direction in (Direction.OUTBOUND, Direction.INBOUND):
                descriptors.append(
                    RuleDescriptor(
                        domain=domain,
                        direction=direction,
                        ip=ip,
                        rule_id=rule_id(domain, direction, suffix),
                    )
                )
        return descriptors

    def compile_unblock(
        self,
        domain: str,
        known_rule_ids: Iterable[str] = (),
    ) -> list[str]:
        """Candidate identifiers to delete for a domain.

        Recorded identifiers come first, then the unsuffixed pair, the
        suffixed pairs 1..max_ordinal and finally the legacy name.
        """
        candidates = list(known_rule_ids)
        for direction in (Direction.OUTBOUND, Direction.INBOUND):
            candidates.append(rule_id(domain, direction))
        for ordinal in range(1, self.max_ordinal + 1):
            for direction in (Direction.OUTBOUND, Direction.INBOUND):
                candidates.append(rule_id(domain, direction, ordinal))
        candidates.append(legacy_rule_id(domain))
        return dedupe(candidates)

    def render_block(self, domain: str, descriptors: list[RuleDescriptor]) -> RuleScript:
        if self.backend == BACKEND_NETSH:
            text = _render_netsh_block(domain, descriptors)
        else:
            text = _render_iptables_block(domain, descriptors)
        return RuleScript(
            backend=self.backend,
            action="block",
            domain=domain,
            text=text,
            rule_ids=tuple(d.rule_id for d in descriptors),
        )

    def render_unblock(self, domain: str, rule_ids: list[str]) -> RuleScript:
        if self.backend == BACKEND_NETSH:
            text = _render_netsh_unblock(domain, rule_ids)
        else:
            text = _render_iptables_unblock(domain, rule_ids)
        return RuleScript(
            backend=self.backend,
            action="unblock",
            domain=domain,
            text=text,
            rule_ids=tuple(rule_ids),
        )


# ---------------------------------------------------------------------------
# netsh (Windows Firewall, run through PowerShell)
# ---------------------------------------------------------------------------

NETSH_HEADER = """\
$removed = 0
function Remove-DomainRule([string]$Name) {
    $out = netsh advfirewall firewall delete rule name="$Name" 2>&1 | Out-String
    if ($out -match 'Deleted (\\d+) rule') { $script:removed += [int]$Matches[1] }
}
"""


def _render_netsh_block(domain: str, descriptors: list[RuleDescriptor]) -> str:
    lines = [f"# domainguard: block {domain}", NETSH_HEADER]
    description = f"Blocks connections to domain: {domain}"
    for d in descriptors:
        # Delete first so re-running the batch never duplicates a rule
        lines.append(f"Remove-DomainRule '{d.rule_id}'")
        lines.append(
            f'netsh advfirewall firewall add rule name="{d.rule_id}" '
            f"dir={d.direction.value} action=block enable=yes protocol=any "
            f'description="{description}" remoteip={d.ip}'
        )
        lines.append("if ($LASTEXITCODE -ne 0) { exit $LASTEXITCODE }")
    lines.append(f'Write-Host "Added {len(descriptors)} rules"')
    lines.append("exit 0")
    return "\n".join(lines) + "\n"


def _render_netsh_unblock(domain: str, rule_ids: list[str]) -> str:
    lines = [f"# domainguard: unblock {domain}", NETSH_HEADER]
    lines.extend(f"Remove-DomainRule '{rid}'" for rid in rule_ids)
    # "No rules match" leaves $LASTEXITCODE at 1; that is not a failure
    lines.append('Write-Host "Removed $removed rules"')
    lines.append("exit 0")
    return "\n".join(lines) + "\n"


# ---------------------------------------------------------------------------
# iptables / ip6tables (Linux, run through sh)
# ---------------------------------------------------------------------------

IPTABLES_ADD_FUNCTION = """\
add_rule() {
    # add_rule BINARY CHAIN ADDRESS_FLAG IP RULE_ID
    if ! "$1" -C "$2" "$3" "$4" -m comment --comment "$5" -j DROP 2>/dev/null; then
        "$1" -A "$2" "$3" "$4" -m comment --comment "$5" -j DROP || exit 1
    fi
}
"""

IPTABLES_REMOVE_FUNCTION = """\
removed=0
remove_rule() {
    # remove_rule RULE_ID
    for bin in iptables ip6tables; do
        command -v "$bin" >/dev/null 2>&1 || continue
        for chain in INPUT OUTPUT; do
            while spec=$("$bin" -S "$chain" 2>/dev/null | grep -F -- "--comment $1 " | head -n 1) && [ -n "$spec" ]; do
                eval "$bin $(printf '%s' "$spec" | sed 's/^-A /-D /')" || break
                removed=$((removed + 1))
            done
        done
    done
}
"""


def _render_iptables_block(domain: str, descriptors: list[RuleDescriptor]) -> str:
    lines = ["#!/bin/sh", f"# domainguard: block {domain}", "set -u", IPTABLES_ADD_FUNCTION]
    for d in descriptors:
        binary = "ip6tables" if is_valid_ipv6(d.ip) else "iptables"
        if d.direction is Direction.OUTBOUND:
            chain, flag = "OUTPUT", "-d"
        else:
            chain, flag = "INPUT", "-s"
        lines.append(f'add_rule {binary} {chain} {flag} {d.ip} "{d.rule_id}"')
    lines.append(f'echo "Added {len(descriptors)} rules"')
    return "\n".join(lines) + "\n"


def _render_iptables_unblock(domain: str, rule_ids: list[str]) -> str:
    lines = ["#!/bin/sh", f"# domainguard: unblock {domain}", "set -u", IPTABLES_REMOVE_FUNCTION]
    lines.extend(f'remove_rule "{rid}"' for rid in rule_ids)
    lines.append('echo "Removed $removed rules"')
    return "\n".join(lines) + "\n"
