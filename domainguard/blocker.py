"""Domain block/unblock orchestration.

block:   validate -> resolve -> compile rules -> execute -> store -> event
unblock: validate -> candidate rule ids -> execute -> store -> event

No lock is held while resolving or executing; the store serializes its own
updates. Two domains can therefore be blocked concurrently.
"""

import asyncio
import logging
from typing import Optional

from domainguard.exceptions import RuleExecutionError
from domainguard.firewall import RuleCompiler, RuleExecutor, count_removed
from domainguard.models import RuleDescriptor
from domainguard.notifiers.dispatcher import (
    EVENT_DOMAIN_BLOCKED,
    EVENT_DOMAIN_UNBLOCKED,
    EventEmitter,
)
from domainguard.resolver import DomainResolver
from domainguard.storage import BlockedDomainStore
from domainguard.validation import validate_domain

logger = logging.getLogger(__name__)


class DomainBlocker:
    """Applies and removes firewall blocks for domains."""

    def __init__(
        self,
        store: BlockedDomainStore,
        resolver: DomainResolver,
        compiler: RuleCompiler,
        executor: RuleExecutor,
        emitter: Optional[EventEmitter] = None,
    ) -> None:
        self.store = store
        self.resolver = resolver
        self.compiler = compiler
        self.executor = executor
        self.emitter = emitter or EventEmitter()

    async def block(self, domain: str) -> list[RuleDescriptor]:
        """Block a domain on every address it currently resolves to.

        Re-blocking an already blocked domain re-applies its rules and leaves
        the store unchanged.

        Returns:
            The rules that were applied

        Raises:
            ValidationError: If the domain is malformed (nothing is changed)
            ResolutionError: If the domain could not be resolved
            RuleExecutionError: If the firewall batch failed
        """
        domain = validate_domain(domain)
        logger.info(f"Blocking domain {domain}")

        ips = await self.resolver.resolve(domain)
        descriptors = self.compiler.compile_block(domain, ips)
        script = self.compiler.render_block(domain, descriptors)

        logger.debug(f"Applying {len(descriptors)} rules for {domain}: {', '.join(d.rule_id for d in descriptors)}")
        result = await self.executor.run(script)
        if not result.success:
            message = f"Failed to block domain {domain}: {result.output.strip() or 'unknown error'}"
            logger.error(message)
            raise RuleExecutionError(
                code="block_failed",
                message=message,
                details={"domain": domain, "output": result.output, "exit_code": result.exit_code},
            )

        # Store writes hit the disk; keep them off the event loop
        loop = asyncio.get_running_loop()
        if not await loop.run_in_executor(None, self.store.add, domain):
            logger.debug(f"{domain} was already blocked; rules re-applied")
        await loop.run_in_executor(None, self.store.record_rules, domain, [d.rule_id for d in descriptors])

        logger.info(f"Blocked {domain} ({len(descriptors)} rules, {len(ips)} addresses)")
        self.emitter.emit(EVENT_DOMAIN_BLOCKED, {"domain": domain, "ips": ips})
        return descriptors

    async def unblock(self, domain: str) -> int:
        """Remove every rule that may have been created for a domain.

        Rule ids that do not exist are ignored, so unblocking a domain that
        was never blocked is a no-op.

        Returns:
            Number of rules the firewall reported removed (0 if unknown)

        Raises:
            ValidationError: If the domain is malformed
            RuleExecutionError: If the firewall batch failed; the store is
                left unchanged
        """
        domain = validate_domain(domain)
        logger.info(f"Unblocking domain {domain}")

        candidates = self.compiler.compile_unblock(domain, self.store.rule_ids(domain))
        script = self.compiler.render_unblock(domain, candidates)

        result = await self.executor.run(script)
        if not result.success:
            message = f"Failed to unblock domain {domain}: {result.output.strip() or 'unknown error'}"
            logger.error(message)
            raise RuleExecutionError(
                code="unblock_failed",
                message=message,
                details={"domain": domain, "output": result.output, "exit_code": result.exit_code},
            )

        removed = count_removed(result.output)
        if not removed:
            logger.info(f"Removed 0 rules for {domain}")

        loop = asyncio.get_running_loop()
        was_blocked = await loop.run_in_executor(None, self.store.remove, domain)
        await loop.run_in_executor(None, self.store.forget_rules, domain)
        if was_blocked:
            logger.info(f"Unblocked {domain} ({removed or 0} rules removed)")
            self.emitter.emit(EVENT_DOMAIN_UNBLOCKED, {"domain": domain})
        else:
            logger.debug(f"Domain {domain} was not in the blocked domains list")
        return removed or 0

    def list_blocked(self) -> list[str]:
        return self.store.list()

    def is_blocked(self, domain: str) -> bool:
        return self.store.contains(domain)
