"""Service wiring.

Builds every long-lived object once from a Config and hands them out
together, so each component receives its collaborators explicitly.
"""

from dataclasses import dataclass
from typing import Optional

from domainguard.blocker import DomainBlocker
from domainguard.collectors import SuricataAlertSource, SuricataConfig
from domainguard.config import Config
from domainguard.firewall import DryRunRuleExecutor, RuleCompiler, RuleExecutor, ShellRuleExecutor
from domainguard.models import NotificationSettings
from domainguard.monitor import AccessMonitor, MonitorConfig
from domainguard.notifiers import (
    EVENT_ACCESS_BLOCKED,
    EventEmitter,
    NotificationDispatcher,
    NotificationState,
    SlackConfig,
    SlackNotifier,
)
from domainguard.resolver import DomainResolver, ResolverConfig, ReverseLookupCache
from domainguard.storage import BlockedDomainStore


@dataclass
class Services:
    config: Config
    store: BlockedDomainStore
    resolver: DomainResolver
    cache: ReverseLookupCache
    compiler: RuleCompiler
    executor: RuleExecutor
    emitter: EventEmitter
    notification_state: NotificationState
    dispatcher: NotificationDispatcher
    blocker: DomainBlocker
    source: SuricataAlertSource
    monitor: AccessMonitor
    slack: Optional[SlackNotifier] = None

    async def close(self) -> None:
        if self.slack:
            await self.slack.close()


def build_services(config: Config, executor: Optional[RuleExecutor] = None) -> Services:
    """Construct the engine from configuration.

    Args:
        config: Loaded configuration
        executor: Rule executor override (defaults to the shell executor,
            or the dry-run executor when config.dry_run is set)
    """
    store = BlockedDomainStore.open(config.data_dir)

    resolver = DomainResolver(
        ResolverConfig(
            nslookup_command=config.nslookup_command,
            dns_server=config.dns_server,
        )
    )
    cache = ReverseLookupCache(resolver, ttl=config.reverse_cache_ttl)
    compiler = RuleCompiler(backend=config.backend, max_ordinal=config.max_unblock_ordinal)

    if executor is None:
        if config.dry_run:
            executor = DryRunRuleExecutor()
        else:
            executor = ShellRuleExecutor(config.data_dir, command_timeout=config.command_timeout)

    emitter = EventEmitter()
    notification_state = NotificationState(
        NotificationSettings(
            enabled=config.notifications_enabled,
            delay_seconds=config.notification_delay_seconds,
            cooldown_seconds=config.notification_cooldown_seconds,
        )
    )
    dispatcher = NotificationDispatcher(emitter, notification_state)

    slack = None
    if config.slack_enabled and config.slack_webhook_url:
        slack = SlackNotifier(SlackConfig(webhook_url=config.slack_webhook_url))
        emitter.subscribe(slack.handle_event, EVENT_ACCESS_BLOCKED)

    blocker = DomainBlocker(store, resolver, compiler, executor, emitter)
    source = SuricataAlertSource(
        SuricataConfig(log_dir=config.suricata_log_dir, eve_file=config.eve_file)
    )
    monitor = AccessMonitor(
        store,
        cache,
        source,
        dispatcher,
        MonitorConfig(
            poll_interval=config.poll_interval,
            sweep_interval=config.sweep_interval,
            attempt_ttl=config.attempt_ttl,
        ),
        emitter=emitter,
    )

    return Services(
        config=config,
        store=store,
        resolver=resolver,
        cache=cache,
        compiler=compiler,
        executor=executor,
        emitter=emitter,
        notification_state=notification_state,
        dispatcher=dispatcher,
        blocker=blocker,
        source=source,
        monitor=monitor,
        slack=slack,
    )
