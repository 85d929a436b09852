from unihost_core.sync.fetcher import FetchOutcome, FetchStatus, TimeoutGuardedFetcher
from unihost_core.sync.events import ChangeEvent, decode_change_event
from unihost_core.sync.signals import DegradedSignal
from unihost_core.sync.subscriptions import SubscriptionManager, SubscriptionState, channel_specs
from unihost_core.sync.health import ConnectionHealthMonitor
from unihost_core.sync.context import SyncContext
from unihost_core.sync.runtime import LoopRunner
from unihost_core.sync.watchdog import SessionWatchdog

__all__ = [
    "ChangeEvent",
    "ConnectionHealthMonitor",
    "DegradedSignal",
    "FetchOutcome",
    "FetchStatus",
    "LoopRunner",
    "SessionWatchdog",
    "SubscriptionManager",
    "SubscriptionState",
    "SyncContext",
    "TimeoutGuardedFetcher",
    "channel_specs",
    "decode_change_event",
]
