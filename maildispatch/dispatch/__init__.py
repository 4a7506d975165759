"""maildispatch -- Dispatch package.

Quick start::

    from maildispatch.dispatch import Dispatcher, DispatchQueue, ProviderEntry

    dispatcher = Dispatcher(entries, ledger, max_retries=2, base_delay=1.0)
    queue = DispatchQueue(dispatcher, rate_limiter, ledger)
    await queue.start()

    future = await queue.submit(message, client_key="10.0.0.7")
    outcome = await future
"""

from maildispatch.dispatch.dispatcher import Dispatcher, ProviderEntry
from maildispatch.outcome import DispatchOutcome, OutcomeStatus
from maildispatch.dispatch.queue import DispatchQueue, QueueItem

__all__: list[str] = [
    "Dispatcher",
    "DispatchOutcome",
    "DispatchQueue",
    "OutcomeStatus",
    "ProviderEntry",
    "QueueItem",
]
