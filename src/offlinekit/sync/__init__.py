"""Background sync for mutating requests.

:class:`SyncQueue` persists requests that could not reach the server (a match
join, a wallet deposit) and replays them when connectivity returns, on an
explicit "retry now", or on the periodic refresh tick.
"""

from offlinekit.sync.queue import SyncQueue

__all__ = ["SyncQueue"]
