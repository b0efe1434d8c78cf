"""Fixed-capacity harvest log."""

from collections import deque

from crypt_harvest.errors import InvalidConfiguration
from crypt_harvest.models import HarvestLogEntry


class HarvestLog:
    """Ring buffer of :py:class:`HarvestLogEntry`, oldest first.

    - When full, recording a new sample evicts the oldest one. The evicted
      entry's timestamp becomes ``base_timestamp``, so the oldest retained
      entry still knows how much time its profit covers.
    - A harvest landing within ``cadence`` seconds of when the newest entry
      was opened is merged into it instead of becoming a separate sample.
      The merged entry's timestamp follows the latest harvest, the window
      does not.
    """

    def __init__(self, capacity: int, cadence: int, base_timestamp: int):
        if capacity < 1:
            raise InvalidConfiguration(f"Harvest log capacity must be >= 1, got {capacity}")
        self.capacity = capacity
        self.cadence = cadence
        self.base_timestamp = base_timestamp
        #: Time the newest entry was first recorded, None while empty
        self.opened_at: int | None = None
        self._entries: deque[HarvestLogEntry] = deque()

    @property
    def cadence(self) -> int:
        return self._cadence

    @cadence.setter
    def cadence(self, seconds: int) -> None:
        if seconds < 0:
            raise InvalidConfiguration(f"Harvest log cadence must be >= 0, got {seconds}")
        self._cadence = seconds

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self):
        return iter(self._entries)

    @property
    def entries(self) -> list[HarvestLogEntry]:
        return list(self._entries)

    @property
    def latest(self) -> HarvestLogEntry | None:
        return self._entries[-1] if self._entries else None

    def record(self, timestamp: int, assets_before: int, assets_after: int) -> HarvestLogEntry:
        """Add a sample, or fold it into the newest one. Returns the stored entry."""
        latest = self.latest
        if latest is not None and (timestamp == latest.timestamp or timestamp < self.opened_at + self.cadence):
            merged = HarvestLogEntry(
                timestamp=timestamp,
                assets_before=latest.assets_before,
                assets_after=latest.assets_after + (assets_after - assets_before),
            )
            self._entries[-1] = merged
            return merged

        if len(self._entries) >= self.capacity:
            evicted = self._entries.popleft()
            self.base_timestamp = evicted.timestamp

        entry = HarvestLogEntry(timestamp=timestamp, assets_before=assets_before, assets_after=assets_after)
        self._entries.append(entry)
        self.opened_at = timestamp
        return entry
