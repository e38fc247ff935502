"""
Slot availability fetch with stale-response discard.

Each fetch is tagged with the (doctor, date) it was issued for and a
generation number. Only the response of the latest fetch is applied, so
the slot list always ends up matching the most recent selection no
matter in which order the responses arrive.
"""

from datetime import date
from typing import List, Optional, Protocol, Tuple

from loguru import logger

from medicitas.errors import StaleResponseError, TransportError
from medicitas.services.notifications import Notifier

SlotKey = Tuple[int, date]


class SlotGateway(Protocol):
    async def get_available_slots(self, doctor_id: int, day: date) -> List[str]: ...


class SlotLoader:
    """
    Disposable cache of bookable slots for the current (doctor, date).

    Attributes:
        slots: Slots for the current key; empty while loading or on failure
        loading: Whether the latest fetch is still in flight
    """

    def __init__(self, gateway: SlotGateway, notifier: Notifier):
        self._gateway = gateway
        self._notifier = notifier
        self._generation = 0
        self._current_key: Optional[SlotKey] = None
        self.slots: List[str] = []
        self.loading = False

    @property
    def current_key(self) -> Optional[SlotKey]:
        return self._current_key

    def invalidate(self) -> None:
        """Drop the cached slots; any in-flight response becomes stale."""
        self._generation += 1
        self._current_key = None
        self.slots = []
        self.loading = False

    def _check_current(self, generation: int, key: SlotKey) -> None:
        if generation != self._generation or key != self._current_key:
            raise StaleResponseError(key[0], key[1].isoformat())

    async def load(self, doctor_id: int, day: date) -> List[str]:
        """
        Fetch slots for (doctor, day) and apply them if still current.

        Returns:
            The slot list in effect after this call settles
        """
        key = (doctor_id, day)
        self._generation += 1
        generation = self._generation
        self._current_key = key
        self.slots = []
        self.loading = True

        try:
            slots = await self._gateway.get_available_slots(doctor_id, day)
            self._check_current(generation, key)
        except StaleResponseError as e:
            logger.debug(f"Discarding response: {e}")
            return self.slots
        except TransportError as e:
            if generation != self._generation:
                logger.debug(f"Discarding failed stale slot fetch for doctor {doctor_id} on {day}")
                return self.slots
            self.slots = []
            self.loading = False
            self._notifier.error("Could not load available times", e.message)
            return self.slots

        self.slots = list(slots)
        self.loading = False
        return self.slots
