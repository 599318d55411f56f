"""
Round-Robin Assigner

Picks the next eligible professional for "any professional" requests.

The only engine-owned mutable state is a pointer per tenant + service
(last assigned index and professional). Pointers live behind a PointerStore
so the persistence layer decides how single-writer access is enforced
(per-key lock in memory, SELECT ... FOR UPDATE in the database).
"""

import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, ContextManager, Dict, Iterator, List, Optional, Protocol, Sequence

from .errors import ErrorCode, Outcome
from .models import Professional


@dataclass(frozen=True)
class PointerState:
	last_index: int = -1
	last_professional_id: Optional[str] = None


class PointerStore(Protocol):
	def locked(self, key: str) -> ContextManager[None]:
		...

	def get(self, key: str) -> PointerState:
		...

	def set(self, key: str, state: PointerState) -> None:
		...


class InMemoryPointerStore:
	"""Store de punteros en memoria con un lock reentrante por clave."""

	def __init__(self):
		self._states: Dict[str, PointerState] = {}
		self._locks: Dict[str, threading.RLock] = {}
		self._guard = threading.Lock()

	def _lock_for(self, key: str) -> threading.RLock:
		with self._guard:
			lock = self._locks.get(key)
			if lock is None:
				lock = self._locks[key] = threading.RLock()
			return lock

	@contextmanager
	def locked(self, key: str) -> Iterator[None]:
		lock = self._lock_for(key)
		with lock:
			yield

	def get(self, key: str) -> PointerState:
		return self._states.get(key, PointerState())

	def set(self, key: str, state: PointerState) -> None:
		self._states[key] = state


def pointer_key(tenant_id: str, service_id: str) -> str:
	return f"{tenant_id}:{service_id}"


def start_index(pool: Sequence[Professional], state: PointerState) -> int:
	"""
	Posición desde la que empieza la búsqueda: justo después del último
	asignado. Si ese profesional ya no está en el pool se usa el índice
	guardado.
	"""
	if not pool:
		return 0
	if state.last_professional_id is not None:
		for idx, professional in enumerate(pool):
			if professional.id == state.last_professional_id:
				return (idx + 1) % len(pool)
	return (state.last_index + 1) % len(pool)


class Turn:
	"""
	Turno de asignación abierto bajo el lock de la clave.

	pick() no persiste nada; commit() avanza el puntero al profesional
	elegido. Si el turno se cierra sin commit el puntero queda igual.
	"""

	def __init__(self, store: PointerStore, key: str):
		self.store = store
		self.key = key
		self._choice: Optional[PointerState] = None

	def pick(
		self,
		pool: Sequence[Professional],
		is_available: Callable[[Professional], bool]
	) -> Outcome[Professional]:
		state = self.store.get(self.key)
		first = start_index(pool, state)
		for offset in range(len(pool)):
			idx = (first + offset) % len(pool)
			professional = pool[idx]
			if is_available(professional):
				self._choice = PointerState(idx, professional.id)
				return Outcome.success(professional)

		self._choice = None
		return Outcome.failure(
			ErrorCode.NO_PROFESSIONAL_AVAILABLE,
			"No hay profesionales disponibles para el horario solicitado",
			key=self.key,
			pool_size=len(pool),
		)

	def ordered(self, pool: Sequence[Professional]) -> List[Professional]:
		"""El pool en el orden en que pick() lo recorre."""
		first = start_index(pool, self.store.get(self.key))
		return list(pool[first:]) + list(pool[:first])

	def commit(self) -> None:
		if self._choice is not None:
			self.store.set(self.key, self._choice)


class RoundRobinAssigner:
	def __init__(self, store: PointerStore):
		self.store = store

	@contextmanager
	def turn(self, tenant_id: str, service_id: str) -> Iterator[Turn]:
		key = pointer_key(tenant_id, service_id)
		with self.store.locked(key):
			yield Turn(self.store, key)

	def next(
		self,
		tenant_id: str,
		service_id: str,
		pool: Sequence[Professional],
		is_available: Callable[[Professional], bool]
	) -> Outcome[Professional]:
		"""
		Asigna y persiste el siguiente profesional disponible del pool.

		Args:
			pool: profesionales calificados en orden estable (orden_rotacion, id)
			is_available: predicado de disponibilidad para la solicitud concreta

		Returns:
			Outcome con el profesional elegido o NO_PROFESSIONAL_AVAILABLE
			si se recorrió el pool completo sin éxito.
		"""
		with self.turn(tenant_id, service_id) as turn:
			outcome = turn.pick(pool, is_available)
			if outcome.ok:
				turn.commit()
			return outcome
