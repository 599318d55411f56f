"""
Booking Service

Creates, reschedules and cancels appointments and recurrence series on top
of an AppointmentRepository. Every write re-reads the professional's
appointments inside the repository transaction and re-validates conflicts
before inserting (check-then-write); a collision found at that point is a
SLOT_CONFLICT and nothing is written.
"""

import threading
from contextlib import contextmanager
from dataclasses import dataclass, replace
from datetime import datetime, time
from enum import Enum
from typing import (
	Callable, ContextManager, Dict, Iterator, List, Optional, Protocol, Sequence, Tuple
)

from .calendar import overlaps
from .errors import ErrorCode, Outcome, validation_error
from .models import Appointment, AppointmentStatus, Professional, Snapshot
from .overlap import blocks_time, is_terminal, transition
from .recurrence import (
	RecurrencePattern, SeriesPreview, SeriesRequest, check_occurrences, expand_dates,
	preview_series, unsatisfiable, validate_pattern
)
from .round_robin import RoundRobinAssigner
from .slots import SlotCalculator

# (tenant_id, cantidad de citas nuevas) -> True si el plan lo permite
CapacityCheck = Callable[[str, int], bool]


class CancelScope(str, Enum):
	THIS = "this"
	THIS_AND_FOLLOWING = "this_and_following"
	ALL = "all"


@dataclass(frozen=True)
class BookingRequest:
	tenant_id: str
	service_ids: Tuple[str, ...]
	start: datetime
	professional_id: Optional[str] = None
	duration_override: Optional[int] = None
	client_id: Optional[str] = None
	client_name: str = ""


@dataclass(frozen=True)
class RecurrenceSeries:
	id: str
	tenant_id: str
	pattern: RecurrencePattern
	anchor: datetime
	professional_id: str
	service_ids: Tuple[str, ...]
	start_time: time
	appointment_ids: Tuple[str, ...] = ()


@dataclass(frozen=True)
class SeriesBooking:
	series: RecurrenceSeries
	appointments: List[Appointment]


class AppointmentRepository(Protocol):
	def transaction(self) -> ContextManager[None]:
		...

	def active_appointments(self, professional_id: str, start: datetime, end: datetime) -> List[Appointment]:
		...

	def get(self, appointment_id: str, for_update: bool = False) -> Optional[Appointment]:
		...

	def insert(self, appointments: Sequence[Appointment], series: Optional[RecurrenceSeries] = None) -> List[Appointment]:
		...

	def update(self, appointments: Sequence[Appointment]) -> None:
		...

	def get_series(self, series_id: str) -> Optional[RecurrenceSeries]:
		...

	def series_members(self, series_id: str) -> List[Appointment]:
		...


class InMemoryAppointmentRepository:
	"""
	Repositorio en memoria. insert() asigna ids CITA-0001, CITA-0002...
	y SERIE-0001... Las transacciones se serializan con un lock reentrante
	y restauran el estado previo si el bloque lanza una excepción.
	"""

	def __init__(self, appointments: Sequence[Appointment] = ()):
		self._appointments: Dict[str, Appointment] = {a.id: a for a in appointments}
		self._series: Dict[str, RecurrenceSeries] = {}
		self._lock = threading.RLock()
		self._seq = len(self._appointments)
		self._series_seq = 0

	@contextmanager
	def transaction(self) -> Iterator[None]:
		with self._lock:
			saved = (dict(self._appointments), dict(self._series), self._seq, self._series_seq)
			try:
				yield
			except Exception:
				self._appointments, self._series, self._seq, self._series_seq = saved
				raise

	def all(self) -> List[Appointment]:
		return sorted(self._appointments.values(), key=lambda a: a.start)

	def active_appointments(self, professional_id: str, start: datetime, end: datetime) -> List[Appointment]:
		window = {"start": start, "end": end}
		return [
			a for a in self.all()
			if a.professional_id == professional_id and blocks_time(a) and overlaps(a.interval, window)
		]

	def get(self, appointment_id: str, for_update: bool = False) -> Optional[Appointment]:
		return self._appointments.get(appointment_id)

	def insert(self, appointments: Sequence[Appointment], series: Optional[RecurrenceSeries] = None) -> List[Appointment]:
		series_id = None
		if series is not None:
			self._series_seq += 1
			series_id = f"SERIE-{self._series_seq:04d}"

		stored = []
		for appt in appointments:
			self._seq += 1
			appt_id = f"CITA-{self._seq:04d}"
			appt = replace(appt, id=appt_id, code=appt.code or appt_id, series_id=series_id)
			self._appointments[appt_id] = appt
			stored.append(appt)

		if series is not None:
			self._series[series_id] = replace(
				series, id=series_id, appointment_ids=tuple(a.id for a in stored)
			)
		return stored

	def update(self, appointments: Sequence[Appointment]) -> None:
		for appt in appointments:
			self._appointments[appt.id] = appt

	def get_series(self, series_id: str) -> Optional[RecurrenceSeries]:
		return self._series.get(series_id)

	def series_members(self, series_id: str) -> List[Appointment]:
		return [a for a in self.all() if a.series_id == series_id]


class BookingService:
	"""
	Operaciones de escritura del engine.

	Las lecturas de disponibilidad usan el snapshot recibido; la
	revalidación final usa las citas que el repositorio tiene en el momento
	de escribir.
	"""

	def __init__(
		self,
		repository: AppointmentRepository,
		assigner: RoundRobinAssigner,
		capacity_check: Optional[CapacityCheck] = None
	):
		self.repository = repository
		self.assigner = assigner
		self.capacity_check = capacity_check

	def _check_capacity(self, tenant_id: str, count: int) -> Outcome[None]:
		if self.capacity_check is not None and not self.capacity_check(tenant_id, count):
			return Outcome.failure(
				ErrorCode.CAPACITY_EXCEEDED,
				"El plan de la organización no permite más citas",
				tenant_id=tenant_id,
				requested=count,
			)
		return Outcome.success(None)

	def _commit(
		self,
		appointments: Sequence[Appointment],
		series: Optional[RecurrenceSeries] = None,
		exclude_appointment_id: Optional[str] = None,
		replace_existing: bool = False
	) -> Outcome[List[Appointment]]:
		"""
		Revalida y escribe dentro de una transacción. Si alguna cita choca
		con lo que hay en el repositorio no se escribe ninguna.
		"""
		with self.repository.transaction():
			collisions = []
			pending: List[Appointment] = []
			for appt in appointments:
				existing = [
					a for a in self.repository.active_appointments(appt.professional_id, appt.start, appt.end)
					if a.id != exclude_appointment_id
				]
				existing.extend(
					p for p in pending
					if p.professional_id == appt.professional_id and overlaps(p.interval, appt.interval)
				)
				if existing:
					collisions.append(appt)
				pending.append(appt)

			if collisions:
				return Outcome.failure(
					ErrorCode.SLOT_CONFLICT,
					"El horario fue ocupado por otra reserva; consulte disponibilidad de nuevo",
					conflicting_dates=[a.start.date().isoformat() for a in collisions],
					conflicting_starts=[a.start.isoformat() for a in collisions],
				)

			if replace_existing:
				self.repository.update(appointments)
				return Outcome.success(list(appointments))
			return Outcome.success(self.repository.insert(appointments, series))

	def _build(self, request: BookingRequest, professional: Professional, interval) -> Appointment:
		return Appointment(
			id="",
			professional_id=professional.id,
			service_ids=tuple(request.service_ids),
			start=interval["start"],
			end=interval["end"],
			client_id=request.client_id,
			client_name=request.client_name,
		)

	def create_appointment(self, snapshot: Snapshot, request: BookingRequest) -> Outcome[Appointment]:
		"""
		Crea una cita individual.

		Sin profesional explícito se asigna por round-robin sobre el pool
		del primer servicio; el puntero sólo avanza si la cita se escribe.
		"""
		calculator = SlotCalculator(snapshot)
		services = calculator.services_for(request.service_ids)
		if not services.ok:
			return services

		capacity = self._check_capacity(request.tenant_id, 1)
		if not capacity.ok:
			return capacity

		if request.professional_id is not None:
			pool = calculator.pool_for(request.service_ids, request.professional_id)
			if not pool.ok:
				return pool
			professional = pool.value[0]
			interval = calculator.booking_interval(professional, services.value, request.start, request.duration_override)
			checked = calculator.check_interval(professional, interval)
			if not checked.ok:
				return checked
			committed = self._commit([self._build(request, professional, interval)])
			return Outcome.success(committed.value[0]) if committed.ok else committed

		def is_available(candidate: Professional) -> bool:
			interval = calculator.booking_interval(candidate, services.value, request.start, request.duration_override)
			return calculator.check_interval(candidate, interval).ok

		with self.assigner.turn(request.tenant_id, request.service_ids[0]) as turn:
			picked = turn.pick(snapshot.rotation_pool(request.service_ids), is_available)
			if not picked.ok:
				return picked
			professional = picked.value
			interval = calculator.booking_interval(professional, services.value, request.start, request.duration_override)
			committed = self._commit([self._build(request, professional, interval)])
			if not committed.ok:
				return committed
			turn.commit()
			return Outcome.success(committed.value[0])

	def preview_series(self, snapshot: Snapshot, request: SeriesRequest) -> Outcome[SeriesPreview]:
		return preview_series(SlotCalculator(snapshot), request)

	def create_series(self, snapshot: Snapshot, request: SeriesRequest) -> Outcome[SeriesBooking]:
		"""
		Crea una serie recurrente de forma atómica.

		Todas las ocurrencias se validan antes de escribir; si alguna choca
		la serie completa falla con RECURRENCE_UNSATISFIABLE y las fechas en
		conflicto. Nunca se crea una serie parcial.
		"""
		valid = validate_pattern(request.anchor, request.pattern)
		if not valid.ok:
			return valid

		calculator = SlotCalculator(snapshot)
		services = calculator.services_for(request.service_ids)
		if not services.ok:
			return services

		dates = expand_dates(request.anchor, request.pattern)
		if not dates:
			return unsatisfiable(SeriesPreview(request.pattern))

		capacity = self._check_capacity(request.tenant_id, len(dates))
		if not capacity.ok:
			return capacity

		def occurrences_for(professional: Professional):
			return check_occurrences(
				calculator, professional, services.value, dates,
				request.start_time, request.duration_override
			)

		def write(professional: Professional) -> Outcome[SeriesBooking]:
			occurrences = occurrences_for(professional)
			appointments = [
				Appointment(
					id="",
					professional_id=professional.id,
					service_ids=tuple(request.service_ids),
					start=o.start,
					end=o.end,
					client_id=request.client_id,
					client_name=request.client_name,
				)
				for o in occurrences
			]
			series = RecurrenceSeries(
				id="",
				tenant_id=request.tenant_id,
				pattern=request.pattern,
				anchor=occurrences[0].start,
				professional_id=professional.id,
				service_ids=tuple(request.service_ids),
				start_time=request.start_time,
			)
			committed = self._commit(appointments, series)
			if not committed.ok:
				return committed
			stored = committed.value
			return Outcome.success(SeriesBooking(
				replace(series, id=stored[0].series_id or "", appointment_ids=tuple(a.id for a in stored)),
				stored,
			))

		if request.professional_id is not None:
			preview = preview_series(calculator, request)
			if not preview.ok:
				return preview
			if not preview.value.satisfiable:
				return unsatisfiable(preview.value)
			return write(snapshot.professional(request.professional_id))

		rotation = snapshot.rotation_pool(request.service_ids)
		with self.assigner.turn(request.tenant_id, request.service_ids[0]) as turn:
			picked = turn.pick(rotation, lambda p: all(o.available for o in occurrences_for(p)))
			if not picked.ok:
				# Reporte sobre el mismo pool y orden que recorrió pick()
				preview = preview_series(calculator, request, pool=turn.ordered(rotation))
				if not preview.ok:
					return preview
				return unsatisfiable(preview.value)
			booked = write(picked.value)
			if booked.ok:
				turn.commit()
			return booked

	def reschedule(
		self,
		snapshot: Snapshot,
		appointment_id: str,
		new_start: datetime,
		duration_override: Optional[int] = None
	) -> Outcome[Appointment]:
		"""
		Mueve una cita a un nuevo inicio, validando con la propia cita
		excluida de los conflictos. Sobre citas terminales es un no-op.
		"""
		current = self.repository.get(appointment_id)
		if current is None:
			return validation_error(f"Cita {appointment_id} no encontrada", appointment_id=appointment_id)
		if is_terminal(current.status):
			return Outcome.success(current)

		calculator = SlotCalculator(snapshot, exclude_appointment_id=appointment_id)
		services = calculator.services_for(current.service_ids)
		if not services.ok:
			return services
		professional = snapshot.professional(current.professional_id)
		if professional is None:
			return validation_error(
				f"Profesional {current.professional_id} no encontrado",
				professional_id=current.professional_id
			)

		interval = calculator.booking_interval(professional, services.value, new_start, duration_override)
		if interval["start"] == current.start and interval["end"] == current.end:
			return Outcome.success(current)

		checked = calculator.check_interval(professional, interval)
		if not checked.ok:
			return checked

		moved = replace(current, start=interval["start"], end=interval["end"])
		committed = self._commit([moved], exclude_appointment_id=appointment_id, replace_existing=True)
		return Outcome.success(committed.value[0]) if committed.ok else committed

	def transition_status(
		self,
		appointment_id: str,
		target: AppointmentStatus,
		terminal_noop: bool = False
	) -> Outcome[Appointment]:
		"""
		Lee y escribe el estado en la misma transacción, con la fila
		bloqueada. Con terminal_noop una cita ya terminal se devuelve sin
		cambios en lugar de validar la transición.
		"""
		with self.repository.transaction():
			current = self.repository.get(appointment_id, for_update=True)
			if current is None:
				return validation_error(f"Cita {appointment_id} no encontrada", appointment_id=appointment_id)
			if terminal_noop and is_terminal(current.status):
				return Outcome.success(current)

			moved = transition(current, target)
			if moved.ok and moved.value is not current:
				self.repository.update([moved.value])
			return moved

	def cancel_appointment(self, appointment_id: str) -> Outcome[Appointment]:
		"""Cancela una cita. Sobre citas ya terminales es un no-op."""
		return self.transition_status(appointment_id, AppointmentStatus.CANCELADA, terminal_noop=True)

	def cancel_series(
		self,
		series_id: str,
		scope: CancelScope = CancelScope.ALL,
		appointment_id: Optional[str] = None
	) -> Outcome[List[Appointment]]:
		"""
		Cancela miembros de una serie según el alcance.

		Args:
			scope: THIS (desvincula y cancela una cita), THIS_AND_FOLLOWING
				(desde appointment_id en adelante) o ALL
			appointment_id: requerido para THIS y THIS_AND_FOLLOWING

		Returns:
			Outcome con las citas efectivamente canceladas. Las citas
			terminales se dejan como están.
		"""
		series = self.repository.get_series(series_id)
		if series is None:
			return validation_error(f"Serie {series_id} no encontrada", series_id=series_id)

		members = self.repository.series_members(series_id)
		pivot = None
		if scope != CancelScope.ALL:
			if appointment_id is None:
				return validation_error(f"El alcance '{scope.value}' requiere appointment_id")
			pivot = next((m for m in members if m.id == appointment_id), None)
			if pivot is None:
				return validation_error(
					f"La cita {appointment_id} no pertenece a la serie {series_id}",
					series_id=series_id,
					appointment_id=appointment_id
				)

		if scope == CancelScope.THIS:
			detached = replace(pivot, series_id=None)
			if not is_terminal(pivot.status):
				detached = detached.with_status(AppointmentStatus.CANCELADA)
			with self.repository.transaction():
				self.repository.update([detached])
			return Outcome.success([detached] if detached.status != pivot.status else [])

		targets = members
		if scope == CancelScope.THIS_AND_FOLLOWING:
			targets = [m for m in members if m.start >= pivot.start]

		cancelled = [
			m.with_status(AppointmentStatus.CANCELADA)
			for m in targets if not is_terminal(m.status)
		]
		if cancelled:
			with self.repository.transaction():
				self.repository.update(cancelled)
		return Outcome.success(cancelled)
