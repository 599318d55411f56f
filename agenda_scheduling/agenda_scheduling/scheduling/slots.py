"""
Slot Generation Service

Generates discrete time slots for one service (or several booked
back-to-back), considering:
- Working hours per professional and day
- Blocking periods (professional and organizational)
- Existing non-cancelled appointments
"""

from bisect import bisect_right
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

from .blocks import BlockRegistry
from .calendar import Interval, contains, get_timezone, iter_days, localize, minutes, subtract_all
from .errors import ErrorCode, Outcome, validation_error
from .models import Professional, Service, Snapshot, total_duration_minutes
from .overlap import ConflictDetector
from .working_hours import WorkingHoursResolver

GRID_STEPS = (15, 30, 60)
DETAIL_LEVELS = ("basico", "completo", "admin")


@dataclass(frozen=True)
class AvailabilityQuery:
	service_ids: Tuple[str, ...]
	start_date: date
	days: int = 1
	professional_id: Optional[str] = None
	requested_time: Optional[time] = None
	grid_step: int = 30
	only_available: bool = True
	duration_override: Optional[int] = None
	exclude_appointment_id: Optional[str] = None
	detail_level: str = "completo"


@dataclass(frozen=True)
class Slot:
	professional_id: str
	date: date
	start: datetime
	end: datetime
	available: bool
	reason: Optional[str] = None

	@property
	def interval(self) -> Interval:
		return {"start": self.start, "end": self.end}

	def as_dict(self) -> Dict[str, Any]:
		data = {
			"professional_id": self.professional_id,
			"date": self.date.isoformat(),
			"start": self.start.strftime("%H:%M"),
			"end": self.end.strftime("%H:%M"),
			"available": self.available,
		}
		if self.reason:
			data["reason"] = self.reason
		return data


def _fits_free(starts: List[datetime], free: List[Interval], candidate: Interval) -> bool:
	"""True si el candidato cabe completo en algún sub-intervalo libre."""
	idx = bisect_right(starts, candidate["start"]) - 1
	return idx >= 0 and candidate["end"] <= free[idx]["end"]


class SlotCalculator:
	"""
	Calcula slots sobre un snapshot de sólo lectura.

	El detector de conflictos se construye una vez por consulta; la cita
	indicada en exclude_appointment_id no cuenta como ocupada.
	"""

	def __init__(self, snapshot: Snapshot, exclude_appointment_id: Optional[str] = None):
		self.snapshot = snapshot
		self.tz = get_timezone(snapshot.timezone)
		self.resolver = WorkingHoursResolver(snapshot.working_hours, self.tz)
		self.blocks = BlockRegistry(snapshot.blocks)
		self.detector = ConflictDetector(
			snapshot.appointments, self.blocks, self.tz,
			exclude_appointment_id=exclude_appointment_id
		)
		self.excluded = next(
			(a for a in snapshot.appointments if exclude_appointment_id and a.id == exclude_appointment_id), None
		)

	def services_for(self, service_ids: Sequence[str]) -> Outcome[List[Service]]:
		if not service_ids:
			return validation_error("Se requiere al menos un servicio")
		missing = [sid for sid in service_ids if sid not in self.snapshot.services]
		if missing:
			return validation_error(f"Servicio no encontrado: {', '.join(missing)}", service_ids=missing)
		return Outcome.success([self.snapshot.services[sid] for sid in service_ids])

	def pool_for(self, service_ids: Sequence[str], professional_id: Optional[str]) -> Outcome[List[Professional]]:
		"""Profesional explícito (si es capaz) o el pool calificado completo."""
		if professional_id is None:
			return Outcome.success(self.snapshot.qualified_pool(service_ids))

		professional = self.snapshot.professional(professional_id)
		if professional is None or not professional.active:
			return validation_error(
				f"Profesional {professional_id} no encontrado o inactivo",
				professional_id=professional_id
			)
		if not professional.can_perform(service_ids):
			return validation_error(
				f"El profesional {professional_id} no realiza todos los servicios solicitados",
				professional_id=professional_id,
				service_ids=list(service_ids)
			)
		return Outcome.success([professional])

	def _walk(self, interval: Interval, total: timedelta, step: timedelta) -> Iterator[Tuple[datetime, datetime]]:
		"""Recorre un intervalo desde su inicio en pasos de step; cada slot dura total."""
		cursor = interval["start"]
		while True:
			slot_end = self.tz.normalize(cursor + total)
			if slot_end > interval["end"]:
				return
			yield cursor, slot_end
			cursor = self.tz.normalize(cursor + step)

	def _occupied(self, professional: Professional, target_date: date, candidate: Interval, busy, detail_level: str) -> Slot:
		reason = None
		for interval, conflict in busy:
			if interval["start"] < candidate["end"] and candidate["start"] < interval["end"]:
				reason = conflict.describe(detail_level)
				break
		return Slot(professional.id, target_date, candidate["start"], candidate["end"], False, reason)

	def slots_for_day(
		self,
		professional: Professional,
		target_date: date,
		services: Sequence[Service],
		grid_step: int = 30,
		only_available: bool = True,
		requested_time: Optional[time] = None,
		duration_override: Optional[int] = None,
		detail_level: str = "completo"
	) -> List[Slot]:
		"""
		Genera slots de un profesional en un día.

		Algoritmo:
			1. Resolver turnos del día (Working-Hours Resolver)
			2. Restar bloqueos y citas activas -> sub-intervalos libres
			3. Recorrer cada sub-intervalo libre en pasos de grid_step desde
			   su propio inicio, emitiendo [inicio, inicio + duración total)
			   mientras quepa
			4. Con only_available=False, agregar las posiciones de la grilla
			   del turno que chocan con citas o bloqueos, marcadas ocupadas
			5. La cita excluida (reagendamiento) recupera su propio inicio

		Con requested_time sólo se evalúa el slot que empieza a esa hora.
		"""
		shifts = self.resolver.resolve(professional.id, target_date)
		if not shifts:
			return []

		busy = self.detector.busy_intervals(professional.id, target_date)
		free = subtract_all(shifts, [interval for interval, _ in busy])

		total = minutes(total_duration_minutes(services, professional, duration_override))
		step = minutes(grid_step)

		if requested_time is not None:
			start = localize(target_date, requested_time, self.tz)
			candidate = {"start": start, "end": self.tz.normalize(start + total)}
			if not any(contains(shift, candidate) for shift in shifts):
				return []
			if any(contains(interval, candidate) for interval in free):
				return [Slot(professional.id, target_date, candidate["start"], candidate["end"], True)]
			if only_available:
				return []
			return [self._occupied(professional, target_date, candidate, busy, detail_level)]

		slots = [
			Slot(professional.id, target_date, start, end, True)
			for interval in free
			for start, end in self._walk(interval, total, step)
		]

		# El inicio original de la cita excluida se ofrece aunque quede fuera de la grilla
		if self.excluded is not None and self.excluded.professional_id == professional.id:
			start = self.excluded.start.astimezone(self.tz)
			candidate = {"start": start, "end": self.tz.normalize(start + total)}
			if start.date() == target_date and any(contains(iv, candidate) for iv in free) \
					and start not in {slot.start for slot in slots}:
				slots.append(Slot(professional.id, target_date, candidate["start"], candidate["end"], True))

		if not only_available:
			offered = {slot.start for slot in slots}
			starts = [iv["start"] for iv in free]
			for shift in shifts:
				for start, end in self._walk(shift, total, step):
					candidate = {"start": start, "end": end}
					if start in offered or _fits_free(starts, free, candidate):
						continue
					slots.append(self._occupied(professional, target_date, candidate, busy, detail_level))

		slots.sort(key=lambda s: s.start)
		return slots

	def check_interval(self, professional: Professional, candidate: Interval) -> Outcome[Interval]:
		"""
		Valida un intervalo concreto (reserva o reagendamiento): debe caber
		en un turno del profesional y no chocar con citas ni bloqueos.
		"""
		local_start = candidate["start"].astimezone(self.tz)
		shifts = self.resolver.resolve(professional.id, local_start.date())
		if not any(contains(shift, candidate) for shift in shifts):
			return validation_error(
				"El horario solicitado está fuera del horario laboral del profesional",
				professional_id=professional.id,
				start=local_start.isoformat()
			)

		conflicts = self.detector.find_conflicts(professional.id, candidate)
		if conflicts:
			return Outcome.failure(
				ErrorCode.SLOT_CONFLICT,
				"El horario solicitado ya no está disponible",
				professional_id=professional.id,
				start=local_start.isoformat(),
				reasons=[c.describe("completo") for c in conflicts],
			)
		return Outcome.success(candidate)

	def booking_interval(
		self,
		professional: Professional,
		services: Sequence[Service],
		start: datetime,
		duration_override: Optional[int] = None
	) -> Interval:
		start = start.astimezone(self.tz)
		total = total_duration_minutes(services, professional, duration_override)
		return {"start": start, "end": self.tz.normalize(start + timedelta(minutes=total))}


def generate_available_slots(snapshot: Snapshot, query: AvailabilityQuery) -> Outcome[List[Slot]]:
	"""
	Genera slots para la consulta, ordenados por día, profesional (orden
	del pool) y hora.

	Returns:
		Outcome con la lista de Slot; una lista vacía es un resultado válido.
	"""
	if query.grid_step not in GRID_STEPS:
		return validation_error(f"intervalo_minutos debe ser uno de {GRID_STEPS}", grid_step=query.grid_step)
	if query.detail_level not in DETAIL_LEVELS:
		return validation_error(f"nivel_detalle inválido: {query.detail_level}")

	calculator = SlotCalculator(snapshot, query.exclude_appointment_id)

	services = calculator.services_for(query.service_ids)
	if not services.ok:
		return services
	pool = calculator.pool_for(query.service_ids, query.professional_id)
	if not pool.ok:
		return pool

	slots = []
	for day in iter_days(query.start_date, query.days):
		for professional in pool.value:
			slots.extend(calculator.slots_for_day(
				professional,
				day,
				services.value,
				grid_step=query.grid_step,
				only_available=query.only_available,
				requested_time=query.requested_time,
				duration_override=query.duration_override,
				detail_level=query.detail_level,
			))
	return Outcome.success(slots)


def group_slots_by_day(slots: Sequence[Slot]) -> List[Dict[str, Any]]:
	"""
	Agrupa slots por fecha y profesional, con totales de disponibles.

	Returns:
		list[dict]: [
			{
				"date": "2026-01-15",
				"professionals": [
					{"professional_id": "P-1", "slots": [...], "total_available": 3}
				],
				"total_available": 3
			},
			...
		]
	"""
	days: Dict[date, Dict[str, List[Slot]]] = {}
	for slot in slots:
		days.setdefault(slot.date, {}).setdefault(slot.professional_id, []).append(slot)

	grouped = []
	for day, by_professional in days.items():
		professionals = [
			{
				"professional_id": pid,
				"slots": [s.as_dict() for s in day_slots],
				"total_available": sum(1 for s in day_slots if s.available),
			}
			for pid, day_slots in by_professional.items()
		]
		grouped.append({
			"date": day.isoformat(),
			"professionals": professionals,
			"total_available": sum(p["total_available"] for p in professionals),
		})
	return grouped
