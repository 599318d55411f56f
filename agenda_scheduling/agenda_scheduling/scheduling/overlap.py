"""
Overlap Detection Service

Detects scheduling conflicts between a candidate interval and a
professional's existing appointments and blocking periods, and owns the
appointment lifecycle:

	programada -> confirmada -> en_sala -> en_servicio -> completada
	cancelada / no_show reachable from any non-terminal state

Cancelled and no-show appointments never block time.
"""

from bisect import bisect_left
from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, Iterable, List, Optional, Tuple

import pytz

from .blocks import Block, BlockRegistry, describe_block
from .calendar import Interval, day_bounds
from .errors import Outcome, validation_error
from .models import Appointment, AppointmentStatus

NON_BLOCKING_STATUSES = frozenset({AppointmentStatus.CANCELADA, AppointmentStatus.NO_SHOW})

TERMINAL_STATUSES = frozenset({
	AppointmentStatus.COMPLETADA,
	AppointmentStatus.CANCELADA,
	AppointmentStatus.NO_SHOW,
})

_FORWARD = {
	AppointmentStatus.PROGRAMADA: AppointmentStatus.CONFIRMADA,
	AppointmentStatus.CONFIRMADA: AppointmentStatus.EN_SALA,
	AppointmentStatus.EN_SALA: AppointmentStatus.EN_SERVICIO,
	AppointmentStatus.EN_SERVICIO: AppointmentStatus.COMPLETADA,
}

ALLOWED_TRANSITIONS: Dict[AppointmentStatus, frozenset] = {
	status: frozenset({_FORWARD[status], AppointmentStatus.CANCELADA, AppointmentStatus.NO_SHOW})
	for status in _FORWARD
}
for _terminal in TERMINAL_STATUSES:
	ALLOWED_TRANSITIONS[_terminal] = frozenset()


def blocks_time(appointment: Appointment) -> bool:
	return appointment.status not in NON_BLOCKING_STATUSES


def is_terminal(status: AppointmentStatus) -> bool:
	return status in TERMINAL_STATUSES


def can_transition(current: AppointmentStatus, target: AppointmentStatus) -> bool:
	return target in ALLOWED_TRANSITIONS[current]


def transition(appointment: Appointment, target: AppointmentStatus) -> Outcome[Appointment]:
	"""
	Aplica una transición de estado.

	Repetir el estado terminal actual (p.ej. cancelar una cita ya cancelada)
	es un no-op. Cualquier otra transición fuera del ciclo de vida es un
	error de validación.
	"""
	if appointment.status == target and is_terminal(target):
		return Outcome.success(appointment)

	if not can_transition(appointment.status, target):
		return validation_error(
			f"No se puede pasar de '{appointment.status.value}' a '{target.value}'",
			appointment_id=appointment.id,
			current=appointment.status.value,
			target=target.value,
		)

	return Outcome.success(appointment.with_status(target))


@dataclass(frozen=True)
class Conflict:
	"""Motivo por el que un intervalo no es reservable."""

	kind: str  # "appointment" | "block"
	interval: Interval
	appointment: Optional[Appointment] = None
	block: Optional[Block] = None

	def describe(self, detail_level: str = "completo") -> str:
		if self.block is not None:
			return describe_block(self.block, detail_level)
		if detail_level == "basico":
			return "Ocupado"
		if detail_level == "completo":
			return "Cita existente"
		appt = self.appointment
		return f"Cita {appt.code or appt.id} - {appt.client_name or 'Cliente'}"


class _ProfessionalIndex:
	"""
	Citas activas de un profesional ordenadas por inicio, con el máximo
	acumulado de fines para podar la búsqueda hacia atrás.
	"""

	def __init__(self, appointments: List[Appointment]):
		self.items = sorted(appointments, key=lambda a: (a.start, a.end))
		self.starts = [a.start for a in self.items]
		self.max_end = []
		running = None
		for appt in self.items:
			running = appt.end if running is None or appt.end > running else running
			self.max_end.append(running)

	def overlapping(self, candidate: Interval) -> List[Appointment]:
		# Sólo pueden solapar las citas que empiezan antes de candidate.end
		idx = bisect_left(self.starts, candidate["end"])
		hits = []
		i = idx - 1
		while i >= 0 and self.max_end[i] > candidate["start"]:
			if self.items[i].end > candidate["start"]:
				hits.append(self.items[i])
			i -= 1
		hits.reverse()
		return hits


class ConflictDetector:
	"""
	Decide si un intervalo candidato es reservable para un profesional.

	exclude_appointment_id trata esa cita como inexistente (flujo de
	reagendamiento), sólo a efectos de conflicto.
	"""

	def __init__(
		self,
		appointments: Iterable[Appointment],
		blocks: BlockRegistry,
		tz: pytz.BaseTzInfo,
		exclude_appointment_id: Optional[str] = None
	):
		self.blocks = blocks
		self.tz = tz
		self.exclude_appointment_id = exclude_appointment_id

		grouped: Dict[str, List[Appointment]] = {}
		for appt in appointments:
			if not blocks_time(appt):
				continue
			if exclude_appointment_id and appt.id == exclude_appointment_id:
				continue
			grouped.setdefault(appt.professional_id, []).append(appt)

		self._index = {pid: _ProfessionalIndex(appts) for pid, appts in grouped.items()}

	def overlapping_appointments(self, professional_id: str, candidate: Interval) -> List[Appointment]:
		index = self._index.get(professional_id)
		if index is None:
			return []
		return index.overlapping(candidate)

	def find_conflicts(self, professional_id: str, candidate: Interval) -> List[Conflict]:
		conflicts = [
			Conflict("appointment", appt.interval, appointment=appt)
			for appt in self.overlapping_appointments(professional_id, candidate)
		]
		for block in self.blocks.blocks_overlapping(professional_id, candidate, self.tz):
			conflicts.append(Conflict("block", {"start": block.start, "end": block.end}, block=block))
		return conflicts

	def is_conflicting(self, professional_id: str, candidate: Interval) -> bool:
		if self.overlapping_appointments(professional_id, candidate):
			return True
		return bool(self.blocks.blocks_overlapping(professional_id, candidate, self.tz))

	def busy_intervals(self, professional_id: str, target_date: date) -> List[Tuple[Interval, Conflict]]:
		"""Intervalos ocupados del día (citas + bloqueos), ordenados."""
		bounds = day_bounds(target_date, self.tz)
		busy = [
			(appt.interval, Conflict("appointment", appt.interval, appointment=appt))
			for appt in self.overlapping_appointments(professional_id, bounds)
		]
		for interval, block in self.blocks.blocked_intervals(professional_id, target_date, self.tz):
			busy.append((interval, Conflict("block", interval, block=block)))
		busy.sort(key=lambda item: item[0]["start"])
		return busy


def check_overlap(
	detector: ConflictDetector,
	professional_id: str,
	candidate: Interval
) -> Dict[str, Any]:
	"""
	Detecta overlaps con citas y bloqueos existentes.

	Returns:
		dict: {
			"has_overlap": bool,
			"overlapping_appointments": [ids de citas],
			"blocking_periods": [ids de bloqueos]
		}
	"""
	conflicts = detector.find_conflicts(professional_id, candidate)
	return {
		"has_overlap": bool(conflicts),
		"overlapping_appointments": [c.appointment.id for c in conflicts if c.appointment],
		"blocking_periods": [c.block.id for c in conflicts if c.block],
	}


def find_double_bookings(appointments: Iterable[Appointment]) -> List[Tuple[Appointment, Appointment]]:
	"""Pares de citas activas del mismo profesional que se solapan."""
	by_professional: Dict[str, List[Appointment]] = {}
	for appt in appointments:
		if blocks_time(appt):
			by_professional.setdefault(appt.professional_id, []).append(appt)

	pairs = []
	for appts in by_professional.values():
		appts.sort(key=lambda a: a.start)
		for i, first in enumerate(appts):
			for second in appts[i + 1:]:
				if second.start >= first.end:
					break
				pairs.append((first, second))
	return pairs


def affected_appointments(
	block: Block,
	appointments: Iterable[Appointment],
	tz: pytz.BaseTzInfo
) -> List[Appointment]:
	"""
	Citas activas que colisionan con un bloqueo nuevo.

	Se usa al registrar un bloqueo para avisar qué citas quedan afectadas.
	"""
	registry = BlockRegistry([block])
	hits = [
		appt for appt in appointments
		if blocks_time(appt) and registry.blocks_overlapping(appt.professional_id, appt.interval, tz)
	]
	return sorted(hits, key=lambda a: a.start)
