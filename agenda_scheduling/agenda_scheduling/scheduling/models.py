"""
Engine Records

Plain records the engine reads from a snapshot and produces for the
persistence layer. They carry no behaviour beyond small derived values.
"""

from dataclasses import dataclass, field, replace
from datetime import date, datetime
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple

from .blocks import Block
from .working_hours import WorkingHoursRule


class AppointmentStatus(str, Enum):
	PROGRAMADA = "programada"
	CONFIRMADA = "confirmada"
	EN_SALA = "en_sala"
	EN_SERVICIO = "en_servicio"
	COMPLETADA = "completada"
	CANCELADA = "cancelada"
	NO_SHOW = "no_show"


@dataclass(frozen=True)
class Service:
	"""Servicio reservable: duración y buffers en minutos."""

	id: str
	duration_minutes: int
	buffer_before_minutes: int = 0
	buffer_after_minutes: int = 0
	name: str = ""

	@property
	def total_buffer_minutes(self) -> int:
		return self.buffer_before_minutes + self.buffer_after_minutes


@dataclass(frozen=True)
class Capability:
	"""Servicio que un profesional puede realizar."""

	service_id: str
	rotation_order: int = 0
	custom_duration_minutes: Optional[int] = None
	in_rotation: bool = True


@dataclass(frozen=True)
class Professional:
	id: str
	name: str = ""
	capabilities: Tuple[Capability, ...] = ()
	active: bool = True

	def capability(self, service_id: str) -> Optional[Capability]:
		for cap in self.capabilities:
			if cap.service_id == service_id:
				return cap
		return None

	def can_perform(self, service_ids: Sequence[str]) -> bool:
		return self.active and all(self.capability(s) is not None for s in service_ids)

	def rotation_key(self, service_id: str) -> Tuple[int, str]:
		"""Orden estable del pool: (orden_rotacion, id)."""
		cap = self.capability(service_id)
		return (cap.rotation_order if cap else 0, self.id)


@dataclass(frozen=True)
class Appointment:
	id: str
	professional_id: str
	service_ids: Tuple[str, ...]
	start: datetime
	end: datetime
	status: AppointmentStatus = AppointmentStatus.PROGRAMADA
	series_id: Optional[str] = None
	code: str = ""
	client_name: str = ""
	client_id: Optional[str] = None

	@property
	def interval(self) -> Dict[str, datetime]:
		return {"start": self.start, "end": self.end}

	@property
	def local_date(self) -> date:
		return self.start.date()

	def with_status(self, status: AppointmentStatus) -> "Appointment":
		return replace(self, status=status)


def total_duration_minutes(
	services: Sequence[Service],
	professional: Optional[Professional] = None,
	duration_override: Optional[int] = None,
) -> int:
	"""
	Duración total de una reserva (servicios consecutivos con el mismo
	profesional): suma de duraciones más todos los buffers.

	`duration_override` reemplaza la suma de duraciones (no los buffers).
	La duración personalizada del profesional, si existe, reemplaza la del
	servicio.
	"""
	buffers = sum(s.total_buffer_minutes for s in services)
	if duration_override:
		return duration_override + buffers

	total = 0
	for service in services:
		duration = service.duration_minutes
		if professional is not None:
			cap = professional.capability(service.id)
			if cap and cap.custom_duration_minutes:
				duration = cap.custom_duration_minutes
		total += duration
	return total + buffers


@dataclass
class Snapshot:
	"""
	Vista de sólo lectura de los datos de una organización para un rango
	de fechas. El engine nunca la modifica.
	"""

	organization_id: str
	timezone: str
	professionals: List[Professional] = field(default_factory=list)
	services: Dict[str, Service] = field(default_factory=dict)
	working_hours: List[WorkingHoursRule] = field(default_factory=list)
	blocks: List[Block] = field(default_factory=list)
	appointments: List[Appointment] = field(default_factory=list)

	def professional(self, professional_id: str) -> Optional[Professional]:
		for prof in self.professionals:
			if prof.id == professional_id:
				return prof
		return None

	def qualified_pool(self, service_ids: Sequence[str]) -> List[Professional]:
		"""Profesionales activos capaces de todos los servicios, en orden de rotación."""
		pool = [p for p in self.professionals if p.can_perform(service_ids)]
		if service_ids:
			pool.sort(key=lambda p: p.rotation_key(service_ids[0]))
		else:
			pool.sort(key=lambda p: p.id)
		return pool

	def rotation_pool(self, service_ids: Sequence[str]) -> List[Professional]:
		"""Subconjunto del pool calificado que participa en round-robin."""
		if not service_ids:
			return []
		return [
			p for p in self.qualified_pool(service_ids)
			if p.capability(service_ids[0]).in_rotation
		]
