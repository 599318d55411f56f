"""
Block Registry

Read-only view over blocking periods (vacations, holidays, maintenance...)
scoped to one professional or to the whole organization.
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple

import pytz

from .calendar import Interval, clip, day_bounds, localize, overlaps, to_date
from .errors import MalformedScheduleData


class BlockType(str, Enum):
	VACATION = "vacaciones"
	HOLIDAY = "feriado"
	MAINTENANCE = "mantenimiento"
	TRAINING = "capacitacion"
	PERSONAL = "personal"
	OTHER = "otro"


BLOCK_TYPE_LABELS: Dict[BlockType, str] = {
	BlockType.VACATION: "Vacaciones",
	BlockType.HOLIDAY: "Día festivo",
	BlockType.MAINTENANCE: "Mantenimiento",
	BlockType.TRAINING: "Capacitación",
	BlockType.PERSONAL: "Asunto personal",
	BlockType.OTHER: "Horario bloqueado",
}


@dataclass(frozen=True)
class Block:
	"""
	Periodo bloqueado [start, end), puede abarcar varios días.

	professional_id = None significa bloqueo organizacional (afecta a todos).
	Si daily_window está presente, el bloqueo sólo aplica en esa franja
	horaria de cada día del rango.
	"""

	id: str
	block_type: BlockType
	start: datetime
	end: datetime
	professional_id: Optional[str] = None
	title: str = ""
	daily_window: Optional[Tuple[time, time]] = None
	active: bool = True

	def __post_init__(self) -> None:
		if self.start >= self.end:
			raise MalformedScheduleData(f"Block {self.id}: start must be before end")
		if self.daily_window and self.daily_window[0] >= self.daily_window[1]:
			raise MalformedScheduleData(f"Block {self.id}: daily window start must be before end")

	@property
	def is_organizational(self) -> bool:
		return self.professional_id is None

	@property
	def label(self) -> str:
		return self.title or BLOCK_TYPE_LABELS[self.block_type]

	def applies_to(self, professional_id: str) -> bool:
		return self.active and (self.professional_id is None or self.professional_id == professional_id)

	def intervals_on(self, target_date: date, tz: pytz.BaseTzInfo) -> List[Interval]:
		"""Porción del bloqueo que cae dentro del día local indicado."""
		bounds = day_bounds(target_date, tz)
		span = {"start": self.start, "end": self.end}
		if not overlaps(span, bounds):
			return []

		if self.daily_window is None:
			return clip(span, bounds)

		window = {
			"start": localize(target_date, self.daily_window[0], tz),
			"end": localize(target_date, self.daily_window[1], tz),
		}
		return clip(window, span)


def describe_block(block: Block, detail_level: str = "completo") -> str:
	"""
	Mensaje de no-disponibilidad según nivel de detalle.

	basico: cliente final; completo: bot/portal; admin: staff.
	"""
	if detail_level == "basico":
		return "No disponible"
	if detail_level == "completo":
		return block.label
	scope = "Bloqueo organizacional" if block.is_organizational else "Bloqueo del profesional"
	return f"{scope}: {block.label}"


class BlockRegistry:
	"""Índice de bloqueos activos por profesional (None = organizacionales)."""

	def __init__(self, blocks: Iterable[Block]):
		self._by_scope: Dict[Optional[str], List[Block]] = {}
		for block in blocks:
			if not block.active:
				continue
			self._by_scope.setdefault(block.professional_id, []).append(block)
		for scoped in self._by_scope.values():
			scoped.sort(key=lambda b: b.start)

	def for_professional(self, professional_id: str) -> List[Block]:
		"""Bloqueos propios del profesional más los organizacionales."""
		own = self._by_scope.get(professional_id, [])
		organizational = self._by_scope.get(None, [])
		return sorted(own + organizational, key=lambda b: b.start)

	def blocked_intervals(
		self,
		professional_id: str,
		target_date: date,
		tz: pytz.BaseTzInfo
	) -> List[Tuple[Interval, Block]]:
		"""Intervalos bloqueados del día, cada uno con el bloqueo que lo origina."""
		result = []
		for block in self.for_professional(professional_id):
			for interval in block.intervals_on(target_date, tz):
				result.append((interval, block))
		result.sort(key=lambda item: item[0]["start"])
		return result

	def blocks_overlapping(
		self,
		professional_id: str,
		candidate: Interval,
		tz: pytz.BaseTzInfo
	) -> List[Block]:
		"""Bloqueos que intersectan el intervalo candidato (puede cruzar días)."""
		hits = []
		current = to_date(candidate["start"].astimezone(tz))
		last = to_date(candidate["end"].astimezone(tz))
		for block in self.for_professional(professional_id):
			day = current
			while day <= last:
				if any(overlaps(candidate, iv) for iv in block.intervals_on(day, tz)):
					hits.append(block)
					break
				day += timedelta(days=1)
		return hits

