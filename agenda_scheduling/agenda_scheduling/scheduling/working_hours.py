"""
Working-Hours Resolver

Resolves, for a professional and a calendar date, the ordered open intervals
in which appointments may be booked, considering:
- Weekly rules (one per weekday, several shifts allowed)
- Date exceptions (replace the weekly rules for that date; no intervals = closed)
- Non-bookable shifts (break, lunch) subtracted from the open time
- Rule validity ranges
"""

from dataclasses import dataclass
from datetime import date, time
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple

import pytz

from .calendar import Interval, localize, merge_intervals, payload_weekday, subtract_all
from .errors import MalformedScheduleData


class ShiftKind(str, Enum):
	REGULAR = "regular"
	PREMIUM = "premium"
	BREAK = "break"
	LUNCH = "almuerzo"

	@property
	def allows_booking(self) -> bool:
		return self in (ShiftKind.REGULAR, ShiftKind.PREMIUM)


@dataclass(frozen=True)
class WorkingHoursRule:
	"""
	Regla de horario de un profesional.

	weekday usa la convención del payload (0 = domingo ... 6 = sábado).
	exception_date, si está presente, hace de la regla una excepción de
	fecha y weekday se ignora. Los intervalos son [start, end) en hora local,
	ordenados y sin solapamiento.
	"""

	professional_id: str
	intervals: Tuple[Tuple[time, time], ...]
	weekday: Optional[int] = None
	exception_date: Optional[date] = None
	kind: ShiftKind = ShiftKind.REGULAR
	valid_from: Optional[date] = None
	valid_to: Optional[date] = None
	name: str = ""

	def __post_init__(self) -> None:
		if self.exception_date is None and self.weekday is None:
			raise MalformedScheduleData(
				f"Working hours for {self.professional_id} need a weekday or an exception date"
			)
		if self.weekday is not None and not 0 <= self.weekday <= 6:
			raise MalformedScheduleData(f"Invalid weekday {self.weekday} for {self.professional_id}")
		validate_intervals(self.intervals, self.professional_id)

	@property
	def is_exception(self) -> bool:
		return self.exception_date is not None

	def is_valid_on(self, target_date: date) -> bool:
		if self.valid_from and target_date < self.valid_from:
			return False
		if self.valid_to and target_date > self.valid_to:
			return False
		return True

	def applies_on(self, target_date: date) -> bool:
		if not self.is_valid_on(target_date):
			return False
		if self.is_exception:
			return self.exception_date == target_date
		return self.weekday == payload_weekday(target_date)


def validate_intervals(intervals: Iterable[Tuple[time, time]], owner: str = "") -> None:
	"""
	Valida que cada intervalo tenga start < end y que estén ordenados sin
	solaparse. Datos que violan esto son corruptos, no un caso de negocio.
	"""
	previous_end = None
	for idx, (start, end) in enumerate(intervals, 1):
		if start >= end:
			raise MalformedScheduleData(
				f"{owner}: interval {idx} ({start.strftime('%H:%M')}-{end.strftime('%H:%M')}) "
				f"must start before it ends"
			)
		if previous_end is not None and start < previous_end:
			raise MalformedScheduleData(
				f"{owner}: interval {idx} starts at {start.strftime('%H:%M')} "
				f"before the previous one ends ({previous_end.strftime('%H:%M')})"
			)
		previous_end = end


class WorkingHoursResolver:
	"""Resuelve intervalos abiertos por profesional y fecha en la zona de la organización."""

	def __init__(self, rules: Iterable[WorkingHoursRule], tz: pytz.BaseTzInfo):
		self.tz = tz
		self._by_professional: Dict[str, List[WorkingHoursRule]] = {}
		for rule in rules:
			self._by_professional.setdefault(rule.professional_id, []).append(rule)

	def rules_for(self, professional_id: str, target_date: date) -> List[WorkingHoursRule]:
		"""
		Reglas que aplican en la fecha. Si existe alguna excepción de fecha,
		reemplaza por completo a las reglas semanales de ese día.
		"""
		applicable = [
			r for r in self._by_professional.get(professional_id, [])
			if r.applies_on(target_date)
		]
		exceptions = [r for r in applicable if r.is_exception]
		return exceptions if exceptions else applicable

	def resolve(self, professional_id: str, target_date: date) -> List[Interval]:
		"""
		Obtiene los intervalos reservables del día.

		Algoritmo:
			1. Seleccionar reglas aplicables (excepción de fecha > regla semanal)
			2. Convertir franjas reservables a datetime localizado
			3. Merge de franjas de distintas reglas
			4. Restar franjas no reservables (break, almuerzo)
			5. Retornar lista ordenada
		"""
		open_intervals = []
		closed_intervals = []

		for rule in self.rules_for(professional_id, target_date):
			for start_time, end_time in rule.intervals:
				interval = {
					"start": localize(target_date, start_time, self.tz),
					"end": localize(target_date, end_time, self.tz),
				}
				if rule.kind.allows_booking:
					open_intervals.append(interval)
				else:
					closed_intervals.append(interval)

		if not open_intervals:
			return []

		return subtract_all(merge_intervals(open_intervals), closed_intervals)
