"""
Recurrence Expander

Turns a recurrence pattern into concrete dates and validates every
occurrence against the professional's availability:
- semanal / quincenal: one occurrence per selected weekday per stepped week
  (weeks run Sunday -> Saturday)
- mensual: same day of month as the anchor, every `interval` months
- termination: Count(n) or UntilDate(d)
"""

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from dateutil.relativedelta import relativedelta

from .calendar import localize, payload_weekday, week_start
from .errors import ErrorCode, Outcome, validation_error
from .models import Professional, Service
from .slots import SlotCalculator

MAX_INTERVAL = 12
MAX_OCCURRENCES = 52
MAX_SPAN_DAYS = 365

# Tope de periodos recorridos; sólo relevante con MonthEndPolicy.SKIP
_MAX_PERIODS = 12 * MAX_INTERVAL * 5


class Frequency(str, Enum):
	SEMANAL = "semanal"
	QUINCENAL = "quincenal"
	MENSUAL = "mensual"


class MonthEndPolicy(str, Enum):
	CLAMP = "clamp"
	SKIP = "skip"


@dataclass(frozen=True)
class Count:
	occurrences: int


@dataclass(frozen=True)
class UntilDate:
	until: date


Termination = Union[Count, UntilDate]


@dataclass(frozen=True)
class RecurrencePattern:
	frequency: Frequency
	termination: Termination
	interval: int = 1
	weekdays: Tuple[int, ...] = ()
	month_end: MonthEndPolicy = MonthEndPolicy.CLAMP

	def as_dict(self) -> Dict[str, Any]:
		data = {
			"frecuencia": self.frequency.value,
			"intervalo": self.interval,
			"dias_semana": list(self.weekdays),
		}
		if isinstance(self.termination, Count):
			data.update({"termina_en": "cantidad", "cantidad_citas": self.termination.occurrences})
		else:
			data.update({"termina_en": "fecha", "fecha_fin": self.termination.until.isoformat()})
		return data


def validate_pattern(anchor: date, pattern: RecurrencePattern) -> Outcome[RecurrencePattern]:
	if not 1 <= pattern.interval <= MAX_INTERVAL:
		return validation_error(f"intervalo debe estar entre 1 y {MAX_INTERVAL}", intervalo=pattern.interval)

	if pattern.frequency != Frequency.MENSUAL:
		if any(not 0 <= wd <= 6 for wd in pattern.weekdays):
			return validation_error("dias_semana debe contener índices entre 0 (domingo) y 6 (sábado)")
		if len(set(pattern.weekdays)) != len(pattern.weekdays):
			return validation_error("dias_semana no puede repetir días")

	termination = pattern.termination
	if isinstance(termination, Count):
		if not 1 <= termination.occurrences <= MAX_OCCURRENCES:
			return validation_error(
				f"cantidad_citas debe estar entre 1 y {MAX_OCCURRENCES}",
				cantidad_citas=termination.occurrences
			)
	elif isinstance(termination, UntilDate):
		if termination.until < anchor:
			return validation_error("fecha_fin no puede ser anterior a la fecha de inicio")
		if termination.until > anchor + timedelta(days=MAX_SPAN_DAYS):
			return validation_error(f"fecha_fin no puede superar {MAX_SPAN_DAYS} días desde la fecha de inicio")
	else:
		return validation_error("termina_en inválido")

	return Outcome.success(pattern)


def _done(termination: Termination, emitted: int, candidate: date) -> bool:
	if isinstance(termination, Count):
		return emitted >= termination.occurrences
	return candidate > termination.until


def _expand_weekly(anchor: date, pattern: RecurrencePattern) -> List[date]:
	weekdays = sorted(pattern.weekdays) or [payload_weekday(anchor)]
	step = timedelta(weeks=pattern.interval * (2 if pattern.frequency == Frequency.QUINCENAL else 1))

	dates = []
	week = week_start(anchor)
	while True:
		for wd in weekdays:
			candidate = week + timedelta(days=wd)
			if candidate < anchor:
				continue
			if _done(pattern.termination, len(dates), candidate):
				return dates
			dates.append(candidate)
		week += step


def _expand_monthly(anchor: date, pattern: RecurrencePattern) -> List[date]:
	dates = []
	for period in range(_MAX_PERIODS):
		# relativedelta recorta al último día del mes destino
		candidate = anchor + relativedelta(months=period * pattern.interval)
		if _done(pattern.termination, len(dates), candidate):
			break
		if candidate.day != anchor.day and pattern.month_end == MonthEndPolicy.SKIP:
			continue
		dates.append(candidate)
	return dates


def expand_dates(anchor: date, pattern: RecurrencePattern) -> List[date]:
	"""
	Genera las fechas de la serie a partir de la fecha ancla.

	Algoritmo:
		- semanal/quincenal: desde la semana del ancla, avanzar interval
		  (x2 si es quincenal) semanas, emitiendo cada día seleccionado que
		  no sea anterior al ancla. Sin días seleccionados se usa el del ancla.
		- mensual: ancla + k*interval meses; día 31 en mes corto se recorta
		  (CLAMP) o se omite (SKIP)
		- Count(n) corta al llegar a n fechas; UntilDate(d) en la última <= d
	"""
	if pattern.frequency == Frequency.MENSUAL:
		return _expand_monthly(anchor, pattern)
	return _expand_weekly(anchor, pattern)


def snapshot_window(anchor: date, dates: Sequence[date]) -> Tuple[date, int]:
	"""
	Primer día y cantidad de días que debe cubrir el snapshot para validar
	todas las fechas de la serie, que pueden empezar después del ancla.
	"""
	if not dates:
		return anchor, 1
	return dates[0], (dates[-1] - dates[0]).days + 1


@dataclass(frozen=True)
class SeriesRequest:
	tenant_id: str
	service_ids: Tuple[str, ...]
	anchor: date
	start_time: time
	pattern: RecurrencePattern
	professional_id: Optional[str] = None
	duration_override: Optional[int] = None
	client_id: Optional[str] = None
	client_name: str = ""


@dataclass(frozen=True)
class Occurrence:
	index: int
	date: date
	start: datetime
	end: datetime
	professional_id: Optional[str]
	available: bool
	reason: Optional[str] = None

	def as_dict(self) -> Dict[str, Any]:
		data = {
			"index": self.index,
			"date": self.date.isoformat(),
			"start": self.start.strftime("%H:%M"),
			"end": self.end.strftime("%H:%M"),
			"professional_id": self.professional_id,
			"available": self.available,
		}
		if self.reason:
			data["reason"] = self.reason
		return data


@dataclass
class SeriesPreview:
	pattern: RecurrencePattern
	occurrences: List[Occurrence] = field(default_factory=list)

	@property
	def conflicts(self) -> List[Occurrence]:
		return [o for o in self.occurrences if not o.available]

	@property
	def satisfiable(self) -> bool:
		return bool(self.occurrences) and not self.conflicts

	def as_dict(self) -> Dict[str, Any]:
		return {
			"pattern": self.pattern.as_dict(),
			"occurrences": [o.as_dict() for o in self.occurrences],
			"total": len(self.occurrences),
			"total_available": len(self.occurrences) - len(self.conflicts),
			"conflicting_dates": [o.date.isoformat() for o in self.conflicts],
		}


def check_occurrences(
	calculator: SlotCalculator,
	professional: Professional,
	services: Sequence[Service],
	dates: Sequence[date],
	start_time: time,
	duration_override: Optional[int] = None
) -> List[Occurrence]:
	"""Valida cada fecha de la serie para un profesional concreto."""
	occurrences = []
	for idx, target_date in enumerate(dates, 1):
		start = localize(target_date, start_time, calculator.tz)
		candidate = calculator.booking_interval(professional, services, start, duration_override)
		checked = calculator.check_interval(professional, candidate)
		reason = None
		if not checked.ok:
			reasons = checked.error.details.get("reasons")
			reason = reasons[0] if reasons else checked.error.message
		occurrences.append(Occurrence(
			idx, target_date, candidate["start"], candidate["end"],
			professional.id, checked.ok, reason
		))
	return occurrences


def _unassigned(dates: Sequence[date], start_time: time, calculator: SlotCalculator, reason: str) -> List[Occurrence]:
	occurrences = []
	for idx, target_date in enumerate(dates, 1):
		start = localize(target_date, start_time, calculator.tz)
		occurrences.append(Occurrence(idx, target_date, start, start, None, False, reason))
	return occurrences


def best_occurrences(per_professional: Sequence[List[Occurrence]]) -> List[Occurrence]:
	"""
	Ocurrencias del primer profesional libre en todas las fechas; si
	ninguno lo está, las del que tenga más fechas libres.
	"""
	for occurrences in per_professional:
		if all(o.available for o in occurrences):
			return occurrences
	# max() conserva el primero del pool en caso de empate
	return max(per_professional, key=lambda occ: sum(1 for o in occ if o.available))


def preview_series(
	calculator: SlotCalculator,
	request: SeriesRequest,
	pool: Optional[Sequence[Professional]] = None
) -> Outcome[SeriesPreview]:
	"""
	Expande y valida la serie sin persistir nada.

	Con profesional explícito cada ocurrencia se valida contra su agenda.
	Sin profesional se recorre el pool de rotación (o el pool recibido, ya
	ordenado desde el puntero) y se elige el primero libre en todas las
	ocurrencias; si ninguno lo está, se reporta el que tenga más
	ocurrencias libres. Una serie siempre la atiende un solo profesional.
	"""
	valid = validate_pattern(request.anchor, request.pattern)
	if not valid.ok:
		return valid

	services = calculator.services_for(request.service_ids)
	if not services.ok:
		return services
	qualified = calculator.pool_for(request.service_ids, request.professional_id)
	if not qualified.ok:
		return qualified

	if request.professional_id is not None:
		candidates = qualified.value
	elif pool is not None:
		candidates = list(pool)
	else:
		candidates = calculator.snapshot.rotation_pool(request.service_ids)

	dates = expand_dates(request.anchor, request.pattern)
	preview = SeriesPreview(request.pattern)
	if not dates:
		return Outcome.success(preview)

	if not candidates:
		preview.occurrences = _unassigned(dates, request.start_time, calculator, "Sin profesionales en rotación")
		return Outcome.success(preview)

	preview.occurrences = best_occurrences([
		check_occurrences(calculator, professional, services.value, dates, request.start_time, request.duration_override)
		for professional in candidates
	])
	return Outcome.success(preview)


def unsatisfiable(preview: SeriesPreview) -> Outcome:
	if not preview.occurrences:
		return Outcome.failure(
			ErrorCode.RECURRENCE_UNSATISFIABLE,
			"El patrón de recurrencia no genera ninguna cita",
			conflicting_dates=[],
		)
	conflicts = preview.conflicts
	return Outcome.failure(
		ErrorCode.RECURRENCE_UNSATISFIABLE,
		f"{len(conflicts)} de {len(preview.occurrences)} fechas no están disponibles",
		conflicting_dates=[o.date.isoformat() for o in conflicts],
		conflicts=[o.as_dict() for o in conflicts],
	)
