"""
Request Parsing

Validates raw availability and recurrence payloads (as they arrive from
HTTP query strings or JSON bodies) into engine queries. Every rejection is
a VALIDATION_ERROR value raised before any computation.
"""

import json
import re
from datetime import date, datetime, time, timedelta
from typing import Any, List, Mapping, Optional, Tuple

from .booking import BookingRequest
from .calendar import localize, to_date
from .errors import MalformedScheduleData, Outcome, validation_error
from .recurrence import (
	Count, Frequency, MonthEndPolicy, RecurrencePattern, SeriesRequest, UntilDate, validate_pattern
)
from .slots import DETAIL_LEVELS, GRID_STEPS, AvailabilityQuery

MAX_SERVICES = 10
MAX_RANGE_DAYS = 90
MIN_DURATION = 10
MAX_DURATION = 480

DATE_ALIASES = {"hoy": 0, "mañana": 1, "manana": 1}

_TIME_RE = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")
_TRUE = {"1", "true", "yes", "si", "sí", "on"}
_FALSE = {"0", "false", "no", "off"}


class _Invalid(Exception):
	"""Uso interno: corta el parseo con un mensaje de validación."""

	def __init__(self, message: str, **details: Any):
		super().__init__(message)
		self.message = message
		self.details = details


def _present(payload: Mapping[str, Any], key: str) -> bool:
	return payload.get(key) not in (None, "")


def _int(
	payload: Mapping[str, Any],
	key: str,
	default: Optional[int],
	low: Optional[int] = None,
	high: Optional[int] = None
) -> Optional[int]:
	if not _present(payload, key):
		return default
	raw = payload[key]
	if isinstance(raw, bool):
		raise _Invalid(f"{key} debe ser un número entero", field=key)
	try:
		value = int(str(raw).strip())
	except ValueError:
		raise _Invalid(f"{key} debe ser un número entero", field=key) from None
	if low is not None and high is not None and not low <= value <= high:
		raise _Invalid(f"{key} debe estar entre {low} y {high}", field=key, value=value)
	return value


def _bool(payload: Mapping[str, Any], key: str, default: bool) -> bool:
	if not _present(payload, key):
		return default
	raw = payload[key]
	if isinstance(raw, bool):
		return raw
	text = str(raw).strip().lower()
	if text in _TRUE:
		return True
	if text in _FALSE:
		return False
	raise _Invalid(f"{key} debe ser booleano", field=key)


def _str(payload: Mapping[str, Any], key: str) -> Optional[str]:
	if not _present(payload, key):
		return None
	return str(payload[key]).strip()


def parse_date(value: Any, today: date, field: str = "fecha") -> date:
	"""Fecha ISO (YYYY-MM-DD) o alias 'hoy' / 'mañana'."""
	if value in (None, ""):
		raise _Invalid(f"{field} es requerida", field=field)
	if isinstance(value, (date, datetime)):
		return to_date(value)
	text = str(value).strip().lower()
	if text in DATE_ALIASES:
		return today + timedelta(days=DATE_ALIASES[text])
	if not re.match(r"^\d{4}-\d{2}-\d{2}$", text):
		raise _Invalid(f"{field} debe tener formato YYYY-MM-DD, 'hoy' o 'mañana'", field=field)
	try:
		return to_date(text)
	except MalformedScheduleData:
		raise _Invalid(f"{field} no es una fecha válida", field=field) from None


def parse_time(value: Any, field: str = "hora") -> time:
	"""Hora HH:MM en formato 24h."""
	if isinstance(value, time):
		return value
	match = _TIME_RE.match(str(value).strip())
	if not match:
		raise _Invalid(f"{field} debe tener formato HH:MM (24h)", field=field)
	return time(int(match.group(1)), int(match.group(2)))


def _list(raw: Any, field: str) -> List[Any]:
	"""Lista nativa, JSON ("[1, 3]") o separada por comas ("1,3")."""
	if isinstance(raw, str):
		if not raw.strip().startswith("["):
			return [item for item in raw.split(",") if item.strip()]
		try:
			raw = json.loads(raw)
		except ValueError:
			raise _Invalid(f"{field} no es una lista válida", field=field) from None
	if not isinstance(raw, (list, tuple)) or any(isinstance(item, (list, tuple, dict)) for item in raw):
		raise _Invalid(f"{field} debe ser una lista de valores", field=field)
	return list(raw)


def _service_ids(payload: Mapping[str, Any]) -> Tuple[str, ...]:
	single = _str(payload, "servicio_id")
	many = payload.get("servicios_ids")
	if single and many:
		raise _Invalid("Use servicio_id o servicios_ids, no ambos")
	if single:
		return (single,)
	if not many:
		raise _Invalid("Se requiere servicio_id o servicios_ids", field="servicio_id")

	ids: List[str] = [str(s).strip() for s in _list(many, "servicios_ids") if str(s).strip()]
	if not 1 <= len(ids) <= MAX_SERVICES:
		raise _Invalid(f"servicios_ids debe contener entre 1 y {MAX_SERVICES} servicios", field="servicios_ids")
	if len(set(ids)) != len(ids):
		raise _Invalid("servicios_ids no puede repetir servicios", field="servicios_ids")
	return tuple(ids)


def parse_availability_request(payload: Mapping[str, Any], today: date) -> Outcome[AvailabilityQuery]:
	"""
	Valida el payload de consulta de disponibilidad.

	Args:
		payload: campos fecha, servicio_id | servicios_ids, profesional_id,
			hora, duracion, rango_dias, intervalo_minutos, solo_disponibles,
			excluir_cita_id, nivel_detalle
		today: fecha local de la organización, para los alias de fecha

	Returns:
		Outcome con AvailabilityQuery o VALIDATION_ERROR
	"""
	try:
		grid_step = _int(payload, "intervalo_minutos", 30, min(GRID_STEPS), max(GRID_STEPS))
		if grid_step not in GRID_STEPS:
			raise _Invalid(f"intervalo_minutos debe ser uno de {GRID_STEPS}", field="intervalo_minutos")

		detail_level = _str(payload, "nivel_detalle") or "completo"
		if detail_level not in DETAIL_LEVELS:
			raise _Invalid(f"nivel_detalle debe ser uno de {DETAIL_LEVELS}", field="nivel_detalle")

		query = AvailabilityQuery(
			service_ids=_service_ids(payload),
			start_date=parse_date(payload.get("fecha"), today),
			days=_int(payload, "rango_dias", 1, 1, MAX_RANGE_DAYS),
			professional_id=_str(payload, "profesional_id"),
			requested_time=parse_time(payload["hora"]) if _present(payload, "hora") else None,
			grid_step=grid_step,
			only_available=_bool(payload, "solo_disponibles", True),
			duration_override=_int(payload, "duracion", None, MIN_DURATION, MAX_DURATION),
			exclude_appointment_id=_str(payload, "excluir_cita_id"),
			detail_level=detail_level,
		)
	except _Invalid as e:
		return validation_error(e.message, **e.details)
	return Outcome.success(query)


def parse_recurrence_pattern(payload: Mapping[str, Any], anchor: date) -> Outcome[RecurrencePattern]:
	"""
	Valida el payload de recurrencia y lo convierte en RecurrencePattern.

	termina_en = cantidad -> Count(cantidad_citas)
	termina_en = fecha -> UntilDate(fecha_fin)
	"""
	try:
		try:
			frequency = Frequency(_str(payload, "frecuencia") or "")
		except ValueError:
			raise _Invalid("frecuencia debe ser semanal, quincenal o mensual", field="frecuencia") from None

		weekdays: Tuple[int, ...] = ()
		raw_days = payload.get("dias_semana") or []
		if frequency != Frequency.MENSUAL:
			try:
				weekdays = tuple(int(str(d).strip()) for d in _list(raw_days, "dias_semana"))
			except ValueError:
				raise _Invalid("dias_semana debe contener números de 0 a 6", field="dias_semana") from None

		ends = _str(payload, "termina_en")
		if ends == "cantidad":
			if _present(payload, "fecha_fin"):
				raise _Invalid("fecha_fin no aplica cuando termina_en = cantidad", field="fecha_fin")
			count = _int(payload, "cantidad_citas", None)
			if count is None:
				raise _Invalid("cantidad_citas es requerida", field="cantidad_citas")
			termination = Count(count)
		elif ends == "fecha":
			if _present(payload, "cantidad_citas"):
				raise _Invalid("cantidad_citas no aplica cuando termina_en = fecha", field="cantidad_citas")
			termination = UntilDate(parse_date(payload.get("fecha_fin"), anchor, field="fecha_fin"))
		else:
			raise _Invalid("termina_en debe ser 'cantidad' o 'fecha'", field="termina_en")

		try:
			month_end = MonthEndPolicy(_str(payload, "fin_de_mes") or MonthEndPolicy.CLAMP.value)
		except ValueError:
			raise _Invalid("fin_de_mes debe ser clamp o skip", field="fin_de_mes") from None

		interval = _int(payload, "intervalo", 1)
	except _Invalid as e:
		return validation_error(e.message, **e.details)

	pattern = RecurrencePattern(
		frequency=frequency,
		termination=termination,
		interval=interval,
		weekdays=weekdays,
		month_end=month_end,
	)
	return validate_pattern(anchor, pattern)


def parse_series_request(payload: Mapping[str, Any], tenant_id: str, today: date) -> Outcome[SeriesRequest]:
	"""Valida el payload completo de creación de serie (fecha + hora + patrón)."""
	try:
		anchor = parse_date(payload.get("fecha"), today)
		if not _present(payload, "hora"):
			raise _Invalid("hora es requerida", field="hora")
		start_time = parse_time(payload["hora"])
		service_ids = _service_ids(payload)
		duration = _int(payload, "duracion", None, MIN_DURATION, MAX_DURATION)
	except _Invalid as e:
		return validation_error(e.message, **e.details)

	recurrence = payload.get("recurrencia") or payload
	pattern = parse_recurrence_pattern(recurrence, anchor)
	if not pattern.ok:
		return pattern

	return Outcome.success(SeriesRequest(
		tenant_id=tenant_id,
		service_ids=service_ids,
		anchor=anchor,
		start_time=start_time,
		pattern=pattern.value,
		professional_id=_str(payload, "profesional_id"),
		duration_override=duration,
		client_id=_str(payload, "cliente_id"),
		client_name=_str(payload, "cliente_nombre") or "",
	))


def parse_booking_request(payload: Mapping[str, Any], tenant_id: str, today: date, tz) -> Outcome[BookingRequest]:
	"""Valida el payload de una cita individual (fecha + hora + servicios)."""
	try:
		target_date = parse_date(payload.get("fecha"), today)
		if not _present(payload, "hora"):
			raise _Invalid("hora es requerida", field="hora")
		start = localize(target_date, parse_time(payload["hora"]), tz)
		request = BookingRequest(
			tenant_id=tenant_id,
			service_ids=_service_ids(payload),
			start=start,
			professional_id=_str(payload, "profesional_id"),
			duration_override=_int(payload, "duracion", None, MIN_DURATION, MAX_DURATION),
			client_id=_str(payload, "cliente_id"),
			client_name=_str(payload, "cliente_nombre") or "",
		)
	except _Invalid as e:
		return validation_error(e.message, **e.details)
	return Outcome.success(request)
