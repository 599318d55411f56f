"""
Calendar Primitives

Timezone-aware date and interval arithmetic shared by the engine.

Intervals are dicts {"start": datetime, "end": datetime} and are always
half-open [start, end): two intervals that only touch (a.end == b.start)
do not overlap.
"""

from datetime import date, datetime, time, timedelta
from typing import Dict, Iterator, List, Union

import pytz
from dateutil import parser as date_parser

from .errors import MalformedScheduleData

Interval = Dict[str, datetime]

DEFAULT_TIMEZONE = "America/Mexico_City"


def to_time(time_value: Union[time, timedelta, str]) -> time:
	"""
	Convierte diferentes formatos de tiempo a datetime.time.

	Args:
		time_value: puede ser time, timedelta (desde medianoche), o string HH:MM[:SS]

	Returns:
		datetime.time object
	"""
	if isinstance(time_value, datetime):
		return time_value.time()
	elif isinstance(time_value, time):
		return time_value
	elif isinstance(time_value, timedelta):
		# timedelta representa tiempo desde medianoche
		return (datetime.min + time_value).time()
	elif isinstance(time_value, str):
		try:
			return datetime.strptime(time_value.strip(), "%H:%M:%S").time()
		except ValueError:
			pass
		try:
			return datetime.strptime(time_value.strip(), "%H:%M").time()
		except ValueError:
			raise MalformedScheduleData(f"Invalid time '{time_value}'") from None
	else:
		raise MalformedScheduleData(f"Cannot convert {type(time_value)} to time")


def to_date(date_value: Union[date, datetime, str]) -> date:
	"""Normaliza date, datetime o string ISO (con o sin hora) a date."""
	if isinstance(date_value, datetime):
		return date_value.date()
	if isinstance(date_value, date):
		return date_value
	if isinstance(date_value, str):
		try:
			return date_parser.isoparse(date_value.strip()).date()
		except ValueError:
			raise MalformedScheduleData(f"Invalid date '{date_value}'") from None
	raise MalformedScheduleData(f"Cannot convert {type(date_value)} to date")


def get_timezone(tz_name: str) -> pytz.BaseTzInfo:
	try:
		return pytz.timezone(tz_name or DEFAULT_TIMEZONE)
	except pytz.UnknownTimeZoneError:
		raise MalformedScheduleData(f"Unknown timezone '{tz_name}'") from None


def localize(target_date: date, time_value: Union[time, timedelta, str], tz: pytz.BaseTzInfo) -> datetime:
	"""Combina fecha + hora local y la localiza a la zona indicada."""
	naive = datetime.combine(target_date, to_time(time_value))
	return tz.localize(naive)


def ensure_aware(value: datetime, tz: pytz.BaseTzInfo) -> datetime:
	"""Localiza datetimes naive; convierte los aware a la zona indicada."""
	if value.tzinfo is None:
		return tz.localize(value)
	return value.astimezone(tz)


def day_bounds(target_date: date, tz: pytz.BaseTzInfo) -> Interval:
	"""Intervalo [00:00 del día, 00:00 del día siguiente) en hora local."""
	start = tz.localize(datetime.combine(target_date, time.min))
	end = tz.localize(datetime.combine(target_date + timedelta(days=1), time.min))
	return {"start": start, "end": end}


def iter_days(start_date: date, days: int) -> Iterator[date]:
	for offset in range(days):
		yield start_date + timedelta(days=offset)


def make_interval(start: datetime, end: datetime) -> Interval:
	if start >= end:
		raise MalformedScheduleData(f"Interval start {start} must be before end {end}")
	return {"start": start, "end": end}


def overlaps(a: Interval, b: Interval) -> bool:
	"""Solapamiento half-open: a.start < b.end AND b.start < a.end."""
	return a["start"] < b["end"] and b["start"] < a["end"]


def contains(outer: Interval, inner: Interval) -> bool:
	return outer["start"] <= inner["start"] and inner["end"] <= outer["end"]


def clip(interval: Interval, bounds: Interval) -> List[Interval]:
	"""Recorta un intervalo a los límites dados (0 o 1 intervalos)."""
	start = max(interval["start"], bounds["start"])
	end = min(interval["end"], bounds["end"])
	if start >= end:
		return []
	return [{"start": start, "end": end}]


def merge_intervals(intervals: List[Interval]) -> List[Interval]:
	"""
	Une intervalos adyacentes o overlapping.

	Args:
		intervals: lista de intervalos {"start": datetime, "end": datetime}

	Returns:
		list: intervalos merged, ordenados por start
	"""
	if not intervals:
		return []

	ordered = sorted(({"start": i["start"], "end": i["end"]} for i in intervals), key=lambda x: x["start"])

	merged = [ordered[0]]

	for current in ordered[1:]:
		last_merged = merged[-1]

		# Si current se solapa o es adyacente a last_merged, merge
		if current["start"] <= last_merged["end"]:
			if current["end"] > last_merged["end"]:
				last_merged["end"] = current["end"]
		else:
			merged.append(current)

	return merged


def interval_subtract(interval: Interval, block: Interval) -> List[Interval]:
	"""
	Resta un bloqueo de un intervalo.

	Args:
		interval: intervalo original
		block: bloqueo a restar

	Returns:
		list: lista de intervalos resultantes (puede ser 0, 1 o 2 intervalos)
	"""
	# Block no se solapa con interval
	if block["end"] <= interval["start"] or block["start"] >= interval["end"]:
		return [interval]

	result = []

	# Parte inicial que queda libre
	if block["start"] > interval["start"]:
		result.append({"start": interval["start"], "end": block["start"]})

	# Parte final que queda libre
	if block["end"] < interval["end"]:
		result.append({"start": block["end"], "end": interval["end"]})

	return result


def subtract_all(intervals: List[Interval], busy: List[Interval]) -> List[Interval]:
	"""Resta todos los intervalos ocupados de los intervalos abiertos."""
	remaining = merge_intervals(intervals)
	for block in merge_intervals(busy):
		new_intervals = []
		for interval in remaining:
			new_intervals.extend(interval_subtract(interval, block))
		remaining = new_intervals
	return remaining


def payload_weekday(target_date: date) -> int:
	"""Índice de día de semana del payload: 0 = domingo ... 6 = sábado."""
	return (target_date.weekday() + 1) % 7


def week_start(target_date: date) -> date:
	"""Domingo de la semana que contiene la fecha."""
	return target_date - timedelta(days=payload_weekday(target_date))


def minutes(value: int) -> timedelta:
	return timedelta(minutes=value)
