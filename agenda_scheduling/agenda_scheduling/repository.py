"""
Frappe Persistence Adapters

Builds engine snapshots from DocTypes and implements the engine's
AppointmentRepository and PointerStore on top of the Frappe ORM.

Datetimes are stored naive in the organization's local time (the way
Frappe stores Datetime fields); they are localized with pytz on read and
converted back to naive local time on write.
"""

from contextlib import contextmanager
from datetime import date, datetime, time, timedelta
from typing import Any, Dict, Iterator, List, Optional, Sequence

import frappe
from frappe.utils import cint, get_datetime, getdate

from agenda_scheduling.agenda_scheduling.scheduling.blocks import Block, BlockType
from agenda_scheduling.agenda_scheduling.scheduling.booking import RecurrenceSeries
from agenda_scheduling.agenda_scheduling.scheduling.calendar import (
	DEFAULT_TIMEZONE, ensure_aware, get_timezone, to_time
)
from agenda_scheduling.agenda_scheduling.scheduling.models import (
	Appointment, AppointmentStatus, Capability, Professional, Service, Snapshot
)
from agenda_scheduling.agenda_scheduling.scheduling.recurrence import (
	Count, Frequency, MonthEndPolicy, RecurrencePattern, UntilDate
)
from agenda_scheduling.agenda_scheduling.scheduling.round_robin import PointerState
from agenda_scheduling.agenda_scheduling.scheduling.working_hours import ShiftKind, WorkingHoursRule

INACTIVE_STATUSES = [AppointmentStatus.CANCELADA.value, AppointmentStatus.NO_SHOW.value]

logger = frappe.logger("agenda_scheduling")


def get_settings() -> Dict[str, Any]:
	"""Lee Agenda Settings con sus valores por defecto."""
	round_robin = frappe.db.get_single_value("Agenda Settings", "round_robin_enabled")
	return {
		"timezone": frappe.db.get_single_value("Agenda Settings", "timezone") or DEFAULT_TIMEZONE,
		"round_robin_enabled": True if round_robin is None else bool(cint(round_robin)),
		"default_grid_step": cint(frappe.db.get_single_value("Agenda Settings", "default_grid_step")) or 30,
	}


def to_db_datetime(value: datetime, tz) -> datetime:
	"""Datetime aware -> naive en hora local de la organización."""
	return value.astimezone(tz).replace(tzinfo=None)


def _child_rows(doctype: str, parenttype: str, parents: Sequence[str], fields: List[str]) -> Dict[str, List[Any]]:
	if not parents:
		return {}
	rows = frappe.get_all(
		doctype,
		filters={"parenttype": parenttype, "parent": ["in", list(parents)]},
		fields=["parent"] + fields,
		order_by="idx asc"
	)
	grouped: Dict[str, List[Any]] = {}
	for row in rows:
		grouped.setdefault(row.parent, []).append(row)
	return grouped


def appointment_from_row(row: Any, service_ids: Sequence[str], tz) -> Appointment:
	return Appointment(
		id=row.name,
		professional_id=row.professional,
		service_ids=tuple(service_ids),
		start=ensure_aware(get_datetime(row.start_datetime), tz),
		end=ensure_aware(get_datetime(row.end_datetime), tz),
		status=AppointmentStatus(row.status or AppointmentStatus.PROGRAMADA.value),
		series_id=row.recurrence_series or None,
		code=row.code or row.name,
		client_name=row.client_name or "",
		client_id=row.client or None,
	)


APPOINTMENT_FIELDS = [
	"name", "professional", "start_datetime", "end_datetime", "status",
	"recurrence_series", "code", "client_name", "client",
]


def _load_appointments(filters: Dict[str, Any], tz, for_update: bool = False) -> List[Appointment]:
	rows = frappe.get_all(
		"Appointment",
		filters=filters,
		fields=APPOINTMENT_FIELDS,
		order_by="start_datetime asc",
		for_update=for_update
	)
	services = _child_rows("Appointment Service", "Appointment", [r.name for r in rows], ["service"])
	return [
		appointment_from_row(row, [s.service for s in services.get(row.name, [])], tz)
		for row in rows
	]


def load_snapshot(organization: str, start_date: date, days: int = 1) -> Snapshot:
	"""
	Arma el snapshot de sólo lectura de la organización para
	[start_date, start_date + days).

	Algoritmo:
		1. Profesionales activos + capacidades (child table)
		2. Servicios activos
		3. Reglas de horario + intervalos (child table)
		4. Bloqueos activos que intersectan la ventana
		5. Citas no canceladas que intersectan la ventana
	"""
	settings = get_settings()
	tz = get_timezone(settings["timezone"])
	window_start = datetime.combine(start_date, time.min)
	window_end = datetime.combine(start_date + timedelta(days=days), time.min)

	professional_rows = frappe.get_all(
		"Agenda Professional",
		filters={"organization": organization, "active": 1},
		fields=["name", "professional_name"],
		order_by="name asc"
	)
	names = [p.name for p in professional_rows]
	capabilities = _child_rows(
		"Agenda Professional Service", "Agenda Professional", names,
		["service", "rotation_order", "custom_duration_minutes", "in_rotation"]
	)
	professionals = [
		Professional(
			id=row.name,
			name=row.professional_name or row.name,
			capabilities=tuple(
				Capability(
					service_id=cap.service,
					rotation_order=cint(cap.rotation_order),
					custom_duration_minutes=cint(cap.custom_duration_minutes) or None,
					in_rotation=bool(cint(cap.in_rotation)),
				)
				for cap in capabilities.get(row.name, [])
			),
		)
		for row in professional_rows
	]

	services = {
		row.name: Service(
			id=row.name,
			duration_minutes=cint(row.duration_minutes),
			buffer_before_minutes=cint(row.buffer_before_minutes),
			buffer_after_minutes=cint(row.buffer_after_minutes),
			name=row.service_name or row.name,
		)
		for row in frappe.get_all(
			"Agenda Service",
			filters={"organization": organization, "active": 1},
			fields=["name", "service_name", "duration_minutes", "buffer_before_minutes", "buffer_after_minutes"]
		)
	}

	rule_rows = frappe.get_all(
		"Working Hours",
		filters={"organization": organization, "professional": ["in", names or [""]]},
		fields=[
			"name", "professional", "rule_type", "weekday", "exception_date",
			"shift_kind", "valid_from", "valid_to"
		]
	)
	intervals = _child_rows(
		"Working Hours Interval", "Working Hours", [r.name for r in rule_rows],
		["start_time", "end_time"]
	)
	working_hours = []
	for row in rule_rows:
		spans = sorted(
			(to_time(i.start_time), to_time(i.end_time))
			for i in intervals.get(row.name, [])
		)
		is_exception = row.rule_type == "Date Exception"
		working_hours.append(WorkingHoursRule(
			professional_id=row.professional,
			intervals=tuple(spans),
			weekday=None if is_exception else cint(row.weekday),
			exception_date=getdate(row.exception_date) if is_exception else None,
			kind=ShiftKind(row.shift_kind or ShiftKind.REGULAR.value),
			valid_from=getdate(row.valid_from) if row.valid_from else None,
			valid_to=getdate(row.valid_to) if row.valid_to else None,
			name=row.name,
		))

	blocks = [
		Block(
			id=row.name,
			block_type=BlockType(row.block_type or BlockType.OTHER.value),
			start=ensure_aware(get_datetime(row.start_datetime), tz),
			end=ensure_aware(get_datetime(row.end_datetime), tz),
			professional_id=row.professional or None,
			title=row.title or "",
			daily_window=(
				(to_time(row.daily_start_time), to_time(row.daily_end_time))
				if row.daily_start_time and row.daily_end_time else None
			),
		)
		for row in frappe.get_all(
			"Blocking Period",
			filters={
				"organization": organization,
				"active": 1,
				"start_datetime": ["<", window_end],
				"end_datetime": [">", window_start],
			},
			fields=[
				"name", "block_type", "start_datetime", "end_datetime", "professional",
				"title", "daily_start_time", "daily_end_time"
			]
		)
	]

	appointments = _load_appointments({
		"organization": organization,
		"status": ["not in", INACTIVE_STATUSES],
		"start_datetime": ["<", window_end],
		"end_datetime": [">", window_start],
	}, tz)

	return Snapshot(
		organization_id=organization,
		timezone=settings["timezone"],
		professionals=professionals,
		services=services,
		working_hours=working_hours,
		blocks=blocks,
		appointments=appointments,
	)


def pattern_from_doc(doc: Any) -> RecurrencePattern:
	weekdays = tuple(cint(d) for d in (doc.weekdays or "").split(",") if d.strip())
	if doc.ends_on == "fecha":
		termination = UntilDate(getdate(doc.end_date))
	else:
		termination = Count(cint(doc.occurrence_count))
	return RecurrencePattern(
		frequency=Frequency(doc.frequency),
		termination=termination,
		interval=cint(doc.repeat_interval) or 1,
		weekdays=weekdays,
		month_end=MonthEndPolicy(doc.month_end_policy or MonthEndPolicy.CLAMP.value),
	)


class FrappeAppointmentRepository:
	"""AppointmentRepository sobre los DocTypes Appointment y Recurrence Series."""

	def __init__(self, organization: str, tz):
		self.organization = organization
		self.tz = tz

	@contextmanager
	def transaction(self) -> Iterator[None]:
		savepoint = f"agenda_{frappe.generate_hash(length=8)}"
		frappe.db.savepoint(savepoint)
		try:
			yield
		except Exception:
			frappe.db.rollback(save_point=savepoint)
			raise
		else:
			frappe.db.release_savepoint(savepoint)

	def active_appointments(self, professional_id: str, start: datetime, end: datetime) -> List[Appointment]:
		# FOR UPDATE serializa reservas concurrentes del mismo profesional
		return _load_appointments({
			"professional": professional_id,
			"status": ["not in", INACTIVE_STATUSES],
			"start_datetime": ["<", to_db_datetime(end, self.tz)],
			"end_datetime": [">", to_db_datetime(start, self.tz)],
		}, self.tz, for_update=True)

	def get(self, appointment_id: str, for_update: bool = False) -> Optional[Appointment]:
		found = _load_appointments(
			{"name": appointment_id, "organization": self.organization}, self.tz, for_update=for_update
		)
		return found[0] if found else None

	def insert(self, appointments: Sequence[Appointment], series: Optional[RecurrenceSeries] = None) -> List[Appointment]:
		series_name = None
		if series is not None:
			series_doc = frappe.get_doc({
				"doctype": "Recurrence Series",
				"organization": self.organization,
				"professional": series.professional_id,
				"anchor_datetime": to_db_datetime(series.anchor, self.tz),
				"start_time": series.start_time.strftime("%H:%M:%S"),
				"services": [{"service": sid} for sid in series.service_ids],
				**self._pattern_fields(series.pattern),
			})
			series_doc.insert(ignore_permissions=True)
			series_name = series_doc.name

		stored = []
		for appt in appointments:
			doc = frappe.get_doc({
				"doctype": "Appointment",
				"organization": self.organization,
				"professional": appt.professional_id,
				"services": [{"service": sid} for sid in appt.service_ids],
				"start_datetime": to_db_datetime(appt.start, self.tz),
				"end_datetime": to_db_datetime(appt.end, self.tz),
				"status": appt.status.value,
				"recurrence_series": series_name,
				"client": appt.client_id,
				"client_name": appt.client_name,
			})
			doc.insert(ignore_permissions=True)
			stored.append(self.get(doc.name))

		logger.info(
			f"Inserted {len(stored)} appointment(s) for {self.organization}"
			+ (f" in series {series_name}" if series_name else "")
		)
		return stored

	def _pattern_fields(self, pattern: RecurrencePattern) -> Dict[str, Any]:
		fields = {
			"frequency": pattern.frequency.value,
			"repeat_interval": pattern.interval,
			"weekdays": ",".join(str(d) for d in pattern.weekdays),
			"month_end_policy": pattern.month_end.value,
		}
		if isinstance(pattern.termination, Count):
			fields.update({"ends_on": "cantidad", "occurrence_count": pattern.termination.occurrences})
		else:
			fields.update({"ends_on": "fecha", "end_date": pattern.termination.until})
		return fields

	def update(self, appointments: Sequence[Appointment]) -> None:
		for appt in appointments:
			doc = frappe.get_doc("Appointment", appt.id)
			doc.status = appt.status.value
			doc.start_datetime = to_db_datetime(appt.start, self.tz)
			doc.end_datetime = to_db_datetime(appt.end, self.tz)
			doc.recurrence_series = appt.series_id
			doc.save(ignore_permissions=True)

	def get_series(self, series_id: str) -> Optional[RecurrenceSeries]:
		if not frappe.db.exists("Recurrence Series", {"name": series_id, "organization": self.organization}):
			return None
		doc = frappe.get_doc("Recurrence Series", series_id)
		members = self.series_members(series_id)
		return RecurrenceSeries(
			id=doc.name,
			tenant_id=doc.organization,
			pattern=pattern_from_doc(doc),
			anchor=ensure_aware(get_datetime(doc.anchor_datetime), self.tz),
			professional_id=doc.professional,
			service_ids=tuple(row.service for row in doc.services),
			start_time=to_time(doc.start_time),
			appointment_ids=tuple(m.id for m in members),
		)

	def series_members(self, series_id: str) -> List[Appointment]:
		return _load_appointments({"recurrence_series": series_id}, self.tz)


class FrappePointerStore:
	"""
	PointerStore sobre el DocType Round Robin Pointer (name = clave).

	locked() toma un lock de fila con SELECT ... FOR UPDATE que se libera al
	terminar la transacción del request.
	"""

	doctype = "Round Robin Pointer"

	def _ensure(self, key: str) -> None:
		if frappe.db.exists(self.doctype, key):
			return
		try:
			frappe.get_doc({
				"doctype": self.doctype,
				"pointer_key": key,
				"last_index": -1,
			}).insert(ignore_permissions=True)
		except frappe.DuplicateEntryError:
			# Otro request la creó primero
			pass

	@contextmanager
	def locked(self, key: str) -> Iterator[None]:
		self._ensure(key)
		frappe.db.get_value(self.doctype, key, "name", for_update=True)
		yield

	def get(self, key: str) -> PointerState:
		row = frappe.db.get_value(self.doctype, key, ["last_index", "last_professional"], as_dict=True)
		if not row:
			return PointerState()
		return PointerState(cint(row.last_index), row.last_professional or None)

	def set(self, key: str, state: PointerState) -> None:
		frappe.db.set_value(self.doctype, key, {
			"last_index": state.last_index,
			"last_professional": state.last_professional_id,
		})
		logger.info(f"Round-robin pointer {key} -> {state.last_professional_id} (index {state.last_index})")
