"""
Builders shared by the engine tests.

All fixtures live in America/Mexico_City. 2026-01-19 is a Monday
(payload weekday 1).
"""

from datetime import date, datetime
from typing import Iterable, Optional, Sequence

from agenda_scheduling.agenda_scheduling.scheduling.calendar import get_timezone, localize, to_time
from agenda_scheduling.agenda_scheduling.scheduling.models import (
	Appointment, AppointmentStatus, Capability, Professional, Service, Snapshot
)
from agenda_scheduling.agenda_scheduling.scheduling.working_hours import ShiftKind, WorkingHoursRule

TZ_NAME = "America/Mexico_City"
TZ = get_timezone(TZ_NAME)

MONDAY = date(2026, 1, 19)
TUESDAY = date(2026, 1, 20)
SUNDAY = date(2026, 1, 18)

WEEKDAYS = (1, 2, 3, 4, 5)

CORTE = Service("SRV-CORTE", 30, name="Corte")
TINTE = Service("SRV-TINTE", 45, name="Tinte")


def at(day: date, hhmm: str) -> datetime:
	return localize(day, hhmm, TZ)


def weekly_rules(
	professional_id: str,
	weekdays: Iterable[int] = WEEKDAYS,
	start: str = "09:00",
	end: str = "17:00",
	kind: ShiftKind = ShiftKind.REGULAR
):
	return [
		WorkingHoursRule(professional_id, ((to_time(start), to_time(end)),), weekday=wd, kind=kind)
		for wd in weekdays
	]


def professional(
	professional_id: str,
	service_ids: Sequence[str] = ("SRV-CORTE",),
	rotation_order: int = 0,
	in_rotation: bool = True,
	custom_duration: Optional[int] = None
) -> Professional:
	return Professional(
		professional_id,
		name=professional_id,
		capabilities=tuple(
			Capability(sid, rotation_order, custom_duration, in_rotation) for sid in service_ids
		),
	)


def appointment(
	appointment_id: str,
	professional_id: str,
	day: date,
	start: str,
	end: str,
	status: AppointmentStatus = AppointmentStatus.PROGRAMADA,
	service_ids: Sequence[str] = ("SRV-CORTE",),
	client_name: str = "Ana"
) -> Appointment:
	return Appointment(
		appointment_id,
		professional_id,
		tuple(service_ids),
		at(day, start),
		at(day, end),
		status=status,
		code=appointment_id,
		client_name=client_name,
	)


def snapshot(
	professionals: Optional[Sequence[Professional]] = None,
	services: Optional[Sequence[Service]] = None,
	working_hours=None,
	blocks=(),
	appointments=()
) -> Snapshot:
	"""Un profesional P-ANA, lunes a viernes 09:00-17:00, si no se indica otra cosa."""
	professionals = list(professionals) if professionals is not None else [professional("P-ANA")]
	if working_hours is None:
		working_hours = []
		for prof in professionals:
			working_hours.extend(weekly_rules(prof.id))
	return Snapshot(
		organization_id="ORG-TEST",
		timezone=TZ_NAME,
		professionals=professionals,
		services={s.id: s for s in (services or [CORTE, TINTE])},
		working_hours=list(working_hours),
		blocks=list(blocks),
		appointments=list(appointments),
	)
