"""
Service wiring for the Frappe side: builds the BookingService with the
Frappe adapters and bridges the app hooks declared in hooks.py.
"""

from datetime import date, datetime
from functools import partial
from typing import List

import frappe
from frappe import _

from agenda_scheduling.agenda_scheduling.repository import (
	FrappeAppointmentRepository, FrappePointerStore, get_settings
)
from agenda_scheduling.agenda_scheduling.scheduling.booking import BookingService
from agenda_scheduling.agenda_scheduling.scheduling.calendar import get_timezone
from agenda_scheduling.agenda_scheduling.scheduling.round_robin import RoundRobinAssigner

logger = frappe.logger("agenda_scheduling")


def capacity_allows(organization: str, count: int) -> bool:
	"""
	Consulta cada hook `agenda_capacity_check`; basta con que uno rechace
	para que la reserva se rechace con CAPACITY_EXCEEDED.
	"""
	for method in frappe.get_hooks("agenda_capacity_check"):
		if not frappe.get_attr(method)(organization=organization, count=count):
			logger.info(f"Capacity check {method} rejected {count} appointment(s) for {organization}")
			return False
	return True


def _run_booked_hooks(appointment_names: List[str]) -> None:
	for method in frappe.get_hooks("agenda_appointments_booked"):
		try:
			frappe.get_attr(method)(appointment_names=appointment_names)
		except Exception:
			# La entrega de notificaciones nunca revierte una reserva ya escrita
			frappe.log_error(
				title=_("Agenda booked hook failed"),
				message=f"Hook: {method}\nAppointments: {appointment_names}\n\n{frappe.get_traceback()}"
			)


def notify_booked(appointment_names: List[str]) -> None:
	"""Llama a los hooks `agenda_appointments_booked` después del commit."""
	if not appointment_names:
		return
	frappe.db.after_commit.add(partial(_run_booked_hooks, list(appointment_names)))


def get_booking_service(organization: str) -> BookingService:
	tz = get_timezone(get_settings()["timezone"])
	return BookingService(
		FrappeAppointmentRepository(organization, tz),
		RoundRobinAssigner(FrappePointerStore()),
		capacity_check=capacity_allows,
	)


def local_today() -> date:
	"""Fecha de hoy en la zona horaria configurada (para 'hoy' / 'mañana')."""
	tz = get_timezone(get_settings()["timezone"])
	return datetime.now(tz).date()
