# Copyright (c) 2026, Sebastian Ortiz Valencia and contributors
# For license information, please see license.txt

"""
Appointment DocType

Cita de un cliente con un profesional para uno o varios servicios.
"""

import frappe
from frappe import _
from frappe.model.document import Document
from frappe.utils import get_datetime

from agenda_scheduling.agenda_scheduling.exceptions import throw_engine_error
from agenda_scheduling.agenda_scheduling.repository import load_snapshot
from agenda_scheduling.agenda_scheduling.scheduling.calendar import ensure_aware
from agenda_scheduling.agenda_scheduling.scheduling.models import AppointmentStatus
from agenda_scheduling.agenda_scheduling.scheduling.overlap import can_transition, is_terminal
from agenda_scheduling.agenda_scheduling.scheduling.slots import SlotCalculator


class Appointment(Document):
	"""
	Appointment DocType with scheduling validation.

	Validations:
	- organization, professional and at least one service required
	- start_datetime < end_datetime
	- status changes follow the appointment lifecycle
	- active appointments must fit working hours and not collide with
	  other appointments or blocking periods of the same professional
	"""

	def validate(self) -> None:
		"""
		Validación antes de guardar.
		"""
		self._validate_required_fields()
		self._validate_datetime_consistency()
		self._validate_status_transition()
		self._validate_conflicts()

	def after_insert(self) -> None:
		if not self.code:
			self.db_set("code", self.name, update_modified=False)

	# ===== VALIDATION METHODS =====

	def _validate_required_fields(self) -> None:
		"""Valida campos requeridos."""
		if not self.organization:
			frappe.throw(_("Organization es requerida"))

		if not self.professional:
			frappe.throw(_("Professional es requerido"))

		if not self.services:
			frappe.throw(_("Debe agregar al menos un servicio"))

		if not self.status:
			self.status = AppointmentStatus.PROGRAMADA.value

	def _validate_datetime_consistency(self) -> None:
		"""Valida que start_datetime < end_datetime."""
		if not self.start_datetime or not self.end_datetime:
			frappe.throw(_("Start DateTime y End DateTime son requeridos"))

		if get_datetime(self.start_datetime) >= get_datetime(self.end_datetime):
			frappe.throw(_("Start DateTime debe ser menor que End DateTime"))

	def _validate_status_transition(self) -> None:
		"""
		Valida el cambio de estado contra el ciclo de vida:
		programada -> confirmada -> en_sala -> en_servicio -> completada,
		cancelada / no_show desde cualquier estado no terminal.
		"""
		try:
			target = AppointmentStatus(self.status)
		except ValueError:
			frappe.throw(_(f"Estado inválido: {self.status}"))

		if self.is_new():
			return

		before = self.get_doc_before_save()
		if not before or before.status == self.status:
			return

		current = AppointmentStatus(before.status)
		if not can_transition(current, target):
			frappe.throw(_(f"No se puede pasar de '{current.value}' a '{target.value}'"))

	def _schedule_changed(self) -> bool:
		if self.is_new():
			return True
		before = self.get_doc_before_save()
		if not before:
			return True
		return (
			before.professional != self.professional
			or get_datetime(before.start_datetime) != get_datetime(self.start_datetime)
			or get_datetime(before.end_datetime) != get_datetime(self.end_datetime)
		)

	def _validate_conflicts(self) -> None:
		"""
		Valida horario laboral, citas y bloqueos del profesional.

		Las citas canceladas / no_show / completadas no se revalidan; el
		resto sólo si cambió profesional u horario.
		"""
		if is_terminal(AppointmentStatus(self.status)) or not self._schedule_changed():
			return

		start = get_datetime(self.start_datetime)
		snapshot = load_snapshot(self.organization, start.date(), 2)
		calculator = SlotCalculator(snapshot, exclude_appointment_id=None if self.is_new() else self.name)

		professional = snapshot.professional(self.professional)
		if professional is None:
			frappe.throw(_(f"Profesional {self.professional} no encontrado o inactivo"))

		candidate = {
			"start": ensure_aware(start, calculator.tz),
			"end": ensure_aware(get_datetime(self.end_datetime), calculator.tz),
		}
		checked = calculator.check_interval(professional, candidate)
		if not checked.ok:
			throw_engine_error(checked.error)
