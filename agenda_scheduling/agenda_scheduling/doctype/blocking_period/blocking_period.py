# Copyright (c) 2026, Sebastian Ortiz Valencia and contributors
# For license information, please see license.txt

"""
Blocking Period DocType

Periodo en el que un profesional (o toda la organización si no se indica
profesional) no atiende: vacaciones, feriados, mantenimiento...
"""

import frappe
from frappe import _
from frappe.model.document import Document
from frappe.utils import get_datetime, getdate

from agenda_scheduling.agenda_scheduling.repository import load_snapshot
from agenda_scheduling.agenda_scheduling.scheduling.blocks import BLOCK_TYPE_LABELS, Block, BlockType
from agenda_scheduling.agenda_scheduling.scheduling.calendar import ensure_aware, get_timezone, to_time
from agenda_scheduling.agenda_scheduling.scheduling.overlap import affected_appointments

# Citas afectadas que se listan en el aviso
MAX_LISTED = 10


class BlockingPeriod(Document):
	"""
	Blocking Period with validations.

	Validations:
	- organization, block_type, start_datetime, end_datetime required
	- start_datetime < end_datetime
	- daily window: both times or none, start < end
	- Warn (without blocking) about active appointments that collide
	"""

	def validate(self) -> None:
		"""
		Validación antes de guardar.
		"""
		self._validate_required_fields()
		self._validate_range()
		self._validate_daily_window()
		self._warn_affected_appointments()

	def _validate_required_fields(self) -> None:
		"""Valida campos requeridos."""
		if not self.organization:
			frappe.throw(_("Organization es requerida"))

		if not self.block_type:
			frappe.throw(_("Block Type es requerido"))

		try:
			BlockType(self.block_type)
		except ValueError:
			valid = ", ".join(t.value for t in BLOCK_TYPE_LABELS)
			frappe.throw(_(f"Block Type inválido: {self.block_type}. Use uno de: {valid}"))

		if not self.start_datetime or not self.end_datetime:
			frappe.throw(_("Start DateTime y End DateTime son requeridos"))

	def _validate_range(self) -> None:
		"""Valida que start_datetime < end_datetime."""
		if get_datetime(self.start_datetime) >= get_datetime(self.end_datetime):
			frappe.throw(_("Start DateTime debe ser menor que End DateTime"))

	def _validate_daily_window(self) -> None:
		"""
		La franja diaria es opcional, pero si se indica debe tener inicio y
		fin, con inicio < fin.
		"""
		if not self.daily_start_time and not self.daily_end_time:
			return

		if not self.daily_start_time or not self.daily_end_time:
			frappe.throw(_("La franja diaria requiere Daily Start Time y Daily End Time"))

		start = to_time(self.daily_start_time)
		end = to_time(self.daily_end_time)
		if start >= end:
			frappe.throw(
				_(f"Daily Start Time ({start.strftime('%H:%M')}) debe ser menor que Daily End Time ({end.strftime('%H:%M')})")
			)

	def _warn_affected_appointments(self) -> None:
		"""
		Advierte qué citas activas quedan dentro del bloqueo.
		No bloquea: el staff decide si reagendar o cancelar.
		"""
		if not self.active:
			return

		start = get_datetime(self.start_datetime)
		end = get_datetime(self.end_datetime)
		days = (getdate(end) - getdate(start)).days + 1
		snapshot = load_snapshot(self.organization, getdate(start), days)
		tz = get_timezone(snapshot.timezone)

		block = Block(
			id=self.name or "new",
			block_type=BlockType(self.block_type),
			start=ensure_aware(start, tz),
			end=ensure_aware(end, tz),
			professional_id=self.professional or None,
			title=self.title or "",
			daily_window=(
				(to_time(self.daily_start_time), to_time(self.daily_end_time))
				if self.daily_start_time else None
			),
		)
		affected = affected_appointments(block, snapshot.appointments, tz)
		if not affected:
			return

		listed = ", ".join(
			f"{a.code} ({a.start.strftime('%Y-%m-%d %H:%M')})" for a in affected[:MAX_LISTED]
		)
		more = len(affected) - MAX_LISTED
		frappe.msgprint(
			_(f"Este bloqueo afecta {len(affected)} cita(s) activa(s): {listed}")
			+ (_(f" y {more} más") if more > 0 else ""),
			indicator="orange",
			alert=True
		)
