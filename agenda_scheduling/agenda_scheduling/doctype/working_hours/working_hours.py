# Copyright (c) 2026, Sebastian Ortiz Valencia and contributors
# For license information, please see license.txt

"""
Working Hours DocType

Regla de horario de un profesional: semanal (un día de la semana) o
excepción de fecha. Varias franjas por regla (turnos partidos).
"""

import frappe
from frappe import _
from frappe.model.document import Document
from frappe.utils import getdate

from agenda_scheduling.agenda_scheduling.scheduling.calendar import to_time
from agenda_scheduling.agenda_scheduling.scheduling.working_hours import ShiftKind

WEEKDAY_LABELS = ["Domingo", "Lunes", "Martes", "Miércoles", "Jueves", "Viernes", "Sábado"]


class WorkingHours(Document):
	"""
	Working Hours with validation for intervals.

	Validations:
	- professional required
	- Weekly rules need weekday (0 = domingo ... 6 = sábado)
	- Date exceptions need exception_date (no intervals = día cerrado)
	- valid_from <= valid_to (if both present)
	- Each interval: start_time < end_time
	- No overlapping intervals
	"""

	def validate(self) -> None:
		"""
		Validación antes de guardar.
		"""
		self._validate_rule_type()
		self._validate_validity_dates()
		self._validate_intervals_times()
		self._validate_no_overlapping_intervals()
		self._sort_intervals()

	def _validate_rule_type(self) -> None:
		if not self.professional:
			frappe.throw(_("Professional es requerido"))

		try:
			ShiftKind(self.shift_kind or ShiftKind.REGULAR.value)
		except ValueError:
			frappe.throw(_(f"Shift Kind inválido: {self.shift_kind}"))

		if self.rule_type == "Date Exception":
			if not self.exception_date:
				frappe.throw(_("Exception Date es requerida para excepciones de fecha"))
			return

		if self.weekday is None or not 0 <= int(self.weekday) <= 6:
			frappe.throw(_("Weekday debe estar entre 0 (Domingo) y 6 (Sábado)"))

		if not self.intervals:
			frappe.throw(_("Debe agregar al menos un intervalo"))

	def _validate_validity_dates(self) -> None:
		"""Valida que valid_from <= valid_to si ambos están presentes."""
		if self.valid_from and self.valid_to:
			if getdate(self.valid_from) > getdate(self.valid_to):
				frappe.throw(_("Valid From debe ser menor o igual que Valid To"))

	def _label(self) -> str:
		if self.rule_type == "Date Exception":
			return str(self.exception_date)
		return WEEKDAY_LABELS[int(self.weekday)]

	def _validate_intervals_times(self) -> None:
		"""Valida que cada intervalo tenga start_time < end_time."""
		for idx, row in enumerate(self.intervals, 1):
			if not row.start_time:
				frappe.throw(_(f"Fila {idx}: Start Time es requerido"))

			if not row.end_time:
				frappe.throw(_(f"Fila {idx}: End Time es requerido"))

			start = to_time(row.start_time)
			end = to_time(row.end_time)

			if start >= end:
				frappe.throw(
					_(f"Fila {idx} ({self._label()}): Start Time ({start.strftime('%H:%M')}) debe ser menor que End Time ({end.strftime('%H:%M')})")
				)

	def _validate_no_overlapping_intervals(self) -> None:
		"""
		Valida que no haya intervalos solapados.

		Dos intervalos se solapan si: a.start < b.end AND b.start < a.end
		"""
		spans = sorted(
			(to_time(row.start_time), to_time(row.end_time), idx)
			for idx, row in enumerate(self.intervals, 1)
		)
		for (start, end, idx), (next_start, next_end, next_idx) in zip(spans, spans[1:]):
			if end > next_start:
				frappe.throw(
					_(f"{self._label()}: Intervalos solapados - Fila {idx} ({start.strftime('%H:%M')}-{end.strftime('%H:%M')}) "
					  f"se solapa con Fila {next_idx} ({next_start.strftime('%H:%M')}-{next_end.strftime('%H:%M')})")
				)

	def _sort_intervals(self) -> None:
		"""Guarda los intervalos ordenados por hora de inicio."""
		self.intervals.sort(key=lambda row: to_time(row.start_time))
		for idx, row in enumerate(self.intervals, 1):
			row.idx = idx
