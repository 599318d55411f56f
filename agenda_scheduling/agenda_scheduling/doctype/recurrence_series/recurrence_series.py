# Copyright (c) 2026, Sebastian Ortiz Valencia and contributors
# For license information, please see license.txt

"""
Recurrence Series DocType

Patrón de recurrencia y ancla de una serie de citas. Las citas miembro
apuntan a la serie con el campo recurrence_series.
"""

import frappe
from frappe import _
from frappe.model.document import Document
from frappe.utils import getdate

from agenda_scheduling.agenda_scheduling.repository import pattern_from_doc
from agenda_scheduling.agenda_scheduling.scheduling.recurrence import validate_pattern


class RecurrenceSeries(Document):
	"""
	Recurrence Series with validations.

	Validations:
	- professional and anchor required
	- ends_on = cantidad needs occurrence_count, ends_on = fecha needs end_date
	- pattern limits (intervalo 1-12, cantidad 1-52, fecha_fin <= 365 días)
	"""

	def validate(self) -> None:
		"""
		Validación antes de guardar.
		"""
		if not self.professional:
			frappe.throw(_("Professional es requerido"))

		if not self.anchor_datetime:
			frappe.throw(_("Anchor DateTime es requerido"))

		if self.ends_on == "cantidad":
			self.end_date = None
		elif self.ends_on == "fecha":
			if not self.end_date:
				frappe.throw(_("End Date es requerida cuando la serie termina en fecha"))
			self.occurrence_count = None
		else:
			frappe.throw(_("Ends On debe ser 'cantidad' o 'fecha'"))

		try:
			pattern = pattern_from_doc(self)
		except ValueError as e:
			frappe.throw(_(f"Patrón de recurrencia inválido: {e}"))

		checked = validate_pattern(getdate(self.anchor_datetime), pattern)
		if not checked.ok:
			frappe.throw(_(checked.error.message))
