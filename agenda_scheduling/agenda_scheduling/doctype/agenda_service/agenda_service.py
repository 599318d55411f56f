# Copyright (c) 2026, Sebastian Ortiz Valencia and contributors
# For license information, please see license.txt

"""
Agenda Service DocType

Servicio reservable: duración y buffers antes / después en minutos.
"""

import frappe
from frappe import _
from frappe.model.document import Document


class AgendaService(Document):
	def validate(self) -> None:
		if not self.service_name:
			frappe.throw(_("Service Name es requerido"))

		if not self.duration_minutes or not 10 <= self.duration_minutes <= 480:
			frappe.throw(_("Duration debe estar entre 10 y 480 minutos"))

		for field in ("buffer_before_minutes", "buffer_after_minutes"):
			if (self.get(field) or 0) < 0:
				frappe.throw(_(f"{self.meta.get_label(field)} no puede ser negativo"))
