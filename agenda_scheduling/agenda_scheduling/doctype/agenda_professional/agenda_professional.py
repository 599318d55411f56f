# Copyright (c) 2026, Sebastian Ortiz Valencia and contributors
# For license information, please see license.txt

"""
Agenda Professional DocType

Profesional que atiende citas y los servicios que realiza (con orden de
rotación y duración personalizada por servicio).
"""

import frappe
from frappe import _
from frappe.model.document import Document


class AgendaProfessional(Document):
	def validate(self) -> None:
		if not self.organization:
			frappe.throw(_("Organization es requerida"))

		seen = set()
		for idx, row in enumerate(self.services, 1):
			if row.service in seen:
				frappe.throw(_(f"Fila {idx}: el servicio {row.service} está repetido"))
			seen.add(row.service)

			if row.rotation_order is not None and row.rotation_order < 0:
				frappe.throw(_(f"Fila {idx}: Rotation Order no puede ser negativo"))

			if row.custom_duration_minutes and not 10 <= row.custom_duration_minutes <= 480:
				frappe.throw(_(f"Fila {idx}: la duración personalizada debe estar entre 10 y 480 minutos"))
