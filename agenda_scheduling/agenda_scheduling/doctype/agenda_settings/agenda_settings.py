# Copyright (c) 2026, Sebastian Ortiz Valencia and contributors
# For license information, please see license.txt

import frappe
from frappe import _
from frappe.model.document import Document

from agenda_scheduling.agenda_scheduling.scheduling.calendar import get_timezone
from agenda_scheduling.agenda_scheduling.scheduling.errors import MalformedScheduleData
from agenda_scheduling.agenda_scheduling.scheduling.slots import GRID_STEPS


class AgendaSettings(Document):
	def validate(self) -> None:
		try:
			get_timezone(self.timezone)
		except MalformedScheduleData:
			frappe.throw(_(f"Zona horaria desconocida: {self.timezone}"))

		if self.default_grid_step and int(self.default_grid_step) not in GRID_STEPS:
			frappe.throw(_(f"Default Grid Step debe ser uno de {GRID_STEPS}"))
