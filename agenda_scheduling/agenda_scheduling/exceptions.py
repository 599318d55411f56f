"""
Frappe-side errors for the scheduling engine.

The engine returns EngineError values; whitelisted endpoints and DocType
controllers turn them into frappe.throw() calls with one of these classes so
HTTP callers get a structured exception type.
"""

import frappe
from frappe import _

from agenda_scheduling.agenda_scheduling.scheduling.errors import EngineError, ErrorCode, MalformedScheduleData


class SlotConflictError(frappe.ValidationError):
	pass


class NoProfessionalAvailableError(frappe.ValidationError):
	pass


class RecurrenceUnsatisfiableError(frappe.ValidationError):
	pass


class CapacityExceededError(frappe.ValidationError):
	pass


ERROR_CLASSES = {
	ErrorCode.VALIDATION_ERROR: frappe.ValidationError,
	ErrorCode.SLOT_CONFLICT: SlotConflictError,
	ErrorCode.NO_PROFESSIONAL_AVAILABLE: NoProfessionalAvailableError,
	ErrorCode.RECURRENCE_UNSATISFIABLE: RecurrenceUnsatisfiableError,
	ErrorCode.CAPACITY_EXCEEDED: CapacityExceededError,
}


def throw_engine_error(error: EngineError) -> None:
	"""
	Lanza el error del engine como excepción de Frappe.

	Las fechas en conflicto (si las hay) se agregan al mensaje para que el
	caller pueda mostrarlas sin parsear detalles.
	"""
	message = _(error.message)
	dates = error.details.get("conflicting_dates")
	if dates:
		message = f"{message}: {', '.join(dates)}"

	frappe.local.response["engine_error"] = error.as_dict()
	frappe.throw(message, ERROR_CLASSES[error.code], title=error.code.value)


def unwrap(outcome):
	"""Devuelve outcome.value o lanza el error de Frappe correspondiente."""
	if not outcome.ok:
		throw_engine_error(outcome.error)
	return outcome.value


def throw_malformed(error: MalformedScheduleData, context: str) -> None:
	frappe.log_error(title=_("Agenda data error"), message=f"{context}: {error}")
	frappe.throw(_("Los datos de agenda están corruptos: {0}").format(str(error)))
