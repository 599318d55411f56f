"""
Appointment API Endpoints

Whitelisted write operations. Booking endpoints allow guest access with
rate limiting; reschedule, cancellation and status changes require a
logged-in user.

Every successful booking calls the `agenda_appointments_booked` hooks after
the transaction commits.
"""

import frappe
from frappe import _
from typing import Any, Dict, List

from agenda_scheduling.agenda_scheduling.exceptions import throw_malformed, unwrap
from agenda_scheduling.agenda_scheduling.repository import get_settings, load_snapshot
from agenda_scheduling.agenda_scheduling.scheduling.booking import CancelScope
from agenda_scheduling.agenda_scheduling.scheduling.calendar import get_timezone
from agenda_scheduling.agenda_scheduling.scheduling.errors import MalformedScheduleData
from agenda_scheduling.agenda_scheduling.scheduling.models import Appointment, AppointmentStatus
from agenda_scheduling.agenda_scheduling.scheduling.recurrence import expand_dates, snapshot_window
from agenda_scheduling.agenda_scheduling.scheduling.requests import (
	parse_booking_request, parse_series_request
)
from agenda_scheduling.agenda_scheduling.services import get_booking_service, local_today, notify_booked
from agenda_scheduling.api.shared import (
	check_guest_rate_limit,
	resolve_organization,
	sanitize_string,
	validate_docname,
	validate_docname_list,
	validate_optional_docname,
)

logger = frappe.logger("agenda_scheduling")


def _appointment_dict(appt: Appointment) -> Dict[str, Any]:
	return {
		"name": appt.id,
		"code": appt.code,
		"professional_id": appt.professional_id,
		"service_ids": list(appt.service_ids),
		"date": appt.start.date().isoformat(),
		"start": appt.start.strftime("%H:%M"),
		"end": appt.end.strftime("%H:%M"),
		"status": appt.status.value,
		"recurrence_series": appt.series_id,
	}


def _booking_payload(kwargs: Dict[str, Any]) -> Dict[str, Any]:
	payload = dict(kwargs)
	payload.pop("cmd", None)
	if payload.get("cliente_nombre"):
		payload["cliente_nombre"] = sanitize_string(payload["cliente_nombre"], max_length=140)
	if payload.get("cliente_id"):
		payload["cliente_id"] = validate_docname(payload["cliente_id"], "cliente_id")
	if payload.get("profesional_id"):
		payload["profesional_id"] = validate_docname(payload["profesional_id"], "profesional_id")
	if payload.get("servicios_ids"):
		payload["servicios_ids"] = validate_docname_list(payload["servicios_ids"], "servicios_ids")
	return payload


def _require_round_robin(payload: Dict[str, Any]) -> None:
	if not payload.get("profesional_id") and not get_settings()["round_robin_enabled"]:
		frappe.throw(
			_("profesional_id es requerido: la asignación automática está deshabilitada"),
			frappe.ValidationError
		)


@frappe.whitelist(allow_guest=True, methods=['POST'])
def create_appointment(organizacion_id: str = None, **kwargs) -> Dict[str, Any]:
	"""
	Crea una cita individual.

	Sin profesional_id se asigna por round-robin entre los profesionales
	calificados y libres a esa hora. La disponibilidad se revalida al
	escribir: si el horario se ocupó entre la consulta y la reserva se
	responde SlotConflictError y el caller debe volver a consultar.

	Rate limited (guest): 10 requests per minute per IP.

	Args:
		fecha, hora, servicio_id | servicios_ids, profesional_id, duracion,
		cliente_id, cliente_nombre

	Returns:
		dict: cita creada {"name", "code", "professional_id", "date", "start", "end", "status", ...}
	"""
	check_guest_rate_limit("create_appointment", limit=10, seconds=60)
	organization = resolve_organization(organizacion_id)
	payload = _booking_payload(kwargs)
	_require_round_robin(payload)

	tz = get_timezone(get_settings()["timezone"])
	request = unwrap(parse_booking_request(payload, organization, local_today(), tz))

	try:
		snapshot = load_snapshot(organization, request.start.date(), 2)
		appointment = unwrap(get_booking_service(organization).create_appointment(snapshot, request))
	except MalformedScheduleData as e:
		throw_malformed(e, f"create_appointment {organization}")

	notify_booked([appointment.id])
	logger.info(f"Appointment {appointment.id} booked for {appointment.professional_id} ({organization})")
	return _appointment_dict(appointment)


@frappe.whitelist(allow_guest=True, methods=['POST'])
def create_series(organizacion_id: str = None, **kwargs) -> Dict[str, Any]:
	"""
	Crea una serie recurrente completa o nada.

	Todas las ocurrencias se validan antes de escribir; si alguna fecha no
	está disponible se responde RecurrenceUnsatisfiableError con las fechas
	en conflicto y no se crea ninguna cita.

	Rate limited (guest): 5 requests per minute per IP.

	Args:
		fecha, hora, servicio_id | servicios_ids, profesional_id, duracion,
		cliente_id, cliente_nombre, y el patrón (frecuencia, dias_semana,
		intervalo, termina_en, cantidad_citas | fecha_fin) en el payload o
		bajo la clave "recurrencia"

	Returns:
		dict: {"series": "SERIE-0001", "appointments": [...]}
	"""
	check_guest_rate_limit("create_series", limit=5, seconds=60)
	organization = resolve_organization(organizacion_id)
	payload = _booking_payload(kwargs)
	if isinstance(payload.get("recurrencia"), str):
		payload["recurrencia"] = frappe.parse_json(payload["recurrencia"])
	_require_round_robin(payload)

	request = unwrap(parse_series_request(payload, organization, local_today()))
	first_day, span = snapshot_window(request.anchor, expand_dates(request.anchor, request.pattern))

	try:
		snapshot = load_snapshot(organization, first_day, span)
		booking = unwrap(get_booking_service(organization).create_series(snapshot, request))
	except MalformedScheduleData as e:
		throw_malformed(e, f"create_series {organization}")

	names = [a.id for a in booking.appointments]
	notify_booked(names)
	logger.info(f"Series {booking.series.id} booked with {len(names)} appointment(s) ({organization})")
	return {
		"series": booking.series.id,
		"professional_id": booking.series.professional_id,
		"pattern": booking.series.pattern.as_dict(),
		"appointments": [_appointment_dict(a) for a in booking.appointments],
	}


@frappe.whitelist(methods=['POST'])
def reschedule_appointment(appointment_name: str, fecha: str, hora: str, duracion: int = None) -> Dict[str, Any]:
	"""
	Mueve una cita a otra fecha/hora con el mismo profesional.

	La cita se excluye de la detección de conflictos, así que puede
	moverse a un horario que se solapa con su horario actual.
	"""
	appointment_name = validate_docname(appointment_name, "appointment_name")
	organization = resolve_organization()
	tz = get_timezone(get_settings()["timezone"])

	service = get_booking_service(organization)
	current = service.repository.get(appointment_name)
	if current is None:
		frappe.throw(_(f"Cita {appointment_name} no encontrada"), frappe.DoesNotExistError)

	request = unwrap(parse_booking_request(
		{
			"fecha": fecha,
			"hora": hora,
			"duracion": duracion,
			"servicios_ids": list(current.service_ids),
			"profesional_id": current.professional_id,
		},
		organization, local_today(), tz
	))

	try:
		snapshot = load_snapshot(organization, request.start.date(), 2)
		moved = unwrap(service.reschedule(snapshot, appointment_name, request.start, request.duration_override))
	except MalformedScheduleData as e:
		throw_malformed(e, f"reschedule_appointment {appointment_name}")

	logger.info(f"Appointment {appointment_name} rescheduled to {moved.start.isoformat()}")
	return _appointment_dict(moved)


@frappe.whitelist(methods=['POST'])
def cancel_appointment(appointment_name: str) -> Dict[str, Any]:
	"""Cancela una cita. Cancelar una cita ya terminal no hace nada."""
	appointment_name = validate_docname(appointment_name, "appointment_name")
	organization = resolve_organization()

	cancelled = unwrap(get_booking_service(organization).cancel_appointment(appointment_name))
	return _appointment_dict(cancelled)


@frappe.whitelist(methods=['POST'])
def update_appointment_status(appointment_name: str, status: str) -> Dict[str, Any]:
	"""
	Cambia el estado de una cita siguiendo el ciclo de vida
	programada -> confirmada -> en_sala -> en_servicio -> completada.
	"""
	appointment_name = validate_docname(appointment_name, "appointment_name")
	organization = resolve_organization()

	try:
		target = AppointmentStatus(status)
	except ValueError:
		frappe.throw(_(f"Estado inválido: {status}"), frappe.ValidationError)

	updated = unwrap(get_booking_service(organization).transition_status(appointment_name, target))
	return _appointment_dict(updated)


@frappe.whitelist(methods=['POST'])
def cancel_series(series_name: str, scope: str = "all", appointment_name: str = None) -> Dict[str, Any]:
	"""
	Cancela citas de una serie.

	Args:
		series_name: Recurrence Series
		scope: this | this_and_following | all
		appointment_name: cita de referencia para this / this_and_following

	Returns:
		dict: {"series": ..., "cancelled": [names]}
	"""
	series_name = validate_docname(series_name, "series_name")
	appointment_name = validate_optional_docname(appointment_name, "appointment_name")
	organization = resolve_organization()

	try:
		cancel_scope = CancelScope(scope)
	except ValueError:
		frappe.throw(_(f"scope inválido: {scope}"), frappe.ValidationError)

	cancelled = unwrap(
		get_booking_service(organization).cancel_series(series_name, cancel_scope, appointment_name)
	)
	logger.info(f"Series {series_name}: {len(cancelled)} appointment(s) cancelled ({cancel_scope.value})")
	return {"series": series_name, "cancelled": [a.id for a in cancelled]}


@frappe.whitelist(methods=['GET'])
def get_series(series_name: str) -> Dict[str, Any]:
	"""Detalle de una serie con sus citas en orden cronológico."""
	series_name = validate_docname(series_name, "series_name")
	organization = resolve_organization()

	repository = get_booking_service(organization).repository
	series = repository.get_series(series_name)
	if series is None:
		frappe.throw(_(f"Serie {series_name} no encontrada"), frappe.DoesNotExistError)

	members: List[Appointment] = repository.series_members(series_name)
	return {
		"series": series.id,
		"professional_id": series.professional_id,
		"pattern": series.pattern.as_dict(),
		"appointments": [_appointment_dict(a) for a in members],
	}
