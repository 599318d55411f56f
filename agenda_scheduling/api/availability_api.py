"""
Availability API Endpoints

Whitelisted, read-only functions. Guest callers must send organizacion_id
and are rate limited by IP.
"""

import frappe
from typing import Any, Dict

from agenda_scheduling.agenda_scheduling.exceptions import throw_malformed, unwrap
from agenda_scheduling.agenda_scheduling.repository import get_settings, load_snapshot
from agenda_scheduling.agenda_scheduling.scheduling.errors import MalformedScheduleData
from agenda_scheduling.agenda_scheduling.scheduling.recurrence import expand_dates, preview_series, snapshot_window
from agenda_scheduling.agenda_scheduling.scheduling.requests import (
	parse_availability_request, parse_series_request
)
from agenda_scheduling.agenda_scheduling.scheduling.slots import (
	SlotCalculator, generate_available_slots, group_slots_by_day
)
from agenda_scheduling.agenda_scheduling.services import local_today
from agenda_scheduling.api.shared import check_guest_rate_limit, resolve_organization, validate_docname_list

logger = frappe.logger("agenda_scheduling")


def _payload(kwargs: Dict[str, Any]) -> Dict[str, Any]:
	payload = dict(kwargs)
	payload.pop("cmd", None)
	if payload.get("servicios_ids"):
		payload["servicios_ids"] = validate_docname_list(payload["servicios_ids"], "servicios_ids")
	return payload


@frappe.whitelist(allow_guest=True, methods=['GET'])
def get_availability(organizacion_id: str = None, **kwargs) -> Dict[str, Any]:
	"""
	Obtiene slots para uno o varios servicios en un día o rango de días.

	Rate limited (guest): 30 requests per minute per IP.

	Args:
		organizacion_id: requerido para callers no autenticados
		fecha: YYYY-MM-DD, "hoy" o "mañana"
		servicio_id | servicios_ids: uno o hasta 10 servicios consecutivos
		profesional_id: opcional; sin él se consulta todo el pool calificado
		hora: HH:MM, sólo el slot que empieza a esa hora
		duracion: 10-480 minutos, reemplaza la duración de los servicios
		rango_dias: 1-90 (default 1)
		intervalo_minutos: 15, 30 o 60 (default Agenda Settings)
		solo_disponibles: default true
		excluir_cita_id: cita a ignorar (reagendamiento)
		nivel_detalle: basico | completo | admin

	Returns:
		dict: {
			"organization": "ORG-1",
			"slots": [
				{"professional_id": "P-1", "date": "2026-01-19", "start": "09:00",
				 "end": "09:30", "available": True},
				...
			],
			"by_day": [...],
			"total_available": 16
		}
	"""
	check_guest_rate_limit("get_availability", limit=30, seconds=60)
	organization = resolve_organization(organizacion_id)

	payload = _payload(kwargs)
	payload.setdefault("intervalo_minutos", get_settings()["default_grid_step"])
	if frappe.session.user == "Guest" and payload.get("nivel_detalle") == "admin":
		payload["nivel_detalle"] = "completo"

	query = unwrap(parse_availability_request(payload, local_today()))

	try:
		snapshot = load_snapshot(organization, query.start_date, query.days)
		slots = unwrap(generate_available_slots(snapshot, query))
	except MalformedScheduleData as e:
		throw_malformed(e, f"get_availability {organization}")

	return {
		"organization": organization,
		"slots": [s.as_dict() for s in slots],
		"by_day": group_slots_by_day(slots),
		"total_available": sum(1 for s in slots if s.available),
	}


@frappe.whitelist(allow_guest=True, methods=['GET', 'POST'])
def preview_recurrence(organizacion_id: str = None, **kwargs) -> Dict[str, Any]:
	"""
	Expande un patrón de recurrencia y valida cada fecha sin crear nada.

	Rate limited (guest): 30 requests per minute per IP.

	Args:
		fecha, hora, servicio_id | servicios_ids, profesional_id, duracion
		frecuencia: semanal | quincenal | mensual
		dias_semana: índices 0 (domingo) - 6 (sábado)
		intervalo: 1-12
		termina_en: cantidad (con cantidad_citas) | fecha (con fecha_fin)

	Returns:
		dict: {
			"pattern": {...},
			"occurrences": [{"index": 1, "date": "2026-01-19", "available": True, ...}],
			"total": 6,
			"total_available": 5,
			"conflicting_dates": ["2026-01-26"]
		}
	"""
	check_guest_rate_limit("preview_recurrence", limit=30, seconds=60)
	organization = resolve_organization(organizacion_id)

	request = unwrap(parse_series_request(_payload(kwargs), organization, local_today()))
	dates = expand_dates(request.anchor, request.pattern)
	if not dates:
		return {"pattern": request.pattern.as_dict(), "occurrences": [], "total": 0,
			"total_available": 0, "conflicting_dates": []}

	try:
		snapshot = load_snapshot(organization, *snapshot_window(request.anchor, dates))
		preview = unwrap(preview_series(SlotCalculator(snapshot), request))
	except MalformedScheduleData as e:
		throw_malformed(e, f"preview_recurrence {organization}")

	logger.info(
		f"Recurrence preview for {organization}: {len(preview.occurrences)} occurrence(s), "
		f"{len(preview.conflicts)} conflict(s)"
	)
	return preview.as_dict()
