"""
Tests for scheduling/slots.py

Tests discrete slot generation for one or several services.
"""

import unittest
from datetime import date, time

from agenda_scheduling.agenda_scheduling.scheduling.blocks import Block, BlockType
from agenda_scheduling.agenda_scheduling.scheduling.errors import ErrorCode
from agenda_scheduling.agenda_scheduling.scheduling.models import AppointmentStatus, Service
from agenda_scheduling.agenda_scheduling.scheduling.slots import (
	AvailabilityQuery,
	SlotCalculator,
	generate_available_slots,
	group_slots_by_day,
)
from agenda_scheduling.agenda_scheduling.scheduling.working_hours import ShiftKind
from agenda_scheduling.agenda_scheduling.tests.utils import (
	CORTE,
	MONDAY,
	SUNDAY,
	TINTE,
	TUESDAY,
	appointment,
	at,
	professional,
	snapshot,
	weekly_rules,
)


def query(**overrides):
	values = {"service_ids": ("SRV-CORTE",), "start_date": MONDAY, "professional_id": "P-ANA"}
	values.update(overrides)
	return AvailabilityQuery(**values)


class TestSlots(unittest.TestCase):
	"""Tests for slot generation functions."""

	def test_full_day_grid(self):
		"""Test that a free 09:00-17:00 Monday yields 16 slots of 30 minutes."""
		outcome = generate_available_slots(snapshot(), query())

		self.assertTrue(outcome.ok)
		self.assertEqual(len(outcome.value), 16)
		self.assertEqual(outcome.value[0].start, at(MONDAY, "09:00"))
		self.assertEqual(outcome.value[-1].end, at(MONDAY, "17:00"))

	def test_slot_structure(self):
		slot = generate_available_slots(snapshot(), query()).value[0]

		self.assertEqual(slot.as_dict(), {
			"professional_id": "P-ANA",
			"date": "2026-01-19",
			"start": "09:00",
			"end": "09:30",
			"available": True,
		})

	def test_no_working_hours_is_empty_not_error(self):
		outcome = generate_available_slots(snapshot(), query(start_date=SUNDAY))

		self.assertTrue(outcome.ok)
		self.assertEqual(outcome.value, [])

	def test_booked_slot_is_hidden(self):
		snap = snapshot(appointments=[appointment("CITA-1", "P-ANA", MONDAY, "10:00", "10:30")])

		slots = generate_available_slots(snap, query()).value

		self.assertEqual(len(slots), 15)
		self.assertNotIn(at(MONDAY, "10:00"), [s.start for s in slots])

	def test_booked_slot_shown_with_reason(self):
		"""Test solo_disponibles = false with each detail level."""
		snap = snapshot(appointments=[appointment("CITA-1", "P-ANA", MONDAY, "10:00", "10:30")])

		for level, reason in (("basico", "Ocupado"), ("completo", "Cita existente"), ("admin", "Cita CITA-1 - Ana")):
			slots = generate_available_slots(snap, query(only_available=False, detail_level=level)).value
			self.assertEqual(len(slots), 16)
			busy = [s for s in slots if not s.available]
			self.assertEqual(len(busy), 1)
			self.assertEqual(busy[0].reason, reason)

	def test_slot_after_appointment_end_is_free(self):
		"""Test half-open boundary: an appointment ending at 09:30 frees the 09:30 slot."""
		snap = snapshot(appointments=[appointment("CITA-1", "P-ANA", MONDAY, "09:00", "09:30")])

		slots = generate_available_slots(snap, query()).value

		self.assertEqual(slots[0].start, at(MONDAY, "09:30"))

	def test_cancelled_appointment_frees_slot(self):
		snap = snapshot(appointments=[
			appointment("CITA-1", "P-ANA", MONDAY, "10:00", "10:30", status=AppointmentStatus.CANCELADA)
		])

		self.assertEqual(len(generate_available_slots(snap, query()).value), 16)

	def test_exclude_appointment_for_reschedule(self):
		snap = snapshot(appointments=[appointment("CITA-1", "P-ANA", MONDAY, "10:00", "10:30")])

		slots = generate_available_slots(snap, query(exclude_appointment_id="CITA-1")).value

		self.assertEqual(len(slots), 16)

	def test_slot_must_fit_in_free_time(self):
		"""Test that a 60-minute request does not start 30 minutes before a booking."""
		snap = snapshot(appointments=[appointment("CITA-1", "P-ANA", MONDAY, "10:00", "10:30")])

		slots = generate_available_slots(snap, query(duration_override=60)).value
		starts = [s.start for s in slots]

		self.assertNotIn(at(MONDAY, "09:30"), starts)
		self.assertNotIn(at(MONDAY, "10:00"), starts)
		self.assertIn(at(MONDAY, "10:30"), starts)
		self.assertEqual(starts[-1], at(MONDAY, "16:00"))

	def test_grid_step_15(self):
		slots = generate_available_slots(snapshot(), query(grid_step=15)).value

		# 09:00 ... 16:30 cada 15 minutos
		self.assertEqual(len(slots), 31)

	def test_invalid_grid_step(self):
		outcome = generate_available_slots(snapshot(), query(grid_step=20))

		self.assertFalse(outcome.ok)
		self.assertEqual(outcome.error.code, ErrorCode.VALIDATION_ERROR)

	def test_buffers_extend_occupied_time(self):
		"""Test that buffers are part of the slot length."""
		padded = Service("SRV-CORTE", 30, buffer_after_minutes=10)
		snap = snapshot(services=[padded, TINTE])

		slots = generate_available_slots(snap, query()).value

		self.assertEqual(len(slots), 15)
		self.assertEqual(slots[0].end, at(MONDAY, "09:40"))

	def test_multiple_services_back_to_back(self):
		"""Test two services booked consecutively: 30 + 45 = 75 minutes."""
		snap = snapshot(professionals=[professional("P-ANA", ("SRV-CORTE", "SRV-TINTE"))])

		slots = generate_available_slots(
			snap, query(service_ids=("SRV-CORTE", "SRV-TINTE"), grid_step=15)
		).value

		self.assertEqual(len(slots), 28)
		self.assertEqual(slots[0].end, at(MONDAY, "10:15"))
		self.assertEqual(slots[-1].start, at(MONDAY, "15:45"))

	def test_professional_custom_duration(self):
		snap = snapshot(professionals=[professional("P-ANA", custom_duration=60)])

		slots = generate_available_slots(snap, query(grid_step=60)).value

		self.assertEqual(len(slots), 8)
		self.assertEqual(slots[0].end, at(MONDAY, "10:00"))

	def test_unqualified_professional(self):
		outcome = generate_available_slots(snapshot(), query(service_ids=("SRV-TINTE",)))

		self.assertFalse(outcome.ok)
		self.assertEqual(outcome.error.code, ErrorCode.VALIDATION_ERROR)

	def test_unknown_service(self):
		outcome = generate_available_slots(snapshot(), query(service_ids=("SRV-NADA",)))

		self.assertFalse(outcome.ok)
		self.assertEqual(outcome.error.details["service_ids"], ["SRV-NADA"])

	def test_requested_time(self):
		slots = generate_available_slots(snapshot(), query(requested_time=time(10, 0))).value

		self.assertEqual(len(slots), 1)
		self.assertEqual(slots[0].start, at(MONDAY, "10:00"))

	def test_grid_restarts_after_off_grid_appointment(self):
		"""Test that a 09:00-09:45 appointment frees a slot at 09:45."""
		snap = snapshot(appointments=[appointment("CITA-1", "P-ANA", MONDAY, "09:00", "09:45")])

		starts = [s.start for s in generate_available_slots(snap, query()).value]

		self.assertEqual(starts[:3], [at(MONDAY, "09:45"), at(MONDAY, "10:15"), at(MONDAY, "10:45")])
		self.assertEqual(starts[-1], at(MONDAY, "16:15"))
		self.assertEqual(len(starts), 14)

	def test_exclude_off_grid_appointment_returns_its_slot(self):
		"""Test that a rescheduled 10:10 appointment gets its own slot back."""
		snap = snapshot(appointments=[appointment("CITA-1", "P-ANA", MONDAY, "10:10", "10:40")])

		booked = [s.start for s in generate_available_slots(snap, query()).value]
		excluded = [s.start for s in generate_available_slots(snap, query(exclude_appointment_id="CITA-1")).value]

		self.assertEqual(booked[:3], [at(MONDAY, "09:00"), at(MONDAY, "09:30"), at(MONDAY, "10:40")])
		self.assertNotIn(at(MONDAY, "10:10"), booked)
		self.assertIn(at(MONDAY, "10:10"), excluded)
		self.assertIn(at(MONDAY, "10:00"), excluded)
		self.assertEqual(len(excluded), 17)

	def test_occupied_slots_stay_on_shift_grid(self):
		"""Test solo_disponibles = false after an off-grid appointment."""
		snap = snapshot(appointments=[appointment("CITA-1", "P-ANA", MONDAY, "09:00", "09:45")])

		slots = generate_available_slots(snap, query(only_available=False)).value
		busy = [s.start for s in slots if not s.available]
		free = [s.start for s in slots if s.available]

		self.assertEqual(busy, [at(MONDAY, "09:00"), at(MONDAY, "09:30")])
		self.assertEqual(free[0], at(MONDAY, "09:45"))
		self.assertEqual(len(free), 14)

	def test_requested_time_off_grid(self):
		"""Test that hora is evaluated even when it is not a grid position."""
		snap = snapshot(appointments=[appointment("CITA-1", "P-ANA", MONDAY, "09:00", "09:45")])

		free = generate_available_slots(snap, query(requested_time=time(10, 0))).value
		taken = generate_available_slots(snap, query(requested_time=time(9, 30), only_available=False)).value

		self.assertEqual([s.start for s in free], [at(MONDAY, "10:00")])
		self.assertEqual(len(taken), 1)
		self.assertFalse(taken[0].available)
		self.assertEqual(taken[0].reason, "Cita existente")

	def test_lunch_break_splits_grid(self):
		rules = weekly_rules("P-ANA") + weekly_rules("P-ANA", start="13:00", end="14:00", kind=ShiftKind.LUNCH)
		snap = snapshot(working_hours=rules)

		slots = generate_available_slots(snap, query()).value

		self.assertEqual(len(slots), 14)
		self.assertNotIn(at(MONDAY, "13:00"), [s.start for s in slots])

	def test_grid_anchored_at_shift_start(self):
		"""Test that a shift starting at 09:15 produces slots at 09:15, 09:45..."""
		snap = snapshot(working_hours=weekly_rules("P-ANA", start="09:15", end="12:15"))

		slots = generate_available_slots(snap, query()).value

		self.assertEqual(slots[0].start, at(MONDAY, "09:15"))
		self.assertEqual(slots[1].start, at(MONDAY, "09:45"))
		self.assertEqual(len(slots), 6)

	def test_organizational_holiday_blocks_everyone(self):
		holiday = Block("BLK-1", BlockType.HOLIDAY, at(MONDAY, "00:00"), at(TUESDAY, "00:00"))
		snap = snapshot(
			professionals=[professional("P-ANA"), professional("P-LUIS")],
			blocks=[holiday]
		)

		outcome = generate_available_slots(snap, query(professional_id=None, days=2))

		self.assertTrue(all(s.date == TUESDAY for s in outcome.value))
		self.assertEqual(len(outcome.value), 32)

	def test_block_reason_by_detail_level(self):
		vacation = Block("BLK-2", BlockType.VACATION, at(MONDAY, "00:00"), at(TUESDAY, "00:00"), "P-ANA")
		snap = snapshot(blocks=[vacation])

		slots = generate_available_slots(snap, query(only_available=False)).value

		self.assertEqual(len(slots), 16)
		self.assertTrue(all(not s.available and s.reason == "Vacaciones" for s in slots))

	def test_pool_order_and_range(self):
		"""Test that slots are ordered by day, then pool order."""
		snap = snapshot(professionals=[
			professional("P-LUIS", rotation_order=2),
			professional("P-ANA", rotation_order=1),
		])

		slots = generate_available_slots(snap, query(professional_id=None, days=2)).value

		self.assertEqual(len(slots), 64)
		self.assertEqual(slots[0].professional_id, "P-ANA")
		self.assertEqual(slots[16].professional_id, "P-LUIS")
		self.assertEqual(slots[32].date, TUESDAY)

	def test_group_slots_by_day(self):
		snap = snapshot(appointments=[appointment("CITA-1", "P-ANA", MONDAY, "10:00", "10:30")])
		slots = generate_available_slots(snap, query(days=2, only_available=False)).value

		grouped = group_slots_by_day(slots)

		self.assertEqual([g["date"] for g in grouped], ["2026-01-19", "2026-01-20"])
		self.assertEqual(grouped[0]["total_available"], 15)
		self.assertEqual(grouped[1]["professionals"][0]["total_available"], 16)


class TestCheckInterval(unittest.TestCase):
	"""Tests for validating a concrete booking interval."""

	def setUp(self):
		self.snap = snapshot(appointments=[appointment("CITA-1", "P-ANA", MONDAY, "10:00", "10:30")])
		self.calculator = SlotCalculator(self.snap)
		self.ana = self.snap.professional("P-ANA")

	def interval(self, hhmm, day=MONDAY):
		return self.calculator.booking_interval(self.ana, [CORTE], at(day, hhmm))

	def test_free_interval(self):
		self.assertTrue(self.calculator.check_interval(self.ana, self.interval("11:00")).ok)

	def test_off_grid_start_is_accepted(self):
		self.assertTrue(self.calculator.check_interval(self.ana, self.interval("11:10")).ok)

	def test_conflict(self):
		outcome = self.calculator.check_interval(self.ana, self.interval("10:15"))

		self.assertEqual(outcome.error.code, ErrorCode.SLOT_CONFLICT)
		self.assertEqual(outcome.error.details["reasons"], ["Cita existente"])

	def test_outside_working_hours(self):
		outcome = self.calculator.check_interval(self.ana, self.interval("16:45"))

		self.assertEqual(outcome.error.code, ErrorCode.VALIDATION_ERROR)

	def test_weekend(self):
		outcome = self.calculator.check_interval(self.ana, self.interval("10:00", day=date(2026, 1, 24)))

		self.assertEqual(outcome.error.code, ErrorCode.VALIDATION_ERROR)


def run_tests():
	"""Run all tests in this module."""
	unittest.main()
