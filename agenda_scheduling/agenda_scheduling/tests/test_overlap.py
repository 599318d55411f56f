"""
Tests for scheduling/overlap.py

Tests conflict detection and the appointment lifecycle.
"""

import unittest

from agenda_scheduling.agenda_scheduling.scheduling.blocks import Block, BlockRegistry, BlockType
from agenda_scheduling.agenda_scheduling.scheduling.errors import ErrorCode
from agenda_scheduling.agenda_scheduling.scheduling.models import AppointmentStatus
from agenda_scheduling.agenda_scheduling.scheduling.overlap import (
	ConflictDetector,
	affected_appointments,
	can_transition,
	check_overlap,
	find_double_bookings,
	transition,
)
from agenda_scheduling.agenda_scheduling.tests.utils import MONDAY, TUESDAY, TZ, appointment, at


def candidate(start, end, day=MONDAY):
	return {"start": at(day, start), "end": at(day, end)}


class TestOverlap(unittest.TestCase):
	"""Tests for overlap detection."""

	def setUp(self):
		self.appointments = [
			appointment("CITA-1", "P-ANA", MONDAY, "10:00", "10:30"),
			appointment("CITA-2", "P-ANA", MONDAY, "11:00", "12:30"),
			appointment("CITA-3", "P-ANA", MONDAY, "14:00", "14:30", status=AppointmentStatus.CANCELADA),
			appointment("CITA-4", "P-LUIS", MONDAY, "10:00", "10:30"),
		]
		self.detector = ConflictDetector(self.appointments, BlockRegistry([]), TZ)

	def test_overlap_detected(self):
		hits = self.detector.overlapping_appointments("P-ANA", candidate("10:15", "10:45"))

		self.assertEqual([a.id for a in hits], ["CITA-1"])

	def test_adjacent_is_not_overlap(self):
		"""Test that an appointment ending at 10:00 does not conflict with one starting at 10:00."""
		self.assertFalse(self.detector.is_conflicting("P-ANA", candidate("09:30", "10:00")))
		self.assertFalse(self.detector.is_conflicting("P-ANA", candidate("10:30", "11:00")))

	def test_long_appointment_found_by_later_candidate(self):
		hits = self.detector.overlapping_appointments("P-ANA", candidate("12:00", "12:15"))

		self.assertEqual([a.id for a in hits], ["CITA-2"])

	def test_cancelled_does_not_block(self):
		self.assertFalse(self.detector.is_conflicting("P-ANA", candidate("14:00", "14:30")))

	def test_other_professional_does_not_block(self):
		self.assertFalse(self.detector.is_conflicting("P-LUIS", candidate("11:00", "11:30")))

	def test_excluded_appointment_is_ignored(self):
		"""Test the reschedule flow: the appointment being moved never conflicts with itself."""
		detector = ConflictDetector(self.appointments, BlockRegistry([]), TZ, exclude_appointment_id="CITA-1")

		self.assertFalse(detector.is_conflicting("P-ANA", candidate("10:15", "10:45")))

	def test_block_conflict(self):
		block = Block("BLK-1", BlockType.MAINTENANCE, at(MONDAY, "16:00"), at(MONDAY, "17:00"))
		detector = ConflictDetector([], BlockRegistry([block]), TZ)

		result = check_overlap(detector, "P-ANA", candidate("16:30", "17:00"))

		self.assertTrue(result["has_overlap"])
		self.assertEqual(result["blocking_periods"], ["BLK-1"])
		self.assertEqual(result["overlapping_appointments"], [])

	def test_conflict_description_by_detail_level(self):
		conflicts = self.detector.find_conflicts("P-ANA", candidate("10:00", "10:30"))

		self.assertEqual(conflicts[0].describe("basico"), "Ocupado")
		self.assertEqual(conflicts[0].describe("completo"), "Cita existente")
		self.assertEqual(conflicts[0].describe("admin"), "Cita CITA-1 - Ana")

	def test_busy_intervals_sorted(self):
		block = Block("BLK-2", BlockType.PERSONAL, at(MONDAY, "09:00"), at(MONDAY, "09:30"), "P-ANA")
		detector = ConflictDetector(self.appointments, BlockRegistry([block]), TZ)

		busy = detector.busy_intervals("P-ANA", MONDAY)

		self.assertEqual([iv["start"] for iv, _ in busy], [
			at(MONDAY, "09:00"), at(MONDAY, "10:00"), at(MONDAY, "11:00")
		])
		self.assertEqual(detector.busy_intervals("P-ANA", TUESDAY), [])

	def test_find_double_bookings(self):
		appointments = self.appointments + [appointment("CITA-5", "P-ANA", MONDAY, "12:00", "13:00")]

		pairs = find_double_bookings(appointments)

		self.assertEqual([(a.id, b.id) for a, b in pairs], [("CITA-2", "CITA-5")])

	def test_affected_appointments(self):
		block = Block("BLK-3", BlockType.VACATION, at(MONDAY, "10:00"), at(TUESDAY, "00:00"), "P-ANA")

		hits = affected_appointments(block, self.appointments, TZ)

		self.assertEqual([a.id for a in hits], ["CITA-1", "CITA-2"])


class TestAppointmentLifecycle(unittest.TestCase):
	"""Tests for status transitions."""

	def test_forward_path(self):
		appt = appointment("CITA-1", "P-ANA", MONDAY, "10:00", "10:30")
		for target in (
			AppointmentStatus.CONFIRMADA,
			AppointmentStatus.EN_SALA,
			AppointmentStatus.EN_SERVICIO,
			AppointmentStatus.COMPLETADA,
		):
			outcome = transition(appt, target)
			self.assertTrue(outcome.ok, target)
			appt = outcome.value

		self.assertEqual(appt.status, AppointmentStatus.COMPLETADA)

	def test_skipping_a_step_is_rejected(self):
		appt = appointment("CITA-1", "P-ANA", MONDAY, "10:00", "10:30")

		outcome = transition(appt, AppointmentStatus.EN_SERVICIO)

		self.assertFalse(outcome.ok)
		self.assertEqual(outcome.error.code, ErrorCode.VALIDATION_ERROR)

	def test_cancel_from_any_active_state(self):
		for status in (AppointmentStatus.PROGRAMADA, AppointmentStatus.EN_SALA, AppointmentStatus.EN_SERVICIO):
			self.assertTrue(can_transition(status, AppointmentStatus.CANCELADA))
			self.assertTrue(can_transition(status, AppointmentStatus.NO_SHOW))

	def test_terminal_states_are_final(self):
		appt = appointment(
			"CITA-1", "P-ANA", MONDAY, "10:00", "10:30", status=AppointmentStatus.COMPLETADA
		)

		self.assertFalse(transition(appt, AppointmentStatus.CANCELADA).ok)

	def test_repeating_terminal_state_is_noop(self):
		appt = appointment(
			"CITA-1", "P-ANA", MONDAY, "10:00", "10:30", status=AppointmentStatus.CANCELADA
		)

		outcome = transition(appt, AppointmentStatus.CANCELADA)

		self.assertTrue(outcome.ok)
		self.assertIs(outcome.value, appt)


def run_tests():
	"""Run all tests in this module."""
	unittest.main()
