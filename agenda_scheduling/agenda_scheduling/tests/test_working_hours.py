"""
Tests for scheduling/working_hours.py

Tests weekly rules, date exceptions, non-bookable shifts and validity ranges.
"""

import unittest
from datetime import date, time

from agenda_scheduling.agenda_scheduling.scheduling.errors import MalformedScheduleData
from agenda_scheduling.agenda_scheduling.scheduling.working_hours import (
	ShiftKind,
	WorkingHoursResolver,
	WorkingHoursRule,
	validate_intervals,
)
from agenda_scheduling.agenda_scheduling.tests.utils import MONDAY, SUNDAY, TUESDAY, TZ, at, weekly_rules


class TestWorkingHours(unittest.TestCase):
	"""Tests for the working-hours resolver."""

	def test_weekly_rule_on_monday(self):
		resolver = WorkingHoursResolver(weekly_rules("P-ANA"), TZ)

		result = resolver.resolve("P-ANA", MONDAY)

		self.assertEqual(result, [{"start": at(MONDAY, "09:00"), "end": at(MONDAY, "17:00")}])

	def test_no_rule_on_sunday(self):
		resolver = WorkingHoursResolver(weekly_rules("P-ANA"), TZ)

		self.assertEqual(resolver.resolve("P-ANA", SUNDAY), [])

	def test_split_shift(self):
		"""Test several intervals in the same weekly rule."""
		rule = WorkingHoursRule("P-ANA", ((time(9), time(13)), (time(15), time(19))), weekday=1)
		resolver = WorkingHoursResolver([rule], TZ)

		result = resolver.resolve("P-ANA", MONDAY)

		self.assertEqual(len(result), 2)
		self.assertEqual(result[1]["start"], at(MONDAY, "15:00"))

	def test_lunch_is_subtracted(self):
		"""Test that a lunch shift removes time from the bookable day."""
		rules = weekly_rules("P-ANA") + weekly_rules("P-ANA", start="13:00", end="14:00", kind=ShiftKind.LUNCH)
		resolver = WorkingHoursResolver(rules, TZ)

		result = resolver.resolve("P-ANA", MONDAY)

		self.assertEqual([(r["start"], r["end"]) for r in result], [
			(at(MONDAY, "09:00"), at(MONDAY, "13:00")),
			(at(MONDAY, "14:00"), at(MONDAY, "17:00")),
		])

	def test_premium_shift_is_bookable(self):
		rules = weekly_rules("P-ANA") + weekly_rules("P-ANA", start="17:00", end="20:00", kind=ShiftKind.PREMIUM)
		resolver = WorkingHoursResolver(rules, TZ)

		result = resolver.resolve("P-ANA", MONDAY)

		self.assertEqual(result, [{"start": at(MONDAY, "09:00"), "end": at(MONDAY, "20:00")}])

	def test_closed_date_exception(self):
		"""Test that an exception without intervals closes the day."""
		rules = weekly_rules("P-ANA") + [WorkingHoursRule("P-ANA", (), exception_date=MONDAY)]
		resolver = WorkingHoursResolver(rules, TZ)

		self.assertEqual(resolver.resolve("P-ANA", MONDAY), [])
		self.assertTrue(resolver.resolve("P-ANA", TUESDAY))

	def test_date_exception_replaces_weekly_rule(self):
		rules = weekly_rules("P-ANA") + [
			WorkingHoursRule("P-ANA", ((time(10), time(12)),), exception_date=MONDAY)
		]
		resolver = WorkingHoursResolver(rules, TZ)

		self.assertEqual(
			resolver.resolve("P-ANA", MONDAY),
			[{"start": at(MONDAY, "10:00"), "end": at(MONDAY, "12:00")}]
		)

	def test_validity_range(self):
		rule = WorkingHoursRule(
			"P-ANA", ((time(9), time(17)),), weekday=1,
			valid_from=date(2026, 2, 1)
		)
		resolver = WorkingHoursResolver([rule], TZ)

		self.assertEqual(resolver.resolve("P-ANA", MONDAY), [])
		self.assertTrue(resolver.resolve("P-ANA", date(2026, 2, 2)))

	def test_rules_are_per_professional(self):
		resolver = WorkingHoursResolver(weekly_rules("P-ANA"), TZ)

		self.assertEqual(resolver.resolve("P-LUIS", MONDAY), [])

	def test_inverted_interval_is_malformed(self):
		with self.assertRaises(MalformedScheduleData):
			WorkingHoursRule("P-ANA", ((time(17), time(9)),), weekday=1)

	def test_overlapping_intervals_are_malformed(self):
		with self.assertRaises(MalformedScheduleData):
			validate_intervals([(time(9), time(12)), (time(11), time(14))], "P-ANA")

	def test_rule_needs_weekday_or_date(self):
		with self.assertRaises(MalformedScheduleData):
			WorkingHoursRule("P-ANA", ((time(9), time(17)),))


def run_tests():
	"""Run all tests in this module."""
	unittest.main()
