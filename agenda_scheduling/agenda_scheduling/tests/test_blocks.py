"""
Tests for scheduling/blocks.py
"""

import unittest
from datetime import date, time

from agenda_scheduling.agenda_scheduling.scheduling.blocks import (
	BLOCK_TYPE_LABELS,
	Block,
	BlockRegistry,
	BlockType,
	describe_block,
)
from agenda_scheduling.agenda_scheduling.scheduling.errors import MalformedScheduleData
from agenda_scheduling.agenda_scheduling.tests.utils import MONDAY, TUESDAY, TZ, at


def vacation(professional_id="P-ANA"):
	return Block(
		"BLK-1", BlockType.VACATION,
		at(MONDAY, "00:00"), at(date(2026, 1, 24), "00:00"),
		professional_id=professional_id
	)


class TestBlocks(unittest.TestCase):

	def test_every_block_type_has_label(self):
		for block_type in BlockType:
			self.assertIn(block_type, BLOCK_TYPE_LABELS)

	def test_inverted_block_is_malformed(self):
		with self.assertRaises(MalformedScheduleData):
			Block("BLK-X", BlockType.OTHER, at(MONDAY, "12:00"), at(MONDAY, "11:00"))

	def test_multi_day_block_covers_each_day(self):
		block = vacation()

		self.assertEqual(
			block.intervals_on(TUESDAY, TZ),
			[{"start": at(TUESDAY, "00:00"), "end": at(date(2026, 1, 21), "00:00")}]
		)
		self.assertEqual(block.intervals_on(date(2026, 1, 24), TZ), [])

	def test_daily_window(self):
		"""Test a block that only applies 12:00-13:00 on each day of its range."""
		block = Block(
			"BLK-2", BlockType.TRAINING,
			at(MONDAY, "00:00"), at(date(2026, 1, 23), "00:00"),
			daily_window=(time(12), time(13))
		)

		self.assertEqual(
			block.intervals_on(TUESDAY, TZ),
			[{"start": at(TUESDAY, "12:00"), "end": at(TUESDAY, "13:00")}]
		)

	def test_organizational_block_applies_to_everyone(self):
		holiday = Block("BLK-3", BlockType.HOLIDAY, at(MONDAY, "00:00"), at(TUESDAY, "00:00"))
		registry = BlockRegistry([holiday, vacation("P-LUIS")])

		self.assertEqual([b.id for b in registry.for_professional("P-ANA")], ["BLK-3"])
		self.assertEqual(len(registry.for_professional("P-LUIS")), 2)

	def test_inactive_blocks_are_ignored(self):
		block = Block(
			"BLK-4", BlockType.MAINTENANCE, at(MONDAY, "09:00"), at(MONDAY, "10:00"), active=False
		)
		registry = BlockRegistry([block])

		self.assertEqual(registry.blocked_intervals("P-ANA", MONDAY, TZ), [])

	def test_blocks_overlapping_is_half_open(self):
		block = Block("BLK-5", BlockType.PERSONAL, at(MONDAY, "10:00"), at(MONDAY, "11:00"), "P-ANA")
		registry = BlockRegistry([block])

		before = {"start": at(MONDAY, "09:30"), "end": at(MONDAY, "10:00")}
		inside = {"start": at(MONDAY, "10:30"), "end": at(MONDAY, "11:30")}

		self.assertEqual(registry.blocks_overlapping("P-ANA", before, TZ), [])
		self.assertEqual(registry.blocks_overlapping("P-ANA", inside, TZ), [block])

	def test_describe_block_by_detail_level(self):
		holiday = Block("BLK-6", BlockType.HOLIDAY, at(MONDAY, "00:00"), at(TUESDAY, "00:00"))

		self.assertEqual(describe_block(holiday, "basico"), "No disponible")
		self.assertEqual(describe_block(holiday, "completo"), "Día festivo")
		self.assertEqual(describe_block(holiday, "admin"), "Bloqueo organizacional: Día festivo")

	def test_title_overrides_label(self):
		block = Block(
			"BLK-7", BlockType.OTHER, at(MONDAY, "09:00"), at(MONDAY, "10:00"),
			professional_id="P-ANA", title="Junta de equipo"
		)

		self.assertEqual(describe_block(block, "admin"), "Bloqueo del profesional: Junta de equipo")


def run_tests():
	"""Run all tests in this module."""
	unittest.main()
