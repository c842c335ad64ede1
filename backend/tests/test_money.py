import unittest
from decimal import Decimal

from sqlalchemy import BigInteger

import fuelsync.models  # noqa: F401  registers every table on db.metadata
from fuelsync.domain.money import (
    cents_to_decimal,
    format_money,
    round_half_up_cents,
    to_cents,
    to_quantity,
)
from fuelsync.extensions import db
from fuelsync.validation import MAX_AMOUNT_CENTS, ValidationError, parse_money


class MoneyConversionTests(unittest.TestCase):

    def test_currency_to_cents(self):
        self.assertEqual(to_cents("4775.00"), 477500)
        self.assertEqual(to_cents("1,000.50"), 100050)
        self.assertEqual(to_cents(95.5), 9550)
        self.assertEqual(to_cents(1000), 100000)
        self.assertEqual(to_cents(Decimal("-0.01")), -1)

    def test_fractional_cents_rejected(self):
        for value in ("10.005", 0.001, Decimal("1.234")):
            with self.assertRaises(ValueError):
                to_cents(value)

    def test_not_a_number(self):
        for value in ("", "abc", "NaN", "Infinity", True):
            with self.assertRaises(ValueError):
                to_cents(value)

    def test_half_up_rounding(self):
        self.assertEqual(round_half_up_cents(Decimal("0.5")), 1)
        self.assertEqual(round_half_up_cents(Decimal("100039.995")), 100040)
        self.assertEqual(round_half_up_cents(Decimal("-0.5")), -1)
        self.assertEqual(round_half_up_cents(Decimal("2.49")), 2)

    def test_format(self):
        self.assertEqual(format_money(477500), "4775.00")
        self.assertEqual(format_money(-20000), "-200.00")
        self.assertEqual(format_money(1), "0.01")
        self.assertEqual(format_money(None), "0.00")
        self.assertEqual(cents_to_decimal(9550), Decimal("95.50"))
        self.assertIsNone(cents_to_decimal(None))


class QuantityTests(unittest.TestCase):

    def test_meter_values_keep_three_decimals(self):
        self.assertEqual(to_quantity("150"), Decimal("150.000"))
        self.assertEqual(str(to_quantity("12.5")), "12.500")
        self.assertEqual(to_quantity(10.005), Decimal("10.005"))

    def test_more_than_three_decimals_rejected(self):
        with self.assertRaises(ValueError):
            to_quantity("1.0005")


class AmountCapTests(unittest.TestCase):

    def test_cap_is_inclusive(self):
        self.assertEqual(parse_money("99999999.99", "amount"), MAX_AMOUNT_CENTS)
        with self.assertRaises(ValidationError):
            parse_money("100000000.00", "amount")

    def test_cents_columns_hold_the_cap(self):
        # a capped amount and any running total of them must fit the column
        self.assertGreater(MAX_AMOUNT_CENTS, 2**31 - 1)
        columns = [
            column
            for table in db.metadata.sorted_tables
            for column in table.columns
            if column.name.endswith("_cents")
        ]
        self.assertTrue(columns)
        for column in columns:
            with self.subTest(column=f"{column.table.name}.{column.name}"):
                self.assertIsInstance(column.type, BigInteger)


if __name__ == "__main__":
    unittest.main()
