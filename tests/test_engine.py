"""
tests/test_engine.py
=====================
Data Engine Tests (in-memory DuckDB)

Test categories:
    1. Schema extraction (user tables only, "; " separated)
    2. Prepare discovers columns without executing
    3. Row streaming in batches
    4. Provenance columns
    5. Bad SQL surfaces QueryPreparationError carrying the SQL
"""

import os
import sys
import unittest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from voicequery.errors import QueryPreparationError
from voicequery.sql.engine import DataEngine


def _orders_engine() -> DataEngine:
    engine = DataEngine(":memory:")
    engine.execute("CREATE TABLE orders (id INTEGER, customer VARCHAR, amount DOUBLE)")
    engine.execute(
        "INSERT INTO orders VALUES (1, 'ada', 12.5), (2, 'linus', 7.0), (3, 'grace', 30.0)"
    )
    return engine


class TestSchema(unittest.TestCase):

    def test_empty_database(self):
        self.assertEqual(DataEngine(":memory:").extract_schema(), "")

    def test_tables_joined(self):
        engine = _orders_engine()
        engine.execute("CREATE TABLE customers (name VARCHAR)")

        ddl = engine.extract_schema()

        self.assertIn("CREATE TABLE customers", ddl)
        self.assertIn("CREATE TABLE orders", ddl)
        self.assertEqual(len(ddl.split("; ")), 2)
        self.assertNotIn("information_schema", ddl)
        self.assertFalse(ddl.endswith(";"))


class TestPrepare(unittest.TestCase):

    def setUp(self):
        self.engine = _orders_engine()

    def tearDown(self):
        self.engine.close()

    def test_columns_known_before_rows(self):
        prepared = self.engine.prepare("SELECT * FROM orders")

        self.assertEqual(prepared.column_names, ["id", "customer", "amount"])
        self.assertEqual([c.type for c in prepared.columns], ["INTEGER", "VARCHAR", "DOUBLE"])

    def test_prepare_does_not_execute(self):
        prepared = self.engine.prepare("SELECT * FROM orders")
        self.engine.execute("INSERT INTO orders VALUES (4, 'barbara', 1.0)")
        self.assertEqual(len(prepared.fetchall()), 4)

    def test_rows_in_batches(self):
        prepared = self.engine.prepare("SELECT id FROM orders ORDER BY id;")
        self.assertEqual(list(prepared.rows(batch_size=2)), [(1,), (2,), (3,)])

    def test_rows_only_once(self):
        prepared = self.engine.prepare("SELECT 1 AS one")
        prepared.fetchall()
        with self.assertRaises(RuntimeError):
            prepared.fetchall()

    def test_provenance_columns_lead(self):
        prepared = self.engine.prepare("SELECT id, amount FROM orders ORDER BY id")
        with_sql = prepared.with_provenance("show all orders")

        self.assertEqual(
            with_sql.column_names, ["_generated_sql", "_transcription", "id", "amount"]
        )
        rows = with_sql.fetchall()
        self.assertEqual(
            rows[0], ("SELECT id, amount FROM orders ORDER BY id", "show all orders", 1, 12.5)
        )
        self.assertEqual(len(rows), 3)

    def test_unknown_table(self):
        with self.assertRaises(QueryPreparationError) as ctx:
            self.engine.prepare("SELECT * FROM invoices")
        self.assertEqual(ctx.exception.sql, "SELECT * FROM invoices")
        self.assertIn("SQL: SELECT * FROM invoices", str(ctx.exception))

    def test_syntax_error(self):
        with self.assertRaises(QueryPreparationError):
            self.engine.prepare("SELEC * FORM orders")

    def test_non_query_statement_rejected_without_side_effects(self):
        with self.assertRaises(QueryPreparationError):
            self.engine.prepare("DROP TABLE orders")
        self.assertIn("CREATE TABLE orders", self.engine.extract_schema())

    def test_empty_statement(self):
        with self.assertRaises(QueryPreparationError):
            self.engine.prepare("  ;  ")


if __name__ == "__main__":
    unittest.main()
