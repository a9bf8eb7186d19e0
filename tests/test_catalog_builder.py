"""Tests for the catalog builder phases and the end-to-end build."""

import logging
import tempfile
import unittest
from unittest.mock import patch

from sqlalchemy.exc import OperationalError

from fake_source import FakeMetadataSource, company_person_employee
from sample_database import create_sample_database

from rdb_ontology.catalog_builder import CatalogBuilder, build_catalog, has_select_privilege
from rdb_ontology.config import BuildParameters
from rdb_ontology.errors import ConnectionError, IntegrityError
from rdb_ontology.metadata_source import PrivilegeRow

TBOX = "http://example.org/db/tbox#"
ABOX = "http://example.org/db/abox#"
LOGGER = "rdb_ontology.catalog_builder"


def build(source, verbosity=0):
    params = BuildParameters(
        url="postgresql://alice@localhost/test",
        tbox_base_uri=TBOX,
        abox_base_uri=ABOX,
        verbosity=verbosity,
    )
    return CatalogBuilder(params).build_from_source(source)


class TestPrivilegePolicy(unittest.TestCase):

    def test_empty_listing_grants_access(self):
        self.assertTrue(has_select_privilege([], "alice"))

    def test_select_for_current_user(self):
        self.assertTrue(has_select_privilege([PrivilegeRow("alice", "SELECT")], "alice"))

    def test_select_for_public(self):
        self.assertTrue(has_select_privilege(
            [PrivilegeRow("bob", "SELECT"), PrivilegeRow("PUBLIC", "SELECT")], "alice"
        ))

    def test_other_privileges_deny_access(self):
        self.assertFalse(has_select_privilege(
            [PrivilegeRow("alice", "INSERT"), PrivilegeRow("bob", "SELECT")], "alice"
        ))


class TestTableAndColumnDiscovery(unittest.TestCase):

    def test_tables_and_columns_get_uris_and_sql_names(self):
        catalog = build(company_person_employee())
        self.assertEqual(list(catalog.tables), ["COMPANY", "PERSON", "EMPLOYEE"])
        person = catalog.lookup_table("PERSON")
        self.assertEqual(person.uri, TBOX + "T--PERSON")
        self.assertEqual(person.sql_name, '"public"."PERSON"')
        self.assertEqual(person.schema, "public")
        company_id = person.column("company_id")
        self.assertEqual(company_id.uri, TBOX + "c--PERSON--company_id")
        self.assertEqual(company_id.sql_name, '"company_id"')
        self.assertTrue(company_id.can_be_null)
        self.assertFalse(person.column("id").can_be_null)

    def test_inaccessible_table_is_skipped(self):
        source = company_person_employee()
        source.grant_table("COMPANY", "bob")
        source.grant_table("PERSON", "PUBLIC")
        with self.assertLogs(LOGGER, level="WARNING") as logs:
            catalog = build(source, verbosity=1)
        self.assertIsNone(catalog.lookup_table("COMPANY"))
        self.assertIsNotNone(catalog.lookup_table("PERSON"))
        self.assertIn("table COMPANY not accessible", "\n".join(logs.output))

    def test_grants_matched_against_the_connected_user(self):
        source = company_person_employee()
        source.user_name = "postgres"
        source.grant_table("COMPANY", "postgres")
        catalog = build(source)
        self.assertIsNotNone(catalog.lookup_table("COMPANY"))

    def test_inaccessible_column_is_dropped_and_positions_compacted(self):
        source = company_person_employee()
        source.grant_column("PERSON", "name", "bob")
        with self.assertLogs(LOGGER, level="DEBUG") as logs:
            catalog = build(source, verbosity=3)
        person = catalog.lookup_table("PERSON")
        self.assertEqual([c.name for c in person], ["id", "company_id"])
        self.assertEqual(person.column_at(2).name, "company_id")
        self.assertIn("column PERSON.name not accessible", "\n".join(logs.output))

    def test_later_schema_wins_for_duplicate_table_names(self):
        source = FakeMetadataSource()
        source.add_table("T", [("id", False)], primary_key=["id"], schema="first")
        source.add_table("T", [("id", False)], primary_key=["id"], schema="second")
        catalog = build(source)
        self.assertEqual(len(catalog), 1)
        self.assertEqual(catalog.lookup_table("T").schema, "second")


class TestPrimaryKeys(unittest.TestCase):

    def test_table_without_primary_key_is_dropped(self):
        source = company_person_employee()
        source.add_table("AUDIT_LOG", [("message", True)])
        with self.assertLogs(LOGGER, level="WARNING") as logs:
            catalog = build(source, verbosity=1)
        self.assertIsNone(catalog.lookup_table("AUDIT_LOG"))
        self.assertIn("table AUDIT_LOG removed, because it has no primary key", "\n".join(logs.output))

    def test_inaccessible_primary_key_column_aborts_the_build(self):
        source = company_person_employee()
        source.grant_column("COMPANY", "id", "bob")
        with self.assertRaises(IntegrityError) as ctx:
            build(source)
        self.assertEqual(ctx.exception.table_name, "COMPANY")
        self.assertEqual(ctx.exception.column_name, "id")

    def test_composite_primary_key_follows_key_sequence(self):
        source = FakeMetadataSource()
        source.add_table("LINE", [("qty", True), ("line_no", False), ("order_id", False)],
                         primary_key=["order_id", "line_no"], pk_name="line_pk")
        pk = build(source).lookup_table("LINE").primary_key
        self.assertEqual(pk.name, "line_pk")
        self.assertEqual([c.name for c in pk], ["order_id", "line_no"])


class TestForeignKeys(unittest.TestCase):

    def test_keys_are_mapped_onto_foreign_columns(self):
        catalog = build(company_person_employee())
        works_for = catalog.lookup_table("PERSON").foreign_keys["works_for"]
        self.assertIs(works_for.mapped_column("company_id"), catalog.lookup_column("COMPANY", "id"))
        self.assertEqual(works_for.uri, TBOX + "k--PERSON--works_for")
        self.assertTrue(works_for.can_be_null())
        self.assertFalse(works_for.subsumes_primary_key())

        is_person = catalog.lookup_table("EMPLOYEE").foreign_keys["is_person"]
        self.assertTrue(is_person.subsumes_primary_key())

    def test_sequence_reset_starts_a_new_key(self):
        source = FakeMetadataSource()
        source.add_table("A", [("x", False), ("y", False)], primary_key=["x", "y"])
        source.add_table("B", [("id", False), ("x", True), ("y", True), ("z", True)],
                         primary_key=["id"])
        source.add_foreign_key("B", "b_a", [("x", "A", "x"), ("y", "A", "y")])
        source.add_foreign_key("B", "b_a_again", [("z", "A", "x"), ("y", "A", "y")])
        keys = build(source).lookup_table("B").foreign_keys
        self.assertEqual(sorted(keys), ["b_a", "b_a_again"])
        self.assertEqual([c.name for c in keys["b_a"]], ["x", "y"])
        self.assertEqual(keys["b_a_again"].mapped_column("z").name, "x")

    def test_missing_name_is_synthesized(self):
        source = company_person_employee()
        source.fk_rows["PERSON"] = []
        source.add_foreign_key("PERSON", None, [("company_id", "COMPANY", "id")])
        keys = build(source).lookup_table("PERSON").foreign_keys
        self.assertEqual(list(keys), ["__fk_COMPANY_id"])

    def test_key_to_absent_table_is_discarded(self):
        source = company_person_employee()
        source.add_foreign_key("PERSON", "lives_in", [("name", "CITY", "name")])
        with self.assertLogs(LOGGER, level="INFO") as logs:
            catalog = build(source, verbosity=2)
        self.assertNotIn("lives_in", catalog.lookup_table("PERSON").foreign_keys)
        self.assertIn("works_for", catalog.lookup_table("PERSON").foreign_keys)
        self.assertIn("no foreign table for PERSON.lives_in", "\n".join(logs.output))

    def test_key_to_dropped_keyless_table_is_discarded(self):
        source = company_person_employee()
        source.add_table("CITY", [("name", True)])
        source.add_foreign_key("PERSON", "lives_in", [("name", "CITY", "name")])
        self.assertNotIn("lives_in", build(source).lookup_table("PERSON").foreign_keys)

    def test_key_with_unreachable_column_is_discarded_whole(self):
        source = FakeMetadataSource()
        source.add_table("A", [("x", False), ("y", False)], primary_key=["x", "y"])
        source.add_table("B", [("id", False), ("x", True), ("y", True)], primary_key=["id"])
        source.grant_column("B", "x", "bob")
        source.add_foreign_key("B", "b_a", [("x", "A", "x"), ("y", "A", "y")])
        source.add_foreign_key("B", "b_a_y", [("y", "A", "y")])
        with self.assertLogs(LOGGER, level="DEBUG") as logs:
            keys = build(source, verbosity=3).lookup_table("B").foreign_keys
        self.assertEqual(list(keys), ["b_a_y"])
        self.assertIn("column unreachable for B.b_a", "\n".join(logs.output))

    def test_foreign_key_column_diagnostics_need_verbosity_five(self):
        with self.assertLogs(LOGGER, level="DEBUG") as logs:
            build(company_person_employee(), verbosity=5)
        self.assertIn("foreign key column PERSON.works_for.company_id mapped", "\n".join(logs.output))

        with self.assertLogs(LOGGER, level="DEBUG") as logs:
            build(company_person_employee(), verbosity=4)
        self.assertNotIn("mapped", "\n".join(logs.output))


class TestForeignKeyPairs(unittest.TestCase):

    def make_source(self):
        source = FakeMetadataSource()
        source.add_table("P", [("id", False)], primary_key=["id"])
        source.add_table("R", [("id", False), ("a", True), ("b", True), ("c", True)],
                         primary_key=["id"])
        for name, column in [("fk_c", "c"), ("fk_a", "a"), ("fk_b", "b"), ("fk_id", "id")]:
            source.add_foreign_key("R", name, [(column, "P", "id")])
        return source

    def test_every_unordered_pair_once_sorted_by_name(self):
        pairs = build(self.make_source()).foreign_key_pairs_of("R")
        self.assertEqual(
            [(p.first.name, p.second.name) for p in pairs],
            [("fk_a", "fk_b"), ("fk_a", "fk_c"), ("fk_b", "fk_c")],
        )

    def test_subsuming_keys_are_not_paired(self):
        catalog = build(self.make_source())
        self.assertTrue(catalog.lookup_table("R").foreign_keys["fk_id"].subsumes_primary_key())
        names = {fk.name for pair in catalog.foreign_key_pairs_of("R") for fk in pair}
        self.assertNotIn("fk_id", names)

    def test_single_key_has_no_pairs(self):
        self.assertEqual(build(company_person_employee()).foreign_key_pairs_of("PERSON"), ())


class TestUniqueIndexes(unittest.TestCase):

    def test_single_column_index_marks_column_unique(self):
        source = company_person_employee()
        source.add_unique_index("COMPANY", "company_name", ["name"])
        company = build(source).lookup_table("COMPANY")
        self.assertTrue(company.column("name").unique)
        self.assertFalse(company.column("id").unique)

    def test_statistics_rows_are_ignored(self):
        source = company_person_employee()
        source.add_unique_index("COMPANY", "company_name", ["name"], with_statistics_row=True)
        self.assertTrue(build(source).lookup_column("COMPANY", "name").unique)

    def test_index_covered_by_key_makes_key_unique(self):
        source = company_person_employee()
        self.assertFalse(build(source).lookup_table("PERSON").foreign_keys["works_for"].unique)
        source.add_unique_index("PERSON", "one_per_company", ["company_id"])
        catalog = build(source)
        self.assertTrue(catalog.lookup_table("PERSON").foreign_keys["works_for"].unique)
        self.assertTrue(catalog.lookup_column("PERSON", "company_id").unique)

    def test_composite_index_subset_of_key(self):
        source = FakeMetadataSource()
        source.add_table("A", [("x", False), ("y", False)], primary_key=["x", "y"])
        source.add_table("B", [("id", False), ("x", True), ("y", True)], primary_key=["id"])
        source.add_foreign_key("B", "b_a", [("x", "A", "x"), ("y", "A", "y")])
        source.add_unique_index("B", "b_xy", ["y", "x"])
        catalog = build(source)
        self.assertTrue(catalog.lookup_table("B").foreign_keys["b_a"].unique)
        self.assertFalse(catalog.lookup_column("B", "x").unique)

    def test_index_larger_than_key_does_not_make_it_unique(self):
        source = FakeMetadataSource()
        source.add_table("A", [("x", False)], primary_key=["x"])
        source.add_table("B", [("id", False), ("x", True), ("y", True)], primary_key=["id"])
        source.add_foreign_key("B", "b_a", [("x", "A", "x")])
        source.add_unique_index("B", "b_xy", ["x", "y"])
        self.assertFalse(build(source).lookup_table("B").foreign_keys["b_a"].unique)

    def test_subsuming_key_is_never_marked_unique(self):
        source = company_person_employee()
        source.add_unique_index("EMPLOYEE", "employee_pk", ["id"])
        catalog = build(source)
        self.assertFalse(catalog.lookup_table("EMPLOYEE").foreign_keys["is_person"].unique)
        self.assertTrue(catalog.lookup_column("EMPLOYEE", "id").unique)

    def test_index_with_inaccessible_column_is_discarded(self):
        source = company_person_employee()
        source.grant_column("PERSON", "name", "bob")
        source.add_unique_index("PERSON", "by_company", ["company_id"])
        source.add_unique_index("PERSON", "by_name_and_company", ["company_id", "name"])
        source.add_unique_index("PERSON", "by_name", ["name"])
        with self.assertLogs(LOGGER, level="DEBUG") as logs:
            catalog = build(source, verbosity=3)
        self.assertTrue(catalog.lookup_column("PERSON", "company_id").unique)
        output = "\n".join(logs.output)
        self.assertIn("index by_name_and_company of PERSON discarded", output)
        self.assertIn("index by_name of PERSON discarded", output)

    def test_trailing_discarded_index_has_no_effect(self):
        source = company_person_employee()
        source.grant_column("PERSON", "name", "bob")
        source.add_unique_index("PERSON", "by_company_and_name", ["company_id", "name"])
        catalog = build(source)
        self.assertFalse(catalog.lookup_table("PERSON").foreign_keys["works_for"].unique)

    def test_expression_index_is_discarded(self):
        source = company_person_employee()
        source.add_unique_index("PERSON", "lower_name", [None])
        self.assertFalse(build(source).lookup_column("PERSON", "name").unique)


class TestDiagnostics(unittest.TestCase):

    def test_silent_at_verbosity_zero(self):
        source = company_person_employee()
        source.add_table("AUDIT_LOG", [("message", True)])
        with self.assertNoLogs(LOGGER, level="INFO"):
            build(source, verbosity=0)

    def test_level_two_reports_created_tables_at_info(self):
        with self.assertLogs(LOGGER, level="DEBUG") as logs:
            build(company_person_employee(), verbosity=2)
        self.assertIn("INFO:rdb_ontology.catalog_builder:table PERSON created", logs.output)
        self.assertFalse(any("column" in line for line in logs.output))

    def test_level_four_reports_created_columns(self):
        with self.assertLogs(LOGGER, level="DEBUG") as logs:
            build(company_person_employee(), verbosity=4)
        self.assertIn("DEBUG:rdb_ontology.catalog_builder:column PERSON.company_id created", logs.output)


class TestEndToEnd(unittest.TestCase):
    """Builds against a real SQLite database."""

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.url = create_sample_database(self.tmp.name)

    def tearDown(self):
        self.tmp.cleanup()

    def test_build_catalog(self):
        catalog = build_catalog(BuildParameters(url=self.url, verbosity=1))

        self.assertEqual(sorted(catalog.tables), ["COMPANY", "EMPLOYEE", "PERSON"])
        self.assertIsNone(catalog.lookup_table("AUDIT_LOG"))
        self.assertIsNone(catalog.lookup_table("PERSON_NAMES"))
        self.assertEqual(catalog.tbox_base_uri, self.url + "/cross/tbox#")
        self.assertEqual(catalog.lookup_table("PERSON").sql_name, '"main"."PERSON"')

        works_for = catalog.lookup_table("PERSON").foreign_keys["works_for"]
        self.assertTrue(works_for.can_be_null())
        self.assertFalse(works_for.subsumes_primary_key())
        self.assertFalse(works_for.unique)

        is_person = catalog.lookup_table("EMPLOYEE").foreign_keys["is_person"]
        self.assertEqual(is_person.names(), frozenset({"id"}))
        self.assertTrue(is_person.subsumes_primary_key())

        self.assertTrue(catalog.lookup_column("COMPANY", "name").unique)
        self.assertFalse(catalog.lookup_column("COMPANY", "name").can_be_null)

    def test_views_can_be_listed_but_have_no_primary_key(self):
        params = BuildParameters(url=self.url, table_types=("TABLE", "VIEW"))
        self.assertIsNone(build_catalog(params).lookup_table("PERSON_NAMES"))

    def test_table_pattern(self):
        catalog = build_catalog(BuildParameters(url=self.url, table_pattern="P%"))
        self.assertEqual(list(catalog.tables), ["PERSON"])
        self.assertEqual(catalog.foreign_keys_of("PERSON"), {})

    def test_unreachable_database_raises_connection_error(self):
        params = BuildParameters(url="sqlite:///" + self.tmp.name + "/missing/dir/x.db")
        with self.assertRaises(ConnectionError):
            build_catalog(params)

    def test_missing_driver_raises_connection_error(self):
        params = BuildParameters(url="postgresql://u@localhost/db", driver="nosuchdriver")
        with self.assertRaises(ConnectionError):
            build_catalog(params)

    @patch("rdb_ontology.catalog_builder.create_engine")
    def test_failed_connect_is_wrapped_and_engine_disposed(self, mock_create_engine):
        engine = mock_create_engine.return_value
        engine.connect.side_effect = OperationalError("connect", {}, Exception("refused"))
        with self.assertRaises(ConnectionError) as ctx:
            build_catalog(BuildParameters(url="postgresql://u@localhost/db"))
        self.assertIsInstance(ctx.exception.__cause__, OperationalError)
        engine.dispose.assert_called_once()


if __name__ == "__main__":
    unittest.main()
