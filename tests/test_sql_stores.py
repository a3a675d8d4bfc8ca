"""Integration tests for the SQLAlchemy-backed stores and brain seeding."""

from __future__ import annotations

import unittest
from datetime import datetime, timezone

from sqlalchemy import create_engine, delete, update
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from tasklob.entity_resolution.resolver import resolve_entity
from tasklob.entity_resolution.types import NewEntity, ResolvedEntity
from tasklob.memory.aggregator import MemoryAggregator, MemoryPolicy
from tasklob.memory.routing import learn_routing
from tasklob.memory.types import MemoryContext
from tasklob.models.base import Base
from tasklob.models.company_memory import CompanyMemory
from tasklob.models.lob_session import LobSession
from tasklob.models.resolution_memory import ResolutionMemory
from tasklob.parsing.types import ExtractedEntity, ParsedTask
from tasklob.pipeline import EnrichedLob, EntityBundle, RawLob
from tasklob.schemas.brain import BrainSeedRequest
from tasklob.services.brain import seed_company_brain
from tasklob.stores.archive import SqlLobArchive
from tasklob.stores.entities import SqlEntityStore
from tasklob.stores.history import SqlHistoryStore

WORKSPACE_ID = "ws-stores-test"


class SqlStoreTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls) -> None:
        cls.engine = create_engine(
            "sqlite+pysqlite:///:memory:",
            future=True,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        cls.SessionLocal = sessionmaker(bind=cls.engine, autoflush=False, autocommit=False, future=True)
        Base.metadata.create_all(cls.engine)

    @classmethod
    def tearDownClass(cls) -> None:
        Base.metadata.drop_all(cls.engine)
        cls.engine.dispose()

    def setUp(self) -> None:
        with self.SessionLocal() as db:
            db.execute(delete(LobSession))
            db.execute(delete(ResolutionMemory))
            db.execute(delete(CompanyMemory))
            db.commit()
        self.entities = SqlEntityStore(self.SessionLocal, WORKSPACE_ID)
        self.history = SqlHistoryStore(self.SessionLocal, WORKSPACE_ID)

    def test_entities_are_scoped_by_type_and_workspace(self) -> None:
        sarah = self.entities.add_entity(
            NewEntity(name="Sarah Johnson", type="person", role="Designer", email="sarah@example.com")
        )
        self.entities.add_entity(NewEntity(name="WordPress", type="system", confidence=0.9))
        SqlEntityStore(self.SessionLocal, "other-workspace").add_entity(NewEntity(name="Sarah Lee", type="person"))

        people = self.entities.find_candidates("person", "Sarah")

        self.assertEqual([match.id for match in people], [sarah.id])
        self.assertEqual(people[0].name, "Sarah Johnson")
        self.assertEqual(people[0].role, "Designer")
        self.assertEqual(people[0].email, "sarah@example.com")
        self.assertAlmostEqual(people[0].confidence, 0.8)
        self.assertEqual(self.entities.find_candidates("date", "tomorrow"), [])

    def test_accounts_live_with_systems(self) -> None:
        self.entities.add_entity(NewEntity(name="Stripe", type="system", confidence=0.9))
        account = self.entities.add_entity(NewEntity(name="Stripe payouts", type="account", confidence=0.9))
        legacy = self.entities.add_entity(NewEntity(name="Gmail account", type="system", confidence=0.9))

        accounts = self.entities.find_candidates("account", "stripe")
        systems = self.entities.find_candidates("system", "stripe")

        self.assertEqual({match.id for match in accounts}, {account.id, legacy.id})
        self.assertEqual(len(systems), 3)

    def test_store_candidates_feed_resolution(self) -> None:
        self.entities.add_entity(NewEntity(name="WordPress", type="system", confidence=1.0))

        outcome = resolve_entity(
            ExtractedEntity(mention="wordpress", type="system"),
            self.entities.find_candidates("system", "wordpress"),
        )

        self.assertIsInstance(outcome, ResolvedEntity)
        self.assertEqual(outcome.resolved_name, "WordPress")

    def test_resolution_search_and_idempotent_success(self) -> None:
        login = self.history.store_resolution(
            "Login page shows a blank screen",
            "Cleared the page cache",
            system_name="WordPress",
            resolved_by="u1",
        )
        self.history.store_resolution("Stripe payout failed", "Re-verified the bank account")

        found = self.history.search_resolutions("login page")
        by_system = self.history.search_resolutions("wordpress", "WordPress")

        self.assertEqual([record.id for record in found], [login.id])
        self.assertEqual([record.id for record in by_system], [login.id])
        self.assertEqual(login.success_count, 1)

        once = self.history.record_success(login.id, "task-42")
        twice = self.history.record_success(login.id, "task-42")
        other = self.history.record_success(login.id, "task-43")

        self.assertEqual(once.success_count, 2)
        self.assertEqual(twice.success_count, 2)
        self.assertEqual(other.success_count, 3)
        self.assertIsNone(self.history.record_success("999", "task-1"))
        self.assertIsNone(self.history.record_success("not-an-id", "task-1"))

    def test_routing_patterns_round_trip_through_learning(self) -> None:
        created = learn_routing(self.history, "WordPress", "u1", assignee_name="Sarah").pattern
        confirmed = learn_routing(self.history, "wordpress", "u1").pattern

        found = self.history.find_routing_pattern("WORDPRESS")

        self.assertEqual(found.id, created.id)
        self.assertAlmostEqual(found.confidence, confirmed.confidence)
        self.assertEqual(found.times_confirmed, 1)
        self.assertEqual(found.assignee_name, "Sarah")
        self.assertIsNone(self.history.find_routing_pattern("stripe"))
        self.assertIsNone(self.history.get_routing_pattern("abc"))

    def test_routing_lookup_matches_keys_containing_the_mention(self) -> None:
        plugins = learn_routing(self.history, "wordpress plugins", "u1").pattern
        billing = self.history.create_routing_pattern("stripe billing", "u2", confidence=0.9)

        self.assertEqual(self.history.find_routing_pattern("WordPress").id, plugins.id)
        self.assertEqual(self.history.find_routing_pattern("Stripe").id, billing.id)
        self.assertIsNone(self.history.find_routing_pattern("%"))
        self.assertIsNone(self.history.find_routing_pattern("   "))

    def test_exact_routing_key_beats_a_more_confident_partial_match(self) -> None:
        self.history.create_routing_pattern("stripe billing", "u2", confidence=0.9)
        exact = self.history.create_routing_pattern("stripe", "u3", confidence=0.5)

        self.assertEqual(self.history.find_routing_pattern("Stripe").id, exact.id)

    def test_resolution_search_uses_the_configured_term_limit(self) -> None:
        printer = self.history.store_resolution("Printer jammed on tray two", "Opened the rear panel")
        narrow = SqlHistoryStore(self.SessionLocal, WORKSPACE_ID, policy=MemoryPolicy(max_terms_per_query=1))

        self.assertEqual([record.id for record in self.history.search_resolutions("login printer")], [printer.id])
        self.assertEqual(narrow.search_resolutions("login printer"), [])

    def test_success_count_builds_on_the_stored_value(self) -> None:
        record = self.history.store_resolution("VPN drops every hour", "Renewed the certificate")
        with self.SessionLocal() as db:
            db.execute(
                update(ResolutionMemory).where(ResolutionMemory.id == int(record.id)).values(times_worked=5)
            )
            db.commit()

        updated = self.history.record_success(record.id, "task-7")

        self.assertEqual(updated.success_count, 6)

    def test_seed_creates_people_systems_and_routing(self) -> None:
        payload = BrainSeedRequest.model_validate(
            {
                "companyName": "Acme Media",
                "people": [{"userId": "u1", "name": "Sarah Johnson", "role": "Designer", "handles": ["WordPress", "design"]}],
                "systems": [{"name": "WordPress", "description": "Marketing site"}, {"name": "Stripe", "type": "account"}],
            }
        )

        result = seed_company_brain(self.entities, self.history, payload)

        self.assertEqual(len(result.people), 1)
        self.assertEqual(len(result.systems), 1)
        self.assertEqual(len(result.accounts), 1)
        self.assertEqual([company.name for company in result.companies], ["Acme Media"])
        self.assertEqual([pattern.key for pattern in result.routing], ["wordpress", "design"])
        self.assertTrue(all(pattern.assignee_id == "u1" for pattern in result.routing))
        self.assertAlmostEqual(self.history.find_routing_pattern("WordPress").confidence, 0.7)
        self.assertAlmostEqual(self.entities.find_candidates("system", "wordpress")[0].confidence, 0.9)

    def test_archive_stores_lob_with_snapshot(self) -> None:
        archive = SqlLobArchive(self.SessionLocal)
        lob = RawLob(
            text="Fix the login bug",
            sender_id="u1",
            workspace_id=WORKSPACE_ID,
            submitted_at=datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc),
        )
        task = ParsedTask(position=1, raw_chunk="Fix the login bug", summary="Fix the login bug", classification="task")
        enriched = EnrichedLob(lob=lob, tasks=[task], entities=EntityBundle(), context=MemoryContext())

        archive_id = archive.store_lob(lob, enriched)
        stored = archive.get_lob(archive_id)

        self.assertIsNotNone(stored)
        self.assertEqual(stored.raw_input, "Fix the login bug")
        self.assertEqual(stored.parsed_data_json["tasks"][0]["summary"], "Fix the login bug")
        self.assertNotIn("archived", stored.parsed_data_json["diagnostics"])
        self.assertIsNone(archive.get_lob("nope"))


class SqlHistoryAggregationTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.engine = create_engine("sqlite+pysqlite:///:memory:", future=True, connect_args={"check_same_thread": False}, poolclass=StaticPool)
        self.SessionLocal = sessionmaker(bind=self.engine, autoflush=False, autocommit=False, future=True)
        Base.metadata.create_all(self.engine)

    async def asyncTearDown(self) -> None:
        self.engine.dispose()

    async def test_aggregator_ranks_sql_records_by_success(self) -> None:
        history = SqlHistoryStore(self.SessionLocal, WORKSPACE_ID)
        fresh = history.store_resolution("Login broken after update", "Roll back the plugin")
        proven = history.store_resolution("Login broken after update", "Roll back the plugin")
        for key in ("t1", "t2", "t3"):
            history.record_success(proven.id, key)

        context = await MemoryAggregator(history, max_concurrent_lookups=1).get_full_context(
            [], [ExtractedEntity(mention="login", type="system")]
        )

        self.assertEqual([item.record.id for item in context.resolutions], [proven.id, fresh.id])


if __name__ == "__main__":
    unittest.main()
