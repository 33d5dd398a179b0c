import time
import unittest
from unittest.mock import MagicMock

from timecapsule import invites
from timecapsule.db import InMemoryDbClient, PostgresDbClient
from timecapsule.invites import INVITE_CODE_TTL_SECONDS, InviteCodeError

HOUR = 60 * 60


class InviteCodeTests(unittest.TestCase):
    def setUp(self):
        self.db = InMemoryDbClient()
        self.now = time.time()

    def _generate(self, director_id="director-1", first_name="Adaline"):
        return invites.generate_invite_code(
            self.db, director_id, first_name, "Lovelace", now=self.now
        )

    def test_code_uses_name_prefix_and_three_digits(self):
        record = self._generate()

        prefix, number = record.code.split("-")
        self.assertEqual(prefix, "Ada")
        self.assertTrue(100 <= int(number) <= 999)
        self.assertEqual(record.director_name, "Adaline Lovelace")
        self.assertEqual(record.expires_at, self.now + INVITE_CODE_TTL_SECONDS)
        self.assertFalse(record.is_used)

    def test_short_names_are_used_whole(self):
        self.assertTrue(invites.make_code("Jo").startswith("Jo-"))
        self.assertTrue(invites.make_code("").startswith("Use-"))

    def test_taken_code_is_retried(self):
        rng = MagicMock()
        rng.randint.side_effect = [123, 123, 456]
        first = invites.generate_invite_code(self.db, "director-1", "Ada", rng=rng)
        second = invites.generate_invite_code(self.db, "director-2", "Ada", rng=rng)

        self.assertEqual(first.code, "Ada-123")
        self.assertEqual(second.code, "Ada-456")

    def test_gives_up_when_every_code_is_taken(self):
        db = MagicMock()
        db.create_invite_code.return_value = None

        with self.assertLogs("timecapsule.invites", level="ERROR"):
            with self.assertRaises(InviteCodeError) as ctx:
                invites.generate_invite_code(db, "director-1", "Ada")

        self.assertEqual(ctx.exception.status_code, 500)
        self.assertEqual(
            db.create_invite_code.call_count, invites.MAX_GENERATION_ATTEMPTS
        )

    def test_check_states(self):
        record = self._generate()

        self.assertEqual(
            invites.check_invite_code(None, self.now).message, "Invalid invite code"
        )
        valid = invites.check_invite_code(record, self.now + HOUR)
        self.assertTrue(valid.is_valid)
        self.assertEqual(valid.director_name, "Adaline Lovelace")

        expired = invites.check_invite_code(record, self.now + 25 * HOUR)
        self.assertFalse(expired.is_valid)
        self.assertTrue(expired.is_expired)

        self.db.redeem_invite_code(record.id, "actor-1", self.now)
        used = invites.check_invite_code(self.db.get_invite_code(record.id), self.now)
        self.assertFalse(used.is_valid)
        self.assertFalse(used.is_expired)
        self.assertEqual(used.message, "This invite code has already been used")

    def test_use_links_actor_to_director(self):
        record = self._generate()

        used = invites.use_invite_code(self.db, record.code, "actor-1", now=self.now)

        self.assertEqual(used.director_id, "director-1")
        stored = self.db.get_invite_code(record.id)
        self.assertTrue(stored.is_used)
        self.assertEqual(stored.used_by, "actor-1")
        self.assertEqual(
            [(link.director_id, link.actor_id) for link in self.db.links],
            [("director-1", "actor-1")],
        )

    def test_code_can_only_be_used_once(self):
        record = self._generate()
        invites.use_invite_code(self.db, record.code, "actor-1", now=self.now)

        with self.assertRaises(InviteCodeError) as ctx:
            invites.use_invite_code(self.db, record.code, "actor-2", now=self.now)

        self.assertEqual(ctx.exception.status_code, 400)
        self.assertEqual(len(self.db.links), 1)

    def test_expired_code_cannot_be_used(self):
        record = self._generate()

        with self.assertRaises(InviteCodeError) as ctx:
            invites.use_invite_code(
                self.db, record.code, "actor-1", now=self.now + 2 * INVITE_CODE_TTL_SECONDS
            )

        self.assertEqual(ctx.exception.message, "This invite code has expired")
        self.assertFalse(self.db.get_invite_code(record.id).is_used)

    def test_lost_redeem_race_is_reported_as_used(self):
        record = self._generate()
        self.db.redeem_invite_code = MagicMock(return_value=False)

        with self.assertRaises(InviteCodeError) as ctx:
            invites.use_invite_code(self.db, record.code, "actor-1", now=self.now)

        self.assertEqual(ctx.exception.message, "This invite code has already been used")

    def test_revoke_rules(self):
        record = self._generate()

        for code_id, director_id, status in [
            ("missing", "director-1", 404),
            (record.id, "director-2", 403),
        ]:
            with self.subTest(status=status):
                with self.assertRaises(InviteCodeError) as ctx:
                    invites.revoke_invite_code(self.db, code_id, director_id)
                self.assertEqual(ctx.exception.status_code, status)

        invites.revoke_invite_code(self.db, record.id, "director-1")
        self.assertIsNone(self.db.get_invite_code(record.id))

    def test_used_code_cannot_be_revoked(self):
        record = self._generate()
        invites.use_invite_code(self.db, record.code, "actor-1", now=self.now)

        with self.assertRaises(InviteCodeError) as ctx:
            invites.revoke_invite_code(self.db, record.id, "director-1")

        self.assertEqual(ctx.exception.status_code, 400)
        self.assertIsNotNone(self.db.get_invite_code(record.id))

    def test_format_expiration(self):
        # 2026-10-20T00:00:00Z
        self.assertEqual(invites.format_expiration(1792454400), "Oct 20, 2026")


class SqlInviteCodeStoreTests(unittest.TestCase):
    """
    Invite code and category storage against SQLite through the SQL client.
    """

    def setUp(self):
        self.db = PostgresDbClient("sqlite+pysqlite:///:memory:")
        self.now = time.time()

    def _create(self, code="Ada-123", director_id="director-1"):
        return self.db.create_invite_code(
            director_id,
            code=code,
            director_name="Ada Lovelace",
            expires_at=self.now + INVITE_CODE_TTL_SECONDS,
        )

    def test_create_and_find(self):
        record = self._create()

        self.assertEqual(self.db.find_invite_code("Ada-123").id, record.id)
        self.assertEqual(self.db.get_invite_code(record.id).director_name, "Ada Lovelace")
        self.assertIsNone(self.db.find_invite_code("Bob-999"))

    def test_duplicate_code_is_rejected(self):
        self._create()
        self.assertIsNone(self._create(director_id="director-2"))

    def test_list_is_scoped_to_director(self):
        first = self._create("Ada-111")
        self._create("Bob-222", director_id="director-2")

        self.assertEqual(
            [c.id for c in self.db.list_invite_codes("director-1")], [first.id]
        )

    def test_redeem_is_single_use(self):
        record = self._create()

        self.assertTrue(self.db.redeem_invite_code(record.id, "actor-1", self.now))
        self.assertFalse(self.db.redeem_invite_code(record.id, "actor-2", self.now))

        stored = self.db.get_invite_code(record.id)
        self.assertTrue(stored.is_used)
        self.assertEqual(stored.used_by, "actor-1")
        self.assertEqual(stored.used_at, self.now)

    def test_redeem_missing_code(self):
        self.assertFalse(self.db.redeem_invite_code("missing", "actor-1", self.now))

    def test_delete(self):
        record = self._create()
        self.assertTrue(self.db.delete_invite_code(record.id))
        self.assertFalse(self.db.delete_invite_code(record.id))

    def test_default_categories_are_seeded(self):
        names = [c.name for c in self.db.list_categories()]
        self.assertIn("Milestones", names)
        self.assertEqual(len(names), 5)

    def test_save_director_categories_counts_new_and_existing(self):
        self.assertEqual(
            self.db.save_director_categories(
                "director-1", ["milestones", "milestones", "life-advice"]
            ),
            (2, 0),
        )
        self.assertEqual(
            self.db.save_director_categories("director-1", ["life-advice", "just-because"]),
            (1, 1),
        )
        selected = {c.id for c in self.db.list_director_categories("director-1")}
        self.assertEqual(selected, {"milestones", "life-advice", "just-because"})
        self.assertEqual(self.db.list_director_categories("director-2"), [])


if __name__ == "__main__":
    unittest.main()
