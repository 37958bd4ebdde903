"""DB migration smoke test."""
import os
import sqlite3
import tempfile
import unittest

from backend.app.db.migrate import apply_schema


class TestMigrate(unittest.TestCase):
    def test_apply_schema_idempotent(self):
        with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
            path = f.name
        try:
            first = apply_schema(path)
            second = apply_schema(path)
            self.assertIn("0001_init", first)
            self.assertEqual(second, [])
            conn = sqlite3.connect(path)
            cur = conn.execute("SELECT name FROM sqlite_master WHERE type='table'")
            tables = {r[0] for r in cur.fetchall()}
            conn.close()
            for name in (
                "campaigns", "characters", "scenes", "player_actions", "dice_rolls",
                "turn_trackers", "clocks", "relationships", "schema_migrations",
            ):
                self.assertIn(name, tables)
        finally:
            if os.path.exists(path):
                os.unlink(path)

    def test_one_live_scene_per_campaign_enforced_by_schema(self):
        with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
            path = f.name
        try:
            apply_schema(path)
            conn = sqlite3.connect(path)
            conn.execute(
                "INSERT INTO campaigns (id, title, created_at, updated_at) VALUES ('c1', 'T', 'now', 'now')"
            )
            insert = (
                "INSERT INTO scenes (id, campaign_id, scene_number, status, participants_json, intro_text, "
                "version, created_at, updated_at) VALUES (?, 'c1', ?, ?, '[]', '', 0, 'now', 'now')"
            )
            conn.execute(insert, ("s1", 1, "AWAITING_ACTIONS"))
            with self.assertRaises(sqlite3.IntegrityError):
                conn.execute(insert, ("s2", 2, "RESOLVING"))
            conn.execute("UPDATE scenes SET status = 'RESOLVED' WHERE id = 's1'")
            conn.execute(insert, ("s3", 2, "AWAITING_ACTIONS"))
            conn.close()
        finally:
            if os.path.exists(path):
                os.unlink(path)
