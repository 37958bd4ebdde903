"""V2 API tests: campaign setup, scene lifecycle with a failing-then-working narrator, turn order, rolls, clocks."""
import os
import tempfile
import unittest
from unittest.mock import patch

from fastapi.testclient import TestClient

from backend.app.api.deps import get_broadcaster, get_narrator
from backend.app.core.broadcast import InMemoryBroadcaster
from backend.app.core.errors import NarratorFailure
from backend.app.db.migrate import apply_schema
from backend.app.models.narration import NarrationResult

ADMIN = {"X-User-Id": "gm", "X-Campaign-Role": "admin"}
ASH = {"X-User-Id": "user-ash"}
BO = {"X-User-Id": "user-bo"}


class FakeNarrator:
    def __init__(self):
        self.results: list = []

    def narrate(self, request):
        outcome = self.results.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    def open_scene(self, campaign_id, scene_number, characters):
        return f"Scene {scene_number}: sirens in the distance."


class _ApiCase(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.NamedTemporaryFile(suffix=".db", delete=False)
        self.tmp.close()
        self.db_path = self.tmp.name
        apply_schema(self.db_path)
        self.patcher = patch("backend.app.api.deps.DEFAULT_DB_PATH", self.db_path)
        self.patcher.start()
        from backend.main import app
        self.app = app
        self.narrator = FakeNarrator()
        self.broadcaster = InMemoryBroadcaster()
        app.dependency_overrides[get_narrator] = lambda: self.narrator
        app.dependency_overrides[get_broadcaster] = lambda: self.broadcaster
        self.client = TestClient(app)

        r = self.client.post("/v2/campaigns", json={"title": "Night Market"}, headers=ADMIN)
        self.assertEqual(r.status_code, 200, r.text)
        self.campaign_id = r.json()["id"]
        self.ash_id = self._character("Ash", ASH, {"cool": 2, "hard": 1})
        self.bo_id = self._character("Bo", BO, {"cool": 1, "sharp": 2})

    def tearDown(self):
        self.app.dependency_overrides.clear()
        self.patcher.stop()
        if os.path.exists(self.db_path):
            os.unlink(self.db_path)

    def _character(self, name, headers, stats):
        r = self.client.post(
            f"/v2/campaigns/{self.campaign_id}/characters",
            json={"name": name, "stats": stats},
            headers=headers,
        )
        self.assertEqual(r.status_code, 200, r.text)
        return r.json()["id"]

    def _start_scene(self, participants=None):
        r = self.client.post(
            f"/v2/campaigns/{self.campaign_id}/scenes",
            json={"participant_character_ids": participants or [self.ash_id, self.bo_id]},
            headers=ADMIN,
        )
        self.assertEqual(r.status_code, 200, r.text)
        return r.json()["id"]

    def _url(self, scene_id, suffix=""):
        return f"/v2/campaigns/{self.campaign_id}/scenes/{scene_id}{suffix}"


class TestSceneLifecycleApi(_ApiCase):
    def test_caller_identity_is_required(self):
        r = self.client.post("/v2/campaigns", json={"title": "x"})
        self.assertEqual(r.status_code, 401)
        r = self.client.post("/v2/campaigns", json={"title": "x"}, headers={"X-User-Id": "u", "X-Campaign-Role": "god"})
        self.assertEqual(r.status_code, 400)

    def test_players_cannot_start_scenes(self):
        r = self.client.post(
            f"/v2/campaigns/{self.campaign_id}/scenes",
            json={"participant_character_ids": [self.ash_id]},
            headers=ASH,
        )
        self.assertEqual(r.status_code, 403)
        self.assertEqual(r.json()["error_code"], "PERMISSION_DENIED")

    def test_full_scene_with_retry_after_narrator_failure(self):
        scene_id = self._start_scene()
        r = self.client.get(f"/v2/campaigns/{self.campaign_id}/scenes/current")
        self.assertEqual(r.json()["scene"]["intro_text"], "Scene 1: sirens in the distance.")

        r = self.client.post(
            f"/v2/campaigns/{self.campaign_id}/scenes",
            json={"participant_character_ids": []},
            headers=ADMIN,
        )
        self.assertEqual(r.status_code, 409)
        self.assertEqual(r.json()["error_code"], "CONFLICT")

        r = self.client.post(self._url(scene_id, "/resolve"), headers=ADMIN)
        self.assertEqual(r.status_code, 400)
        self.assertEqual(r.json()["error_code"], "EMPTY_LEDGER")

        r = self.client.post(
            self._url(scene_id, "/actions"),
            json={"character_id": self.ash_id, "action_text": "I shoulder through the crowd"},
            headers=ASH,
        )
        self.assertEqual(r.status_code, 200, r.text)
        r = self.client.post(
            self._url(scene_id, "/actions"),
            json={"character_id": self.ash_id, "action_text": "Not mine"},
            headers=BO,
        )
        self.assertEqual(r.status_code, 403)

        r = self.client.post(
            f"/v2/campaigns/{self.campaign_id}/rolls",
            json={"character_id": self.ash_id, "move_id": "act-under-fire", "scene_id": scene_id},
            headers=ASH,
        )
        self.assertEqual(r.status_code, 200, r.text)
        roll = r.json()["roll"]
        self.assertEqual(roll["stat_key"], "cool")
        self.assertIn(r.json()["label"], ("Strong hit", "Weak hit", "Miss"))

        self.narrator.results = [
            NarratorFailure("Narrator call failed: timed out"),
            NarrationResult.model_validate({
                "resolution_text": "Ash breaks through, bruised.",
                "deltas": {"harm": [{"character_id": self.ash_id, "delta": 1}]},
            }),
        ]
        r = self.client.post(self._url(scene_id, "/resolve"), headers=ADMIN)
        self.assertEqual(r.status_code, 503)
        self.assertEqual(r.json()["error_code"], "NARRATOR_FAILURE")
        self.assertTrue(r.json()["retryable"])
        r = self.client.get(self._url(scene_id))
        self.assertEqual(r.json()["status"], "RESOLVING")
        self.assertEqual(r.json()["actions"][0]["attached_roll_id"], roll["id"])

        r = self.client.post(
            self._url(scene_id, "/actions"),
            json={"character_id": self.bo_id, "action_text": "Too late"},
            headers=BO,
        )
        self.assertEqual(r.status_code, 409)
        self.assertEqual(r.json()["error_code"], "INVALID_STATE")

        r = self.client.post(self._url(scene_id, "/resolve"), headers=ADMIN)
        self.assertEqual(r.status_code, 200, r.text)
        self.assertEqual(r.json()["scene"]["status"], "RESOLVED")
        self.assertIn("harm=1", r.json()["summary"])

        r = self.client.get(f"/v2/campaigns/{self.campaign_id}/characters/{self.ash_id}")
        self.assertEqual(r.json()["harm"], 1)
        self.assertEqual(r.json()["harm_status"], "fine")
        r = self.client.get(f"/v2/campaigns/{self.campaign_id}/scenes/current")
        self.assertIsNone(r.json()["scene"])
        r = self.client.get(f"/v2/campaigns/{self.campaign_id}/scenes")
        self.assertEqual([s["id"] for s in r.json()["scenes"]], [scene_id])
        self.assertEqual(len(self.broadcaster.of_type("scene.resolved")), 1)

    def test_end_scene(self):
        scene_id = self._start_scene()
        r = self.client.post(self._url(scene_id, "/end"), headers=ADMIN)
        self.assertEqual(r.status_code, 200, r.text)
        self.assertTrue(r.json()["ended_by_admin"])
        r = self.client.post(self._url(scene_id, "/end"), headers=ADMIN)
        self.assertEqual(r.status_code, 409)


class TestTurnOrderApi(_ApiCase):
    def test_turn_order_cycle(self):
        scene_id = self._start_scene()
        url = self._url(scene_id, "/turn-order")
        r = self.client.get(url)
        self.assertEqual(r.status_code, 404)
        self.assertEqual(r.json()["error_code"], "NO_ACTIVE_TRACKER")

        r = self.client.post(
            url,
            json={"participants": [
                {"character_id": self.ash_id, "initiative": 4},
                {"character_id": self.bo_id, "initiative": 12},
            ]},
            headers=ADMIN,
        )
        self.assertEqual(r.status_code, 200, r.text)
        self.assertEqual([e["character_id"] for e in r.json()["order"]], [self.bo_id, self.ash_id])

        r = self.client.post(url + "/end-turn", json={"character_id": self.ash_id}, headers=ASH)
        self.assertEqual(r.status_code, 409)
        self.assertEqual(r.json()["error_code"], "NOT_YOUR_TURN")

        r = self.client.post(url + "/end-turn", json={"character_id": self.bo_id}, headers=BO)
        self.assertEqual(r.status_code, 200, r.text)
        self.assertEqual(r.json()["current_turn_index"], 1)

        r = self.client.post(url + "/skip", json={"reason": "pinned down"}, headers=ADMIN)
        self.assertEqual(r.json()["round_number"], 2)
        self.assertEqual(r.json()["skip_log"][0]["reason"], "pinned down")

        r = self.client.post(url + "/advance", headers=ASH)
        self.assertEqual(r.status_code, 403)

        r = self.client.post(url + "/end", headers=ADMIN)
        self.assertEqual(r.json()["state"], "ended")
        r = self.client.post(url + "/end", headers=ADMIN)
        self.assertEqual(r.status_code, 200)
        r = self.client.get(url)
        self.assertEqual(r.status_code, 404)

        events = [e.event_type for e in self.broadcaster.events]
        self.assertEqual(events[0], "turnOrder.updated")
        self.assertEqual(events[-1], "turnOrder.ended")
        self.assertEqual(events.count("turnOrder.ended"), 1)


class TestRollsAndClocksApi(_ApiCase):
    def test_secret_roll_listing(self):
        r = self.client.post(
            f"/v2/campaigns/{self.campaign_id}/rolls",
            json={"character_id": self.ash_id, "stat_key": "sharp", "is_secret": True},
            headers=ASH,
        )
        self.assertEqual(r.status_code, 200, r.text)
        r = self.client.post(
            f"/v2/campaigns/{self.campaign_id}/rolls",
            json={"character_id": self.bo_id, "stat_key": "sharp", "modifier": 1},
            headers=BO,
        )
        self.assertEqual(r.json()["roll"]["modifier"], 3)

        mine = self.client.get(f"/v2/campaigns/{self.campaign_id}/rolls", headers=ASH).json()["rolls"]
        self.assertEqual(len(mine), 2)
        theirs = self.client.get(f"/v2/campaigns/{self.campaign_id}/rolls", headers=BO).json()["rolls"]
        self.assertEqual(len(theirs), 1)
        self.assertEqual(theirs[0]["character_id"], self.bo_id)
        self.assertNotIn("breakdown", mine[0] if mine[0]["character_id"] == self.bo_id else mine[1])

    def test_hidden_clocks_for_admins_only(self):
        r = self.client.post(
            f"/v2/campaigns/{self.campaign_id}/clocks",
            json={"name": "Cult Rising", "is_hidden": True},
            headers=ADMIN,
        )
        self.assertEqual(r.status_code, 200, r.text)
        self.assertEqual(r.json()["max_ticks"], 6)
        r = self.client.post(f"/v2/campaigns/{self.campaign_id}/clocks", json={"name": "x"}, headers=ASH)
        self.assertEqual(r.status_code, 403)
        self.assertEqual(self.client.get(f"/v2/campaigns/{self.campaign_id}/clocks", headers=ASH).json()["clocks"], [])
        admin_view = self.client.get(f"/v2/campaigns/{self.campaign_id}/clocks", headers=ADMIN).json()["clocks"]
        self.assertEqual([c["name"] for c in admin_view], ["Cult Rising"])

    def test_holds_are_admin_only(self):
        url = f"/v2/campaigns/{self.campaign_id}/characters/{self.ash_id}/holds"
        self.assertEqual(self.client.put(url, json={"forward": 1}, headers=ASH).status_code, 403)
        r = self.client.put(url, json={"forward": 1, "ongoing": -1}, headers=ADMIN)
        self.assertEqual(r.json()["holds"], {"forward": 1, "ongoing": -1})


class TestHealth(_ApiCase):
    def test_health_detail_shape(self):
        with patch("backend.main.DEFAULT_DB_PATH", self.db_path), patch(
            "backend.main._check_narrator", return_value={"ok": False, "provider": "ollama"}
        ):
            res = self.client.get("/health/detail")
        self.assertEqual(res.status_code, 200)
        body = res.json()
        self.assertEqual(body["status"], "degraded")
        self.assertTrue(body["checks"]["database"]["ok"])
        self.assertIn("narrator", body["checks"])
