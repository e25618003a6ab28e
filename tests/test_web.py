"""
Tests for the scenario store and the JSON API, against a temporary SQLite file.
"""

import tempfile
import unittest
from pathlib import Path

from mortgage_sim.settings import DEFAULT_SETTINGS
from mortgage_sim_web.app import create_app
from mortgage_sim_web.scenario_store import ScenarioStore

PLAIN_LOAN = {"amount": 120000, "rate": 0, "term_years": 10, "offset": 0, "redraw": 0, "fees": 0, "property_value": 0}


class StoreTestCase(unittest.TestCase):

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.url = f"sqlite:///{Path(self._tmp.name) / 'scenarios.sqlite3'}"

    def tearDown(self):
        self._tmp.cleanup()


class TestScenarioStore(StoreTestCase):

    def setUp(self):
        super().setUp()
        self.store = ScenarioStore(self.url, max_per_user=2)

    def test_settings_round_trip(self):
        self.assertIsNone(self.store.load_settings("alice"))
        self.store.save_settings("alice", {"amount": 1})
        self.store.save_settings("alice", {"amount": 2})
        self.assertEqual(self.store.load_settings("alice"), {"amount": 2})
        self.assertIsNone(self.store.load_settings("bob"))
        self.store.reset_settings("alice")
        self.assertIsNone(self.store.load_settings("alice"))

    def test_scenarios_are_per_user(self):
        self.store.add_scenario("alice", "a1", "First", {"amount": 1}, {"total_interest": 10.0})
        self.store.add_scenario("bob", "b1", "Other", {"amount": 2}, {"total_interest": 20.0})
        (scenario,) = self.store.list_scenarios("alice")
        self.assertEqual(scenario["id"], "a1")
        self.assertEqual(scenario["settings"], {"amount": 1})
        self.assertEqual(scenario["summary"], {"total_interest": 10.0})
        self.assertFalse(self.store.remove_scenario("bob", "a1"))
        self.assertTrue(self.store.remove_scenario("alice", "a1"))
        self.assertEqual(self.store.list_scenarios("alice"), [])
        self.assertEqual(len(self.store.list_scenarios("bob")), 1)

    def test_old_scenarios_are_trimmed(self):
        for i in range(4):
            self.store.add_scenario("alice", f"s{i}", f"Scenario {i}", {}, {})
        self.assertEqual(len(self.store.list_scenarios("alice")), 2)

    def test_clear(self):
        self.store.add_scenario("alice", "a1", "First", {}, {})
        self.store.clear_scenarios("alice")
        self.assertEqual(self.store.list_scenarios("alice"), [])

    def test_missing_token_is_a_no_op(self):
        self.store.save_settings("", {"amount": 1})
        self.store.add_scenario("", "x", "X", {}, {})
        self.assertIsNone(self.store.load_settings(""))
        self.assertEqual(self.store.list_scenarios(""), [])


class TestApi(StoreTestCase):

    def setUp(self):
        super().setUp()
        app = create_app(ScenarioStore(self.url))
        app.config["TESTING"] = True
        self.client = app.test_client()

    def test_defaults(self):
        response = self.client.get("/api/defaults")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json(), DEFAULT_SETTINGS)

    def test_calculate(self):
        response = self.client.post("/api/calculate", json=PLAIN_LOAN)
        self.assertEqual(response.status_code, 200)
        data = response.get_json()
        self.assertEqual(data["summary"]["total_interest"], 0.0)
        self.assertEqual(data["summary"]["loan_end_date"], "2036-01-01")
        self.assertEqual(len(data["ledger"]), 120)
        self.assertEqual(data["ledger"][0]["payment"], 1000.0)

    def test_calculate_rejects_bad_settings(self):
        response = self.client.post("/api/calculate", json={"frequency": "yearly"})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()["key"], "frequency")

        response = self.client.post("/api/calculate", data="not json", content_type="text/plain")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()["key"], "body")

    def test_settings_save_load_reset(self):
        self.assertEqual(self.client.get("/api/settings").get_json(), DEFAULT_SETTINGS)

        response = self.client.put("/api/settings", json={"amount": 500000, "rate_mode": "fixed"})
        self.assertEqual(response.status_code, 200)
        loaded = self.client.get("/api/settings").get_json()
        self.assertEqual(loaded["amount"], 500000)
        self.assertEqual(loaded["rate_mode"], "fixed")

        response = self.client.put("/api/settings", json={"accrual": "daily"})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(self.client.get("/api/settings").get_json()["amount"], 500000)

        self.client.delete("/api/settings")
        self.assertEqual(self.client.get("/api/settings").get_json(), DEFAULT_SETTINGS)

    def test_scenarios(self):
        response = self.client.post("/api/scenarios", json={"name": "No offset", "settings": PLAIN_LOAN})
        self.assertEqual(response.status_code, 201)
        created = response.get_json()
        self.assertEqual(created["name"], "No offset")
        self.assertEqual(created["summary"]["periods"], 120)

        listed = self.client.get("/api/scenarios").get_json()
        self.assertEqual([s["id"] for s in listed], [created["id"]])
        self.assertEqual(listed[0]["settings"]["amount"], 120000)

        self.assertEqual(self.client.delete(f"/api/scenarios/{created['id']}").status_code, 204)
        self.assertEqual(self.client.delete(f"/api/scenarios/{created['id']}").status_code, 404)

        self.client.post("/api/scenarios", json={"settings": PLAIN_LOAN})
        self.assertEqual(self.client.get("/api/scenarios").get_json()[0]["name"], "Scenario")
        self.assertEqual(self.client.post("/api/scenarios/clear").status_code, 204)
        self.assertEqual(self.client.get("/api/scenarios").get_json(), [])


if __name__ == "__main__":
    unittest.main()
