import itertools
import unittest
from unittest.mock import patch

from insights import INSIGHTS_KEY, read_insights, upsert_insights
from testing_utils import make_client, make_storage


class InsightsMergeTests(unittest.TestCase):
    def setUp(self):
        self.storage = make_storage()
        self.insights = self.storage.insights

    def test_read_creates_zeroed_document_once(self):
        first = read_insights(self.insights)
        second = read_insights(self.insights)
        self.assertEqual(first["total_users"], 0)
        self.assertEqual(first["total_publications"], 0)
        self.assertIsNotNone(first["updated_at"])
        self.assertEqual(first["updated_at"], second["updated_at"])
        self.assertEqual(self.insights.count_documents({}), 1)
        self.assertEqual(self.insights.find_one({"key": INSIGHTS_KEY})["source"], "init")

    def test_final_state_is_fieldwise_max_in_any_order(self):
        submissions = [(3, 10), (7, 2), (5, 5), (7, 10)]
        for ordering in itertools.permutations(submissions):
            insights = make_storage().insights
            for users, pubs in ordering:
                state, _ = upsert_insights(insights, users, pubs)
            self.assertEqual(state["total_users"], 7, ordering)
            self.assertEqual(state["total_publications"], 10, ordering)

    def test_resubmission_is_idempotent(self):
        state, updated = upsert_insights(self.insights, 4, 9)
        self.assertTrue(updated)
        again, updated_again = upsert_insights(self.insights, 4, 9)
        self.assertFalse(updated_again)
        self.assertEqual(again, state)

    def test_lower_values_do_not_write(self):
        state, _ = upsert_insights(self.insights, 10, 10)
        after, updated = upsert_insights(self.insights, 3, 10)
        self.assertFalse(updated)
        self.assertEqual(after["updated_at"], state["updated_at"])
        self.assertEqual(after["total_users"], 10)

    def test_partial_increase_only_touches_that_field(self):
        upsert_insights(self.insights, 10, 10)
        state, updated = upsert_insights(self.insights, 2, 25)
        self.assertTrue(updated)
        self.assertEqual(state["total_users"], 10)
        self.assertEqual(state["total_publications"], 25)
        doc = self.insights.find_one({"key": INSIGHTS_KEY})
        self.assertEqual(doc["source"], "client-upsert")

    def test_garbage_counts_as_zero(self):
        state, updated = upsert_insights(self.insights, 5, "not-a-number")
        self.assertTrue(updated)
        self.assertEqual(state["total_users"], 5)
        self.assertEqual(state["total_publications"], 0)

    def test_both_counters_raised_in_one_write(self):
        upsert_insights(self.insights, 1, 1)
        with patch.object(self.insights, "update_one", wraps=self.insights.update_one) as spy:
            state, updated = upsert_insights(self.insights, 8, 9)
        self.assertTrue(updated)
        merges = [c for c in spy.call_args_list if "$max" in c.args[1]]
        self.assertEqual(len(merges), 1)
        self.assertEqual((state["total_users"], state["total_publications"]), (8, 9))

    def test_counts_beyond_int64_are_stored_as_floats(self):
        state, updated = upsert_insights(self.insights, "1e20", 10 ** 20)
        self.assertTrue(updated)
        self.assertEqual(state["total_users"], 1e20)
        self.assertEqual(state["total_publications"], 1e20)
        _, again = upsert_insights(self.insights, 1e20, 5)
        self.assertFalse(again)

    def test_legacy_document_without_counter_field(self):
        self.insights.insert_one({"key": INSIGHTS_KEY, "total_users": 3})
        state, updated = upsert_insights(self.insights, 1, 4)
        self.assertTrue(updated)
        self.assertEqual(state["total_users"], 3)
        self.assertEqual(state["total_publications"], 4)


class InsightsApiTests(unittest.TestCase):
    def setUp(self):
        self.client, self.storage = make_client()

    def test_public_read(self):
        response = self.client.get("/admin-services/public/platform-insights/")
        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload["total_users"], 0)
        self.assertEqual(payload["total_publications"], 0)
        self.assertIn("updated_at", payload)

    def test_upsert_reports_whether_it_wrote(self):
        url = "/admin-services/platform-insights/cache-upsert"
        first = self.client.post(url, json={"total_users": 5, "total_publications": "not-a-number"})
        self.assertEqual(first.status_code, 200)
        body = first.json()
        self.assertTrue(body["success"])
        self.assertTrue(body["updated"])
        self.assertEqual(body["data"]["total_users"], 5)
        self.assertEqual(body["data"]["total_publications"], 0)

        second = self.client.post(url, json={"total_users": 4, "total_publications": 0})
        self.assertFalse(second.json()["updated"])
        self.assertEqual(second.json()["data"]["updated_at"], body["data"]["updated_at"])

        read = self.client.get("/admin-services/public/platform-insights/").json()
        self.assertEqual(read["total_users"], 5)

    def test_upsert_huge_count(self):
        response = self.client.post(
            "/admin-services/platform-insights/cache-upsert", json={"total_users": 1e20}
        )
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.json()["updated"])
        self.assertEqual(response.json()["data"]["total_users"], 1e20)

    def test_upsert_without_body(self):
        response = self.client.post("/admin-services/platform-insights/cache-upsert")
        self.assertEqual(response.status_code, 200)
        self.assertFalse(response.json()["updated"])


class InsightsTokenGateTests(unittest.TestCase):
    url = "/admin-services/platform-insights/cache-upsert"

    def setUp(self):
        self.client, _ = make_client(platform_insights_token="s3cret")

    def test_missing_token_rejected(self):
        response = self.client.post(self.url, json={"total_users": 1})
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json(), {"error": "Unauthorized"})

    def test_wrong_token_rejected(self):
        response = self.client.post(
            self.url, json={"total_users": 1}, headers={"Authorization": "Bearer nope"}
        )
        self.assertEqual(response.status_code, 401)

    def test_matching_token_accepted(self):
        response = self.client.post(
            self.url, json={"total_users": 1}, headers={"Authorization": "Bearer s3cret"}
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["data"]["total_users"], 1)

    def test_read_is_never_gated(self):
        response = self.client.get("/admin-services/public/platform-insights/")
        self.assertEqual(response.status_code, 200)


if __name__ == "__main__":
    unittest.main()
