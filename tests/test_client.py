import unittest
import sys
import os
from unittest import mock
sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from client import TrackerClient


class ClientTest(unittest.TestCase):
    def setUp(self) -> None:
        self.client = TrackerClient(base_url="http://testserver/")

    def _response(self, payload):
        resp = mock.Mock()
        resp.json.return_value = payload
        return resp

    def test_due_workout(self) -> None:
        with mock.patch("client.requests.get") as get:
            get.return_value = self._response({"slot": 1})
            self.assertEqual(self.client.due_workout("2024-01-01"), {"slot": 1})
        get.assert_called_once_with(
            "http://testserver/workouts/due", params={"date": "2024-01-01"}
        )

    def test_update_set_sends_only_given_fields(self) -> None:
        with mock.patch("client.requests.put") as put:
            put.return_value = self._response({"state": "loaded"})
            self.client.update_set("2024-01-01", 0, 1, weight=80.0, is_done=True)
        put.assert_called_once_with(
            "http://testserver/logs/2024-01-01/sets",
            params={"exercise_index": 0, "set_index": 1, "weight": 80.0, "is_done": "true"},
        )

    def test_recovery_and_advice(self) -> None:
        with mock.patch("client.requests.put") as put:
            put.return_value = self._response({"sleep_hours": 7})
            self.client.update_recovery("2024-01-01", sleep_hours=7)
        self.assertEqual(put.call_args[1]["json"], {"sleep_hours": 7})
        with mock.patch("client.requests.post") as post:
            post.return_value = self._response({"advice": "Rest more"})
            self.assertEqual(self.client.advice(), "Rest more")

    def test_errors_propagate(self) -> None:
        with mock.patch("client.requests.get") as get:
            resp = self._response({})
            resp.raise_for_status.side_effect = RuntimeError("409")
            get.return_value = resp
            with self.assertRaises(RuntimeError):
                self.client.kpis()


if __name__ == '__main__':
    unittest.main()
