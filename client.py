import requests
from typing import Optional

class TrackerClient:
    """Simple REST client for the tracker API."""

    def __init__(self, base_url: str = "http://localhost:8000") -> None:
        self.base_url = base_url.rstrip("/")

    def due_workout(self, date: Optional[str] = None) -> dict:
        params = {"date": date} if date else {}
        resp = requests.get(f"{self.base_url}/workouts/due", params=params)
        resp.raise_for_status()
        return resp.json()

    def get_log(self, date: str) -> dict:
        resp = requests.get(f"{self.base_url}/logs/{date}")
        resp.raise_for_status()
        return resp.json()

    def update_set(
        self,
        date: str,
        exercise_index: int,
        set_index: int,
        weight: Optional[float] = None,
        reps: Optional[int] = None,
        is_done: Optional[bool] = None,
    ) -> dict:
        params = {"exercise_index": exercise_index, "set_index": set_index}
        if weight is not None:
            params["weight"] = weight
        if reps is not None:
            params["reps"] = reps
        if is_done is not None:
            params["is_done"] = str(is_done).lower()
        resp = requests.put(f"{self.base_url}/logs/{date}/sets", params=params)
        resp.raise_for_status()
        return resp.json()

    def targets(self, date: str) -> dict:
        resp = requests.get(f"{self.base_url}/logs/{date}/targets")
        resp.raise_for_status()
        return resp.json()

    def update_recovery(self, date: str, **fields) -> dict:
        resp = requests.put(f"{self.base_url}/recovery/{date}", json=fields)
        resp.raise_for_status()
        return resp.json()

    def kpis(self) -> dict:
        resp = requests.get(f"{self.base_url}/stats/kpis")
        resp.raise_for_status()
        return resp.json()

    def advice(self, date: Optional[str] = None) -> str:
        params = {"date": date} if date else {}
        resp = requests.post(f"{self.base_url}/coach/advice", params=params)
        resp.raise_for_status()
        return resp.json()["advice"]
