from __future__ import annotations
import logging
from typing import Optional

import requests

from db import CoachLogRepository, SettingsRepository

logger = logging.getLogger(__name__)


class CoachError(Exception):
    """Raised when the advisory service cannot produce advice."""


class CoachService:
    """Ask a generative language model for motivational training advice.

    The advice is presentational only; nothing it returns is stored in the
    workout or recovery logs.
    """

    def __init__(
        self,
        settings: SettingsRepository,
        log_repo: CoachLogRepository | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self.settings = settings
        self.log_repo = log_repo
        self.http = session or requests.Session()

    @staticmethod
    def build_prompt(
        kpis: dict,
        log: Optional[dict] = None,
        recovery: Optional[dict] = None,
    ) -> str:
        lines = [
            "You are an encouraging strength coach. Give short, specific advice "
            "(at most four sentences) based on this athlete's data.",
            "",
            "Training summary:",
            f"- Total volume lifted: {kpis.get('total_volume', 0)} kg",
            f"- Consistency: {kpis.get('consistency_score', 0)}% of planned sets completed",
            f"- Progressive overload: {kpis.get('overload_ratio', 0)}% of sets set a new best",
            f"- Completed sets: {kpis.get('total_sets_completed', 0)}",
        ]
        weekly = kpis.get("weekly_volume") or []
        if weekly:
            recent = ", ".join(
                f"{w['week_start']}: {w['volume']}" for w in weekly[-4:]
            )
            lines.append(f"- Weekly volume (recent weeks): {recent}")
        if log:
            lines.append("")
            state = "complete" if log.get("is_complete") else "in progress"
            lines.append(f"Today's workout: {log.get('name')} ({state})")
            for ex in log.get("exercises") or []:
                done = [
                    f"{s.get('weight')}x{s.get('reps')}"
                    for s in ex.get("sets_data") or []
                    if s.get("is_done")
                ]
                performed = ", ".join(done) if done else "not started"
                lines.append(f"- {ex.get('name')} ({ex.get('rep_range')}): {performed}")
        if recovery:
            lines.append("")
            lines.append("Recovery:")
            for key in (
                "sleep_hours",
                "hrv",
                "readiness",
                "soreness",
                "cardio_duration",
                "cardio_notes",
            ):
                if recovery.get(key) not in (None, ""):
                    lines.append(f"- {key.replace('_', ' ')}: {recovery[key]}")
        return "\n".join(lines)

    def _endpoint(self) -> str:
        base = self.settings.get_text(
            "coach_base_url", "https://generativelanguage.googleapis.com/v1beta"
        ).rstrip("/")
        model = self.settings.get_text("coach_model", "gemini-1.5-flash")
        return f"{base}/models/{model}:generateContent"

    @staticmethod
    def _extract_text(payload: dict) -> str:
        try:
            parts = payload["candidates"][0]["content"]["parts"]
        except (KeyError, IndexError, TypeError):
            raise CoachError("The coach returned an unexpected response.")
        text = "".join(p.get("text", "") for p in parts if isinstance(p, dict)).strip()
        if not text:
            raise CoachError("The coach returned an empty response.")
        return text

    def request_advice(self, prompt: str) -> str:
        api_key = self.settings.get_text("coach_api_key", "")
        if not api_key or api_key == "True":
            self._record(prompt, None, False)
            raise CoachError("The coach is not configured: missing API key.")
        try:
            resp = self.http.post(
                self._endpoint(),
                params={"key": api_key},
                json={"contents": [{"parts": [{"text": prompt}]}]},
                timeout=self.settings.get_optional_float("coach_timeout"),
            )
            resp.raise_for_status()
            text = self._extract_text(resp.json())
        except requests.RequestException as e:
            logger.warning("coach request failed: %s", e)
            self._record(prompt, str(e), False)
            raise CoachError("The coach is unavailable right now. Try again later.") from e
        except (CoachError, ValueError) as e:
            logger.warning("coach response could not be used: %s", e)
            self._record(prompt, str(e), False)
            if isinstance(e, CoachError):
                raise
            raise CoachError("The coach returned an unreadable response.") from e
        self._record(prompt, text, True)
        return text

    def advice(
        self,
        kpis: dict,
        log: Optional[dict] = None,
        recovery: Optional[dict] = None,
    ) -> str:
        return self.request_advice(self.build_prompt(kpis, log, recovery))

    def _record(self, prompt: str, response: Optional[str], success: bool) -> None:
        if self.log_repo is None:
            return
        try:
            self.log_repo.log(prompt, response, success)
        except Exception:
            logger.exception("failed to record coach request")
