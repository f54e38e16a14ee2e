import datetime
from typing import Optional
from fastapi import FastAPI, HTTPException, Body, APIRouter

from db import (
    WorkoutLogRepository,
    RecoveryLogRepository,
    SettingsRepository,
    CoachLogRepository,
)
from program import ProgramConfig, program_from_settings
from log_schema import date_key
from session_service import LogSession
from stats_service import StatisticsService
from recommendation_service import RecommendationService
from coach_service import CoachService, CoachError
from tracker import TrackerCore
from config import APP_VERSION


class TrackerAPI:
    """Provides REST endpoints for workout logging and progression."""

    def __init__(
        self,
        db_path: str = "liftlog.db",
        yaml_path: str = "settings.yaml",
        *,
        user_id: Optional[str] = None,
        program: ProgramConfig | None = None,
        today=datetime.date.today,
    ) -> None:
        self.db_path = db_path
        self.settings = SettingsRepository(db_path, yaml_path)
        self.program = program or program_from_settings(self.settings)
        self._today = today
        self.coach_logs = CoachLogRepository(db_path)
        self.statistics = StatisticsService(self.program)
        self.recommender = RecommendationService(self.program)
        self.coach = CoachService(self.settings, self.coach_logs)
        self.core = TrackerCore(self.program, today=today)
        self.workout_logs: WorkoutLogRepository | None = None
        self.recovery_logs: RecoveryLogRepository | None = None
        self.session: LogSession | None = None
        self.set_user(user_id or self.settings.get_text("user_id", ""))
        self.app = FastAPI(
            title="Liftlog API",
            description="REST API for workout logging, progression and KPIs",
            version=APP_VERSION,
        )
        self._setup_routes()

    def set_user(self, user_id: str) -> None:
        self.core.detach()
        self.core.history = None
        self.core.recovery = {}
        if not user_id:
            self.workout_logs = None
            self.recovery_logs = None
            self.session = None
            self.core.set_user(None)
            return
        self.workout_logs = WorkoutLogRepository(self.db_path, user_id)
        self.recovery_logs = RecoveryLogRepository(self.db_path, user_id)
        self.session = LogSession(
            self.workout_logs, self.recovery_logs, self.program, self.recommender
        )
        self.core.user_id = user_id
        self.core.attach(self.workout_logs, self.recovery_logs)

    def _require_user(self) -> None:
        if self.workout_logs is None:
            raise HTTPException(status_code=409, detail="identity not ready")

    def _open_session(self, date: str) -> LogSession:
        self._require_user()
        try:
            key = date_key(date)
        except ValueError:
            raise HTTPException(status_code=400, detail="invalid date")
        if self.session.date != key:
            self.session.open(key, self.core.history, self.core.recovery)
        return self.session

    def _setup_routes(self) -> None:
        logs_router = APIRouter(prefix="/logs", tags=["Workout Logs"])
        recovery_router = APIRouter(prefix="/recovery", tags=["Recovery"])
        stats_router = APIRouter(prefix="/stats", tags=["Statistics"])

        @self.app.get("/health")
        def health():
            """Return API and identity status."""
            return {
                "status": "ok",
                "version": APP_VERSION,
                "ready": self.core.ready,
            }

        @self.app.post("/identity")
        def set_identity(user_id: str):
            self.settings.set_text("user_id", user_id)
            self.set_user(user_id)
            return {"status": "updated", "ready": self.core.ready}

        @self.app.get("/program")
        def get_program():
            return self.program.to_dict()

        @self.app.get("/workouts/due")
        def due_workout(date: Optional[str] = None):
            key = date or date_key(self._today())
            try:
                self.core.set_date(key)
            except ValueError:
                raise HTTPException(status_code=400, detail="invalid date")
            views = self.core.views
            return {
                "date": views["date"],
                "slot": views["due_slot"],
                "workout": views["due_workout"],
            }

        @self.app.get("/workouts/next")
        def next_workout():
            views = self.core.views
            return {"slot": views["next_slot"], "workout": views["next_workout"]}

        @logs_router.get("")
        def list_logs():
            self._require_user()
            return self.core.history or {}

        @logs_router.get("/{date}")
        def get_log(date: str):
            session = self._open_session(date)
            return {
                "date": session.date,
                "state": session.state,
                "log": session.log,
            }

        @logs_router.put("/{date}/sets")
        def update_set(
            date: str,
            exercise_index: int,
            set_index: int,
            weight: Optional[float] = None,
            reps: Optional[int] = None,
            is_done: Optional[bool] = None,
        ):
            session = self._open_session(date)
            try:
                state = session.update_set(
                    exercise_index, set_index, weight, reps, is_done
                )
            except IndexError as e:
                raise HTTPException(status_code=404, detail=str(e))
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))
            return {"state": state, "log": session.log}

        @logs_router.get("/{date}/targets")
        def get_targets(date: str):
            session = self._open_session(date)
            return session.targets(self.core.history)

        @recovery_router.get("")
        def list_recovery():
            self._require_user()
            return self.core.recovery

        @recovery_router.get("/{date}")
        def get_recovery(date: str):
            session = self._open_session(date)
            return session.recovery

        @recovery_router.put("/{date}")
        def update_recovery(date: str, fields: dict = Body(...)):
            session = self._open_session(date)
            try:
                return session.update_recovery(**fields)
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))

        @stats_router.get("/kpis")
        def kpis():
            return self.core.views["kpis"]

        @stats_router.get("/exercises/{exercise_id}")
        def exercise_history(exercise_id: int):
            return self.statistics.exercise_history(self.core.history, exercise_id)

        @stats_router.get("/records")
        def personal_records():
            return self.statistics.personal_records(self.core.history)

        @stats_router.get("/recovery")
        def recovery_summary(days: int = 7):
            if days < 1:
                raise HTTPException(status_code=400, detail="days must be positive")
            return self.statistics.recovery_summary(
                self.core.recovery, days, self._today()
            )

        @self.app.post("/coach/advice")
        def coach_advice(date: Optional[str] = None):
            log = None
            recovery = None
            if self.workout_logs is not None:
                session = self._open_session(date or date_key(self._today()))
                log = session.log
                recovery = session.recovery
            try:
                text = self.coach.advice(self.core.views["kpis"], log, recovery)
            except CoachError as e:
                raise HTTPException(status_code=502, detail=str(e))
            return {"advice": text}

        @self.app.get("/settings")
        def get_settings():
            data = self.settings.all_settings()
            if data.get("coach_api_key"):
                data["coach_api_key"] = "***"
            return data

        @self.app.post("/settings")
        def update_settings(data: dict = Body(...)):
            try:
                self.settings.update(data)
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))
            if "user_id" in data:
                self.set_user(str(data["user_id"] or ""))
            return {"status": "updated"}

        self.app.include_router(logs_router)
        self.app.include_router(recovery_router)
        self.app.include_router(stats_router)


api = TrackerAPI()
app = api.app

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app)
