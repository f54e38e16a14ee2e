from typing import Optional

from pydantic import BaseModel, Field, ValidationError


class SettingsSchema(BaseModel):
    user_id: str = ""
    weight_unit: str = "kg"
    timezone: str = "UTC"
    load_step: float = Field(2.5, gt=0)
    load_increase: float = Field(0.025, ge=0)
    program_path: str = ""
    coach_model: str = "gemini-1.5-flash"
    coach_base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    coach_api_key: str | bool = ""
    coach_timeout: Optional[float] = None
    log_level: str = "INFO"


def validate_settings(data: dict) -> None:
    try:
        SettingsSchema(**data)
    except ValidationError as e:
        raise ValueError(str(e))
