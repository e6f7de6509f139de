from __future__ import annotations

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class ApiModel(BaseModel):
    """
    Базова модель API: у JSON — camelCase (як очікує фронт),
    у Python — snake_case. Приймаємо обидва варіанти імен.
    """
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class ErrorOut(ApiModel):
    detail: str
    code: str
