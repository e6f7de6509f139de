from __future__ import annotations
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import jwt, JWTError

ALGORITHM = "HS256"


def create_access_token(
    *,
    subject: str,
    kind: str,
    secret: str,
    company_id: Optional[int] = None,
    expires_minutes: int = 60,
    algorithm: str = ALGORITHM,
) -> str:
    """
    Токен видає зовнішній auth-сервіс; тут функція для тулінгу, seed-скрипта і тестів.
    company_id — активна компанія (тенант) для customer-акторів.
    """
    now = datetime.now(timezone.utc)
    exp = now + timedelta(minutes=expires_minutes)
    payload: Dict[str, Any] = {
        "sub": subject,
        "kind": kind,
        "type": "access",
        "iat": int(now.timestamp()),
        "exp": int(exp.timestamp()),
    }
    if company_id is not None:
        payload["company_id"] = company_id
    return jwt.encode(payload, secret, algorithm=algorithm)


def decode_token(token: str, secret: str, algorithm: str = ALGORITHM) -> Dict[str, Any]:
    try:
        data = jwt.decode(token, secret, algorithms=[algorithm])
    except JWTError as e:
        raise ValueError("invalid_token") from e
    if data.get("type") != "access" or "sub" not in data:
        raise ValueError("invalid_token_payload")
    return data
