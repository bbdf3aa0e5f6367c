# examdesk/auth/auth_utils.py
from jose import jwt, JWTError
from fastapi import Header, HTTPException

from examdesk.exams import config


def decode_student_token(token: str) -> dict:
    try:
        return jwt.decode(token, config.JWT_SECRET_KEY, algorithms=[config.JWT_ALGORITHM])
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid or Expired Token")


def verify_student_token(authorization: str = Header(None)) -> dict:
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Unauthorized")

    token = authorization.split(" ", 1)[1]
    # Checks signature and expiration
    return decode_student_token(token)
