from fastapi import Depends, HTTPException
from motor.motor_asyncio import AsyncIOMotorDatabase
from examdesk.auth.auth_utils import verify_student_token

def get_db_instance():
    """Get database from main module"""
    from examdesk.main import db
    return db

# ==================== DEPENDENCY FUNCTIONS ====================

async def get_db() -> AsyncIOMotorDatabase:
    """Database dependency"""
    return get_db_instance()

async def get_current_user_id(token_payload: dict = Depends(verify_student_token)) -> str:
    """
    Extract the student id from the verified token
    Older tokens carry it as user_id instead of sub
    """
    user_id = token_payload.get("sub") or token_payload.get("user_id")
    if not user_id:
        raise HTTPException(status_code=401, detail="Token has no subject")
    return str(user_id)
