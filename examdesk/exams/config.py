"""
Exam Service Configuration
Database connection, auth and attempt policy settings
"""

import os

# MongoDB
MONGO_URL = os.getenv("MONGO_URL", "mongodb://localhost:27017")
MONGO_DB_NAME = os.getenv("MONGO_DB_NAME", "examdesk_db")
MONGO_TIMEOUT_MS = int(os.getenv("MONGO_TIMEOUT_MS", "5000"))

# Auth (shared secret with the identity service)
JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")

# Attempt policy
# "both" exams attached to a course never required enrollment historically
BOTH_VISIBILITY_REQUIRES_ENROLLMENT = os.getenv(
    "BOTH_VISIBILITY_REQUIRES_ENROLLMENT", "false"
).lower() == "true"
ATTEMPT_WRITE_RETRIES = int(os.getenv("ATTEMPT_WRITE_RETRIES", "1"))

# Listing
DEFAULT_PAGE_SIZE = int(os.getenv("DEFAULT_PAGE_SIZE", "10"))
MAX_PAGE_SIZE = int(os.getenv("MAX_PAGE_SIZE", "50"))

# App
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
