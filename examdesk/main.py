from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from motor.motor_asyncio import AsyncIOMotorClient

from examdesk.core.errors import register_error_handlers
from examdesk.core.logging import setup_logging
from examdesk.exams.config import CORS_ORIGINS, MONGO_DB_NAME, MONGO_TIMEOUT_MS, MONGO_URL
from examdesk.exams.database import create_indexes
from examdesk.exams.exam_results_router import router as exam_results_router
from examdesk.exams.student_exam_router import router as student_exam_router

setup_logging()

# MongoDB Configuration
client = AsyncIOMotorClient(
    MONGO_URL,
    serverSelectionTimeoutMS=MONGO_TIMEOUT_MS,
    socketTimeoutMS=MONGO_TIMEOUT_MS,
)
db = client[MONGO_DB_NAME]


@asynccontextmanager
async def lifespan(app: FastAPI):
    await create_indexes(db)
    yield


app = FastAPI(title="Examdesk Exam Service", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_error_handlers(app)

# ==================== ROUTER REGISTRATION ====================
app.include_router(student_exam_router)
app.include_router(exam_results_router)
# ============================================================


@app.get("/health")
async def health():
    return {"status": "ok"}
