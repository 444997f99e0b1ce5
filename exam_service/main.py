# exam_service/main.py
from __future__ import annotations

import logging
import os

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from shared.database import init_db, make_engine, make_session_factory
from .routes import build_router
from .seed import seed_demo_exam

load_dotenv()

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("exam-service")


# -------------------------
# Config
# -------------------------

def _parse_origins(raw: str) -> list[str]:
    raw = (raw or "").strip()
    if not raw or raw == "*":
        return ["*"]
    return [o.strip() for o in raw.split(",") if o.strip()]


def _env_flag(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes")


DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./exam_service.db")

engine = make_engine(DATABASE_URL)
SessionLocal = make_session_factory(engine)
init_db(engine)

if _env_flag("SEED_DEMO_DATA"):
    with SessionLocal() as db:
        exam = seed_demo_exam(db)
    logger.info("Demo exam ready: %s", exam.id)

app = FastAPI(title="Exam Service", version="1.0.0")

origins = _parse_origins(os.getenv("CORS_ORIGINS", "*"))
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    # Browsers reject "*" with credentials
    allow_credentials=origins != ["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(build_router(SessionLocal), prefix="/exam", tags=["Exam"])


@app.get("/health", operation_id="health_check", tags=["Health"])
async def health_check():
    return {"status": "healthy", "service": "exam-service"}


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", "8000"))
    uvicorn.run(app, host="0.0.0.0", port=port)
