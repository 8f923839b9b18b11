# services/identity/main.py
import logging
import os
import sys
from contextlib import asynccontextmanager

import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# Load environment variables before shared modules read them
load_dotenv()

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
logger = logging.getLogger(__name__)

from shared.config import COMMON_REQUIRED_ENV, get_allowed_origins, validate_environment
from shared.database import close_db, init_db
from shared.middleware import add_middleware_to_app
from shared.redis_client import close_redis, init_redis

from services.identity.routes import auth_router, profile_router


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    os.environ.setdefault("SERVICE_NAME", "identity")
    validate_environment(COMMON_REQUIRED_ENV)
    await init_db()
    await init_redis()
    logger.info("🚀 Identity service started")
    yield
    # Shutdown
    await close_db()
    await close_redis()


app = FastAPI(
    title="recipe-ai Identity Service",
    version="1.0.0",
    description="Authentication, profiles and personal API keys for recipe-ai",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_allowed_origins(),
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

add_middleware_to_app(app=app, service_name="identity", max_request_size=16 * 1024)


@app.get("/health")
async def health_check():
    return {"status": "healthy", "service": "identity", "version": "1.0.0"}


app.include_router(auth_router, prefix="/auth", tags=["authentication"])
app.include_router(profile_router, prefix="/profiles", tags=["profiles"])

if __name__ == "__main__":
    port = int(os.getenv("PORT", 8001))
    uvicorn.run(
        "services.identity.main:app",
        host="0.0.0.0",
        port=port,
        reload=os.getenv("ENVIRONMENT", "development") == "development",
    )
