from fastapi import FastAPI, Depends, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi import status
from database.database import init_db, shutdown_db
from api.auth import router as auth_router, get_current_user
from api.activities import router as activity_router
from api.items import router as item_router
from services.errors import ScoringError, kind_for_status
from starlette.exceptions import HTTPException as StarletteHTTPException
from contextlib import asynccontextmanager
import logging
from datetime import datetime
from pathlib import Path
from scripts.config import load_config

# Load config
config = load_config()

# Setup logging
logs_dir = Path(__file__).parent / config.get("paths", {}).get("logs_dir", "logs")
logs_dir.mkdir(exist_ok=True)

logging.basicConfig(
    level=getattr(logging, config.get("app", {}).get("log_level", "INFO")),
    format='%(asctime)s - %(levelname)s - %(name)s - %(message)s',
    handlers=[
        logging.FileHandler(logs_dir / datetime.now().strftime(config.get("app", {}).get("log_file_pattern", "api_%Y%m%d.log"))),
        logging.StreamHandler()
    ]
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    init_db()
    logger.info("Database initialized")
    yield
    # Shutdown
    shutdown_db()
    logger.info("Database connections closed")

app = FastAPI(
    title=config.get("app", {}).get("name", "Classroom Scoring Backend"),
    lifespan=lifespan
)

# Add CORS middleware
cors_config = config.get("server", {}).get("cors", {})
app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_config.get("origins", ["http://localhost:3000"]),
    allow_credentials=cors_config.get("allow_credentials", True),
    allow_methods=cors_config.get("allow_methods", ["*"]),
    allow_headers=cors_config.get("allow_headers", ["*"]),
)


@app.exception_handler(ScoringError)
async def scoring_error_handler(request: Request, exc: ScoringError):
    if exc.status_code >= status.HTTP_409_CONFLICT:
        logger.warning("%s on %s %s: %s", exc.kind, request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"kind": kind_for_status(exc.status_code), "message": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    first = exc.errors()[0] if exc.errors() else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = f"{location}: {first.get('msg', 'invalid request')}" if location else first.get("msg", "invalid request")
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"kind": "ValidationError", "message": message},
    )


app.include_router(auth_router)
app.include_router(activity_router)
app.include_router(item_router)

@app.get("/")
def read_root():
    return {"name": app.title}

@app.get("/me")
def me(user = Depends(get_current_user)):
    return {"id": user.id, "email": user.email, "role": user.role}

if __name__ == "__main__":
    import uvicorn

    host = config.get("server", {}).get("host", "0.0.0.0")
    port = config.get("server", {}).get("port", 8000)

    uvicorn.run(
        "main:app",
        host=host,
        port=port,
        reload=True,
        access_log=True,
        log_level="info"
    )
