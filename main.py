import os
import sys
import logging
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

from routes.course_routes import router as course_router
from routes.study_routes import router as study_router
from services.claude_service import ClaudeService
from services.syllabus_service import SyllabusService
from utils.exceptions import StudyMapError
from utils.file_storage import CourseStore

load_dotenv()

# Configure logging
logger = logging.getLogger(__name__)
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[logging.StreamHandler(sys.stdout)]
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    store = CourseStore.from_env()
    claude_service = ClaudeService()
    app.state.course_store = store
    app.state.claude_service = claude_service
    app.state.syllabus_service = SyllabusService(claude_service)
    logger.info(f"StudyMap API started (claude configured: {claude_service.configured})")
    try:
        yield
    finally:
        await store.close()


# FastAPI App
app = FastAPI(title="StudyMap API", lifespan=lifespan)


@app.exception_handler(StudyMapError)
async def studymap_exception_handler(request: Request, exc: StudyMapError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.error_code} {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected: {exc.error_code} {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content=jsonable_encoder({
            "success": False,
            "message": exc.message,
            "error": exc.message,
            "error_code": exc.error_code,
            "context": exc.context,
        }),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    # Report only the first violation
    errors = exc.errors()
    first = errors[0] if errors else {"loc": (), "msg": "Invalid request"}
    loc = [str(part) for part in first.get("loc", ()) if part not in ("body", "query", "path", "form")]
    field = ".".join(loc) or "body"
    message = f"{field}: {first.get('msg', 'Invalid value')}"
    logger.info(f"{request.method} {request.url.path} invalid request: {message}")
    return JSONResponse(
        status_code=400,
        content={
            "success": False,
            "message": "Invalid request format",
            "error": message,
            "error_code": "INVALID_REQUEST",
            "context": {"field": field, "violations": len(errors)},
        },
    )


@app.exception_handler(Exception)
async def unexpected_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unexpected error on {request.method} {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"success": False, "message": "Unexpected server error", "error": str(exc)},
    )


app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(course_router)
app.include_router(study_router)


@app.get("/")
async def root():
    return {"greeting": "Hello!", "message": "Welcome to the StudyMap API!"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", "8080")))
