from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from club_photos.api.events import router as events_router
from club_photos.api.photos import router as photos_router
from club_photos.config import logger
from club_photos.errors import PhotoServiceError

app = FastAPI(title="Club Photo Events API")
app.include_router(photos_router)
app.include_router(events_router)


@app.exception_handler(PhotoServiceError)
def photo_service_error(request: Request, exc: PhotoServiceError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=exc.status_code,
                        content={"error": exc.kind, "detail": exc.detail})
