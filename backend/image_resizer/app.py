"""
FastAPI entrypoint for the image resizer service.

Run with:
    python -m image_resizer.app
"""

import logging
import os
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exception_handlers import http_exception_handler
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .pipeline import ImageResizer
from .routes_fastapi import get_resizer, router


async def method_not_allowed_handler(request: Request, exc: StarletteHTTPException):
    """Methods without a route (HEAD, TRACE, ...) get the same error body as the endpoint."""
    if exc.status_code == 405:
        return JSONResponse(
            status_code=405,
            content={"error": "Method Not Allowed"},
            headers=getattr(exc, "headers", None),
        )
    return await http_exception_handler(request, exc)


def create_app(resizer: Optional[ImageResizer] = None) -> FastAPI:
    app = FastAPI(
        title="Image Resizer/Optimizer API",
        description="Resize and re-encode images given by upload or URL.",
        version="1.0.0",
    )
    app.add_exception_handler(StarletteHTTPException, method_not_allowed_handler)
    app.include_router(router)
    if resizer is not None:
        app.dependency_overrides[get_resizer] = lambda: resizer
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(app, host=os.getenv("HOST", "0.0.0.0"), port=int(os.getenv("PORT", "8000")))
