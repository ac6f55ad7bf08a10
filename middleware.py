# middleware.py
from fastapi import FastAPI, Request
from utils.logging import logger
import time

QUIET_PATHS = ("/health",)

async def add_process_time_header(request: Request, call_next):
    """Expose request processing time to clients"""
    start_time = time.time()
    response = await call_next(request)
    response.headers["X-Process-Time"] = f"{time.time() - start_time:.4f}"
    return response

class LoggingMiddleware:
    """Pure ASGI request logger; logs when the response starts"""
    def __init__(self, app: FastAPI):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http" or scope["path"] in QUIET_PATHS:
            return await self.app(scope, receive, send)

        start_time = time.time()

        async def wrapped_send(message):
            if message["type"] == "http.response.start":
                logger.info(
                    f"Request: {scope['method']} {scope['path']} "
                    f"Status: {message['status']} "
                    f"Duration: {time.time() - start_time:.3f}s"
                )
            await send(message)

        return await self.app(scope, receive, wrapped_send)

def setup_middleware(app: FastAPI):
    app.middleware("http")(add_process_time_header)
    app.add_middleware(LoggingMiddleware)
    logger.info("Middleware setup completed")
