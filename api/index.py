# Serverless entrypoint, exposes the ASGI app
from api.routes import app

__all__ = ["app"]
