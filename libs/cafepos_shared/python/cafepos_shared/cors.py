from __future__ import annotations

from fastapi.middleware.cors import CORSMiddleware

# Vite dev server, where the POS browser client runs locally.
_DEV_ORIGINS = ["http://localhost:5173", "http://127.0.0.1:5173"]


def configure_cors(app, allowed: str | None, expose_headers: list[str] | None = None):
    origins = [o.strip() for o in (allowed or "").split(",") if o.strip()] or list(_DEV_ORIGINS)

    # Wildcard origins must not be combined with credentialed requests.
    allow_credentials = "*" not in origins
    if not allow_credentials:
        origins = ["*"]

    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=allow_credentials,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=expose_headers or ["X-Request-ID"],
    )
