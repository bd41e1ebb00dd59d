"""
Run the cafe POS API with uvicorn.

Example:
  python -m apps.pos --reload
"""
import os
import sys

import uvicorn


def main() -> None:
    reload = os.getenv("POS_RELOAD", "false").lower() == "true" or "--reload" in sys.argv[1:]
    host = os.getenv("POS_HOST", "0.0.0.0")
    port = int(os.getenv("POS_PORT", "8000"))
    uvicorn.run(
        "apps.pos.app.main:app",
        host=host,
        port=port,
        reload=reload,
        reload_dirs=["apps", "libs"] if reload else None,
    )


if __name__ == "__main__":
    main()
