import logging
import os

from rich.logging import RichHandler

from app.app import create_app
from app.config import Config, Env


CONFIG = Config()


logging.basicConfig(
    level=CONFIG.log_level,
    format="%(message)s",
    datefmt="[%X]",
    handlers=[RichHandler(rich_tracebacks=True)],
)


app = create_app(CONFIG)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", 8000)),
        reload=CONFIG.env == Env.local,
    )
