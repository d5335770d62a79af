import uvicorn

from rapprochement.config import get_settings

if __name__ == "__main__":
    settings = get_settings()
    uvicorn.run(
        "rapprochement.api:build_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        log_level=settings.app_log_level.lower(),
    )
