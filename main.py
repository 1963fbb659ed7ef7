from fastapi import Body, FastAPI
from fastapi.responses import JSONResponse
from core.config import settings
from core.logger import logger
from core.registry import active_requests
from services.handlers import handle_playback_webhook, handle_radarr_webhook, handle_sonarr_webhook

app = FastAPI(title="Infinite Plex Library")


# Endpoints stay sync: FastAPI runs them in its thread pool.
@app.post("/webhook")
def webhook(data: dict = Body(...)):
    return handle_playback_webhook(data)


@app.post("/radarr-webhook")
def radarr_webhook(data: dict = Body(...)):
    try:
        return handle_radarr_webhook(data)
    except Exception as e:
        logger.error(f"Radarr webhook handling failed: {e}", extra={'emoji_type': 'error'})
        return JSONResponse({"status": "error", "message": str(e)}, status_code=500)


@app.post("/sonarr-webhook")
def sonarr_webhook(data: dict = Body(...)):
    try:
        return handle_sonarr_webhook(data)
    except Exception as e:
        logger.error(f"Sonarr webhook handling failed: {e}", extra={'emoji_type': 'error'})
        return JSONResponse({"status": "error", "message": str(e)}, status_code=500)


@app.get("/health")
def health():
    return {"status": "ok", "active_requests": len(active_requests)}


if __name__ == '__main__':
    import uvicorn

    port = settings.WEBHOOK_PORT
    logger.info(f"Server is running on port {port}", extra={'emoji_type': 'info'})
    uvicorn.run(app, host="0.0.0.0", port=port)
