"""FastAPI application entrypoint."""
from fastapi import FastAPI, WebSocket
from fastapi.middleware.cors import CORSMiddleware
from soundman.api import ws_audio, rest_status, rest_labels
from soundman.core.config import settings
from soundman.core.logging import setup_logging
from soundman.services.detection_service import DetectionService

# Setup logging
setup_logging()

# Create FastAPI app
app = FastAPI(
    title="SoundMan Backend",
    description="Real-time sound classification, labeling and per-category audio transformation",
    version="0.1.0"
)

# CORS middleware (allow frontend connections)
# Note: For WebSocket, CORS doesn't apply, but this helps with REST API
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,  # Must be False when using "*" origins
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(rest_status.router)
app.include_router(rest_labels.router)


# WebSocket endpoint
@app.websocket("/ws/audio")
async def websocket_endpoint(websocket: WebSocket):
    """WebSocket endpoint for audio streaming."""
    # ws_audio.websocket_audio_endpoint already calls websocket.accept()
    await ws_audio.websocket_audio_endpoint(websocket, websocket.app.state.detection_service)


@app.on_event("startup")
async def startup_event():
    """Create the detection service and pick the acoustic backend."""
    from soundman.core.logging import logger

    logger.info(f"Starting SoundMan backend on {settings.host}:{settings.port}")
    logger.info(f"Sample rate: {settings.sample_rate} Hz, cluster strategy: {settings.cluster_strategy}")

    service = DetectionService()
    service.configure_acoustic_backend()
    app.state.detection_service = service


@app.on_event("shutdown")
async def shutdown_event():
    """Cleanup on shutdown."""
    from soundman.core.logging import logger
    logger.info("Shutting down SoundMan backend")
    app.state.detection_service.shutdown()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "soundman.main:app",
        host=settings.host,
        port=settings.port,
        reload=True
    )
