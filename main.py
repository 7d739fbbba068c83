from fastapi import FastAPI
import uvicorn
import logging
import os

from database import init_db
from route_modules import combined_router

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)
logger = logging.getLogger("gym_app")

app = FastAPI(title="Gym Booking API")
app.include_router(combined_router)


@app.on_event("startup")
def on_startup():
    init_db()
    logger.info("Database tables ready")


@app.middleware("http")
async def add_no_cache_header(request, call_next):
    response = await call_next(request)
    # API responses carry live counters
    response.headers["Cache-Control"] = "no-cache, no-store, must-revalidate, max-age=0, private"
    response.headers["Pragma"] = "no-cache"
    return response


@app.get("/")
async def read_root():
    return {"status": "ok", "service": "gym-booking"}


if __name__ == "__main__":
    port = int(os.environ.get("PORT", 9007))
    uvicorn.run(app, host="0.0.0.0", port=port)
