import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from division_tracker.api.divisions import router as divisions_router
from division_tracker.api.schedule import router as schedule_router
from division_tracker.api.submissions import router as submissions_router
from division_tracker.core.config import settings

logging.basicConfig(
    level=getattr(logging, str(settings.LOG_LEVEL).upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(title="Division Tracker")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/")
async def root():
    return {"status": "ok", "message": "division tracker running"}


app.include_router(divisions_router)
app.include_router(submissions_router)
app.include_router(schedule_router)
