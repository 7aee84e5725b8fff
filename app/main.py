from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import settings
from app.database import create_tables, async_session
from app.seed import seed_data
from app.routers.admin import router as admin_router
from app.routers.auth import router as auth_router
from app.routers.media import router as media_router
from app.routers.photos import router as photos_router
from app.routers.upload import router as upload_router
from app.utils.exceptions import register_exception_handlers
from app.utils.response import success_response


@asynccontextmanager
async def lifespan(app: FastAPI):
    await create_tables()
    async with async_session() as session:
        await seed_data(session)
    yield


app = FastAPI(
    title="Wedding Photos API",
    description="Guest photo sharing with SMS one-time passcode sign-in",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

app.include_router(auth_router, prefix="/api")
app.include_router(photos_router, prefix="/api")
app.include_router(upload_router, prefix="/api")
app.include_router(admin_router, prefix="/api")
app.include_router(media_router)


@app.get("/health")
async def health_check():
    return success_response(service="wedding-photos-api", version="0.1.0")
