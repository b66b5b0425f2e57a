from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from cognito.api.deps import close_registry
from cognito.api.routes import chat, tools
from cognito.config import settings


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    await close_registry()


app = FastAPI(
    title="Cognito",
    description="Chat orchestration with tool calls, plans and web search",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(chat.router)
app.include_router(tools.router)


@app.get("/api/health")
async def health():
    return {"status": "ok", "service": "cognito"}
