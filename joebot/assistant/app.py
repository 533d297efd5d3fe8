from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.routing import APIRouter
from loguru import logger

from joebot.assistant.bot import App, HealthResponse
from joebot.assistant.commands.psql import SubprocessPsqlRunner
from joebot.assistant.config import load_config
from joebot.assistant.deps import BotApp
from joebot.assistant.features import get_pack
from joebot.assistant.log import setup_logging
from joebot.assistant.services.platform import PlatformClient
from joebot.assistant.services.storage import JSONSessionStorage
from joebot.assistant.settings import get_settings


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    # -- Startup ---------------------------------------------------------------
    settings = get_settings()
    pack = get_pack(settings.edition)
    config = pack.options.apply(load_config(settings.config_path))
    setup_logging(settings.log_level, debug=config.app.debug)

    logger.info("Joe {} starting ({})", config.app.version, pack.entertainer.get_edition())
    logger.info("Config: {}, sessions: {}", settings.config_path, settings.sessions_path)

    bot = App(
        config,
        pack,
        PlatformClient(config.platform),
        JSONSessionStorage(settings.sessions_path),
        psql_runner=SubprocessPsqlRunner(),
    )
    _app.state.bot = None
    await bot.start()
    _app.state.bot = bot

    yield

    # -- Shutdown --------------------------------------------------------------
    logger.info("Joe shutting down")
    _app.state.bot = None
    await bot.shutdown()


app = FastAPI(title="Joe Bot", lifespan=lifespan)

# ---------------------------------------------------------------------------
# API router -- service endpoints live under /api
# ---------------------------------------------------------------------------
api = APIRouter(prefix="/api")


@api.get("/health", response_model=HealthResponse)
async def health(bot: BotApp) -> HealthResponse:
    return bot.health()


# -- Transport routers ---------------------------------------------------------
from joebot.assistant.routers.slack import router as slack_router  # noqa: E402
from joebot.assistant.routers.webui import router as webui_router  # noqa: E402

app.include_router(api)
app.include_router(slack_router)
app.include_router(webui_router)
