import logging
from datetime import datetime, timezone

from fastapi import Depends, FastAPI, HTTPException, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from .chat import ChatRequest, Narrator, narrate, process_turn
from .chat_sessions import ChatSessionStore
from .core.config import get_settings
from .core.db import AsyncSessionLocal, Base, engine, get_session
from .core.errors import BarbershopNotFoundError
from .core.responses import ErrorCodes, error_response
from .seed import seed_initial_data
from .tenancy import BarbershopQueries


settings = get_settings()
app = FastAPI(title="Barbershop Booking Chat")
logger = logging.getLogger(__name__)

APOLOGY = "Desculpe, ocorreu um erro ao processar sua mensagem. Tente novamente em instantes."

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins_list or ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
async def on_startup():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    if settings.seed_demo_data:
        async with AsyncSessionLocal() as session:
            await seed_initial_data(session)


def get_narrator() -> Narrator:
    return narrate


def get_clock() -> datetime:
    return datetime.now(timezone.utc)


@app.get("/health")
async def healthcheck():
    return {"ok": True}


@app.post("/chat")
@app.post("/barbershop-chatbot")
async def chat_endpoint(
    request: ChatRequest,
    session: AsyncSession = Depends(get_session),
    narrator: Narrator = Depends(get_narrator),
    now: datetime = Depends(get_clock),
):
    """Booking chat: one client message in, one reply out."""
    queries = BarbershopQueries(session, request.barbershop_id)
    store = ChatSessionStore(session, request.barbershop_id)
    try:
        result = await process_turn(request, queries, store, narrator=narrator, now=now)
    except BarbershopNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=exc.message)
    except SQLAlchemyError:
        logger.exception("Database error while handling chat turn")
        await session.rollback()
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "message": APOLOGY,
                **error_response(ErrorCodes.DATABASE_ERROR, "Database error"),
            },
        )
    except Exception:
        logger.exception("Unexpected error while handling chat turn")
        await session.rollback()
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "message": APOLOGY,
                **error_response(ErrorCodes.INTERNAL_ERROR, "Internal error"),
            },
        )
    return result.to_payload()
