from fastapi import FastAPI, Depends, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, field_validator
from typing import List, Optional
from starlette.middleware.base import BaseHTTPMiddleware

import time
import uuid

from . import config, deps, puzzles
from .errors import (
    AlreadySolved,
    DailyWordError,
    InvalidDate,
    InvalidGuess,
    NoActiveUser,
    PuzzleNotPlayable,
    ReplayLocked,
    StorageUnavailable,
)
from .game import MAX_GUESSES, evaluate, keyboard_states, normalize_guess
from .history import HistoryStore
from .logging_utils import setup_logging, get_logger, request_id_ctx
from .models import GameOutcome
from .replay import ReplayLockEngine, ReplayState, ResolvedPuzzle
from .stats import StatsAggregator
from .users import (
    USERNAME_MAX_LENGTH,
    GameContext,
    clear_current_user,
    get_current_user,
    set_current_user,
    validate_username,
)


setup_logging(config.LOG_LEVEL)
logger = get_logger("dailyword")
app = FastAPI(title="Daily Word")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        rid = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        token = request_id_ctx.set(rid)
        start = time.time()
        client = request.client.host if request.client else "-"
        ua = request.headers.get("user-agent", "-")
        response = None
        try:
            response = await call_next(request)
            return response
        except Exception:
            logger.exception(
                "request_error",
                extra={"path": str(request.url), "method": request.method},
            )
            raise
        finally:
            duration_ms = int((time.time() - start) * 1000)
            status = getattr(response, "status_code", 500)
            logger.info(
                "request",
                extra={
                    "method": request.method,
                    "path": request.url.path,
                    "status": status,
                    "duration_ms": duration_ms,
                    "client": client,
                    "user_agent": ua,
                },
            )
            if response is not None:
                response.headers["X-Request-ID"] = rid
            request_id_ctx.reset(token)


app.add_middleware(RequestLoggingMiddleware)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.warning("validation_error", extra={"method": request.method, "path": request.url.path, "errors": exc.errors()})
    return JSONResponse(
        status_code=422,
        content={
            "detail": jsonable_errors(exc.errors()),
            "message": "Input validation failed"
        }
    )


def jsonable_errors(errors) -> list:
    # pydantic puts the raised exception object under ctx; keep only its text
    out = []
    for err in errors:
        err = dict(err)
        if "ctx" in err:
            err["ctx"] = {k: str(v) for k, v in err["ctx"].items()}
        out.append(err)
    return out


_ERROR_STATUS = (
    (NoActiveUser, 401),
    (InvalidDate, 400),
    (InvalidGuess, 400),
    (PuzzleNotPlayable, 404),
    (AlreadySolved, 403),
    (ReplayLocked, 403),
    (StorageUnavailable, 503),
)


@app.exception_handler(DailyWordError)
async def domain_exception_handler(request: Request, exc: DailyWordError):
    status = next((code for cls, code in _ERROR_STATUS if isinstance(exc, cls)), 500)
    content = {"detail": str(exc)}
    if isinstance(exc, ReplayLocked) and exc.time_remaining is not None:
        content["time_remaining_ms"] = _ms(exc.time_remaining)
    log = logger.warning if status >= 500 else logger.info
    log("domain_error", extra={"path": request.url.path, "status": status, "error": str(exc)})
    return JSONResponse(status_code=status, content=content)


def _ms(delta) -> Optional[int]:
    if delta is None:
        return None
    return int(delta.total_seconds() * 1000)


def _resolve_date(ctx: GameContext, date: Optional[str]) -> str:
    if not date:
        return puzzles.today_str(ctx.clock)
    return puzzles.date_str(date)


@app.on_event("startup")
async def on_startup():
    from .init_db import init_db

    if deps.store is None:
        deps.store = await init_db(config.DATABASE_URL)
    deps.get_clock()
    logger.info("startup_complete", extra={"event": "startup"})


@app.get("/health", include_in_schema=False)
def health():
    return JSONResponse({"status": "ok"})


class UserRequest(BaseModel):
    username: str = Field(..., min_length=1, max_length=USERNAME_MAX_LENGTH)

    # runs before the length limits so surrounding whitespace is not counted
    @field_validator('username', mode='before')
    @classmethod
    def check_username(cls, v):
        if not isinstance(v, str):
            return v
        return validate_username(v)


@app.get("/api/user")
async def read_user():
    return {"username": await get_current_user(deps.get_store())}


@app.post("/api/user")
async def select_user(body: UserRequest):
    user = await set_current_user(deps.get_store(), body.username)
    return {"username": user}


@app.delete("/api/user")
async def forget_user():
    await clear_current_user(deps.get_store())
    return {"username": None}


@app.get("/api/puzzle")
async def get_puzzle(date: str = "", ctx: GameContext = Depends(deps.get_context)):
    """Resolve a date to its puzzle, with the current user's state for it.

    The solution is only included once the date has been won.
    """
    clock = ctx.clock
    if not puzzles.has_launched(clock):
        return {"launched": False, "time_until_launch_ms": _ms(puzzles.time_until_launch(clock))}

    day = _resolve_date(ctx, date)
    if not puzzles.is_playable(day, clock):
        raise PuzzleNotPlayable(f"{day} is not playable")

    engine = ReplayLockEngine(deps.get_store(), ctx)
    if ctx.user:
        await engine.assign_replay_link(day)
        resolved = await engine.resolve(day)
    else:
        resolved = _canonical_resolve(day)
    if resolved.puzzle is None:
        raise PuzzleNotPlayable(f"No puzzle for {day}")

    payload = {
        "launched": True,
        "date": day,
        "display_date": puzzles.display_date(day),
        "puzzle_number": puzzles.sequence_number_string(resolved.puzzle.sequence_number),
        "original_date": resolved.original_date.isoformat() if resolved.original_date else None,
        "is_replayable": resolved.is_replayable,
        "max_guesses": MAX_GUESSES,
    }
    if ctx.user:
        state = await engine.state(day)
        status = await engine.can_replay(day)
        payload.update({
            "state": state.value,
            "can_replay": status.can_replay,
            "time_remaining_ms": _ms(status.time_remaining),
        })
        if state is ReplayState.WON:
            payload["solution"] = resolved.puzzle.word
    return payload


def _canonical_resolve(day: str) -> ResolvedPuzzle:
    # without a user there are no replay links, only the canonical table
    return ResolvedPuzzle(play_date=puzzles.parse_date(day), puzzle=puzzles.puzzle_for_date(day))


class EvaluateRequest(BaseModel):
    guess: str = Field(..., min_length=1, max_length=16)
    date: Optional[str] = None

    @field_validator('guess')
    @classmethod
    def check_guess(cls, v):
        return normalize_guess(v)


@app.post("/api/evaluate")
async def evaluate_guess(body: EvaluateRequest, ctx: GameContext = Depends(deps.get_context)):
    day = _resolve_date(ctx, body.date)
    if not puzzles.is_playable(day, ctx.clock):
        raise PuzzleNotPlayable(f"{day} is not playable")
    resolved = await ReplayLockEngine(deps.get_store(), ctx).resolve(day)
    if resolved.solution is None:
        raise PuzzleNotPlayable(f"No puzzle for {day}")
    tiles = evaluate(body.guess, resolved.solution)
    return {
        "date": day,
        "guess": body.guess,
        "tiles": [t.value for t in tiles],
        "solved": body.guess == resolved.solution,
    }


class CompleteRequest(BaseModel):
    guesses: List[str] = Field(..., min_length=1, max_length=MAX_GUESSES)
    date: Optional[str] = None

    @field_validator('guesses')
    @classmethod
    def check_guesses(cls, v):
        return [normalize_guess(g) for g in v]


@app.post("/api/complete")
async def complete(body: CompleteRequest, ctx: GameContext = Depends(deps.get_context)):
    day = _resolve_date(ctx, body.date)
    result = await StatsAggregator(deps.get_store(), ctx).complete_game(day, body.guesses)
    payload = {
        "date": result.date,
        "outcome": result.outcome.value,
        "replay": result.replay,
        "guesses_used": len(body.guesses),
        "stats": result.stats.as_dict(),
        "synced_date": result.synced_date,
    }
    if result.outcome is GameOutcome.WIN:
        payload["solution"] = result.solution
    return payload


@app.get("/api/stats")
async def get_stats(ctx: GameContext = Depends(deps.get_context)):
    stats, recovered = await StatsAggregator(deps.get_store(), ctx).load_stats()
    return {"username": ctx.require_user(), "stats": stats.as_dict(), "recovered": recovered}


@app.get("/api/history")
async def get_history(ctx: GameContext = Depends(deps.get_context)):
    snapshot = await HistoryStore(deps.get_store(), ctx).calendar_history()
    return {
        "username": ctx.require_user(),
        "history": {day: outcome.value for day, outcome in sorted(snapshot.entries.items())},
        "recovered": snapshot.recovered,
    }


@app.get("/api/replay_status")
async def replay_status(date: str = "", ctx: GameContext = Depends(deps.get_context)):
    day = _resolve_date(ctx, date)
    engine = ReplayLockEngine(deps.get_store(), ctx)
    state = await engine.state(day)
    status = await engine.can_replay(day)
    return {
        "date": day,
        "state": state.value,
        "can_replay": status.can_replay,
        "time_remaining_ms": _ms(status.time_remaining),
    }


@app.get("/api/guesses")
async def get_guesses(date: str = "", ctx: GameContext = Depends(deps.get_context)):
    """Saved board for a finished date, for read-only display."""
    day = _resolve_date(ctx, date)
    history = HistoryStore(deps.get_store(), ctx)
    outcome = await history.outcome_for(day)
    if outcome is None:
        raise HTTPException(status_code=404, detail=f"{day} has not been played")
    guesses = await history.load_guesses(day) or []
    resolved = await ReplayLockEngine(deps.get_store(), ctx).resolve(day)
    payload = {"date": day, "outcome": outcome.value, "guesses": guesses, "tiles": [], "keyboard": {}}
    if resolved.solution:
        payload["tiles"] = [[t.value for t in evaluate(g, resolved.solution)] for g in guesses]
        payload["keyboard"] = {k: v.value for k, v in keyboard_states(guesses, resolved.solution).items()}
        if outcome is GameOutcome.WIN:
            payload["solution"] = resolved.solution
    return payload
