"""FastAPI application: decks, learn sessions, settings."""
from __future__ import annotations

import logging

logging.basicConfig(level=logging.INFO, format="%(name)s | %(message)s")

from fastapi import FastAPI, HTTPException, Request

from flashquiz.card_scheduler import MissedCardTracker, available_algorithms
from flashquiz.config import Settings, coerce_setting, load_settings, save_settings
from flashquiz.decks import load_decks
from flashquiz.mastery import MasteryStore
from flashquiz.models import Card, Deck
from flashquiz.session import LearnSession, SessionError, question_payload

app = FastAPI(title="Flashquiz")

# Global state (initialized in startup)
_store: MasteryStore | None = None
_settings: Settings | None = None
_decks: dict[str, Deck] = {}
_trackers: dict[str, MissedCardTracker] = {}  # deck_id -> missed cards across rounds
_active_sessions: dict[str, LearnSession] = {}  # session_id -> session

_log = logging.getLogger("flashquiz.app")


def get_store() -> MasteryStore:
    assert _store is not None
    return _store


def get_settings() -> Settings:
    assert _settings is not None
    return _settings


def get_deck(deck_id: str) -> Deck:
    deck = _decks.get(deck_id)
    if deck is None:
        raise HTTPException(404, f"Deck not found: {deck_id}")
    return deck


def get_card(deck: Deck, card_index: int) -> Card:
    for card in deck.cards:
        if card.idx == card_index:
            return card
    raise HTTPException(404, f"Card {card_index} not in deck {deck.id}")


def get_tracker(deck_id: str) -> MissedCardTracker:
    if deck_id not in _trackers:
        _trackers[deck_id] = MissedCardTracker()
    return _trackers[deck_id]


def get_session(session_id: str) -> LearnSession:
    session = _active_sessions.get(session_id)
    if session is None:
        raise HTTPException(404, "Session not found")
    return session


@app.on_event("startup")
async def startup():
    global _store, _settings
    if _store is not None:
        return  # Already initialized (e.g. by tests)
    _settings = load_settings()
    _store = MasteryStore(_settings.db_full_path)
    _decks.update(load_decks(_settings.decks_full_path))


@app.on_event("shutdown")
async def shutdown():
    if _store:
        _store.close()


# ── API: Decks ────────────────────────────────────────────────────────────

@app.get("/api/decks")
async def api_decks():
    s = get_settings()
    store = get_store()
    return [
        {
            "id": deck.id,
            "name": deck.name,
            "card_count": len(deck.cards),
            "mastery_percentage": store.mastery_percentage(
                deck.id, len(deck.cards), s.mastery_threshold,
            ),
        }
        for deck in _decks.values()
    ]


@app.get("/api/decks/{deck_id}/mastery")
async def api_deck_mastery(deck_id: str):
    deck = get_deck(deck_id)
    s = get_settings()
    store = get_store()
    mastered = store.get_mastered_card_indices(deck.id, s.mastery_threshold)
    return {
        "deck_id": deck.id,
        "mastered_cards": sorted(mastered),
        "mastery_percentage": store.mastery_percentage(
            deck.id, len(deck.cards), s.mastery_threshold,
        ),
        "review_cards": sorted(m.card_index for m in get_tracker(deck.id).missed_cards),
    }


@app.post("/api/decks/{deck_id}/mastery/reset")
async def api_deck_mastery_reset(deck_id: str):
    deck = get_deck(deck_id)
    removed = get_store().reset_deck(deck.id)
    get_tracker(deck.id).reset()
    _log.info("Mastery reset for '%s' (%d records)", deck.id, removed)
    return {"deck_id": deck.id, "removed": removed}


@app.post("/api/decks/{deck_id}/cards/{card_index}/mastered")
async def api_card_mark_mastered(deck_id: str, card_index: int):
    deck = get_deck(deck_id)
    card = get_card(deck, card_index)
    s = get_settings()
    store = get_store()
    store.mark_card_mastered(deck.id, card.idx, s.mastery_threshold)
    return {
        "deck_id": deck.id,
        "card_index": card.idx,
        "mastered": store.is_card_mastered(deck.id, card.idx, s.mastery_threshold),
    }


@app.delete("/api/decks/{deck_id}/cards/{card_index}/mastered")
async def api_card_unmark_mastered(deck_id: str, card_index: int):
    deck = get_deck(deck_id)
    card = get_card(deck, card_index)
    s = get_settings()
    store = get_store()
    store.unmark_card_mastered(deck.id, card.idx)
    return {
        "deck_id": deck.id,
        "card_index": card.idx,
        "mastered": store.is_card_mastered(deck.id, card.idx, s.mastery_threshold),
    }


# ── API: Session ──────────────────────────────────────────────────────────

@app.post("/api/session/start")
async def api_session_start(request: Request):
    body = await request.json()
    deck = get_deck(body.get("deck_id", ""))
    session = LearnSession(deck, get_settings(), get_store(), tracker=get_tracker(deck.id))
    question = session.start()
    _active_sessions[session.id] = session
    return {
        "session_id": session.id,
        "question": question_payload(question),
        "progress": session.progress(),
        "session_complete": question is None,
    }


@app.post("/api/session/answer")
async def api_session_answer(request: Request):
    body = await request.json()
    session = get_session(body.get("session_id", ""))
    answer = body.get("answer")
    if not isinstance(answer, str):
        raise HTTPException(400, "No answer provided")
    try:
        feedback = session.submit_answer(answer)
    except SessionError as e:
        raise HTTPException(409, str(e))
    feedback["progress"] = session.progress()
    return feedback


@app.post("/api/session/next")
async def api_session_next(request: Request):
    body = await request.json()
    session_id = body.get("session_id", "")
    session = get_session(session_id)
    result = session.advance()
    result["session_id"] = session_id
    if result["session_complete"]:
        del _active_sessions[session_id]
    return result


# ── API: Settings ─────────────────────────────────────────────────────────

@app.get("/api/settings")
async def api_get_settings():
    return get_settings().to_dict()


@app.get("/api/settings/schedulers")
async def api_schedulers():
    return available_algorithms()


@app.put("/api/settings")
async def api_update_settings(request: Request):
    body = await request.json()
    s = get_settings()
    known = {f.name for f in Settings.__dataclass_fields__.values()}
    updates = {}
    for k, v in body.items():
        if k in known:
            try:
                updates[k] = coerce_setting(k, v)
            except ValueError as e:
                raise HTTPException(400, str(e))
    for k, v in updates.items():
        setattr(s, k, v)
    save_settings(s)
    return s.to_dict()
