# copilot/server.py
import logging
import math
import threading
import time
from collections import deque
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from copilot.data import SessionStore
from copilot.llm.answerer import generate_answer
from copilot.llm.gpt_client import GPTClient
from copilot.rag.retriever import build_corpus, retrieve
from copilot.ratelimit import RateLimiter, get_client_identifier
from copilot.settings import Settings, load_settings

log = logging.getLogger(__name__)


# ---------------------------
# Event log (tail shown on /healthz)
# ---------------------------
class EventLog:
    def __init__(self, maxlen: int = 200):
        self._lock = threading.Lock()
        self._events: deque = deque(maxlen=maxlen)

    def add(self, ev: str, detail: Optional[Dict] = None):
        with self._lock:
            self._events.append({"t": int(time.time()), "event": ev, **(detail or {})})

    def tail(self, n: int = 40):
        with self._lock:
            return list(self._events)[-n:]


# ---------------------------
# Schemas
# ---------------------------
class ChatRequest(BaseModel):
    # Anything that is not a non-blank string gets the 400 below, not a 422.
    message: Any = None


def create_app(
    settings: Optional[Settings] = None,
    limiter: Optional[RateLimiter] = None,
    store: Optional[SessionStore] = None,
    client: Optional[GPTClient] = None,
) -> FastAPI:
    """Build the API with its long-lived services attached to ``app.state``."""
    settings = (settings or load_settings()).validate()

    app = FastAPI(
        title="Studio Revenue Copilot",
        version="0.1.0",
        description="Class-session dashboard data and a retrieval-backed revenue chat.",
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.settings = settings
    app.state.limiter = limiter or RateLimiter(max_buckets=settings.max_buckets)
    app.state.store = store or SessionStore(seed=settings.data_seed)
    app.state.client = client or GPTClient()
    app.state.events = EventLog()

    @app.post("/chat")
    def chat(req: ChatRequest, request: Request):
        st = request.app.state
        if st.settings.demo_mode:
            ip = get_client_identifier(request.headers)
            result = st.limiter.check(ip, st.settings.max_req_per_minute, st.settings.max_req_per_hour)
            if not result.allowed:
                st.events.add("rate_limited", {"client": ip, "window": result.window})
                log.info("rate limited client=%s window=%s", ip, result.window)
                return JSONResponse(
                    status_code=429,
                    content={
                        "error": "Rate limit exceeded",
                        "message": "Demo is rate-limited. Try again in a moment.",
                        "window": result.window,
                    },
                    headers={"Retry-After": str(max(1, math.ceil(result.retry_after)))},
                )

        message = req.message.strip() if isinstance(req.message, str) else ""
        if not message:
            return JSONResponse(status_code=400, content={"error": "message is required"})

        try:
            t0 = time.time()
            corpus = build_corpus(st.store.get_sessions())
            top_docs = retrieve(message, corpus, k=st.settings.top_k)
            retrieval_ms = int((time.time() - t0) * 1000)

            answer, llm_meta = generate_answer(
                message,
                [d.text for d in top_docs],
                max_tokens=st.settings.answer_max_tokens,
                client=st.client,
            )
        except Exception as e:
            log.exception("chat error")
            st.events.add("error", {"error": str(e)})
            return JSONResponse(status_code=500, content={"error": str(e) or "Chat failed"})

        st.events.add("chat", {"retrieved": len(top_docs), "retrieval_ms": retrieval_ms})
        return {
            **answer,
            "meta": {
                "retrieved": [d.id for d in top_docs],
                "corpus_size": len(corpus),
                "retrieval_ms": retrieval_ms,
                **llm_meta,
            },
        }

    @app.get("/data")
    def data(request: Request):
        store = request.app.state.store
        return {"sessions": store.get_sessions(), "changelog": store.get_changelog()}

    @app.post("/regenerate")
    def regenerate(request: Request):
        st = request.app.state
        sessions = st.store.regenerate()
        st.events.add("regenerate", {"sessions": len(sessions)})
        return {"sessions": sessions, "changelog": st.store.get_changelog()}

    @app.get("/healthz")
    def healthz(request: Request):
        st = request.app.state
        return {
            "status": "ok",
            "demo_mode": st.settings.demo_mode,
            "limits": {
                "per_minute": st.settings.max_req_per_minute,
                "per_hour": st.settings.max_req_per_hour,
            },
            "sessions": len(st.store.get_sessions()),
            "rate_limit_buckets": st.limiter.size(),
            "log_tail": st.events.tail(),
        }

    return app


def main():
    import uvicorn

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    uvicorn.run(create_app(), host="127.0.0.1", port=8000)


if __name__ == "__main__":
    main()
