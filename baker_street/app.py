from fastapi import FastAPI

from baker_street.config import get_config
from baker_street.llm import LLM, HttpLLM
from baker_street.pipeline import CaseEngine
from baker_street.routes import router
from baker_street.stream import HttpStreamSource, StreamSource


def create_app(
    source: StreamSource | None = None,
    llm: LLM | None = None,
    config: dict | None = None,
) -> FastAPI:
    resolved = config or get_config()

    app = FastAPI(title="Baker Street")
    app.state.engine = CaseEngine(source or HttpStreamSource.from_config(resolved), resolved)
    app.state.llm = llm or HttpLLM.from_config(resolved)
    app.include_router(router, prefix="/api")
    return app
