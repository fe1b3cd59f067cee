"""FastAPI web server exposing the raffle to players, keepers and the coordinator."""

from __future__ import annotations

from typing import Annotated, Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from raffle import __version__
from raffle.blockchain.vrf import recover_fulfillment_signer
from raffle.lottery.errors import (
    AccessError,
    InvariantViolation,
    RaffleError,
    StateError,
    TransferError,
    ValidationError,
)
from raffle.lottery.keeper import UpkeepKeeper
from raffle.lottery.raffle import Raffle
from raffle.utils.logger import get_logger

logger = get_logger(__name__)

Word = Annotated[int, Field(ge=0, lt=2**256)]

ERROR_STATUS = (
    (ValidationError, 400),
    (AccessError, 403),
    (StateError, 409),
    (InvariantViolation, 409),
    (TransferError, 502),
)


class EnterRequest(BaseModel):
    player: str
    value: int = Field(ge=0)


class UpkeepRequest(BaseModel):
    perform_data: str = "0x"


class FulfillRequest(BaseModel):
    """Random words for an outstanding request, signed by the coordinator key."""

    request_id: int = Field(ge=0)
    random_words: List[Word] = Field(min_length=1)
    signature: str


def _decode_hex(data: str, field: str = "perform_data") -> bytes:
    text = data[2:] if data.startswith("0x") else data
    try:
        return bytes.fromhex(text)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"{field} must be hex")


def status_for(error: RaffleError) -> int:
    for error_type, status in ERROR_STATUS:
        if isinstance(error, error_type):
            return status
    return 500


class RaffleWebServer:
    """HTTP gateway for the raffle coordinator."""

    def __init__(
        self,
        config: Dict[str, Any],
        raffle: Raffle,
        keeper: Optional[UpkeepKeeper] = None,
    ) -> None:
        self.config = config
        self.raffle = raffle
        self.keeper = keeper
        self._server = None

        self.app = FastAPI(
            title="Raffle Coordinator API",
            description="Entry, upkeep and fulfillment endpoints for the automated raffle",
            version=__version__,
        )
        self._setup_middleware()
        self._setup_error_handlers()
        self._setup_routes()

    # ------------------------------------------------------------------
    # FastAPI scaffolding
    # ------------------------------------------------------------------
    def _setup_middleware(self) -> None:
        self.app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    def _setup_error_handlers(self) -> None:
        @self.app.exception_handler(RaffleError)
        async def raffle_error_handler(request: Request, exc: RaffleError) -> JSONResponse:
            return JSONResponse(status_code=status_for(exc), content=exc.to_dict())

    def _setup_routes(self) -> None:
        raffle = self.raffle

        # plain handlers run in the threadpool: reads wait on the raffle lock,
        # which perform_upkeep holds across the outbound request
        @self.app.get("/api/health")
        def health_check() -> Dict[str, Any]:
            return {
                "status": "healthy",
                "raffle": raffle.address,
                "state": raffle.raffle_state.name,
                "keeper": self.keeper.get_status() if self.keeper else None,
            }

        @self.app.get("/api/raffle")
        def raffle_status() -> Dict[str, Any]:
            return raffle.snapshot().to_dict()

        @self.app.get("/api/entrants")
        def entrants() -> Dict[str, Any]:
            players = raffle.get_all_entrants()
            return {"entrants": list(players), "entrantCount": len(players)}

        @self.app.get("/api/entrants/{index}")
        def entrant(index: int) -> Dict[str, Any]:
            try:
                return {"index": index, "player": raffle.get_entrant(index)}
            except IndexError:
                raise HTTPException(status_code=404, detail=f"No entrant at index {index}")

        @self.app.post("/api/enter")
        def enter(body: EnterRequest) -> Dict[str, Any]:
            raffle.enter(body.player, body.value)
            return {"success": True, "entrantCount": raffle.number_of_entrants}

        @self.app.get("/api/upkeep")
        def check_upkeep() -> Dict[str, Any]:
            needed, perform_data = raffle.check_upkeep(b"")
            return {"upkeepNeeded": needed, "performData": "0x" + perform_data.hex()}

        @self.app.post("/api/upkeep")
        def perform_upkeep(body: UpkeepRequest) -> Dict[str, Any]:
            request_id = raffle.perform_upkeep(_decode_hex(body.perform_data))
            return {"success": True, "requestId": request_id}

        @self.app.post("/api/fulfill")
        def fulfill(body: FulfillRequest) -> Dict[str, Any]:
            signer = recover_fulfillment_signer(
                raffle.address,
                body.request_id,
                body.random_words,
                _decode_hex(body.signature, "signature"),
            )
            winner = raffle.raw_fulfill_random_words(signer, body.request_id, body.random_words)
            return {"success": True, "winner": winner}

        @self.app.get("/api/events")
        def events(
            name: Optional[str] = None,
            limit: int = Query(default=50, ge=1, le=1000),
        ) -> Dict[str, Any]:
            items = raffle.events.events(name=name, limit=limit)
            return {"events": [event.to_dict() for event in items]}

    async def start(self, host: str = "0.0.0.0", port: int = 6080) -> None:
        import uvicorn

        logger.info("Starting raffle web server on %s:%s", host, port)
        config = uvicorn.Config(self.app, host=host, port=port, log_level="info", access_log=True)
        self._server = uvicorn.Server(config)
        try:
            await self._server.serve()
        finally:
            logger.info("Raffle web server stopped")

    async def stop(self) -> None:
        logger.info("Stopping raffle web server")
        if self._server is not None:
            self._server.should_exit = True
