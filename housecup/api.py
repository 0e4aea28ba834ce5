import base64
import binascii
from typing import Optional

from fastapi import FastAPI, HTTPException, Query, status
from fastapi.middleware.cors import CORSMiddleware

from costume.models import (
    ContestResult,
    CostumeEntry,
    CreateEntryRequest,
    VoteResponse,
    VoteSubmission,
    VotingSettings,
    VotingSettingsRequest,
)
from costume.service import AlreadyVotedError, ContestService, VotingClosedError
from costume.storage import InMemoryImageStore, create_contest_storage

from .config import Settings, configure_logging
from .errors import (
    ConflictError,
    HouseCupError,
    NotConfiguredError,
    NotFoundError,
    PersistenceFailure,
    ValidationError,
)
from .leaderboard import project_leaderboard
from .models import (
    GAME_ACTIONS,
    GameAction,
    House,
    Leaderboard,
    LedgerState,
    PointChangeRequest,
    PointRemovalRequest,
    QUICK_POINT_AMOUNTS,
    TransactionHistory,
)
from .notifier import ChangeNotifier
from .service import PointsService
from .storage import create_ledger_storage


def _http_error(e: HouseCupError) -> HTTPException:
    if isinstance(e, NotFoundError):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(e, VotingClosedError):
        code = status.HTTP_403_FORBIDDEN
    elif isinstance(e, ConflictError):
        code = status.HTTP_409_CONFLICT
    elif isinstance(e, (NotConfiguredError, PersistenceFailure)):
        code = status.HTTP_503_SERVICE_UNAVAILABLE
    else:
        code = status.HTTP_400_BAD_REQUEST
    return HTTPException(status_code=code, detail=str(e))


def create_app(
    settings: Optional[Settings] = None,
    points_service: Optional[PointsService] = None,
    contest_service: Optional[ContestService] = None,
    root_path: str = "",
) -> FastAPI:
    settings = settings or Settings.from_env()
    configure_logging(settings.log_level)
    notifier = ChangeNotifier()

    points_service = points_service or PointsService(
        storage=create_ledger_storage(settings.storage_backend),
        notifier=notifier,
        max_conflict_retries=settings.max_conflict_retries,
    )
    contest_service = contest_service or ContestService(
        storage=create_contest_storage(settings.storage_backend),
        image_store=InMemoryImageStore(settings.image_base_url),
        notifier=notifier,
    )

    app = FastAPI(
        title="House Cup API",
        description="House points ledger and costume contest voting",
        version="1.0.0",
        root_path=root_path,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.points_service = points_service
    app.state.contest_service = contest_service
    app.state.notifier = notifier
    app.state.settings = settings

    @app.get("/health", tags=["System"])
    def health_check():
        return {"status": "healthy", "service": "house-cup"}

    @app.get("/houses", response_model=LedgerState, tags=["Houses"])
    def get_houses() -> LedgerState:
        try:
            return points_service.current_state()
        except HouseCupError as e:
            raise _http_error(e)

    @app.get("/houses/leaderboard", response_model=Leaderboard, tags=["Houses"])
    def get_leaderboard() -> Leaderboard:
        try:
            state = points_service.current_state()
        except HouseCupError as e:
            raise _http_error(e)
        return project_leaderboard(state.totals, state.last_updated)

    @app.get("/houses/transactions", response_model=TransactionHistory, tags=["Houses"])
    def get_transactions(limit: int = Query(20, ge=1)) -> TransactionHistory:
        try:
            return points_service.recent_transactions(limit)
        except HouseCupError as e:
            raise _http_error(e)

    @app.get("/houses/actions", response_model=list[GameAction], tags=["Houses"])
    def list_game_actions() -> list[GameAction]:
        return list(GAME_ACTIONS.values())

    @app.post("/houses/reset", response_model=LedgerState, tags=["Houses"])
    def reset_points() -> LedgerState:
        try:
            return points_service.reset()
        except HouseCupError as e:
            raise _http_error(e)

    @app.post("/houses/{house}/points", response_model=LedgerState, tags=["Houses"])
    def change_points(house: House, request: PointChangeRequest) -> LedgerState:
        try:
            return points_service.apply_delta(house, request.amount, request.reason)
        except HouseCupError as e:
            raise _http_error(e)

    @app.post("/houses/{house}/remove", response_model=LedgerState, tags=["Houses"])
    def remove_points(house: House, request: PointRemovalRequest) -> LedgerState:
        try:
            return points_service.remove_capped(house, request.amount, request.reason)
        except HouseCupError as e:
            raise _http_error(e)

    @app.post("/houses/{house}/quick/{amount}", response_model=LedgerState, tags=["Houses"])
    def quick_points(house: House, amount: int) -> LedgerState:
        try:
            return points_service.apply_quick_points(house, amount)
        except HouseCupError as e:
            raise _http_error(e)

    @app.get("/houses/quick", response_model=list[int], tags=["Houses"])
    def list_quick_amounts() -> list[int]:
        return list(QUICK_POINT_AMOUNTS)

    @app.post("/houses/{house}/actions/{action_key}", response_model=LedgerState, tags=["Houses"])
    def run_game_action(house: House, action_key: str) -> LedgerState:
        try:
            return points_service.apply_game_action(house, action_key)
        except HouseCupError as e:
            raise _http_error(e)

    @app.get("/contest/entries", response_model=list[CostumeEntry], tags=["Contest"])
    def list_entries() -> list[CostumeEntry]:
        return contest_service.list_entries()

    @app.post("/contest/entries", response_model=CostumeEntry, status_code=status.HTTP_201_CREATED, tags=["Contest"])
    def add_entry(request: CreateEntryRequest) -> CostumeEntry:
        try:
            image = base64.b64decode(request.image_base64, validate=True)
        except binascii.Error:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Image is not valid base64")
        try:
            return contest_service.add_entry(request.name, image, request.filename)
        except HouseCupError as e:
            raise _http_error(e)

    @app.delete("/contest/entries/{entry_id}", status_code=status.HTTP_204_NO_CONTENT, tags=["Contest"])
    def delete_entry(entry_id: int) -> None:
        try:
            contest_service.delete_entry(entry_id)
        except HouseCupError as e:
            raise _http_error(e)

    @app.get("/contest/settings", response_model=VotingSettings, tags=["Contest"])
    def get_voting_settings() -> VotingSettings:
        return contest_service.get_voting_settings()

    @app.put("/contest/settings", response_model=VotingSettings, tags=["Contest"])
    def update_voting_settings(request: VotingSettingsRequest) -> VotingSettings:
        return contest_service.set_voting_enabled(request.enabled)

    @app.get("/contest/voters/{voter_id}", tags=["Contest"])
    def get_voter_status(voter_id: str):
        return {"voter_id": voter_id, "has_voted": contest_service.has_voted(voter_id)}

    @app.post("/contest/votes", response_model=VoteResponse, status_code=status.HTTP_201_CREATED, tags=["Contest"])
    def submit_vote(request: VoteSubmission) -> VoteResponse:
        try:
            return contest_service.submit_vote(request)
        except AlreadyVotedError as e:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
        except ValidationError as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
        except HouseCupError as e:
            raise _http_error(e)

    @app.get("/contest/votes/count", tags=["Contest"])
    def get_vote_count():
        return {"total_votes": contest_service.total_votes()}

    @app.get("/contest/results", response_model=list[ContestResult], tags=["Contest"])
    def get_results() -> list[ContestResult]:
        return contest_service.tally()

    return app


if __name__ == "__main__":
    import uvicorn
    app = create_app()
    uvicorn.run(app, host="0.0.0.0", port=8000)
