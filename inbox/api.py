from typing import Optional

from fastapi import FastAPI, HTTPException, status
from fastapi.middleware.cors import CORSMiddleware

from ledger import Account, AccountNotFoundError, LedgerServiceError

from .config import load_settings
from .errors import (
    InboxValidationError,
    InvalidStateTransitionError,
    ItemNotFoundError,
    NoTransactionsFoundError,
    PersistenceError,
    RemoteSourceError,
    SourceNotConfiguredError,
)
from .models import (
    FetchRequest,
    FetchResult,
    IngestResult,
    InboxOverview,
    ManualIngestRequest,
    ReviewRequest,
    ReviewResponse,
)
from .service import InboxService, build_service


def create_app(service: Optional[InboxService] = None) -> FastAPI:
    inbox_service = service or build_service(load_settings())

    app = FastAPI(
        title="Transaction Inbox API",
        description="Extract, deduplicate and review bank-alert transactions before committing them to the ledger",
        version="1.0.0",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.inbox_service = inbox_service

    @app.get("/health", tags=["System"])
    def health_check():
        return {"status": "healthy", "service": "transaction-inbox"}

    @app.get("/inbox", response_model=InboxOverview, tags=["Inbox"])
    def list_inbox() -> InboxOverview:
        try:
            return inbox_service.list_items()
        except PersistenceError as e:
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))

    @app.post("/inbox", response_model=IngestResult, tags=["Inbox"])
    def ingest_manual(request: ManualIngestRequest) -> IngestResult:
        try:
            return inbox_service.ingest_manual(
                request.raw_text,
                sender=request.sender,
                subject=request.subject,
                account_id=request.account_id,
            )
        except InboxValidationError as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
        except NoTransactionsFoundError as e:
            raise HTTPException(status_code=422, detail=str(e))
        except PersistenceError as e:
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))

    @app.post("/inbox/fetch", response_model=FetchResult, tags=["Inbox"])
    def fetch_remote(request: FetchRequest) -> FetchResult:
        try:
            return inbox_service.fetch_remote(
                query=request.query,
                max_messages=request.max_messages,
                account_id=request.account_id,
            )
        except SourceNotConfiguredError as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
        except RemoteSourceError as e:
            raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))
        except PersistenceError as e:
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))

    @app.post("/inbox/review", response_model=ReviewResponse, tags=["Review"])
    def review_item(request: ReviewRequest) -> ReviewResponse:
        try:
            return ReviewResponse(item=inbox_service.review(request))
        except InboxValidationError as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
        except (ItemNotFoundError, AccountNotFoundError) as e:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
        except InvalidStateTransitionError as e:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
        except (LedgerServiceError, PersistenceError) as e:
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))

    @app.get("/accounts/{account_id}", response_model=Account, tags=["Accounts"])
    def get_account(account_id: str) -> Account:
        try:
            return inbox_service.get_account(account_id)
        except AccountNotFoundError:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Account {account_id} not found")

    return app


if __name__ == "__main__":
    import uvicorn

    from .logging_setup import configure_logging

    settings = load_settings()
    configure_logging(settings.log_level)
    uvicorn.run(create_app(build_service(settings)), host="0.0.0.0", port=8000)
