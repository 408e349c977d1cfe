"""FastAPI application for book production, cost reports and originality."""

from typing import Any

from fastapi import Depends, FastAPI, HTTPException, status
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from ..factory import Services, get_services
from ..models import (
    AgentLog,
    Book,
    BookMetadata,
    AIError,
    OriginalityIssueRecord,
    PipelineError,
    RevisionDirective,
    ScanResult,
)
from ..originality import ScanPhases


# Request/Response models
class BookSummaryResponse(BaseModel):
    id: str
    title: str
    chapters: int
    completed_chapters: int
    pending_issues: int


class ScanResponse(BaseModel):
    scan: ScanResult
    new_issues: int
    resolved_issues: int
    persistent_issues: int


class IssueResolveRequest(BaseModel):
    action: str  # auto-rewrite, deleted, kept-documented
    notes: str | None = None


class HealthResponse(BaseModel):
    status: str
    credentialed_providers: list[str]


# Initialize FastAPI app
app = FastAPI(
    title="Book Forge API",
    description="Multi-provider LLM orchestration for long-form book production",
    version="0.1.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


async def _load_book(services: Services, book_id: str) -> Book:
    book = await services.store.load_book(book_id)
    if book is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail=f"Book {book_id} not found"
        )
    return book


@app.get("/api/health", response_model=HealthResponse)
async def health_check(services: Services = Depends(get_services)) -> HealthResponse:
    """Check API health and configuration."""
    providers = services.credentials.providers()
    return HealthResponse(
        status="healthy" if providers else "degraded",
        credentialed_providers=providers,
    )


@app.get("/api/books", response_model=list[BookSummaryResponse])
async def list_books(services: Services = Depends(get_services)) -> list[BookSummaryResponse]:
    books = await services.store.list_books()
    return [
        BookSummaryResponse(
            id=book.id,
            title=book.metadata.title,
            chapters=len(book.chapters),
            completed_chapters=sum(1 for c in book.chapters if c.status == "completed"),
            pending_issues=sum(1 for i in book.originality_issues if i.status == "pending"),
        )
        for book in books
    ]


@app.post("/api/books", response_model=Book)
async def create_book(
    metadata: BookMetadata, services: Services = Depends(get_services)
) -> Book:
    """Outline and save a new book."""
    try:
        return await services.runner.create_book(metadata)
    except AIError as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=e.message)
    except PipelineError as e:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))


@app.get("/api/books/{book_id}", response_model=Book)
async def get_book(book_id: str, services: Services = Depends(get_services)) -> Book:
    return await _load_book(services, book_id)


@app.post("/api/books/{book_id}/produce")
async def produce_book(book_id: str, services: Services = Depends(get_services)) -> dict[str, Any]:
    """Write every chapter that is not completed."""
    await _load_book(services, book_id)
    return await services.runner.produce_book(book_id)


@app.post("/api/books/{book_id}/revise")
async def revise_book(
    book_id: str, directive: RevisionDirective, services: Services = Depends(get_services)
) -> dict[str, Any]:
    await _load_book(services, book_id)
    return await services.runner.revise_book(book_id, directive)


@app.get("/api/logs", response_model=list[AgentLog])
async def get_logs(services: Services = Depends(get_services)) -> list[AgentLog]:
    """Latest agent activity, newest first."""
    return services.log_stream.entries


@app.get("/api/usage")
async def get_usage(services: Services = Depends(get_services)) -> dict[str, Any]:
    """Cost analytics across all books."""
    return services.ledger.detailed_analytics()


@app.get("/api/books/{book_id}/costs")
async def get_book_costs(book_id: str, services: Services = Depends(get_services)) -> dict[str, Any]:
    """Cost analytics for one book."""
    return services.ledger.book_breakdown(book_id)


@app.post("/api/books/{book_id}/scan", response_model=ScanResponse)
async def scan_book(
    book_id: str,
    phases: ScanPhases | None = None,
    services: Services = Depends(get_services),
) -> ScanResponse:
    """Run a tracked originality scan and store the result."""
    async with services.runner.lock(book_id):
        book = await _load_book(services, book_id)
        updated, tracking = await services.originality.scan_book_with_tracking(book, phases)
        await services.store.save_book(updated)
    return ScanResponse(
        scan=tracking.scan_result,
        new_issues=len(tracking.new_issues),
        resolved_issues=len(tracking.resolved_issues),
        persistent_issues=len(tracking.persistent_issues),
    )


@app.get("/api/books/{book_id}/issues", response_model=list[OriginalityIssueRecord])
async def list_issues(
    book_id: str,
    issue_status: str | None = None,
    services: Services = Depends(get_services),
) -> list[OriginalityIssueRecord]:
    book = await _load_book(services, book_id)
    if issue_status is None:
        return book.originality_issues
    return [i for i in book.originality_issues if i.status == issue_status]


@app.post("/api/books/{book_id}/issues/{issue_id}/resolve", response_model=OriginalityIssueRecord)
async def resolve_issue(
    book_id: str,
    issue_id: str,
    request: IssueResolveRequest,
    services: Services = Depends(get_services),
) -> OriginalityIssueRecord:
    """Resolve an issue by auto-rewrite, deletion or documentation."""
    async with services.runner.lock(book_id):
        book = await _load_book(services, book_id)
        try:
            if request.action == "auto-rewrite":
                updated = await services.originality.auto_fix_issue(book, issue_id)
            else:
                updated = services.originality.apply_action(book, issue_id, request.action, request.notes)
        except AIError as e:
            raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=e.message)
        except PipelineError as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

        await services.store.save_book(updated)
    return services.originality.find_record(updated, issue_id)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
