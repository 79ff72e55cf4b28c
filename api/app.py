# api/app.py

"""
HTTP API for the studio: customer records, photo uploads, intake-form OCR
and search by photo.

Store handles are built once per app, opened in the lifespan hook and closed
on shutdown. Handlers are plain functions so FastAPI runs them in its thread
pool; the SQLite handle serialises access itself.
"""

import logging
import time
from contextlib import asynccontextmanager
from datetime import date, datetime
from typing import List, Optional

from fastapi import FastAPI, File, Form, HTTPException, Query, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from fastapi.staticfiles import StaticFiles
from starlette.concurrency import run_in_threadpool
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.schemas import (
    CustomerCreate,
    CustomerFields,
    ImageCheckResponse,
    ImagePayload,
    ImageSearchPayload,
    ImageSearchResponse,
    SearchMatch,
    SearchOptions,
    StatusUpdate,
    SummaryResponse,
    UploadResponse,
    VisionTextResponse,
)
from components.customer_manager import CustomerManager
from components.exporter import CustomerExporter
from components.ocr import VisionTextExtractor, parse_intake_text
from components.profile_summary import generate_summary, quick_summary
from components.similarity_search import SimilaritySearchEngine, collect_candidates
from config import SystemConfig
from core.blob_store import ImageBlobStore
from core.database import CustomerDatabase
from core.models import CustomerFilter, CustomerRecord, MatchType
from security.input_validation import InvalidImageError
from utils.image_utils import decode_base64_image
from utils.logging_config import log_operation
from utils.performance_monitor import PerformanceMonitor, timed

logger = logging.getLogger(__name__)

API_VERSION = "1.0.0"


def create_app(config: SystemConfig = None,
               database: CustomerDatabase = None,
               blob_store: ImageBlobStore = None,
               ocr: VisionTextExtractor = None,
               search_engine: SimilaritySearchEngine = None) -> FastAPI:
    """
    Build the application around explicitly constructed handles

    Any handle not passed in is built from `config`.
    """
    config = config or SystemConfig()
    storage = config.storage

    database = database or CustomerDatabase(storage.database_path)
    blob_store = blob_store or ImageBlobStore(
        root_dir=storage.uploads_dir,
        max_dimension=storage.max_image_dimension,
        jpeg_quality=storage.jpeg_quality,
        max_upload_bytes=storage.max_upload_bytes,
    )
    ocr = ocr or VisionTextExtractor(config.ocr)
    search_engine = search_engine or SimilaritySearchEngine(config.similarity_search)

    manager = CustomerManager(database, blob_store)
    exporter = CustomerExporter(database, blob_store)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        database.open()
        blob_store.initialize()
        logger.info("Studio API started (uploads in %s)", blob_store.root)
        try:
            yield
        finally:
            ocr.close()
            database.close()
            logger.info("Studio API stopped")

    app = FastAPI(title="Studio API", version=API_VERSION, lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.server.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_api_requests(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        if request.url.path.startswith("/api"):
            log_operation(
                logger, "http_request",
                method=request.method,
                path=request.url.path,
                status=response.status_code,
                duration_ms=round((time.perf_counter() - start) * 1000)
            )
        return response

    # Error mapping

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(status_code=exc.status_code, content={"message": exc.detail},
                            headers=getattr(exc, "headers", None))

    @app.exception_handler(InvalidImageError)
    async def invalid_image_handler(request: Request, exc: InvalidImageError):
        return JSONResponse(status_code=400, content={"message": str(exc)})

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError):
        return JSONResponse(status_code=400, content={"message": str(exc)})

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"message": "Internal server error"})

    def customer_payload(record: CustomerRecord) -> dict:
        data = record.to_dict()
        data['work_image_url'] = blob_store.url(record.work_image)
        data['customer_image_url'] = blob_store.url(record.customer_image)
        return data

    def get_or_404(customer_id: int) -> CustomerRecord:
        record = database.get(customer_id)
        if record is None:
            raise HTTPException(status_code=404, detail="Customer not found")
        return record

    # Health

    @app.get("/health")
    def health():
        result = {'timestamp': datetime.now().isoformat(), 'version': API_VERSION}
        try:
            with timed(result, 'response_time_ms'):
                count = database.count()
        except Exception as e:
            logger.error("Health check failed: %s", e)
            result.update(status='unhealthy', database='disconnected', error=str(e))
            return JSONResponse(status_code=500, content=result)

        result.update(status='healthy', database='connected', customer_count=count)
        return result

    @app.get("/health/detailed")
    def health_detailed():
        db_info = {}
        try:
            with timed(db_info, 'response_time_ms'):
                db_info['customer_count'] = database.count()
        except Exception as e:
            logger.error("Detailed health check failed: %s", e)
            return JSONResponse(status_code=500, content={
                'status': 'unhealthy',
                'error': str(e),
                'timestamp': datetime.now().isoformat(),
            })

        db_info['status'] = 'connected'
        return {
            'status': 'healthy',
            'database': db_info,
            'server': {
                **PerformanceMonitor.get_process_info(),
                'system': PerformanceMonitor.get_system_info(),
                'uploads_disk': PerformanceMonitor.get_disk_usage(str(blob_store.root)),
            },
            'ocr_configured': ocr.configured,
            'timestamp': datetime.now().isoformat(),
        }

    # Uploads

    @app.post("/api/upload", response_model=UploadResponse)
    def upload_image(image: UploadFile = File(...),
                     image_type: str = Form(..., alias="type")):
        if image_type not in (MatchType.WORK.value, MatchType.CUSTOMER.value):
            raise HTTPException(status_code=400, detail="Invalid image type")

        name, url = manager.store_upload(image.file.read(), image_type)
        return UploadResponse(filename=name, url=url)

    # Customers

    @app.get("/api/customers")
    def list_customers():
        return [customer_payload(r) for r in database.list()]

    @app.post("/api/customers", status_code=201)
    def create_customer(payload: CustomerCreate):
        record = manager.create_customer(payload.to_fields())
        return customer_payload(record)

    @app.get("/api/customers/paginated")
    def list_customers_paginated(page: int = Query(1, ge=1),
                                 limit: int = Query(20, ge=1),
                                 date_range: Optional[str] = None,
                                 status: Optional[str] = None,
                                 program_type: Optional[str] = None,
                                 search: Optional[str] = None):
        result = database.list_paginated(
            page, limit,
            CustomerFilter(date_range=date_range, status=status,
                           program_type=program_type, search=search)
        )
        data = result.to_dict()
        data['customers'] = [customer_payload(r) for r in result.customers]
        return data

    @app.get("/api/customers/today")
    def list_today():
        return [customer_payload(r) for r in database.list_today()]

    @app.get("/api/customers/search")
    def search_customers(q: str = ""):
        if not q.strip():
            raise HTTPException(status_code=400, detail="Search query is required")
        return [customer_payload(r) for r in database.search(q)]

    @app.get("/api/customers/export")
    def export_customers(date_range: str = Query('all', alias='range')):
        content = exporter.export_csv(date_range)
        filename = f"customers_{date_range}_{date.today():%Y%m%d}.csv"
        return Response(
            content=content,
            media_type="text/csv; charset=utf-8",
            headers={"Content-Disposition": f'attachment; filename="{filename}"'},
        )

    @app.get("/api/customers/{customer_id}")
    def get_customer(customer_id: int):
        return customer_payload(get_or_404(customer_id))

    @app.patch("/api/customers/{customer_id}")
    def update_customer(customer_id: int, payload: CustomerFields):
        record = manager.update_customer(customer_id, payload.to_fields())
        if record is None:
            raise HTTPException(status_code=404, detail="Customer not found")
        return customer_payload(record)

    @app.patch("/api/customers/{customer_id}/status")
    def update_status(customer_id: int, payload: StatusUpdate):
        record = manager.update_status(customer_id, payload.status.value)
        if record is None:
            raise HTTPException(status_code=404, detail="Customer not found")
        return customer_payload(record)

    @app.delete("/api/customers/{customer_id}", status_code=204)
    def delete_customer(customer_id: int):
        if not manager.delete_customer(customer_id):
            raise HTTPException(status_code=404, detail="Customer not found")
        return Response(status_code=204)

    @app.get("/api/customers/{customer_id}/summary", response_model=SummaryResponse)
    def customer_summary(customer_id: int):
        record = get_or_404(customer_id)
        summary = generate_summary(record)
        return SummaryResponse(**summary.to_dict(), quick_summary=quick_summary(record))

    # Images

    @app.get("/api/images/download")
    def download_images(start_date: date = Query(..., alias='startDate'),
                        end_date: date = Query(..., alias='endDate')):
        archive = exporter.build_image_archive(start_date, end_date)
        filename = f"images_{start_date:%Y%m%d}_{end_date:%Y%m%d}.zip"
        return Response(
            content=archive,
            media_type="application/zip",
            headers={"Content-Disposition": f'attachment; filename="{filename}"'},
        )

    @app.get("/api/check-images", response_model=ImageCheckResponse)
    def check_images():
        return manager.check_images()

    @app.post("/api/vision/text", response_model=VisionTextResponse)
    def vision_text(payload: ImagePayload):
        image_bytes = decode_base64_image(payload.image)
        text = ocr.extract(image_bytes)
        if text is None:
            return VisionTextResponse(text=None)
        return VisionTextResponse(text=text, fields=parse_intake_text(text).to_dict())

    @app.post("/api/image-search", response_model=ImageSearchResponse)
    async def image_search(request: Request):
        content_type = request.headers.get('content-type', '')

        if content_type.startswith('multipart/form-data'):
            form = await request.form()
            upload = form.get('image')
            if upload is None or isinstance(upload, str):
                query_bytes = b""
            else:
                query_bytes = await upload.read()
            options = SearchOptions.model_validate({
                key: form[key] for key in ('threshold', 'limit', 'months')
                if form.get(key) not in (None, '')
            })
        else:
            try:
                body = await request.json()
            except ValueError:
                raise HTTPException(status_code=400, detail="Expected JSON or multipart body")
            payload = ImageSearchPayload.model_validate(body)
            query_bytes = decode_base64_image(payload.image) if payload.image else b""
            options = payload

        return await run_in_threadpool(run_search, query_bytes, options)

    def run_search(query_bytes: bytes, options: SearchOptions) -> ImageSearchResponse:
        months = options.months or config.similarity_search.recent_months
        candidates = collect_candidates(database, blob_store, months=months)
        report = search_engine.run(
            query_bytes, candidates,
            threshold=options.threshold,
            max_results=options.limit
        )

        matches: List[SearchMatch] = [
            SearchMatch(
                customer=customer_payload(result.record),
                match_type=result.match_type.value,
                similarity=round(result.similarity_score, 4),
                percent=result.percent,
                label=result.label,
                high_confidence=result.high_confidence,
                image_url=blob_store.url(result.image_ref),
            )
            for result in report.results
        ]

        return ImageSearchResponse(
            results=matches,
            candidates_scanned=report.candidates_scanned,
            failed_candidates=report.failed_candidates,
            above_threshold=report.above_threshold,
            no_matches=report.no_matches,
            message="No similar images found" if report.no_matches else None,
        )

    app.mount(blob_store.url_prefix, StaticFiles(directory=str(blob_store.root), check_dir=False),
              name="uploads")

    return app
