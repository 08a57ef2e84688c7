from __future__ import annotations

from dataclasses import asdict
from typing import List, Optional

from fastapi import APIRouter, File, Form, HTTPException, UploadFile

from blog_content.importing import (
    ImportConfig,
    ImportValidationError,
    JobNotFoundError,
    RawFile,
)

from api.dependencies import get_importer

router = APIRouter(prefix="/admin/articles/import", tags=["import"])


def _get_importer():
    return get_importer()


async def _read_files(files: List[UploadFile]) -> List[RawFile]:
    raw_files = []
    for upload in files:
        raw_files.append(RawFile(original_name=upload.filename or "", data=await upload.read()))
    return raw_files


def _bad_request(exc: ImportValidationError) -> HTTPException:
    return HTTPException(status_code=400, detail={"message": exc.message, "errors": exc.reasons})


@router.post("")
async def start_import(
    files: List[UploadFile] = File(...),
    author_id: str = Form(...),
    default_category: Optional[str] = Form(None),
    default_tags: Optional[str] = Form(None),
    auto_publish: Optional[str] = Form(None),
    overwrite_existing: Optional[str] = Form(None),
    import_mode: Optional[str] = Form(None),
    skip_invalid_files: Optional[str] = Form(None),
):
    config = ImportConfig.from_raw(
        {
            "default_category": default_category,
            "default_tags": default_tags,
            "auto_publish": auto_publish,
            "overwrite_existing": overwrite_existing,
            "import_mode": import_mode,
            "skip_invalid_files": skip_invalid_files,
        }
    )
    raw_files = await _read_files(files)
    try:
        response = _get_importer().start(raw_files, author_id, config)
    except ImportValidationError as exc:
        raise _bad_request(exc)
    return asdict(response)


@router.post("/validate")
async def validate_files(files: List[UploadFile] = File(...)):
    raw_files = await _read_files(files)
    try:
        report = _get_importer().check_files(raw_files)
    except ImportValidationError as exc:
        raise _bad_request(exc)
    return asdict(report)


@router.get("/progress/{job_id}")
def get_progress(job_id: str):
    try:
        job = _get_importer().require_job(job_id)
    except JobNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    return job.to_dict()


@router.post("/{job_id}/cancel")
def cancel_import(job_id: str):
    importer = _get_importer()
    try:
        importer.require_job(job_id)
    except JobNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    cancelled = importer.cancel(job_id)
    return {"job_id": job_id, "cancelled": cancelled}


@router.get("/{job_id}/statistics")
def get_statistics(job_id: str):
    stats = _get_importer().get_statistics(job_id)
    if stats is None:
        raise HTTPException(status_code=404, detail=f"Import job not found: {job_id}")
    return asdict(stats)
