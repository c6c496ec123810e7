from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status

from app.api import deps
from app.core.settings import settings
from app.models import User
from app.services.storage.adapter import LocalFileSystemAdapter, verify_local_url_signature

router = APIRouter(prefix="/documents", tags=["documents"])


@router.put("/local-content", summary="Receive a signed upload when storage is local")
async def upload_local_content(
    request: Request,
    key: str = Query(...),
    expires: int = Query(...),
    signature: str = Query(...),
    _: User = Depends(deps.get_current_user),
):
    if settings.storage_provider != "local":
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not supported")
    if not verify_local_url_signature(settings.secret_key, key, expires, signature):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid or expired URL signature",
        )
    body = await request.body()

    adapter = LocalFileSystemAdapter(
        base_path=settings.local_upload_dir,
        base_url="",
        bucket=settings.document_bucket,
        signing_key=settings.secret_key,
    )
    try:
        adapter.write_file(key, body)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    return Response(status_code=200)
