from fastapi import APIRouter, Depends, File, HTTPException, Response, UploadFile, status

from app.routers.deps import get_current_user_id, get_object_store, get_storage_paths
from app.services.storage import ObjectStore, delete_file, get_file_url, read_upload_file, upload_file
from app.services.storage_paths import StoragePathUtil

router = APIRouter(prefix="/files", tags=["files"])


def _require_owned_path(paths: StoragePathUtil, path: str, user_id: str) -> None:
    if paths.parse_file_path(path).user_id != user_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="File not found")


@router.post("", status_code=status.HTTP_201_CREATED)
async def upload(
    file: UploadFile = File(...),
    user_id: str = Depends(get_current_user_id),
    paths: StoragePathUtil = Depends(get_storage_paths),
    store: ObjectStore = Depends(get_object_store),
) -> dict:
    filename = file.filename or ""
    data = await read_upload_file(file)
    result = upload_file(store, paths, user_id, filename, data)
    if not result.success:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=result.error)
    return {**result.data, "original_filename": filename, "size": len(data)}


@router.get("/url")
def file_url(
    path: str,
    download: bool = False,
    user_id: str = Depends(get_current_user_id),
    paths: StoragePathUtil = Depends(get_storage_paths),
) -> dict:
    _require_owned_path(paths, paths.normalize_path(path), user_id)
    result = get_file_url(paths, path, download=download)
    if not result.success:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=result.error)
    return {"url": result.data}


@router.delete("", status_code=status.HTTP_204_NO_CONTENT)
def remove(
    path: str,
    user_id: str = Depends(get_current_user_id),
    paths: StoragePathUtil = Depends(get_storage_paths),
    store: ObjectStore = Depends(get_object_store),
) -> Response:
    _require_owned_path(paths, paths.normalize_path(path), user_id)
    result = delete_file(store, paths, path)
    if not result.success:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=result.error)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
