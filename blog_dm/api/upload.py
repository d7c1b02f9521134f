from fastapi import APIRouter, Depends, File, HTTPException, UploadFile

from blog_dm.core.dependencies import get_current_user
from blog_dm.models.user import User
from blog_dm.schemas.messages import UploadResponse
from blog_dm.services.upload_service import UploadRejected, save_upload

router = APIRouter()


@router.post("/image", response_model=UploadResponse, status_code=201)
async def upload_image(
    file: UploadFile = File(...),
    current_user: User = Depends(get_current_user)
):
    """
    图片上传（粘贴的图片走这里），最大 5MB
    """
    try:
        return await save_upload(file, image_only=True)
    except UploadRejected as e:
        raise HTTPException(e.status_code, detail=e.detail)


@router.post("/file", response_model=UploadResponse, status_code=201)
async def upload_file(
    file: UploadFile = File(...),
    current_user: User = Depends(get_current_user)
):
    """
    附件上传（图片、文档、压缩包），最大 10MB
    返回 url + 文件名 + 大小 + MIME 类型，用于附件气泡
    """
    try:
        return await save_upload(file, image_only=False)
    except UploadRejected as e:
        raise HTTPException(e.status_code, detail=e.detail)
