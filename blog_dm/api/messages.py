import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from blog_dm.core.dependencies import get_current_user
from blog_dm.db.database import get_db
from blog_dm.models.user import User
from blog_dm.schemas.messages import (
    MarkReadResponse,
    MessageBody,
    MessageCreate,
    MessagePage,
    MessageReadResponse,
    MessageResponse,
    MessageSettingsResponse,
    MessageSettingsUpdate,
    ReadAllResponse,
    RecallResponse,
    ThreadPage,
    UnreadCountResponse,
)
from blog_dm.services import messages_service as message_service
from blog_dm.services.messages_service import MessageServiceError

logger = logging.getLogger(__name__)

router = APIRouter()


def _raise_for(e: MessageServiceError):
    logger.warning(f"请求被拒绝({e.status_code}): {e}")
    raise HTTPException(e.status_code, detail=str(e))


@router.post("/send", response_model=MessageResponse, status_code=201)
def send_message(
    message_data: MessageCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    发送消息

    Body:
        - recipient_id: 接收者ID
        - content: 消息内容（最多2000字）
        - message_type: text / image / attachment / mixed
        - attachment_url / attachment_filename / attachment_size / attachment_mime_type: 附件信息
    """
    try:
        message = message_service.send_message(db, current_user.id, message_data)
    except MessageServiceError as e:
        _raise_for(e)
    except Exception as e:
        logger.error(f"发送消息失败: {e}")
        raise HTTPException(500, detail="发送消息失败")
    return message_service.to_response(message, current_user.id)


@router.get("/threads", response_model=ThreadPage)
def list_threads(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=50),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """会话列表，按最后一条消息时间倒序"""
    return message_service.get_threads(db, current_user.id, page, page_size)


@router.get("/threads/{thread_id}", response_model=MessagePage)
def get_thread_messages(
    thread_id: str,
    page: int = Query(1, ge=1, description="页码，从1开始"),
    page_size: Optional[int] = Query(None, ge=1, le=50, description="每页条数，默认20"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    获取会话消息（分页，新消息在前）

    Path:
        - thread_id: 会话ID，格式 "小id-大id"
    """
    try:
        return message_service.get_thread_messages(db, current_user.id, thread_id, page, page_size)
    except MessageServiceError as e:
        _raise_for(e)


@router.post("/threads/{thread_id}/read", response_model=MarkReadResponse)
def mark_thread_read(
    thread_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    标记会话内发给自己的消息为已读

    说明：
        前端打开会话、第一页加载完成后调用，可重复调用
    """
    try:
        updated_count = message_service.mark_thread_read(db, thread_id, current_user.id)
    except MessageServiceError as e:
        _raise_for(e)
    return MarkReadResponse(thread_id=thread_id, updated_count=updated_count)


@router.get("/unread/count", response_model=UnreadCountResponse)
def get_unread_count(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """当前用户的未读私信总数"""
    return UnreadCountResponse(count=message_service.get_unread_count(db, current_user.id))


@router.post("/{message_id}/recall", response_model=RecallResponse)
def recall_message(
    message_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    撤回消息

    说明：
        仅发送者可以撤回，发送后超过3分钟服务端拒绝（400 recall window expired）
    """
    try:
        msg = message_service.recall_message(db, message_id, current_user.id)
    except MessageServiceError as e:
        _raise_for(e)
    return RecallResponse(message_id=msg.id, recalled_at=msg.recalled_at)


@router.post("/{message_id}/resend", response_model=MessageResponse)
def resend_message(
    message_id: int,
    body: MessageBody,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    编辑已撤回的消息并重新发送

    说明：
        原地更新同一条消息，没有时间限制
    """
    try:
        msg = message_service.resend_message(db, message_id, current_user.id, body)
    except MessageServiceError as e:
        _raise_for(e)
    return message_service.to_response(msg, current_user.id)


@router.put("/read-all", response_model=ReadAllResponse)
def mark_all_read(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """所有发给自己的未读私信标记为已读，返回标记条数"""
    return ReadAllResponse(updated_count=message_service.mark_all_read(db, current_user.id))


@router.put("/{message_id}/read", response_model=MessageReadResponse)
def mark_message_read(
    message_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    标记单条消息已读

    说明：
        仅接收者可操作，已读的消息重复调用直接返回成功
    """
    try:
        msg = message_service.mark_message_read(db, message_id, current_user.id)
    except MessageServiceError as e:
        _raise_for(e)
    return MessageReadResponse(message_id=msg.id, read_at=msg.read_at)


@router.get("/settings", response_model=MessageSettingsResponse)
def get_settings(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """私信设置（没有设置过的用户返回默认值）"""
    return MessageSettingsResponse(allow_strangers=message_service.allows_strangers(db, current_user.id))


@router.put("/settings", response_model=MessageSettingsResponse)
def update_settings(
    body: MessageSettingsUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    修改私信设置

    Body:
        - allow_strangers: 是否接收没有会话记录的人发来的私信
    """
    row = message_service.update_settings(db, current_user.id, body.allow_strangers)
    return MessageSettingsResponse(allow_strangers=row.allow_strangers)
