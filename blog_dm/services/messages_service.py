# services/messages_service.py
import logging
from datetime import datetime
from typing import Optional, Tuple

from sqlalchemy import and_, desc, func, or_
from sqlalchemy.orm import Session

from blog_dm.models.message_settings import MessageSettings
from blog_dm.models.messages import Messages, utcnow
from blog_dm.models.user import User
from blog_dm.schemas.messages import (
    ATTACHMENT_PLACEHOLDER,
    IMAGE_PLACEHOLDER,
    RECALL_WINDOW,
    RECALLED_PLACEHOLDER,
    MessageBody,
    MessageCreate,
    MessagePage,
    MessageResponse,
    MessageType,
    Pagination,
    ThreadPage,
    ThreadSummary,
    compose_body,
    parse_thread_id,
    thread_id_for,
)

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 50

# 会话列表里图文消息的文字预览长度
PREVIEW_LENGTH = 20


# --------------------------------------------------
# 业务异常（路由层统一转成 HTTP 状态码）
# --------------------------------------------------
class MessageServiceError(Exception):
    status_code = 400


class MessageNotFound(MessageServiceError):
    status_code = 404


class RecipientNotFound(MessageServiceError):
    status_code = 404


class InvalidRecipient(MessageServiceError):
    status_code = 400


class InvalidThread(MessageServiceError):
    status_code = 400


class NotParticipant(MessageServiceError):
    status_code = 403


class NotSender(MessageServiceError):
    status_code = 403


class AlreadyRecalled(MessageServiceError):
    status_code = 400


class RecallWindowExpired(MessageServiceError):
    status_code = 400


class NotRecalled(MessageServiceError):
    status_code = 400


class NotRecipient(MessageServiceError):
    status_code = 403


class StrangerMessagesBlocked(MessageServiceError):
    status_code = 403


def normalize_page(page: Optional[int], page_size: Optional[int]) -> Tuple[int, int]:
    page = max(1, page or 1)
    page_size = min(MAX_PAGE_SIZE, max(1, page_size or DEFAULT_PAGE_SIZE))
    return page, page_size


def _total_pages(total: int, page_size: int) -> int:
    return (total + page_size - 1) // page_size


def _thread_participants(thread_id: str, user_id: int) -> Tuple[int, int]:
    try:
        pair = parse_thread_id(thread_id)
    except ValueError as e:
        raise InvalidThread(str(e))
    if user_id not in pair:
        raise NotParticipant("无权查看该会话")
    return pair


# --------------------------------------------------
# ORM → 响应结构
# --------------------------------------------------
def to_response(msg: Messages, viewer_id: int) -> MessageResponse:
    data = dict(
        id=msg.id,
        sender_id=msg.sender_id,
        recipient_id=msg.recipient_id,
        thread_id=msg.thread_id,
        content=msg.content,
        message_type=msg.message_type,
        attachment_url=msg.attachment_url,
        attachment_filename=msg.attachment_filename,
        attachment_size=msg.attachment_size,
        attachment_mime_type=msg.attachment_mime_type,
        is_read=msg.is_read,
        read_at=msg.read_at,
        is_recalled=msg.is_recalled,
        recalled_at=msg.recalled_at,
        created_at=msg.created_at,
        updated_at=msg.updated_at,
    )
    if msg.sender is not None:
        data.update(
            sender_username=msg.sender.username,
            sender_name=msg.sender.display_name,
            sender_avatar=msg.sender.avatar,
        )
    if msg.recipient is not None:
        data.update(
            recipient_username=msg.recipient.username,
            recipient_name=msg.recipient.display_name,
            recipient_avatar=msg.recipient.avatar,
        )

    # 已撤回的消息：对方只看到占位文字，发送方保留原文以便编辑后重新发送
    if msg.is_recalled and viewer_id != msg.sender_id:
        data.update(
            content=RECALLED_PLACEHOLDER,
            message_type=MessageType.TEXT,
            attachment_url=None,
            attachment_filename=None,
            attachment_size=None,
            attachment_mime_type=None,
        )
    return MessageResponse(**data)


def _get_own_message(db: Session, message_id: int, user_id: int) -> Messages:
    msg = db.query(Messages).filter(Messages.id == message_id).first()
    if msg is None or user_id not in (msg.sender_id, msg.recipient_id):
        raise MessageNotFound("消息不存在")
    return msg


def _apply_body(msg: Messages, body: MessageBody):
    # 正文和类型都按附件重新推导，不信任客户端声明的 message_type
    msg.content, message_type = compose_body(body.content, body.attachment)
    msg.message_type = message_type.value
    msg.attachment_url = body.attachment_url
    msg.attachment_filename = body.attachment_filename
    msg.attachment_size = body.attachment_size
    msg.attachment_mime_type = body.attachment_mime_type


# --------------------------------------------------
# 发送消息
# --------------------------------------------------
def send_message(
    db: Session,
    sender_id: int,
    message_data: MessageCreate
) -> Messages:
    if message_data.recipient_id == sender_id:
        raise InvalidRecipient("不能给自己发送私信")

    recipient = db.query(User).filter(User.id == message_data.recipient_id).first()
    if recipient is None:
        raise RecipientNotFound("接收者不存在")

    thread_id = thread_id_for(sender_id, message_data.recipient_id)
    # 对方关闭了陌生人私信：只有已经有过会话才能发
    if not allows_strangers(db, recipient.id):
        has_thread = db.query(Messages.id).filter(Messages.thread_id == thread_id).first()
        if has_thread is None:
            raise StrangerMessagesBlocked("对方不接收陌生人私信")

    new_message = Messages(
        sender_id=sender_id,
        recipient_id=message_data.recipient_id,
        thread_id=thread_id,
        is_read=False,
        is_recalled=False,
    )
    _apply_body(new_message, message_data)
    db.add(new_message)
    db.commit()
    db.refresh(new_message)

    logger.info(f"消息已发送 id={new_message.id} {sender_id} -> {message_data.recipient_id}")
    return new_message


# --------------------------------------------------
# 获取会话消息（分页，新消息在前）
# --------------------------------------------------
def get_thread_messages(
    db: Session,
    user_id: int,
    thread_id: str,
    page: Optional[int] = None,
    page_size: Optional[int] = None
) -> MessagePage:
    _thread_participants(thread_id, user_id)
    page, page_size = normalize_page(page, page_size)

    query = db.query(Messages).filter(Messages.thread_id == thread_id)
    total = query.count()
    rows = (
        query.order_by(desc(Messages.created_at), desc(Messages.id))
        .offset((page - 1) * page_size)
        .limit(page_size)
        .all()
    )
    return MessagePage(
        messages=[to_response(msg, user_id) for msg in rows],
        pagination=Pagination(
            page=page,
            page_size=page_size,
            total=total,
            total_pages=_total_pages(total, page_size),
        ),
    )


# --------------------------------------------------
# 撤回消息（仅发送者，3分钟内）
# --------------------------------------------------
def recall_message(
    db: Session,
    message_id: int,
    user_id: int,
    now: Optional[datetime] = None
) -> Messages:
    msg = _get_own_message(db, message_id, user_id)
    if msg.sender_id != user_id:
        raise NotSender("只能撤回自己发送的消息")
    if msg.is_recalled:
        raise AlreadyRecalled("消息已被撤回")

    now = now or utcnow()
    if now - msg.created_at > RECALL_WINDOW:
        raise RecallWindowExpired("recall window expired")

    msg.is_recalled = True
    msg.recalled_at = now
    db.commit()
    db.refresh(msg)

    logger.info(f"消息已撤回 id={message_id} user={user_id}")
    return msg


# --------------------------------------------------
# 编辑撤回的消息并重新发送（原地更新，不改 created_at / is_read）
# --------------------------------------------------
def resend_message(
    db: Session,
    message_id: int,
    user_id: int,
    body: MessageBody
) -> Messages:
    msg = _get_own_message(db, message_id, user_id)
    if msg.sender_id != user_id:
        raise NotSender("只能重新发送自己发送的消息")
    if not msg.is_recalled:
        raise NotRecalled("只能重新发送已撤回的消息")

    _apply_body(msg, body)
    msg.is_recalled = False
    msg.recalled_at = None
    db.commit()
    db.refresh(msg)

    logger.info(f"消息已重新发送 id={message_id} user={user_id}")
    return msg


# --------------------------------------------------
# 标记会话内发给自己的消息为已读
# --------------------------------------------------
def mark_thread_read(
    db: Session,
    thread_id: str,
    user_id: int
) -> int:
    _thread_participants(thread_id, user_id)
    updated_count = db.query(Messages).filter(
        Messages.thread_id == thread_id,
        Messages.recipient_id == user_id,
        Messages.is_read == False  # noqa: E712
    ).update({"is_read": True, "read_at": utcnow()}, synchronize_session=False)
    db.commit()
    return updated_count


# --------------------------------------------------
# 标记单条消息已读（仅接收者，可重复调用）
# --------------------------------------------------
def mark_message_read(
    db: Session,
    message_id: int,
    user_id: int
) -> Messages:
    msg = _get_own_message(db, message_id, user_id)
    if msg.recipient_id != user_id:
        raise NotRecipient("无权操作此消息")
    if not msg.is_read:
        msg.is_read = True
        msg.read_at = utcnow()
        db.commit()
        db.refresh(msg)
        logger.info(f"消息已读 id={message_id} user={user_id}")
    return msg


# --------------------------------------------------
# 全部标记已读
# --------------------------------------------------
def mark_all_read(
    db: Session,
    user_id: int
) -> int:
    updated_count = db.query(Messages).filter(
        Messages.recipient_id == user_id,
        Messages.is_read == False  # noqa: E712
    ).update({"is_read": True, "read_at": utcnow()}, synchronize_session=False)
    db.commit()
    logger.info(f"全部标记已读 user={user_id} count={updated_count}")
    return updated_count


# --------------------------------------------------
# 私信设置
# --------------------------------------------------
def allows_strangers(db: Session, user_id: int) -> bool:
    row = db.query(MessageSettings).filter(MessageSettings.user_id == user_id).first()
    return True if row is None else row.allow_strangers


def update_settings(db: Session, user_id: int, allow_strangers: bool) -> MessageSettings:
    row = db.query(MessageSettings).filter(MessageSettings.user_id == user_id).first()
    if row is None:
        row = MessageSettings(user_id=user_id)
        db.add(row)
    row.allow_strangers = allow_strangers
    db.commit()
    db.refresh(row)
    return row


# --------------------------------------------------
# 获取当前用户总未读数（已撤回的不算）
# --------------------------------------------------
def get_unread_count(
    db: Session,
    user_id: int
) -> int:
    return db.query(Messages).filter(
        Messages.recipient_id == user_id,
        Messages.is_read == False,  # noqa: E712
        Messages.is_recalled == False  # noqa: E712
    ).count()


def _preview(msg: Messages) -> str:
    if msg.is_recalled:
        return RECALLED_PLACEHOLDER
    if msg.message_type == MessageType.IMAGE.value:
        return IMAGE_PLACEHOLDER
    if msg.message_type == MessageType.ATTACHMENT.value:
        return f"{ATTACHMENT_PLACEHOLDER} {msg.attachment_filename or 'file'}"
    if msg.message_type == MessageType.MIXED.value:
        text = msg.content if len(msg.content) <= PREVIEW_LENGTH else f"{msg.content[:PREVIEW_LENGTH]}..."
        return f"{text} {ATTACHMENT_PLACEHOLDER}"
    return msg.content


# --------------------------------------------------
# 会话列表（按最后一条消息倒序）
# --------------------------------------------------
def get_threads(
    db: Session,
    user_id: int,
    page: Optional[int] = None,
    page_size: Optional[int] = None
) -> ThreadPage:
    page, page_size = normalize_page(page, page_size)
    mine = or_(Messages.sender_id == user_id, Messages.recipient_id == user_id)

    latest = db.query(
        Messages.thread_id,
        func.max(Messages.id).label("last_id"),
        func.count(Messages.id).label("total_messages")
    ).filter(mine).group_by(Messages.thread_id).subquery()

    rows = (
        db.query(Messages, latest.c.total_messages)
        .join(latest, Messages.id == latest.c.last_id)
        .order_by(desc(Messages.id))
        .offset((page - 1) * page_size)
        .limit(page_size)
        .all()
    )

    unread_rows = db.query(
        Messages.thread_id,
        func.count(Messages.id)
    ).filter(
        and_(
            Messages.recipient_id == user_id,
            Messages.is_read == False,  # noqa: E712
            Messages.is_recalled == False  # noqa: E712
        )
    ).group_by(Messages.thread_id).all()
    unread_by_thread = {thread_id: cnt for thread_id, cnt in unread_rows}

    threads = []
    for msg, total_messages in rows:
        other = msg.recipient if msg.sender_id == user_id else msg.sender
        other_id = msg.recipient_id if msg.sender_id == user_id else msg.sender_id
        threads.append(ThreadSummary(
            thread_id=msg.thread_id,
            other_user_id=other_id,
            other_username=other.username if other else None,
            other_name=other.display_name if other else None,
            other_avatar=other.avatar if other else None,
            last_message=_preview(msg),
            last_message_at=msg.created_at,
            unread_count=unread_by_thread.get(msg.thread_id, 0),
            total_messages=total_messages,
        ))

    total = db.query(func.count(func.distinct(Messages.thread_id))).filter(mine).scalar() or 0
    return ThreadPage(
        threads=threads,
        pagination=Pagination(
            page=page,
            page_size=page_size,
            total=total,
            total_pages=_total_pages(total, page_size),
        ),
    )
