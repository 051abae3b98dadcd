# -*- coding: utf-8 -*-
"""
数据模型定义
"""
from dataclasses import dataclass, field
from datetime import datetime, date
from typing import Optional, List
from enum import Enum

from .utils import format_date, format_time, get_beijing_time


class BorrowRequestStatus(Enum):
    """借阅申请状态"""
    PENDING = "pending"      # 待审核
    APPROVED = "approved"    # 已批准
    REJECTED = "rejected"    # 已拒绝
    BORROWED = "borrowed"    # 已借出
    RETURNED = "returned"    # 已归还

    @property
    def label(self) -> str:
        return STATUS_LABELS[self]


STATUS_LABELS = {
    BorrowRequestStatus.PENDING: "待审核",
    BorrowRequestStatus.APPROVED: "已批准",
    BorrowRequestStatus.REJECTED: "已拒绝",
    BorrowRequestStatus.BORROWED: "已借出",
    BorrowRequestStatus.RETURNED: "已归还",
}

# 状态只能沿 待审核 -> 已批准 -> 已借出 -> 已归还 前进，已拒绝/已归还为终态
ALLOWED_TRANSITIONS = {
    BorrowRequestStatus.PENDING: {BorrowRequestStatus.APPROVED, BorrowRequestStatus.REJECTED},
    BorrowRequestStatus.APPROVED: {BorrowRequestStatus.BORROWED},
    BorrowRequestStatus.BORROWED: {BorrowRequestStatus.RETURNED},
    BorrowRequestStatus.REJECTED: set(),
    BorrowRequestStatus.RETURNED: set(),
}


def can_transition(current: BorrowRequestStatus, target: BorrowRequestStatus) -> bool:
    """检查状态流转是否合法"""
    return target in ALLOWED_TRANSITIONS[current]


class ReviewAction(Enum):
    """审核操作"""
    APPROVE = "approve"
    REJECT = "reject"


class SubscribeMessageType(Enum):
    """订阅消息类型"""
    BORROW_SUCCESS = "BORROW_SUCCESS"      # 借阅成功通知
    RETURN_REMINDER = "RETURN_REMINDER"    # 归还提醒通知
    OVERDUE_REMINDER = "OVERDUE_REMINDER"  # 逾期提醒通知
    RETURN_SUCCESS = "RETURN_SUCCESS"      # 归还成功通知


@dataclass
class Book:
    """图书/档案"""
    id: str
    name: str
    author: str = ""
    isbn: str = ""
    category: str = ""
    description: str = ""
    cover: str = ""
    total_count: int = 0
    available_count: int = 0
    is_deleted: bool = False
    create_time: Optional[datetime] = None

    def __post_init__(self):
        if self.create_time is None:
            self.create_time = get_beijing_time()

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "author": self.author,
            "isbn": self.isbn,
            "category": self.category,
            "description": self.description,
            "cover": self.cover,
            "totalCount": self.total_count,
            "availableCount": self.available_count,
            "createTime": format_time(self.create_time),
        }


@dataclass
class User:
    """小程序用户"""
    id: str
    open_id: str
    nick_name: str = ""
    avatar_url: str = ""
    phone_number: str = ""
    department: str = ""
    email: str = ""
    # 已授权的订阅消息类型
    subscribed_types: List[str] = field(default_factory=list)
    create_time: Optional[datetime] = None
    update_time: Optional[datetime] = None

    def __post_init__(self):
        if self.create_time is None:
            self.create_time = get_beijing_time()
        if self.update_time is None:
            self.update_time = self.create_time

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "openId": self.open_id,
            "nickName": self.nick_name,
            "avatarUrl": self.avatar_url,
            "phoneNumber": self.phone_number,
            "department": self.department,
            "email": self.email,
            "subscribedTypes": list(self.subscribed_types),
            "createdAt": format_time(self.create_time),
            "updatedAt": format_time(self.update_time),
        }


@dataclass
class BorrowRequest:
    """借阅申请"""
    id: str
    book_id: str
    book_name: str
    open_id: str
    borrow_days: int
    status: BorrowRequestStatus = BorrowRequestStatus.PENDING

    # 申请人信息（非必填）
    name: str = ""
    phone: str = ""
    email: str = ""
    student_id: str = ""
    department: str = ""
    reason: str = ""
    remark: str = ""

    # 借阅日期
    borrow_date: Optional[date] = None    # 借阅日期
    return_date: Optional[date] = None    # 应归还日期
    borrow_time: Optional[datetime] = None  # 实际借出时间
    return_time: Optional[datetime] = None  # 实际归还时间

    # 借出登记
    archive_numbers: List[str] = field(default_factory=list)  # 档号
    borrow_reason: str = ""

    # 审核信息
    reviewer: str = ""  # 审核管理员
    admin_remark: str = ""
    review_time: Optional[datetime] = None

    create_time: Optional[datetime] = None
    update_time: Optional[datetime] = None

    def __post_init__(self):
        if self.create_time is None:
            self.create_time = get_beijing_time()
        if self.update_time is None:
            self.update_time = self.create_time

    def days_until_due(self, today: date) -> Optional[int]:
        """距应归还日期的天数，逾期为负数"""
        if not self.return_date:
            return None
        return (self.return_date - today).days

    def is_overdue(self, today: date) -> bool:
        """已借出且超过应归还日期"""
        if self.status != BorrowRequestStatus.BORROWED or not self.return_date:
            return False
        return self.return_date < today

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "bookId": self.book_id,
            "bookName": self.book_name,
            "openId": self.open_id,
            "borrowDays": self.borrow_days,
            "status": self.status.value,
            "statusText": self.status.label,
            "name": self.name,
            "phone": self.phone,
            "email": self.email,
            "studentId": self.student_id,
            "department": self.department,
            "reason": self.reason,
            "remark": self.remark,
            "borrowDate": format_date(self.borrow_date),
            "returnDate": format_date(self.return_date),
            "borrowTime": format_time(self.borrow_time),
            "returnTime": format_time(self.return_time),
            "archiveNumbers": list(self.archive_numbers),
            "borrowReason": self.borrow_reason,
            "reviewer": self.reviewer,
            "adminRemark": self.admin_remark,
            "reviewTime": format_time(self.review_time),
            "createdAt": format_time(self.create_time),
            "updatedAt": format_time(self.update_time),
        }


@dataclass
class Admin:
    """管理员信息"""
    id: str
    username: str
    password_hash: str
    create_time: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "create_time": format_time(self.create_time),
        }


@dataclass
class OperationLog:
    """操作日志"""
    id: str
    operation_time: datetime
    operator: str
    operation_content: str
    request_info: str

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "operation_time": format_time(self.operation_time),
            "operator": self.operator,
            "operation_content": self.operation_content,
            "request_info": self.request_info,
        }


@dataclass
class Notification:
    """站内通知消息"""
    id: str
    open_id: str  # 接收通知的用户
    title: str
    content: str
    request_id: str = ""
    book_name: str = ""
    is_read: bool = False
    create_time: Optional[datetime] = None
    notification_type: str = "info"  # info, warning, error, success

    def __post_init__(self):
        if self.create_time is None:
            self.create_time = get_beijing_time()

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "open_id": self.open_id,
            "title": self.title,
            "content": self.content,
            "request_id": self.request_id,
            "book_name": self.book_name,
            "is_read": self.is_read,
            "create_time": format_time(self.create_time),
            "notification_type": self.notification_type,
        }


@dataclass
class SentReminder:
    """已发送的提醒（用于避免重复发送）"""
    key: str
    request_id: str
    reminder_type: str
    sent_date: date
    sent_time: Optional[datetime] = None

    def __post_init__(self):
        if self.sent_time is None:
            self.sent_time = get_beijing_time()
