# -*- coding: utf-8 -*-
"""
Excel 数据存储模块
从本地Excel文件读取和保存数据
"""
import os
import json
import logging
import pandas as pd
from datetime import datetime, date
from typing import List, Optional

from .config import DATA_DIR, EXCEL_FILES
from .exceptions import DataStoreError
from .models import Book, User, BorrowRequest, Admin, OperationLog, Notification, SentReminder
from .models import BorrowRequestStatus
from .utils import format_date, format_time, parse_time

logger = logging.getLogger(__name__)

LIST_SEPARATOR = ','


def safe_str(val) -> str:
    """处理可能为NaN的字符串字段"""
    if val is None:
        return ''
    if not isinstance(val, str) and pd.isna(val):
        return ''
    if str(val).lower() == 'nan':
        return ''
    return str(val)


def safe_int(val, default=0) -> int:
    text = safe_str(val)
    if not text:
        return default
    return int(float(text))


def safe_bool(val) -> bool:
    return safe_str(val) == '是'


def safe_time(val) -> Optional[datetime]:
    text = safe_str(val)
    if not text:
        return None
    return parse_time(text)


def safe_date(val) -> Optional[date]:
    text = safe_str(val)
    if not text:
        return None
    return datetime.strptime(text[:10], '%Y-%m-%d').date()


def safe_list(val) -> List[str]:
    text = safe_str(val)
    return [item for item in text.split(LIST_SEPARATOR) if item]


def safe_json_list(val) -> List[str]:
    """档号等可能含逗号的列表按JSON保存，兼容旧的逗号分隔格式"""
    text = safe_str(val)
    if text.startswith('['):
        return [str(item) for item in json.loads(text) if str(item)]
    return safe_list(text)


def json_list(items) -> str:
    return json.dumps(list(items), ensure_ascii=False)


def bool_str(val: bool) -> str:
    return '是' if val else '否'


class ExcelDataStore:
    """Excel数据存储类，每个集合对应一个 Excel 文件"""

    def __init__(self, data_dir: str = DATA_DIR):
        self.data_dir = data_dir

    def path_for(self, name: str) -> str:
        return os.path.join(self.data_dir, EXCEL_FILES[name])

    def _read_rows(self, name: str, id_column: str):
        """读取表格，跳过主键为空的行；文件存在但无法读取时抛出 DataStoreError"""
        path = self.path_for(name)
        if not os.path.exists(path):
            return
        try:
            df = pd.read_excel(path, dtype=str)
        except Exception as e:
            logger.exception("读取 %s 失败", path)
            raise DataStoreError(f'Excel文件无法读取: {os.path.basename(path)}') from e
        for _, row in df.iterrows():
            if not safe_str(row.get(id_column)):
                continue
            yield row

    def _write_rows(self, name: str, rows: List[dict]):
        path = self.path_for(name)
        os.makedirs(self.data_dir, exist_ok=True)
        try:
            pd.DataFrame(rows).to_excel(path, index=False, engine='openpyxl')
        except PermissionError as e:
            logger.error("Excel文件被占用，无法保存数据: %s", path)
            raise DataStoreError(f'Excel文件被占用，无法保存: {os.path.basename(path)}') from e

    # ==================== 图书 ====================

    def load_books(self) -> List[Book]:
        """从Excel加载图书"""
        books = []
        for row in self._read_rows('books', '图书ID'):
            try:
                book = Book(
                    id=safe_str(row['图书ID']),
                    name=safe_str(row.get('图书名称')),
                    author=safe_str(row.get('作者')),
                    isbn=safe_str(row.get('ISBN')),
                    category=safe_str(row.get('分类')),
                    description=safe_str(row.get('简介')),
                    cover=safe_str(row.get('封面')),
                    total_count=safe_int(row.get('总数量')),
                    available_count=safe_int(row.get('可借数量')),
                    is_deleted=safe_bool(row.get('是否删除')),
                    create_time=safe_time(row.get('创建时间')),
                )
            except (ValueError, KeyError) as e:
                logger.warning("解析图书失败: %s", e)
                continue
            books.append(book)
        return books

    def save_books(self, books: List[Book]):
        """保存图书到Excel"""
        self._write_rows('books', [{
            '图书ID': book.id,
            '图书名称': book.name,
            '作者': book.author,
            'ISBN': book.isbn,
            '分类': book.category,
            '简介': book.description,
            '封面': book.cover,
            '总数量': book.total_count,
            '可借数量': book.available_count,
            '是否删除': bool_str(book.is_deleted),
            '创建时间': format_time(book.create_time),
        } for book in books])

    # ==================== 用户 ====================

    def load_users(self) -> List[User]:
        """从Excel加载用户"""
        users = []
        for row in self._read_rows('users', '用户ID'):
            try:
                user = User(
                    id=safe_str(row['用户ID']),
                    open_id=safe_str(row.get('openId')),
                    nick_name=safe_str(row.get('昵称')),
                    avatar_url=safe_str(row.get('头像')),
                    phone_number=safe_str(row.get('手机号')),
                    department=safe_str(row.get('部门')),
                    email=safe_str(row.get('邮箱')),
                    subscribed_types=safe_list(row.get('已订阅消息')),
                    create_time=safe_time(row.get('创建时间')),
                    update_time=safe_time(row.get('更新时间')),
                )
            except (ValueError, KeyError) as e:
                logger.warning("解析用户失败: %s", e)
                continue
            users.append(user)
        return users

    def save_users(self, users: List[User]):
        """保存用户到Excel"""
        self._write_rows('users', [{
            '用户ID': user.id,
            'openId': user.open_id,
            '昵称': user.nick_name,
            '头像': user.avatar_url,
            '手机号': user.phone_number,
            '部门': user.department,
            '邮箱': user.email,
            '已订阅消息': LIST_SEPARATOR.join(user.subscribed_types),
            '创建时间': format_time(user.create_time),
            '更新时间': format_time(user.update_time),
        } for user in users])

    # ==================== 借阅申请 ====================

    def load_borrow_requests(self) -> List[BorrowRequest]:
        """从Excel加载借阅申请"""
        requests = []
        for row in self._read_rows('borrow_requests', '申请ID'):
            try:
                request = BorrowRequest(
                    id=safe_str(row['申请ID']),
                    book_id=safe_str(row.get('图书ID')),
                    book_name=safe_str(row.get('图书名称')),
                    open_id=safe_str(row.get('申请人openId')),
                    borrow_days=safe_int(row.get('借阅天数'), 7),
                    status=BorrowRequestStatus(safe_str(row.get('状态')) or 'pending'),
                    name=safe_str(row.get('姓名')),
                    phone=safe_str(row.get('电话')),
                    email=safe_str(row.get('邮箱')),
                    student_id=safe_str(row.get('学号工号')),
                    department=safe_str(row.get('部门')),
                    reason=safe_str(row.get('借阅原因')),
                    remark=safe_str(row.get('备注')),
                    borrow_date=safe_date(row.get('借阅日期')),
                    return_date=safe_date(row.get('归还日期')),
                    borrow_time=safe_time(row.get('借出时间')),
                    return_time=safe_time(row.get('归还时间')),
                    archive_numbers=safe_json_list(row.get('档号')),
                    borrow_reason=safe_str(row.get('借出理由')),
                    reviewer=safe_str(row.get('审核人')),
                    admin_remark=safe_str(row.get('审核备注')),
                    review_time=safe_time(row.get('审核时间')),
                    create_time=safe_time(row.get('创建时间')),
                    update_time=safe_time(row.get('更新时间')),
                )
            except (ValueError, KeyError) as e:
                logger.warning("解析借阅申请失败: %s", e)
                continue
            requests.append(request)
        return requests

    def save_borrow_requests(self, requests: List[BorrowRequest]):
        """保存借阅申请到Excel"""
        self._write_rows('borrow_requests', [{
            '申请ID': r.id,
            '图书ID': r.book_id,
            '图书名称': r.book_name,
            '申请人openId': r.open_id,
            '借阅天数': r.borrow_days,
            '状态': r.status.value,
            '姓名': r.name,
            '电话': r.phone,
            '邮箱': r.email,
            '学号工号': r.student_id,
            '部门': r.department,
            '借阅原因': r.reason,
            '备注': r.remark,
            '借阅日期': format_date(r.borrow_date),
            '归还日期': format_date(r.return_date),
            '借出时间': format_time(r.borrow_time),
            '归还时间': format_time(r.return_time),
            '档号': json_list(r.archive_numbers),
            '借出理由': r.borrow_reason,
            '审核人': r.reviewer,
            '审核备注': r.admin_remark,
            '审核时间': format_time(r.review_time),
            '创建时间': format_time(r.create_time),
            '更新时间': format_time(r.update_time),
        } for r in requests])

    # ==================== 管理员 ====================

    def load_admins(self) -> List[Admin]:
        """从Excel加载管理员列表"""
        admins = []
        for row in self._read_rows('admins', '管理员ID'):
            try:
                admins.append(Admin(
                    id=safe_str(row['管理员ID']),
                    username=safe_str(row.get('用户名')),
                    password_hash=safe_str(row.get('密码哈希')),
                    create_time=safe_time(row.get('创建时间')),
                ))
            except (ValueError, KeyError) as e:
                logger.warning("解析管理员失败: %s", e)
        return admins

    def save_admins(self, admins: List[Admin]):
        """保存管理员列表到Excel"""
        self._write_rows('admins', [{
            '管理员ID': admin.id,
            '用户名': admin.username,
            '密码哈希': admin.password_hash,
            '创建时间': format_time(admin.create_time),
        } for admin in admins])

    # ==================== 操作日志 ====================

    def load_operation_logs(self) -> List[OperationLog]:
        """从Excel加载操作日志"""
        logs = []
        for row in self._read_rows('operation_logs', '日志ID'):
            try:
                logs.append(OperationLog(
                    id=safe_str(row['日志ID']),
                    operation_time=safe_time(row.get('操作时间')),
                    operator=safe_str(row.get('操作人')),
                    operation_content=safe_str(row.get('操作内容')),
                    request_info=safe_str(row.get('申请信息')),
                ))
            except (ValueError, KeyError) as e:
                logger.warning("解析操作日志失败: %s", e)
        return logs

    def save_operation_logs(self, logs: List[OperationLog]):
        """保存操作日志到Excel"""
        self._write_rows('operation_logs', [{
            '日志ID': log.id,
            '操作时间': format_time(log.operation_time),
            '操作人': log.operator,
            '操作内容': log.operation_content,
            '申请信息': log.request_info,
        } for log in logs])

    # ==================== 通知 ====================

    def load_notifications(self) -> List[Notification]:
        """从Excel加载通知列表"""
        notifications = []
        for row in self._read_rows('notifications', '通知ID'):
            try:
                notifications.append(Notification(
                    id=safe_str(row['通知ID']),
                    open_id=safe_str(row.get('用户openId')),
                    title=safe_str(row.get('标题')),
                    content=safe_str(row.get('内容')),
                    request_id=safe_str(row.get('申请ID')),
                    book_name=safe_str(row.get('图书名称')),
                    is_read=safe_bool(row.get('是否已读')),
                    create_time=safe_time(row.get('创建时间')),
                    notification_type=safe_str(row.get('通知类型')) or 'info',
                ))
            except (ValueError, KeyError) as e:
                logger.warning("解析通知失败: %s", e)
        return notifications

    def save_notifications(self, notifications: List[Notification]):
        """保存通知列表到Excel"""
        self._write_rows('notifications', [{
            '通知ID': n.id,
            '用户openId': n.open_id,
            '标题': n.title,
            '内容': n.content,
            '申请ID': n.request_id,
            '图书名称': n.book_name,
            '是否已读': bool_str(n.is_read),
            '创建时间': format_time(n.create_time),
            '通知类型': n.notification_type,
        } for n in notifications])

    # ==================== 提醒记录 ====================

    def load_sent_reminders(self) -> List[SentReminder]:
        """从Excel加载已发送提醒"""
        reminders = []
        for row in self._read_rows('sent_reminders', '提醒键'):
            try:
                reminders.append(SentReminder(
                    key=safe_str(row['提醒键']),
                    request_id=safe_str(row.get('申请ID')),
                    reminder_type=safe_str(row.get('提醒类型')),
                    sent_date=safe_date(row.get('发送日期')),
                    sent_time=safe_time(row.get('发送时间')),
                ))
            except (ValueError, KeyError) as e:
                logger.warning("解析提醒记录失败: %s", e)
        return reminders

    def save_sent_reminders(self, reminders: List[SentReminder]):
        """保存已发送提醒到Excel"""
        self._write_rows('sent_reminders', [{
            '提醒键': r.key,
            '申请ID': r.request_id,
            '提醒类型': r.reminder_type,
            '发送日期': format_date(r.sent_date),
            '发送时间': format_time(r.sent_time),
        } for r in reminders])
