# -*- coding: utf-8 -*-
"""
借阅申请数据客户端
数据以 Excel 文件为准：用户服务和管理服务是两个进程，每次查询/修改前重新读取，
修改后只写回变更的表

借阅申请状态流转：
    submit          -> pending
    review          pending  -> approved / rejected
    confirm_borrow  approved -> borrowed（登记借阅日期、应归还日期）
    confirm_return  borrowed -> returned（登记归还时间）
每次流转后发送站内通知和订阅消息，订阅消息发送失败只记录日志
"""
import io
import uuid
import logging
import threading
from datetime import timedelta
from typing import List, Optional, Tuple

import pandas as pd
from werkzeug.security import generate_password_hash, check_password_hash

from .config import (
    ADMIN_USERNAME, ADMIN_PASSWORD, ADMIN_OPENIDS, DEFAULT_BORROW_DAYS, MAX_BORROW_DAYS,
    DEFAULT_BOOK_ID, DEFAULT_BOOK_NAME, SEED_DEMO_DATA,
)
from .excel_data_store import ExcelDataStore
from .exceptions import RequestNotFoundError, InvalidTransitionError, ValidationError, DataStoreError
from .models import Book, User, BorrowRequest, Admin, OperationLog, Notification, SentReminder
from .models import BorrowRequestStatus, ReviewAction, SubscribeMessageType, can_transition
from .utils import get_beijing_time, get_today_beijing_date, format_date, format_time, parse_date

logger = logging.getLogger(__name__)

# 表名 -> 内存中的列表属性
COLLECTIONS = {
    'books': '_books',
    'users': '_users',
    'borrow_requests': '_requests',
    'admins': '_admins',
    'operation_logs': '_operation_logs',
    'notifications': '_notifications',
    'sent_reminders': '_sent_reminders',
}

# 管理端可编辑的图书字段
BOOK_FIELDS = {
    'name': 'name',
    'author': 'author',
    'isbn': 'isbn',
    'category': 'category',
    'description': 'description',
    'cover': 'cover',
}

# 小程序可修改的个人资料字段
PROFILE_FIELDS = {
    'nickName': 'nick_name',
    'avatarUrl': 'avatar_url',
    'phoneNumber': 'phone_number',
    'department': 'department',
    'email': 'email',
}

# 申请表单中的申请人信息字段
FORM_FIELDS = {
    'name': 'name',
    'phone': 'phone',
    'email': 'email',
    'studentId': 'student_id',
    'department': 'department',
    'reason': 'reason',
    'remark': 'remark',
}


class APIClient:
    """借阅申请数据客户端"""

    def __init__(self, store: Optional[ExcelDataStore] = None, subscribe_service=None,
                 seed_demo_data: bool = SEED_DEMO_DATA, admin_open_ids: Optional[List[str]] = None):
        self.store = store or ExcelDataStore()
        self.subscribe_service = subscribe_service
        self.seed_demo_data = seed_demo_data
        self.admin_open_ids = list(ADMIN_OPENIDS if admin_open_ids is None else admin_open_ids)
        self._lock = threading.RLock()
        # 正在发送中的提醒键
        self._pending_reminders = set()
        self._load_data()

    def _refresh(self, *names):
        """从Excel重新读取指定的表（默认全部）"""
        for name in names or COLLECTIONS:
            setattr(self, COLLECTIONS[name], getattr(self.store, f'load_{name}')())

    def _save_data(self, *names):
        """保存指定的表；保存失败时丢弃内存中的修改，以文件中的数据为准"""
        try:
            for name in names or COLLECTIONS:
                getattr(self.store, f'save_{name}')(getattr(self, COLLECTIONS[name]))
        except DataStoreError:
            self._refresh()
            raise

    def _load_data(self):
        """从Excel文件加载数据"""
        with self._lock:
            self._refresh()
            logger.info("从Excel加载: 图书%d本, 用户%d个, 借阅申请%d条, 通知%d条",
                        len(self._books), len(self._users), len(self._requests), len(self._notifications))

            if not self._books and self.seed_demo_data:
                logger.info("图书表为空，使用默认数据")
                self._init_demo_books()
                self._save_data('books')

            if not self._admins:
                self._admins = [Admin(
                    id=str(uuid.uuid4()),
                    username=ADMIN_USERNAME,
                    password_hash=generate_password_hash(ADMIN_PASSWORD),
                    create_time=get_beijing_time(),
                )]
                self._save_data('admins')
                logger.info("已创建默认管理员: %s", ADMIN_USERNAME)

    def reload_data(self):
        """重新加载数据"""
        self._load_data()

    def _init_demo_books(self):
        """初始化默认图书"""
        self._books = [
            Book(id=str(uuid.uuid4()), name='JavaScript高级程序设计', author='Matt Frisbie',
                 isbn='9787115545381', category='计算机', total_count=10, available_count=5,
                 description='JavaScript技术经典名著，深入讲解现代JavaScript开发的核心概念和实践技巧。'),
            Book(id=str(uuid.uuid4()), name='TypeScript编程', author='Boris Cherny',
                 isbn='9787115545689', category='计算机', total_count=8, available_count=3,
                 description='TypeScript全面指南，从基础到高级，帮助开发者掌握类型安全的JavaScript开发。'),
            Book(id=str(uuid.uuid4()), name='深入理解计算机系统', author='Randal E. Bryant',
                 isbn='9787111544937', category='计算机', total_count=15, available_count=8,
                 description='计算机系统经典教材，深入浅出地讲解计算机系统的工作原理和底层机制。'),
            Book(id=str(uuid.uuid4()), name='Vue.js设计与实现', author='霍春阳',
                 isbn='9787115583864', category='前端开发', total_count=12, available_count=6,
                 description='Vue.js框架的深入解析，帮助开发者理解Vue.js的设计思想和实现原理。'),
            Book(id=str(uuid.uuid4()), name='React技术揭秘', author='卡颂',
                 isbn='9787115568380', category='前端开发', total_count=9, available_count=4,
                 description='React框架的深度解析，从源码角度理解React的工作原理和最佳实践。'),
        ]

    # ==================== 用户 ====================

    def _find_user(self, open_id: str) -> Optional[User]:
        for user in self._users:
            if user.open_id == open_id:
                return user
        return None

    def _require_user(self, open_id: str) -> User:
        user = self._find_user(open_id) if open_id else None
        if user is None:
            raise ValidationError('请先登录')
        return user

    def get_user_by_open_id(self, open_id: str) -> Optional[User]:
        """根据openId获取用户"""
        with self._lock:
            self._refresh('users')
            return self._find_user(open_id)

    def get_all_users(self) -> List[User]:
        with self._lock:
            self._refresh('users')
            return sorted(self._users, key=lambda u: u.create_time, reverse=True)

    def upsert_user(self, open_id: str, nick_name: str = '', avatar_url: str = '',
                    phone_number: str = '') -> User:
        """登录时保存用户，已存在则更新非空字段"""
        if not open_id:
            raise ValidationError('无法获取用户ID')
        with self._lock:
            self._refresh('users')
            user = self._find_user(open_id)
            now = get_beijing_time()
            if user is None:
                user = User(
                    id=str(uuid.uuid4()),
                    open_id=open_id,
                    nick_name=nick_name,
                    avatar_url=avatar_url,
                    phone_number=phone_number,
                    create_time=now,
                )
                self._users.append(user)
            else:
                if nick_name:
                    user.nick_name = nick_name
                if avatar_url:
                    user.avatar_url = avatar_url
                if phone_number:
                    user.phone_number = phone_number
                user.update_time = now
            self._save_data('users')
            return user

    def update_user_profile(self, open_id: str, data: dict) -> User:
        """更新个人资料，只更新传入的字段"""
        with self._lock:
            self._refresh('users')
            user = self._require_user(open_id)
            for key, attr in PROFILE_FIELDS.items():
                if key in data and data[key] is not None:
                    setattr(user, attr, str(data[key]).strip())
            user.update_time = get_beijing_time()
            self._save_data('users')
            return user

    def set_subscription(self, open_id: str, message_type: SubscribeMessageType, accepted: bool) -> User:
        """记录单个订阅消息类型的授权结果"""
        return self.set_subscriptions(open_id, {message_type.value: 'accept' if accepted else 'reject'})

    def set_subscriptions(self, open_id: str, results: dict) -> User:
        """记录订阅消息授权结果，results 形如 {"BORROW_SUCCESS": "accept"}"""
        with self._lock:
            self._refresh('users')
            user = self._require_user(open_id)
            subscribed = set(user.subscribed_types)
            for type_name, status in (results or {}).items():
                try:
                    message_type = SubscribeMessageType(type_name)
                except ValueError:
                    raise ValidationError(f'未知的订阅消息类型: {type_name}')
                if status == 'accept':
                    subscribed.add(message_type.value)
                else:
                    subscribed.discard(message_type.value)
            user.subscribed_types = [t.value for t in SubscribeMessageType if t.value in subscribed]
            user.update_time = get_beijing_time()
            self._save_data('users')
            return user

    def is_subscribed(self, open_id: str, message_type: SubscribeMessageType) -> bool:
        """检查用户是否已授权某类订阅消息"""
        user = self.get_user_by_open_id(open_id)
        return bool(user) and message_type.value in user.subscribed_types

    # ==================== 管理员 ====================

    def verify_admin(self, username: str, password: str) -> Optional[Admin]:
        """验证管理员账号密码"""
        with self._lock:
            self._refresh('admins')
            for admin in self._admins:
                if admin.username == username and check_password_hash(admin.password_hash, password or ''):
                    return admin
            return None

    def is_admin_open_id(self, open_id: str) -> bool:
        """检查openId是否为配置的管理员"""
        return bool(open_id) and open_id in self.admin_open_ids

    # ==================== 图书 ====================

    def get_books(self, keyword: str = None, category: str = None,
                  page: int = 1, page_size: int = 20) -> Tuple[List[Book], int]:
        """获取图书列表，返回 (当前页, 总数)"""
        with self._lock:
            self._refresh('books')
            books = []
            for book in self._books:
                if book.is_deleted:
                    continue
                if category and book.category != category:
                    continue
                if keyword:
                    keyword_lower = keyword.lower()
                    if keyword_lower not in book.name.lower() and \
                            keyword_lower not in book.author.lower() and \
                            keyword not in book.isbn:
                        continue
                books.append(book)

        books.sort(key=lambda b: b.create_time, reverse=True)
        page = max(page, 1)
        page_size = max(page_size, 1)
        start = (page - 1) * page_size
        return books[start:start + page_size], len(books)

    def _find_book(self, book_id: str) -> Optional[Book]:
        for book in self._books:
            if book.id == book_id and not book.is_deleted:
                return book
        return None

    def _require_book(self, book_id: str) -> Book:
        book = self._find_book(book_id)
        if book is None:
            raise RequestNotFoundError('图书不存在')
        return book

    def get_book(self, book_id: str) -> Optional[Book]:
        with self._lock:
            self._refresh('books')
            return self._find_book(book_id)

    def create_book(self, data: dict, operator: str) -> Book:
        """添加图书"""
        name = (data.get('name') or '').strip()
        if not name:
            raise ValidationError('请输入图书名称')
        total = self._parse_count(data.get('totalCount', 0), '总数量')
        available = self._parse_count(data.get('availableCount', total), '可借数量')
        if available > total:
            raise ValidationError('可借数量不能大于总数量')

        with self._lock:
            self._refresh('books', 'operation_logs')
            book = Book(id=str(uuid.uuid4()), name=name, total_count=total, available_count=available)
            for key, attr in BOOK_FIELDS.items():
                if key != 'name' and data.get(key) is not None:
                    setattr(book, attr, str(data[key]).strip())
            self._books.append(book)
            self.add_operation_log(operator, '添加图书', book.name)
            self._save_data('books', 'operation_logs')
            return book

    def update_book(self, book_id: str, data: dict, operator: str) -> Book:
        """更新图书信息"""
        with self._lock:
            self._refresh('books', 'operation_logs')
            book = self._require_book(book_id)
            if 'name' in data and not str(data['name'] or '').strip():
                raise ValidationError('请输入图书名称')

            total = book.total_count
            available = book.available_count
            if 'totalCount' in data:
                total = self._parse_count(data['totalCount'], '总数量')
            if 'availableCount' in data:
                available = self._parse_count(data['availableCount'], '可借数量')
            if available > total:
                raise ValidationError('可借数量不能大于总数量')

            for key, attr in BOOK_FIELDS.items():
                if data.get(key) is not None:
                    setattr(book, attr, str(data[key]).strip())
            book.total_count = total
            book.available_count = available

            self.add_operation_log(operator, '修改图书', book.name)
            self._save_data('books', 'operation_logs')
            return book

    def delete_book(self, book_id: str, operator: str) -> bool:
        """删除图书（软删除）"""
        with self._lock:
            self._refresh('books', 'operation_logs')
            book = self._require_book(book_id)
            book.is_deleted = True
            self.add_operation_log(operator, '删除图书', book.name)
            self._save_data('books', 'operation_logs')
            return True

    @staticmethod
    def _parse_count(value, label: str) -> int:
        try:
            count = int(value)
        except (TypeError, ValueError):
            raise ValidationError(f'{label}必须为整数')
        if count < 0:
            raise ValidationError(f'{label}不能小于0')
        return count

    # ==================== 借阅申请 ====================

    def _find_request(self, request_id: str) -> Optional[BorrowRequest]:
        for request in self._requests:
            if request.id == request_id:
                return request
        return None

    def _require_request(self, request_id: str) -> BorrowRequest:
        request = self._find_request(request_id)
        if request is None:
            raise RequestNotFoundError('申请不存在')
        return request

    def get_borrow_request(self, request_id: str) -> Optional[BorrowRequest]:
        with self._lock:
            self._refresh('borrow_requests')
            return self._find_request(request_id)

    def get_all_borrow_requests(self, status: Optional[BorrowRequestStatus] = None) -> List[BorrowRequest]:
        """获取所有借阅申请，按创建时间倒序"""
        with self._lock:
            self._refresh('borrow_requests')
            requests = [r for r in self._requests if status is None or r.status == status]
        return sorted(requests, key=lambda r: r.create_time, reverse=True)

    def get_my_borrow_requests(self, open_id: str) -> List[BorrowRequest]:
        """获取某用户的借阅申请"""
        with self._lock:
            self._refresh('borrow_requests')
            requests = [r for r in self._requests if r.open_id == open_id]
        return sorted(requests, key=lambda r: r.create_time, reverse=True)

    def get_status_counts(self) -> dict:
        """各状态的申请数量"""
        with self._lock:
            self._refresh('borrow_requests')
            counts = {status.value: 0 for status in BorrowRequestStatus}
            for request in self._requests:
                counts[request.status.value] += 1
            counts['total'] = len(self._requests)
            return counts

    def get_overdue_requests(self, today=None) -> List[BorrowRequest]:
        """获取已逾期未归还的申请，逾期最久的在前"""
        today = today or get_today_beijing_date()
        with self._lock:
            self._refresh('borrow_requests')
            overdue = [r for r in self._requests if r.is_overdue(today)]
        return sorted(overdue, key=lambda r: r.return_date)

    @staticmethod
    def _parse_borrow_days(value) -> int:
        if value in (None, ''):
            return DEFAULT_BORROW_DAYS
        try:
            days = int(value)
        except (TypeError, ValueError):
            raise ValidationError('借阅天数必须为整数')
        if days < 1 or days > MAX_BORROW_DAYS:
            raise ValidationError(f'借阅天数应在1到{MAX_BORROW_DAYS}天之间')
        return days

    def _transition(self, request: BorrowRequest, target: BorrowRequestStatus):
        if not can_transition(request.status, target):
            raise InvalidTransitionError(request.id, request.status, target)
        request.status = target
        request.update_time = get_beijing_time()

    def submit_borrow_request(self, open_id: str, form: dict) -> BorrowRequest:
        """提交借阅申请，状态为待审核"""
        form = form or {}
        with self._lock:
            self._refresh('users', 'books', 'borrow_requests', 'operation_logs', 'notifications')
            self._require_user(open_id)
            borrow_days = self._parse_borrow_days(form.get('borrowDays'))

            book_id = (form.get('bookId') or '').strip()
            if book_id and book_id != DEFAULT_BOOK_ID:
                book_name = self._require_book(book_id).name
            else:
                book_id = DEFAULT_BOOK_ID
                book_name = (form.get('bookName') or '').strip() or DEFAULT_BOOK_NAME

            request = BorrowRequest(
                id=str(uuid.uuid4()),
                book_id=book_id,
                book_name=book_name,
                open_id=open_id,
                borrow_days=borrow_days,
            )
            for key, attr in FORM_FIELDS.items():
                if form.get(key) is not None:
                    setattr(request, attr, str(form[key]).strip())

            self._requests.append(request)
            self.add_operation_log(open_id, '提交借阅申请', book_name)
            self._add_notification(
                request, '借阅申请已提交',
                f'您申请借阅的「{book_name}」已提交，等待管理员审核。',
                'info',
            )
            self._save_data('borrow_requests', 'operation_logs', 'notifications')
            logger.info("借阅申请已提交: %s %s", request.id, book_name)
            return request

    def review_borrow_request(self, request_id: str, action, operator: str,
                              admin_remark: str = '') -> BorrowRequest:
        """审核借阅申请：通过或拒绝"""
        try:
            action = ReviewAction(action)
        except ValueError:
            raise ValidationError('审核操作无效')

        with self._lock:
            self._refresh('borrow_requests', 'operation_logs', 'notifications')
            request = self._require_request(request_id)
            now = get_beijing_time()
            if action == ReviewAction.APPROVE:
                self._transition(request, BorrowRequestStatus.APPROVED)
                today = get_today_beijing_date()
                request.borrow_date = today
                request.return_date = today + timedelta(days=request.borrow_days)
                request.admin_remark = (admin_remark or '').strip()
            else:
                self._transition(request, BorrowRequestStatus.REJECTED)
                request.admin_remark = (admin_remark or '').strip() or '申请已拒绝'
            request.reviewer = operator
            request.review_time = now

            if action == ReviewAction.APPROVE:
                self.add_operation_log(operator, '审核通过', request.book_name)
                self._add_notification(
                    request, '借阅申请已通过',
                    f'您申请借阅的「{request.book_name}」已通过审核，'
                    f'应归还日期 {format_date(request.return_date)}。',
                    'success',
                )
            else:
                self.add_operation_log(operator, '审核拒绝', request.book_name)
                self._add_notification(
                    request, '借阅申请未通过',
                    f'您申请借阅的「{request.book_name}」未通过审核：{request.admin_remark}',
                    'warning',
                )
            self._save_data('borrow_requests', 'operation_logs', 'notifications')

        if action == ReviewAction.APPROVE:
            self._send_borrow_success(request)
        return request

    def confirm_borrow(self, request_id: str, operator: str, due_date: Optional[str] = None,
                       archive_numbers: Optional[List[str]] = None,
                       borrow_reason: str = '') -> BorrowRequest:
        """确认借出：登记借阅日期为当天，应归还日期为 due_date"""
        today = get_today_beijing_date()
        if due_date:
            try:
                due = parse_date(due_date)
            except ValueError as e:
                raise ValidationError(str(e))
            if due < today:
                raise ValidationError('归还日期不能早于今天')
        else:
            due = None

        with self._lock:
            self._refresh('borrow_requests', 'books', 'operation_logs', 'notifications')
            request = self._require_request(request_id)
            if not can_transition(request.status, BorrowRequestStatus.BORROWED):
                raise InvalidTransitionError(request.id, request.status, BorrowRequestStatus.BORROWED)

            book = None
            if request.book_id != DEFAULT_BOOK_ID:
                book = self._find_book(request.book_id)
                if book is not None and book.available_count <= 0:
                    raise ValidationError(f'「{book.name}」暂无可借库存')

            self._transition(request, BorrowRequestStatus.BORROWED)
            request.borrow_date = today
            request.return_date = due or request.return_date or today + timedelta(days=request.borrow_days)
            request.borrow_time = get_beijing_time()
            request.archive_numbers = [n.strip() for n in archive_numbers or [] if n and n.strip()]
            request.borrow_reason = (borrow_reason or '').strip()
            if book is not None:
                book.available_count -= 1

            self.add_operation_log(operator, '确认借出', request.book_name)
            self._add_notification(
                request, '借阅成功',
                f'「{request.book_name}」已借出，请于 {format_date(request.return_date)} 前归还。',
                'success',
            )
            self._save_data('borrow_requests', 'books', 'operation_logs', 'notifications')

        self._send_borrow_success(request)
        return request

    def confirm_return(self, request_id: str, operator: str) -> BorrowRequest:
        """确认归还：登记归还时间"""
        with self._lock:
            self._refresh('borrow_requests', 'books', 'operation_logs', 'notifications')
            request = self._require_request(request_id)
            self._transition(request, BorrowRequestStatus.RETURNED)
            request.return_time = get_beijing_time()

            if request.book_id != DEFAULT_BOOK_ID:
                book = self._find_book(request.book_id)
                if book is not None:
                    book.available_count = min(book.available_count + 1, book.total_count)

            self.add_operation_log(operator, '确认归还', request.book_name)
            self._add_notification(
                request, '归还成功',
                f'「{request.book_name}」已归还，感谢您的使用。',
                'success',
            )
            self._save_data('borrow_requests', 'books', 'operation_logs', 'notifications')

        self._send_subscribe(
            'send_return_success',
            open_id=request.open_id,
            book_name=request.book_name,
            return_date=format_date(request.return_time),
            borrow_number=request.id,
        )
        return request

    def _send_borrow_success(self, request: BorrowRequest):
        self._send_subscribe(
            'send_borrow_success',
            open_id=request.open_id,
            book_name=request.book_name,
            borrow_date=format_date(request.borrow_date),
            return_date=format_date(request.return_date),
            borrow_number=request.id,
        )

    def _send_subscribe(self, method_name: str, **kwargs) -> bool:
        """发送订阅消息，任何失败都只记录日志"""
        if self.subscribe_service is None:
            return False
        try:
            success, message = getattr(self.subscribe_service, method_name)(**kwargs)
        except Exception:
            logger.exception("发送订阅消息异常: %s", method_name)
            return False
        if not success:
            logger.warning("订阅消息未发送 [%s]: %s", method_name, message)
        return success

    def export_borrow_requests(self, status: Optional[BorrowRequestStatus] = None) -> bytes:
        """导出借阅申请为 Excel"""
        rows = []
        for r in self.get_all_borrow_requests(status):
            rows.append({
                '申请ID': r.id,
                '图书名称': r.book_name,
                '申请人': r.name,
                '电话': r.phone,
                '部门': r.department,
                '借阅天数': r.borrow_days,
                '状态': r.status.label,
                '借阅日期': format_date(r.borrow_date),
                '应归还日期': format_date(r.return_date),
                '借出时间': format_time(r.borrow_time),
                '归还时间': format_time(r.return_time),
                '档号': '、'.join(r.archive_numbers),
                '审核人': r.reviewer,
                '审核备注': r.admin_remark,
                '申请时间': format_time(r.create_time),
            })
        output = io.BytesIO()
        pd.DataFrame(rows).to_excel(output, index=False, engine='openpyxl')
        return output.getvalue()

    # ==================== 提醒记录 ====================

    def _has_reminder(self, key: str) -> bool:
        return any(r.key == key for r in self._sent_reminders)

    def is_reminder_sent(self, key: str) -> bool:
        with self._lock:
            self._refresh('sent_reminders')
            return self._has_reminder(key)

    def reserve_reminder(self, key: str) -> bool:
        """占用提醒键，已发送或正在发送时返回 False"""
        with self._lock:
            self._refresh('sent_reminders')
            if key in self._pending_reminders or self._has_reminder(key):
                return False
            self._pending_reminders.add(key)
            return True

    def release_reminder(self, key: str):
        """发送失败时释放提醒键，下次检查可重试"""
        with self._lock:
            self._pending_reminders.discard(key)

    def mark_reminder_sent(self, key: str, request_id: str, reminder_type: str, sent_date) -> SentReminder:
        """记录已发送的提醒"""
        with self._lock:
            try:
                self._refresh('sent_reminders')
                reminder = SentReminder(key=key, request_id=request_id,
                                        reminder_type=reminder_type, sent_date=sent_date)
                if not self._has_reminder(key):
                    self._sent_reminders.append(reminder)
                    self._save_data('sent_reminders')
                return reminder
            finally:
                self._pending_reminders.discard(key)

    # ==================== 操作日志 ====================

    def add_operation_log(self, operator: str, operation_content: str, request_info: str):
        """添加操作日志（由调用方负责保存）"""
        self._operation_logs.append(OperationLog(
            id=str(uuid.uuid4()),
            operation_time=get_beijing_time(),
            operator=operator,
            operation_content=operation_content,
            request_info=request_info,
        ))

    def get_operation_logs(self, limit: int = 50) -> List[OperationLog]:
        with self._lock:
            self._refresh('operation_logs')
            logs = sorted(self._operation_logs, key=lambda x: x.operation_time, reverse=True)
        return logs[:limit]

    # ==================== 站内通知 ====================

    def _add_notification(self, request: BorrowRequest, title: str, content: str,
                          notification_type: str) -> Notification:
        notification = Notification(
            id=str(uuid.uuid4()),
            open_id=request.open_id,
            title=title,
            content=content,
            request_id=request.id,
            book_name=request.book_name,
            notification_type=notification_type,
        )
        self._notifications.append(notification)
        return notification

    def get_notifications(self, open_id: str, unread_only: bool = False) -> List[Notification]:
        """获取通知列表"""
        with self._lock:
            self._refresh('notifications')
            notifications = [n for n in self._notifications
                             if n.open_id == open_id and not (unread_only and n.is_read)]
        return sorted(notifications, key=lambda x: x.create_time, reverse=True)

    def get_unread_count(self, open_id: str) -> int:
        with self._lock:
            self._refresh('notifications')
            return sum(1 for n in self._notifications if n.open_id == open_id and not n.is_read)

    def mark_notification_read(self, notification_id: str, open_id: str) -> bool:
        """标记通知为已读"""
        with self._lock:
            self._refresh('notifications')
            for notification in self._notifications:
                if notification.id == notification_id and notification.open_id == open_id:
                    notification.is_read = True
                    self._save_data('notifications')
                    return True
            return False

    def mark_all_read(self, open_id: str) -> int:
        """标记用户所有通知为已读，返回标记数量"""
        with self._lock:
            self._refresh('notifications')
            count = 0
            for notification in self._notifications:
                if notification.open_id == open_id and not notification.is_read:
                    notification.is_read = True
                    count += 1
            if count > 0:
                self._save_data('notifications')
            return count
