# -*- coding: utf-8 -*-
"""
工具函数模块
"""
import re
from datetime import datetime, date, timedelta, timezone

BEIJING_TZ = timezone(timedelta(hours=8))
DATE_PATTERN = re.compile(r'^\d{4}-\d{2}-\d{2}$')


def mask_phone(phone):
    """手机号脱敏显示"""
    if phone and len(phone) == 11:
        return phone[:3] + '****' + phone[7:]
    return phone


def mask_open_id(open_id):
    """openId 只显示前8位"""
    if not open_id:
        return ''
    return open_id[:8] + '...'


def get_beijing_time() -> datetime:
    """获取北京时间（UTC+8，带时区）"""
    return datetime.now(BEIJING_TZ)


def get_today_beijing_date() -> date:
    """获取今天的日期（北京时间）"""
    return get_beijing_time().date()


def format_date(value) -> str:
    """格式化为 YYYY-MM-DD"""
    if not value:
        return ''
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(BEIJING_TZ)
        return value.strftime('%Y-%m-%d')
    return value.strftime('%Y-%m-%d')


def format_time(value) -> str:
    """格式化为北京时间 ISO 字符串，如 2024-01-01T08:00:00+08:00"""
    if not value:
        return ''
    if value.tzinfo is None:
        value = value.replace(tzinfo=BEIJING_TZ)
    return value.astimezone(BEIJING_TZ).isoformat(timespec='seconds')


def parse_date(value: str) -> date:
    """解析 YYYY-MM-DD，格式错误抛出 ValueError"""
    value = (value or '').strip()
    if not DATE_PATTERN.match(value):
        raise ValueError(f'日期格式错误: {value}，应为 YYYY-MM-DD 格式')
    return datetime.strptime(value, '%Y-%m-%d').date()


def parse_time(value: str):
    """解析 ISO 时间字符串，无时区的按北京时间处理"""
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=BEIJING_TZ)
    return parsed
