# -*- coding: utf-8 -*-
"""
归还提醒定时任务
每天检查已借出的申请：距应归还日期剩 N 天时发送归还提醒，已逾期时发送逾期提醒
同一申请同一天的同类提醒只发送一次
"""
import logging
from datetime import datetime, timedelta

from apscheduler.schedulers.background import BackgroundScheduler

from .config import REMINDER_DAYS_BEFORE, REMINDER_HOUR, REMINDER_MINUTE
from .exceptions import RequestNotFoundError, ValidationError
from .models import BorrowRequestStatus, SubscribeMessageType
from .utils import BEIJING_TZ, format_date, get_today_beijing_date

logger = logging.getLogger(__name__)


def reminder_key(request_id, today, days_left=None) -> str:
    """提醒去重键：{id}_{n}days_{today} 或 {id}_overdue_{today}"""
    if days_left is None:
        return f'{request_id}_overdue_{format_date(today)}'
    return f'{request_id}_{days_left}days_{format_date(today)}'


def _send_overdue(client, subscribe_service, request, today) -> bool:
    """发送逾期提醒，调用前需已占用提醒键"""
    key = reminder_key(request.id, today)
    overdue_days = -request.days_until_due(today)
    try:
        success, message = subscribe_service.send_overdue_reminder(
            open_id=request.open_id,
            book_name=request.book_name,
            return_date=format_date(request.return_date),
            overdue_days=overdue_days,
            borrow_number=request.id,
        )
    except Exception:
        client.release_reminder(key)
        raise
    if success:
        client.mark_reminder_sent(key, request.id, SubscribeMessageType.OVERDUE_REMINDER.value, today)
        logger.info("已发送逾期提醒: %s 逾期%d天", request.book_name, overdue_days)
    else:
        client.release_reminder(key)
        logger.warning("逾期提醒发送失败: %s %s", request.id, message)
    return success


def _send_return_reminder(client, subscribe_service, request, today, days_left) -> bool:
    key = reminder_key(request.id, today, days_left)
    try:
        success, message = subscribe_service.send_return_reminder(
            open_id=request.open_id,
            book_name=request.book_name,
            return_date=format_date(request.return_date),
            days_left=days_left,
            borrow_number=request.id,
        )
    except Exception:
        client.release_reminder(key)
        raise
    if success:
        client.mark_reminder_sent(key, request.id, SubscribeMessageType.RETURN_REMINDER.value, today)
        logger.info("已发送归还提醒: %s 剩余%d天", request.book_name, days_left)
    else:
        client.release_reminder(key)
        logger.warning("归还提醒发送失败: %s %s", request.id, message)
    return success


def check_and_send_return_reminders(client, subscribe_service, today=None,
                                    days_before=REMINDER_DAYS_BEFORE) -> dict:
    """检查并发送归还/逾期提醒，返回执行统计"""
    today = today or get_today_beijing_date()
    requests = client.get_all_borrow_requests()
    checked = 0
    to_send = 0
    sent = 0

    for request in requests:
        if request.status != BorrowRequestStatus.BORROWED or not request.return_date or not request.open_id:
            continue
        checked += 1
        days_left = request.days_until_due(today)

        if days_left < 0:
            if not client.is_subscribed(request.open_id, SubscribeMessageType.OVERDUE_REMINDER):
                continue
            if not client.reserve_reminder(reminder_key(request.id, today)):
                continue
            to_send += 1
            if _send_overdue(client, subscribe_service, request, today):
                sent += 1
        elif days_left in days_before:
            if not client.is_subscribed(request.open_id, SubscribeMessageType.RETURN_REMINDER):
                continue
            if not client.reserve_reminder(reminder_key(request.id, today, days_left)):
                continue
            to_send += 1
            if _send_return_reminder(client, subscribe_service, request, today, days_left):
                sent += 1

    message = f'检查完成，需发送{to_send}条提醒，成功{sent}条'
    logger.info("归还提醒检查: 共%d条记录, 已借出%d条, %s", len(requests), checked, message)
    return {
        'success': True,
        'totalRecords': len(requests),
        'recordsChecked': checked,
        'remindersToSend': to_send,
        'sentCount': sent,
        'message': message,
    }


def send_overdue_reminder_now(client, subscribe_service, request_id, today=None) -> dict:
    """管理员手动发送提醒：已逾期发送逾期提醒，否则发送归还提醒"""
    today = today or get_today_beijing_date()
    request = client.get_borrow_request(request_id)
    if request is None:
        raise RequestNotFoundError('申请不存在')
    if request.status != BorrowRequestStatus.BORROWED or not request.return_date:
        raise ValidationError('只能提醒已借出的申请')

    days_left = request.days_until_due(today)
    key = reminder_key(request.id, today) if days_left < 0 else reminder_key(request.id, today, days_left)
    if not client.reserve_reminder(key):
        return {'success': False, 'sent': False, 'message': '今天已发送过提醒'}

    if days_left < 0:
        success = _send_overdue(client, subscribe_service, request, today)
    else:
        success = _send_return_reminder(client, subscribe_service, request, today, days_left)
    return {
        'success': success,
        'sent': success,
        'message': '提醒已发送' if success else '提醒发送失败',
    }


def init_scheduler(client, subscribe_service, hour=REMINDER_HOUR, minute=REMINDER_MINUTE,
                   run_now=True) -> BackgroundScheduler:
    """启动每日提醒任务，启动后立即执行一次"""

    def job():
        try:
            check_and_send_return_reminders(client, subscribe_service)
        except Exception:
            logger.exception("归还提醒任务执行失败")

    scheduler = BackgroundScheduler(timezone=BEIJING_TZ)
    scheduler.add_job(job, 'cron', hour=hour, minute=minute, id='return_reminders',
                      replace_existing=True)
    if run_now:
        scheduler.add_job(job, 'date', run_date=datetime.now(BEIJING_TZ) + timedelta(seconds=1),
                          id='return_reminders_startup')
    scheduler.start()
    logger.info("归还提醒定时任务已启动: 每天 %02d:%02d", hour, minute)
    return scheduler
