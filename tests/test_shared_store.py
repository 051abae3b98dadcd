# -*- coding: utf-8 -*-
"""用户服务与管理服务各自持有 APIClient，共用同一份 Excel 数据"""
from datetime import timedelta

import pytest

from common.api_client import APIClient
from common.models import BorrowRequestStatus, SubscribeMessageType
from common.reminder_scheduler import check_and_send_return_reminders, reminder_key


@pytest.fixture
def admin_side(store, subscribe_service, api_client):
    return APIClient(store=store, subscribe_service=subscribe_service, seed_demo_data=False)


@pytest.fixture
def user_side(api_client, user):
    return api_client


def test_admin_write_keeps_user_submission(store, user_side, admin_side):
    request = user_side.submit_borrow_request('openid-alice', {'name': '张三'})
    admin_side.create_book({'name': 'TypeScript编程', 'totalCount': 2}, 'admin')

    fresh = APIClient(store=store, seed_demo_data=False)
    assert fresh.get_borrow_request(request.id).name == '张三'
    assert fresh.get_user_by_open_id('openid-alice').nick_name == 'Alice'
    assert [b.name for b in fresh.get_books()[0]] == ['TypeScript编程']
    assert admin_side.get_status_counts()['pending'] == 1


def test_user_write_keeps_admin_transitions(store, user_side, admin_side):
    request = user_side.submit_borrow_request('openid-alice', {})
    admin_side.review_borrow_request(request.id, 'approve', 'admin')
    admin_side.confirm_borrow(request.id, 'admin')

    assert user_side.mark_all_read('openid-alice') == 3

    fresh = APIClient(store=store, seed_demo_data=False)
    assert fresh.get_borrow_request(request.id).status == BorrowRequestStatus.BORROWED
    assert user_side.get_borrow_request(request.id).status == BorrowRequestStatus.BORROWED
    assert admin_side.get_unread_count('openid-alice') == 0


def test_admin_reminder_sees_user_subscription(user_side, admin_side, subscribe_service, wechat):
    request = user_side.submit_borrow_request('openid-alice', {'borrowDays': 7})
    admin_side.review_borrow_request(request.id, 'approve', 'admin')
    request = admin_side.confirm_borrow(request.id, 'admin')
    wechat.sent.clear()

    user_side.set_subscription('openid-alice', SubscribeMessageType.RETURN_REMINDER, True)

    today = request.return_date - timedelta(days=3)
    result = check_and_send_return_reminders(admin_side, subscribe_service, today, days_before=(3,))
    assert result['sentCount'] == 1
    assert len(wechat.sent) == 1
    assert user_side.is_reminder_sent(reminder_key(request.id, today, 3))
