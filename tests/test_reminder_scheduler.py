# -*- coding: utf-8 -*-
from datetime import date, timedelta

import pytest

from common.exceptions import ValidationError
from common.models import BorrowRequestStatus
from common.reminder_scheduler import (
    check_and_send_return_reminders, reminder_key, send_overdue_reminder_now,
)
from common.utils import format_date


@pytest.fixture
def borrowed(api_client, user, wechat):
    request = api_client.submit_borrow_request('openid-alice', {'borrowDays': 7})
    api_client.review_borrow_request(request.id, 'approve', 'admin')
    request = api_client.confirm_borrow(request.id, 'admin')
    wechat.sent.clear()
    return request


def subscribe(api_client, *types):
    api_client.set_subscriptions('openid-alice', {t: 'accept' for t in types})


def test_reminder_keys():
    today = date(2024, 5, 7)
    assert reminder_key('r1', today, 3) == 'r1_3days_2024-05-07'
    assert reminder_key('r1', today) == 'r1_overdue_2024-05-07'


def test_return_reminder_sent_once_per_day(api_client, subscribe_service, borrowed, wechat, templates):
    subscribe(api_client, 'RETURN_REMINDER')
    today = borrowed.return_date - timedelta(days=3)

    result = check_and_send_return_reminders(api_client, subscribe_service, today)
    assert result['success']
    assert result['recordsChecked'] == 1
    assert result['remindersToSend'] == 1
    assert result['sentCount'] == 1
    assert wechat.sent[0]['template_id'] == templates['RETURN_REMINDER']
    assert wechat.sent[0]['data']['number3'] == {'value': '3'}
    assert api_client.is_reminder_sent(f'{borrowed.id}_3days_{format_date(today)}')

    again = check_and_send_return_reminders(api_client, subscribe_service, today)
    assert again['remindersToSend'] == 0
    assert len(wechat.sent) == 1


def test_no_reminder_on_other_days(api_client, subscribe_service, borrowed, wechat):
    subscribe(api_client, 'RETURN_REMINDER')
    today = borrowed.return_date - timedelta(days=2)
    result = check_and_send_return_reminders(api_client, subscribe_service, today)
    assert result['sentCount'] == 0
    assert wechat.sent == []


def test_reminder_requires_authorization(api_client, subscribe_service, borrowed, wechat):
    today = borrowed.return_date - timedelta(days=1)
    result = check_and_send_return_reminders(api_client, subscribe_service, today)
    assert result['recordsChecked'] == 1
    assert result['remindersToSend'] == 0
    assert wechat.sent == []


def test_overdue_reminder(api_client, subscribe_service, borrowed, wechat, templates):
    subscribe(api_client, 'OVERDUE_REMINDER')
    today = borrowed.return_date + timedelta(days=2)

    result = check_and_send_return_reminders(api_client, subscribe_service, today)
    assert result['sentCount'] == 1
    message = wechat.sent[0]
    assert message['template_id'] == templates['OVERDUE_REMINDER']
    assert message['data']['number3'] == {'value': '2'}
    assert message['data']['date2'] == {'value': format_date(borrowed.return_date)}
    assert api_client.is_reminder_sent(reminder_key(borrowed.id, today))


def test_failed_send_is_retried_next_run(api_client, subscribe_service, borrowed, wechat):
    subscribe(api_client, 'OVERDUE_REMINDER')
    today = borrowed.return_date + timedelta(days=1)

    wechat.fail_send = True
    result = check_and_send_return_reminders(api_client, subscribe_service, today)
    assert result['remindersToSend'] == 1
    assert result['sentCount'] == 0
    assert not api_client.is_reminder_sent(reminder_key(borrowed.id, today))

    wechat.fail_send = False
    result = check_and_send_return_reminders(api_client, subscribe_service, today)
    assert result['sentCount'] == 1


def test_returned_requests_are_skipped(api_client, subscribe_service, borrowed, wechat):
    subscribe(api_client, 'OVERDUE_REMINDER')
    api_client.confirm_return(borrowed.id, 'admin')
    wechat.sent.clear()

    result = check_and_send_return_reminders(
        api_client, subscribe_service, borrowed.return_date + timedelta(days=1))
    assert result['totalRecords'] == 1
    assert result['recordsChecked'] == 0
    assert wechat.sent == []


def test_manual_reminder_is_deduplicated(api_client, subscribe_service, borrowed, wechat):
    today = borrowed.return_date + timedelta(days=1)
    result = send_overdue_reminder_now(api_client, subscribe_service, borrowed.id, today)
    assert result['success']
    assert len(wechat.sent) == 1

    result = send_overdue_reminder_now(api_client, subscribe_service, borrowed.id, today)
    assert not result['sent']
    assert len(wechat.sent) == 1


def test_manual_reminder_requires_borrowed(api_client, subscribe_service, user):
    request = api_client.submit_borrow_request('openid-alice', {})
    assert request.status == BorrowRequestStatus.PENDING
    with pytest.raises(ValidationError):
        send_overdue_reminder_now(api_client, subscribe_service, request.id)


def test_reminder_in_flight_is_not_sent_twice(api_client, subscribe_service, borrowed, wechat):
    today = borrowed.return_date + timedelta(days=1)
    nested = []

    class ReentrantSubscribeService:
        """发送过程中再次触发同一条提醒"""

        def send_overdue_reminder(self, **kwargs):
            nested.append(send_overdue_reminder_now(api_client, subscribe_service, borrowed.id, today))
            return subscribe_service.send_overdue_reminder(**kwargs)

    result = send_overdue_reminder_now(api_client, ReentrantSubscribeService(), borrowed.id, today)
    assert result['sent']
    assert nested[0]['sent'] is False
    assert len(wechat.sent) == 1
    assert api_client.is_reminder_sent(reminder_key(borrowed.id, today))


def test_reminder_key_released_when_send_raises(api_client, subscribe_service, borrowed, wechat):
    subscribe(api_client, 'OVERDUE_REMINDER')
    today = borrowed.return_date + timedelta(days=1)

    class BrokenSubscribeService:
        def send_overdue_reminder(self, **kwargs):
            raise RuntimeError('network down')

    with pytest.raises(RuntimeError):
        check_and_send_return_reminders(api_client, BrokenSubscribeService(), today)

    result = check_and_send_return_reminders(api_client, subscribe_service, today)
    assert result['sentCount'] == 1
    assert len(wechat.sent) == 1
