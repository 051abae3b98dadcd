# -*- coding: utf-8 -*-
from datetime import timedelta

import pytest

from admin_service.app import create_app
from common import config
from common.exceptions import DataStoreError
from common.utils import format_date, get_today_beijing_date


@pytest.fixture
def app(api_client, subscribe_service):
    app = create_app(api_client=api_client, subscribe_service=subscribe_service)
    app.config['TESTING'] = True
    return app


@pytest.fixture
def client(app):
    client = app.test_client()
    resp = client.post('/api/admin/login',
                       json={'username': config.ADMIN_USERNAME, 'password': config.ADMIN_PASSWORD})
    assert resp.get_json()['success']
    return client


@pytest.fixture
def pending(api_client, user):
    return api_client.submit_borrow_request('openid-alice', {'name': '张三', 'borrowDays': 7})


def test_login_failure_and_auth_required(app):
    anonymous = app.test_client()
    resp = anonymous.post('/api/admin/login', json={'username': 'admin', 'password': 'wrong'})
    assert resp.status_code == 401
    assert anonymous.get('/api/admin/borrow-requests').status_code == 401


def test_logout(client):
    client.post('/api/admin/logout')
    assert client.get('/api/admin/borrow-requests').status_code == 401


def test_list_with_counts_and_filter(client, pending):
    body = client.get('/api/admin/borrow-requests').get_json()
    assert body['data']['counts']['pending'] == 1
    assert body['data']['list'][0]['id'] == pending.id

    body = client.get('/api/admin/borrow-requests?status=approved').get_json()
    assert body['data']['list'] == []
    assert client.get('/api/admin/borrow-requests?status=lost').status_code == 400


def test_full_lifecycle(client, pending, wechat):
    resp = client.post(f'/api/admin/borrow-requests/{pending.id}/review', json={'action': 'approve'})
    data = resp.get_json()['data']
    assert data['status'] == 'approved'
    assert data['reviewer'] == config.ADMIN_USERNAME

    due = format_date(get_today_beijing_date() + timedelta(days=10))
    resp = client.post(f'/api/admin/borrow-requests/{pending.id}/confirm-borrow',
                       json={'dueDate': due, 'archiveNumbers': 'A-001，A-002', 'borrowReason': '查档'})
    data = resp.get_json()['data']
    assert data['status'] == 'borrowed'
    assert data['returnDate'] == due
    assert data['archiveNumbers'] == ['A-001', 'A-002']

    resp = client.post(f'/api/admin/borrow-requests/{pending.id}/confirm-return')
    assert resp.get_json()['data']['status'] == 'returned'
    assert len(wechat.sent) == 3

    logs = client.get('/api/admin/logs').get_json()['data']
    assert {log['operation_content'] for log in logs} >= {'审核通过', '确认借出', '确认归还'}


def test_invalid_transition_returns_error(client, pending):
    resp = client.post(f'/api/admin/borrow-requests/{pending.id}/confirm-return')
    assert resp.status_code == 400
    assert '待审核' in resp.get_json()['message']


def test_reject_and_missing_request(client, pending):
    resp = client.post(f'/api/admin/borrow-requests/{pending.id}/review',
                       json={'action': 'reject', 'adminRemark': '资料不全'})
    assert resp.get_json()['data']['adminRemark'] == '资料不全'
    assert client.post('/api/admin/borrow-requests/missing/review',
                       json={'action': 'approve'}).status_code == 404
    assert client.get('/api/admin/borrow-requests/missing').status_code == 404


def test_bad_due_date(client, pending):
    client.post(f'/api/admin/borrow-requests/{pending.id}/review', json={'action': 'approve'})
    resp = client.post(f'/api/admin/borrow-requests/{pending.id}/confirm-borrow', json={'dueDate': '2024/1/1'})
    assert resp.status_code == 400


def test_overdue_and_reminders(client, api_client, store, pending, wechat):
    api_client.review_borrow_request(pending.id, 'approve', 'admin')
    api_client.confirm_borrow(pending.id, 'admin')
    requests = store.load_borrow_requests()
    requests[0].return_date = get_today_beijing_date() - timedelta(days=2)
    store.save_borrow_requests(requests)
    wechat.sent.clear()

    body = client.get('/api/admin/overdue').get_json()
    assert body['data']['count'] == 1
    assert body['data']['list'][0]['overdueDays'] == 2

    resp = client.post(f'/api/admin/borrow-requests/{pending.id}/remind').get_json()
    assert resp['success']
    assert len(wechat.sent) == 1

    # 手动提醒已记录，定时检查不再重复发送
    api_client.set_subscriptions('openid-alice', {'OVERDUE_REMINDER': 'accept'})
    result = client.post('/api/admin/reminders/run').get_json()
    assert result['recordsChecked'] == 1
    assert result['sentCount'] == 0


def test_locked_workbook_returns_503(client, store, pending, monkeypatch):
    def raise_locked(items):
        raise DataStoreError('Excel文件被占用，无法保存: borrow_requests.xlsx')

    monkeypatch.setattr(store, 'save_borrow_requests', raise_locked)
    resp = client.post(f'/api/admin/borrow-requests/{pending.id}/review', json={'action': 'approve'})
    assert resp.status_code == 503
    assert '被占用' in resp.get_json()['message']
    assert client.get(f'/api/admin/borrow-requests/{pending.id}').get_json()['data']['status'] == 'pending'


def test_books_crud(client):
    resp = client.post('/api/admin/books', json={'name': 'TypeScript编程', 'totalCount': 8, 'availableCount': 3})
    book_id = resp.get_json()['data']['id']

    resp = client.put(f'/api/admin/books/{book_id}', json={'author': 'Boris Cherny'})
    assert resp.get_json()['data']['author'] == 'Boris Cherny'
    assert client.get('/api/admin/books').get_json()['data']['total'] == 1

    assert client.post('/api/admin/books', json={'name': ''}).status_code == 400
    assert client.delete(f'/api/admin/books/{book_id}').get_json()['success']
    assert client.put(f'/api/admin/books/{book_id}', json={}).status_code == 404


def test_users(client, user):
    users = client.get('/api/admin/users').get_json()['data']
    assert users[0]['openId'] == 'openid-alice'
    assert users[0]['isAdmin'] is False


def test_export_and_reload(client, pending):
    resp = client.get('/api/admin/borrow-requests/export')
    assert resp.status_code == 200
    assert resp.data[:2] == b'PK'
    assert 'attachment' in resp.headers['Content-Disposition']

    body = client.post('/api/admin/reload-data').get_json()
    assert body['success']
    assert body['counts']['pending'] == 1
