# -*- coding: utf-8 -*-
import pytest

from common import config
from common.api_client import APIClient
from common.excel_data_store import ExcelDataStore
from common.exceptions import WeChatAPIError
from common.subscribe_service import SubscribeService


class FakeWeChatClient:
    """记录调用的微信客户端，不访问网络"""

    def __init__(self):
        self.sent = []
        self.fail_send = False

    def code_to_session(self, code):
        if code == 'bad-code':
            raise WeChatAPIError('invalid code', 40029)
        return {'openid': f'openid-{code}', 'session_key': 'c2Vzc2lvbi1rZXktMTIzNA=='}

    def get_phone_number(self, code):
        return '13800138000'

    def decrypt_data(self, session_key, encrypted_data, iv):
        return {'phoneNumber': '13900139000', 'purePhoneNumber': '13900139000'}

    def send_subscribe_message(self, open_id, template_id, data, page='', state='formal'):
        if self.fail_send:
            raise WeChatAPIError('user refuse to accept the msg', 43101)
        self.sent.append({'open_id': open_id, 'template_id': template_id, 'data': data, 'page': page})
        return {'errcode': 0, 'errmsg': 'ok'}


TEMPLATE_IDS = {
    'BORROW_SUCCESS': 'tmpl-borrow-success-0001',
    'RETURN_REMINDER': 'tmpl-return-reminder-0002',
    'OVERDUE_REMINDER': 'tmpl-overdue-reminder-0003',
    'RETURN_SUCCESS': 'tmpl-return-success-0004',
}


@pytest.fixture
def templates(monkeypatch):
    for key, value in TEMPLATE_IDS.items():
        monkeypatch.setitem(config.WX_TEMPLATE_IDS, key, value)
    return TEMPLATE_IDS


@pytest.fixture
def wechat():
    return FakeWeChatClient()


@pytest.fixture
def subscribe_service(wechat, templates):
    return SubscribeService(wechat)


@pytest.fixture
def store(tmp_path):
    return ExcelDataStore(str(tmp_path))


@pytest.fixture
def api_client(store, subscribe_service):
    return APIClient(store=store, subscribe_service=subscribe_service,
                     seed_demo_data=False, admin_open_ids=['openid-admin'])


@pytest.fixture
def user(api_client):
    return api_client.upsert_user('openid-alice', nick_name='Alice')


@pytest.fixture
def book(api_client):
    return api_client.create_book({
        'name': '深入理解计算机系统',
        'author': 'Randal E. Bryant',
        'isbn': '9787111544937',
        'category': '计算机',
        'totalCount': 2,
        'availableCount': 1,
    }, 'admin')
