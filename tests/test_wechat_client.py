# -*- coding: utf-8 -*-
import base64
import json
from unittest import mock

import pytest
import requests
from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from common.exceptions import WeChatAPIError
from common.wechat_client import WeChatClient


def make_response(payload, status_code=200):
    response = mock.Mock()
    response.status_code = status_code
    response.json.return_value = payload
    if status_code >= 400:
        response.raise_for_status.side_effect = requests.HTTPError(f'{status_code} error')
    else:
        response.raise_for_status.return_value = None
    return response


@pytest.fixture
def session():
    return mock.Mock()


@pytest.fixture
def client(session):
    return WeChatClient(appid='wx-test-appid', secret='test-secret',
                        api_base='https://api.example.com', timeout=3, session=session)


def test_access_token_is_cached(client, session):
    session.get.return_value = make_response({'access_token': 'TOKEN-1', 'expires_in': 7200})

    assert client.get_access_token() == 'TOKEN-1'
    assert client.get_access_token() == 'TOKEN-1'
    assert session.get.call_count == 1
    _, kwargs = session.get.call_args
    assert kwargs['params']['grant_type'] == 'client_credential'
    assert kwargs['timeout'] == 3


def test_access_token_refreshed_before_expiry(client, session):
    session.get.side_effect = [
        make_response({'access_token': 'TOKEN-1', 'expires_in': 200}),
        make_response({'access_token': 'TOKEN-2', 'expires_in': 7200}),
    ]
    assert client.get_access_token() == 'TOKEN-1'
    # 有效期不足5分钟，下次调用重新获取
    assert client.get_access_token() == 'TOKEN-2'


def test_missing_credentials(session):
    client = WeChatClient(appid='', secret='', session=session)
    with pytest.raises(WeChatAPIError):
        client.get_access_token()
    with pytest.raises(WeChatAPIError):
        client.code_to_session('code')
    session.get.assert_not_called()


def test_code_to_session(client, session):
    session.get.return_value = make_response({'openid': 'openid-1', 'session_key': 'key'})
    assert client.code_to_session('code-1')['openid'] == 'openid-1'
    args, kwargs = session.get.call_args
    assert args[0] == 'https://api.example.com/sns/jscode2session'
    assert kwargs['params']['js_code'] == 'code-1'


def test_errcode_raises(client, session):
    session.get.return_value = make_response({'errcode': 40029, 'errmsg': 'invalid code'})
    with pytest.raises(WeChatAPIError) as exc_info:
        client.code_to_session('bad')
    assert exc_info.value.errcode == 40029
    assert exc_info.value.errmsg == 'invalid code'


def test_http_error_raises(client, session):
    session.get.return_value = make_response({}, status_code=502)
    with pytest.raises(WeChatAPIError):
        client.get_access_token()


def test_network_error_raises(client, session):
    session.get.side_effect = requests.ConnectionError('refused')
    with pytest.raises(WeChatAPIError):
        client.get_access_token()


def test_invalid_token_errcode_clears_cache(client, session):
    session.get.return_value = make_response({'access_token': 'TOKEN-1', 'expires_in': 7200})
    session.post.return_value = make_response({'errcode': 40001, 'errmsg': 'invalid credential'})

    with pytest.raises(WeChatAPIError):
        client.send_subscribe_message('openid-1', 'tmpl', {'thing1': {'value': 'x'}})

    session.get.return_value = make_response({'access_token': 'TOKEN-2', 'expires_in': 7200})
    assert client.get_access_token() == 'TOKEN-2'


def test_send_subscribe_message_payload(client, session):
    session.get.return_value = make_response({'access_token': 'TOKEN-1', 'expires_in': 7200})
    session.post.return_value = make_response({'errcode': 0, 'errmsg': 'ok'})

    client.send_subscribe_message('openid-1', 'tmpl-1', {'thing1': {'value': '档案借阅'}},
                                  page='pages/myBorrows/myBorrows', state='developer')

    args, kwargs = session.post.call_args
    assert args[0] == 'https://api.example.com/cgi-bin/message/subscribe/send'
    assert kwargs['params'] == {'access_token': 'TOKEN-1'}
    payload = json.loads(kwargs['data'].decode('utf-8'))
    assert payload['touser'] == 'openid-1'
    assert payload['template_id'] == 'tmpl-1'
    assert payload['miniprogram_state'] == 'developer'
    assert payload['data']['thing1']['value'] == '档案借阅'


def test_get_phone_number(client, session):
    session.get.return_value = make_response({'access_token': 'TOKEN-1', 'expires_in': 7200})
    session.post.return_value = make_response({
        'errcode': 0, 'phone_info': {'phoneNumber': '+86 13800138000', 'purePhoneNumber': '13800138000'},
    })
    assert client.get_phone_number('phone-code') == '13800138000'


def encrypt(key, iv, data):
    padder = padding.PKCS7(128).padder()
    padded = padder.update(json.dumps(data).encode('utf-8')) + padder.finalize()
    encryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).encryptor()
    return base64.b64encode(encryptor.update(padded) + encryptor.finalize()).decode()


def test_decrypt_data(client):
    key = b'0123456789abcdef'
    iv = b'fedcba9876543210'
    encrypted = encrypt(key, iv, {'phoneNumber': '13800138000', 'watermark': {'appid': 'wx-test-appid'}})

    data = client.decrypt_data(base64.b64encode(key).decode(), encrypted, base64.b64encode(iv).decode())
    assert data['phoneNumber'] == '13800138000'


def test_decrypt_data_checks_appid(client):
    key = b'0123456789abcdef'
    iv = b'fedcba9876543210'
    encrypted = encrypt(key, iv, {'phoneNumber': '13800138000', 'watermark': {'appid': 'other'}})
    with pytest.raises(WeChatAPIError):
        client.decrypt_data(base64.b64encode(key).decode(), encrypted, base64.b64encode(iv).decode())


def test_decrypt_data_with_wrong_key(client):
    with pytest.raises(WeChatAPIError):
        client.decrypt_data(base64.b64encode(b'short').decode(), 'AAAA', base64.b64encode(b'0' * 16).decode())
