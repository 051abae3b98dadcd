# -*- coding: utf-8 -*-
"""
微信服务端接口客户端
access_token 换取、openId 解析、手机号获取/解密、订阅消息发送
这些接口需要 AppSecret，只能在服务端调用
"""
import base64
import json
import logging
import threading
import time

import requests
from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from .config import WX_APPID, WX_SECRET, WX_API_BASE, WX_TIMEOUT, WX_MINIPROGRAM_STATE
from .exceptions import WeChatAPIError

logger = logging.getLogger(__name__)

# access_token 提前5分钟过期
TOKEN_EXPIRE_MARGIN = 300
# access_token 失效/过期的错误码
TOKEN_INVALID_ERRCODES = (40001, 40014, 42001)


class WeChatClient:
    """微信服务端 API 客户端"""

    def __init__(self, appid=WX_APPID, secret=WX_SECRET, api_base=WX_API_BASE,
                 timeout=WX_TIMEOUT, session=None):
        self.appid = appid
        self.secret = secret
        self.api_base = api_base.rstrip('/')
        self.timeout = timeout
        self.session = session or requests.Session()
        self._token = ''
        self._token_expire_at = 0.0
        self._lock = threading.Lock()

    def _check_credentials(self):
        if not self.appid or not self.secret:
            raise WeChatAPIError('未配置 WX_APPID 或 WX_SECRET')

    def _parse(self, response) -> dict:
        try:
            response.raise_for_status()
            data = response.json()
        except requests.RequestException as e:
            raise WeChatAPIError(f'请求微信接口失败: {e}') from e
        except ValueError as e:
            raise WeChatAPIError('微信接口返回格式错误') from e

        errcode = data.get('errcode', 0)
        if errcode:
            if errcode in TOKEN_INVALID_ERRCODES:
                self.invalidate_token()
            raise WeChatAPIError(data.get('errmsg') or '微信接口调用失败', errcode)
        return data

    def _get(self, path: str, params: dict) -> dict:
        try:
            response = self.session.get(f'{self.api_base}{path}', params=params, timeout=self.timeout)
        except requests.RequestException as e:
            raise WeChatAPIError(f'请求微信接口失败: {e}') from e
        return self._parse(response)

    def _post(self, path: str, params: dict, payload: dict) -> dict:
        try:
            response = self.session.post(
                f'{self.api_base}{path}',
                params=params,
                data=json.dumps(payload, ensure_ascii=False).encode('utf-8'),
                headers={'Content-Type': 'application/json'},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise WeChatAPIError(f'请求微信接口失败: {e}') from e
        return self._parse(response)

    # ==================== access_token ====================

    def get_access_token(self) -> str:
        """获取 access_token，有效期内使用缓存"""
        with self._lock:
            if self._token and time.time() < self._token_expire_at:
                return self._token

            self._check_credentials()
            data = self._get('/cgi-bin/token', {
                'grant_type': 'client_credential',
                'appid': self.appid,
                'secret': self.secret,
            })
            token = data.get('access_token')
            if not token:
                raise WeChatAPIError(data.get('errmsg') or '获取access_token失败')

            expires_in = int(data.get('expires_in', 7200))
            self._token = token
            self._token_expire_at = time.time() + max(expires_in - TOKEN_EXPIRE_MARGIN, 0)
            logger.info("已刷新 access_token，%s 秒后过期", expires_in)
            return token

    def invalidate_token(self):
        """清除缓存的 access_token"""
        self._token = ''
        self._token_expire_at = 0.0

    # ==================== 登录 ====================

    def code_to_session(self, code: str) -> dict:
        """wx.login 的 code 换取 openid 和 session_key"""
        if not code:
            raise WeChatAPIError('缺少登录code')
        self._check_credentials()
        data = self._get('/sns/jscode2session', {
            'appid': self.appid,
            'secret': self.secret,
            'js_code': code,
            'grant_type': 'authorization_code',
        })
        if not data.get('openid'):
            raise WeChatAPIError('获取openId失败')
        return data

    # ==================== 手机号 ====================

    def get_phone_number(self, code: str) -> str:
        """新版手机号授权：用 getPhoneNumber 返回的 code 换取手机号"""
        if not code:
            raise WeChatAPIError('缺少手机号授权code')
        data = self._post('/wxa/business/getuserphonenumber',
                          {'access_token': self.get_access_token()},
                          {'code': code})
        phone_info = data.get('phone_info') or {}
        phone_number = phone_info.get('purePhoneNumber') or phone_info.get('phoneNumber')
        if not phone_number:
            raise WeChatAPIError('获取手机号失败')
        return phone_number

    def decrypt_data(self, session_key: str, encrypted_data: str, iv: str) -> dict:
        """旧版手机号授权：AES-128-CBC 解密 encryptedData"""
        try:
            key = base64.b64decode(session_key)
            cipher = Cipher(algorithms.AES(key), modes.CBC(base64.b64decode(iv)))
            decryptor = cipher.decryptor()
            padded = decryptor.update(base64.b64decode(encrypted_data)) + decryptor.finalize()
            unpadder = padding.PKCS7(128).unpadder()
            plain = unpadder.update(padded) + unpadder.finalize()
            data = json.loads(plain.decode('utf-8'))
        except (ValueError, TypeError) as e:
            raise WeChatAPIError('解密数据失败') from e

        watermark = data.get('watermark') or {}
        if self.appid and watermark.get('appid') != self.appid:
            raise WeChatAPIError('解密数据appid不匹配')
        return data

    # ==================== 订阅消息 ====================

    def send_subscribe_message(self, open_id: str, template_id: str, data: dict,
                               page: str = '', state: str = WX_MINIPROGRAM_STATE) -> dict:
        """发送订阅消息，errcode 非0 抛出 WeChatAPIError"""
        payload = {
            'touser': open_id,
            'template_id': template_id,
            'page': page or '',
            'data': data,
            'miniprogram_state': state,
            'lang': 'zh_CN',
        }
        return self._post('/cgi-bin/message/subscribe/send',
                          {'access_token': self.get_access_token()},
                          payload)
