# -*- coding: utf-8 -*-
"""
档案借阅小程序 - 用户服务
提供小程序端接口：登录、手机号、图书、借阅申请、订阅消息授权、站内通知
端口: 5000
"""
import logging
from functools import wraps

from flask import Flask, request, jsonify, session

from common.api_client import APIClient
from common.config import SECRET_KEY, USER_SERVICE_PORT, setup_logging
from common.exceptions import DataStoreError, RequestNotFoundError, WeChatAPIError
from common.subscribe_message import get_subscribe_status
from common.subscribe_service import SubscribeService
from common.utils import mask_open_id, mask_phone
from common.wechat_client import WeChatClient

logger = logging.getLogger(__name__)


def login_required(f):
    """登录验证装饰器 - 未登录返回401"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if 'open_id' not in session:
            return jsonify({'success': False, 'message': '请先登录'}), 401
        return f(*args, **kwargs)
    return decorated_function


def error_response(e):
    """业务异常转换为 JSON 响应"""
    status = 404 if isinstance(e, RequestNotFoundError) else 400
    return jsonify({'success': False, 'message': str(e)}), status


def create_app(api_client=None, wechat_client=None):
    """创建用户服务应用"""
    wechat_client = wechat_client or WeChatClient()
    if api_client is None:
        api_client = APIClient(subscribe_service=SubscribeService(wechat_client))

    app = Flask(__name__)
    app.secret_key = SECRET_KEY
    app.json.ensure_ascii = False
    app.extensions['api_client'] = api_client
    app.extensions['wechat_client'] = wechat_client

    def current_open_id():
        return session.get('open_id', '')

    @app.route('/health')
    def health():
        return jsonify({'success': True, 'status': 'ok', 'service': 'user'})

    # ==================== 用户 ====================

    @app.route('/api/user/login', methods=['POST'])
    def api_login():
        """wx.login 登录：code 换取 openId 并保存用户"""
        data = request.get_json(silent=True) or {}
        code = (data.get('code') or '').strip()
        if not code:
            return jsonify({'success': False, 'message': '缺少登录code'}), 400

        try:
            result = wechat_client.code_to_session(code)
        except WeChatAPIError as e:
            logger.warning("登录失败: %s", e)
            return jsonify({'success': False, 'message': f'登录失败: {e.errmsg}'}), 502

        open_id = result['openid']
        try:
            user = api_client.upsert_user(
                open_id,
                nick_name=(data.get('nickName') or '').strip(),
                avatar_url=(data.get('avatarUrl') or '').strip(),
            )
        except ValueError as e:
            return error_response(e)

        session['open_id'] = open_id
        session['session_key'] = result.get('session_key', '')
        logger.info("用户登录: %s", mask_open_id(open_id))
        return jsonify({
            'success': True,
            'data': {
                'openId': open_id,
                'user': user.to_dict(),
                'isAdmin': api_client.is_admin_open_id(open_id),
            },
        })

    @app.route('/api/user/logout', methods=['POST'])
    def api_logout():
        session.pop('open_id', None)
        session.pop('session_key', None)
        return jsonify({'success': True})

    @app.route('/api/user/decryptPhone', methods=['POST'])
    @login_required
    def api_decrypt_phone():
        """获取手机号：新版传 code，旧版传 encryptedData + iv"""
        data = request.get_json(silent=True) or {}
        code = (data.get('code') or '').strip()
        encrypted_data = data.get('encryptedData')
        iv = data.get('iv')

        try:
            if code:
                phone_number = wechat_client.get_phone_number(code)
            elif encrypted_data and iv:
                session_key = session.get('session_key')
                if not session_key:
                    return jsonify({'success': False, 'message': '登录已过期，请重新登录'}), 401
                decrypted = wechat_client.decrypt_data(session_key, encrypted_data, iv)
                phone_number = decrypted.get('purePhoneNumber') or decrypted.get('phoneNumber')
                if not phone_number:
                    return jsonify({'success': False, 'message': '获取手机号失败'}), 400
            else:
                return jsonify({'success': False, 'message': '缺少手机号授权参数'}), 400
        except WeChatAPIError as e:
            logger.warning("获取手机号失败: %s", e)
            return jsonify({'success': False, 'message': f'获取手机号失败: {e.errmsg}'}), 502

        try:
            api_client.update_user_profile(current_open_id(), {'phoneNumber': phone_number})
        except ValueError as e:
            return error_response(e)

        logger.info("用户绑定手机号: %s %s", mask_open_id(current_open_id()), mask_phone(phone_number))
        return jsonify({'success': True, 'data': {'phoneNumber': phone_number}})

    @app.route('/api/user/profile', methods=['GET', 'PUT'])
    @login_required
    def api_profile():
        """获取/更新个人资料"""
        if request.method == 'GET':
            user = api_client.get_user_by_open_id(current_open_id())
            if not user:
                return jsonify({'success': False, 'message': '用户不存在'}), 404
            return jsonify({'success': True, 'data': user.to_dict()})

        try:
            user = api_client.update_user_profile(current_open_id(), request.get_json(silent=True) or {})
        except ValueError as e:
            return error_response(e)
        return jsonify({'success': True, 'message': '保存成功', 'data': user.to_dict()})

    # ==================== 图书 ====================

    @app.route('/api/books', methods=['GET'])
    def api_books():
        """图书列表，支持关键词/分类搜索和分页"""
        page = request.args.get('page', 1, type=int)
        page_size = request.args.get('pageSize', 20, type=int)
        books, total = api_client.get_books(
            keyword=request.args.get('keyword', '').strip() or None,
            category=request.args.get('category', '').strip() or None,
            page=page,
            page_size=page_size,
        )
        return jsonify({
            'success': True,
            'data': {
                'list': [b.to_dict() for b in books],
                'total': total,
                'page': page,
                'pageSize': page_size,
            },
        })

    @app.route('/api/books/<book_id>', methods=['GET'])
    def api_book_detail(book_id):
        book = api_client.get_book(book_id)
        if not book:
            return jsonify({'success': False, 'message': '图书不存在'}), 404
        return jsonify({'success': True, 'data': book.to_dict()})

    # ==================== 借阅申请 ====================

    @app.route('/api/borrow-requests', methods=['POST'])
    @login_required
    def api_submit_borrow_request():
        """提交借阅申请"""
        try:
            borrow_request = api_client.submit_borrow_request(
                current_open_id(), request.get_json(silent=True) or {})
        except ValueError as e:
            return error_response(e)
        return jsonify({'success': True, 'message': '申请已提交，请等待审核', 'data': borrow_request.to_dict()})

    @app.route('/api/borrow-requests/mine', methods=['GET'])
    @login_required
    def api_my_borrow_requests():
        requests = api_client.get_my_borrow_requests(current_open_id())
        return jsonify({'success': True, 'data': [r.to_dict() for r in requests]})

    @app.route('/api/borrow-requests/<request_id>', methods=['GET'])
    @login_required
    def api_borrow_request_detail(request_id):
        """申请详情，只能查看自己的申请"""
        borrow_request = api_client.get_borrow_request(request_id)
        if not borrow_request or borrow_request.open_id != current_open_id():
            return jsonify({'success': False, 'message': '申请不存在'}), 404
        return jsonify({'success': True, 'data': borrow_request.to_dict()})

    # ==================== 订阅消息 ====================

    @app.route('/api/subscribe/status', methods=['GET'])
    @login_required
    def api_subscribe_status():
        user = api_client.get_user_by_open_id(current_open_id())
        subscribed_types = user.subscribed_types if user else []
        return jsonify({'success': True, 'data': get_subscribe_status(subscribed_types)})

    @app.route('/api/subscribe/authorize', methods=['POST'])
    @login_required
    def api_subscribe_authorize():
        """保存 wx.requestSubscribeMessage 的授权结果"""
        data = request.get_json(silent=True) or {}
        results = data.get('results')
        if not isinstance(results, dict):
            return jsonify({'success': False, 'message': '缺少授权结果'}), 400
        try:
            user = api_client.set_subscriptions(current_open_id(), results)
        except ValueError as e:
            return error_response(e)
        return jsonify({'success': True, 'data': get_subscribe_status(user.subscribed_types)})

    # ==================== 站内通知 ====================

    @app.route('/api/notifications', methods=['GET'])
    @login_required
    def api_notifications():
        unread_only = request.args.get('unreadOnly', '').lower() in ('1', 'true')
        notifications = api_client.get_notifications(current_open_id(), unread_only=unread_only)
        return jsonify({'success': True, 'data': [n.to_dict() for n in notifications]})

    @app.route('/api/notifications/unread-count', methods=['GET'])
    @login_required
    def api_unread_count():
        return jsonify({'success': True, 'data': {'count': api_client.get_unread_count(current_open_id())}})

    @app.route('/api/notifications/<notification_id>/read', methods=['POST'])
    @login_required
    def api_mark_read(notification_id):
        if api_client.mark_notification_read(notification_id, current_open_id()):
            return jsonify({'success': True})
        return jsonify({'success': False, 'message': '通知不存在'}), 404

    @app.route('/api/notifications/read-all', methods=['POST'])
    @login_required
    def api_mark_all_read():
        count = api_client.mark_all_read(current_open_id())
        return jsonify({'success': True, 'data': {'count': count}})

    # ==================== 错误处理 ====================

    @app.errorhandler(404)
    def not_found(error):
        return jsonify({'success': False, 'message': '接口不存在'}), 404

    @app.errorhandler(500)
    def internal_error(error):
        logger.error("服务器内部错误: %s", error)
        return jsonify({'success': False, 'message': '服务器内部错误'}), 500

    @app.errorhandler(DataStoreError)
    def data_store_error(error):
        logger.error("数据文件读写失败: %s", error)
        return jsonify({'success': False, 'message': str(error)}), 503

    return app


if __name__ == '__main__':
    setup_logging()
    app = create_app()
    logger.info("用户服务启动在端口 %s", USER_SERVICE_PORT)
    app.run(debug=False, host='0.0.0.0', port=USER_SERVICE_PORT)
