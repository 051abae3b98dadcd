# -*- coding: utf-8 -*-
"""
档案借阅小程序 - 管理服务
审核借阅申请、登记借出/归还、发送提醒、维护图书
端口: 5001
"""
import io
import logging
from functools import wraps

from flask import Flask, request, jsonify, session, send_file

from common.api_client import APIClient
from common.config import SECRET_KEY, ADMIN_SERVICE_PORT, setup_logging
from common.exceptions import DataStoreError, RequestNotFoundError
from common.models import BorrowRequestStatus
from common.reminder_scheduler import (
    check_and_send_return_reminders, send_overdue_reminder_now, init_scheduler,
)
from common.subscribe_service import SubscribeService
from common.utils import get_today_beijing_date, get_beijing_time
from common.wechat_client import WeChatClient

logger = logging.getLogger(__name__)


def admin_required(f):
    """管理员权限验证装饰器"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if 'admin_id' not in session:
            return jsonify({'success': False, 'message': '请先登录管理员账号'}), 401
        return f(*args, **kwargs)
    return decorated_function


def error_response(e):
    """业务异常转换为 JSON 响应"""
    status = 404 if isinstance(e, RequestNotFoundError) else 400
    return jsonify({'success': False, 'message': str(e)}), status


def parse_status(value):
    """解析状态筛选参数，空值表示全部"""
    if not value or value == 'all':
        return None
    return BorrowRequestStatus(value)


def create_app(api_client=None, subscribe_service=None):
    """创建管理服务应用"""
    if subscribe_service is None:
        subscribe_service = SubscribeService(WeChatClient())
    if api_client is None:
        api_client = APIClient(subscribe_service=subscribe_service)

    app = Flask(__name__)
    app.secret_key = SECRET_KEY
    app.json.ensure_ascii = False
    app.extensions['api_client'] = api_client
    app.extensions['subscribe_service'] = subscribe_service

    def operator():
        return session.get('admin_name', '管理员')

    @app.route('/health')
    def health():
        return jsonify({'success': True, 'status': 'ok', 'service': 'admin'})

    # ==================== 登录 ====================

    @app.route('/api/admin/login', methods=['POST'])
    def api_admin_login():
        """管理员登录"""
        data = request.get_json(silent=True) or {}
        username = (data.get('username') or '').strip()
        password = data.get('password') or ''

        admin = api_client.verify_admin(username, password)
        if admin:
            session['admin_id'] = admin.id
            session['admin_name'] = admin.username
            logger.info("管理员登录: %s", admin.username)
            return jsonify({'success': True, 'admin': admin.to_dict()})
        return jsonify({'success': False, 'message': '用户名或密码错误'}), 401

    @app.route('/api/admin/logout', methods=['POST'])
    def api_admin_logout():
        """管理员退出登录"""
        session.pop('admin_id', None)
        session.pop('admin_name', None)
        return jsonify({'success': True})

    # ==================== 借阅申请 ====================

    @app.route('/api/admin/borrow-requests', methods=['GET'])
    @admin_required
    def api_borrow_requests():
        """借阅申请列表，可按状态筛选"""
        try:
            status = parse_status(request.args.get('status', '').strip())
        except ValueError:
            return jsonify({'success': False, 'message': '状态参数无效'}), 400
        requests = api_client.get_all_borrow_requests(status)
        return jsonify({
            'success': True,
            'data': {
                'list': [r.to_dict() for r in requests],
                'counts': api_client.get_status_counts(),
            },
        })

    @app.route('/api/admin/borrow-requests/export', methods=['GET'])
    @admin_required
    def api_export_borrow_requests():
        """导出借阅申请为 Excel"""
        try:
            status = parse_status(request.args.get('status', '').strip())
        except ValueError:
            return jsonify({'success': False, 'message': '状态参数无效'}), 400
        content = api_client.export_borrow_requests(status)
        filename = f'借阅申请_{get_beijing_time().strftime("%Y%m%d")}.xlsx'
        return send_file(
            io.BytesIO(content),
            mimetype='application/vnd.openxmlformats-officedocument.spreadsheetml.sheet',
            as_attachment=True,
            download_name=filename,
        )

    @app.route('/api/admin/borrow-requests/<request_id>', methods=['GET'])
    @admin_required
    def api_borrow_request_detail(request_id):
        borrow_request = api_client.get_borrow_request(request_id)
        if not borrow_request:
            return jsonify({'success': False, 'message': '申请不存在'}), 404
        return jsonify({'success': True, 'data': borrow_request.to_dict()})

    @app.route('/api/admin/borrow-requests/<request_id>/review', methods=['POST'])
    @admin_required
    def api_review(request_id):
        """审核：action 为 approve 或 reject"""
        data = request.get_json(silent=True) or {}
        try:
            borrow_request = api_client.review_borrow_request(
                request_id,
                data.get('action'),
                operator(),
                admin_remark=data.get('adminRemark') or '',
            )
        except ValueError as e:
            return error_response(e)
        message = '已批准' if borrow_request.status == BorrowRequestStatus.APPROVED else '已拒绝'
        return jsonify({'success': True, 'message': message, 'data': borrow_request.to_dict()})

    @app.route('/api/admin/borrow-requests/<request_id>/confirm-borrow', methods=['POST'])
    @admin_required
    def api_confirm_borrow(request_id):
        """确认借出"""
        data = request.get_json(silent=True) or {}
        archive_numbers = data.get('archiveNumbers') or []
        if isinstance(archive_numbers, str):
            archive_numbers = archive_numbers.replace('，', ',').split(',')
        try:
            borrow_request = api_client.confirm_borrow(
                request_id,
                operator(),
                due_date=data.get('dueDate'),
                archive_numbers=archive_numbers,
                borrow_reason=data.get('borrowReason') or '',
            )
        except ValueError as e:
            return error_response(e)
        return jsonify({'success': True, 'message': '已确认借出', 'data': borrow_request.to_dict()})

    @app.route('/api/admin/borrow-requests/<request_id>/confirm-return', methods=['POST'])
    @admin_required
    def api_confirm_return(request_id):
        """确认归还"""
        try:
            borrow_request = api_client.confirm_return(request_id, operator())
        except ValueError as e:
            return error_response(e)
        return jsonify({'success': True, 'message': '已确认归还', 'data': borrow_request.to_dict()})

    @app.route('/api/admin/borrow-requests/<request_id>/remind', methods=['POST'])
    @admin_required
    def api_remind(request_id):
        """手动发送归还/逾期提醒"""
        try:
            result = send_overdue_reminder_now(api_client, subscribe_service, request_id)
        except ValueError as e:
            return error_response(e)
        return jsonify(result)

    # ==================== 逾期与提醒 ====================

    @app.route('/api/admin/overdue', methods=['GET'])
    @admin_required
    def api_overdue():
        """逾期未归还列表"""
        today = get_today_beijing_date()
        overdue = []
        for r in api_client.get_overdue_requests(today):
            item = r.to_dict()
            item['overdueDays'] = -r.days_until_due(today)
            overdue.append(item)
        return jsonify({'success': True, 'data': {'list': overdue, 'count': len(overdue)}})

    @app.route('/api/admin/reminders/run', methods=['POST'])
    @admin_required
    def api_run_reminders():
        """立即执行一次归还提醒检查"""
        result = check_and_send_return_reminders(api_client, subscribe_service)
        return jsonify(result)

    # ==================== 图书 ====================

    @app.route('/api/admin/books', methods=['GET', 'POST'])
    @admin_required
    def api_books():
        if request.method == 'GET':
            books, total = api_client.get_books(
                keyword=request.args.get('keyword', '').strip() or None,
                category=request.args.get('category', '').strip() or None,
                page=request.args.get('page', 1, type=int),
                page_size=request.args.get('pageSize', 100, type=int),
            )
            return jsonify({'success': True, 'data': {'list': [b.to_dict() for b in books], 'total': total}})

        try:
            book = api_client.create_book(request.get_json(silent=True) or {}, operator())
        except ValueError as e:
            return error_response(e)
        return jsonify({'success': True, 'message': '添加成功', 'data': book.to_dict()})

    @app.route('/api/admin/books/<book_id>', methods=['PUT', 'DELETE'])
    @admin_required
    def api_book_detail(book_id):
        try:
            if request.method == 'DELETE':
                api_client.delete_book(book_id, operator())
                return jsonify({'success': True, 'message': '删除成功'})
            book = api_client.update_book(book_id, request.get_json(silent=True) or {}, operator())
        except ValueError as e:
            return error_response(e)
        return jsonify({'success': True, 'message': '保存成功', 'data': book.to_dict()})

    # ==================== 用户与日志 ====================

    @app.route('/api/admin/users', methods=['GET'])
    @admin_required
    def api_users():
        users = []
        for user in api_client.get_all_users():
            item = user.to_dict()
            item['isAdmin'] = api_client.is_admin_open_id(user.open_id)
            users.append(item)
        return jsonify({'success': True, 'data': users})

    @app.route('/api/admin/logs', methods=['GET'])
    @admin_required
    def api_logs():
        limit = request.args.get('limit', 50, type=int)
        logs = api_client.get_operation_logs(limit=limit)
        return jsonify({'success': True, 'data': [log.to_dict() for log in logs]})

    @app.route('/api/admin/reload-data', methods=['POST'])
    @admin_required
    def api_reload_data():
        """重新从Excel加载数据"""
        try:
            api_client.reload_data()
        except Exception as e:
            logger.error("重新加载数据失败: %s", e)
            return jsonify({'success': False, 'message': f'重新加载数据失败: {str(e)}'}), 500
        return jsonify({
            'success': True,
            'message': '数据重新加载成功',
            'counts': api_client.get_status_counts(),
        })

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
    init_scheduler(app.extensions['api_client'], app.extensions['subscribe_service'])
    logger.info("管理服务启动在端口 %s", ADMIN_SERVICE_PORT)
    app.run(debug=False, host='0.0.0.0', port=ADMIN_SERVICE_PORT)
