# -*- coding: utf-8 -*-
"""
共享配置模块
"""
import os
import logging
from dotenv import load_dotenv

# 加载环境变量
load_dotenv()


def _get_bool(name, default):
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


def _get_int_list(name, default):
    value = os.getenv(name, default)
    return tuple(int(item) for item in value.split(',') if item.strip())


# 服务器配置
SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')

# 项目根目录
BASE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
DATA_DIR = os.getenv('DATA_DIR', os.path.join(BASE_DIR, 'excel_data'))

# 端口配置
USER_SERVICE_PORT = int(os.getenv('USER_SERVICE_PORT', '5000'))
ADMIN_SERVICE_PORT = int(os.getenv('ADMIN_SERVICE_PORT', '5001'))

# 小程序配置（AppSecret 只能保存在服务端）
WX_APPID = os.getenv('WX_APPID', '')
WX_SECRET = os.getenv('WX_SECRET', '')
WX_API_BASE = os.getenv('WX_API_BASE', 'https://api.weixin.qq.com').rstrip('/')
WX_TIMEOUT = float(os.getenv('WX_TIMEOUT', '10'))
# developer / trial / formal
WX_MINIPROGRAM_STATE = os.getenv('WX_MINIPROGRAM_STATE', 'formal')

# 订阅消息模板ID（在微信公众平台 "功能 -> 订阅消息" 中申请）
WX_TEMPLATE_IDS = {
    'BORROW_SUCCESS': os.getenv('WX_TEMPLATE_BORROW_SUCCESS', 'YOUR_BORROW_SUCCESS_TEMPLATE_ID'),
    'RETURN_REMINDER': os.getenv('WX_TEMPLATE_RETURN_REMINDER', 'YOUR_RETURN_REMINDER_TEMPLATE_ID'),
    'OVERDUE_REMINDER': os.getenv('WX_TEMPLATE_OVERDUE_REMINDER', 'YOUR_OVERDUE_REMINDER_TEMPLATE_ID'),
    'RETURN_SUCCESS': os.getenv('WX_TEMPLATE_RETURN_SUCCESS', 'YOUR_RETURN_SUCCESS_TEMPLATE_ID'),
}
SUBSCRIBE_DEFAULT_PAGE = os.getenv('SUBSCRIBE_DEFAULT_PAGE', 'pages/myBorrows/myBorrows')

# 管理员配置
ADMIN_USERNAME = os.getenv('ADMIN_USERNAME', 'admin')
ADMIN_PASSWORD = os.getenv('ADMIN_PASSWORD', 'admin123')
ADMIN_OPENIDS = [item.strip() for item in os.getenv('ADMIN_OPENIDS', '').split(',') if item.strip()]

# 借阅规则
DEFAULT_BORROW_DAYS = int(os.getenv('DEFAULT_BORROW_DAYS', '7'))
MAX_BORROW_DAYS = int(os.getenv('MAX_BORROW_DAYS', '90'))
DEFAULT_BOOK_ID = 'default'
DEFAULT_BOOK_NAME = '档案借阅'

# 提醒调度：归还日期前N天提醒，每天定时检查
REMINDER_DAYS_BEFORE = _get_int_list('REMINDER_DAYS_BEFORE', '3,1')
REMINDER_HOUR = int(os.getenv('REMINDER_HOUR', '9'))
REMINDER_MINUTE = int(os.getenv('REMINDER_MINUTE', '0'))

# 数据为空时写入示例图书
SEED_DEMO_DATA = _get_bool('SEED_DEMO_DATA', True)

LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO').upper()

# Excel 文件名
EXCEL_FILES = {
    'books': '图书表.xlsx',
    'users': '用户表.xlsx',
    'borrow_requests': '借阅申请表.xlsx',
    'admins': '管理员表.xlsx',
    'operation_logs': '操作日志表.xlsx',
    'notifications': '通知表.xlsx',
    'sent_reminders': '提醒记录表.xlsx',
}


def setup_logging(level=None):
    """初始化日志输出格式"""
    logging.basicConfig(
        level=level or LOG_LEVEL,
        format='%(asctime)s %(levelname)s [%(name)s] %(message)s',
    )
