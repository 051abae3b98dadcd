# -*- coding: utf-8 -*-
"""
订阅消息模板配置

模板字段：
- 借阅成功通知：图书名称(thing1)、借阅日期(date2)、归还日期(date3)、借阅编号(character_string4)
- 归还提醒通知：图书名称(thing1)、归还日期(date2)、剩余天数(number3)、借阅编号(character_string4)
- 逾期提醒通知：图书名称(thing1)、应归还日期(date2)、逾期天数(number3)、借阅编号(character_string4)
- 归还成功通知：图书名称(thing1)、归还日期(date2)、借阅编号(character_string3)
"""
from .config import WX_TEMPLATE_IDS
from .exceptions import ValidationError
from .models import SubscribeMessageType

# 微信订阅消息字段长度限制
THING_MAX_LENGTH = 20
CHARACTER_STRING_MAX_LENGTH = 32

SUBSCRIBE_MESSAGE_TEMPLATES = {
    SubscribeMessageType.BORROW_SUCCESS: {
        'title': '借阅成功通知',
        'description': '当您成功借阅图书时，我们会及时通知您',
    },
    SubscribeMessageType.RETURN_REMINDER: {
        'title': '归还提醒通知',
        'description': '在归还日期前提醒您及时归还图书',
    },
    SubscribeMessageType.OVERDUE_REMINDER: {
        'title': '逾期提醒通知',
        'description': '当图书逾期时，我们会提醒您尽快归还',
    },
    SubscribeMessageType.RETURN_SUCCESS: {
        'title': '归还成功通知',
        'description': '当您成功归还图书时，我们会及时通知您',
    },
}


def get_template_id(message_type: SubscribeMessageType) -> str:
    return WX_TEMPLATE_IDS.get(message_type.value) or ''


def is_template_configured(message_type: SubscribeMessageType) -> bool:
    """检查模板ID是否已配置（排除占位符）"""
    template_id = get_template_id(message_type)
    return bool(template_id) and \
        not template_id.startswith('YOUR_') and \
        'TEMPLATE_ID' not in template_id and \
        len(template_id) > 10


def _thing(value) -> dict:
    return {'value': str(value or '')[:THING_MAX_LENGTH]}


def _character_string(value) -> dict:
    return {'value': str(value or '')[:CHARACTER_STRING_MAX_LENGTH]}


def _value(value) -> dict:
    return {'value': str(value)}


def _require(data: dict, *keys):
    missing = [key for key in keys if data.get(key) in (None, '')]
    if missing:
        raise ValidationError(f"缺少订阅消息字段: {', '.join(missing)}")


def build_template_data(message_type: SubscribeMessageType, data: dict) -> dict:
    """根据消息类型和业务数据构建微信模板数据"""
    data = data or {}
    if message_type == SubscribeMessageType.BORROW_SUCCESS:
        _require(data, 'bookName', 'borrowDate', 'returnDate')
        return {
            'thing1': _thing(data['bookName']),
            'date2': _value(data['borrowDate']),
            'date3': _value(data['returnDate']),
            'character_string4': _character_string(data.get('borrowNumber')),
        }

    if message_type == SubscribeMessageType.RETURN_REMINDER:
        _require(data, 'bookName', 'returnDate', 'daysLeft')
        return {
            'thing1': _thing(data['bookName']),
            'date2': _value(data['returnDate']),
            'number3': _value(data['daysLeft']),
            'character_string4': _character_string(data.get('borrowNumber')),
        }

    if message_type == SubscribeMessageType.OVERDUE_REMINDER:
        _require(data, 'bookName', 'returnDate', 'overdueDays')
        return {
            'thing1': _thing(data['bookName']),
            'date2': _value(data['returnDate']),
            'number3': _value(data['overdueDays']),
            'character_string4': _character_string(data.get('borrowNumber')),
        }

    if message_type == SubscribeMessageType.RETURN_SUCCESS:
        _require(data, 'bookName', 'returnDate')
        return {
            'thing1': _thing(data['bookName']),
            'date2': _value(data['returnDate']),
            'character_string3': _character_string(data.get('borrowNumber')),
        }

    raise ValidationError(f'未知的订阅消息类型: {message_type}')


def get_subscribe_status(subscribed_types) -> list:
    """返回每种订阅消息的授权状态"""
    subscribed = set(subscribed_types or [])
    return [{
        'type': message_type.value,
        'authorized': message_type.value in subscribed,
        'templateId': get_template_id(message_type),
        'title': template['title'],
        'description': template['description'],
        'configured': is_template_configured(message_type),
    } for message_type, template in SUBSCRIBE_MESSAGE_TEMPLATES.items()]
