# -*- coding: utf-8 -*-
"""
订阅消息发送服务
发送失败只记录日志，返回 (是否成功, 信息)，不影响业务流程
"""
import logging
from typing import Optional, Tuple

from .config import SUBSCRIBE_DEFAULT_PAGE
from .exceptions import WeChatAPIError, ValidationError
from .models import SubscribeMessageType
from .subscribe_message import build_template_data, get_template_id, is_template_configured

logger = logging.getLogger(__name__)


class SubscribeService:
    """订阅消息发送服务"""

    def __init__(self, wechat_client, default_page: str = SUBSCRIBE_DEFAULT_PAGE):
        self.wechat_client = wechat_client
        self.default_page = default_page

    def send(self, message_type: SubscribeMessageType, open_id: str, data: dict,
             page: Optional[str] = None) -> Tuple[bool, str]:
        """发送订阅消息"""
        if not is_template_configured(message_type):
            logger.warning("订阅消息模板ID未配置: %s，跳过发送", message_type.value)
            return False, '订阅消息模板ID未配置'

        if not open_id:
            return False, '无法获取用户ID'

        try:
            template_data = build_template_data(message_type, data)
            self.wechat_client.send_subscribe_message(
                open_id=open_id,
                template_id=get_template_id(message_type),
                data=template_data,
                page=page or self.default_page,
            )
        except (WeChatAPIError, ValidationError) as e:
            logger.warning("发送订阅消息失败 [%s]: %s", message_type.value, e)
            return False, str(e)

        logger.info("已发送订阅消息 [%s] -> %s", message_type.value, open_id[:8])
        return True, '订阅消息发送成功'

    def send_borrow_success(self, open_id, book_name, borrow_date, return_date,
                            borrow_number='', page=None):
        """发送借阅成功通知"""
        return self.send(SubscribeMessageType.BORROW_SUCCESS, open_id, {
            'bookName': book_name,
            'borrowDate': borrow_date,
            'returnDate': return_date,
            'borrowNumber': borrow_number,
        }, page)

    def send_return_reminder(self, open_id, book_name, return_date, days_left,
                             borrow_number='', page=None):
        """发送归还提醒通知"""
        return self.send(SubscribeMessageType.RETURN_REMINDER, open_id, {
            'bookName': book_name,
            'returnDate': return_date,
            'daysLeft': days_left,
            'borrowNumber': borrow_number,
        }, page)

    def send_overdue_reminder(self, open_id, book_name, return_date, overdue_days,
                              borrow_number='', page=None):
        """发送逾期提醒通知"""
        return self.send(SubscribeMessageType.OVERDUE_REMINDER, open_id, {
            'bookName': book_name,
            'returnDate': return_date,
            'overdueDays': overdue_days,
            'borrowNumber': borrow_number,
        }, page)

    def send_return_success(self, open_id, book_name, return_date, borrow_number='', page=None):
        """发送归还成功通知"""
        return self.send(SubscribeMessageType.RETURN_SUCCESS, open_id, {
            'bookName': book_name,
            'returnDate': return_date,
            'borrowNumber': borrow_number,
        }, page)
